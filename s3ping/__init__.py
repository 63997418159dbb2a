"""
Discovery of process group members through a shared S3-compatible bucket.

Each node advertises its own address as one object under a key derived
from the group name; peers are found by listing and reading every object
under that prefix.
Key responsibilities:
- Name storage keys for groups and nodes
- Encode and decode peer records
- Read, write and remove group membership objects in the bucket
- Absorb storage failures so that discovery only goes stale, never fails
"""

__version__ = "1.0.0"
