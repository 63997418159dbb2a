"""
Storage key naming for groups and their members.

Group names are used verbatim. A group name containing the backend's key
delimiter ("/") changes what a prefix listing matches; callers must not
use such names when groups share a bucket prefix.
"""
from typing import Optional
from uuid import UUID

from s3ping.codec import filename_for


def normalize_prefix(prefix: Optional[str]) -> str:
    """Returns "" for an empty or root prefix, else the prefix with exactly one trailing "/"."""
    stripped = (prefix or "").rstrip("/")
    if not stripped:
        return ""
    return stripped + "/"


def group_prefix(prefix: Optional[str], group_name: str) -> str:
    return normalize_prefix(prefix) + group_name + "/"


def object_key(prefix: Optional[str], group_name: str, address: UUID) -> str:
    return group_prefix(prefix, group_name) + filename_for(address)
