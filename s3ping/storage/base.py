"""Storage adapter protocol definition."""

from typing import Iterable, NamedTuple, Optional, Protocol

from s3ping.models import WriteOptions


class ObjectSummary(NamedTuple):
    key: str
    size: int


class StorageAdapter(Protocol):
    """
    Minimal object store capability (S3-compatible, shared directory, in-memory).

    No atomicity, ordering or cross-key guarantees are assumed beyond
    last-writer-wins on overwrite of a single key.
    """

    def list(self, bucket: str, prefix: str) -> Iterable[ObjectSummary]:
        """List every object whose key starts with prefix (all pages)."""
        ...

    def get(self, bucket: str, key: str) -> bytes:
        """Return the full content of an object. Raises ObjectNotFoundError if missing."""
        ...

    def put(self, bucket: str, key: str, data: bytes, content_type: str,
            options: Optional[WriteOptions] = None) -> None:
        """Create or overwrite an object."""
        ...

    def delete(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        ...
