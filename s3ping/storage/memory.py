"""
In-process storage adapter.

Used by tests and by single-process demos; several registries sharing one
MemoryStorage behave like nodes sharing one bucket.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from s3ping.exceptions import ObjectNotFoundError
from s3ping.models import WriteOptions
from s3ping.storage.base import ObjectSummary

logger = logging.getLogger("s3ping.storage")


@dataclass
class StoredObject:
    data: bytes
    content_type: str
    metadata: Dict[str, str] = field(default_factory=dict)


def options_to_metadata(options: Optional[WriteOptions]) -> Dict[str, str]:
    """Header-style metadata that an S3 backend would store for the given write options."""
    metadata = {}
    if options is None:
        return metadata
    if options.acl_bucket_owner_full_control:
        metadata["x-amz-acl"] = "bucket-owner-full-control"
    if options.kms_key_id:
        metadata["x-amz-server-side-encryption"] = "aws:kms"
        metadata["x-amz-server-side-encryption-aws-kms-key-id"] = options.kms_key_id
    return metadata


class MemoryStorage:
    """Dictionary-backed buckets guarded by a lock."""

    def __init__(self):
        self.buckets: Dict[str, Dict[str, StoredObject]] = {}
        self.lock = threading.RLock()

    def list(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        with self.lock:
            objects = self.buckets.get(bucket, {})
            return [
                ObjectSummary(key, len(obj.data))
                for key, obj in sorted(objects.items())
                if key.startswith(prefix)
            ]

    def get(self, bucket: str, key: str) -> bytes:
        with self.lock:
            obj = self.buckets.get(bucket, {}).get(key)
            if obj is None:
                raise ObjectNotFoundError(f"No such key: {bucket}/{key}", key=key)
            return obj.data

    def head(self, bucket: str, key: str) -> Optional[StoredObject]:
        with self.lock:
            return self.buckets.get(bucket, {}).get(key)

    def put(self, bucket: str, key: str, data: bytes, content_type: str,
            options: Optional[WriteOptions] = None) -> None:
        with self.lock:
            self.buckets.setdefault(bucket, {})[key] = StoredObject(
                data=bytes(data),
                content_type=content_type,
                metadata=options_to_metadata(options),
            )
        logger.debug(f"Stored {bucket}/{key} ({len(data)} bytes)")

    def delete(self, bucket: str, key: str) -> None:
        with self.lock:
            self.buckets.get(bucket, {}).pop(key, None)
