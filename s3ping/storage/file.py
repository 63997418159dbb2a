"""
File: s3ping/storage/file.py
Storage adapter backed by a shared directory (local disk, NFS, SMB share).
Each bucket is a sub-directory of the root; each key is one file whose name
is the percent-encoded key, so any key maps to a single flat file.
"""
import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, unquote

from s3ping.exceptions import ObjectNotFoundError, StorageError
from s3ping.models import WriteOptions
from s3ping.storage.base import ObjectSummary

logger = logging.getLogger("s3ping.storage")

STAGING_DIR = ".staging"


class FileStorage:
    """
    Shared-directory variant of the object store.

    Writes go to a staging file first and are renamed into place, so a
    reader never sees a partially written object.
    """

    def __init__(self, root: str):
        """
        Args:
            root: Directory shared by every node of the group
        """
        self.root = Path(root)
        self.staging_dir = self.root / STAGING_DIR
        os.makedirs(self.staging_dir, exist_ok=True)
        logger.info(f"File storage initialized at {self.root}")

    def _bucket_dir(self, bucket: str) -> Path:
        if not bucket or bucket.startswith(".") or "/" in bucket or os.sep in bucket:
            raise StorageError(f"Invalid bucket name for file storage: {bucket!r}")
        return self.root / bucket

    def _path(self, bucket: str, key: str) -> Path:
        return self._bucket_dir(bucket) / quote(key, safe="")

    def ensure_bucket(self, bucket: str) -> None:
        os.makedirs(self._bucket_dir(bucket), exist_ok=True)

    def list(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        bucket_dir = self._bucket_dir(bucket)
        if not bucket_dir.exists():
            return []
        try:
            summaries = []
            for entry in os.scandir(bucket_dir):
                if not entry.is_file():
                    continue
                key = unquote(entry.name)
                if key.startswith(prefix):
                    summaries.append(ObjectSummary(key, entry.stat().st_size))
            return sorted(summaries)
        except OSError as e:
            raise StorageError(f"Error listing {bucket}/{prefix}: {e}") from e

    def get(self, bucket: str, key: str) -> bytes:
        path = self._path(bucket, key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(f"No such key: {bucket}/{key}", key=key) from e
        except OSError as e:
            raise StorageError(f"Error reading {bucket}/{key}: {e}", key=key) from e

    def put(self, bucket: str, key: str, data: bytes, content_type: str,
            options: Optional[WriteOptions] = None) -> None:
        if options is not None and (options.acl_bucket_owner_full_control or options.kms_key_id):
            logger.debug(f"Write options ignored by file storage for {bucket}/{key}")

        path = self._path(bucket, key)
        temp_file = self.staging_dir / f"{uuid.uuid4().hex}.tmp"
        try:
            os.makedirs(path.parent, exist_ok=True)
            with open(temp_file, "wb") as f:
                f.write(data)
            # Rename atomically to final file
            temp_file.replace(path)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise StorageError(f"Error writing {bucket}/{key}: {e}", key=key) from e

    def delete(self, bucket: str, key: str) -> None:
        try:
            self._path(bucket, key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Error deleting {bucket}/{key}: {e}", key=key) from e
