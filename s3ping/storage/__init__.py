"""
Storage adapters: the list/get/put/delete capability the registry runs on.
"""
from s3ping.storage.base import ObjectSummary, StorageAdapter
from s3ping.storage.file import FileStorage
from s3ping.storage.memory import MemoryStorage

__all__ = ["ObjectSummary", "StorageAdapter", "FileStorage", "MemoryStorage"]
