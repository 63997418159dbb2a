"""
Discovery backends by id.

BACKENDS maps the backend id of a configuration to the factory of its
storage adapter; create_registry wires the adapter into a DiscoveryRegistry.
"""
import logging
from typing import Callable, Dict, Optional
from uuid import UUID

from s3ping.config import DiscoveryConfig
from s3ping.exceptions import ConfigurationError, StorageError
from s3ping.models import DiscoveryCache
from s3ping.registry import DiscoveryRegistry
from s3ping.storage.base import StorageAdapter
from s3ping.storage.file import FileStorage
from s3ping.storage.memory import MemoryStorage
from s3ping.storage.s3 import S3Storage

logger = logging.getLogger("s3ping.backends")

# Bucket used by the directory and in-memory backends when none is configured
DEFAULT_BUCKET = "s3ping"


def s3_storage(config: DiscoveryConfig) -> S3Storage:
    if not config.bucket_name:
        raise ConfigurationError("bucket_name is required for S3 discovery")

    storage = S3Storage.connect(
        endpoint=config.endpoint,
        region_name=config.region_name,
        access_key=config.access_key,
        secret_key=config.secret_key,
        session_token=config.session_token,
        path_style_access_enabled=config.path_style_access_enabled,
        retry_attempts=config.retry_attempts,
    )
    logger.info(f"Using S3 ping in region {config.region_name} with bucket "
                f"'{config.bucket_name}' and prefix '{config.bucket_prefix}'")
    if config.kms_key_id:
        logger.info("Using S3 server side encryption with KMS")

    if config.check_if_bucket_exists:
        try:
            storage.ensure_bucket(config.bucket_name, config.region_name)
        except Exception as e:
            raise StorageError(f"Error checking bucket {config.bucket_name}: {e}") from e
    return storage


def file_storage(config: DiscoveryConfig) -> FileStorage:
    storage = FileStorage(config.location)
    storage.ensure_bucket(config.bucket_name or DEFAULT_BUCKET)
    return storage


def memory_storage(config: DiscoveryConfig) -> MemoryStorage:
    return MemoryStorage()


BACKENDS: Dict[str, Callable[[DiscoveryConfig], StorageAdapter]] = {
    "s3_ping": s3_storage,
    # Legacy name of the S3 backend
    "native_s3_ping": s3_storage,
    "file_ping": file_storage,
    "memory": memory_storage,
}


def create_registry(config: DiscoveryConfig, local_address: Optional[UUID] = None,
                    cache: Optional[DiscoveryCache] = None,
                    storage: Optional[StorageAdapter] = None) -> DiscoveryRegistry:
    """
    Builds the registry for a configuration.

    Args:
        config: Discovery configuration
        local_address: Address of this node
        cache: Discovery cache of the membership engine
        storage: Adapter to use instead of the one built from config.protocol
            (e.g. a MemoryStorage shared by several in-process nodes)

    Returns:
        DiscoveryRegistry: Configured registry

    Raises:
        ConfigurationError: If the backend id is unknown or required settings are missing
        StorageError: If the bucket check at start-up fails
    """
    protocol = config.protocol.lower()
    factory = BACKENDS.get(protocol)
    if factory is None:
        raise ConfigurationError(
            f"Unknown discovery backend {config.protocol!r}; expected one of {sorted(BACKENDS)}"
        )

    if storage is None:
        storage = factory(config)

    bucket_name = config.bucket_name or DEFAULT_BUCKET
    logger.info(f"Discovery backend {protocol} ready (bucket={bucket_name}, "
                f"prefix='{config.bucket_prefix}')")
    return DiscoveryRegistry(
        storage,
        bucket_name,
        local_address=local_address,
        bucket_prefix=config.bucket_prefix,
        cache=cache,
        write_options=config.write_options(),
    )
