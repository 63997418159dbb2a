"""
Exception hierarchy used inside the discovery layer.

None of these reach the membership engine through the registry operations;
they are raised by adapters and codecs and absorbed by the registry.
ConfigurationError is the exception raised to callers, at construction time.
"""


class DiscoveryError(Exception):
    """Base class for all discovery errors."""


class StorageError(DiscoveryError):
    """A storage adapter could not complete an operation."""

    def __init__(self, message: str, key: str = None):
        super().__init__(message)
        self.key = key


class ObjectNotFoundError(StorageError):
    """The requested key does not exist in the bucket."""


class RecordFormatError(DiscoveryError):
    """A peer record could not be encoded or decoded."""


class ConfigurationError(DiscoveryError):
    """Invalid discovery settings or unknown backend id."""
