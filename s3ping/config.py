"""
Configuration for the discovery components.

Settings come from an optional YAML file and are overridden by environment
variables named S3PING_<FIELD> (e.g. S3PING_BUCKET_NAME).
"""
import logging
import os
import tempfile
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from s3ping.exceptions import ConfigurationError
from s3ping.keys import normalize_prefix
from s3ping.models import WriteOptions

logger = logging.getLogger("s3ping.config")

ENV_PREFIX = "S3PING_"
# Older name of the bucket variable, still accepted
LEGACY_BUCKET_ENV = "S3_PING_BUCKET_NAME"

# Path of the YAML file, read when load_config is called
CONFIG_ENV = "S3PING_CONFIG"
DEFAULT_LOCATION = os.path.join(tempfile.gettempdir(), "s3ping")


class DiscoveryConfig(BaseModel):
    """Settings of one discovery backend."""

    # Backend id, see s3ping.backends.BACKENDS
    protocol: str = "s3_ping"

    # Bucket and key layout
    bucket_name: Optional[str] = None
    bucket_prefix: str = ""

    # S3 connection
    region_name: Optional[str] = None
    endpoint: Optional[str] = None
    path_style_access_enabled: bool = False
    check_if_bucket_exists: bool = True
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    session_token: Optional[str] = None
    retry_attempts: int = Field(3, ge=1)

    # Write metadata
    acl_grant_bucket_owner_full_control: bool = False
    kms_key_id: Optional[str] = None

    # Shared directory of file_ping
    location: str = DEFAULT_LOCATION

    # Seconds between advertisement rounds of the heartbeat driver
    interval: float = Field(60.0, gt=0)

    @field_validator("bucket_prefix", mode="before")
    @classmethod
    def _normalize_prefix(cls, value: Any) -> str:
        return normalize_prefix(value)

    @field_validator("kms_key_id", "endpoint", "region_name", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def write_options(self) -> WriteOptions:
        return WriteOptions(
            acl_bucket_owner_full_control=self.acl_grant_bucket_owner_full_control,
            kms_key_id=self.kms_key_id,
        )


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Collects S3PING_<FIELD> variables that name a configuration field.

    Args:
        environ: Environment to read (os.environ if None)

    Returns:
        Dict[str, str]: Field name -> raw value
    """
    environ = os.environ if environ is None else environ
    overrides = {}

    legacy_bucket = environ.get(LEGACY_BUCKET_ENV)
    if legacy_bucket:
        overrides["bucket_name"] = legacy_bucket

    for field_name in DiscoveryConfig.model_fields:
        value = environ.get(ENV_PREFIX + field_name.upper())
        if value is not None:
            overrides[field_name] = value
    return overrides


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None,
                **overrides: Any) -> DiscoveryConfig:
    """
    Loads the discovery configuration.

    Precedence, lowest first: YAML file, environment, keyword overrides.
    The YAML file may hold the settings at top level or under a "discovery" key.

    Args:
        path: YAML file (S3PING_CONFIG of environ if None; no file if neither is set)
        environ: Environment to read (os.environ if None)
        overrides: Explicit values, ignored when None

    Returns:
        DiscoveryConfig: Validated configuration

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_ENV)
    data: Dict[str, Any] = {}

    if path:
        try:
            with open(path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error reading configuration file {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration file {path} must hold a mapping")
        section = loaded.get("discovery", loaded)
        if not isinstance(section, dict):
            raise ConfigurationError(f"Section 'discovery' of {path} must hold a mapping")
        data.update(section)
        logger.info(f"Configuration loaded from {path}")

    data.update(env_overrides(environ))
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return DiscoveryConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid discovery configuration: {e}") from e
