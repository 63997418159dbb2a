"""
File: s3ping/storage/s3.py
Storage adapter for AWS S3 and S3-compatible services (MinIO, Ceph RGW, ...),
built on the MinIO client.
"""
import io
import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from minio import Minio
from minio.credentials import (
    AWSConfigProvider,
    ChainedProvider,
    EnvAWSProvider,
    EnvMinioProvider,
    IamAwsProvider,
    StaticProvider,
)
from minio.error import S3Error, ServerError
from minio.sse import SseKMS
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from urllib3.exceptions import HTTPError

from s3ping.exceptions import ObjectNotFoundError
from s3ping.models import WriteOptions
from s3ping.storage.base import ObjectSummary

logger = logging.getLogger("s3ping.storage")

DEFAULT_ENDPOINT = "s3.amazonaws.com"

# S3 error codes worth another attempt
TRANSIENT_ERROR_CODES = {"InternalError", "ServiceUnavailable", "SlowDown", "RequestTimeout"}


def resolve_endpoint(endpoint: Optional[str]) -> Tuple[str, bool]:
    """
    Splits a configured endpoint into the host[:port] the client expects and the TLS flag.

    Args:
        endpoint: "https://host:port", "http://host:port", "host:port" or None (AWS)

    Returns:
        Tuple[str, bool]: (host[:port], secure)
    """
    if not endpoint:
        return DEFAULT_ENDPOINT, True
    parsed = urlparse(endpoint if "://" in endpoint else f"https://{endpoint}")
    return parsed.netloc, parsed.scheme != "http"


def credentials_chain(access_key: Optional[str] = None, secret_key: Optional[str] = None,
                      session_token: Optional[str] = None) -> ChainedProvider:
    """
    Credential lookup in the order of the default AWS chain: explicit keys,
    environment, shared config files, then the instance profile.
    """
    providers = []
    if access_key and secret_key:
        providers.append(StaticProvider(access_key, secret_key, session_token))
    providers.extend([EnvAWSProvider(), EnvMinioProvider(), AWSConfigProvider(), IamAwsProvider()])
    return ChainedProvider(providers)


def is_transient(error: BaseException) -> bool:
    if isinstance(error, (HTTPError, ServerError)):
        return True
    return isinstance(error, S3Error) and error.code in TRANSIENT_ERROR_CODES


class S3Storage:
    """
    S3 storage adapter.

    Listings follow continuation tokens until exhausted, so a group with more
    objects than one listing page is still seen in full. Transient transport
    errors are retried; any other error is raised to the caller.
    """

    def __init__(self, client: Minio, retry_attempts: int = 3):
        """
        Args:
            client: Configured MinIO client
            retry_attempts: Total attempts per operation for transient errors
        """
        self.client = client
        self.retrying = Retrying(
            stop=stop_after_attempt(max(1, retry_attempts)),
            wait=wait_exponential(multiplier=0.2, max=2.0),
            retry=retry_if_exception(is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    @classmethod
    def connect(cls, endpoint: Optional[str] = None, region_name: Optional[str] = None,
                access_key: Optional[str] = None, secret_key: Optional[str] = None,
                session_token: Optional[str] = None, path_style_access_enabled: bool = False,
                retry_attempts: int = 3) -> "S3Storage":
        """
        Builds the MinIO client for an endpoint and wraps it.

        Args:
            endpoint: Endpoint URL, or None for AWS S3
            region_name: Bucket region
            access_key: Optional explicit access key (falls back to the credentials chain)
            secret_key: Optional explicit secret key
            session_token: Optional session token for temporary credentials
            path_style_access_enabled: Force path-style requests
            retry_attempts: Total attempts per operation for transient errors

        Returns:
            S3Storage: Connected adapter
        """
        host, secure = resolve_endpoint(endpoint)
        client = Minio(
            host,
            credentials=credentials_chain(access_key, secret_key, session_token),
            secure=secure,
            region=region_name,
        )
        if path_style_access_enabled:
            client.disable_virtual_style_endpoint()
        if endpoint:
            logger.info(f"Set S3 endpoint to {endpoint}")
        return cls(client, retry_attempts=retry_attempts)

    def _call(self, fn, *args, **kwargs):
        return self.retrying.copy()(fn, *args, **kwargs)

    def ensure_bucket(self, bucket: str, region_name: Optional[str] = None) -> None:
        """Creates the bucket when it does not exist yet."""
        if self._call(self.client.bucket_exists, bucket):
            logger.info(f"Found bucket {bucket}")
            return
        logger.info(f"Bucket {bucket} does not exist, creating it")
        self._call(self.client.make_bucket, bucket, location=region_name)
        logger.info(f"Created bucket {bucket}")

    def list(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        return self._call(self._list, bucket, prefix)

    def _list(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        summaries = []
        for obj in self.client.list_objects(bucket, prefix=prefix, recursive=True):
            if obj.is_dir:
                continue
            summaries.append(ObjectSummary(obj.object_name, obj.size or 0))
        return summaries

    def get(self, bucket: str, key: str) -> bytes:
        try:
            return self._call(self._get, bucket, key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise ObjectNotFoundError(f"No such key: {bucket}/{key}", key=key) from e
            raise

    def _get(self, bucket: str, key: str) -> bytes:
        response = self.client.get_object(bucket, key)
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def put(self, bucket: str, key: str, data: bytes, content_type: str,
            options: Optional[WriteOptions] = None) -> None:
        metadata = None
        sse = None
        if options is not None:
            if options.acl_bucket_owner_full_control:
                metadata = {"x-amz-acl": "bucket-owner-full-control"}
            if options.kms_key_id:
                sse = SseKMS(options.kms_key_id, {})
        # The stream is consumed by each attempt, so every attempt gets a fresh one
        self._call(
            lambda: self.client.put_object(
                bucket, key, io.BytesIO(data), len(data),
                content_type=content_type, metadata=metadata, sse=sse,
            )
        )

    def delete(self, bucket: str, key: str) -> None:
        self._call(self.client.remove_object, bucket, key)
