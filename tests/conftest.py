"""
Shared test configuration.
Contains fixtures used by unit and integration tests.
"""
def pytest_addoption(parser):
    """Options for the integration tests."""
    parser.addoption(
        "--runintegration", action="store_true", default=False,
        help="Run integration tests against a real S3-compatible bucket"
    )

import uuid

import pytest

from s3ping.models import DiscoveryCache, PeerRecord, PhysicalAddress, Responses
from s3ping.registry import DiscoveryRegistry
from s3ping.storage.memory import MemoryStorage

BUCKET = "test-bucket"


@pytest.fixture
def storage():
    """In-memory bucket shared by every registry of a test."""
    return MemoryStorage()


@pytest.fixture
def make_record():
    """Factory of peer records with sequential ports."""
    counter = {"port": 7800}

    def _make(name="node", coordinator=False, address=None, host="10.0.0.1"):
        counter["port"] += 1
        return PeerRecord(
            address=address or uuid.uuid4(),
            logical_name=name,
            physical_addr=PhysicalAddress(host=host, port=counter["port"]),
            coordinator=coordinator,
        )

    return _make


@pytest.fixture
def make_registry(storage):
    """Factory of registries sharing the test bucket, one per simulated node."""

    def _make(local_address=None, bucket_prefix=None, cache=None, write_options=None, backend=None):
        return DiscoveryRegistry(
            backend or storage,
            BUCKET,
            local_address=local_address,
            bucket_prefix=bucket_prefix,
            cache=cache if cache is not None else DiscoveryCache(),
            write_options=write_options,
        )

    return _make


@pytest.fixture
def responses():
    return Responses()
