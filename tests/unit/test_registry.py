"""
Unit tests for the discovery registry.
"""
import uuid
from unittest.mock import MagicMock, patch

import pytest

from s3ping.codec import encode_records
from s3ping.exceptions import StorageError
from s3ping.models import DiscoveryCache, Responses, WriteOptions
from s3ping.registry import DiscoveryRegistry
from s3ping.storage.base import ObjectSummary

BUCKET = "test-bucket"


def write_nodes(make_registry, records, group="g1", **kwargs):
    """Each record is written by its own registry, as separate nodes would."""
    for record in records:
        make_registry(local_address=record.address, **kwargs).write([record], group)


def test_write_then_read_all(make_registry, make_record, responses):
    """A written record is read back unchanged."""
    # Arrange
    record = make_record("node-a", coordinator=True)
    writer = make_registry(local_address=record.address)
    reader = make_registry(local_address=uuid.uuid4())

    # Act
    writer.write([record], "g1")
    reader.read_all(None, "g1", responses)

    # Assert
    assert len(responses) == 1
    found = responses.get(record.address)
    assert found == record, "Record fields must round trip through the bucket"
    assert found.coordinator is True


def test_write_uses_object_key_and_content_type(storage, make_registry, make_record):
    record = make_record("node-a")
    registry = make_registry(local_address=record.address, bucket_prefix="jgroups")

    registry.write([record], "g1")

    stored = storage.head(BUCKET, f"jgroups/g1/{record.address}.list")
    assert stored is not None, "Object must be written under prefix/group/address"
    assert stored.content_type == "text/plain"
    assert stored.data == encode_records([record])


def test_write_is_idempotent(storage, make_registry, make_record):
    """Writing the same records twice leaves one identical object."""
    record = make_record("node-a")
    registry = make_registry(local_address=record.address)

    registry.write([record], "g1")
    first = storage.get(BUCKET, registry.object_key("g1", record.address))
    registry.write([record], "g1")

    listing = storage.list(BUCKET, registry.group_prefix("g1"))
    assert len(listing) == 1, "Only one object per node and group"
    assert storage.get(BUCKET, listing[0].key) == first


def test_write_overwrites_previous_advertisement(make_registry, make_record, responses):
    record = make_record("node-a", coordinator=False)
    registry = make_registry(local_address=record.address)

    registry.write([record], "g1")
    registry.write([record.model_copy(update={"coordinator": True})], "g1")
    registry.read_all(None, "g1", responses)

    assert len(responses) == 1
    assert responses.get(record.address).coordinator is True


def test_write_attaches_write_options(storage, make_registry, make_record):
    record = make_record("node-a")
    options = WriteOptions(acl_bucket_owner_full_control=True, kms_key_id="key-1")
    registry = make_registry(local_address=record.address, write_options=options)

    registry.write([record], "g1")

    metadata = storage.head(BUCKET, registry.object_key("g1", record.address)).metadata
    assert metadata["x-amz-acl"] == "bucket-owner-full-control"
    assert metadata["x-amz-server-side-encryption-aws-kms-key-id"] == "key-1"


def test_write_multiple_records_in_one_object(storage, make_registry, make_record, responses):
    own = make_record("node-a")
    other = make_record("node-b")
    registry = make_registry(local_address=own.address)

    registry.write([own, other], "g1")
    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert len(storage.list(BUCKET, "g1/")) == 1
    assert {r.address for r in responses} == {own.address, other.address}


def test_write_without_local_address(make_record):
    storage = MagicMock()
    registry = DiscoveryRegistry(storage, BUCKET)

    registry.write([make_record("node-a")], "g1")

    storage.put.assert_not_called()


def test_write_without_group_name(make_record):
    storage = MagicMock()
    registry = DiscoveryRegistry(storage, BUCKET, local_address=uuid.uuid4())

    registry.write([make_record("node-a")], None)

    storage.put.assert_not_called()


def test_write_failure_is_absorbed(storage, make_registry, make_record):
    record = make_record("node-a")
    registry = make_registry(local_address=record.address)

    with patch.object(storage, "put", side_effect=StorageError("denied")) as put:
        registry.write([record], "g1")

    put.assert_called_once()
    assert storage.list(BUCKET, "g1/") == []


def test_three_writers_one_reader(make_registry, make_record, responses):
    """A fourth node without filter sees all three nodes with their coordinator flags."""
    records = [
        make_record("node-a", coordinator=True),
        make_record("node-b"),
        make_record("node-c"),
    ]
    write_nodes(make_registry, records)

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert len(responses) == 3
    for record in records:
        assert responses.get(record.address).coordinator == record.coordinator
    assert [r.address for r in responses.coordinators()] == [records[0].address]


def test_read_all_filter_and_cache(make_registry, make_record, responses):
    """Only known members reach the sink, but every non-self record reaches the cache."""
    records = [make_record("node-a"), make_record("node-b"), make_record("node-c")]
    write_nodes(make_registry, records)
    cache = DiscoveryCache()
    reader = make_registry(local_address=uuid.uuid4(), cache=cache)

    reader.read_all({records[0].address}, "g1", responses)

    assert [r.address for r in responses] == [records[0].address]
    assert set(cache.addresses()) == {r.address for r in records}
    assert cache.get(records[1].address).logical_name == "node-b"
    assert cache.get(records[1].address).physical_addr == records[1].physical_addr


def test_read_all_cache_skips_self(make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    cache = DiscoveryCache()
    own = records[0]

    make_registry(local_address=own.address, cache=cache).read_all(None, "g1", responses)

    assert own.address in responses, "Own record is still delivered to the sink"
    assert own.address not in cache, "Own address must not be cached as a possible peer"
    assert records[1].address in cache


def test_read_all_without_local_address_skips_cache(make_registry, make_record, responses):
    write_nodes(make_registry, [make_record("node-a")])
    cache = DiscoveryCache()

    make_registry(cache=cache).read_all(None, "g1", responses)

    assert len(responses) == 1
    assert len(cache) == 0


def test_read_all_empty_filter(make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    cache = DiscoveryCache()

    make_registry(local_address=uuid.uuid4(), cache=cache).read_all(set(), "g1", responses)

    assert len(responses) == 0, "An empty filter accepts nobody"
    assert len(cache) == 2


def test_read_all_without_group_name(responses):
    storage = MagicMock()
    registry = DiscoveryRegistry(storage, BUCKET, local_address=uuid.uuid4())

    registry.read_all(None, None, responses)

    storage.list.assert_not_called()
    assert len(responses) == 0


def test_read_all_skips_zero_length_objects(storage, make_registry, make_record, responses):
    """Empty objects are placeholders: never fetched, never parsed."""
    record = make_record("node-a")
    write_nodes(make_registry, [record])
    empty_key = "g1/!placeholder.list"
    storage.put(BUCKET, empty_key, b"", "text/plain")
    reader = make_registry(local_address=uuid.uuid4())

    with patch.object(storage, "get", wraps=storage.get) as get:
        reader.read_all(None, "g1", responses)

    fetched = [c.args[1] for c in get.call_args_list]
    assert empty_key not in fetched, "Zero-length object must not be fetched"
    assert [r.address for r in responses] == [record.address], "Later objects are still read"


def test_read_all_stops_at_object_without_records(storage, make_registry, make_record, responses):
    """
    An object whose content decodes to no records ends the round.
    Objects listed after it are not read in this round.
    """
    first = make_record("node-a")
    later = make_record("node-b")
    # The memory store lists keys in sorted order
    storage.put(BUCKET, "g1/!a-first.list", encode_records([first]), "text/plain")
    storage.put(BUCKET, "g1/!b-blank.list", b"\n  \n", "text/plain")
    storage.put(BUCKET, "g1/!c-later.list", encode_records([later]), "text/plain")

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert first.address in responses, "Records before the blank object are delivered"
    assert later.address not in responses, "Records after the blank object are not read"


def test_read_all_skips_undecodable_object(storage, make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    storage.put(BUCKET, "g1/!corrupt.list", b"this is not a record", "text/plain")

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert {r.address for r in responses} == {r.address for r in records}


def test_read_all_skips_object_that_cannot_be_fetched(storage, make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b"), make_record("node-c")]
    write_nodes(make_registry, records)
    reader = make_registry(local_address=uuid.uuid4())
    broken_key = reader.object_key("g1", records[1].address)
    original_get = storage.get

    def flaky_get(bucket, key):
        if key == broken_key:
            raise StorageError("connection reset", key=key)
        return original_get(bucket, key)

    with patch.object(storage, "get", side_effect=flaky_get):
        reader.read_all(None, "g1", responses)

    assert {r.address for r in responses} == {records[0].address, records[2].address}


def test_read_all_skips_object_removed_after_listing(storage, make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    reader = make_registry(local_address=uuid.uuid4())
    gone = reader.object_key("g1", records[0].address)
    original_list = storage.list

    def list_then_delete(bucket, prefix):
        listing = original_list(bucket, prefix)
        storage.delete(bucket, gone)
        return listing

    with patch.object(storage, "list", side_effect=list_then_delete):
        reader.read_all(None, "g1", responses)

    assert [r.address for r in responses] == [records[1].address]


def test_read_all_listing_failure_is_absorbed(storage, make_registry, make_record, responses):
    write_nodes(make_registry, [make_record("node-a")])
    cache = DiscoveryCache()
    reader = make_registry(local_address=uuid.uuid4(), cache=cache)

    with patch.object(storage, "list", side_effect=StorageError("access denied")), \
         patch.object(storage, "get") as get:
        reader.read_all(None, "g1", responses)

    get.assert_not_called()
    assert len(responses) == 0
    assert len(cache) == 0


def test_read_all_keeps_partial_results_when_sink_fails(make_registry, make_record):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    sink = MagicMock()
    sink.add_response.side_effect = [None, RuntimeError("sink closed")]

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", sink)

    assert sink.add_response.call_count == 2
    first_record, first_flag = sink.add_response.call_args_list[0].args
    assert first_record.address in {r.address for r in records}
    assert first_flag is first_record.coordinator


def test_read_all_sees_every_object_of_large_group(make_registry, make_record, responses):
    """All objects of a group are read, however many there are."""
    records = [make_record(f"node-{i}") for i in range(1200)]
    write_nodes(make_registry, records)

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert len(responses) == 1200


def test_groups_are_isolated(make_registry, make_record, responses):
    in_g1 = make_record("node-a")
    in_g10 = make_record("node-b")
    write_nodes(make_registry, [in_g1], group="g1")
    write_nodes(make_registry, [in_g10], group="g10")

    make_registry(local_address=uuid.uuid4()).read_all(None, "g1", responses)

    assert [r.address for r in responses] == [in_g1.address]


def test_bucket_prefix_isolates_deployments(make_registry, make_record):
    prod = make_record("node-a")
    test = make_record("node-b")
    write_nodes(make_registry, [prod], bucket_prefix="prod")
    write_nodes(make_registry, [test], bucket_prefix="test/")

    prod_view, test_view = Responses(), Responses()
    make_registry(bucket_prefix="prod/").read_all(None, "g1", prod_view)
    make_registry(bucket_prefix="test").read_all(None, "g1", test_view)

    assert [r.address for r in prod_view] == [prod.address]
    assert [r.address for r in test_view] == [test.address]


def test_remove(storage, make_registry, make_record, responses):
    records = [make_record("node-a"), make_record("node-b")]
    write_nodes(make_registry, records)
    registry = make_registry(local_address=uuid.uuid4())

    registry.remove("g1", records[0].address)
    registry.read_all(None, "g1", responses)

    assert records[0].address not in responses
    assert records[1].address in responses


def test_remove_missing_key(storage, make_registry):
    registry = make_registry(local_address=uuid.uuid4())
    registry.remove("g1", uuid.uuid4())
    assert storage.list(BUCKET, "") == []


@pytest.mark.parametrize("group, address", [(None, uuid.uuid4()), ("g1", None), (None, None)])
def test_remove_requires_group_and_address(group, address):
    storage = MagicMock()
    registry = DiscoveryRegistry(storage, BUCKET)

    registry.remove(group, address)

    storage.delete.assert_not_called()


def test_remove_failure_is_absorbed(storage, make_registry, make_record):
    record = make_record("node-a")
    registry = make_registry(local_address=record.address)
    registry.write([record], "g1")

    with patch.object(storage, "delete", side_effect=StorageError("denied")):
        registry.remove("g1", record.address)

    assert len(storage.list(BUCKET, "g1/")) == 1


def test_remove_all(storage, make_registry, make_record, responses):
    write_nodes(make_registry, [make_record(f"node-{i}") for i in range(4)])
    write_nodes(make_registry, [make_record("other")], group="g2")
    registry = make_registry(local_address=uuid.uuid4())

    registry.remove_all("g1")
    registry.read_all(None, "g1", responses)

    assert len(responses) == 0
    assert len(storage.list(BUCKET, "g2/")) == 1, "Other groups are untouched"


def test_remove_all_continues_after_failed_delete(storage, make_registry, make_record):
    """One failing delete does not stop the others."""
    records = [make_record(f"node-{i}") for i in range(4)]
    write_nodes(make_registry, records)
    registry = make_registry(local_address=uuid.uuid4())
    stuck_key = registry.object_key("g1", records[1].address)
    original_delete = storage.delete

    def flaky_delete(bucket, key):
        if key == stuck_key:
            raise StorageError("internal error", key=key)
        original_delete(bucket, key)

    with patch.object(storage, "delete", side_effect=flaky_delete) as delete:
        registry.remove_all("g1")

    assert delete.call_count == 4, "Every listed object must be attempted"
    assert [s.key for s in storage.list(BUCKET, "g1/")] == [stuck_key]


def test_remove_all_listing_failure(storage, make_registry, make_record):
    write_nodes(make_registry, [make_record("node-a")])
    registry = make_registry(local_address=uuid.uuid4())

    with patch.object(storage, "list", side_effect=StorageError("denied")), \
         patch.object(storage, "delete") as delete:
        registry.remove_all("g1")

    delete.assert_not_called()


def test_remove_all_without_group_name():
    storage = MagicMock()
    registry = DiscoveryRegistry(storage, BUCKET)

    registry.remove_all(None)

    storage.list.assert_not_called()
    storage.delete.assert_not_called()


def test_remove_all_deletes_empty_objects(storage, make_registry):
    storage.put(BUCKET, "g1/placeholder.list", b"", "text/plain")
    make_registry().remove_all("g1")
    assert storage.list(BUCKET, "g1/") == []


def test_registry_accepts_lazy_listing(make_record, responses):
    """Adapters may return any iterable of summaries."""
    record = make_record("node-a")
    storage = MagicMock()
    storage.list.return_value = iter([ObjectSummary("g1/a.list", 10)])
    storage.get.return_value = encode_records([record])

    DiscoveryRegistry(storage, BUCKET).read_all(None, "g1", responses)

    storage.list.assert_called_once_with(BUCKET, "g1/")
    assert responses.get(record.address) == record


def test_set_local_address(make_registry, make_record, storage):
    record = make_record("node-a")
    registry = make_registry()

    registry.set_local_address(record.address)
    registry.write([record], "g1")

    assert storage.head(BUCKET, registry.object_key("g1", record.address)) is not None
