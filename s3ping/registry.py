"""
File: s3ping/registry.py
Discovery registry: group membership kept as one object per node under the
group's prefix in a shared bucket.

Every operation is synchronous and never raises. Storage failures degrade
to "the view is stale this round" and are reported through logs and
metrics only; the caller's next periodic round is the retry.
"""
from typing import Collection, Iterable, List, Optional, Protocol
from uuid import UUID

import structlog

from s3ping.codec import CONTENT_TYPE, ENCODING, decode_records, encode_records
from s3ping.exceptions import ObjectNotFoundError, RecordFormatError
from s3ping.keys import group_prefix, normalize_prefix, object_key
from s3ping.metrics import observe_duration, registry_metrics
from s3ping.models import DiscoveryCache, PeerRecord, ResponseSink, WriteOptions
from s3ping.storage.base import StorageAdapter

log = structlog.get_logger(__name__)


class Discovery(Protocol):
    """Discovery capability held by the membership engine."""

    def read_all(self, members: Optional[Collection[UUID]], group_name: Optional[str],
                 responses: ResponseSink) -> None:
        ...

    def write(self, records: Iterable[PeerRecord], group_name: Optional[str]) -> None:
        ...

    def remove(self, group_name: Optional[str], address: Optional[UUID]) -> None:
        ...

    def remove_all(self, group_name: Optional[str]) -> None:
        ...


class DiscoveryRegistry:
    """
    Object-store backed implementation of the Discovery capability.

    Characteristics:
    1. Each node owns exactly one key per group, derived from its own address
    2. Peers are discovered by listing the group prefix and reading every object
    3. No membership state is kept between calls; the bucket is the state
    """

    def __init__(self, storage: StorageAdapter, bucket_name: str,
                 local_address: Optional[UUID] = None, bucket_prefix: Optional[str] = None,
                 cache: Optional[DiscoveryCache] = None,
                 write_options: Optional[WriteOptions] = None):
        """
        Args:
            storage: Storage adapter for the shared bucket
            bucket_name: Bucket holding the group objects
            local_address: Address of this node (needed by write and the cache update)
            bucket_prefix: Optional key prefix shared by all groups (e.g. "jgroups/")
            cache: Discovery cache of the membership engine; a private one is used if None
            write_options: Metadata attached to every write (ACL grant, SSE-KMS key)
        """
        self.storage = storage
        self.bucket_name = bucket_name
        self.bucket_prefix = normalize_prefix(bucket_prefix)
        self.local_address = local_address
        self.cache = cache if cache is not None else DiscoveryCache()
        self.write_options = write_options or WriteOptions()

    def set_local_address(self, address: UUID) -> None:
        self.local_address = address

    def group_prefix(self, group_name: str) -> str:
        return group_prefix(self.bucket_prefix, group_name)

    def object_key(self, group_name: str, address: UUID) -> str:
        return object_key(self.bucket_prefix, group_name, address)

    def read_all(self, members: Optional[Collection[UUID]], group_name: Optional[str],
                 responses: ResponseSink) -> None:
        """
        Reads every advertisement of a group and delivers it to the sink.

        Records whose address is in members (or all records when members is
        None) go to responses, tagged with their coordinator flag. Every record
        not from this node is added to the discovery cache, whatever the filter.

        Zero-length objects are skipped. An object that decodes to no records
        ends the round: the objects listed after it are not read.

        Args:
            members: Addresses already known, or None to accept every record
            group_name: Group to read; nothing is done if None
            responses: Sink receiving the accepted records
        """
        if group_name is None:
            return

        prefix = self.group_prefix(group_name)
        registry_metrics["reads"].labels(group=group_name).inc()
        log.debug("Getting entries", prefix=prefix, bucket=self.bucket_name)

        with observe_duration(registry_metrics["read_duration"], group=group_name):
            try:
                listing = list(self.storage.list(self.bucket_name, prefix))
            except Exception:
                registry_metrics["read_failures"].labels(group=group_name, stage="list").inc()
                log.error("Failed getting member list", prefix=prefix, bucket=self.bucket_name,
                          exc_info=True)
                return

            log.debug("Got object listing", prefix=prefix, entries=len(listing))

            try:
                for summary in listing:
                    if summary.size <= 0:
                        log.debug("Skipping empty object", key=summary.key)
                        continue

                    records = self._fetch(group_name, summary.key)
                    if records is None:
                        continue
                    if not records:
                        log.debug("Fetched update for member list is empty", prefix=prefix,
                                  key=summary.key)
                        break

                    for record in records:
                        self._accept(record, members, responses)
                        log.debug("Processed entry", key=summary.key, record=str(record.address))
            except Exception:
                log.error("Failed processing member list", prefix=prefix, exc_info=True)
                return

        log.debug("Fetched update for member list", prefix=prefix, found=len(listing))

    def _fetch(self, group_name: str, key: str) -> Optional[List[PeerRecord]]:
        """Reads and decodes one object; None if it could not be used this round."""
        try:
            data = self.storage.get(self.bucket_name, key)
        except ObjectNotFoundError:
            # Removed between the listing and the read
            log.debug("Object vanished before it was read", key=key)
            return None
        except Exception:
            registry_metrics["read_failures"].labels(group=group_name, stage="fetch").inc()
            log.error("Failed fetching object", key=key, bucket=self.bucket_name, exc_info=True)
            return None

        log.debug("Parsing object", key=key, size=len(data))
        try:
            records = decode_records(data)
        except RecordFormatError:
            registry_metrics["read_failures"].labels(group=group_name, stage="decode").inc()
            log.error("Failed parsing object", key=key, exc_info=True)
            return None

        registry_metrics["records_discovered"].labels(group=group_name).inc(len(records))
        return records

    def _accept(self, record: PeerRecord, members: Optional[Collection[UUID]],
                responses: ResponseSink) -> None:
        if members is None or record.address in members:
            responses.add_response(record, record.coordinator)
            log.debug("Added member", record=str(record.address), filtered=members is not None)

        if self.local_address is not None and record.address != self.local_address:
            self.cache.add(record.address, record.logical_name, record.physical_addr)
            log.debug("Added possible member", record=str(record.address),
                      local_address=str(self.local_address))

    def write(self, records: Iterable[PeerRecord], group_name: Optional[str]) -> None:
        """
        Overwrites this node's object in the group with the given records.

        Args:
            records: Records to advertise (usually just this node's own)
            group_name: Group to advertise in
        """
        if group_name is None:
            log.warning("Not writing member list without a group name")
            return
        if self.local_address is None:
            registry_metrics["writes"].labels(group=group_name, status="failure").inc()
            log.error("Not writing member list before the local address is set", group=group_name)
            return

        key = self.object_key(group_name, self.local_address)
        try:
            records = list(records)
            data = encode_records(records)
            log.debug("New object content", key=key, size=len(data),
                      content=data.decode(ENCODING))
            self.storage.put(self.bucket_name, key, data, CONTENT_TYPE, self.write_options)
        except Exception:
            registry_metrics["writes"].labels(group=group_name, status="failure").inc()
            log.error("Failed to update member list", key=key, bucket=self.bucket_name,
                      exc_info=True)
            return

        registry_metrics["writes"].labels(group=group_name, status="success").inc()
        log.debug("Wrote member list", key=key, records=len(records))

    def remove(self, group_name: Optional[str], address: Optional[UUID]) -> None:
        """
        Deletes the object of one node from a group.

        Args:
            group_name: Group of the node
            address: Address of the node whose object is deleted
        """
        if group_name is None or address is None:
            return

        key = self.object_key(group_name, address)
        try:
            self.storage.delete(self.bucket_name, key)
        except Exception:
            registry_metrics["deletes"].labels(group=group_name, operation="remove",
                                               status="failure").inc()
            log.error("Failed removing object", key=key, bucket=self.bucket_name, exc_info=True)
            return

        registry_metrics["deletes"].labels(group=group_name, operation="remove",
                                           status="success").inc()
        log.debug("Removed object", key=key)

    def remove_all(self, group_name: Optional[str]) -> None:
        """
        Deletes every object of a group, one at a time.

        A failed delete does not stop the remaining ones. A failed listing
        aborts the whole operation.

        Args:
            group_name: Group to clear
        """
        if group_name is None:
            return

        prefix = self.group_prefix(group_name)
        try:
            listing = list(self.storage.list(self.bucket_name, prefix))
        except Exception:
            registry_metrics["deletes"].labels(group=group_name, operation="remove_all",
                                               status="list_failure").inc()
            log.error("Failed deleting all objects", prefix=prefix, bucket=self.bucket_name,
                      exc_info=True)
            return

        log.debug("Got object listing", prefix=prefix, entries=len(listing))

        failed = 0
        for summary in listing:
            try:
                self.storage.delete(self.bucket_name, summary.key)
            except Exception:
                failed += 1
                registry_metrics["deletes"].labels(group=group_name, operation="remove_all",
                                                   status="failure").inc()
                log.error("Failed deleting object", key=summary.key, exc_info=True)
                continue
            registry_metrics["deletes"].labels(group=group_name, operation="remove_all",
                                               status="success").inc()
            log.debug("Removed object", key=summary.key)

        if failed:
            log.warning("Some objects were not deleted", prefix=prefix, failed=failed,
                        total=len(listing))
