"""
Data models shared by the discovery components.
"""
import threading
from typing import Dict, Iterator, List, NamedTuple, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PhysicalAddress(BaseModel):
    """Transport-level endpoint of a node (host and port)."""
    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(ge=0, le=65535)

    @classmethod
    def parse(cls, value: str) -> "PhysicalAddress":
        """
        Parses the textual form "host:port" ("[v6-host]:port" for IPv6).

        Args:
            value: Endpoint text

        Returns:
            PhysicalAddress: Parsed endpoint

        Raises:
            ValueError: If the text has no port or the port is not a number
        """
        host, sep, port = value.rpartition(":")
        if not sep or not host:
            raise ValueError(f"Invalid physical address: {value!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        return cls(host=host, port=int(port))

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class PeerRecord(BaseModel):
    """Discovery advertisement of one node."""
    model_config = ConfigDict(frozen=True)

    address: UUID
    logical_name: str
    physical_addr: PhysicalAddress
    coordinator: bool = False

    @field_validator("logical_name")
    @classmethod
    def _single_token(cls, value: str) -> str:
        # Encoded records are whitespace separated
        if not value or any(ch.isspace() for ch in value):
            raise ValueError("logical_name must be a non-empty string without whitespace")
        return value


class WriteOptions(BaseModel):
    """Environment-specific metadata attached to every write."""
    acl_bucket_owner_full_control: bool = False
    kms_key_id: Optional[str] = None


class ResponseSink(Protocol):
    """Accumulator that read_all delivers discovered records to."""

    def add_response(self, record: PeerRecord, is_coord: bool) -> None:
        ...


class Responses:
    """
    Collects the records found during a discovery round.

    Records are keyed by address; a later record for the same address
    replaces the earlier one.
    """

    def __init__(self, num_expected: int = 0, break_on_coord: bool = False):
        """
        Args:
            num_expected: Number of distinct members after which the round is done (0 = no limit)
            break_on_coord: If True, the round is done as soon as a coordinator answers
        """
        self.num_expected = num_expected
        self.break_on_coord = break_on_coord
        self._records: Dict[UUID, PeerRecord] = {}
        self._lock = threading.RLock()

    def add_response(self, record: PeerRecord, is_coord: bool) -> None:
        if record.coordinator != is_coord:
            record = record.model_copy(update={"coordinator": is_coord})
        with self._lock:
            self._records[record.address] = record

    def get(self, address: UUID) -> Optional[PeerRecord]:
        with self._lock:
            return self._records.get(address)

    def coordinators(self) -> List[PeerRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.coordinator]

    def records(self) -> List[PeerRecord]:
        with self._lock:
            return list(self._records.values())

    def is_done(self) -> bool:
        with self._lock:
            if self.break_on_coord and any(r.coordinator for r in self._records.values()):
                return True
            return 0 < self.num_expected <= len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __contains__(self, address: UUID) -> bool:
        with self._lock:
            return address in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[PeerRecord]:
        return iter(self.records())

    def __repr__(self) -> str:
        return f"Responses({len(self)} records, {len(self.coordinators())} coordinators)"


class CacheEntry(NamedTuple):
    logical_name: str
    physical_addr: PhysicalAddress


class DiscoveryCache:
    """
    Possible peers learned from the bucket (address -> logical name, physical address).

    Owned by the membership engine and shared with the registry, so that
    direct communication with a peer does not need another discovery round.
    """

    def __init__(self):
        self._entries: Dict[UUID, CacheEntry] = {}
        self._lock = threading.RLock()

    def add(self, address: UUID, logical_name: str, physical_addr: PhysicalAddress) -> None:
        with self._lock:
            self._entries[address] = CacheEntry(logical_name, physical_addr)

    def get(self, address: UUID) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(address)

    def remove(self, address: UUID) -> None:
        with self._lock:
            self._entries.pop(address, None)

    def addresses(self) -> List[UUID]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, address: UUID) -> bool:
        with self._lock:
            return address in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
