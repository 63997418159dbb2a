"""
File: s3ping/codec.py
Text encoding of peer records, one record per line:

    <logical_name> <address-uuid> <host:port> <T|F>

The last column is the coordinator flag. Blank lines are ignored.
"""
from typing import Iterable, List
from uuid import UUID

from pydantic import ValidationError

from s3ping.exceptions import RecordFormatError
from s3ping.models import PeerRecord, PhysicalAddress

CONTENT_TYPE = "text/plain"
FILE_SUFFIX = ".list"
ENCODING = "utf-8"


def filename_for(address: UUID) -> str:
    """
    Storage-safe file name of a node address.

    Args:
        address: Node address

    Returns:
        str: File name, unique per address
    """
    return f"{address}{FILE_SUFFIX}"


def encode_records(records: Iterable[PeerRecord]) -> bytes:
    """
    Encodes records into one payload.

    Args:
        records: Records to encode

    Returns:
        bytes: Encoded payload (empty for no records)
    """
    lines = []
    for record in records:
        flag = "T" if record.coordinator else "F"
        lines.append(f"{record.logical_name} {record.address} {record.physical_addr} {flag}\n")
    return "".join(lines).encode(ENCODING)


def decode_records(data: bytes) -> List[PeerRecord]:
    """
    Decodes a payload produced by encode_records.

    Args:
        data: Encoded payload

    Returns:
        List[PeerRecord]: Records in payload order; empty if the payload holds none

    Raises:
        RecordFormatError: If the payload is not valid text or a line is malformed
    """
    try:
        text = data.decode(ENCODING)
    except UnicodeDecodeError as e:
        raise RecordFormatError(f"Payload is not {ENCODING} text: {e}") from e

    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        records.append(_decode_line(line, lineno))
    return records


def _decode_line(line: str, lineno: int) -> PeerRecord:
    parts = line.split()
    if len(parts) != 4:
        raise RecordFormatError(f"Line {lineno}: expected 4 fields, got {len(parts)}")

    logical_name, address, physical, flag = parts
    if flag not in ("T", "F"):
        raise RecordFormatError(f"Line {lineno}: invalid coordinator flag {flag!r}")

    try:
        return PeerRecord(
            address=UUID(address),
            logical_name=logical_name,
            physical_addr=PhysicalAddress.parse(physical),
            coordinator=flag == "T",
        )
    except (ValueError, ValidationError) as e:
        raise RecordFormatError(f"Line {lineno}: {e}") from e
