#!/usr/bin/env python3
"""
File: s3ping/cli.py
Command line tool to inspect and clean group membership objects, and to
announce a node in a group.
"""
import argparse
import asyncio
import sys
import uuid
from typing import List, Optional

from s3ping.backends import BACKENDS, create_registry
from s3ping.config import load_config
from s3ping.exceptions import DiscoveryError
from s3ping.heartbeat import DiscoveryHeartbeat
from s3ping.logging import setup_logging
from s3ping.models import PeerRecord, PhysicalAddress, Responses


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Processes the command line arguments."""
    parser = argparse.ArgumentParser(
        prog="s3ping-ctl",
        description="Inspects and manages group discovery objects in a shared bucket"
    )

    parser.add_argument("--config", "-c", default=None,
                        help="YAML configuration file (default: $S3PING_CONFIG)")
    parser.add_argument("--protocol", choices=sorted(BACKENDS), default=None,
                        help="Discovery backend (overrides the configuration)")
    parser.add_argument("--bucket", default=None, help="Bucket name")
    parser.add_argument("--prefix", default=None, help="Bucket prefix")
    parser.add_argument("--endpoint", default=None, help="S3 endpoint URL")
    parser.add_argument("--region", default=None, help="S3 region")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List the members advertised in a group")
    list_cmd.add_argument("group", help="Group name")

    remove_cmd = sub.add_parser("remove", help="Remove the object of one member")
    remove_cmd.add_argument("group", help="Group name")
    remove_cmd.add_argument("address", type=uuid.UUID, help="Member address (UUID)")

    remove_all_cmd = sub.add_parser("remove-all", help="Remove every object of a group")
    remove_all_cmd.add_argument("group", help="Group name")
    remove_all_cmd.add_argument("--yes", action="store_true",
                                help="Confirm the removal")

    announce_cmd = sub.add_parser("announce", help="Advertise this node in a group")
    announce_cmd.add_argument("group", help="Group name")
    announce_cmd.add_argument("--name", required=True, help="Logical name")
    announce_cmd.add_argument("--physical", required=True, type=PhysicalAddress.parse,
                              help="Physical address (host:port)")
    announce_cmd.add_argument("--address", type=uuid.UUID, default=None,
                              help="Node address (random UUID if omitted)")
    announce_cmd.add_argument("--coord", action="store_true", help="Advertise as coordinator")
    announce_cmd.add_argument("--interval", type=float, default=None,
                              help="Seconds between rounds (overrides the configuration)")
    announce_cmd.add_argument("--rounds", type=int, default=0,
                              help="Stop after this many rounds (0 = until interrupted)")

    return parser.parse_args(argv)


def print_responses(group: str, responses: Responses) -> None:
    records = sorted(responses.records(), key=lambda r: r.logical_name)
    print(f"Group {group}: {len(records)} member(s)")
    for record in records:
        role = "coordinator" if record.coordinator else "member"
        print(f"  {record.logical_name:<24} {record.address}  {record.physical_addr!s:<22} {role}")


async def announce(registry, args: argparse.Namespace, interval: float) -> None:
    record = PeerRecord(
        address=args.address or uuid.uuid4(),
        logical_name=args.name,
        physical_addr=args.physical,
        coordinator=args.coord,
    )
    registry.set_local_address(record.address)
    heartbeat = DiscoveryHeartbeat(registry, args.group, record, interval=interval)
    heartbeat.register_callback(lambda responses: print_responses(args.group, responses))

    try:
        if args.rounds > 0:
            for i in range(args.rounds):
                await heartbeat.run_once()
                if i < args.rounds - 1:
                    await asyncio.sleep(interval)
        else:
            heartbeat.start()
            while True:
                await asyncio.sleep(3600)
    finally:
        await heartbeat.leave()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging("s3ping", debug=args.debug)

    try:
        config = load_config(
            args.config,
            protocol=args.protocol,
            bucket_name=args.bucket,
            bucket_prefix=args.prefix,
            endpoint=args.endpoint,
            region_name=args.region,
        )
        registry = create_registry(config)
    except DiscoveryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "list":
        responses = Responses()
        registry.read_all(None, args.group, responses)
        print_responses(args.group, responses)
    elif args.command == "remove":
        registry.remove(args.group, args.address)
        print(f"Removed {args.address} from {args.group}")
    elif args.command == "remove-all":
        if not args.yes:
            print(f"Refusing to remove every object of {args.group} without --yes", file=sys.stderr)
            return 1
        registry.remove_all(args.group)
        print(f"Removed all objects of {args.group}")
    elif args.command == "announce":
        interval = args.interval if args.interval is not None else config.interval
        try:
            asyncio.run(announce(registry, args, interval))
        except KeyboardInterrupt:
            print("Interrupted, left the group")
    return 0


if __name__ == "__main__":
    sys.exit(main())
