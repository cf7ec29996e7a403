#!/usr/bin/env python3
"""
ShardGrid command line interface.

Inspect the shard grid of a cluster and relocate shards:

    shardgrid snapshot
    shardgrid destinations --index logs --shard 0 --node node-1
    shardgrid relocate --index logs --shard 0 --from node-1 --to node-3 --wait
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .client import ClusterClient
from .config import Settings, get_settings
from .engine import ShardGridEngine
from .events import EngineEvent, EventType
from .exceptions import ShardGridError
from .logging_config import configure_logging
from .models import GridSnapshot, ShardInfo

TERMINAL_EVENTS = (
    EventType.RELOCATION_COMPLETED,
    EventType.RELOCATION_FAILED,
    EventType.RELOCATION_UNTRACKED,
    EventType.RELOCATION_TIMED_OUT,
    EventType.RELOCATION_SUBMIT_FAILED,
)


def find_shard(snapshot: GridSnapshot, index: str, shard: int, primary: bool, node: str) -> Optional[ShardInfo]:
    """Find the copy of index[shard] hosted on a node."""
    host = snapshot.find_node(node)
    if host is None:
        return None
    for copy in host.shards_for(index):
        if copy.shard == shard and copy.primary == primary and host.node.matches(copy.node):
            return copy
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shardgrid", description="Cluster shard grid and relocation tool")
    parser.add_argument("--url", help="Cluster URL (default from SHARDGRID_CLUSTER_URL)")
    parser.add_argument("--cluster-id", help="Cluster identifier")
    parser.add_argument("--log-level", help="Log level")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("snapshot", help="Print the shard grid as JSON")

    shard_args = argparse.ArgumentParser(add_help=False)
    shard_args.add_argument("--index", required=True)
    shard_args.add_argument("--shard", type=int, required=True)
    shard_args.add_argument("--replica", action="store_true", help="Select the replica copy")

    dest = commands.add_parser("destinations", parents=[shard_args], help="List valid destinations for a shard")
    dest.add_argument("--node", required=True, help="Node currently hosting the shard")

    relocate = commands.add_parser("relocate", parents=[shard_args], help="Relocate a shard")
    relocate.add_argument("--from", dest="from_node", required=True, help="Source node")
    relocate.add_argument("--to", dest="to_node", required=True, help="Destination node")
    relocate.add_argument("--wait", action="store_true", help="Wait until the relocation finishes")

    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides = {}
    if args.url:
        overrides["cluster_url"] = args.url
    if args.cluster_id:
        overrides["cluster_id"] = args.cluster_id
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["log_format"] = "json"
    return settings.model_copy(update=overrides) if overrides else settings


async def _snapshot(engine: ShardGridEngine, args: argparse.Namespace) -> int:
    snapshot = await engine.refresh(force=True)
    print(json.dumps(snapshot.to_summary(), indent=2))
    return 0


async def _destinations(engine: ShardGridEngine, args: argparse.Namespace) -> int:
    snapshot = await engine.refresh(force=True)
    shard = find_shard(snapshot, args.index, args.shard, not args.replica, args.node)
    if shard is None:
        print(f"Shard {args.index}[{args.shard}] not found on {args.node}", file=sys.stderr)
        return 1

    destinations = engine.select_for_relocation(shard)
    engine.cancel_relocation(reason="listing")
    names = {n.id: n.name for n in snapshot.nodes}
    print(json.dumps([{"id": node_id, "name": names.get(node_id)} for node_id in sorted(destinations)], indent=2))
    return 0


async def _relocate(engine: ShardGridEngine, args: argparse.Namespace) -> int:
    snapshot = await engine.refresh(force=True)
    shard = find_shard(snapshot, args.index, args.shard, not args.replica, args.from_node)
    if shard is None:
        print(f"Shard {args.index}[{args.shard}] not found on {args.from_node}", file=sys.stderr)
        return 1

    destination = snapshot.find_node(args.to_node)
    if destination is None:
        print(f"Unknown destination node {args.to_node}", file=sys.stderr)
        return 1

    finished = asyncio.Event()
    outcome: List[EngineEvent] = []

    def on_event(event: EngineEvent):
        if event.message:
            print(f"[{event.event_type.value}] {event.message}")
        if event.event_type in TERMINAL_EVENTS:
            outcome.append(event)
            finished.set()

    engine.subscribe(on_event)
    engine.select_for_relocation(shard)
    engine.choose_destination(destination.id)
    result = await engine.confirm_relocation()
    if not result.success:
        return 1

    if args.wait:
        await finished.wait()
        return 0 if outcome and outcome[0].event_type == EventType.RELOCATION_COMPLETED else 1
    return 0


COMMANDS = {
    "snapshot": _snapshot,
    "destinations": _destinations,
    "relocate": _relocate,
}


async def run(args: argparse.Namespace, settings: Settings) -> int:
    client = ClusterClient.from_settings(settings)
    engine = ShardGridEngine.from_settings(settings, source=client, submitter=client)
    try:
        return await COMMANDS[args.command](engine, args)
    except ShardGridError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        await engine.close()
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = _settings_from_args(args)
    configure_logging(settings)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
