"""
Unit tests for the command line interface
"""

import asyncio
import json

import pytest

from shardgrid import cli
from shardgrid.engine import ShardGridEngine
from shardgrid.topology import parse


def test_parser_subcommands():
    parser = cli.build_parser()

    args = parser.parse_args(["relocate", "--index", "logs", "--shard", "0",
                              "--from", "node-1", "--to", "node-3", "--wait"])
    assert args.command == "relocate"
    assert args.from_node == "node-1"
    assert args.wait is True
    assert args.replica is False

    args = parser.parse_args(["--json-logs", "destinations", "--index", "logs", "--shard", "1",
                              "--replica", "--node", "es-data-2"])
    assert args.json_logs is True
    assert args.shard == 1
    assert args.replica is True

    with pytest.raises(SystemExit):
        parser.parse_args([])


def test_find_shard_by_node_reference(nodes, indices, shards):
    snapshot = parse(nodes, indices, shards)

    primary = cli.find_shard(snapshot, "logs", 0, True, "10.0.0.1")
    replica = cli.find_shard(snapshot, "logs", 0, False, "es-data-2")

    assert primary.node == "node-1"
    assert replica.node == "node-2"
    assert cli.find_shard(snapshot, "logs", 0, False, "node-1") is None
    assert cli.find_shard(snapshot, "logs", 0, True, "ghost") is None


@pytest.mark.asyncio
async def test_destinations_command_prints_targets(source, submitter, capsys):
    engine = ShardGridEngine(source=source, submitter=submitter)
    args = cli.build_parser().parse_args(["destinations", "--index", "logs", "--shard", "0", "--node", "node-1"])

    try:
        code = await cli.COMMANDS[args.command](engine, args)
    finally:
        await engine.close()

    assert code == 0
    assert json.loads(capsys.readouterr().out) == [{"id": "node-3", "name": "es-data-3"}]


@pytest.mark.asyncio
async def test_relocate_command_without_wait(source, submitter, capsys):
    engine = ShardGridEngine(source=source, submitter=submitter, cluster_id="prod")
    args = cli.build_parser().parse_args(["relocate", "--index", "logs", "--shard", "0",
                                          "--from", "es-data-1", "--to", "es-data-3"])

    try:
        code = await cli.COMMANDS[args.command](engine, args)
    finally:
        await engine.close()

    assert code == 0
    submitter.relocate_shard.assert_awaited_once_with("prod", "logs", 0, "node-1", "node-3")
    assert "relocation_submitted" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_relocate_command_waits_for_completion(source, submitter, shards, make_shard, capsys):
    engine = ShardGridEngine(source=source, submitter=submitter, cluster_id="prod", poll_interval=0.01)
    args = cli.build_parser().parse_args(["relocate", "--index", "logs", "--shard", "0",
                                          "--from", "node-1", "--to", "node-3", "--wait"])

    async def accept(*args):
        source.shards = [make_shard("logs", 0, True, "STARTED", "node-3")] + shards[1:]
        return {"acknowledged": True}

    submitter.relocate_shard.side_effect = accept

    try:
        code = await asyncio.wait_for(cli.COMMANDS[args.command](engine, args), timeout=2.0)
    finally:
        await engine.close()

    assert code == 0
    assert "relocation_completed" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_unknown_shard_returns_error(source, submitter, capsys):
    engine = ShardGridEngine(source=source, submitter=submitter)
    args = cli.build_parser().parse_args(["destinations", "--index", "nope", "--shard", "0", "--node", "node-1"])

    try:
        code = await cli.COMMANDS[args.command](engine, args)
    finally:
        await engine.close()

    assert code == 1
    assert "not found" in capsys.readouterr().err
