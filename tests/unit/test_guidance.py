"""
Unit tests for relocation failure guidance
"""

import pytest

from shardgrid.relocation.guidance import DEFAULT_GUIDANCE, describe_relocation_failure, guidance_for


@pytest.mark.parametrize("reason,expected", [
    ("Request timed out after 30s", "cluster may be slow"),
    ("connection refused", "Cannot connect"),
    ("HTTP 401 Unauthorized", "Authentication failed"),
    ("403 Forbidden", "Permission denied"),
    ("no such shard [logs][3]", "may have been deleted"),
    ("node not found [node-9]", "left the cluster"),
    ("shard is already relocating", "wait for the current relocation"),
    ("cannot move to the same node", "different destination"),
    ("allocation decider said NO", "allocation settings"),
])
def test_guidance_matches_reason(reason, expected):
    assert expected in guidance_for(reason)


def test_first_matching_rule_wins():
    assert "slow or unreachable" in guidance_for("connection timeout")


def test_message_keeps_reason_verbatim():
    message = describe_relocation_failure("[logs][0] failed to find it on node.")

    assert message == f"Failed to relocate shard: [logs][0] failed to find it on node. {DEFAULT_GUIDANCE}"


def test_missing_reason():
    assert describe_relocation_failure(None).startswith("Failed to relocate shard: Unknown error occurred.")
