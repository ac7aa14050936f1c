"""
Unit tests for pulled envelope validation.
"""

import pytest

from scenesync.errors import DecodeError
from scenesync.remote import BatchEnvelope, FullSyncEnvelope, parse_changes
from scenesync.remote.envelope import key_time


def batch_envelope(*changes, session="s1"):
    return {"Action": "BatchInstanceChanged", "Changes": list(changes), "SessionId": session}


class TestKeyTime:
    """Tests for key_time."""

    def test_milliseconds(self):
        assert key_time("1700000000123") == 1_700_000_000.123

    def test_seconds(self):
        assert key_time("1700000000") == 1_700_000_000.0

    def test_not_numeric(self):
        assert key_time("-Nabc") is None


class TestParseChanges:
    """Tests for parse_changes."""

    def test_null_payload(self):
        assert parse_changes(None) == ([], 0)

    def test_orders_by_key(self):
        payload = {
            "1700000000200": batch_envelope(),
            "1700000000100": batch_envelope(),
            "-Nzz": batch_envelope(),
        }

        batches, skipped = parse_changes(payload)

        assert [b.key for b in batches] == ["1700000000100", "1700000000200", "-Nzz"]
        assert skipped == 0

    def test_invalid_envelope_is_skipped(self):
        payload = {
            "1": batch_envelope({"Action": "teleport", "InstancePath": "Workspace.A"}),
            "2": {"Action": "SomethingElse"},
            "3": "not an object",
            "4": batch_envelope({"Action": "add", "InstancePath": "Workspace.A", "Timestamp": 4.0}),
        }

        batches, skipped = parse_changes(payload)

        assert [b.key for b in batches] == ["4"]
        assert skipped == 3

    def test_list_payload(self):
        batches, _ = parse_changes([None, batch_envelope()])

        assert [b.key for b in batches] == ["1"]

    def test_scalar_payload_is_decode_error(self):
        with pytest.raises(DecodeError):
            parse_changes("oops")

    def test_batch_fields(self):
        entry = {
            "Action": "update",
            "InstancePath": "Workspace.A",
            "Timestamp": 12.5,
            "Instances": [{"Path": "Workspace.A", "ClassName": "Part"}],
            "Extra": True,
        }

        [batch], _ = parse_changes({"1700000000000": batch_envelope(entry, session="abc")})

        assert isinstance(batch.envelope, BatchEnvelope)
        assert batch.session_id == "abc"
        assert batch.key_time == 1_700_000_000.0
        [change] = batch.changes()
        assert change.action == "update"
        assert change.instance_path == "Workspace.A"
        assert change.timestamp == 12.5
        assert change.instances[0]["ClassName"] == "Part"

    def test_full_sync_roots_become_updates(self):
        payload = {
            "1": {
                "Action": "FullHierarchySync",
                "Timestamp": 3.0,
                "Roots": [
                    {"Path": "Workspace.A", "ClassName": "Model"},
                    {"Path": "Workspace.B", "ClassName": "Model", "Timestamp": 4.0},
                ],
            }
        }

        [batch], _ = parse_changes(payload)
        changes = batch.changes()

        assert isinstance(batch.envelope, FullSyncEnvelope)
        assert [c.action for c in changes] == ["update", "update"]
        assert [c.instance_path for c in changes] == ["Workspace.A", "Workspace.B"]
        assert [c.timestamp for c in changes] == [3.0, 4.0]
        assert changes[0].instances == [{"Path": "Workspace.A", "ClassName": "Model"}]
