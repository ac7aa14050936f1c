"""
Unit tests for change capture.

Tests cover:
- Serialization strategy per mutation kind
- Priority rules (add stays add, delete is terminal)
- Suppression, master switch, filtering and dedup
- Host listener wiring, including selection tracking
"""

import pytest

from scenesync.capture import CategoryFilter, ChangeCapture, DedupWindow, MutationKind, PendingChangeSet
from scenesync.config import SyncConfig
from scenesync.host import InMemoryTree
from scenesync.serialize import Serializer
from scenesync.serialize.records import ChangeAction, ChangeType
from scenesync.serialize.types import BrickColor


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 1.0) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Create a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def tree():
    """Create an in-memory host tree with the default services."""
    return InMemoryTree()


@pytest.fixture
def pending():
    """Create an empty pending change set."""
    return PendingChangeSet()


def make_capture(pending, clock, config=None):
    config = config or SyncConfig()
    filter = CategoryFilter(config.categories)
    return ChangeCapture(
        config,
        Serializer(config.serializer, filter),
        pending,
        DedupWindow(config.throttle.dedup_window),
        filter,
        clock=clock,
    )


@pytest.fixture
def capture(pending, clock):
    """Create a change capture over the default configuration."""
    return make_capture(pending, clock)


@pytest.fixture
def script(tree):
    """Create a script that is not yet tracked."""
    return tree.create("Script", tree.get_service("ServerScriptService"), "Main")


class TestStrategies:
    """Tests for the record produced per mutation kind."""

    def test_added_is_light_add(self, capture, pending, script):
        assert capture.on_mutation(script, MutationKind.DESCENDANT_ADDED) is ChangeAction.ADD

        entry = pending.get("ServerScriptService.Main")
        assert entry.action is ChangeAction.ADD
        assert entry.timestamp == 100.0
        assert entry.change.record.change_type is ChangeType.ADD
        assert entry.change.record.children is None
        assert "Source" not in entry.change.record.properties

    def test_removing_is_delete(self, capture, pending, script):
        capture.on_mutation(script, MutationKind.DESCENDANT_REMOVING)

        entry = pending.get("ServerScriptService.Main")
        assert entry.action is ChangeAction.DELETE
        assert entry.change.instances() == [{"Path": "ServerScriptService.Main"}]

    def test_property_changed_is_delta(self, capture, pending, script):
        script.set_property("Source", "print(1)")

        capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")

        record = pending.get("ServerScriptService.Main").change.record
        assert record.change_type is ChangeType.PROPERTY
        assert record.changed_property == "Source"
        assert record.properties == {"Source": "print(1)"}

    def test_attribute_changed_is_delta(self, capture, pending, script):
        script.set_attribute("Owner", "alice")

        capture.on_mutation(script, MutationKind.ATTRIBUTE_CHANGED, "Owner")

        record = pending.get("ServerScriptService.Main").change.record
        assert record.change_type is ChangeType.ATTRIBUTE
        assert record.changed_attribute == "Owner"
        assert record.attributes == {"Owner": "alice"}

    def test_other_update_is_light(self, capture, pending, script):
        capture.on_mutation(script, MutationKind.UNDO, "Move")

        entry = pending.get("ServerScriptService.Main")
        assert entry.action is ChangeAction.UPDATE
        assert entry.change.record.change_type is ChangeType.OTHER


class TestPriority:
    """Tests for how successive mutations combine."""

    def test_update_after_add_carries_changed_property(self, capture, pending, script, clock):
        capture.on_mutation(script, MutationKind.DESCENDANT_ADDED)
        clock.advance()
        script.set_property("Source", "print('hello')")

        stored = capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")

        entry = pending.get("ServerScriptService.Main")
        record = entry.change.record
        assert stored is ChangeAction.ADD
        assert entry.timestamp == 101.0
        assert record.change_type is ChangeType.ADD
        assert record.changed_property is None
        assert record.properties == {"Archivable": True, "Source": "print('hello')"}

    def test_updates_after_add_accumulate(self, capture, pending, script, clock):
        capture.on_mutation(script, MutationKind.DESCENDANT_ADDED)
        script.set_property("Source", "print(1)")
        capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")
        clock.advance()
        script.set_attribute("Team", BrickColor(194))
        capture.on_mutation(script, MutationKind.ATTRIBUTE_CHANGED, "Team")
        clock.advance()
        script.set_property("Disabled", True)
        capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Disabled")

        data = pending.get("ServerScriptService.Main").change.instances()[0]
        assert data["Properties"] == {"Archivable": True, "Source": "print(1)", "Disabled": True}
        assert data["Attributes"] == {"Team": 194}
        assert data["AttributeTypes"] == {"Team": "BrickColor"}
        assert data["ChangeType"] == "Add"
        assert "ChangedProperty" not in data

    def test_removed_attribute_after_add_is_dropped(self, capture, pending, script, clock):
        capture.on_mutation(script, MutationKind.DESCENDANT_ADDED)
        script.set_attribute("Owner", "alice")
        capture.on_mutation(script, MutationKind.ATTRIBUTE_CHANGED, "Owner")
        clock.advance()
        script.set_attribute("Owner", None)

        capture.on_mutation(script, MutationKind.ATTRIBUTE_CHANGED, "Owner")

        record = pending.get("ServerScriptService.Main").change.record
        assert record.attributes == {}
        assert record.change_type is ChangeType.ADD

    def test_update_after_delete_is_ignored(self, capture, pending, script, clock):
        capture.on_mutation(script, MutationKind.DESCENDANT_REMOVING)
        clock.advance()

        stored = capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")

        assert stored is None
        assert pending.action_for("ServerScriptService.Main") is ChangeAction.DELETE
        assert pending.get("ServerScriptService.Main").timestamp == 100.0

    def test_readd_after_delete(self, capture, pending, script, clock):
        capture.on_mutation(script, MutationKind.DESCENDANT_REMOVING)
        clock.advance()

        capture.on_mutation(script, MutationKind.DESCENDANT_ADDED)

        assert pending.action_for("ServerScriptService.Main") is ChangeAction.ADD


class TestGating:
    """Tests for the conditions under which nothing is captured."""

    def test_suppressed(self, capture, pending, script):
        with capture.suppressed():
            with capture.suppressed():
                capture.on_mutation(script, MutationKind.DESCENDANT_ADDED)
            assert capture.is_suppressed

        assert not capture.is_suppressed
        assert len(pending) == 0

    def test_sync_disabled(self, pending, clock, script):
        capture = make_capture(pending, clock, SyncConfig(sync_enabled=False))

        assert capture.on_mutation(script, MutationKind.DESCENDANT_ADDED) is None
        assert len(pending) == 0

    def test_filtered_class(self, capture, pending, tree):
        part = tree.create("Part", tree.get_service("Workspace"), "Floor")

        assert capture.on_mutation(part, MutationKind.DESCENDANT_ADDED) is None
        assert len(pending) == 0

    def test_abstract_tag_allows_geometry(self, capture, pending, tree):
        part = tree.create("Part", tree.get_service("Workspace"), "Floor")
        part.add_tag("Abstract")

        assert capture.on_mutation(part, MutationKind.DESCENDANT_ADDED) is ChangeAction.ADD

    def test_waypoint_without_entity(self, capture, pending):
        assert capture.on_mutation(None, MutationKind.UNDO, "Move") is None
        assert capture.stats["ignored"] == 1

    def test_destroyed_entity(self, capture, pending, tree, script):
        tree.destroy(script)

        assert capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source") is None

    def test_dedup_window(self, capture, pending, script, clock):
        script.set_property("Source", "a")
        capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")
        script.set_property("Source", "b")
        clock.advance(0.05)

        assert capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source") is None
        assert pending.get("ServerScriptService.Main").change.record.properties == {"Source": "a"}

        clock.advance(0.1)
        assert capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source") is ChangeAction.UPDATE

    def test_dedup_keys_on_detail(self, capture, pending, script):
        capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Source")

        assert capture.on_mutation(script, MutationKind.PROPERTY_CHANGED, "Disabled") is ChangeAction.UPDATE

    def test_serializer_failure_is_contained(self, capture, pending, script, monkeypatch):
        def broken(entity):
            raise RuntimeError("boom")

        monkeypatch.setattr(capture.serializer, "serialize_light", broken)

        assert capture.on_mutation(script, MutationKind.DESCENDANT_ADDED) is None
        assert len(pending) == 0


class TestAttach:
    """Tests for host listener wiring."""

    def test_tree_events(self, capture, pending, tree, clock):
        capture.attach(tree)

        folder = tree.create("Folder", tree.get_service("ReplicatedStorage"), "Shared")
        clock.advance()
        tree.destroy(folder)

        assert pending.action_for("ReplicatedStorage.Shared") is ChangeAction.DELETE
        assert capture.stats["listening"]

    def test_undo_is_ignored(self, capture, pending, tree):
        capture.attach(tree)

        tree.undo("Move")

        assert len(pending) == 0

    def test_selection_tracks_properties(self, capture, pending, tree, script):
        capture.attach(tree)

        tree.select(script)
        script.set_property("Disabled", True)

        entry = pending.get("ServerScriptService.Main")
        assert entry.change.record.changed_property == "Disabled"
        assert capture.stats["tracked_selection"] == 1

    def test_selection_skips_filtered(self, capture, pending, tree):
        capture.attach(tree)
        part = tree.create("Part", tree.get_service("Workspace"), "Floor")

        tree.select(part)
        part.set_property("Anchored", True)

        assert len(pending) == 0
        assert capture.stats["tracked_selection"] == 0

    def test_reselect_drops_old_listeners(self, capture, pending, tree, script, clock):
        other = tree.create("ModuleScript", tree.get_service("ReplicatedStorage"), "Util")
        capture.attach(tree)

        tree.select(script)
        tree.select(other)
        clock.advance()
        script.set_property("Disabled", True)

        assert "ServerScriptService.Main" not in pending

    def test_detach(self, capture, pending, tree):
        capture.attach(tree)
        capture.detach()

        tree.create("Folder", tree.get_service("ReplicatedStorage"))

        assert len(pending) == 0
        assert not capture.stats["listening"]
