"""
Change capture.

Receives mutation notifications from the host, filters and deduplicates
them, picks a serialization strategy per mutation kind and writes the result
into the pending change set.

    DescendantAdded     -> add,    light record,          ChangeType Add
    DescendantRemoving  -> delete, no record,             ChangeType Remove
    PropertyChanged     -> update, property delta,        ChangeType Property
    AttributeChanged    -> update, attribute delta,       ChangeType Attribute
    Undo / Redo         -> update, light record,          ChangeType Other

Invariants:
    - on_mutation() never raises; it runs inside host callbacks
    - Events with no valid entity (undo/redo waypoints) are ignored
    - While suppressed() is active nothing is captured, so changes applied
      from the remote store are not echoed back
    - A path pending as add stays a creation on later updates: the light
      record is refreshed and merged with the pending record and the
      changed field, so no edit made before the flush is lost

How to change safely:
    - Priority rules live in PendingChangeSet.record(), not here
    - Keep listener wiring in attach()/detach() so tests can drive
      on_mutation() directly
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..config import SyncConfig
from ..host.base import Connection, Entity, HostEvent, HostTree
from ..serialize.records import ChangeAction, ChangeType, SerializedRecord
from ..serialize.serializer import Serializer
from .dedup import DedupWindow
from .filter import CategoryFilter
from .pending import PendingChangeSet

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    """Kind of host notification."""

    DESCENDANT_ADDED = "DescendantAdded"
    DESCENDANT_REMOVING = "DescendantRemoving"
    PROPERTY_CHANGED = "PropertyChanged"
    ATTRIBUTE_CHANGED = "AttributeChanged"
    UNDO = "Undo"
    REDO = "Redo"


_UPDATE_KINDS = (
    MutationKind.PROPERTY_CHANGED,
    MutationKind.ATTRIBUTE_CHANGED,
    MutationKind.UNDO,
    MutationKind.REDO,
)


class ChangeCapture:
    """Turns host mutations into pending changes.

    Attributes:
        config: Current configuration snapshot
        filter: Current category filter
        serializer: Entity serializer
        pending: Pending change set written by this capture
        dedup: Dedup window

    Example:
        >>> capture = ChangeCapture(config, serializer, pending, dedup, filter)
        >>> capture.attach(tree)
        >>> tree.create("Script", tree.get_service("ServerScriptService"))
        >>> len(pending)
        1
    """

    def __init__(
        self,
        config: SyncConfig,
        serializer: Serializer,
        pending: PendingChangeSet,
        dedup: DedupWindow,
        filter: CategoryFilter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.serializer = serializer
        self.pending = pending
        self.dedup = dedup
        self.filter = filter
        self._clock = clock
        self._suppress_depth = 0
        self._host: Optional[HostTree] = None
        self._connections: List[Connection] = []
        self._selection_connections: List[Connection] = []
        self._captured = 0
        self._ignored = 0

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Ignore all mutations inside the block."""
        self._suppress_depth += 1
        try:
            yield
        finally:
            self._suppress_depth -= 1

    @property
    def is_suppressed(self) -> bool:
        return self._suppress_depth > 0

    def on_mutation(
        self,
        entity: Optional[Entity],
        kind: MutationKind,
        detail: Optional[str] = None,
    ) -> Optional[ChangeAction]:
        """Handle one host notification.

        Args:
            entity: Mutated entity, None for waypoint-only events
            kind: Notification kind
            detail: Property or attribute name, or undo waypoint name

        Returns:
            The action stored for the entity's path, or None if the
            notification produced no state change
        """
        try:
            stored = self._capture(entity, kind, detail)
        except Exception as e:
            logger.error(f"Change capture failed for {kind.value}: {e}", exc_info=True)
            stored = None
        if stored is None:
            self._ignored += 1
        else:
            self._captured += 1
        return stored

    def _capture(
        self,
        entity: Optional[Entity],
        kind: MutationKind,
        detail: Optional[str],
    ) -> Optional[ChangeAction]:
        if not self.config.sync_enabled:
            return None
        if entity is None or not entity.is_valid:
            return None
        if self._suppress_depth:
            return None

        now = self._clock()
        path = entity.full_name()
        if self.dedup.should_suppress(path, kind.value, detail, now):
            return None
        if not self.filter.should_sync_entity(entity):
            return None

        logger.debug(f"Change Detected: Action={kind.value}, Instance={path}, Detail={detail or 'N/A'}")

        if kind is MutationKind.DESCENDANT_ADDED:
            record = self.serializer.serialize_light(entity).with_change_type(ChangeType.ADD)
            return self.pending.record(path, ChangeAction.ADD, record, now)

        if kind is MutationKind.DESCENDANT_REMOVING:
            return self.pending.record(path, ChangeAction.DELETE, None, now)

        current = self.pending.action_for(path)
        if current is ChangeAction.DELETE:
            logger.debug(f"Ignoring update for deleted instance: {path}")
            return None

        record = self._serialize_update(entity, kind, detail, current)
        return self.pending.record(path, ChangeAction.UPDATE, record, now)

    def _serialize_update(
        self,
        entity: Entity,
        kind: MutationKind,
        detail: Optional[str],
        current: Optional[ChangeAction],
    ) -> SerializedRecord:
        delta = self._serialize_delta(entity, kind, detail)
        if current is ChangeAction.ADD:
            record = self.serializer.serialize_light(entity)
            entry = self.pending.get(entity.full_name())
            if entry is not None and entry.change.record is not None:
                record = entry.change.record.overlay(record)
            if delta is not None:
                record = record.overlay(delta)
            return record.with_change_type(ChangeType.ADD)
        if delta is not None:
            return delta
        return self.serializer.serialize_light(entity).with_change_type(ChangeType.OTHER)

    def _serialize_delta(
        self,
        entity: Entity,
        kind: MutationKind,
        detail: Optional[str],
    ) -> Optional[SerializedRecord]:
        if kind is MutationKind.PROPERTY_CHANGED and detail:
            record = self.serializer.serialize_property_delta(entity, detail)
            return record.with_change_type(ChangeType.PROPERTY)
        if kind is MutationKind.ATTRIBUTE_CHANGED and detail:
            record = self.serializer.serialize_attribute_delta(entity, detail)
            return record.with_change_type(ChangeType.ATTRIBUTE)
        return None

    def attach(self, host: HostTree) -> None:
        """Subscribe to the host's notifications."""
        self.detach()
        self._host = host
        self._connections = [
            host.subscribe(
                HostEvent.DESCENDANT_ADDED,
                lambda entity: self.on_mutation(entity, MutationKind.DESCENDANT_ADDED),
            ),
            host.subscribe(
                HostEvent.DESCENDANT_REMOVING,
                lambda entity: self.on_mutation(entity, MutationKind.DESCENDANT_REMOVING),
            ),
            host.subscribe(
                HostEvent.UNDO,
                lambda waypoint: self.on_mutation(None, MutationKind.UNDO, waypoint),
            ),
            host.subscribe(
                HostEvent.REDO,
                lambda waypoint: self.on_mutation(None, MutationKind.REDO, waypoint),
            ),
            host.subscribe(HostEvent.SELECTION_CHANGED, self._on_selection_changed),
        ]
        logger.debug("Change detection event listeners connected")

    def detach(self) -> None:
        """Disconnect every listener."""
        for connection in self._connections + self._selection_connections:
            connection.disconnect()
        self._connections = []
        self._selection_connections = []
        self._host = None

    def _on_selection_changed(self) -> None:
        for connection in self._selection_connections:
            connection.disconnect()
        self._selection_connections = []
        if self._host is None:
            return

        selection = self._host.selection()
        for selected in selection:
            if not self.filter.should_sync_entity(selected):
                logger.debug(f"Skipping property tracking for filtered instance: {selected.class_name}")
                continue
            self._selection_connections.append(
                selected.on_property_changed(
                    lambda name, e=selected: self.on_mutation(e, MutationKind.PROPERTY_CHANGED, name)
                )
            )
            self._selection_connections.append(
                selected.on_attribute_changed(
                    lambda name, e=selected: self.on_mutation(e, MutationKind.ATTRIBUTE_CHANGED, name)
                )
            )
        logger.debug(f"Updated change listeners for {len(selection)} selected objects")

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "captured": self._captured,
            "ignored": self._ignored,
            "listening": bool(self._connections),
            "tracked_selection": len(self._selection_connections) // 2,
            "dedup": self.dedup.stats,
        }
