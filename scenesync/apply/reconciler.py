"""
Remote change reconciler.

The Reconciler takes batches pulled from the remote store and applies their
change entries to the host tree. It keeps a watermark, the timestamp of the
newest remote entry already processed, and never processes an entry at or
below it.

Invariants:
    - Entries with timestamp <= watermark are skipped, so replaying a batch
      is a no-op
    - Entries are applied in ascending timestamp order; ties keep arrival
      order (store key order, then position inside the batch)
    - A failing entry is logged and skipped; it still advances the watermark
    - The watermark never decreases and lives only in memory
    - Nothing is applied while remote application is disabled

How to change safely:
    - Keep per-entry work inside _apply_entry() so failures stay isolated
    - Host writes must run inside the suppression context, otherwise every
      applied change is captured and pushed back to the store
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, ContextManager, Dict, List, Optional, Sequence, Tuple

from ..config import SyncConfig
from ..errors import ApplyError, SerializationError
from ..host.base import Entity, HostTree
from ..remote.envelope import ChangeEntry, RemoteBatch
from ..serialize.codec import decode, is_primitive, type_for_name

logger = logging.getLogger(__name__)

_READ_ONLY = frozenset({"ClassName", "Parent"})


@dataclass
class ReconcileReport:
    """Result of one apply() call.

    Attributes:
        received: Entries found in the batches
        stale: Entries at or below the watermark
        applied: Entries written to the tree
        own_session: Entries pushed by this worker, not re-applied
        failed: Entries skipped because they could not be applied
        skipped_values: Properties and attributes that could not be decoded
        watermark: Watermark after the call
        dry_run: Whether the tree was left untouched
        disabled: Whether remote application was off
    """

    received: int = 0
    stale: int = 0
    applied: int = 0
    own_session: int = 0
    failed: int = 0
    skipped_values: int = 0
    watermark: float = 0.0
    dry_run: bool = False
    disabled: bool = False


class Reconciler:
    """Applies remote change entries to the host tree.

    Attributes:
        config: Current configuration snapshot
        tree: Host tree to write to
        dry_run: Only track the watermark, never touch the tree

    Example:
        >>> reconciler = Reconciler(config, tree, suppress=capture.suppressed)
        >>> report = reconciler.apply(result.batches)
        >>> report.applied
        3
    """

    def __init__(
        self,
        config: SyncConfig,
        tree: HostTree,
        suppress: Optional[Callable[[], ContextManager[Any]]] = None,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.tree = tree
        self.dry_run = dry_run
        self._suppress = suppress or contextlib.nullcontext
        self._watermark = 0.0
        self._applied_count = 0
        self._failed_count = 0

    @property
    def watermark(self) -> float:
        return self._watermark

    def apply(self, batches: Sequence[RemoteBatch]) -> ReconcileReport:
        """Apply every entry newer than the watermark.

        Args:
            batches: Remote batches ordered by store key

        Returns:
            ReconcileReport describing what happened
        """
        report = ReconcileReport(watermark=self._watermark, dry_run=self.dry_run)
        if not self.config.apply_remote_changes:
            logger.debug("Skipping remote changes (apply_remote_changes is off)")
            report.disabled = True
            return report

        fresh: List[Tuple[float, RemoteBatch, ChangeEntry]] = []
        for batch in batches:
            fallback = batch.key_time or 0.0
            for entry in batch.changes():
                report.received += 1
                timestamp = entry.timestamp if entry.timestamp is not None else fallback
                if timestamp <= self._watermark:
                    report.stale += 1
                    continue
                fresh.append((timestamp, batch, entry))

        if not fresh:
            return report

        # sort() is stable, so equal timestamps keep arrival order
        fresh.sort(key=lambda item: item[0])
        logger.debug(
            f"Found {len(fresh)} new changes (newest timestamp: {fresh[-1][0]})",
            extra={"watermark": self._watermark},
        )

        newest = self._watermark
        with self._suppress():
            for timestamp, batch, entry in fresh:
                newest = max(newest, timestamp)
                if self.dry_run:
                    continue
                if batch.session_id and batch.session_id == self.config.session_id:
                    report.own_session += 1
                    continue
                try:
                    report.skipped_values += self._apply_entry(entry)
                    report.applied += 1
                except (ApplyError, SerializationError) as e:
                    report.failed += 1
                    logger.warning(
                        f"Skipping remote change: {e}",
                        extra={"path": entry.instance_path, "action": entry.action, "key": batch.key},
                    )
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Error applying remote change: {e}", exc_info=True)

        self._watermark = newest
        self._applied_count += report.applied
        self._failed_count += report.failed
        report.watermark = newest

        if report.applied or report.failed:
            logger.info(
                f"Applied {report.applied} remote changes",
                extra={
                    "failed": report.failed,
                    "own_session": report.own_session,
                    "watermark": newest,
                },
            )
        return report

    def apply_snapshot(self, snapshot: Dict[str, Any]) -> int:
        """Apply a full snapshot envelope (`{Services: {...}}`) to the tree.

        Used to seed a tree; does not touch the watermark.

        Returns:
            Number of service records applied
        """
        services = snapshot.get("Services") or {}
        if not isinstance(services, dict):
            raise ApplyError("Snapshot Services must be an object")

        applied = 0
        with self._suppress():
            for name, record in services.items():
                try:
                    self._apply_record(record)
                    applied += 1
                except (ApplyError, SerializationError) as e:
                    logger.warning(f"Skipping snapshot service {name}: {e}")
        return applied

    def _apply_entry(self, entry: ChangeEntry) -> int:
        """Apply one change entry, returning the number of skipped values."""
        if entry.action == "delete":
            paths = [entry.instance_path] if entry.instance_path else [
                data.get("Path") for data in entry.instances if isinstance(data, dict)
            ]
            for path in paths:
                if path:
                    self._destroy(path)
            return 0

        if not entry.instances:
            raise ApplyError("Change entry has no instances", path=entry.instance_path)
        skipped = 0
        for data in entry.instances:
            skipped += self._apply_record(data)
        return skipped

    def _destroy(self, path: str) -> None:
        entity = self.tree.find(path)
        if entity is None or not entity.is_valid:
            logger.debug(f"Delete for missing entity {path}")
            return
        try:
            self.tree.destroy(entity)
        except ValueError as e:
            raise ApplyError(str(e), path=path)

    def _apply_record(self, data: Any) -> int:
        if not isinstance(data, dict):
            raise ApplyError(f"Instance record must be an object, got {type(data).__name__}")
        class_name = data.get("ClassName")
        path = data.get("Path")
        if not class_name or not path:
            raise ApplyError("Instance record missing ClassName or Path", path=path)
        if data.get("_MaxDepthReached"):
            logger.debug(f"Skipping depth-limited stub {path}")
            return 0

        entity = self._resolve(data, class_name, path)
        skipped = 0

        for name, raw in (data.get("Properties") or {}).items():
            if name not in _READ_ONLY and not self._write_property(entity, name, raw):
                skipped += 1

        attribute_types = data.get("AttributeTypes") or {}
        if not isinstance(attribute_types, dict):
            attribute_types = {}
        for name, raw in (data.get("Attributes") or {}).items():
            if not self._write_attribute(entity, name, raw, attribute_types.get(name)):
                skipped += 1

        for tag in data.get("Tags") or ():
            if isinstance(tag, str) and not entity.has_tag(tag):
                entity.add_tag(tag)

        for child in data.get("Children") or ():
            try:
                skipped += self._apply_record(child)
            except (ApplyError, SerializationError) as e:
                skipped += 1
                logger.warning(f"Skipping child of {path}: {e}")

        logger.debug(f"Applied change for {path}")
        return skipped

    def _resolve(self, data: Dict[str, Any], class_name: str, path: str) -> Entity:
        """Find the entity at path, creating or replacing it as needed."""
        entity = self.tree.find(path)
        if entity is not None and entity.class_name != class_name:
            parent = entity.parent
            if parent is None or parent.parent is None:
                raise ApplyError(
                    f"Cannot replace service {entity.name} with {class_name}", path=path
                )
            logger.debug(f"Replacing {entity.class_name} at {path} with {class_name}")
            self._destroy(path)
            entity = None

        if entity is not None:
            return entity

        parent = self._resolve_parent(data, path)
        name = data.get("Name") or path.rsplit(".", 1)[-1]
        try:
            return self.tree.create(class_name, parent, name)
        except ValueError as e:
            raise ApplyError(str(e), path=path)

    def _resolve_parent(self, data: Dict[str, Any], path: str) -> Entity:
        parent_path = data.get("ParentPath")
        if not parent_path and "." in path:
            parent_path = path.rsplit(".", 1)[0]
        parent = self.tree.find(parent_path) if parent_path else None
        if parent is None:
            parent = self.tree.get_service("Workspace")
        if parent is None:
            raise ApplyError("No parent found and Workspace is missing", path=path)
        return parent

    def _write_property(self, entity: Entity, name: str, raw: Any) -> bool:
        try:
            current = entity.get_property(name)
        except KeyError:
            logger.debug(f"Unknown property {name} on {entity.class_name}")
            return False

        hint = current if current is not None else entity.property_type(name)
        try:
            entity.set_property(name, decode(raw, hint, resolve=self.tree.find))
        except (SerializationError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Skipping property {name} on {entity.full_name()}: {e}",
                extra={"property": name},
            )
            return False
        return True

    def _write_attribute(
        self, entity: Entity, name: str, raw: Any, type_name: Optional[str] = None
    ) -> bool:
        hint = type_for_name(type_name)
        if hint is None and not is_primitive(raw):
            hint = entity.get_attribute(name)
        try:
            entity.set_attribute(name, decode(raw, hint, resolve=self.tree.find))
        except (SerializationError, TypeError, ValueError) as e:
            logger.warning(
                f"Skipping attribute {name} on {entity.full_name()}: {e}",
                extra={"attribute": name},
            )
            return False
        return True

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "watermark": self._watermark,
            "applied_count": self._applied_count,
            "failed_count": self._failed_count,
            "dry_run": self.dry_run,
        }
