"""
Pending change set.

Holds at most one ChangeRecord per entity path together with the time of the
path's last mutation. Change capture writes into it; the batch scheduler
snapshots the settled subset, pushes it, and removes what it pushed.

Invariants:
    - At most one entry per path
    - A delete is terminal: later updates for the same path are dropped
      until the delete has been flushed
    - An add stays an add when followed by updates
    - Entries are only removed by remove_flushed(), and only if they were
      not overwritten while the push was in flight
    - All access is serialized by a re-entrant lock, so host callbacks on
      other threads are safe

How to change safely:
    - Keep record() as the single place that applies the priority rules
    - Never hand out mutable internal state; entries are frozen
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..serialize.records import ChangeAction, ChangeRecord, SerializedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingEntry:
    """One pending change.

    Attributes:
        change: The change record
        timestamp: Time of the last mutation for the path
        version: Monotonic write counter, used to detect overwrites
    """

    change: ChangeRecord
    timestamp: float
    version: int

    @property
    def path(self) -> str:
        return self.change.path

    @property
    def action(self) -> ChangeAction:
        return self.change.action


class PendingChangeSet:
    """Thread-safe map of path to pending change."""

    def __init__(self) -> None:
        self._entries: Dict[str, PendingEntry] = {}
        self._lock = threading.RLock()
        self._version = 0

    def record(
        self,
        path: str,
        action: ChangeAction,
        record: Optional[SerializedRecord],
        now: float,
    ) -> Optional[ChangeAction]:
        """Write a mutation for a path, applying the priority rules.

        Args:
            path: Entity path
            action: ADD for creations, DELETE for removals, UPDATE otherwise
            record: Serialized entity (ignored for DELETE)
            now: Capture time

        Returns:
            The action now stored for the path, or None if the mutation was
            dropped because the path is pending deletion
        """
        with self._lock:
            current = self._entries.get(path)
            if action is ChangeAction.DELETE:
                effective = ChangeAction.DELETE
                record = None
            elif action is ChangeAction.ADD:
                effective = ChangeAction.ADD
            else:
                if current is not None and current.action is ChangeAction.DELETE:
                    logger.debug(f"Ignoring update for deleted instance: {path}")
                    return None
                if current is not None and current.action is ChangeAction.ADD:
                    effective = ChangeAction.ADD
                else:
                    effective = ChangeAction.UPDATE

            self._version += 1
            self._entries[path] = PendingEntry(
                change=ChangeRecord(effective, path, record),
                timestamp=now,
                version=self._version,
            )
            return effective

    def get(self, path: str) -> Optional[PendingEntry]:
        with self._lock:
            return self._entries.get(path)

    def action_for(self, path: str) -> Optional[ChangeAction]:
        entry = self.get(path)
        return entry.action if entry is not None else None

    def entries(self) -> List[PendingEntry]:
        with self._lock:
            return list(self._entries.values())

    def partition(self, now: float, settle_time: float) -> Tuple[List[PendingEntry], List[PendingEntry]]:
        """Split entries into settled and unsettled.

        An entry is settled when at least settle_time has passed since its
        last mutation. The returned lists are a consistent snapshot.

        Returns:
            (settled, unsettled)
        """
        settled: List[PendingEntry] = []
        unsettled: List[PendingEntry] = []
        with self._lock:
            for entry in self._entries.values():
                if now - entry.timestamp >= settle_time:
                    settled.append(entry)
                else:
                    unsettled.append(entry)
        return settled, unsettled

    def remove_flushed(self, flushed: List[PendingEntry]) -> int:
        """Remove pushed entries that were not overwritten since the snapshot.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._lock:
            for entry in flushed:
                current = self._entries.get(entry.path)
                if current is not None and current.version == entry.version:
                    del self._entries[entry.path]
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries
