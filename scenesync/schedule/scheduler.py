"""
Batch scheduler.

Runs once per tick and decides whether the settled part of the pending
change set should be pushed. An entry is settled once `settle_time` has
passed since its last mutation. A flush is triggered when any of these
holds:

    MIN_INTERVAL    settled > 0 and now - last_push >= min_push_interval
    MAX_BATCH       settled >= max_batch_size
    BATCH_INTERVAL  settled > 0 and now - last_batch >= batch_interval

Invariants:
    - Only settled entries are ever pushed, and all of them are pushed
      together
    - Entries are removed and both clocks advance only after the gateway
      confirms the push; on failure nothing changes
    - A tick that finds a push still in flight does nothing

How to change safely:
    - Keep decide() free of side effects; it is what tests pin down
    - The settled snapshot must be taken before the push is awaited
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..capture.pending import PendingChangeSet, PendingEntry
from ..config import SyncConfig
from ..errors import FailureHint
from ..remote.base import Batch, BatchChange, PushResult, RemoteGateway

logger = logging.getLogger(__name__)


def _change_kind(entry: PendingEntry) -> str:
    record = entry.change.record
    if record is not None and record.change_type is not None:
        return record.change_type.value
    return entry.action.value


class FlushTrigger(str, Enum):
    """Reason a flush was started."""

    MIN_INTERVAL = "min_interval"
    MAX_BATCH = "max_batch"
    BATCH_INTERVAL = "batch_interval"


@dataclass(frozen=True)
class TickResult:
    """What a tick did.

    Attributes:
        skipped: Why the tick was a no-op (disabled, not_configured, empty,
            in_flight), None if the pending set was evaluated
        pending: Pending entries at tick time
        settled: Settled entries at tick time
        trigger: Flush trigger, None if no flush was due
        push: Gateway outcome, when a flush was attempted
        removed: Entries removed after a successful push
    """

    skipped: Optional[str] = None
    pending: int = 0
    settled: int = 0
    trigger: Optional[FlushTrigger] = None
    push: Optional[PushResult] = None
    removed: int = 0

    @property
    def flushed(self) -> bool:
        return self.push is not None and self.push.ok


class BatchScheduler:
    """Decides when settled changes are pushed.

    Attributes:
        config: Current configuration snapshot
        pending: Pending change set
        gateway: Remote gateway, None when the store is not configured
        last_push_time: Time of the last successful push
        last_batch_time: Time of the last batch boundary

    Example:
        >>> scheduler = BatchScheduler(config, pending, gateway)
        >>> result = await scheduler.tick()
        >>> result.flushed
        False
    """

    def __init__(
        self,
        config: SyncConfig,
        pending: PendingChangeSet,
        gateway: Optional[RemoteGateway],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.pending = pending
        self.gateway = gateway
        self.last_push_time = 0.0
        self.last_batch_time = 0.0
        self._clock = clock
        self._in_flight = False
        self._batches_pushed = 0
        self._changes_pushed = 0
        self._push_failures = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def decide(self, settled_count: int, now: float) -> Optional[FlushTrigger]:
        """Return the first flush trigger that holds, or None."""
        throttle = self.config.throttle
        if settled_count > 0 and now - self.last_push_time >= throttle.min_push_interval:
            return FlushTrigger.MIN_INTERVAL
        if settled_count >= throttle.max_batch_size:
            return FlushTrigger.MAX_BATCH
        if settled_count > 0 and now - self.last_batch_time >= throttle.batch_interval:
            return FlushTrigger.BATCH_INTERVAL
        return None

    def build_batch(self, entries: List[PendingEntry], now: float) -> Batch:
        """Build a batch from settled entries, ordered by timestamp then path."""
        ordered = sorted(entries, key=lambda e: (e.timestamp, e.path))
        remote = self.config.remote
        return Batch(
            changes=[
                BatchChange(
                    action=entry.action,
                    path=entry.path,
                    timestamp=entry.timestamp,
                    instances=entry.change.instances(),
                )
                for entry in ordered
            ],
            batch_id=int(now * 1000),
            plugin_version=remote.plugin_version,
            project_id=remote.project_id,
            session_id=self.config.session_id,
        )

    async def tick(self, now: Optional[float] = None) -> TickResult:
        """Evaluate the pending set and push the settled subset if due."""
        if self._in_flight:
            return TickResult(skipped="in_flight")
        if not self.config.sync_enabled:
            return TickResult(skipped="disabled")
        if self.gateway is None or not self.config.remote.is_configured:
            return TickResult(skipped="not_configured")
        if len(self.pending) == 0:
            return TickResult(skipped="empty")

        now = self._clock() if now is None else now
        settled, unsettled = self.pending.partition(now, self.config.throttle.settle_time)
        total = len(settled) + len(unsettled)
        logger.debug(
            f"{total} pending, {len(settled)} settled, "
            f"last push: {now - self.last_push_time:.0f}s ago"
        )

        trigger = self.decide(len(settled), now)
        if trigger is None:
            return TickResult(pending=total, settled=len(settled))

        batch = self.build_batch(settled, now)
        breakdown = Counter(_change_kind(entry) for entry in settled)
        logger.debug(
            f"Pushing {len(settled)}/{total} settled changes "
            f"({', '.join(f'{k}:{v}' for k, v in sorted(breakdown.items()))})",
            extra={"trigger": trigger.value},
        )

        self._in_flight = True
        try:
            result = await self.gateway.push_batch(batch)
        except Exception as e:
            logger.error(f"Batch push raised: {e}", exc_info=True)
            result = PushResult.failure(FailureHint.UNKNOWN, str(e))
        finally:
            self._in_flight = False

        if not result.ok:
            self._push_failures += 1
            return TickResult(
                pending=total,
                settled=len(settled),
                trigger=trigger,
                push=result,
            )

        removed = self.pending.remove_flushed(settled)
        self.last_push_time = now
        self.last_batch_time = now
        self._batches_pushed += 1
        self._changes_pushed += len(batch)
        return TickResult(
            pending=total,
            settled=len(settled),
            trigger=trigger,
            push=result,
            removed=removed,
        )

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "batches_pushed": self._batches_pushed,
            "changes_pushed": self._changes_pushed,
            "push_failures": self._push_failures,
            "last_push_time": self.last_push_time,
            "in_flight": self._in_flight,
        }
