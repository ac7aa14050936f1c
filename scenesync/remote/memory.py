"""
In-memory remote gateway for testing.

Stores pushed envelopes as JSON round-tripped dictionaries, so pulls go
through the same validation path as the HTTP gateway.

Invariants:
    - All data is lost on process exit
    - Same key ordering and outcome types as HttpRemoteGateway

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the RemoteGateway protocol
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ..errors import FailureHint
from ..serialize.records import Snapshot
from .base import Batch, KeyClock, PullResult, PullStatus, PushResult, log_failure
from .envelope import parse_changes

logger = logging.getLogger(__name__)


class InMemoryRemoteGateway:
    """In-memory implementation of RemoteGateway.

    Attributes:
        changes: Stored batch envelopes by key
        datamodel: Last pushed snapshot envelope
        failure: When set, every operation fails with this hint
        enabled: When False, pulls report DISABLED

    Example:
        >>> gateway = InMemoryRemoteGateway()
        >>> await gateway.push_batch(batch)
        >>> result = await gateway.pull_recent(10)
        >>> len(result.batches)
        1
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.changes: Dict[str, Dict[str, Any]] = {}
        self.datamodel: Optional[Dict[str, Any]] = None
        self.failure: Optional[FailureHint] = None
        self.enabled = True
        self.closed = False
        self.push_log: List[Dict[str, Any]] = []
        self._keys = KeyClock(clock)
        self._lock = asyncio.Lock()

    def _fail(self, operation: str) -> Optional[PushResult]:
        if self.failure is None:
            return None
        log_failure(operation, self.failure, f"simulated {self.failure.value} failure")
        return PushResult.failure(self.failure, f"simulated {self.failure.value} failure")

    async def push_batch(self, batch: Batch) -> PushResult:
        failed = self._fail("push batch")
        if failed is not None:
            return failed
        async with self._lock:
            key = self._keys.next()
            body = json.loads(json.dumps(batch.to_dict()))
            self.changes[key] = body
            self.push_log.append(body)
        logger.debug("Batch stored in memory", extra={"key": key, "changes": len(batch)})
        return PushResult(ok=True, key=key, status=200)

    async def push_snapshot(self, snapshot: Snapshot) -> PushResult:
        failed = self._fail("push snapshot")
        if failed is not None:
            return failed
        async with self._lock:
            self.datamodel = json.loads(json.dumps(snapshot.to_dict()))
        return PushResult(ok=True, status=200)

    def put_raw(self, key: str, envelope: Any) -> None:
        """Store an arbitrary envelope, as another client would."""
        self.changes[key] = envelope

    async def pull_recent(self, limit: int) -> PullResult:
        if not self.enabled:
            return PullResult(status=PullStatus.DISABLED)
        if self.failure is not None:
            log_failure("fetch changes", self.failure, f"simulated {self.failure.value} failure")
            return PullResult(status=PullStatus.FAILED, hint=self.failure)

        async with self._lock:
            batches, skipped = parse_changes(dict(self.changes))
        batches = batches[-limit:] if limit > 0 else []
        if not batches:
            return PullResult(status=PullStatus.EMPTY, skipped=skipped)
        return PullResult(status=PullStatus.OK, batches=batches, skipped=skipped)

    async def test_connection(self) -> PushResult:
        failed = self._fail("connection test")
        return failed if failed is not None else PushResult(ok=True, status=200)

    async def close(self) -> None:
        self.closed = True
