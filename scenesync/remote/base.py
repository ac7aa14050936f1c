"""
Remote gateway protocol and types.

The remote store is a JSON document tree reachable over HTTP. The gateway is
passive: it pushes what it is given, pulls what is there and
reports typed outcomes. It never retries and never merges; the scheduler's
next tick and the worker's next fetch are the retry cadence.

Invariants:
    - Every push is written under a fresh key that is strictly greater than
      the previous one, so a re-push never overwrites another batch
    - Failures are returned as results carrying a FailureHint, not raised
    - Pulled envelopes are validated; one invalid envelope is skipped, an
      undecodable body discards the whole pull

How to change safely:
    - Protocol changes require updating every implementation
    - Envelope field names are the wire contract; add fields, never rename
"""

from __future__ import annotations

import logging
import time
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from ..config import RemoteConfig, validate_remote_url
from ..errors import FailureHint
from ..serialize.records import ChangeAction, Snapshot
from .envelope import RemoteBatch

logger = logging.getLogger(__name__)

BATCH_ACTION = "BatchInstanceChanged"
FULL_SYNC_ACTION = "FullHierarchySync"

REMEDIATION: Dict[FailureHint, str] = {
    FailureHint.FORBIDDEN: "Firebase Security Rules may be blocking writes. Check database rules.",
    FailureHint.UNAUTHORIZED: "Firebase Authentication required. Check if auth is properly configured.",
    FailureHint.NOT_FOUND: "Firebase URL incorrect. Check the configured base URL.",
    FailureHint.HTTP_DISABLED: "The remote store is unreachable. Check that HTTP requests are allowed and the URL is correct.",
    FailureHint.TIMEOUT: "The remote store did not respond in time. The operation will be retried.",
    FailureHint.UNKNOWN: "Unexpected remote failure. The operation will be retried.",
}


@dataclass(frozen=True)
class BatchChange:
    """One change inside an outgoing batch.

    Attributes:
        action: add, update or delete
        path: Entity path
        timestamp: Last local mutation time of the path
        instances: Wire records (a single {Path} stub for deletes)
    """

    action: ChangeAction
    path: str
    timestamp: float
    instances: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Action": self.action.value,
            "InstancePath": self.path,
            "Timestamp": self.timestamp,
            "Instances": self.instances,
        }


@dataclass(frozen=True)
class Batch:
    """Outgoing group of settled changes.

    Attributes:
        changes: Changes ordered by timestamp, then path
        batch_id: Flush time in milliseconds
        plugin_version: Version tag
        project_id: Project key
        session_id: Identifies the pushing worker
    """

    changes: List[BatchChange]
    batch_id: int
    plugin_version: str
    project_id: str
    session_id: str

    def __len__(self) -> int:
        return len(self.changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Action": BATCH_ACTION,
            "Changes": [change.to_dict() for change in self.changes],
            "BatchId": self.batch_id,
            "PluginVersion": self.plugin_version,
            "ProjectId": self.project_id,
            "SessionId": self.session_id,
        }


@dataclass(frozen=True)
class PushResult:
    """Outcome of a write (or of the connection test).

    Attributes:
        ok: Whether the store confirmed the operation
        key: Key the batch was written under
        status: HTTP status, if a response was received
        hint: Classified failure cause
        error: Failure message
    """

    ok: bool
    key: Optional[str] = None
    status: Optional[int] = None
    hint: Optional[FailureHint] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, hint: FailureHint, error: str, status: Optional[int] = None) -> PushResult:
        return cls(ok=False, status=status, hint=hint, error=error)


class PullStatus(Enum):
    """Outcome category of a pull."""

    OK = "ok"
    EMPTY = "empty"
    DISABLED = "disabled"
    FAILED = "failed"
    DECODE_ERROR = "decode_error"


@dataclass(frozen=True)
class PullResult:
    """Outcome of a pull.

    Attributes:
        status: Outcome category
        batches: Decoded remote batches, ordered by key
        skipped: Envelopes dropped because they failed validation
        hint: Classified failure cause for FAILED
        error: Failure message
    """

    status: PullStatus
    batches: List[RemoteBatch] = field(default_factory=list)
    skipped: int = 0
    hint: Optional[FailureHint] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (PullStatus.OK, PullStatus.EMPTY)


class KeyClock:
    """Strictly increasing millisecond keys derived from a clock."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def next(self) -> str:
        key = int(self._clock() * 1000)
        if key <= self._last:
            key = self._last + 1
        self._last = key
        return str(key)


def log_failure(operation: str, hint: FailureHint, error: str, base_url: str = "") -> None:
    """Log a remote failure with its remediation message."""
    logger.warning(
        f"{operation} failed: {error}",
        extra={"operation": operation, "hint": hint.value, "base_url": base_url},
    )
    logger.warning(REMEDIATION[hint], extra={"hint": hint.value})


@runtime_checkable
class RemoteGateway(Protocol):
    """Protocol for remote store gateways.

    Example:
        >>> gateway = HttpRemoteGateway(config.remote)
        >>> result = await gateway.push_batch(batch)
        >>> if not result.ok:
        ...     print(result.hint)
    """

    @abstractmethod
    async def push_batch(self, batch: Batch) -> PushResult:
        """Write a batch under a fresh key."""
        ...

    @abstractmethod
    async def push_snapshot(self, snapshot: Snapshot) -> PushResult:
        """Replace the stored full-tree snapshot."""
        ...

    @abstractmethod
    async def pull_recent(self, limit: int) -> PullResult:
        """Fetch the newest `limit` batches ordered by key."""
        ...

    @abstractmethod
    async def test_connection(self) -> PushResult:
        """Probe the store without writing."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...


def create_gateway(config: RemoteConfig) -> Optional[RemoteGateway]:
    """Factory function to create a gateway from configuration.

    Args:
        config: Remote store configuration

    Returns:
        An HttpRemoteGateway, or None if the base URL is not configured
    """
    from .http import HttpRemoteGateway

    valid, message = validate_remote_url(config.base_url)
    if not valid:
        logger.warning(f"Remote store not configured: {message}")
        return None
    return HttpRemoteGateway(config)
