"""
Remote JSON store access: gateway protocol, HTTP and in-memory gateways,
and the envelope models pulled batches are validated against.
"""

from .base import (
    Batch,
    BatchChange,
    PullResult,
    PullStatus,
    PushResult,
    RemoteGateway,
    create_gateway,
)
from .envelope import BatchEnvelope, ChangeEntry, FullSyncEnvelope, RemoteBatch, parse_changes
from .http import HttpRemoteGateway
from .memory import InMemoryRemoteGateway

__all__ = [
    "Batch",
    "BatchChange",
    "BatchEnvelope",
    "ChangeEntry",
    "FullSyncEnvelope",
    "HttpRemoteGateway",
    "InMemoryRemoteGateway",
    "PullResult",
    "PullStatus",
    "PushResult",
    "RemoteBatch",
    "RemoteGateway",
    "create_gateway",
    "parse_changes",
]
