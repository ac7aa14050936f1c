"""
Validation models for envelopes pulled from the remote store.

The store returns a mapping of key -> envelope. Each envelope is validated
with pydantic; an envelope that fails validation is skipped, while a body
that is not a mapping at all is a decode error for the whole pull.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..errors import DecodeError

logger = logging.getLogger(__name__)

# Keys at or above this value are milliseconds; older stores used seconds.
_MILLISECOND_KEY_FLOOR = 100_000_000_000


class ChangeEntry(BaseModel):
    """One change entry of a batch envelope."""

    action: Literal["add", "update", "delete"] = Field(..., alias="Action")
    instance_path: Optional[str] = Field(None, alias="InstancePath")
    timestamp: Optional[float] = Field(None, alias="Timestamp")
    instances: List[Dict[str, Any]] = Field(default_factory=list, alias="Instances")

    model_config = {"populate_by_name": True, "extra": "allow"}


class BatchEnvelope(BaseModel):
    """Envelope written by a batch push."""

    action: Literal["BatchInstanceChanged"] = Field(..., alias="Action")
    changes: List[ChangeEntry] = Field(default_factory=list, alias="Changes")
    batch_id: Optional[float] = Field(None, alias="BatchId")
    plugin_version: Optional[str] = Field(None, alias="PluginVersion")
    project_id: Optional[str] = Field(None, alias="ProjectId")
    session_id: Optional[str] = Field(None, alias="SessionId")

    model_config = {"populate_by_name": True, "extra": "allow"}


class FullSyncEnvelope(BaseModel):
    """Envelope carrying whole root records, applied as updates."""

    action: Literal["FullHierarchySync"] = Field(..., alias="Action")
    roots: List[Dict[str, Any]] = Field(default_factory=list, alias="Roots")
    timestamp: Optional[float] = Field(None, alias="Timestamp")
    plugin_version: Optional[str] = Field(None, alias="PluginVersion")
    project_id: Optional[str] = Field(None, alias="ProjectId")
    session_id: Optional[str] = Field(None, alias="SessionId")

    model_config = {"populate_by_name": True, "extra": "allow"}


Envelope = Union[BatchEnvelope, FullSyncEnvelope]

_envelope_adapter: TypeAdapter[Envelope] = TypeAdapter(
    Union[BatchEnvelope, FullSyncEnvelope]
)


def key_time(key: str) -> Optional[float]:
    """Epoch seconds encoded in a change key, or None if not numeric."""
    try:
        value = float(key)
    except (TypeError, ValueError):
        return None
    if value >= _MILLISECOND_KEY_FLOOR:
        return value / 1000.0
    return value


@dataclass(frozen=True)
class RemoteBatch:
    """A validated envelope together with its store key.

    Attributes:
        key: Store key
        envelope: Validated envelope
    """

    key: str
    envelope: Envelope

    @property
    def key_time(self) -> Optional[float]:
        return key_time(self.key)

    @property
    def session_id(self) -> Optional[str]:
        return self.envelope.session_id

    def changes(self) -> List[ChangeEntry]:
        """Change entries; full-sync roots become update entries."""
        if isinstance(self.envelope, BatchEnvelope):
            return list(self.envelope.changes)
        return [
            ChangeEntry(
                action="update",
                instance_path=root.get("Path"),
                timestamp=root.get("Timestamp", self.envelope.timestamp),
                instances=[root],
            )
            for root in self.envelope.roots
        ]


def _sort_key(key: str) -> Tuple[int, float, str]:
    numeric = key_time(key)
    if numeric is None:
        return (1, 0.0, key)
    return (0, numeric, key)


def parse_changes(payload: Any) -> Tuple[List[RemoteBatch], int]:
    """Validate a pulled changes payload.

    Args:
        payload: Decoded JSON body (mapping of key -> envelope, or null)

    Returns:
        (batches ordered by key, number of skipped envelopes)

    Raises:
        DecodeError: If the payload is neither null, a mapping nor a list
    """
    if payload is None:
        return [], 0

    if isinstance(payload, list):
        items: Dict[str, Any] = {str(i): v for i, v in enumerate(payload) if v is not None}
    elif isinstance(payload, dict):
        items = {str(k): v for k, v in payload.items()}
    else:
        raise DecodeError(
            f"Expected a mapping of changes, got {type(payload).__name__}",
            preview=str(payload)[:100],
        )

    batches: List[RemoteBatch] = []
    skipped = 0
    for key in sorted(items, key=_sort_key):
        try:
            envelope = _envelope_adapter.validate_python(items[key])
        except ValidationError as e:
            skipped += 1
            logger.warning(
                f"Skipping invalid remote envelope {key}: {e.error_count()} validation errors",
                extra={"key": key},
            )
            continue
        batches.append(RemoteBatch(key=key, envelope=envelope))
    return batches, skipped
