"""
Error types for SceneSync.

This module defines the exception hierarchy used across the sync engine:
- SceneSyncError: Base exception
- ConfigurationError: Invalid or missing configuration (remote URL, timings)
- RemoteError: Remote store failures (TransportError, DecodeError)
- SerializationError: A value could not be encoded or decoded
- ApplyError: A remote change entry could not be applied to the host tree

Invariants:
    - All errors inherit from SceneSyncError
    - Errors carry a stable code plus structured details for logging
    - None of these errors is allowed to escape the capture hot path or the
      worker loops; they are caught, logged and turned into "skip" outcomes

How to change safely:
    - Add new subclasses rather than new codes on existing classes
    - Keep `details` JSON-serializable, it is passed to log records
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class SceneSyncError(Exception):
    """Base exception for all SceneSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCENESYNC_ERROR"
        self.details = details or {}


class ConfigurationError(SceneSyncError):
    """Configuration is invalid.

    Raised when:
    - The remote base URL is unset or fails validation
    - A timing or size setting is out of range
    """

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )
        self.setting = setting


class FailureHint(Enum):
    """Classified cause of a transport failure, used for remediation logs."""

    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    HTTP_DISABLED = "http_disabled"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class RemoteError(SceneSyncError):
    """Base class for remote store failures."""

    pass


class TransportError(RemoteError):
    """HTTP call failed, timed out or returned a non-success status.

    Attributes:
        status: HTTP status code, if a response was received
        hint: Classified failure cause
        url: Request URL
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        hint: FailureHint = FailureHint.UNKNOWN,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"status": status, "hint": hint.value, "url": url},
        )
        self.status = status
        self.hint = hint
        self.url = url


class DecodeError(RemoteError):
    """Remote store returned a body that is not a valid envelope."""

    def __init__(self, message: str, preview: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"preview": preview},
        )
        self.preview = preview


class SerializationError(SceneSyncError):
    """A typed value could not be converted to or from its wire form."""

    def __init__(self, message: str, value_type: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SERIALIZATION_ERROR",
            details={"value_type": value_type},
        )
        self.value_type = value_type


class ApplyError(SceneSyncError):
    """A remote change entry could not be applied to the host tree."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="APPLY_ERROR",
            details={"path": path},
        )
        self.path = path
