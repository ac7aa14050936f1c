"""
Serialization of entities to the remote wire format.
"""

from .records import ChangeAction, ChangeRecord, ChangeType, SerializedRecord, Snapshot
from .serializer import Serializer

__all__ = [
    "ChangeAction",
    "ChangeRecord",
    "ChangeType",
    "SerializedRecord",
    "Serializer",
    "Snapshot",
]
