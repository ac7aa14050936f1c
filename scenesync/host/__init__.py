"""
Host tree abstraction.

The sync engine observes and edits a scene tree it does not own. This
package defines what it needs from the host (Entity, HostTree, HostEvent)
and ships an in-memory implementation.
"""

from .base import Connection, Entity, HostEvent, HostTree
from .classes import ancestors, is_a
from .memory import InMemoryEntity, InMemoryTree

__all__ = [
    "Connection",
    "Entity",
    "HostEvent",
    "HostTree",
    "ancestors",
    "is_a",
    "InMemoryEntity",
    "InMemoryTree",
]
