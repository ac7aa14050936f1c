"""
Host tree capability interface.

The sync engine never owns the scene tree. Everything it needs from the
host environment is expressed by the protocols in this module:

- Entity: one node (class, name, path, properties, attributes, tags, children)
- HostTree: the tree root, path lookup, create/destroy and event subscription
- Connection: handle returned by every subscription

Invariants:
    - An entity's path is its full name: the names from the root joined
      with ".", root excluded. The path is the sync identity key.
    - A destroyed entity reports is_valid == False and is never serialized
    - Reading a property may raise; callers guard every read

How to change safely:
    - Protocol changes require updating scenesync.host.memory and every
      host adapter
    - Keep callback signatures stable: capture and reconciler rely on them
"""

from __future__ import annotations

from abc import abstractmethod
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)


class HostEvent(Enum):
    """Tree-level notifications a host can deliver.

    Callback arguments:
        DESCENDANT_ADDED: (entity)
        DESCENDANT_REMOVING: (entity), fired before the entity is detached
        SELECTION_CHANGED: ()
        UNDO: (waypoint_name)
        REDO: (waypoint_name)
    """

    DESCENDANT_ADDED = "descendant_added"
    DESCENDANT_REMOVING = "descendant_removing"
    SELECTION_CHANGED = "selection_changed"
    UNDO = "undo"
    REDO = "redo"


@runtime_checkable
class Connection(Protocol):
    """Handle for a connected callback."""

    @abstractmethod
    def disconnect(self) -> None:
        """Stop delivering events to the callback. Idempotent."""
        ...

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...


@runtime_checkable
class Entity(Protocol):
    """A node of the host scene tree."""

    @property
    @abstractmethod
    def class_name(self) -> str:
        """Type tag of the entity."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def parent(self) -> Optional["Entity"]:
        ...

    @property
    @abstractmethod
    def is_valid(self) -> bool:
        """False once the entity has been destroyed."""
        ...

    @abstractmethod
    def full_name(self) -> str:
        """Dot-joined path from the root (root excluded)."""
        ...

    @abstractmethod
    def is_a(self, class_name: str) -> bool:
        """Whether the entity's class is class_name or a subclass of it."""
        ...

    @abstractmethod
    def children(self) -> List["Entity"]:
        """Direct children in order."""
        ...

    @abstractmethod
    def property_names(self) -> Tuple[str, ...]:
        """Readable property names, in declaration order."""
        ...

    @abstractmethod
    def get_property(self, name: str) -> Any:
        """Read a property.

        Raises:
            Exception: Any host-specific failure; callers guard each read
        """
        ...

    @abstractmethod
    def property_type(self, name: str) -> Optional[type]:
        """Declared value type of a property, if the host knows it.

        Entity references report the Entity protocol itself.
        """
        ...

    @abstractmethod
    def set_property(self, name: str, value: Any) -> None:
        """Write a property.

        Raises:
            KeyError: If the property does not exist
            TypeError: If the value is not assignable to the property
        """
        ...

    @abstractmethod
    def attributes(self) -> Dict[str, Any]:
        """Copy of the attribute mapping."""
        ...

    @abstractmethod
    def get_attribute(self, name: str) -> Any:
        """Attribute value, or None if absent."""
        ...

    @abstractmethod
    def set_attribute(self, name: str, value: Any) -> None:
        """Set an attribute; None removes it."""
        ...

    @abstractmethod
    def tags(self) -> Tuple[str, ...]:
        ...

    @abstractmethod
    def has_tag(self, tag: str) -> bool:
        ...

    @abstractmethod
    def add_tag(self, tag: str) -> None:
        ...

    @abstractmethod
    def on_property_changed(self, callback: Callable[[str], None]) -> Connection:
        """Subscribe to property changes; callback receives the property name."""
        ...

    @abstractmethod
    def on_attribute_changed(self, callback: Callable[[str], None]) -> Connection:
        """Subscribe to attribute changes; callback receives the attribute name."""
        ...


@runtime_checkable
class HostTree(Protocol):
    """The live scene tree."""

    @property
    @abstractmethod
    def root(self) -> Entity:
        ...

    @abstractmethod
    def services(self) -> List[Entity]:
        """Direct children of the root."""
        ...

    @abstractmethod
    def get_service(self, name: str) -> Optional[Entity]:
        ...

    @abstractmethod
    def find(self, path: str) -> Optional[Entity]:
        """Resolve a dot-joined path from the root, or None."""
        ...

    @abstractmethod
    def create(self, class_name: str, parent: Entity, name: Optional[str] = None) -> Entity:
        """Create an entity under parent.

        Raises:
            ValueError: If the class cannot be instantiated
        """
        ...

    @abstractmethod
    def destroy(self, entity: Entity) -> None:
        """Detach and invalidate an entity and its descendants."""
        ...

    @abstractmethod
    def subscribe(self, event: HostEvent, callback: Callable[..., None]) -> Connection:
        ...

    @abstractmethod
    def selection(self) -> List[Entity]:
        """Currently selected entities."""
        ...
