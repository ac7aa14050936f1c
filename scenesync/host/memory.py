"""
In-memory host tree.

A complete HostTree implementation with no external dependencies, used for:
- Unit and integration tests
- The headless worker (scenesync.main)
- Seeding a tree from a stored snapshot

Invariants:
    - The root is a DataModel named "Game" and is excluded from paths
    - Services are created at construction and cannot be destroyed
    - Property writes are type-checked against the declared property type,
      mirroring a real host rejecting mismatched values
    - Events fire synchronously; a failing callback is logged and does not
      stop delivery to the others

How to change safely:
    - Keep behaviour compatible with the HostTree/Entity protocols
    - Add class defaults to CLASS_PROPERTIES rather than special-casing
      classes in the entity code
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import RELEVANT_SERVICES
from ..serialize.types import (
    BrickColor,
    CFrame,
    Color3,
    EnumItem,
    Font,
    UDim2,
    Vector2,
    Vector3,
)
from .base import Entity, HostEvent
from .classes import ancestors, is_a

logger = logging.getLogger(__name__)

ROOT_NAME = "Game"

# Declared properties per class, inherited by subclasses. A value of
# Entity declares an entity reference defaulting to None.
CLASS_PROPERTIES: Dict[str, Dict[str, Any]] = {
    "Instance": {"Archivable": True},
    "BasePart": {
        "Anchored": False,
        "CanCollide": True,
        "CastShadow": True,
        "CFrame": CFrame(),
        "Color": Color3(0.639, 0.635, 0.647),
        "Massless": False,
        "Material": EnumItem("Material", 256, "Plastic"),
        "Reflectance": 0.0,
        "Size": Vector3(4.0, 1.0, 2.0),
        "Transparency": 0.0,
    },
    "MeshPart": {"MeshId": "", "TextureID": ""},
    "Model": {"PrimaryPart": Entity, "WorldPivot": CFrame()},
    "LuaSourceContainer": {"Source": ""},
    "BaseScript": {"Disabled": False},
    "GuiObject": {
        "AnchorPoint": Vector2(),
        "BackgroundColor3": Color3(1.0, 1.0, 1.0),
        "BackgroundTransparency": 0.0,
        "Position": UDim2(),
        "Size": UDim2(),
        "Visible": True,
    },
    "TextLabel": {"Text": "", "TextColor3": Color3(), "TextSize": 14, "Font": Font("rbxasset://fonts/families/SourceSansPro.json")},
    "TextButton": {"Text": "", "TextColor3": Color3(), "TextSize": 14, "Font": Font("rbxasset://fonts/families/SourceSansPro.json")},
    "TextBox": {"Text": "", "TextColor3": Color3(), "TextSize": 14, "Font": Font("rbxasset://fonts/families/SourceSansPro.json")},
    "ImageLabel": {"Image": "", "ImageColor3": Color3(1.0, 1.0, 1.0), "ImageTransparency": 0.0},
    "ImageButton": {"Image": "", "ImageColor3": Color3(1.0, 1.0, 1.0), "ImageTransparency": 0.0},
    "Light": {"Brightness": 1.0, "Color": Color3(1.0, 1.0, 1.0), "Enabled": True, "Shadows": False},
    "PointLight": {"Range": 8.0},
    "SpotLight": {"Angle": 90.0, "Range": 16.0},
    "SurfaceLight": {"Angle": 90.0, "Range": 16.0},
    "Decal": {"Color3": Color3(1.0, 1.0, 1.0), "Face": EnumItem("NormalId", 5, "Front"), "Texture": "", "Transparency": 0.0},
    "Attachment": {"CFrame": CFrame(), "Visible": False},
    "IntValue": {"Value": 0},
    "NumberValue": {"Value": 0.0},
    "BoolValue": {"Value": False},
    "StringValue": {"Value": ""},
    "ObjectValue": {"Value": Entity},
    "Vector3Value": {"Value": Vector3()},
    "CFrameValue": {"Value": CFrame()},
    "Color3Value": {"Value": Color3()},
    "BrickColorValue": {"Value": BrickColor(194, "Medium stone grey")},
    "Lighting": {"Ambient": Color3(0.275, 0.275, 0.275), "Brightness": 2.0, "ClockTime": 14.0},
}

NOT_CREATABLE = frozenset(
    {
        "Instance", "DataModel", "ServiceProvider", "PVInstance", "BasePart",
        "FormFactorPart", "TriangleMeshPart", "LuaSourceContainer", "BaseScript",
        "ValueBase", "GuiBase", "GuiBase2d", "GuiObject", "LayerCollector",
        "GuiButton", "Light", "PostEffect", "Constraint", "JointInstance",
        "BodyMover", "UIBase", "UIComponent", "WorldRoot", "Workspace",
    }
)


def declared_properties(class_name: str) -> Dict[str, Any]:
    """Default property values for a class, base classes first."""
    merged: Dict[str, Any] = {}
    for cls in reversed(ancestors(class_name)):
        merged.update(CLASS_PROPERTIES.get(cls, {}))
    return merged


def _assignable(declared: Any, value: Any) -> bool:
    if declared is Entity:
        return value is None or isinstance(value, Entity)
    if value is None:
        return False
    if isinstance(declared, bool) or isinstance(value, bool):
        return isinstance(declared, bool) and isinstance(value, bool)
    if isinstance(declared, (int, float)):
        return isinstance(value, (int, float))
    return isinstance(value, type(declared))


class MemoryConnection:
    """Connection to a Signal."""

    def __init__(self, signal: Signal, callback: Callable[..., None]) -> None:
        self._signal = signal
        self._callback = callback
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        if self._connected:
            self._connected = False
            self._signal._remove(self)


class Signal:
    """Synchronous event with ordered listeners."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._connections: List[MemoryConnection] = []

    def connect(self, callback: Callable[..., None]) -> MemoryConnection:
        connection = MemoryConnection(self, callback)
        self._connections.append(connection)
        return connection

    def fire(self, *args: Any) -> None:
        for connection in list(self._connections):
            if not connection.connected:
                continue
            try:
                connection._callback(*args)
            except Exception as e:
                logger.error(f"Listener for {self.name} failed: {e}", exc_info=True)

    def _remove(self, connection: MemoryConnection) -> None:
        if connection in self._connections:
            self._connections.remove(connection)

    def __len__(self) -> int:
        return len(self._connections)


class InMemoryEntity:
    """In-memory entity.

    Entities are created through InMemoryTree.create(), which wires the
    parent link and fires tree events.
    """

    def __init__(self, class_name: str, name: Optional[str] = None) -> None:
        self._class_name = class_name
        self._name = name or class_name
        self._parent: Optional[InMemoryEntity] = None
        self._children: List[InMemoryEntity] = []
        self._declared = declared_properties(class_name)
        self._properties: Dict[str, Any] = {
            key: (None if default is Entity else default) for key, default in self._declared.items()
        }
        self._attributes: Dict[str, Any] = {}
        self._tags: Dict[str, None] = {}
        self._valid = True
        self.property_changed = Signal(f"{class_name}.Changed")
        self.attribute_changed = Signal(f"{class_name}.AttributeChanged")

    def __repr__(self) -> str:
        return f"InMemoryEntity({self._class_name}, {self.full_name()!r})"

    @property
    def class_name(self) -> str:
        return self._class_name

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self.set_property("Name", value)

    @property
    def parent(self) -> Optional[InMemoryEntity]:
        return self._parent

    @property
    def is_valid(self) -> bool:
        return self._valid

    def full_name(self) -> str:
        names = []
        node: Optional[InMemoryEntity] = self
        while node is not None and node._parent is not None:
            names.append(node._name)
            node = node._parent
        if not names:
            return self._name
        return ".".join(reversed(names))

    def is_a(self, class_name: str) -> bool:
        return is_a(self._class_name, class_name)

    def children(self) -> List[InMemoryEntity]:
        return list(self._children)

    def find_first_child(self, name: str) -> Optional[InMemoryEntity]:
        for child in self._children:
            if child._name == name:
                return child
        return None

    def property_names(self) -> Tuple[str, ...]:
        return ("Name",) + tuple(self._properties)

    def property_type(self, name: str) -> Optional[type]:
        if name == "Name":
            return str
        if name not in self._declared:
            return None
        declared = self._declared[name]
        return Entity if declared is Entity else type(declared)

    def get_property(self, name: str) -> Any:
        if name == "Name":
            return self._name
        if name == "ClassName":
            return self._class_name
        if name == "Parent":
            return self._parent
        try:
            return self._properties[name]
        except KeyError:
            raise KeyError(f"{name} is not a valid member of {self._class_name}")

    def set_property(self, name: str, value: Any) -> None:
        if name in ("ClassName", "Parent"):
            raise KeyError(f"{name} cannot be assigned directly")
        if name == "Name":
            if not isinstance(value, str):
                raise TypeError(f"Name must be a string, got {type(value).__name__}")
            if value != self._name:
                self._name = value
                self.property_changed.fire("Name")
            return
        if name not in self._declared:
            raise KeyError(f"{name} is not a valid member of {self._class_name}")
        if not _assignable(self._declared[name], value):
            raise TypeError(
                f"Cannot assign {type(value).__name__} to {self._class_name}.{name}"
            )
        if self._properties[name] != value:
            self._properties[name] = value
            self.property_changed.fire(name)

    def attributes(self) -> Dict[str, Any]:
        return dict(self._attributes)

    def get_attribute(self, name: str) -> Any:
        return self._attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        if value is None:
            if name in self._attributes:
                del self._attributes[name]
                self.attribute_changed.fire(name)
            return
        if self._attributes.get(name, _UNSET) != value:
            self._attributes[name] = value
            self.attribute_changed.fire(name)

    def tags(self) -> Tuple[str, ...]:
        return tuple(self._tags)

    def has_tag(self, tag: str) -> bool:
        return tag in self._tags

    def add_tag(self, tag: str) -> None:
        self._tags[tag] = None

    def remove_tag(self, tag: str) -> None:
        self._tags.pop(tag, None)

    def on_property_changed(self, callback: Callable[[str], None]) -> MemoryConnection:
        return self.property_changed.connect(callback)

    def on_attribute_changed(self, callback: Callable[[str], None]) -> MemoryConnection:
        return self.attribute_changed.connect(callback)


_UNSET = object()


class InMemoryTree:
    """In-memory scene tree.

    Example:
        >>> tree = InMemoryTree()
        >>> part = tree.create("Part", tree.get_service("Workspace"), "Floor")
        >>> tree.find("Workspace.Floor") is part
        True
    """

    def __init__(self, services: Tuple[str, ...] = RELEVANT_SERVICES) -> None:
        self._root = InMemoryEntity("DataModel", ROOT_NAME)
        self._signals = {event: Signal(event.value) for event in HostEvent}
        self._selection: List[InMemoryEntity] = []
        for service_name in services:
            service = InMemoryEntity(service_name, service_name)
            service._parent = self._root
            self._root._children.append(service)

    @property
    def root(self) -> InMemoryEntity:
        return self._root

    def services(self) -> List[InMemoryEntity]:
        return self._root.children()

    def get_service(self, name: str) -> Optional[InMemoryEntity]:
        return self._root.find_first_child(name)

    def find(self, path: str) -> Optional[InMemoryEntity]:
        if not path:
            return None
        node: Optional[InMemoryEntity] = self._root
        for name in path.split("."):
            node = node.find_first_child(name) if node is not None else None
            if node is None:
                return None
        return node

    def create(
        self,
        class_name: str,
        parent: Entity,
        name: Optional[str] = None,
    ) -> InMemoryEntity:
        if not class_name or class_name in NOT_CREATABLE:
            raise ValueError(f"Unable to create an Instance of type \"{class_name}\"")
        if not isinstance(parent, InMemoryEntity) or not parent.is_valid:
            raise ValueError(f"Invalid parent for new {class_name}")

        entity = InMemoryEntity(class_name, name)
        entity._parent = parent
        parent._children.append(entity)
        self._signals[HostEvent.DESCENDANT_ADDED].fire(entity)
        return entity

    def destroy(self, entity: Entity) -> None:
        if not isinstance(entity, InMemoryEntity):
            raise ValueError("Entity does not belong to this tree")
        if entity is self._root or entity.parent is self._root:
            raise ValueError(f"Cannot destroy {entity.name}")
        if not entity.is_valid:
            return

        removing = self._signals[HostEvent.DESCENDANT_REMOVING]
        removing.fire(entity)
        for descendant in _walk(entity):
            removing.fire(descendant)

        if entity._parent is not None:
            entity._parent._children.remove(entity)
        entity._parent = None
        for node in [entity, *_walk(entity)]:
            node._valid = False
        self._selection = [e for e in self._selection if e.is_valid]

    def subscribe(self, event: HostEvent, callback: Callable[..., None]) -> MemoryConnection:
        return self._signals[event].connect(callback)

    def selection(self) -> List[InMemoryEntity]:
        return list(self._selection)

    def select(self, *entities: InMemoryEntity) -> None:
        """Replace the selection and fire SELECTION_CHANGED."""
        self._selection = [e for e in entities if e.is_valid]
        self._signals[HostEvent.SELECTION_CHANGED].fire()

    def undo(self, waypoint: str = "Undo") -> None:
        self._signals[HostEvent.UNDO].fire(waypoint)

    def redo(self, waypoint: str = "Redo") -> None:
        self._signals[HostEvent.REDO].fire(waypoint)


def _walk(entity: InMemoryEntity) -> List[InMemoryEntity]:
    result: List[InMemoryEntity] = []
    stack = list(reversed(entity._children))
    while stack:
        node = stack.pop()
        result.append(node)
        stack.extend(reversed(node._children))
    return result
