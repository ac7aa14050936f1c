"""
Serialized records and change records.

A SerializedRecord is the JSON-ready description of one entity: a full
record (with children), a depth stub, a single-field delta or a light
record. A ChangeRecord pairs a record with the pending action for its path.

Wire keys are PascalCase and optional fields that are unset are omitted
from the wire form.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ChangeAction(str, Enum):
    """Pending action for a path."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class ChangeType(str, Enum):
    """Marker describing what kind of mutation produced a record."""

    PROPERTY = "Property"
    ATTRIBUTE = "Attribute"
    ADD = "Add"
    REMOVE = "Remove"
    OTHER = "Other"


@dataclass(frozen=True)
class SerializedRecord:
    """JSON-ready description of one entity.

    Attributes:
        name: Entity name
        class_name: Entity class
        path: Full path (identity key)
        parent_path: Parent's full path, None for services
        properties: Encoded property values by name
        attributes: Encoded attribute values by name
        tags: Tags (full records only)
        children: Child records (full records only)
        changed_property: Set on property deltas
        changed_attribute: Set on attribute deltas
        attribute_types: Type names for attributes whose wire form is
            ambiguous (BrickColor, Vector3int16, Axes, Faces, Instance)
        change_type: Marker set by change capture
        max_depth_reached: Set on depth stubs
    """

    name: str
    class_name: str
    path: str
    parent_path: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None
    attributes: Optional[Dict[str, Any]] = None
    tags: Optional[Tuple[str, ...]] = None
    children: Optional[Tuple[SerializedRecord, ...]] = None
    changed_property: Optional[str] = None
    changed_attribute: Optional[str] = None
    change_type: Optional[ChangeType] = None
    max_depth_reached: bool = False
    attribute_types: Optional[Dict[str, str]] = None

    def with_change_type(self, change_type: ChangeType) -> SerializedRecord:
        return replace(self, change_type=change_type)

    def count(self) -> int:
        """Number of records in this subtree, this one included."""
        return 1 + sum(child.count() for child in self.children or ())

    def overlay(self, other: SerializedRecord) -> SerializedRecord:
        """Merge the fields of another record for the same entity into this one.

        Identity fields, properties and attributes from `other` win. A
        property or attribute named by a delta marker of `other` but absent
        from it was cleared and is dropped. Delta markers are cleared.
        """
        properties = dict(self.properties or {})
        properties.update(other.properties or {})
        attributes = dict(self.attributes or {})
        attributes.update(other.attributes or {})
        attribute_types = dict(self.attribute_types or {})
        for name in other.attributes or {}:
            attribute_types.pop(name, None)
        attribute_types.update(other.attribute_types or {})
        cleared = other.changed_property
        if cleared is not None and cleared not in (other.properties or {}):
            properties.pop(cleared, None)
        removed = other.changed_attribute
        if removed is not None and removed not in (other.attributes or {}):
            attributes.pop(removed, None)
            attribute_types.pop(removed, None)
        return replace(
            self,
            name=other.name,
            path=other.path,
            parent_path=other.parent_path,
            properties=properties,
            attributes=attributes,
            attribute_types=attribute_types or None,
            changed_property=None,
            changed_attribute=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary."""
        if self.max_depth_reached:
            return {
                "Name": self.name,
                "ClassName": self.class_name,
                "Path": self.path,
                "_MaxDepthReached": True,
            }

        data: Dict[str, Any] = {
            "Name": self.name,
            "ClassName": self.class_name,
            "Path": self.path,
        }
        if self.parent_path is not None:
            data["ParentPath"] = self.parent_path
        if self.changed_property is not None:
            data["ChangedProperty"] = self.changed_property
        if self.changed_attribute is not None:
            data["ChangedAttribute"] = self.changed_attribute
        if self.properties is not None:
            data["Properties"] = dict(self.properties)
        if self.attributes is not None:
            data["Attributes"] = dict(self.attributes)
        if self.attribute_types:
            data["AttributeTypes"] = dict(self.attribute_types)
        if self.tags is not None:
            data["Tags"] = list(self.tags)
        if self.children is not None:
            data["Children"] = [child.to_dict() for child in self.children]
        if self.change_type is not None:
            data["ChangeType"] = self.change_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SerializedRecord:
        """Create from a wire dictionary.

        Raises:
            KeyError: If ClassName or Path is missing
        """
        path = data["Path"]
        children = data.get("Children")
        change_type = data.get("ChangeType")
        return cls(
            name=data.get("Name") or path.rsplit(".", 1)[-1],
            class_name=data["ClassName"],
            path=path,
            parent_path=data.get("ParentPath"),
            properties=data.get("Properties"),
            attributes=data.get("Attributes"),
            tags=tuple(data["Tags"]) if data.get("Tags") is not None else None,
            children=tuple(cls.from_dict(c) for c in children) if children is not None else None,
            changed_property=data.get("ChangedProperty"),
            changed_attribute=data.get("ChangedAttribute"),
            change_type=ChangeType(change_type) if change_type in _CHANGE_TYPES else None,
            max_depth_reached=bool(data.get("_MaxDepthReached", False)),
            attribute_types=data.get("AttributeTypes") or None,
        )


_CHANGE_TYPES = {t.value for t in ChangeType}


@dataclass(frozen=True)
class ChangeRecord:
    """A pending change for one path.

    Attributes:
        action: add, update or delete
        path: Full path of the entity
        record: Serialized entity (None for deletes)
    """

    action: ChangeAction
    path: str
    record: Optional[SerializedRecord] = None

    def instances(self) -> List[Dict[str, Any]]:
        """The `Instances` list sent on the wire for this change."""
        if self.action is ChangeAction.DELETE or self.record is None:
            return [{"Path": self.path}]
        return [self.record.to_dict()]


@dataclass(frozen=True)
class Snapshot:
    """Full hierarchy snapshot.

    Attributes:
        timestamp: Capture time (epoch seconds)
        plugin_version: Version tag
        project_id: Project key
        services: Serialized service records by service name
    """

    timestamp: float
    plugin_version: str
    project_id: str
    services: Dict[str, SerializedRecord] = field(default_factory=dict)

    @property
    def instance_count(self) -> int:
        return sum(record.count() for record in self.services.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Timestamp": self.timestamp,
            "PluginVersion": self.plugin_version,
            "ProjectId": self.project_id,
            "Services": {name: record.to_dict() for name, record in self.services.items()},
        }
