"""
Entity serializer.

Turns live entities into SerializedRecords:

- serialize_full(): entity and filtered subtree, bounded by max_depth
- serialize_property_delta() / serialize_attribute_delta(): identity fields
  plus the single changed field
- serialize_light(): identity fields plus a few essential properties, no
  children
- serialize_hierarchy(): full snapshot of the configured services

Invariants:
    - Serialization never raises for a valid entity: a failing property read
      omits that property, an unsupported value falls back to str()
    - Direct children of the root (services) are always serialized; other
      entities that fail the filter contribute nothing to their parent
    - serialize_full() normalizes the quality attribute and writes the
      default back to the entity when it is missing or of the wrong kind.
      This is the only write serialization performs.

How to change safely:
    - Record layouts are part of the wire contract; add fields, never
      rename them
    - Keep every host read inside _read() so failures stay per-property
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..config import SerializerConfig
from ..errors import SerializationError
from ..host.base import Entity, HostTree
from . import codec
from .records import SerializedRecord, Snapshot

if TYPE_CHECKING:
    from ..capture.filter import CategoryFilter

logger = logging.getLogger(__name__)

LIGHT_PART_PROPERTIES = ("CFrame", "Size", "Material")

_MISSING = object()


def _is_service(entity: Entity) -> bool:
    parent = entity.parent
    return parent is not None and parent.parent is None


def _parent_path(entity: Entity) -> Optional[str]:
    parent = entity.parent
    if parent is None or parent.parent is None:
        return None
    return parent.full_name()


class Serializer:
    """Converts entities to SerializedRecords.

    Attributes:
        config: Serializer configuration
        filter: Category filter deciding which descendants are included
    """

    def __init__(self, config: SerializerConfig, filter: "CategoryFilter") -> None:
        self.config = config
        self.filter = filter

    def serialize_full(self, entity: Entity, depth: int = 0) -> Optional[SerializedRecord]:
        """Serialize an entity and its synced descendants.

        Args:
            entity: Entity to serialize
            depth: Current recursion depth

        Returns:
            The record, a depth stub past max_depth, or None if the entity is
            filtered out or no longer valid
        """
        if not entity.is_valid:
            return None

        path = entity.full_name()
        if depth > self.config.max_depth:
            logger.warning(f"Max serialization depth reached for {path}")
            return SerializedRecord(
                name=entity.name,
                class_name=entity.class_name,
                path=path,
                max_depth_reached=True,
            )

        is_service = _is_service(entity)
        if not is_service and not self.filter.should_sync_entity(entity):
            logger.debug(f"Skipping sync for filtered instance: {entity.class_name} - {entity.name}")
            return None

        properties = self._read_properties(entity, include_name=not is_service)
        attributes, attribute_types = self._encode_attributes(entity)
        self._normalize_quality(entity, attributes)
        attribute_types.pop(self.config.quality_attribute, None)

        children = []
        for child in entity.children():
            child_record = self.serialize_full(child, depth + 1)
            if child_record is not None:
                children.append(child_record)

        return SerializedRecord(
            name=entity.name,
            class_name=entity.class_name,
            path=path,
            parent_path=_parent_path(entity),
            properties=properties,
            attributes=attributes,
            tags=tuple(entity.tags()),
            children=tuple(children),
            attribute_types=attribute_types or None,
        )

    def serialize_property_delta(self, entity: Entity, property_name: str) -> SerializedRecord:
        """Identity fields plus one property."""
        properties: Dict[str, Any] = {}
        value = self._read(entity, property_name)
        if value is not _MISSING and value is not None:
            properties[property_name] = codec.encode(value)
        return SerializedRecord(
            name=entity.name,
            class_name=entity.class_name,
            path=entity.full_name(),
            parent_path=_parent_path(entity),
            properties=properties,
            attributes={},
            changed_property=property_name,
        )

    def serialize_attribute_delta(self, entity: Entity, attribute_name: str) -> SerializedRecord:
        """Identity fields plus one attribute (absent if it was removed)."""
        attributes: Dict[str, Any] = {}
        attribute_types: Dict[str, str] = {}
        value = entity.get_attribute(attribute_name)
        if value is not None:
            attributes[attribute_name] = codec.encode(value)
            tag = codec.type_name(value)
            if tag is not None:
                attribute_types[attribute_name] = tag
        return SerializedRecord(
            name=entity.name,
            class_name=entity.class_name,
            path=entity.full_name(),
            parent_path=_parent_path(entity),
            attributes=attributes,
            changed_attribute=attribute_name,
            attribute_types=attribute_types or None,
        )

    def serialize_light(self, entity: Entity) -> SerializedRecord:
        """Identity fields plus essential properties, without children.

        Carries Archivable, and for parts their placement (CFrame, Size,
        Material), plus every primitive-valued attribute.
        """
        properties: Dict[str, Any] = {}
        archivable = self._read(entity, "Archivable")
        properties["Archivable"] = True if archivable is _MISSING else archivable

        if entity.is_a("BasePart"):
            for name in LIGHT_PART_PROPERTIES:
                value = self._read(entity, name)
                if value is not _MISSING and value is not None:
                    properties[name] = codec.encode(value)

        attributes = {
            name: value for name, value in entity.attributes().items() if codec.is_primitive(value)
        }
        return SerializedRecord(
            name=entity.name,
            class_name=entity.class_name,
            path=entity.full_name(),
            parent_path=_parent_path(entity),
            properties=properties,
            attributes=attributes,
        )

    def serialize_hierarchy(
        self,
        tree: HostTree,
        *,
        project_id: str,
        plugin_version: str,
        timestamp: float,
    ) -> Snapshot:
        """Serialize every configured service into a snapshot."""
        services: Dict[str, SerializedRecord] = {}
        for service_name in self.config.services:
            service = tree.get_service(service_name)
            if service is None:
                logger.debug(f"Service not found: {service_name}")
                continue
            record = self.serialize_full(service, 0)
            if record is None:
                logger.warning(f"Failed to serialize {service_name}")
                continue
            services[service_name] = record

        snapshot = Snapshot(
            timestamp=timestamp,
            plugin_version=plugin_version,
            project_id=project_id,
            services=services,
        )
        logger.info(
            f"Serialized {snapshot.instance_count} instances across {len(services)} services",
            extra={"instances": snapshot.instance_count, "services": len(services)},
        )
        return snapshot

    def _read(self, entity: Entity, name: str) -> Any:
        try:
            return entity.get_property(name)
        except Exception as e:
            logger.debug(f"Property {name} unreadable on {entity.full_name()}: {e}")
            return _MISSING

    def _read_properties(self, entity: Entity, include_name: bool) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        archivable = self._read(entity, "Archivable")
        properties["Archivable"] = True if archivable is _MISSING else archivable

        for name in entity.property_names():
            if name in ("Parent", "Archivable") or (name == "Name" and not include_name):
                continue
            value = self._read(entity, name)
            if value is _MISSING or value is None:
                continue
            try:
                properties[name] = codec.encode(value)
            except SerializationError as e:
                logger.debug(f"Property {name} not serializable: {e.message}")
        return properties

    def _encode_attributes(self, entity: Entity) -> Tuple[Dict[str, Any], Dict[str, str]]:
        attributes: Dict[str, Any] = {}
        attribute_types: Dict[str, str] = {}
        for name, value in entity.attributes().items():
            try:
                attributes[name] = codec.encode(value)
            except SerializationError as e:
                logger.debug(f"Attribute {name} not serializable: {e.message}")
                continue
            tag = codec.type_name(value)
            if tag is not None:
                attribute_types[name] = tag
        return attributes, attribute_types

    def _normalize_quality(self, entity: Entity, attributes: Dict[str, Any]) -> None:
        cfg = self.config
        name = cfg.quality_attribute
        value = attributes.get(name)

        if value is None:
            attributes[name] = cfg.quality_default
            self._write_quality(entity, name, cfg.quality_default)
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(
                f"Invalid {name} type for {entity.full_name()}. Resetting to {cfg.quality_default}."
            )
            attributes[name] = cfg.quality_default
            self._write_quality(entity, name, cfg.quality_default)
        else:
            attributes[name] = min(max(value, cfg.quality_min), cfg.quality_max)

    def _write_quality(self, entity: Entity, name: str, value: int) -> None:
        try:
            entity.set_attribute(name, value)
        except Exception as e:
            logger.warning(f"Could not write {name} on {entity.full_name()}: {e}")
