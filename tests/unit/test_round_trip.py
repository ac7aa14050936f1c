"""
Round-trip tests from a live entity to a rebuilt one.

Each value is set on an entity, serialized with Serializer.serialize_full,
passed through JSON, applied as an add by the Reconciler to an empty tree
and read back from the rebuilt entity.

Tests cover:
- Every value type carried by attributes, including the ones whose wire
  form is shared with another type
- Property values, typed through the declared property type
- Entity references in properties and attributes
"""

import json

import pytest

from scenesync.apply import Reconciler
from scenesync.capture.filter import CategoryFilter
from scenesync.config import CategorySettings, SerializerConfig, SyncConfig
from scenesync.host import InMemoryTree
from scenesync.remote import parse_changes
from scenesync.serialize import Serializer
from scenesync.serialize.types import (
    Axes,
    BrickColor,
    CFrame,
    Color3,
    ColorSequence,
    ColorSequenceKeypoint,
    EnumItem,
    Faces,
    Font,
    NumberRange,
    NumberSequence,
    NumberSequenceKeypoint,
    PathWaypoint,
    PhysicalProperties,
    Ray,
    Rect,
    Region3,
    UDim,
    UDim2,
    Vector2,
    Vector3,
    Vector3int16,
)

ATTRIBUTE_VALUES = [
    pytest.param("text", id="string"),
    pytest.param(42, id="int"),
    pytest.param(2.5, id="float"),
    pytest.param(True, id="bool"),
    pytest.param(Vector3(1.5, -2.0, 3.0), id="Vector3"),
    pytest.param(Vector3int16(1, 2, 3), id="Vector3int16"),
    pytest.param(Vector2(0.5, 4.0), id="Vector2"),
    pytest.param(Color3(0.25, 0.5, 1.0), id="Color3"),
    pytest.param(CFrame(1.0, 2.0, 3.0, 0.0, -1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0), id="CFrame"),
    pytest.param(UDim(0.5, 10), id="UDim"),
    pytest.param(UDim2(UDim(0.5, 10), UDim(0.25, -4)), id="UDim2"),
    pytest.param(EnumItem("Material", 512, "Wood"), id="EnumItem"),
    pytest.param(BrickColor(194, "Medium stone grey"), id="BrickColor"),
    pytest.param(Rect(Vector2(0.0, 0.0), Vector2(10.0, 20.0)), id="Rect"),
    pytest.param(
        NumberSequence((NumberSequenceKeypoint(0.0, 1.0), NumberSequenceKeypoint(1.0, 0.0, 0.5))),
        id="NumberSequence",
    ),
    pytest.param(
        ColorSequence(
            (
                ColorSequenceKeypoint(0.0, Color3(1.0, 0.0, 0.0)),
                ColorSequenceKeypoint(1.0, Color3(0.0, 0.0, 1.0)),
            )
        ),
        id="ColorSequence",
    ),
    pytest.param(NumberRange(1.0, 5.0), id="NumberRange"),
    pytest.param(PhysicalProperties(0.7, 0.3, 0.5, 1.0, 1.0), id="PhysicalProperties"),
    pytest.param(Ray(Vector3(0.0, 5.0, 0.0), Vector3(0.0, -1.0, 0.0)), id="Ray"),
    pytest.param(Region3(Vector3(-1.0, -1.0, -1.0), Vector3(1.0, 2.0, 3.0)), id="Region3"),
    pytest.param(Font("rbxasset://fonts/families/Arial.json", 700, 1), id="Font"),
    pytest.param(PathWaypoint(Vector3(4.0, 0.0, 2.0), 1), id="PathWaypoint"),
    pytest.param(Axes(("X", "Z")), id="Axes"),
    pytest.param(Faces(("Top", "Bottom")), id="Faces"),
]

PROPERTY_VALUES = [
    pytest.param("IntValue", "ServerStorage", "Value", 7, id="int"),
    pytest.param("NumberValue", "ServerStorage", "Value", 2.5, id="float"),
    pytest.param("BoolValue", "ServerStorage", "Value", True, id="bool"),
    pytest.param("StringValue", "ServerStorage", "Value", "hello", id="string"),
    pytest.param("Vector3Value", "ServerStorage", "Value", Vector3(1.5, 2.0, 3.0), id="Vector3"),
    pytest.param("CFrameValue", "ServerStorage", "Value", CFrame(1.0, 2.0, 3.0), id="CFrame"),
    pytest.param("Color3Value", "ServerStorage", "Value", Color3(0.1, 0.2, 0.3), id="Color3"),
    pytest.param("BrickColorValue", "ServerStorage", "Value", BrickColor(21, "Bright red"), id="BrickColor"),
    pytest.param("Frame", "StarterGui", "Position", UDim2(UDim(0.5, 10), UDim(0.0, 20)), id="UDim2"),
    pytest.param("Frame", "StarterGui", "AnchorPoint", Vector2(0.5, 0.5), id="Vector2"),
    pytest.param("TextLabel", "StarterGui", "Font", Font("rbxasset://fonts/families/Arial.json", 700), id="Font"),
    pytest.param("Script", "ServerScriptService", "Source", "print('hello')", id="Source"),
    pytest.param("Decal", "ServerStorage", "Face", EnumItem("NormalId", 1, "Top"), id="EnumItem"),
]


@pytest.fixture
def source():
    """Create the tree values are serialized from."""
    return InMemoryTree()


@pytest.fixture
def target():
    """Create the empty tree values are rebuilt in."""
    return InMemoryTree()


@pytest.fixture
def serializer():
    """Create a serializer with every category enabled."""
    settings = CategorySettings()
    for category in settings.categories:
        settings = settings.with_enabled(category.name, True)
    return Serializer(SerializerConfig(), CategoryFilter(settings))


@pytest.fixture
def reconciler(target):
    """Create a reconciler writing to the target tree."""
    return Reconciler(SyncConfig(apply_remote_changes=True, session_id="session-local"), target)


def rebuild(serializer, reconciler, target, entity):
    record = serializer.serialize_full(entity)
    wire = json.loads(json.dumps(record.to_dict()))
    payload = {
        "1700000000000": {
            "Action": "BatchInstanceChanged",
            "Changes": [
                {
                    "Action": "add",
                    "InstancePath": record.path,
                    "Timestamp": 10.0,
                    "Instances": [wire],
                }
            ],
            "SessionId": "session-remote",
        }
    }
    parsed, _ = parse_changes(payload)
    report = reconciler.apply(parsed)
    assert report.applied == 1
    assert report.skipped_values == 0
    return target.find(record.path)


class TestAttributeRoundTrip:
    """Tests for attribute values surviving serialize, JSON and apply."""

    @pytest.mark.parametrize("value", ATTRIBUTE_VALUES)
    def test_attribute_value(self, source, target, serializer, reconciler, value):
        holder = source.create("Script", source.get_service("ServerScriptService"), "Main")
        holder.set_attribute("Value", value)

        rebuilt = rebuild(serializer, reconciler, target, holder)

        assert rebuilt.class_name == "Script"
        assert rebuilt.get_attribute("Value") == value
        assert type(rebuilt.get_attribute("Value")) is type(value)

    def test_entity_reference_attribute(self, source, target, serializer, reconciler):
        holder = source.create("Script", source.get_service("ServerScriptService"), "Main")
        holder.set_attribute("Target", source.get_service("Workspace"))

        rebuilt = rebuild(serializer, reconciler, target, holder)

        assert rebuilt.get_attribute("Target") is target.get_service("Workspace")

    def test_ambiguous_types_named_on_wire(self, source, serializer):
        holder = source.create("Script", source.get_service("ServerScriptService"), "Main")
        holder.set_attribute("Team", BrickColor(194))
        holder.set_attribute("Cell", Vector3int16(1, 2, 3))
        holder.set_attribute("Offset", Vector3(1.0, 2.0, 3.0))
        holder.set_attribute("Speed", 12)

        data = serializer.serialize_full(holder).to_dict()

        assert data["Attributes"]["Team"] == 194
        assert data["Attributes"]["Cell"] == {"X": 1, "Y": 2, "Z": 3}
        assert data["AttributeTypes"] == {"Team": "BrickColor", "Cell": "Vector3int16"}


class TestPropertyRoundTrip:
    """Tests for property values surviving serialize, JSON and apply."""

    @pytest.mark.parametrize("class_name,service,name,value", PROPERTY_VALUES)
    def test_property_value(self, source, target, serializer, reconciler, class_name, service, name, value):
        entity = source.create(class_name, source.get_service(service), "Item")
        entity.set_property(name, value)

        rebuilt = rebuild(serializer, reconciler, target, entity)

        assert rebuilt.class_name == class_name
        assert rebuilt.get_property(name) == value
        assert type(rebuilt.get_property(name)) is type(value)

    def test_entity_reference_property(self, source, target, serializer, reconciler):
        holder = source.create("ObjectValue", source.get_service("ServerStorage"), "Link")
        holder.set_property("Value", source.get_service("Lighting"))

        rebuilt = rebuild(serializer, reconciler, target, holder)

        assert rebuilt.get_property("Value") is target.get_service("Lighting")
