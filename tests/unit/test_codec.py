"""
Unit tests for the typed value codec.

Tests cover:
- Wire layouts per value type
- Shape-directed decoding and hint disambiguation
- Entity references
- Fallbacks and malformed values
"""

import logging

import pytest

from scenesync.errors import SerializationError
from scenesync.host import Entity, InMemoryTree
from scenesync.serialize import codec
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


class TestEncode:
    """Tests for codec.encode."""

    def test_primitives_verbatim(self):
        assert codec.encode("text") == "text"
        assert codec.encode(3) == 3
        assert codec.encode(2.5) == 2.5
        assert codec.encode(True) is True
        assert codec.encode(None) is None

    def test_vector3(self):
        assert codec.encode(Vector3(1, 2, 3)) == {"X": 1, "Y": 2, "Z": 3}

    def test_cframe_has_position_and_rotation(self):
        encoded = codec.encode(CFrame(x=1, y=2, z=3))

        assert encoded["X"] == 1
        assert encoded["R00"] == 1.0
        assert encoded["R01"] == 0.0
        assert encoded["R22"] == 1.0
        assert len(encoded) == 12

    def test_udim2_is_flat(self):
        encoded = codec.encode(UDim2(UDim(0.5, 10), UDim(1.0, -4)))

        assert encoded == {"XScale": 0.5, "XOffset": 10, "YScale": 1.0, "YOffset": -4}

    def test_enum_item(self):
        encoded = codec.encode(EnumItem("Material", 256, "Plastic"))

        assert encoded == {"EnumType": "Material", "Value": 256}

    def test_brick_color_is_number(self):
        assert codec.encode(BrickColor(194, "Medium stone grey")) == 194

    def test_axes_and_faces_are_strings(self):
        assert codec.encode(Axes(("X", "Z"))) == "X, Z"
        assert codec.encode(Faces(("Top", "Bottom"))) == "Top, Bottom"

    def test_sequences_are_keypoint_lists(self):
        sequence = NumberSequence((NumberSequenceKeypoint(0, 1), NumberSequenceKeypoint(1, 0, 0.5)))

        assert codec.encode(sequence) == [
            {"Time": 0, "Value": 1, "Envelope": 0.0},
            {"Time": 1, "Value": 0, "Envelope": 0.5},
        ]

    def test_entity_reference_is_path(self):
        tree = InMemoryTree()
        part = tree.create("Part", tree.get_service("Workspace"), "Floor")

        assert codec.encode(part) == "Workspace.Floor"

        tree.destroy(part)
        assert codec.encode(part) is None

    def test_unknown_type_falls_back_to_str(self, caplog):
        class Opaque:
            def __str__(self):
                return "opaque-value"

        with caplog.at_level(logging.WARNING, logger="scenesync.serialize.codec"):
            assert codec.encode(Opaque()) == "opaque-value"
        assert "Fallback serialization" in caplog.text


class TestDecode:
    """Tests for codec.decode."""

    def test_vector3_by_shape(self):
        assert codec.decode({"X": 1, "Y": 2, "Z": 3}) == Vector3(1, 2, 3)

    def test_vector3int16_by_hint(self):
        decoded = codec.decode({"X": 1, "Y": 2, "Z": 3}, hint=Vector3int16(0, 0, 0))

        assert decoded == Vector3int16(1, 2, 3)

    def test_number_by_hint(self):
        assert codec.decode(21) == 21
        assert codec.decode(21, hint=BrickColor(194)) == BrickColor(21)
        assert codec.decode(512, hint=EnumItem("Material", 256)) == EnumItem("Material", 512)

    def test_string_by_hint(self):
        assert codec.decode("X, Y") == "X, Y"
        assert codec.decode("X, Y", hint=Axes()) == Axes(("X", "Y"))
        assert codec.decode("Top", hint=Faces) == Faces(("Top",))

    def test_min_max_shapes(self):
        assert codec.decode({"Min": 1, "Max": 2}) == NumberRange(1, 2)
        assert codec.decode({"Min": {"X": 0, "Y": 0}, "Max": {"X": 1, "Y": 1}}) == Rect(
            Vector2(0, 0), Vector2(1, 1)
        )
        region = codec.decode(
            {"Min": {"X": 0, "Y": 0, "Z": 0}, "Max": {"X": 2, "Y": 4, "Z": 6}}
        )
        assert region == Region3(Vector3(0, 0, 0), Vector3(2, 4, 6))
        assert region.size == Vector3(2, 4, 6)

    def test_nested_udim2(self):
        decoded = codec.decode({"X": {"Scale": 0.5, "Offset": 2}, "Y": {"Scale": 0, "Offset": 8}})

        assert decoded == UDim2(UDim(0.5, 2), UDim(0, 8))

    def test_color_sequence(self):
        decoded = codec.decode([{"Time": 0, "Value": {"R": 1, "G": 0, "B": 0}}])

        assert decoded == ColorSequence((ColorSequenceKeypoint(0, Color3(1, 0, 0)),))

    def test_reference_resolved_through_callback(self):
        tree = InMemoryTree()
        part = tree.create("Part", tree.get_service("Workspace"), "Floor")

        assert codec.decode("Workspace.Floor", hint=Entity, resolve=tree.find) is part

    def test_missing_reference_raises(self):
        tree = InMemoryTree()

        with pytest.raises(SerializationError):
            codec.decode("Workspace.Nope", hint=Entity, resolve=tree.find)

    def test_unknown_shape_raises(self):
        with pytest.raises(SerializationError):
            codec.decode({"Foo": 1})

    def test_malformed_field_raises(self):
        with pytest.raises(SerializationError):
            codec.decode({"X": "a", "Y": 2, "Z": 3})

    def test_partial_cframe_is_not_a_cframe(self):
        with pytest.raises(SerializationError):
            codec.decode({"X": 1, "Y": 2, "Z": 3, "R00": 1})


class TestTypeNames:
    """Tests for naming values whose wire form is ambiguous."""

    def test_ambiguous_values_are_named(self):
        tree = InMemoryTree()

        assert codec.type_name(BrickColor(194)) == "BrickColor"
        assert codec.type_name(Vector3int16(1, 2, 3)) == "Vector3int16"
        assert codec.type_name(Axes(("X",))) == "Axes"
        assert codec.type_name(Faces(("Top",))) == "Faces"
        assert codec.type_name(tree.get_service("Workspace")) == "Instance"

    def test_unambiguous_values_are_not_named(self):
        assert codec.type_name(Vector3(1, 2, 3)) is None
        assert codec.type_name(12) is None
        assert codec.type_name("text") is None
        assert codec.type_name(EnumItem("Material", 256)) is None

    def test_name_decodes_without_current_value(self):
        assert codec.decode(21, hint=codec.type_for_name("BrickColor")) == BrickColor(21)
        assert codec.decode(
            {"X": 1, "Y": 2, "Z": 3}, hint=codec.type_for_name("Vector3int16")
        ) == Vector3int16(1, 2, 3)
        assert codec.type_for_name("Instance") is Entity

    def test_unknown_name_gives_no_hint(self):
        assert codec.type_for_name("Nope") is None
        assert codec.type_for_name(None) is None
        assert codec.type_for_name(["BrickColor"]) is None


class TestRoundTrip:
    """Encoding then decoding with the original value as hint is lossless."""

    @pytest.mark.parametrize(
        "value",
        [
            CFrame(1, 2, 3, 0, -1, 0, 1, 0, 0, 0, 0, 1),
            Color3(0.2, 0.4, 0.6),
            UDim2(UDim(0.25, 4), UDim(0.75, -2)),
            EnumItem("Material", 512),
            BrickColor(21),
            PhysicalProperties(0.7, 0.3, 0.5),
            Ray(Vector3(0, 1, 0), Vector3(0, -1, 0)),
            Font("rbxasset://fonts/families/Arial.json", 700, 1),
            Faces(("Top", "Front")),
        ],
    )
    def test_round_trip(self, value):
        assert codec.decode(codec.encode(value), hint=value) == value
