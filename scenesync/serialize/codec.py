"""
Typed value codec.

Converts host values to their JSON wire form and back. The wire layout is
fixed per value type (see encode()); decoding is driven by the shape of the
JSON value, with an optional hint (the target's current value or a value
type) for the shapes that are ambiguous on the wire:

- {X, Y, Z} is a Vector3 unless the hint says Vector3int16
- a number is a number unless the hint says BrickColor or EnumItem
- a string is a string unless the hint says Axes, Faces or an entity
  reference (resolved through the `resolve` callback)

Invariants:
    - encode() never raises: unknown types fall back to str() with a warning
    - decode(encode(v), hint=v) == v for every supported type
    - decode() raises SerializationError for shapes it does not recognize

How to change safely:
    - New types need an encoder, a decoder branch and a round-trip test
    - Never change an existing wire layout; remote stores hold old records
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from ..errors import SerializationError
from ..host.base import Entity
from .types import (
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

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (str, int, float, bool)

_CFRAME_KEYS = ("X", "Y", "Z", "R00", "R01", "R02", "R10", "R11", "R12", "R20", "R21", "R22")

Resolver = Callable[[str], Optional[Entity]]

# Types whose wire form is shared with another type. Attributes carry no
# declared type, so records name these explicitly (AttributeTypes).
AMBIGUOUS_TYPES: Dict[str, Any] = {
    "BrickColor": BrickColor,
    "Vector3int16": Vector3int16,
    "Axes": Axes,
    "Faces": Faces,
    "Instance": Entity,
}


def is_primitive(value: Any) -> bool:
    """Whether a value is sent verbatim (string, number or boolean)."""
    return isinstance(value, PRIMITIVE_TYPES)


def type_name(value: Any) -> Optional[str]:
    """Name of an ambiguous value's type, None for every other value."""
    if isinstance(value, Entity):
        return "Instance"
    for name, value_type in AMBIGUOUS_TYPES.items():
        if value_type is not Entity and type(value) is value_type:
            return name
    return None


def type_for_name(name: Optional[str]) -> Any:
    """Hint for decode() from a name returned by type_name()."""
    return AMBIGUOUS_TYPES.get(name) if isinstance(name, str) else None


def _vec3(v: Vector3) -> Dict[str, float]:
    return {"X": v.x, "Y": v.y, "Z": v.z}


def _vec2(v: Vector2) -> Dict[str, float]:
    return {"X": v.x, "Y": v.y}


def _color(c: Color3) -> Dict[str, float]:
    return {"R": c.r, "G": c.g, "B": c.b}


_ENCODERS: Dict[type, Callable[[Any], Any]] = {
    Vector3: _vec3,
    Vector3int16: lambda v: {"X": v.x, "Y": v.y, "Z": v.z},
    Vector2: _vec2,
    Color3: _color,
    CFrame: lambda v: dict(zip(_CFRAME_KEYS, v.components())),
    UDim: lambda v: {"Scale": v.scale, "Offset": v.offset},
    UDim2: lambda v: {
        "XScale": v.x.scale,
        "XOffset": v.x.offset,
        "YScale": v.y.scale,
        "YOffset": v.y.offset,
    },
    EnumItem: lambda v: {"EnumType": v.enum_type, "Value": v.value},
    BrickColor: lambda v: v.number,
    Rect: lambda v: {"Min": _vec2(v.min), "Max": _vec2(v.max)},
    NumberSequence: lambda v: [
        {"Time": kp.time, "Value": kp.value, "Envelope": kp.envelope} for kp in v.keypoints
    ],
    ColorSequence: lambda v: [
        {"Time": kp.time, "Value": _color(kp.value)} for kp in v.keypoints
    ],
    NumberRange: lambda v: {"Min": v.min, "Max": v.max},
    PhysicalProperties: lambda v: {
        "Density": v.density,
        "Friction": v.friction,
        "Elasticity": v.elasticity,
        "FrictionWeight": v.friction_weight,
        "ElasticityWeight": v.elasticity_weight,
    },
    Ray: lambda v: {"Origin": _vec3(v.origin), "Direction": _vec3(v.direction)},
    Region3: lambda v: {"Min": _vec3(v.min), "Max": _vec3(v.max)},
    Font: lambda v: {"Family": v.family, "Weight": v.weight, "Style": v.style},
    PathWaypoint: lambda v: {"Position": _vec3(v.position), "Action": v.action},
    Axes: str,
    Faces: str,
}


def encode(value: Any) -> Any:
    """Convert a host value to its JSON wire form.

    Args:
        value: Any property or attribute value

    Returns:
        A JSON-compatible value. Unsupported types are rendered with str()
        and reported with a warning.
    """
    if value is None or is_primitive(value):
        return value

    encoder = _ENCODERS.get(type(value))
    if encoder is not None:
        return encoder(value)

    if isinstance(value, Entity):
        return value.full_name() if value.is_valid else None

    logger.warning(
        f"Fallback serialization for value of type {type(value).__name__}",
        extra={"value_type": type(value).__name__},
    )
    return str(value)


def _hint_type(hint: Any) -> Optional[type]:
    if hint is None or hint is Entity:
        return None
    return hint if isinstance(hint, type) else type(hint)


def _number(data: Dict[str, Any], key: str) -> float:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SerializationError(f"Field {key} must be a number, got {value!r}")
    return value


def _decode_vec3(data: Any) -> Vector3:
    if not isinstance(data, dict):
        raise SerializationError(f"Expected {{X, Y, Z}}, got {data!r}", value_type="Vector3")
    return Vector3(_number(data, "X"), _number(data, "Y"), _number(data, "Z"))


def _decode_vec2(data: Any) -> Vector2:
    if not isinstance(data, dict):
        raise SerializationError(f"Expected {{X, Y}}, got {data!r}", value_type="Vector2")
    return Vector2(_number(data, "X"), _number(data, "Y"))


def _decode_color(data: Any) -> Color3:
    if not isinstance(data, dict):
        raise SerializationError(f"Expected {{R, G, B}}, got {data!r}", value_type="Color3")
    return Color3(_number(data, "R"), _number(data, "G"), _number(data, "B"))


def _decode_udim(data: Any) -> UDim:
    if not isinstance(data, dict):
        raise SerializationError(f"Expected {{Scale, Offset}}, got {data!r}", value_type="UDim")
    return UDim(_number(data, "Scale"), int(_number(data, "Offset")))


def _decode_sequence(items: List[Any], hint_type: Optional[type]) -> Any:
    if not items:
        if hint_type is ColorSequence:
            return ColorSequence(())
        if hint_type is NumberSequence:
            return NumberSequence(())
        return []

    if not all(isinstance(kp, dict) and "Time" in kp and "Value" in kp for kp in items):
        raise SerializationError("List values must be sequences of {Time, Value} keypoints")

    if isinstance(items[0]["Value"], dict):
        return ColorSequence(
            tuple(
                ColorSequenceKeypoint(_number(kp, "Time"), _decode_color(kp["Value"]))
                for kp in items
            )
        )
    return NumberSequence(
        tuple(
            NumberSequenceKeypoint(
                _number(kp, "Time"),
                _number(kp, "Value"),
                kp.get("Envelope", 0.0),
            )
            for kp in items
        )
    )


def _decode_mapping(data: Dict[str, Any], hint_type: Optional[type]) -> Any:
    keys = set(data)

    if keys == {"EnumType", "Value"}:
        return EnumItem(str(data["EnumType"]), int(_number(data, "Value")))
    if all(k in keys for k in _CFRAME_KEYS):
        return CFrame(*(_number(data, k) for k in _CFRAME_KEYS))
    if keys == {"XScale", "XOffset", "YScale", "YOffset"}:
        return UDim2(
            UDim(_number(data, "XScale"), int(_number(data, "XOffset"))),
            UDim(_number(data, "YScale"), int(_number(data, "YOffset"))),
        )
    if keys == {"X", "Y"} and isinstance(data["X"], dict):
        return UDim2(_decode_udim(data["X"]), _decode_udim(data["Y"]))
    if keys == {"Scale", "Offset"}:
        return _decode_udim(data)
    if keys == {"X", "Y", "Z"}:
        if hint_type is Vector3int16:
            return Vector3int16(int(_number(data, "X")), int(_number(data, "Y")), int(_number(data, "Z")))
        return _decode_vec3(data)
    if keys == {"X", "Y"}:
        return _decode_vec2(data)
    if keys == {"R", "G", "B"}:
        return _decode_color(data)
    if keys == {"Min", "Max"}:
        low, high = data["Min"], data["Max"]
        if isinstance(low, dict):
            if "Z" in low:
                return Region3(_decode_vec3(low), _decode_vec3(high))
            return Rect(_decode_vec2(low), _decode_vec2(high))
        return NumberRange(_number(data, "Min"), _number(data, "Max"))
    if keys == {"Density", "Friction", "Elasticity", "FrictionWeight", "ElasticityWeight"}:
        return PhysicalProperties(
            _number(data, "Density"),
            _number(data, "Friction"),
            _number(data, "Elasticity"),
            _number(data, "FrictionWeight"),
            _number(data, "ElasticityWeight"),
        )
    if keys == {"Origin", "Direction"}:
        return Ray(_decode_vec3(data["Origin"]), _decode_vec3(data["Direction"]))
    if keys == {"Family", "Weight", "Style"}:
        return Font(str(data["Family"]), int(_number(data, "Weight")), int(_number(data, "Style")))
    if keys == {"Position", "Action"}:
        return PathWaypoint(_decode_vec3(data["Position"]), int(_number(data, "Action")))

    raise SerializationError(f"Unrecognized value shape with keys {sorted(keys)}")


def decode(
    data: Any,
    hint: Any = None,
    resolve: Optional[Resolver] = None,
) -> Any:
    """Convert a JSON wire value back to a host value.

    Args:
        data: Decoded JSON value
        hint: Current value of the target (or a value type) used to
            disambiguate shapes shared by several types
        resolve: Path resolver used when the hint is an entity reference

    Returns:
        The host value

    Raises:
        SerializationError: If the shape is not a known wire layout
    """
    if data is None:
        return None

    hint_type = _hint_type(hint)

    if isinstance(data, bool):
        return data
    if isinstance(data, (int, float)):
        if hint_type is BrickColor:
            return BrickColor(int(data))
        if hint_type is EnumItem and isinstance(hint, EnumItem):
            return EnumItem(hint.enum_type, int(data))
        return data
    if isinstance(data, str):
        if hint_type is Axes:
            return Axes.parse(data)
        if hint_type is Faces:
            return Faces.parse(data)
        if resolve is not None and (hint is Entity or isinstance(hint, Entity)):
            target = resolve(data)
            if target is None:
                raise SerializationError(f"Referenced entity not found: {data}", value_type="Entity")
            return target
        return data
    if isinstance(data, list):
        return _decode_sequence(data, hint_type)
    if isinstance(data, dict):
        try:
            return _decode_mapping(data, hint_type)
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(f"Malformed value {data!r}: {e}")

    raise SerializationError(f"Unsupported wire value of type {type(data).__name__}")
