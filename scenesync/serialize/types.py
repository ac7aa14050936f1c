"""
Typed host values.

Immutable value types for the structured property and attribute values a
scene tree carries (vectors, colors, frames, UI dimensions, sequences and
so on). The codec converts each of them to and from a fixed JSON layout.

Invariants:
    - All value types are frozen and hashable
    - Equality ignores display-only fields (enum and brick color names),
      so a decoded value equals the original
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)


@dataclass(frozen=True)
class Vector3int16:
    x: int = 0
    y: int = 0
    z: int = 0


@dataclass(frozen=True)
class Vector2:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Color3:
    """RGB color with components in [0, 1]."""

    r: float = 0.0
    g: float = 0.0
    b: float = 0.0


@dataclass(frozen=True)
class CFrame:
    """Position plus a row-major 3x3 rotation matrix."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    r00: float = 1.0
    r01: float = 0.0
    r02: float = 0.0
    r10: float = 0.0
    r11: float = 1.0
    r12: float = 0.0
    r20: float = 0.0
    r21: float = 0.0
    r22: float = 1.0

    @property
    def position(self) -> Vector3:
        return Vector3(self.x, self.y, self.z)

    def components(self) -> Tuple[float, ...]:
        return (
            self.x, self.y, self.z,
            self.r00, self.r01, self.r02,
            self.r10, self.r11, self.r12,
            self.r20, self.r21, self.r22,
        )


@dataclass(frozen=True)
class UDim:
    scale: float = 0.0
    offset: int = 0


@dataclass(frozen=True)
class UDim2:
    x: UDim = UDim()
    y: UDim = UDim()


@dataclass(frozen=True)
class EnumItem:
    """A member of a host enumeration, identified by type name and value."""

    enum_type: str
    value: int
    name: str = field(default="", compare=False)


@dataclass(frozen=True)
class BrickColor:
    number: int
    name: str = field(default="", compare=False)


@dataclass(frozen=True)
class Rect:
    min: Vector2 = Vector2()
    max: Vector2 = Vector2()


@dataclass(frozen=True)
class NumberSequenceKeypoint:
    time: float
    value: float
    envelope: float = 0.0


@dataclass(frozen=True)
class NumberSequence:
    keypoints: Tuple[NumberSequenceKeypoint, ...]


@dataclass(frozen=True)
class ColorSequenceKeypoint:
    time: float
    value: Color3


@dataclass(frozen=True)
class ColorSequence:
    keypoints: Tuple[ColorSequenceKeypoint, ...]


@dataclass(frozen=True)
class NumberRange:
    min: float
    max: float


@dataclass(frozen=True)
class PhysicalProperties:
    density: float
    friction: float
    elasticity: float
    friction_weight: float = 1.0
    elasticity_weight: float = 1.0


@dataclass(frozen=True)
class Ray:
    origin: Vector3
    direction: Vector3


@dataclass(frozen=True)
class Region3:
    """Axis-aligned box given by its corners."""

    min: Vector3
    max: Vector3

    @property
    def size(self) -> Vector3:
        return self.max - self.min


@dataclass(frozen=True)
class Font:
    """Font face: family asset id plus weight and style enum values."""

    family: str
    weight: int = 400
    style: int = 0


@dataclass(frozen=True)
class PathWaypoint:
    position: Vector3
    action: int = 0


@dataclass(frozen=True)
class Axes:
    """Set of axes, rendered as "X, Y, Z"."""

    names: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return ", ".join(self.names)

    @classmethod
    def parse(cls, text: str) -> Axes:
        return cls(tuple(part.strip() for part in text.split(",") if part.strip()))


@dataclass(frozen=True)
class Faces:
    """Set of faces, rendered as "Top, Bottom"."""

    names: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return ", ".join(self.names)

    @classmethod
    def parse(cls, text: str) -> Faces:
        return cls(tuple(part.strip() for part in text.split(",") if part.strip()))
