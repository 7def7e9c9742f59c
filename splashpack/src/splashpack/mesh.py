"""Device-space triangle data and fixed-point conversions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

FIXED_SHIFT = 12
FIXED_ONE = 1 << FIXED_SHIFT  # 4096
INT16_MIN = -0x8000
INT16_MAX = 0x7FFF

Matrix3 = Tuple[Tuple[float, float, float], Tuple[float, float, float], Tuple[float, float, float]]

IDENTITY: Matrix3 = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))


def clamp_int16(value: int) -> int:
    return max(INT16_MIN, min(INT16_MAX, value))


def to_fixed(value: float, scale: float = 1.0) -> int:
    """Convert ``value / scale`` to 3.12 fixed point, clamped to the int16 range."""

    return clamp_int16(int(value / scale * FIXED_ONE))


def from_fixed(value: int) -> float:
    return value / FIXED_ONE


def quaternion_to_matrix(x: float, y: float, z: float, w: float) -> Matrix3:
    norm = math.sqrt(x * x + y * y + z * z + w * w)
    if norm == 0:
        return IDENTITY
    x, y, z, w = x / norm, y / norm, z / norm, w / norm
    return (
        (1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)),
        (2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)),
        (2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)),
    )


def rotation_to_fixed(matrix: Sequence[Sequence[float]]) -> Tuple[int, ...]:
    """Flatten a 3x3 rotation matrix row by row into fixed-point integers."""

    if len(matrix) != 3 or any(len(row) != 3 for row in matrix):
        raise ValueError("Rotation must be a 3x3 matrix")
    return tuple(to_fixed(value) for row in matrix for value in row)


# Reference: texpage attribute word
# Bits   | Field
# -------|----------------------------------------------
# 0-3    | Texture page X base (N * 64)
# 4      | Texture page Y base (N * 256)
# 5-6    | Semi-transparency mode
# 7-8    | Colour mode (0 = 4-bit, 1 = 8-bit, 2 = 15-bit)
# 9      | Dither 24-bit to 15-bit


def texpage_attribute(
    page_x: int,
    page_y: int,
    color_mode: int,
    dither: bool = True,
    semi_transparency: int = 0,
) -> int:
    if not 0 <= page_x <= 0xF:
        raise ValueError(f"Texpage X out of range: {page_x}")
    if not 0 <= page_y <= 1:
        raise ValueError(f"Texpage Y out of range: {page_y}")
    return (
        (page_x & 0xF)
        | ((page_y & 0x1) << 4)
        | ((semi_transparency & 0x3) << 5)
        | ((color_mode & 0x3) << 7)
        | ((1 if dither else 0) << 9)
    )


@dataclass(frozen=True)
class Vertex:
    """A shaded vertex already converted to device space.

    Positions and normals are 3.12 fixed point, ``u``/``v`` are texel
    coordinates within the texture with ``v`` 0 on the top row of the
    picture, ``r``/``g``/``b`` are 8-bit colours.
    """

    vx: int
    vy: int
    vz: int
    nx: int = 0
    ny: int = 0
    nz: int = 0
    u: int = 0
    v: int = 0
    r: int = 128
    g: int = 128
    b: int = 128


@dataclass(frozen=True)
class Triangle:
    v0: Vertex
    v1: Vertex
    v2: Vertex
    texture: int = 0
    normal: Tuple[int, int, int] | None = None

    @property
    def vertices(self) -> Tuple[Vertex, Vertex, Vertex]:
        return (self.v0, self.v1, self.v2)

    @property
    def face_normal(self) -> Tuple[int, int, int]:
        """The explicit face normal, or the first vertex normal when unset."""

        if self.normal is not None:
            return self.normal
        return (self.v0.nx, self.v0.ny, self.v0.nz)


@dataclass(frozen=True)
class NavMeshTriangle:
    v0: Tuple[int, int, int]
    v1: Tuple[int, int, int]
    v2: Tuple[int, int, int]

    @classmethod
    def from_world(
        cls, points: Sequence[Sequence[float]], gte_scaling: float
    ) -> "NavMeshTriangle":
        """Convert three world-space points, flipping Y to the device's down axis."""

        if len(points) != 3:
            raise ValueError("A nav mesh triangle needs exactly three points")
        converted = [
            (to_fixed(x, gte_scaling), to_fixed(-y, gte_scaling), to_fixed(z, gte_scaling))
            for x, y, z in points
        ]
        return cls(converted[0], converted[1], converted[2])
