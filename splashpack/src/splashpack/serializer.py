"""Binary scene bundle writer."""

# Reference: bundle layout (little endian)
# Section          | Record size        | Contents
# -----------------|--------------------|---------------------------------------------------
# Header           | 12 bytes           | "SP", version, objects, atlases, CLUTs, nav tris
# Objects          | 56 bytes each      | position 3*i32, rotation 9*i32, mesh offset, tris
# Atlases          | 12 bytes each      | data offset, width, height, x, y
# CLUTs            | 12 bytes each      | data offset, clut x, clut y, palette length, pad
# Mesh blocks      | 52 bytes per tri   | see TRIANGLE below
# Atlas blocks     | width*256*2 bytes  | raw VRAM words, raster order
# CLUT blocks      | 512 bytes          | 256 palette words, unused slots zero
# Nav mesh block   | 18 bytes per tri   | 9*i16, only written when triangles exist
#
# Every data block starts on a 4-byte boundary. Offsets in the metadata are
# absolute file positions written after all data blocks are emitted.

from __future__ import annotations

import struct
from typing import BinaryIO, List, Sequence

from .errors import SerializationInvariantError
from .mesh import (
    NavMeshTriangle,
    Triangle,
    clamp_int16,
    rotation_to_fixed,
    texpage_attribute,
    to_fixed,
)
from .scene import ExportObject
from .texture import IndexedTexture, padded_palette_words
from .vram import PackResult, TextureAtlas

MAGIC = b"SP"
FORMAT_VERSION = 1

HEADER = struct.Struct("<2s5H")
OBJECT = struct.Struct("<12iii")
OBJECT_OFFSET_FIELD = 12 * 4
ATLAS = struct.Struct("<i4H")
CLUT = struct.Struct("<i4H")
TRIANGLE = struct.Struct("<12h12B6B5H")
NAV_TRIANGLE = struct.Struct("<9h")

MAX_COUNT = 0xFFFF


def _u8(value: int) -> int:
    return max(0, min(255, int(value)))


def _i16(value: int) -> int:
    return clamp_int16(int(value))


def align_to_four(stream: BinaryIO) -> int:
    padding = (4 - stream.tell() % 4) % 4
    stream.write(b"\x00" * padding)
    return stream.tell()


def is_drawable(texture: IndexedTexture) -> bool:
    """True when the texture and, for paletted depths, its CLUT are in VRAM."""

    return texture.is_placed and (not texture.bit_depth.has_palette or texture.has_clut)


def placed_triangles(obj: ExportObject) -> List[Triangle]:
    """Triangles of ``obj`` whose texture made it into VRAM."""

    return [
        tri
        for tri in obj.triangles or []
        if 0 <= tri.texture < len(obj.textures) and is_drawable(obj.textures[tri.texture])
    ]


class OffsetTable:
    """Placeholder positions and data block offsets for one kind of block."""

    def __init__(self, kind: str):
        self.kind = kind
        self.placeholders: List[int] = []
        self.blocks: List[int] = []

    def check(self) -> None:
        if len(self.placeholders) != len(self.blocks):
            raise SerializationInvariantError(
                f"Mismatch between {self.kind} offset placeholders ({len(self.placeholders)}) "
                f"and {self.kind} data blocks ({len(self.blocks)})"
            )

    def backfill(self, stream: BinaryIO) -> None:
        self.check()
        for placeholder, offset in zip(self.placeholders, self.blocks):
            stream.seek(placeholder)
            stream.write(struct.pack("<i", offset))


def encode_triangle(tri: Triangle, texture: IndexedTexture) -> bytes:
    per_word = texture.bit_depth.pixels_per_word
    u_offset = (texture.packing_x or 0) * per_word
    v_offset = texture.packing_y or 0
    max_u = max(0, texture.width - 1)
    max_v = max(0, texture.height - 1)

    positions = [_i16(c) for vert in tri.vertices for c in (vert.vx, vert.vy, vert.vz)]
    normal = [_i16(c) for c in tri.face_normal]
    colors: List[int] = []
    for vert in tri.vertices:
        colors.extend((_u8(vert.r), _u8(vert.g), _u8(vert.b), 0))
    uvs: List[int] = []
    for vert in tri.vertices:
        uvs.append(_u8(min(max(vert.u, 0), max_u) + u_offset))
        uvs.append(_u8(min(max(vert.v, 0), max_v) + v_offset))

    tpage = texpage_attribute(
        texture.texpage_x or 0, texture.texpage_y or 0, texture.bit_depth.color_mode, dither=True
    )
    return TRIANGLE.pack(
        *positions,
        *normal,
        *colors,
        *uvs,
        0,
        tpage,
        texture.clut_x or 0,
        texture.clut_y or 0,
        0,
    )


class SceneSerializer:
    """Write objects, atlases and CLUTs as one bundle.

    The stream must be seekable: offsets are written into placeholders once
    the data blocks they point at have been emitted.
    """

    def __init__(
        self,
        objects: Sequence[ExportObject],
        packing: PackResult,
        gte_scaling: float = 100.0,
        navmesh: Sequence[NavMeshTriangle] = (),
    ):
        self.objects = list(objects)
        self.atlases: List[TextureAtlas] = list(packing.atlases)
        self.cluts: List[IndexedTexture] = packing.clut_textures
        self.gte_scaling = gte_scaling
        self.navmesh = list(navmesh)
        self.meshes = OffsetTable("mesh")
        self.atlas_offsets = OffsetTable("atlas")
        self.clut_offsets = OffsetTable("clut")

    def write(self, stream: BinaryIO) -> None:
        for what, count in (
            ("objects", len(self.objects)),
            ("atlases", len(self.atlases)),
            ("CLUTs", len(self.cluts)),
            ("nav mesh triangles", len(self.navmesh)),
        ):
            if count > MAX_COUNT:
                raise SerializationInvariantError(f"Too many {what}: {count}")

        start = stream.tell()
        if start % 4:
            raise SerializationInvariantError("Bundle must start on a 4-byte boundary")

        self._write_header(stream)
        self._write_object_metadata(stream)
        self._write_atlas_metadata(stream)
        self._write_clut_metadata(stream)

        self._write_meshes(stream)
        self._write_atlases(stream)
        self._write_cluts(stream)
        self._write_navmesh(stream)

        tables = (self.meshes, self.atlas_offsets, self.clut_offsets)
        for table in tables:
            table.check()
        end = stream.seek(0, 2)
        for table in tables:
            table.backfill(stream)
        stream.seek(end)

    def _write_header(self, stream: BinaryIO) -> None:
        stream.write(
            HEADER.pack(
                MAGIC,
                FORMAT_VERSION,
                len(self.objects),
                len(self.atlases),
                len(self.cluts),
                len(self.navmesh),
            )
        )

    def _write_object_metadata(self, stream: BinaryIO) -> None:
        scale = self.gte_scaling
        for obj in self.objects:
            x, y, z = obj.position
            position = (to_fixed(x, scale), to_fixed(-y, scale), to_fixed(z, scale))
            self.meshes.placeholders.append(stream.tell() + OBJECT_OFFSET_FIELD)
            stream.write(
                OBJECT.pack(
                    *position,
                    *rotation_to_fixed(obj.rotation),
                    0,
                    len(placed_triangles(obj)),
                )
            )

    def _write_atlas_metadata(self, stream: BinaryIO) -> None:
        for atlas in self.atlases:
            self.atlas_offsets.placeholders.append(stream.tell())
            stream.write(ATLAS.pack(0, atlas.width, atlas.height, atlas.x, atlas.y))

    def _write_clut_metadata(self, stream: BinaryIO) -> None:
        for texture in self.cluts:
            self.clut_offsets.placeholders.append(stream.tell())
            stream.write(
                CLUT.pack(0, texture.clut_x, texture.clut_y, len(texture.palette or []), 0)
            )

    def _write_meshes(self, stream: BinaryIO) -> None:
        for obj in self.objects:
            self.meshes.blocks.append(align_to_four(stream))
            for tri in placed_triangles(obj):
                stream.write(encode_triangle(tri, obj.textures[tri.texture]))

    def _write_atlases(self, stream: BinaryIO) -> None:
        for atlas in self.atlases:
            self.atlas_offsets.blocks.append(align_to_four(stream))
            pixels = atlas.pixels if atlas.pixels is not None else atlas.render()
            for row in pixels:
                stream.write(struct.pack(f"<{len(row)}H", *row))

    def _write_cluts(self, stream: BinaryIO) -> None:
        for texture in self.cluts:
            self.clut_offsets.blocks.append(align_to_four(stream))
            words = padded_palette_words(texture.palette or [])
            stream.write(struct.pack(f"<{len(words)}H", *words))

    def _write_navmesh(self, stream: BinaryIO) -> None:
        if not self.navmesh:
            return
        align_to_four(stream)
        for tri in self.navmesh:
            stream.write(NAV_TRIANGLE.pack(*(_i16(c) for point in (tri.v0, tri.v1, tri.v2) for c in point)))


def serialize_scene(
    stream: BinaryIO,
    objects: Sequence[ExportObject],
    packing: PackResult,
    gte_scaling: float = 100.0,
    navmesh: Sequence[NavMeshTriangle] = (),
) -> None:
    SceneSerializer(objects, packing, gte_scaling=gte_scaling, navmesh=navmesh).write(stream)
