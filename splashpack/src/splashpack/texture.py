"""Indexed textures in the packed layout the device reads from VRAM."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import List, Sequence

from PIL import Image as PILImage

from .color import BitDepth, PaletteEntry
from .image import Image
from .quantizer import DEFAULT_MAX_ITERATIONS, QuantizedResult, pack_indices, quantize

MAX_PALETTE_ENTRIES = 256


def quantized_width(width: int, bit_depth: BitDepth) -> int:
    per_word = bit_depth.pixels_per_word
    return (width + per_word - 1) // per_word


@dataclass(eq=False)
class IndexedTexture:
    """A quantized texture plus the placement fields filled in by packing.

    ``image_data`` holds ``height`` rows of ``quantized_width`` words. The source
    buffer starts at the bottom, so rows are reversed here: row 0 is the top
    of the picture and lands at ``packing_y``, where ``v`` is 0.
    ``packing_x`` is measured in VRAM words, ``clut_x``/``clut_y`` in absolute
    VRAM pixels.
    """

    width: int
    height: int
    bit_depth: BitDepth
    image_data: List[List[int]]
    indices: List[int] | None = None
    palette: List[PaletteEntry] | None = None
    name: str = ""

    packing_x: int | None = None
    packing_y: int | None = None
    texpage_x: int | None = None
    texpage_y: int | None = None
    clut_x: int | None = None
    clut_y: int | None = None
    atlas_index: int | None = field(default=None, repr=False)

    @property
    def quantized_width(self) -> int:
        return quantized_width(self.width, self.bit_depth)

    @property
    def area(self) -> int:
        return self.quantized_width * self.height

    @property
    def is_placed(self) -> bool:
        return self.texpage_x is not None and self.packing_x is not None

    @property
    def has_clut(self) -> bool:
        return self.clut_x is not None

    @classmethod
    def from_quantized(cls, result: QuantizedResult, name: str = "") -> "IndexedTexture":
        bit_depth = result.bit_depth
        width, height = result.width, result.height

        if not bit_depth.has_palette:
            direct = result.direct or []
            rows = [direct[y * width : (y + 1) * width] for y in range(height)]
            rows.reverse()
            return cls(width, height, bit_depth, rows, name=name)

        palette_colors = result.palette or []
        if len(palette_colors) > MAX_PALETTE_ENTRIES:
            raise ValueError(f"Palette has {len(palette_colors)} entries (max {MAX_PALETTE_ENTRIES})")
        palette = [PaletteEntry.from_float(color) for color in palette_colors]
        indices = list(result.indices or [])

        per_word = bit_depth.pixels_per_word
        padded = quantized_width(width, bit_depth) * per_word
        rows: List[List[int]] = []
        for y in range(height - 1, -1, -1):
            row = indices[y * width : (y + 1) * width]
            row.extend([0] * (padded - width))
            rows.append(pack_indices(row, bit_depth))

        return cls(width, height, bit_depth, rows, indices=indices, palette=palette, name=name)

    @classmethod
    def from_image(
        cls,
        image: Image,
        bit_depth: BitDepth | int,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        name: str = "",
        seed: int = 0,
        dither: bool = True,
    ) -> "IndexedTexture":
        result = quantize(image, bit_depth, max_iterations=max_iterations, seed=seed, dither=dither)
        return cls.from_quantized(result, name=name)

    def reset_placement(self) -> None:
        self.packing_x = self.packing_y = None
        self.texpage_x = self.texpage_y = None
        self.clut_x = self.clut_y = None
        self.atlas_index = None

    def decode_words(self) -> List[List[int]]:
        """Per-pixel 16-bit colour words in source buffer order (bottom row first)."""

        if not self.bit_depth.has_palette:
            return [list(row) for row in reversed(self.image_data)]

        if self.indices is None or self.palette is None:
            raise ValueError(f"Texture {self.name!r} has no indices or palette to decode")
        packed = [entry.pack() for entry in self.palette]
        return [
            [packed[self.indices[y * self.width + x]] for x in range(self.width)]
            for y in range(self.height)
        ]

    def preview(self) -> PILImage.Image:
        """Render the texture upright, in the colours the device would display."""

        out = PILImage.new("RGB", (self.width, self.height))
        rows = reversed(self.decode_words())
        out.putdata(
            [PaletteEntry.unpack(word).to_rgb8() for row in rows for word in row]
        )
        return out

    def vram_preview(self) -> PILImage.Image:
        """Render the raw packed words as direct colours, in VRAM row order."""

        out = PILImage.new("RGB", (self.quantized_width, self.height))
        out.putdata(
            [PaletteEntry.unpack(word).to_rgb8() for row in self.image_data for word in row]
        )
        return out

    def texture_data_bytes(self) -> bytes:
        words = [word for row in self.image_data for word in row]
        return struct.pack(f"<{len(words)}H", *words)

    def clut_data_bytes(self) -> bytes:
        if self.palette is None:
            return b""
        return struct.pack(f"<{len(self.palette)}H", *(entry.pack() for entry in self.palette))


def padded_palette_words(palette: Sequence[PaletteEntry]) -> List[int]:
    """Palette words padded with zero entries up to the 256-entry CLUT size."""

    words = [entry.pack() for entry in palette[:MAX_PALETTE_ENTRIES]]
    words.extend([0] * (MAX_PALETTE_ENTRIES - len(words)))
    return words
