"""VRAM colour words and texture bit depths."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple

ColorF = Tuple[float, float, float]

# Reference: 16-bit VRAM word
# Bits   | Field
# -------|-------------------------------------------
# 0-4    | Red (0-31)
# 5-9    | Green (0-31)
# 10-14  | Blue (0-31)
# 15     | Semi-transparency flag


class BitDepth(IntEnum):
    """Texture colour depth in bits per texel."""

    BPP4 = 4
    BPP8 = 8
    BPP16 = 16

    @property
    def pixels_per_word(self) -> int:
        return 16 // int(self)

    @property
    def max_colors(self) -> int:
        return 1 << int(self)

    @property
    def atlas_width(self) -> int:
        return {BitDepth.BPP4: 64, BitDepth.BPP8: 128, BitDepth.BPP16: 256}[self]

    @property
    def color_mode(self) -> int:
        """Texpage colour mode bits (0 = 4-bit CLUT, 1 = 8-bit CLUT, 2 = 15-bit direct)."""
        return {BitDepth.BPP4: 0, BitDepth.BPP8: 1, BitDepth.BPP16: 2}[self]

    @property
    def has_palette(self) -> bool:
        return self is not BitDepth.BPP16

    @classmethod
    def parse(cls, value: int | str) -> "BitDepth":
        try:
            return cls(int(value))
        except ValueError as exc:
            raise ValueError(f"Unsupported bit depth: {value} (expected 4, 8 or 16)") from exc


def to_5bit(component: float) -> int:
    return max(0, min(31, int(component * 31)))


@dataclass(frozen=True)
class PaletteEntry:
    r: int
    g: int
    b: int
    semi_transparent: bool = False

    @classmethod
    def from_float(cls, color: ColorF, semi_transparent: bool = False) -> "PaletteEntry":
        r, g, b = color
        return cls(to_5bit(r), to_5bit(g), to_5bit(b), semi_transparent)

    @classmethod
    def unpack(cls, word: int) -> "PaletteEntry":
        return cls(
            word & 0x1F,
            (word >> 5) & 0x1F,
            (word >> 10) & 0x1F,
            bool(word & 0x8000),
        )

    def pack(self) -> int:
        return (
            (0x8000 if self.semi_transparent else 0)
            | ((self.b & 0x1F) << 10)
            | ((self.g & 0x1F) << 5)
            | (self.r & 0x1F)
        )

    def to_rgb8(self) -> Tuple[int, int, int]:
        return (
            int(round(self.r * 255 / 31)),
            int(round(self.g * 255 / 31)),
            int(round(self.b * 255 / 31)),
        )


def pack_color(color: ColorF) -> int:
    """Pack a float colour straight into a direct-colour VRAM word."""

    return PaletteEntry.from_float(color).pack()
