"""Bin-packing of indexed textures and their CLUTs into the VRAM canvas."""

# Reference: VRAM layout
# - 1024x512 grid of 16-bit words.
# - Texture pages are 64 words wide and 256 rows high (16 columns, 2 rows).
# - A 4-bit texel is a quarter word, an 8-bit texel half a word. Atlases are
#   therefore 64, 128 or 256 words wide for 4, 8 and 16-bit textures so each
#   one covers 256 texels horizontally.
# - CLUT x coordinates must be multiples of 16 words.

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from PIL import Image as PILImage, ImageDraw

from .color import BitDepth, PaletteEntry
from .texture import IndexedTexture

VRAM_WIDTH = 1024
VRAM_HEIGHT = 512
ATLAS_HEIGHT = 256
TEXPAGE_WIDTH = 64
TEXPAGE_HEIGHT = 256
CLUT_COLUMN_STEP = 16

PACKING_ORDER = (BitDepth.BPP16, BitDepth.BPP8, BitDepth.BPP4)

Canvas = List[List[int]]


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def overlaps(self, other: "Rect") -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def inside_canvas(self) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.right <= VRAM_WIDTH
            and self.bottom <= VRAM_HEIGHT
        )


@dataclass(frozen=True)
class ReservedRegion(Rect):
    """Area of VRAM that packing must leave untouched."""

    label: str = "reserved"


def framebuffer_regions(
    resolution: Tuple[int, int], dual_buffering: bool, vertical_layout: bool
) -> List[ReservedRegion]:
    width, height = resolution
    regions = [ReservedRegion(0, 0, width, height, "framebuffer A")]
    if dual_buffering:
        if vertical_layout:
            regions.append(ReservedRegion(0, 256, width, height, "framebuffer B"))
        else:
            regions.append(ReservedRegion(width, 0, width, height, "framebuffer B"))
    return regions


@dataclass(eq=False)
class TextureAtlas:
    bit_depth: BitDepth
    textures: List[IndexedTexture] = field(default_factory=list)
    x: int | None = None
    y: int | None = None
    pixels: Canvas | None = field(default=None, repr=False)

    @property
    def width(self) -> int:
        return self.bit_depth.atlas_width

    @property
    def height(self) -> int:
        return ATLAS_HEIGHT

    @property
    def is_placed(self) -> bool:
        return self.x is not None and self.y is not None

    @property
    def rect(self) -> Rect:
        if self.x is None or self.y is None:
            raise ValueError("Atlas has not been placed")
        return Rect(self.x, self.y, self.width, self.height)

    def can_hold(self, texture: IndexedTexture) -> bool:
        return texture.quantized_width <= self.width and texture.height <= self.height

    def try_place(self, texture: IndexedTexture) -> bool:
        """Place ``texture`` at the first free position in raster order."""

        w, h = texture.quantized_width, texture.height
        if not self.can_hold(texture):
            return False
        occupied = [
            Rect(t.packing_x or 0, t.packing_y or 0, t.quantized_width, t.height)
            for t in self.textures
        ]
        for y in range(0, self.height - h + 1):
            x = 0
            while x <= self.width - w:
                candidate = Rect(x, y, w, h)
                blocker = next((r for r in occupied if r.overlaps(candidate)), None)
                if blocker is None:
                    texture.packing_x = x
                    texture.packing_y = y
                    self.textures.append(texture)
                    return True
                # Every x left of the blocker's right edge overlaps it too.
                x = blocker.right
        return False

    def render(self) -> Canvas:
        pixels = [[0] * self.width for _ in range(self.height)]
        for texture in self.textures:
            px, py = texture.packing_x or 0, texture.packing_y or 0
            for row_offset, row in enumerate(texture.image_data):
                pixels[py + row_offset][px : px + len(row)] = row
        return pixels


@dataclass
class PackingFailure:
    """A texture, atlas or CLUT that could not be placed."""

    kind: str
    name: str
    reason: str

    def __str__(self) -> str:
        return f"{self.kind} {self.name!r} not packed: {self.reason}"


@dataclass
class PackResult:
    atlases: List[TextureAtlas]
    canvas: Canvas
    reserved: List[Rect]
    failures: List[PackingFailure] = field(default_factory=list)

    @property
    def textures(self) -> List[IndexedTexture]:
        return [texture for atlas in self.atlases for texture in atlas.textures]

    @property
    def clut_textures(self) -> List[IndexedTexture]:
        return [texture for texture in self.textures if texture.has_clut]

    def clut_rects(self) -> List[Rect]:
        return [
            Rect(t.clut_x or 0, t.clut_y or 0, len(t.palette or []), 1)
            for t in self.clut_textures
        ]

    def placed_rects(self) -> List[Rect]:
        return [atlas.rect for atlas in self.atlases] + self.clut_rects()


def _texture_label(texture: IndexedTexture) -> str:
    if texture.name:
        return texture.name
    return f"{texture.width}x{texture.height}@{int(texture.bit_depth)}bpp"


class VRAMAllocator:
    """Place atlases and CLUTs into VRAM around the reserved regions.

    One allocator handles one packing pass. Failures are recorded and warned
    about but never abort the pass.
    """

    def __init__(self, reserved: Iterable[Rect] = ()):
        self.reserved: List[Rect] = list(reserved)
        self.atlases: List[TextureAtlas] = []
        self.placed_atlases: List[TextureAtlas] = []
        self.cluts: List[Rect] = []
        self.failures: List[PackingFailure] = []
        self.canvas: Canvas = [[0] * VRAM_WIDTH for _ in range(VRAM_HEIGHT)]

    def _fail(self, kind: str, name: str, reason: str) -> None:
        failure = PackingFailure(kind, name, reason)
        self.failures.append(failure)
        warnings.warn(str(failure), RuntimeWarning, stacklevel=3)

    def pack(self, textures: Sequence[IndexedTexture]) -> PackResult:
        self.build_atlases(textures)
        self.place_atlases()
        self.allocate_cluts()
        self.materialize()
        return PackResult(
            atlases=list(self.placed_atlases),
            canvas=self.canvas,
            reserved=list(self.reserved),
            failures=list(self.failures),
        )

    def build_atlases(self, textures: Sequence[IndexedTexture]) -> None:
        unique: List[IndexedTexture] = []
        seen = set()
        for texture in textures:
            if id(texture) in seen:
                continue
            seen.add(id(texture))
            texture.reset_placement()
            unique.append(texture)

        for bit_depth in PACKING_ORDER:
            group = [t for t in unique if t.bit_depth == bit_depth]
            if not group:
                continue
            group.sort(key=lambda t: t.area, reverse=True)

            atlas = TextureAtlas(bit_depth)
            self.atlases.append(atlas)
            for texture in group:
                if atlas.try_place(texture):
                    continue
                if not atlas.can_hold(texture):
                    self._fail(
                        "texture",
                        _texture_label(texture),
                        f"{texture.quantized_width}x{texture.height} words exceeds the "
                        f"{atlas.width}x{atlas.height} atlas",
                    )
                    continue
                atlas = TextureAtlas(bit_depth)
                self.atlases.append(atlas)
                if not atlas.try_place(texture):
                    self._fail("texture", _texture_label(texture), "no room in a new atlas")

        self.atlases = [atlas for atlas in self.atlases if atlas.textures]

    def place_atlases(self) -> None:
        for bit_depth in PACKING_ORDER:
            for atlas in self.atlases:
                if atlas.bit_depth != bit_depth:
                    continue
                if self._place_atlas(atlas):
                    self.placed_atlases.append(atlas)
                    page_x = atlas.x // TEXPAGE_WIDTH  # type: ignore[operator]
                    page_y = atlas.y // TEXPAGE_HEIGHT  # type: ignore[operator]
                    for texture in atlas.textures:
                        texture.texpage_x = page_x
                        texture.texpage_y = page_y
                        texture.atlas_index = len(self.placed_atlases) - 1
                else:
                    names = ", ".join(_texture_label(t) for t in atlas.textures)
                    self._fail(
                        "atlas",
                        f"{int(bit_depth)}bpp atlas",
                        f"no free {atlas.width}x{atlas.height} area in VRAM (textures: {names})",
                    )
                    for texture in atlas.textures:
                        texture.reset_placement()

    def _place_atlas(self, atlas: TextureAtlas) -> bool:
        for y in range(0, VRAM_HEIGHT - atlas.height + 1, TEXPAGE_HEIGHT):
            for x in range(0, VRAM_WIDTH - atlas.width + 1, TEXPAGE_WIDTH):
                if self.is_placement_valid(Rect(x, y, atlas.width, atlas.height)):
                    atlas.x = x
                    atlas.y = y
                    return True
        return False

    def allocate_cluts(self) -> None:
        for atlas in self.placed_atlases:
            for texture in atlas.textures:
                if not texture.palette:
                    continue
                rect = self._find_clut_slot(len(texture.palette))
                if rect is None:
                    self._fail(
                        "clut",
                        _texture_label(texture),
                        f"no free {len(texture.palette)}x1 area in VRAM",
                    )
                    continue
                self.cluts.append(rect)
                texture.clut_x = rect.x
                texture.clut_y = rect.y

    def _find_clut_slot(self, length: int) -> Rect | None:
        if length > VRAM_WIDTH:
            return None
        for x in range(0, VRAM_WIDTH - length + 1, CLUT_COLUMN_STEP):
            y = 0
            while y < VRAM_HEIGHT:
                candidate = Rect(x, y, length, 1)
                blocker = self._first_blocker(candidate)
                if blocker is None:
                    return candidate
                y = max(y + 1, blocker.bottom)
        return None

    def _first_blocker(self, rect: Rect) -> Rect | None:
        for atlas in self.placed_atlases:
            if atlas.rect.overlaps(rect):
                return atlas.rect
        for other in self.reserved:
            if other.overlaps(rect):
                return other
        for other in self.cluts:
            if other.overlaps(rect):
                return other
        return None

    def is_placement_valid(self, rect: Rect) -> bool:
        return rect.inside_canvas() and self._first_blocker(rect) is None

    def materialize(self) -> None:
        canvas = self.canvas
        for atlas in self.placed_atlases:
            atlas.pixels = atlas.render()
            ax, ay = atlas.x or 0, atlas.y or 0
            for row_offset, row in enumerate(atlas.pixels):
                canvas[ay + row_offset][ax : ax + atlas.width] = row
            for texture in atlas.textures:
                if texture.palette and texture.has_clut:
                    cx, cy = texture.clut_x or 0, texture.clut_y or 0
                    canvas[cy][cx : cx + len(texture.palette)] = [
                        entry.pack() for entry in texture.palette
                    ]


def pack_textures(
    textures: Sequence[IndexedTexture], reserved: Iterable[Rect] = ()
) -> PackResult:
    return VRAMAllocator(reserved).pack(textures)


def canvas_to_image(
    canvas: Canvas, overlays: Sequence[Rect] = (), overlay_color=(255, 0, 0)
) -> PILImage.Image:
    """Render the canvas words as direct colours, outlining ``overlays``."""

    height = len(canvas)
    width = len(canvas[0]) if canvas else 0
    image = PILImage.new("RGB", (width, height))
    image.putdata([PaletteEntry.unpack(word).to_rgb8() for row in canvas for word in row])
    if overlays:
        draw = ImageDraw.Draw(image)
        for rect in overlays:
            draw.rectangle(
                (rect.x, rect.y, rect.right - 1, rect.bottom - 1), outline=overlay_color
            )
    return image
