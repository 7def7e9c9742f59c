"""Plain image values fed to the quantizer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from PIL import Image as PILImage

ColorF = Tuple[float, float, float]

MAX_TEXTURE_SIZE = 256


class ImageError(Exception):
    """Raised when an image cannot be read or has an inconsistent buffer."""


@dataclass(frozen=True)
class Image:
    """Width, height and a flat float buffer (RGB or RGBA, values 0.0-1.0).

    Pixels are stored row by row starting at the bottom-left corner, the
    order renderers hand texture buffers over in. :meth:`from_pil` flips
    Pillow images, which start at the top, into this order.
    """

    width: int
    height: int
    data: Tuple[float, ...]
    channels: int = 3

    def __post_init__(self) -> None:
        if self.channels not in (3, 4):
            raise ImageError(f"Unsupported channel count: {self.channels}")
        if self.width < 0 or self.height < 0:
            raise ImageError("Image dimensions must not be negative")
        expected = self.width * self.height * self.channels
        if len(self.data) != expected:
            raise ImageError(
                f"Buffer holds {len(self.data)} values, expected {expected} "
                f"for {self.width}x{self.height}x{self.channels}"
            )

    @classmethod
    def from_rgb(cls, width: int, height: int, pixels: Sequence[ColorF]) -> "Image":
        flat: List[float] = []
        for r, g, b in pixels:
            flat.extend((float(r), float(g), float(b)))
        return cls(width, height, tuple(flat), 3)

    @classmethod
    def from_pil(cls, image: PILImage.Image) -> "Image":
        has_alpha = "A" in image.getbands()
        mode = "RGBA" if has_alpha else "RGB"
        converted = image.convert(mode).transpose(PILImage.Transpose.FLIP_TOP_BOTTOM)
        width, height = converted.size
        flat = tuple(component / 255.0 for component in converted.tobytes())
        return cls(width, height, flat, len(mode))

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def pixel(self, x: int, y: int) -> ColorF:
        base = (y * self.width + x) * self.channels
        return (self.data[base], self.data[base + 1], self.data[base + 2])

    def rgb_pixels(self) -> Iterator[ColorF]:
        step = self.channels
        data = self.data
        for base in range(0, len(data), step):
            yield (data[base], data[base + 1], data[base + 2])


def resize_image(image: PILImage.Image, width: int, height: int) -> PILImage.Image:
    """Resize a source image to the texture size requested for export."""

    if not (1 <= width <= MAX_TEXTURE_SIZE and 1 <= height <= MAX_TEXTURE_SIZE):
        raise ImageError(
            f"Texture size must be between 1 and {MAX_TEXTURE_SIZE} (got {width}x{height})"
        )
    if image.size == (width, height):
        return image
    return image.resize((width, height), PILImage.BILINEAR)


def load_image(
    path: str | Path, size: Tuple[int, int] | None = None
) -> Image:
    path = Path(path)
    try:
        with PILImage.open(path) as img:
            img.load()
            if size is not None:
                img = resize_image(img, size[0], size[1])
            return Image.from_pil(img)
    except FileNotFoundError as exc:
        raise ImageError(f"Input file not found: {path}") from exc
    except OSError as exc:
        raise ImageError(f"Failed to read image: {path}") from exc
