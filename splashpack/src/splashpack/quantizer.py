"""Palette quantization of source images into indexed textures.

Images with few enough distinct colours are mapped losslessly. Everything
else goes through K-Means clustering in RGB space followed by
Floyd-Steinberg error diffusion against the resulting palette.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .color import BitDepth, ColorF, pack_color
from .image import Image
from .kdtree import KDTree

DEFAULT_MAX_ITERATIONS = 10

# Floyd-Steinberg weights as (dx, dy, fraction).
DIFFUSION_KERNEL = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)


@dataclass
class QuantizedResult:
    """Output of :func:`quantize`.

    ``indices`` and ``direct`` are row-major in the order of the source
    buffer, so row 0 is the bottom row of the picture.
    """

    width: int
    height: int
    bit_depth: BitDepth
    indices: List[int] | None = None
    palette: List[ColorF] | None = None
    direct: List[int] | None = None
    iterations: int = 0
    lossless: bool = False

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def index_at(self, x: int, y: int) -> int:
        if self.indices is None:
            raise ValueError("Direct colour results have no palette indices")
        return self.indices[y * self.width + x]


@dataclass
class _Clusters:
    colors: List[ColorF]
    weights: List[int]
    centroids: List[ColorF]
    assignments: List[int] = field(default_factory=list)


def _unique_colors(pixels: Sequence[ColorF]) -> Dict[ColorF, int]:
    """Distinct colours in first-seen order mapped to their pixel count."""

    counts: Dict[ColorF, int] = {}
    for color in pixels:
        counts[color] = counts.get(color, 0) + 1
    return counts


def _initial_centroids(unique: Sequence[ColorF], k: int) -> List[ColorF]:
    n = len(unique)
    return [unique[i * n // k] for i in range(k)]


def _assign(clusters: _Clusters) -> bool:
    tree = KDTree(clusters.centroids)
    changed = False
    assignments = clusters.assignments
    for i, color in enumerate(clusters.colors):
        nearest = tree.nearest(color)
        if assignments[i] != nearest:
            assignments[i] = nearest
            changed = True
    return changed


def _recompute(clusters: _Clusters, rng: random.Random) -> None:
    k = len(clusters.centroids)
    sums = [[0.0, 0.0, 0.0] for _ in range(k)]
    counts = [0] * k
    for color, weight, cluster in zip(clusters.colors, clusters.weights, clusters.assignments):
        acc = sums[cluster]
        acc[0] += color[0] * weight
        acc[1] += color[1] * weight
        acc[2] += color[2] * weight
        counts[cluster] += weight

    centroids: List[ColorF] = []
    for acc, count in zip(sums, counts):
        if count:
            centroids.append((acc[0] / count, acc[1] / count, acc[2] / count))
        else:
            # Empty cluster: reseed from a random source colour.
            centroids.append(rng.choice(clusters.colors))
    clusters.centroids = centroids


def kmeans_palette(
    pixels: Sequence[ColorF],
    k: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int = 0,
) -> tuple[List[ColorF], int]:
    """Cluster ``pixels`` into ``k`` colours and return ``(palette, iterations)``.

    Pixels sharing a colour always land in the same cluster, so the work is
    done once per distinct colour and weighted by its pixel count.
    """

    unique = _unique_colors(pixels)
    colors = list(unique)
    clusters = _Clusters(
        colors=colors,
        weights=[unique[c] for c in colors],
        centroids=_initial_centroids(colors, k),
        assignments=[-1] * len(colors),
    )
    rng = random.Random(seed)

    iterations = 0
    for _ in range(max_iterations):
        iterations += 1
        if not _assign(clusters):
            break
        _recompute(clusters, rng)

    return clusters.centroids, iterations


def diffuse_errors(
    pixels: Sequence[ColorF], width: int, height: int, palette: Sequence[ColorF]
) -> List[int]:
    """Map every pixel to a palette index with Floyd-Steinberg error diffusion."""

    tree = KDTree(palette)
    working = [[r, g, b] for r, g, b in pixels]
    indices = [0] * len(working)

    for y in range(height):
        row = y * width
        for x in range(width):
            current = working[row + x]
            index = tree.nearest((current[0], current[1], current[2]))
            indices[row + x] = index

            chosen = palette[index]
            er = current[0] - chosen[0]
            eg = current[1] - chosen[1]
            eb = current[2] - chosen[2]
            for dx, dy, fraction in DIFFUSION_KERNEL:
                nx = x + dx
                ny = y + dy
                if 0 <= nx < width and 0 <= ny < height:
                    target = working[ny * width + nx]
                    target[0] += er * fraction
                    target[1] += eg * fraction
                    target[2] += eb * fraction

    return indices


def quantize(
    image: Image,
    bit_depth: BitDepth | int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    seed: int = 0,
    dither: bool = True,
) -> QuantizedResult:
    bit_depth = BitDepth.parse(bit_depth)
    width, height = image.width, image.height
    result = QuantizedResult(width=width, height=height, bit_depth=bit_depth)

    if image.is_empty:
        if bit_depth.has_palette:
            result.indices = []
            result.palette = []
        else:
            result.direct = []
        result.lossless = True
        return result

    pixels = list(image.rgb_pixels())

    if not bit_depth.has_palette:
        result.direct = [pack_color(color) for color in pixels]
        return result

    unique = _unique_colors(pixels)
    if len(unique) <= bit_depth.max_colors:
        lookup = {color: i for i, color in enumerate(unique)}
        result.palette = list(unique)
        result.indices = [lookup[color] for color in pixels]
        result.lossless = True
        return result

    palette, iterations = kmeans_palette(
        pixels, bit_depth.max_colors, max_iterations=max_iterations, seed=seed
    )
    if dither:
        indices = diffuse_errors(pixels, width, height, palette)
    else:
        tree = KDTree(palette)
        indices = [tree.nearest(color) for color in pixels]

    result.palette = palette
    result.indices = indices
    result.iterations = iterations
    return result


def pack_indices(indices: Sequence[int], bit_depth: BitDepth | int) -> List[int]:
    """Pack palette indices into 16-bit words, lowest bits first.

    A trailing partial word is padded with index 0.
    """

    bit_depth = BitDepth.parse(bit_depth)
    if not bit_depth.has_palette:
        raise ValueError("16-bit textures hold colours, not palette indices")

    per_word = bit_depth.pixels_per_word
    bits = int(bit_depth)
    mask = bit_depth.max_colors - 1
    words: List[int] = []
    for start in range(0, len(indices), per_word):
        word = 0
        for slot, index in enumerate(indices[start : start + per_word]):
            if not 0 <= index <= mask:
                raise ValueError(f"Palette index {index} does not fit in {bits} bits")
            word |= index << (slot * bits)
        words.append(word)
    return words


def unpack_indices(words: Sequence[int], bit_depth: BitDepth | int, count: int) -> List[int]:
    bit_depth = BitDepth.parse(bit_depth)
    if not bit_depth.has_palette:
        raise ValueError("16-bit textures hold colours, not palette indices")

    per_word = bit_depth.pixels_per_word
    bits = int(bit_depth)
    mask = bit_depth.max_colors - 1
    indices: List[int] = []
    for word in words:
        for slot in range(per_word):
            indices.append((word >> (slot * bits)) & mask)
    if count > len(indices):
        raise ValueError(f"{len(words)} words cannot hold {count} indices")
    return indices[:count]
