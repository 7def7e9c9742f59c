"""Scene exporter for the SP binary bundle.

This package quantizes source images into 4/8-bit indexed or 15-bit direct
colour textures, packs them and their CLUTs into a 1024x512 VRAM canvas and
writes the scene's triangles, atlases and palettes as one binary file. It can
be invoked through the CLI (``python -m splashpack``) or imported to run the
individual stages.
"""

from .color import BitDepth, PaletteEntry
from .errors import InputError, SerializationInvariantError, SplashpackError
from .exporter import ExportReport, export, export_scene
from .image import Image, load_image
from .mesh import NavMeshTriangle, Triangle, Vertex, texpage_attribute, to_fixed
from .quantizer import QuantizedResult, pack_indices, quantize, unpack_indices
from .scene import ExportObject, Scene, SceneConfig, load_scene
from .serializer import SceneSerializer, serialize_scene
from .texture import IndexedTexture
from .vram import (
    PackingFailure,
    PackResult,
    Rect,
    ReservedRegion,
    TextureAtlas,
    VRAMAllocator,
    pack_textures,
)

__all__ = [
    "BitDepth",
    "ExportObject",
    "ExportReport",
    "Image",
    "IndexedTexture",
    "InputError",
    "NavMeshTriangle",
    "PackResult",
    "PackingFailure",
    "PaletteEntry",
    "QuantizedResult",
    "Rect",
    "ReservedRegion",
    "Scene",
    "SceneConfig",
    "SceneSerializer",
    "SerializationInvariantError",
    "SplashpackError",
    "TextureAtlas",
    "Triangle",
    "VRAMAllocator",
    "Vertex",
    "export",
    "export_scene",
    "load_image",
    "load_scene",
    "pack_indices",
    "pack_textures",
    "quantize",
    "serialize_scene",
    "texpage_attribute",
    "to_fixed",
    "unpack_indices",
]
