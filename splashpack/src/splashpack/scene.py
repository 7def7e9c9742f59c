"""Scene description: export configuration, objects and JSON loading."""

from __future__ import annotations

import json
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from .color import BitDepth
from .errors import InputError
from .image import ImageError, load_image
from .mesh import IDENTITY, Matrix3, NavMeshTriangle, Triangle, Vertex, quaternion_to_matrix
from .quantizer import DEFAULT_MAX_ITERATIONS
from .texture import IndexedTexture
from .vram import VRAM_HEIGHT, VRAM_WIDTH, ReservedRegion, framebuffer_regions

Vec3 = Tuple[float, float, float]

RESOLUTIONS: List[Tuple[int, int]] = [
    (256, 240),
    (256, 480),
    (320, 240),
    (320, 480),
    (368, 240),
    (368, 480),
    (512, 240),
    (512, 480),
    (640, 240),
    (640, 480),
]


@dataclass
class SceneConfig:
    """Export settings resolved from whatever stores them."""

    resolution: Tuple[int, int] = (320, 240)
    dual_buffering: bool = True
    vertical_buffering: bool = True
    reserved_regions: List[ReservedRegion] = field(default_factory=list)
    gte_scaling: float = 100.0
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self) -> None:
        self.resolution = (int(self.resolution[0]), int(self.resolution[1]))
        if self.resolution not in RESOLUTIONS:
            raise ValueError(f"Unsupported resolution: {self.resolution[0]}x{self.resolution[1]}")
        if self.gte_scaling <= 0:
            raise ValueError("GTE scaling must be greater than 0")

    @property
    def can_double_buffer_horizontally(self) -> bool:
        return self.resolution[0] * 2 <= VRAM_WIDTH

    @property
    def can_double_buffer_vertically(self) -> bool:
        return self.resolution[1] * 2 <= VRAM_HEIGHT

    def framebuffers(self) -> List[ReservedRegion]:
        """Framebuffer rectangles, falling back to whichever layout fits."""

        dual = self.dual_buffering and (
            self.can_double_buffer_horizontally or self.can_double_buffer_vertically
        )
        vertical = self.vertical_buffering
        if vertical and not self.can_double_buffer_vertically:
            vertical = False
        elif not vertical and not self.can_double_buffer_horizontally:
            vertical = True
        return framebuffer_regions(self.resolution, dual, vertical)

    def reserved(self) -> List[ReservedRegion]:
        return self.framebuffers() + list(self.reserved_regions)


@dataclass(eq=False)
class ExportObject:
    """One exportable object: world transform, textures and shaded triangles.

    ``triangles`` is None when the object has no mesh.
    """

    name: str
    position: Vec3 = (0.0, 0.0, 0.0)
    rotation: Matrix3 = IDENTITY
    textures: List[IndexedTexture] = field(default_factory=list)
    triangles: List[Triangle] | None = field(default_factory=list)

    def validate(self) -> None:
        if self.triangles is None:
            raise InputError(f"Object {self.name!r} has no mesh")
        for number, tri in enumerate(self.triangles):
            if not 0 <= tri.texture < len(self.textures):
                raise InputError(
                    f"Object {self.name!r} triangle {number} references missing texture {tri.texture}"
                )


@dataclass
class Scene:
    config: SceneConfig
    objects: List[ExportObject] = field(default_factory=list)
    navmesh: List[NavMeshTriangle] = field(default_factory=list)
    input_errors: List[InputError] = field(default_factory=list)


# ---------------------------------------------------------------------------
# JSON scene description
# ---------------------------------------------------------------------------


def _triple(value: Sequence[Any], what: str) -> Tuple[Any, Any, Any]:
    if len(value) != 3:
        raise InputError(f"{what} must have exactly three components")
    return (value[0], value[1], value[2])


def _parse_vertex(data: Dict[str, Any]) -> Vertex:
    vx, vy, vz = _triple(data["position"], "Vertex position")
    nx, ny, nz = _triple(data.get("normal", (0, 0, 0)), "Vertex normal")
    u, v = data.get("uv", (0, 0))
    r, g, b = _triple(data.get("color", (128, 128, 128)), "Vertex color")
    return Vertex(
        int(vx), int(vy), int(vz), int(nx), int(ny), int(nz), int(u), int(v), int(r), int(g), int(b)
    )


def _parse_triangle(data: Dict[str, Any]) -> Triangle:
    vertices = data["vertices"]
    if len(vertices) != 3:
        raise InputError("A triangle needs exactly three vertices")
    normal = data.get("normal")
    return Triangle(
        _parse_vertex(vertices[0]),
        _parse_vertex(vertices[1]),
        _parse_vertex(vertices[2]),
        texture=int(data.get("texture", 0)),
        normal=tuple(int(n) for n in _triple(normal, "Face normal")) if normal is not None else None,  # type: ignore[arg-type]
    )


def _parse_rotation(value: Any) -> Matrix3:
    if value is None:
        return IDENTITY
    if isinstance(value, dict) and "quaternion" in value:
        x, y, z, w = (float(c) for c in value["quaternion"])
        return quaternion_to_matrix(x, y, z, w)
    rows = [tuple(float(c) for c in _triple(row, "Rotation row")) for row in _triple(value, "Rotation")]
    return (rows[0], rows[1], rows[2])  # type: ignore[return-value]


def _parse_region(data: Dict[str, Any]) -> ReservedRegion:
    return ReservedRegion(
        int(data["x"]),
        int(data["y"]),
        int(data["width"]),
        int(data["height"]),
        str(data.get("label", "reserved")),
    )


def parse_config(data: Dict[str, Any]) -> SceneConfig:
    try:
        return SceneConfig(
            resolution=tuple(data.get("resolution", (320, 240))),  # type: ignore[arg-type]
            dual_buffering=bool(data.get("dual_buffering", True)),
            vertical_buffering=bool(data.get("vertical_buffering", True)),
            reserved_regions=[_parse_region(r) for r in data.get("reserved_regions", [])],
            gte_scaling=float(data.get("gte_scaling", 100.0)),
            max_iterations=int(data.get("max_iterations", DEFAULT_MAX_ITERATIONS)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InputError(f"Invalid config: {exc}") from exc


class _TextureCache:
    """Quantize each (source, depth, size) combination once per scene."""

    def __init__(self, base_dir: Path, max_iterations: int):
        self.base_dir = base_dir
        self.max_iterations = max_iterations
        self._cache: Dict[Tuple[str, int, Any], IndexedTexture] = {}

    def get(self, data: Dict[str, Any]) -> IndexedTexture:
        if "source" not in data:
            raise InputError("Texture entry is missing 'source'")
        source = self.base_dir / data["source"]
        bit_depth = BitDepth.parse(data.get("bit_depth", 8))
        size = tuple(data["size"]) if "size" in data else None
        key = (str(source.resolve()), int(bit_depth), size)
        texture = self._cache.get(key)
        if texture is None:
            try:
                image = load_image(source, size)  # type: ignore[arg-type]
            except ImageError as exc:
                raise InputError(str(exc)) from exc
            texture = IndexedTexture.from_image(
                image,
                bit_depth,
                max_iterations=int(data.get("max_iterations", self.max_iterations)),
                name=source.stem,
                dither=bool(data.get("dither", True)),
            )
            self._cache[key] = texture
        return texture


def _parse_object(data: Dict[str, Any], textures: _TextureCache, index: int) -> ExportObject:
    name = str(data.get("name", f"object{index}"))
    try:
        position = tuple(float(c) for c in _triple(data.get("position", (0, 0, 0)), "Position"))
        obj = ExportObject(
            name=name,
            position=position,  # type: ignore[arg-type]
            rotation=_parse_rotation(data.get("rotation")),
            textures=[textures.get(t) for t in data.get("textures", [])],
            triangles=[_parse_triangle(t) for t in data["triangles"]] if "triangles" in data else None,
        )
    except InputError as exc:
        raise InputError(f"Object {name!r}: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise InputError(f"Object {name!r} is malformed: {exc}") from exc
    obj.validate()
    return obj


def scene_from_dict(
    data: Dict[str, Any], base_dir: str | Path = ".", max_iterations: int | None = None
) -> Scene:
    """Resolve a scene description into plain export data.

    Objects that fail to resolve are left out and reported through
    ``Scene.input_errors`` as well as a ``RuntimeWarning``.
    """

    config = parse_config(data.get("config", {}))
    if max_iterations is not None:
        config.max_iterations = max_iterations
    textures = _TextureCache(Path(base_dir), config.max_iterations)
    scene = Scene(config=config)

    for index, obj_data in enumerate(data.get("objects", [])):
        try:
            scene.objects.append(_parse_object(obj_data, textures, index))
        except InputError as exc:
            scene.input_errors.append(exc)
            warnings.warn(f"skipped object: {exc}", RuntimeWarning, stacklevel=2)

    for index, tri in enumerate(data.get("navmesh", [])):
        try:
            points = [
                tuple(int(c) for c in _triple(p, "Nav mesh vertex"))
                for p in _triple(tri, "Nav mesh triangle")
            ]
        except (InputError, TypeError, ValueError) as exc:
            error = InputError(f"Invalid nav mesh triangle {index}: {exc}")
            scene.input_errors.append(error)
            warnings.warn(f"skipped nav mesh triangle: {error}", RuntimeWarning, stacklevel=2)
            continue
        scene.navmesh.append(NavMeshTriangle(points[0], points[1], points[2]))  # type: ignore[arg-type]

    return scene


def load_scene(path: str | Path, max_iterations: int | None = None) -> Scene:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise InputError(f"Scene file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise InputError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise InputError("Scene description must be a JSON object")
    return scene_from_dict(data, base_dir=path.parent, max_iterations=max_iterations)
