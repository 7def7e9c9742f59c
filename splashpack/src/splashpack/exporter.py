"""One-shot export: validate objects, pack VRAM, serialise the bundle."""

from __future__ import annotations

import io
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Sequence

from .errors import InputError, SerializationInvariantError
from .mesh import NavMeshTriangle
from .scene import ExportObject, Scene, SceneConfig
from .serializer import placed_triangles, serialize_scene
from .vram import PackingFailure, PackResult, pack_textures


@dataclass
class ExportReport:
    """Diagnostics of a single export."""

    output: Path | None = None
    size: int = 0
    objects: int = 0
    atlases: int = 0
    cluts: int = 0
    triangles: int = 0
    dropped_triangles: int = 0
    navmesh_triangles: int = 0
    packing_failures: List[PackingFailure] = field(default_factory=list)
    input_errors: List[InputError] = field(default_factory=list)
    serialization_errors: List[SerializationInvariantError] = field(default_factory=list)
    packing: PackResult | None = field(default=None, repr=False)

    @property
    def written(self) -> bool:
        return not self.serialization_errors and self.size > 0

    @property
    def has_failures(self) -> bool:
        return bool(self.packing_failures or self.input_errors or self.serialization_errors)

    def lines(self) -> List[str]:
        lines = [
            f"objects: {self.objects}, atlases: {self.atlases}, cluts: {self.cluts}, "
            f"triangles: {self.triangles}, nav mesh triangles: {self.navmesh_triangles}"
        ]
        if self.dropped_triangles:
            lines.append(f"dropped {self.dropped_triangles} triangles with unplaced textures")
        lines.extend(f"packing failure: {failure}" for failure in self.packing_failures)
        lines.extend(f"input error: {error}" for error in self.input_errors)
        lines.extend(f"serialization error: {error}" for error in self.serialization_errors)
        return lines


def _validate(objects: Sequence[ExportObject], report: ExportReport) -> List[ExportObject]:
    valid: List[ExportObject] = []
    for obj in objects:
        try:
            obj.validate()
        except InputError as exc:
            report.input_errors.append(exc)
            warnings.warn(f"skipped object: {exc}", RuntimeWarning, stacklevel=3)
            continue
        valid.append(obj)
    return valid


def export_scene(
    objects: Sequence[ExportObject],
    config: SceneConfig,
    output: str | Path | BinaryIO,
    navmesh: Sequence[NavMeshTriangle] = (),
    input_errors: Sequence[InputError] = (),
) -> ExportReport:
    """Export ``objects`` into ``output`` and return the diagnostic report.

    The bundle is assembled in memory; ``output`` is only touched once
    serialisation succeeded. A serialisation invariant failure is recorded in
    the report and nothing is written.
    """

    report = ExportReport(input_errors=list(input_errors))
    valid = _validate(objects, report)

    textures = [texture for obj in valid for texture in obj.textures]
    packing = pack_textures(textures, config.reserved())
    report.packing = packing
    report.packing_failures = list(packing.failures)

    buffer = io.BytesIO()
    try:
        serialize_scene(buffer, valid, packing, gte_scaling=config.gte_scaling, navmesh=navmesh)
    except SerializationInvariantError as exc:
        report.serialization_errors.append(exc)
        return report

    data = buffer.getvalue()
    if isinstance(output, (str, Path)):
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        report.output = path
    else:
        output.write(data)

    report.size = len(data)
    report.objects = len(valid)
    report.atlases = len(packing.atlases)
    report.cluts = len(packing.clut_textures)
    report.navmesh_triangles = len(navmesh)
    for obj in valid:
        kept = len(placed_triangles(obj))
        report.triangles += kept
        report.dropped_triangles += len(obj.triangles or []) - kept
    return report


def export(scene: Scene, output: str | Path | BinaryIO) -> ExportReport:
    return export_scene(
        scene.objects,
        scene.config,
        output,
        navmesh=scene.navmesh,
        input_errors=scene.input_errors,
    )
