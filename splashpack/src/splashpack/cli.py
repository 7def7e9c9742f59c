"""Command line interface for splashpack."""

from __future__ import annotations

import argparse
import sys
import warnings
from pathlib import Path
from typing import Iterable, List

from .color import BitDepth
from .errors import SplashpackError
from .exporter import export
from .image import ImageError, load_image
from .quantizer import DEFAULT_MAX_ITERATIONS
from .scene import load_scene
from .texture import IndexedTexture
from .vram import canvas_to_image


def iter_pngs(paths: Iterable[str]) -> List[Path]:
    results: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            if path.suffix.lower() != ".png":
                raise SplashpackError(f"Unsupported file type (expected .png): {path}")
            results.append(path)
        elif path.is_dir():
            for entry in sorted(path.iterdir()):
                if entry.is_file() and entry.suffix.lower() == ".png":
                    results.append(entry)
        else:
            raise SplashpackError(f"Input path does not exist: {path}")
    if not results:
        raise SplashpackError("No PNG files were found in the provided inputs.")
    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Export scenes into the SP binary bundle, or quantize single textures.\n"
            "Textures are reduced to 4-bit or 8-bit palettes (or 15-bit direct colour), "
            "packed into 1024x512 VRAM around the framebuffers and written together "
            "with the scene's triangles."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scene = sub.add_parser("export", help="Export a JSON scene description to a .bin bundle")
    scene.add_argument("scene", help="Scene description (.json)")
    scene.add_argument("-o", "--output", required=True, help="Destination .bin file")
    scene.add_argument(
        "--vram-png",
        help="Also write a PNG preview of the packed VRAM with reserved areas outlined",
    )
    scene.add_argument(
        "--max-iterations",
        type=int,
        help="Override the K-Means iteration cap from the scene config",
    )
    scene.add_argument(
        "--strict",
        action="store_true",
        help="Exit with an error when any texture, atlas or CLUT could not be packed",
    )
    scene.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing files without prompting",
    )

    texture = sub.add_parser("texture", help="Quantize PNG files into raw texture and CLUT data")
    texture.add_argument(
        "inputs",
        nargs="+",
        help="PNG files or folders containing PNGs (non-recursive)",
    )
    texture.add_argument(
        "-o",
        "--output-dir",
        required=True,
        help="Destination directory for .tex/.clut files",
    )
    texture.add_argument(
        "--bit-depth",
        type=int,
        choices=[4, 8, 16],
        default=8,
        help="Texture colour depth",
    )
    texture.add_argument(
        "--size",
        nargs=2,
        type=int,
        metavar=("W", "H"),
        help="Resize the source before quantization (1-256 each)",
    )
    texture.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help="Upper bound on K-Means iterations",
    )
    texture.add_argument(
        "--no-dither",
        action="store_true",
        help="Map pixels to the nearest palette colour without error diffusion",
    )
    texture.add_argument(
        "--preview",
        action="store_true",
        help="Also write a PNG preview of the quantized texture",
    )
    texture.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing files without prompting",
    )

    return parser


def ensure_writable(targets: Iterable[Path], force: bool) -> None:
    conflicts = [str(target) for target in targets if target.exists() and not force]
    if conflicts:
        raise SplashpackError(
            "Output files already exist (use --force to overwrite):\n" + "\n".join(conflicts)
        )


def run_export(args: argparse.Namespace) -> int:
    output = Path(args.output)
    targets = [output] + ([Path(args.vram_png)] if args.vram_png else [])
    ensure_writable(targets, args.force)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        scene = load_scene(args.scene, max_iterations=args.max_iterations)
        report = export(scene, output)
    for warning in caught:
        print(f"Warning: {warning.message}")

    if report.serialization_errors:
        for error in report.serialization_errors:
            print(f"Failed to write {output}: {error}", file=sys.stderr)
        return 1

    print(f"wrote {output}")
    print(report.lines()[0])
    if report.dropped_triangles:
        print(f"dropped {report.dropped_triangles} triangles with unplaced textures")

    if args.vram_png and report.packing is not None:
        overlays = list(report.packing.reserved) + report.packing.placed_rects()
        vram_png = Path(args.vram_png)
        vram_png.parent.mkdir(parents=True, exist_ok=True)
        canvas_to_image(report.packing.canvas, overlays).save(vram_png)
        print(f"wrote {vram_png}")

    if args.strict and report.has_failures:
        print("Export finished with packing failures or input errors (--strict)", file=sys.stderr)
        return 1
    return 0


def run_texture(args: argparse.Namespace) -> int:
    bit_depth = BitDepth.parse(args.bit_depth)
    inputs = iter_pngs(args.inputs)
    output_dir = Path(args.output_dir)

    names = [path.stem for path in inputs]
    if len(set(names)) != len(names):
        raise SplashpackError("Duplicate output names would occur for the given inputs")

    targets: List[Path] = []
    for name in names:
        targets.append(output_dir / f"{name}.tex")
        if bit_depth.has_palette:
            targets.append(output_dir / f"{name}.clut")
        if args.preview:
            targets.append(output_dir / f"{name}.preview.png")
    ensure_writable(targets, args.force)
    output_dir.mkdir(parents=True, exist_ok=True)

    size = tuple(args.size) if args.size else None
    for src, name in zip(inputs, names):
        try:
            image = load_image(src, size)  # type: ignore[arg-type]
        except ImageError as exc:
            raise SplashpackError(str(exc)) from exc
        texture = IndexedTexture.from_image(
            image,
            bit_depth,
            max_iterations=args.max_iterations,
            name=name,
            dither=not args.no_dither,
        )
        tex_path = output_dir / f"{name}.tex"
        tex_path.write_bytes(texture.texture_data_bytes())
        print(f"wrote {tex_path}")
        if bit_depth.has_palette:
            clut_path = output_dir / f"{name}.clut"
            clut_path.write_bytes(texture.clut_data_bytes())
            print(f"wrote {clut_path}")
        if args.preview:
            preview_path = output_dir / f"{name}.preview.png"
            texture.preview().save(preview_path)
            print(f"wrote {preview_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "export":
            return run_export(args)
        return run_texture(args)
    except (SplashpackError, ImageError) as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
