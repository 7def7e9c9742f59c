from pathlib import Path
import json
import sys

from PIL import Image as PILImage

sys.path.append(str(Path(__file__).resolve().parents[1] / "splashpack/src"))

from splashpack.cli import main  # noqa: E402


def _write_png(path: Path, size=(8, 8)):
    colours = [(255, 0, 0), (0, 255, 0), (0, 0, 255)]
    img = PILImage.new("RGB", size)
    for y in range(size[1]):
        for x in range(size[0]):
            img.putpixel((x, y), colours[(x + y) % 3])
    img.save(path)
    return path


def _write_scene(tmp_path: Path, objects):
    scene = tmp_path / "scene.json"
    scene.write_text(json.dumps({"objects": objects}), encoding="utf-8")
    return scene


def _object(name, source="tex.png", texture=0):
    vertex = {"position": [0, 0, 0], "uv": [1, 1]}
    return {
        "name": name,
        "textures": [{"source": source, "bit_depth": 4}],
        "triangles": [{"vertices": [vertex, vertex, vertex], "texture": texture}],
    }


def test_export_writes_bundle_and_vram_preview(tmp_path, capsys):
    _write_png(tmp_path / "tex.png")
    scene = _write_scene(tmp_path, [_object("cube")])
    output = tmp_path / "build" / "scene.bin"
    vram_png = tmp_path / "build" / "vram.png"

    assert main(["export", str(scene), "-o", str(output), "--vram-png", str(vram_png)]) == 0

    assert output.read_bytes()[:2] == b"SP"
    with PILImage.open(vram_png) as img:
        assert img.size == (1024, 512)
    out = capsys.readouterr().out
    assert f"wrote {output}" in out
    assert "objects: 1, atlases: 1, cluts: 1, triangles: 1" in out


def test_export_refuses_to_overwrite_without_force(tmp_path, capsys):
    _write_png(tmp_path / "tex.png")
    scene = _write_scene(tmp_path, [_object("cube")])
    output = tmp_path / "scene.bin"
    output.write_bytes(b"old")

    assert main(["export", str(scene), "-o", str(output)]) == 1
    assert "--force" in capsys.readouterr().err
    assert output.read_bytes() == b"old"

    assert main(["export", str(scene), "-o", str(output), "--force"]) == 0
    assert output.read_bytes()[:2] == b"SP"


def test_export_reports_skipped_objects(tmp_path, capsys):
    _write_png(tmp_path / "tex.png")
    scene = _write_scene(tmp_path, [_object("cube"), _object("broken", texture=3)])
    output = tmp_path / "scene.bin"

    assert main(["export", str(scene), "-o", str(output)]) == 0
    assert "Warning: skipped object: Object 'broken'" in capsys.readouterr().out

    assert main(["export", str(scene), "-o", str(output), "-f", "--strict"]) == 1
    assert "--strict" in capsys.readouterr().err


def test_export_missing_scene_file(tmp_path, capsys):
    assert main(["export", str(tmp_path / "nope.json"), "-o", str(tmp_path / "x.bin")]) == 1
    assert "Scene file not found" in capsys.readouterr().err


def test_texture_command_writes_raw_data(tmp_path, capsys):
    src = tmp_path / "src"
    src.mkdir()
    _write_png(src / "a.png")
    _write_png(src / "b.png", size=(5, 3))
    out_dir = tmp_path / "out"

    assert main(["texture", str(src), "-o", str(out_dir), "--bit-depth", "4", "--preview"]) == 0

    # 8 texels at 4 per word, 8 rows.
    assert len((out_dir / "a.tex").read_bytes()) == 2 * 2 * 8
    assert len((out_dir / "a.clut").read_bytes()) == 3 * 2
    # 5 texels round up to 2 words, 3 rows.
    assert len((out_dir / "b.tex").read_bytes()) == 2 * 2 * 3
    with PILImage.open(out_dir / "b.preview.png") as img:
        assert img.size == (5, 3)
    assert f"wrote {out_dir / 'a.tex'}" in capsys.readouterr().out


def test_texture_command_sixteen_bit_has_no_clut(tmp_path):
    _write_png(tmp_path / "a.png")
    out_dir = tmp_path / "out"

    assert main(["texture", str(tmp_path / "a.png"), "-o", str(out_dir), "--bit-depth", "16"]) == 0

    assert len((out_dir / "a.tex").read_bytes()) == 8 * 8 * 2
    assert not (out_dir / "a.clut").exists()


def test_texture_command_resizes_and_rejects_bad_sizes(tmp_path, capsys):
    _write_png(tmp_path / "a.png")
    out_dir = tmp_path / "out"

    assert main(["texture", str(tmp_path / "a.png"), "-o", str(out_dir), "--size", "16", "4"]) == 0
    # 16 texels at 2 per word, 4 rows.
    assert len((out_dir / "a.tex").read_bytes()) == 8 * 2 * 4

    argv = ["texture", str(tmp_path / "a.png"), "-o", str(out_dir), "-f", "--size", "512", "4"]
    assert main(argv) == 1
    assert "between 1 and 256" in capsys.readouterr().err


def test_texture_command_rejects_non_png(tmp_path, capsys):
    other = tmp_path / "notes.txt"
    other.write_text("hi", encoding="utf-8")

    assert main(["texture", str(other), "-o", str(tmp_path / "out")]) == 1
    assert "expected .png" in capsys.readouterr().err
