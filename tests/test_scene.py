from pathlib import Path
import json
import sys

import pytest
from PIL import Image as PILImage

sys.path.append(str(Path(__file__).resolve().parents[1] / "splashpack/src"))

from splashpack.color import BitDepth  # noqa: E402
from splashpack.errors import InputError  # noqa: E402
from splashpack.mesh import IDENTITY, NavMeshTriangle, Triangle, Vertex  # noqa: E402
from splashpack.scene import (  # noqa: E402
    ExportObject,
    SceneConfig,
    load_scene,
    parse_config,
    scene_from_dict,
)
from splashpack.vram import ReservedRegion  # noqa: E402


def _write_png(path: Path, size=(8, 8)):
    colours = [(255, 0, 0), (0, 255, 0), (0, 0, 255)]
    img = PILImage.new("RGB", size)
    for y in range(size[1]):
        for x in range(size[0]):
            img.putpixel((x, y), colours[(x + y) % 3])
    img.save(path)
    return path


def _vertex(x, y, z, u=0, v=0):
    return {"position": [x, y, z], "uv": [u, v], "color": [200, 100, 50]}


def _triangle(texture=0):
    return {
        "vertices": [_vertex(0, 0, 0), _vertex(4096, 0, 0, u=7), _vertex(0, 4096, 0, v=7)],
        "texture": texture,
    }


def test_default_config_reserves_two_framebuffers():
    config = SceneConfig()

    assert [(r.x, r.y, r.width, r.height) for r in config.reserved()] == [
        (0, 0, 320, 240),
        (0, 256, 320, 240),
    ]


def test_config_falls_back_to_a_layout_that_fits():
    tall = SceneConfig(resolution=(320, 480))
    huge = SceneConfig(resolution=(640, 480))

    assert [(r.x, r.y) for r in tall.framebuffers()] == [(0, 0), (320, 0)]
    assert len(huge.framebuffers()) == 1


def test_config_keeps_extra_reserved_regions():
    region = ReservedRegion(960, 0, 64, 64, "font")
    config = SceneConfig(dual_buffering=False, reserved_regions=[region])

    assert config.reserved()[-1] == region
    assert len(config.reserved()) == 2


def test_invalid_config_is_an_input_error():
    with pytest.raises(InputError):
        parse_config({"resolution": [300, 200]})
    with pytest.raises(InputError):
        parse_config({"gte_scaling": 0})


def test_object_validation():
    vertex = Vertex(0, 0, 0)
    tri = Triangle(vertex, vertex, vertex, texture=1)

    with pytest.raises(InputError, match="no mesh"):
        ExportObject("empty", triangles=None).validate()
    with pytest.raises(InputError, match="missing texture 1"):
        ExportObject("bad", textures=[], triangles=[tri]).validate()


def test_scene_from_dict_resolves_objects(tmp_path):
    _write_png(tmp_path / "brick.png")
    data = {
        "config": {"gte_scaling": 50, "dual_buffering": False},
        "objects": [
            {
                "name": "wall",
                "position": [1, 2, 3],
                "rotation": {"quaternion": [0, 0, 0, 1]},
                "textures": [{"source": "brick.png", "bit_depth": 4}],
                "triangles": [_triangle()],
            }
        ],
        "navmesh": [[[0, 0, 0], [10, 0, 0], [0, 0, 10]]],
    }

    scene = scene_from_dict(data, base_dir=tmp_path)

    assert scene.config.gte_scaling == 50
    assert scene.input_errors == []
    wall = scene.objects[0]
    assert wall.name == "wall"
    assert wall.position == (1.0, 2.0, 3.0)
    assert wall.rotation == IDENTITY
    assert wall.textures[0].bit_depth == BitDepth.BPP4
    assert wall.textures[0].name == "brick"
    assert wall.triangles[0].v1.vx == 4096
    assert wall.triangles[0].v1.u == 7
    assert wall.triangles[0].v0.r == 200
    assert scene.navmesh == [NavMeshTriangle((0, 0, 0), (10, 0, 0), (0, 0, 10))]


def test_shared_texture_sources_are_quantized_once(tmp_path):
    _write_png(tmp_path / "shared.png")
    entry = {"source": "shared.png", "bit_depth": 8}
    data = {
        "objects": [
            {"name": "a", "textures": [entry], "triangles": [_triangle()]},
            {"name": "b", "textures": [dict(entry)], "triangles": [_triangle()]},
            {"name": "c", "textures": [dict(entry, bit_depth=4)], "triangles": [_triangle()]},
        ]
    }

    scene = scene_from_dict(data, base_dir=tmp_path)

    a, b, c = scene.objects
    assert a.textures[0] is b.textures[0]
    assert a.textures[0] is not c.textures[0]


def test_bad_objects_are_skipped_with_a_warning(tmp_path):
    _write_png(tmp_path / "ok.png")
    data = {
        "objects": [
            {"name": "no_mesh", "textures": []},
            {"name": "bad_index", "textures": [], "triangles": [_triangle(texture=2)]},
            {"name": "missing_file", "textures": [{"source": "nope.png"}], "triangles": []},
            {"name": "good", "textures": [{"source": "ok.png"}], "triangles": [_triangle()]},
        ]
    }

    with pytest.warns(RuntimeWarning, match="skipped object"):
        scene = scene_from_dict(data, base_dir=tmp_path)

    assert [obj.name for obj in scene.objects] == ["good"]
    assert len(scene.input_errors) == 3
    assert "nope.png" in str(scene.input_errors[2])


def test_bad_nav_mesh_triangles_are_skipped_with_a_warning(tmp_path):
    data = {
        "navmesh": [
            [[0, 0, 0], [10, 0, 0]],
            [[0, 0, 0], [10, 0, 0], [0, 0, 10]],
            [[0, 0, 0], [10, "x", 0], [0, 0, 10]],
        ]
    }

    with pytest.warns(RuntimeWarning, match="skipped nav mesh triangle"):
        scene = scene_from_dict(data, base_dir=tmp_path)

    assert scene.navmesh == [NavMeshTriangle((0, 0, 0), (10, 0, 0), (0, 0, 10))]
    assert len(scene.input_errors) == 2
    assert all(isinstance(error, InputError) for error in scene.input_errors)
    assert "triangle 0" in str(scene.input_errors[0])
    assert "triangle 2" in str(scene.input_errors[1])


def test_textures_can_be_resized(tmp_path):
    _write_png(tmp_path / "big.png", size=(40, 20))
    data = {
        "objects": [
            {
                "name": "a",
                "textures": [{"source": "big.png", "size": [16, 8]}],
                "triangles": [],
            }
        ]
    }

    scene = scene_from_dict(data, base_dir=tmp_path)

    texture = scene.objects[0].textures[0]
    assert (texture.width, texture.height) == (16, 8)


def test_load_scene_reads_json_relative_to_the_file(tmp_path):
    (tmp_path / "assets").mkdir()
    _write_png(tmp_path / "assets" / "floor.png")
    scene_path = tmp_path / "scene.json"
    scene_path.write_text(
        json.dumps(
            {
                "config": {"max_iterations": 3},
                "objects": [
                    {
                        "name": "floor",
                        "textures": [{"source": "assets/floor.png"}],
                        "triangles": [_triangle()],
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    scene = load_scene(scene_path, max_iterations=5)

    assert scene.config.max_iterations == 5
    assert scene.objects[0].textures[0].name == "floor"


def test_load_scene_reports_unreadable_files(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")

    with pytest.raises(InputError, match="Invalid JSON"):
        load_scene(broken)
    with pytest.raises(InputError, match="not found"):
        load_scene(tmp_path / "missing.json")
