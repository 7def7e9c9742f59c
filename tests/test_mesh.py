from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "splashpack/src"))

from splashpack.mesh import (  # noqa: E402
    IDENTITY,
    NavMeshTriangle,
    Triangle,
    Vertex,
    from_fixed,
    quaternion_to_matrix,
    rotation_to_fixed,
    texpage_attribute,
    to_fixed,
)


def test_to_fixed_scales_and_clamps():
    assert to_fixed(1.0) == 4096
    assert to_fixed(-0.5) == -2048
    assert to_fixed(250.0, 100.0) == 10240
    assert to_fixed(100.0) == 32767
    assert to_fixed(-100.0) == -32768
    assert from_fixed(2048) == 0.5


def test_rotation_is_flattened_row_by_row():
    # Half turn about Z.
    matrix = quaternion_to_matrix(0.0, 0.0, 1.0, 0.0)

    assert rotation_to_fixed(matrix) == (-4096, 0, 0, 0, -4096, 0, 0, 0, 4096)
    assert rotation_to_fixed(IDENTITY) == (4096, 0, 0, 0, 4096, 0, 0, 0, 4096)
    with pytest.raises(ValueError):
        rotation_to_fixed(((1.0, 0.0), (0.0, 1.0)))


def test_zero_quaternion_is_identity():
    assert quaternion_to_matrix(0.0, 0.0, 0.0, 0.0) == IDENTITY


@pytest.mark.parametrize(
    "page_x,page_y,mode,expected",
    [
        (0, 0, 0, 0x200),
        (15, 0, 1, 0x200 | 0x80 | 15),
        (3, 1, 2, 0x200 | 0x100 | 0x10 | 3),
    ],
)
def test_texpage_attribute_bits(page_x, page_y, mode, expected):
    assert texpage_attribute(page_x, page_y, mode) == expected


def test_texpage_attribute_rejects_out_of_range_pages():
    with pytest.raises(ValueError):
        texpage_attribute(16, 0, 0)
    with pytest.raises(ValueError):
        texpage_attribute(0, 2, 0)


def test_face_normal_falls_back_to_first_vertex():
    v0 = Vertex(0, 0, 0, nx=1, ny=2, nz=3)
    v1 = Vertex(1, 1, 1, nx=9, ny=9, nz=9)

    assert Triangle(v0, v1, v1).face_normal == (1, 2, 3)
    assert Triangle(v0, v1, v1, normal=(0, 4096, 0)).face_normal == (0, 4096, 0)


def test_navmesh_from_world_flips_y():
    tri = NavMeshTriangle.from_world([(100, 100, 0), (0, -50, 0), (0, 0, 200)], 100.0)

    assert tri == NavMeshTriangle((4096, -4096, 0), (0, 2048, 0), (0, 0, 8192))
    with pytest.raises(ValueError):
        NavMeshTriangle.from_world([(0, 0, 0)], 100.0)
