from pathlib import Path
import random
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "splashpack/src"))

from splashpack.kdtree import KDTree  # noqa: E402


def _linear_nearest(points, target):
    best = 0
    best_dist = None
    for i, p in enumerate(points):
        dist = sum((a - b) ** 2 for a, b in zip(p, target))
        if best_dist is None or dist < best_dist:
            best = i
            best_dist = dist
    return best


def test_nearest_matches_linear_scan():
    rng = random.Random(7)
    points = [(rng.random(), rng.random(), rng.random()) for _ in range(200)]
    tree = KDTree(points)

    assert len(tree) == 200
    for _ in range(300):
        target = (rng.random(), rng.random(), rng.random())
        assert tree.nearest(target) == _linear_nearest(points, target)


def test_exact_point_is_its_own_nearest():
    points = [(0.0, 0.0, 0.0), (1.0, 1.0, 1.0), (0.5, 0.25, 0.75)]
    tree = KDTree(points)

    for i, p in enumerate(points):
        assert tree.nearest(p) == i


def test_ties_resolve_to_lowest_index():
    points = [(1.0, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0), (-1.0, 0.0, 0.0)]
    tree = KDTree(points)

    assert tree.nearest((0.0, 0.0, 0.0)) == 1
    # Equidistant from index 0 and index 1.
    assert tree.nearest((0.5, 0.0, 0.0)) == 0


def test_duplicate_heavy_input_matches_linear_scan():
    rng = random.Random(3)
    grid = [0.0, 0.5, 1.0]
    points = [(rng.choice(grid), rng.choice(grid), rng.choice(grid)) for _ in range(60)]
    tree = KDTree(points)

    for r in grid:
        for g in grid:
            for b in (0.25, 0.75):
                assert tree.nearest((r, g, b)) == _linear_nearest(points, (r, g, b))


def test_empty_tree_rejects_queries():
    tree = KDTree([])

    assert len(tree) == 0
    with pytest.raises(ValueError):
        tree.nearest((0.0, 0.0, 0.0))
