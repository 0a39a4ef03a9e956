from __future__ import annotations

import random

import pytest
from pygame.math import Vector3

from flocksim.sim.core.spatial_index import BruteForceIndex, UniformGridIndex


def _scatter(count: int, extent: float, seed: int) -> list[Vector3]:
    rng = random.Random(seed)
    return [
        Vector3(rng.uniform(-extent, extent), rng.uniform(-extent, extent), rng.uniform(-extent, extent))
        for _ in range(count)
    ]


def test_brute_force_query_is_exact_and_excludes_self():
    index = BruteForceIndex()
    positions = [Vector3(0, 0, 0), Vector3(1, 1, 0), Vector3(3, 0.5, 0), Vector3(6, 6, 6)]
    index.rebuild(positions)

    center = Vector3(1, 1, 0)
    found = index.query_radius(center, 3.0, exclude=1)
    brute = [
        idx
        for idx, pos in enumerate(positions)
        if idx != 1 and (pos - center).length_squared() <= 9.0
    ]
    assert sorted(found) == sorted(brute)
    assert len(index) == 4


def test_grid_candidates_cover_every_true_neighbor():
    positions = _scatter(300, 60.0, seed=7)
    grid = UniformGridIndex(cell_size=10.0)
    brute = BruteForceIndex()
    grid.rebuild(positions)
    brute.rebuild(positions)

    for i, center in enumerate(positions):
        exact = set(brute.query_radius(center, 10.0, exclude=i))
        candidates = set(grid.query_radius(center, 10.0, exclude=i))
        assert exact <= candidates
        assert i not in candidates


def test_grid_padding_tolerates_drift_within_one_cell():
    positions = _scatter(120, 40.0, seed=3)
    grid = UniformGridIndex(cell_size=8.0, padding_cells=1)
    grid.rebuild(positions)

    drifted = [Vector3(p.x + 7.5, p.y - 7.5, p.z + 7.5) for p in positions]
    for i, center in enumerate(drifted):
        candidates = set(grid.query_radius(center, 8.0, exclude=i))
        exact = {
            j
            for j, other in enumerate(drifted)
            if j != i and center.distance_squared_to(other) <= 64.0
        }
        assert exact <= candidates


def test_rebuild_replaces_previous_contents():
    grid = UniformGridIndex(cell_size=5.0)
    grid.rebuild([Vector3(0, 0, 0), Vector3(100, 100, 100)])
    assert grid.occupied_cells() == 2

    grid.rebuild([Vector3(1, 1, 1)])
    assert len(grid) == 1
    assert grid.occupied_cells() == 1
    assert grid.query_radius(Vector3(100, 100, 100), 5.0) == []


def test_negative_coordinates_share_cells_with_floor_semantics():
    grid = UniformGridIndex(cell_size=4.0, padding_cells=0)
    grid.rebuild([Vector3(-0.5, -0.5, -0.5), Vector3(-3.5, -3.5, -3.5), Vector3(0.5, 0.5, 0.5)])
    assert grid.occupied_cells() == 2


def test_neighbor_cell_offsets_are_cached_per_range():
    grid = UniformGridIndex(cell_size=2.0, padding_cells=1)
    offsets = grid.build_neighbor_cell_offsets(1.6)
    # ceil(1.6 / 2) + 1 padding ring = 2 cells each way
    assert len(offsets) == 5 ** 3
    assert grid.build_neighbor_cell_offsets(1.9) is offsets


def test_grid_rejects_non_positive_cell_size():
    with pytest.raises(ValueError):
        UniformGridIndex(cell_size=0.0)


def test_wide_padding_returns_every_point_in_the_cell_block():
    positions = _scatter(400, 60.0, seed=11)
    narrow = UniformGridIndex(cell_size=5.0, padding_cells=1)
    wide = UniformGridIndex(cell_size=5.0, padding_cells=12)
    narrow.rebuild(positions)
    wide.rebuild(positions)
    assert (2 * wide.cell_range(5.0) + 1) ** 3 > wide.occupied_cells()

    for center_idx in range(0, 400, 37):
        center = positions[center_idx]
        base = tuple(int(c // 5.0) for c in center)
        expected = {
            idx
            for idx, pos in enumerate(positions)
            if idx != center_idx
            and max(abs(int(c // 5.0) - b) for c, b in zip(pos, base)) <= wide.cell_range(5.0)
        }
        found = wide.query_radius(center, 5.0, exclude=center_idx)
        assert len(found) == len(set(found))
        assert set(found) == expected
        assert set(narrow.query_radius(center, 5.0, exclude=center_idx)) <= expected
