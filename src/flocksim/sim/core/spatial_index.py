from __future__ import annotations

import math
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from pygame.math import Vector3

CellKey = Tuple[int, int, int]


class SpatialIndex(Protocol):
    def rebuild(self, positions: Sequence[Vector3]) -> None:
        ...

    def query_radius(self, center: Vector3, radius: float, exclude: Optional[int] = None) -> List[int]:
        ...

    def __len__(self) -> int:
        ...


class BruteForceIndex:
    """Linear scan over a position snapshot. Exact, O(n) per query."""

    def __init__(self) -> None:
        self._points: List[Tuple[float, float, float]] = []

    def __len__(self) -> int:
        return len(self._points)

    def rebuild(self, positions: Sequence[Vector3]) -> None:
        self._points = [(p.x, p.y, p.z) for p in positions]

    def query_radius(self, center: Vector3, radius: float, exclude: Optional[int] = None) -> List[int]:
        radius_sq = radius * radius
        cx, cy, cz = center.x, center.y, center.z
        found: List[int] = []
        for index, (x, y, z) in enumerate(self._points):
            if index == exclude:
                continue
            dx = x - cx
            dy = y - cy
            dz = z - cz
            if dx * dx + dy * dy + dz * dz <= radius_sq:
                found.append(index)
        return found


class UniformGridIndex:
    """Uniform hash grid keyed by integer cell triples.

    Queries return every index stored in the cells covering the search sphere plus
    ``padding_cells`` extra rings, so the result is a superset of the true neighbors as long
    as no point has drifted more than ``padding_cells * cell_size`` since the last rebuild.
    Callers filter by exact distance.
    """

    def __init__(self, cell_size: float, padding_cells: int = 1) -> None:
        if cell_size <= 0:
            raise ValueError("cell_size must be positive")
        self._cell_size = cell_size
        self._padding = max(0, int(padding_cells))
        self._cells: Dict[CellKey, List[int]] = {}
        self._count = 0
        self._offset_cache: Dict[int, List[CellKey]] = {}

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def __len__(self) -> int:
        return self._count

    def cell_range(self, radius: float) -> int:
        return int(math.ceil(radius / self._cell_size)) + self._padding

    def build_neighbor_cell_offsets(self, radius: float) -> List[CellKey]:
        cell_range = self.cell_range(radius)
        offsets = self._offset_cache.get(cell_range)
        if offsets is None:
            span = range(-cell_range, cell_range + 1)
            offsets = [(dx, dy, dz) for dx in span for dy in span for dz in span]
            self._offset_cache[cell_range] = offsets
        return offsets

    def clear(self) -> None:
        self._cells.clear()
        self._count = 0

    def rebuild(self, positions: Sequence[Vector3]) -> None:
        self.clear()
        cells = self._cells
        for index, position in enumerate(positions):
            key = self._cell_key(position)
            bucket = cells.get(key)
            if bucket is None:
                cells[key] = [index]
            else:
                bucket.append(index)
        self._count = len(positions)

    def query_radius(self, center: Vector3, radius: float, exclude: Optional[int] = None) -> List[int]:
        base = self._cell_key(center)
        cells = self._cells
        found: List[int] = []
        cell_range = self.cell_range(radius)
        if (2 * cell_range + 1) ** 3 > len(cells):
            # wide padding: cheaper to walk the occupied cells than the stencil
            for key, bucket in cells.items():
                if max(abs(key[0] - base[0]), abs(key[1] - base[1]), abs(key[2] - base[2])) > cell_range:
                    continue
                for index in bucket:
                    if index != exclude:
                        found.append(index)
            return found
        for dx, dy, dz in self.build_neighbor_cell_offsets(radius):
            bucket = cells.get((base[0] + dx, base[1] + dy, base[2] + dz))
            if not bucket:
                continue
            for index in bucket:
                if index != exclude:
                    found.append(index)
        return found

    def occupied_cells(self) -> int:
        return len(self._cells)

    def _cell_key(self, position: Vector3) -> CellKey:
        size = self._cell_size
        return (int(position.x // size), int(position.y // size), int(position.z // size))
