from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence

from pygame.math import Vector3


@dataclass(frozen=True)
class TerrainSample:
    y: float
    incline_x: float = 0.0
    incline_z: float = 0.0


class TerrainSampler(Protocol):
    def height_at(self, x: float, z: float) -> TerrainSample:
        ...


class Threat(Protocol):
    def world_position(self) -> Vector3:
        ...

    def is_visible(self) -> bool:
        ...


@dataclass(frozen=True)
class Aabb:
    minimum: Vector3
    maximum: Vector3

    @property
    def center(self) -> Vector3:
        return (self.minimum + self.maximum) * 0.5

    @property
    def half_size(self) -> Vector3:
        return (self.maximum - self.minimum) * 0.5

    def expanded(self, margin: float) -> "Aabb":
        pad = Vector3(margin, margin, margin)
        return Aabb(self.minimum - pad, self.maximum + pad)

    def contains(self, point: Vector3) -> bool:
        return (
            self.minimum.x <= point.x <= self.maximum.x
            and self.minimum.y <= point.y <= self.maximum.y
            and self.minimum.z <= point.z <= self.maximum.z
        )

    def distance_to(self, point: Vector3) -> float:
        dx = max(self.minimum.x - point.x, 0.0, point.x - self.maximum.x)
        dy = max(self.minimum.y - point.y, 0.0, point.y - self.maximum.y)
        dz = max(self.minimum.z - point.z, 0.0, point.z - self.maximum.z)
        return math.sqrt(dx * dx + dy * dy + dz * dz)


class Obstacle(Protocol):
    def world_bounds(self) -> Aabb:
        ...


@dataclass
class BoxObstacle:
    center: Vector3
    half_size: Vector3

    def world_bounds(self) -> Aabb:
        return Aabb(self.center - self.half_size, self.center + self.half_size)


@dataclass
class FlatTerrain:
    level: float = 0.0

    def height_at(self, x: float, z: float) -> TerrainSample:
        return TerrainSample(self.level)


class PolarHeightmapTerrain:
    """Height field laid out on a polar grid of ``segments x segments`` samples.

    Row ``i`` is the ring at ``i / segments * radius``, column ``j`` the angle
    ``j / segments * 2pi``. Lookups are bilinear; inclines use central differences.
    """

    _DELTA = 0.01

    def __init__(self, heights: Sequence[Sequence[float]], radius: float) -> None:
        if len(heights) < 2 or any(len(row) < 2 for row in heights):
            raise ValueError("height map needs at least 2x2 samples")
        self._heights: List[List[float]] = [list(map(float, row)) for row in heights]
        self._segments = min(len(self._heights), min(len(row) for row in self._heights)) - 1
        self._radius = radius

    def height_at(self, x: float, z: float) -> TerrainSample:
        y = self._sample(x, z)
        d = self._DELTA
        incline_x = (self._sample(x + d, z) - self._sample(x - d, z)) / (2 * d)
        incline_z = (self._sample(x, z + d) - self._sample(x, z - d)) / (2 * d)
        return TerrainSample(y, incline_x, incline_z)

    def _sample(self, x: float, z: float) -> float:
        segments = self._segments
        r = math.hypot(x, z)
        theta = math.atan2(z, x) % (2.0 * math.pi)
        i_f = min(max((r / self._radius) * segments, 0.0), segments - 1)
        j_f = min(max(theta / (2.0 * math.pi) * segments, 0.0), segments - 1)
        i0 = int(i_f)
        j0 = int(j_f)
        t = i_f - i0
        s = j_f - j0
        h = self._heights
        return (
            (1 - t) * (1 - s) * h[i0][j0]
            + t * (1 - s) * h[i0 + 1][j0]
            + (1 - t) * s * h[i0][j0 + 1]
            + t * s * h[i0 + 1][j0 + 1]
        )


@dataclass
class PointThreat:
    position: Vector3 = field(default_factory=Vector3)
    visible: bool = True

    def world_position(self) -> Vector3:
        return Vector3(self.position)

    def is_visible(self) -> bool:
        return self.visible


@dataclass
class OrbitingThreat:
    """A predator circling the world origin at a fixed height."""

    radius: float = 60.0
    angular_speed: float = 0.5
    height: float = 0.0
    angle: float = 0.0
    visible: bool = True

    def advance(self, dt: float) -> None:
        self.angle = (self.angle + self.angular_speed * dt) % (2.0 * math.pi)

    def world_position(self) -> Vector3:
        return Vector3(self.radius * math.cos(self.angle), self.height, self.radius * math.sin(self.angle))

    def is_visible(self) -> bool:
        return self.visible


@dataclass
class TransformVisual:
    """Plain transform holder used when no rendering layer supplies agent visuals."""

    position: Vector3 = field(default_factory=Vector3)
    orientation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: float = 1.0
    elapsed: float = 0.0

    def animate(self, dt: float) -> None:
        self.elapsed += dt
