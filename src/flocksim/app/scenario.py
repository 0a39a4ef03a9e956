from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from pygame.math import Vector3

from ..config import AppConfig, EnvironmentConfig
from ..sim.core.environment import (
    BoxObstacle,
    FlatTerrain,
    OrbitingThreat,
    PolarHeightmapTerrain,
    TerrainSampler,
)
from ..sim.core.shoal import Shoal


@dataclass
class Scenario:
    """A shoal wired to the headless environment fixtures described by ``AppConfig``."""

    shoal: Shoal
    threat: Optional[OrbitingThreat]

    def step(self, dt: float):
        if self.threat is not None:
            self.threat.advance(dt)
        return self.shoal.update(dt)


def build_terrain(env: EnvironmentConfig) -> TerrainSampler:
    if env.terrain_kind == "flat":
        return FlatTerrain(env.terrain_height)
    # dunes: three ridges around the origin, rising toward the rim
    segments = env.terrain_segments
    heights = [
        [
            env.terrain_height
            + env.terrain_amplitude * (ring / segments) * math.sin(3.0 * 2.0 * math.pi * column / segments)
            for column in range(segments + 1)
        ]
        for ring in range(segments + 1)
    ]
    return PolarHeightmapTerrain(heights, env.terrain_radius)


def build_scenario(config: AppConfig) -> Scenario:
    env = config.environment
    obstacle = None
    if env.obstacle_enabled:
        obstacle = BoxObstacle(Vector3(env.obstacle_center), Vector3(env.obstacle_half_size))
    shoal = Shoal(config.shoal, terrain=build_terrain(env), obstacle=obstacle)
    threat = None
    if env.threat_enabled:
        threat = OrbitingThreat(
            radius=env.threat_orbit_radius,
            angular_speed=env.threat_orbit_speed,
            height=env.threat_height,
        )
        shoal.add_threat(threat)
    return Scenario(shoal=shoal, threat=threat)
