from __future__ import annotations

import colorsys
import logging
import math
from typing import Optional

from pygame.math import Vector3

from ...config import ShoalConfig
from ...rng import DeterministicRng
from ..core.environment import TerrainSampler
from ..utils.math3d import _clamp_value

logger = logging.getLogger(__name__)


def parse_hex_color(color: str) -> tuple[float, float, float]:
    """Return ``(h, s, l)`` in ``[0, 1]`` for a ``#rrggbb`` string."""
    value = color.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected #rrggbb color, got {color!r}")
    r, g, b = (int(value[i : i + 2], 16) / 255.0 for i in (0, 2, 4))
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return h, s, l


def spawn_position(
    config: ShoalConfig,
    rng: DeterministicRng,
    terrain: Optional[TerrainSampler] = None,
    origin: Optional[Vector3] = None,
) -> Vector3:
    """Sample a spawn point outside the central dead zone.

    ``(x, z)`` is uniform over a disk and ``y`` uniform over the box height. Samples inside
    the dead zone are rejected; after ``spawn_max_attempts`` the last sample is kept.
    """
    half_x, half_y, half_z = config.half_extents
    radius = config.spawn_radius if config.spawn_radius is not None else min(half_x, half_z)
    dead_zone = config.spawn_dead_zone
    attempts = 0
    while True:
        x, z = rng.next_in_disk(radius)
        y = rng.next_range(-half_y, half_y)
        attempts += 1
        if math.hypot(x, z) > dead_zone:
            break
        if attempts >= config.spawn_max_attempts:
            logger.warning(
                "spawn sampling hit %d attempts inside dead zone %.2f; keeping last sample",
                attempts,
                dead_zone,
            )
            break

    if terrain is not None:
        origin = origin if origin is not None else Vector3()
        scale = config.scale
        world_x = origin.x + x * scale
        world_z = origin.z + z * scale
        floor = terrain.height_at(world_x, world_z).y + config.terrain_margin
        if origin.y + y * scale < floor:
            y = min((floor - origin.y) / scale, half_y)
    return Vector3(
        _clamp_value(x, -half_x, half_x),
        y,
        _clamp_value(z, -half_z, half_z),
    )


def initial_velocity(config: ShoalConfig, rng: DeterministicRng) -> Vector3:
    heading = rng.next_angle()
    vertical = rng.next_range(-0.15 * math.pi, 0.15 * math.pi)
    speed = config.max_speed
    return Vector3(
        math.cos(heading) * speed * 0.3,
        math.sin(vertical) * speed * 0.1,
        math.sin(heading) * speed * 0.3,
    )


def size_scale(config: ShoalConfig, rng: DeterministicRng) -> float:
    return 0.8 + rng.next_centered() * config.size_variation


def appearance(config: ShoalConfig, rng: DeterministicRng) -> tuple[float, float, float]:
    hue, saturation, lightness = parse_hex_color(config.color)
    hue = (hue + rng.next_centered() * config.color_variation) % 1.0
    saturation = _clamp_value(saturation + rng.next_centered() * 0.4, 0.0, 1.0)
    return hue, saturation, lightness
