from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from pygame.math import Vector3

from ...config import ShoalConfig
from ..core.environment import Aabb, TerrainSampler
from ..utils.math3d import _clamp_length, _safe_normalize, _safe_normalize_xyz, _steer_towards


@dataclass(slots=True)
class SteeringContext:
    """Read-only view of the shoal at the start of a tick.

    Positions and velocities are shoal-local; threat positions and the obstacle box are in
    world coordinates, with ``world = origin + local * scale``.
    """

    config: ShoalConfig
    positions: Sequence[Vector3]
    velocities: Sequence[Vector3]
    panicking: Sequence[bool]
    wander_angles: Sequence[float]
    threat_positions: List[Vector3] = field(default_factory=list)
    obstacle_box: Optional[Aabb] = None
    terrain: Optional[TerrainSampler] = None
    origin: Vector3 = field(default_factory=Vector3)
    scale: float = 1.0

    def to_world(self, local: Vector3) -> Vector3:
        return self.origin + local * self.scale


@dataclass(slots=True)
class SteeringResult:
    force: Vector3
    wander_angle: float
    panic_triggered: bool = False


def compute_steering(
    ctx: SteeringContext,
    index: int,
    candidates: Iterable[int],
    wander_sample: float,
) -> SteeringResult:
    """Sum the five weighted contributions for agent ``index`` and clamp to ``2 * max_force``.

    ``wander_sample`` is a draw from ``[-0.5, 0.5)`` supplied by the caller so the composer
    itself stays free of side effects.
    """
    config = ctx.config
    position = ctx.positions[index]
    velocity = ctx.velocities[index]
    world_position = ctx.to_world(position)

    flock = flock_force(config, index, ctx.positions, ctx.velocities, candidates)
    flock += bounds_force(config, position, velocity)
    wander, wander_angle = wander_force(config, velocity, ctx.wander_angles[index], wander_sample)
    terrain = terrain_force(config, ctx.terrain, world_position)
    obstacle = obstacle_force(config, ctx.obstacle_box, world_position)
    evasion, triggered = evasion_force(config, ctx.threat_positions, world_position, ctx.panicking[index])

    total = flock
    total += wander * config.wander_strength
    total += terrain
    total += obstacle
    total += evasion * config.danger_evasion_weight
    return SteeringResult(_clamp_length(total, config.max_force * 2.0), wander_angle, triggered)


def flock_force(
    config: ShoalConfig,
    index: int,
    positions: Sequence[Vector3],
    velocities: Sequence[Vector3],
    candidates: Iterable[int],
) -> Vector3:
    """Separation, alignment and cohesion from one shared awareness-radius scan."""
    position = positions[index]
    velocity = velocities[index]
    awareness = config.awareness_radius
    awareness_sq = awareness * awareness
    px, py, pz = position.x, position.y, position.z

    align_x = align_y = align_z = 0.0
    coh_x = coh_y = coh_z = 0.0
    sep_x = sep_y = sep_z = 0.0
    total = 0
    for other in candidates:
        if other == index:
            continue
        q = positions[other]
        dx = px - q.x
        dy = py - q.y
        dz = pz - q.z
        dist_sq = dx * dx + dy * dy + dz * dz
        if dist_sq <= 0.0 or dist_sq >= awareness_sq:
            continue
        v = velocities[other]
        align_x += v.x
        align_y += v.y
        align_z += v.z
        coh_x += q.x
        coh_y += q.y
        coh_z += q.z
        # unit offset divided by distance: magnitude 1/d
        inv_sq = 1.0 / dist_sq
        sep_x += dx * inv_sq
        sep_y += dy * inv_sq
        sep_z += dz * inv_sq
        total += 1

    force = Vector3()
    if total == 0:
        return force
    inv = 1.0 / total
    speed = config.max_speed
    force += _steer_towards(
        Vector3(align_x * inv, align_y * inv, align_z * inv), velocity, speed, config.alignment_weight
    )
    force += _steer_towards(
        Vector3(coh_x * inv - px, coh_y * inv - py, coh_z * inv - pz), velocity, speed, config.cohesion_weight
    )
    force += _steer_towards(
        Vector3(sep_x * inv, sep_y * inv, sep_z * inv), velocity, speed, config.separation_weight
    )
    return force


def bounds_force(config: ShoalConfig, position: Vector3, velocity: Vector3) -> Vector3:
    """Steer back toward the interior once within ``bounds_margin`` of a wall."""
    margin = config.bounds_margin
    if margin <= 0.0:
        return Vector3()
    push = [0.0, 0.0, 0.0]
    closest = math.inf
    for axis, half in enumerate(config.half_extents):
        coord = position[axis]
        to_low = coord + half
        to_high = half - coord
        if to_low < margin:
            push[axis] += (margin - to_low) / margin
        elif to_high < margin:
            push[axis] -= (margin - to_high) / margin
        closest = min(closest, to_low, to_high)

    direction = _safe_normalize_xyz(push[0], push[1], push[2])
    if direction.length_squared() == 0.0:
        return Vector3()
    urgency = 1.0 - closest / margin
    desired = direction * (config.max_speed * (1.0 + urgency * 2.0))
    return _clamp_length(desired - velocity, config.bounds_weight * (1.0 + urgency))


def wander_force(
    config: ShoalConfig, velocity: Vector3, angle: float, sample: float
) -> tuple[Vector3, float]:
    """Return the unweighted wander steer and the agent's next wander angle."""
    angle += sample * config.wander_jitter
    heading = _safe_normalize(velocity) * 2.0
    offset = Vector3(math.cos(angle) * 0.8, math.sin(angle) * 0.3, math.sin(angle * 0.8) * 0.8)
    desired = _safe_normalize(heading + offset) * (config.max_speed * 0.3)
    return desired - velocity, angle


def terrain_force(config: ShoalConfig, terrain: Optional[TerrainSampler], world_position: Vector3) -> Vector3:
    if terrain is None:
        return Vector3()
    margin = config.terrain_margin
    safe_height = terrain.height_at(world_position.x, world_position.z).y + margin
    if world_position.y >= safe_height:
        return Vector3()
    penetration = safe_height - world_position.y
    ratio = penetration / margin if margin > 0.0 else 1.0
    cap = min(config.max_speed * 2.0, config.terrain_force_cap)
    return Vector3(0.0, min(ratio * ratio * config.terrain_force_scale, cap), 0.0)


def obstacle_force(config: ShoalConfig, box: Optional[Aabb], world_position: Vector3) -> Vector3:
    """Two regimes: push out through the nearest face when inside, radial push when close."""
    if box is None:
        return Vector3()
    if box.contains(world_position):
        center = box.center
        half = box.half_size
        local = world_position - center
        best_axis = 0
        best_depth = math.inf
        for axis in range(3):
            depth = half[axis] - abs(local[axis])
            if depth < best_depth:
                best_depth = depth
                best_axis = axis
        push = Vector3()
        push[best_axis] = 1.0 if local[best_axis] >= 0.0 else -1.0
        extent = half[best_axis]
        urgency = (best_depth / extent) ** 2 if extent > 0.0 else 1.0
        return push * (config.max_speed * (1.0 + urgency * 3.0))

    proximity = config.obstacle_proximity
    if proximity <= 0.0:
        return Vector3()
    distance = box.distance_to(world_position)
    if distance >= proximity:
        return Vector3()
    away = _safe_normalize(world_position - box.center)
    return away * (config.max_speed * (1.0 - distance / proximity))


def evasion_force(
    config: ShoalConfig,
    threat_positions: Sequence[Vector3],
    world_position: Vector3,
    panicking: bool,
) -> tuple[Vector3, bool]:
    """Unweighted escape steer from visible threats, plus whether panic should trigger."""
    detection = config.danger_detection_distance
    evasion = config.danger_evasion_distance
    steer = Vector3()
    triggered = False
    detected = False
    closest_distance = math.inf
    closest_direction = Vector3()

    for threat in threat_positions:
        offset = world_position - threat
        distance = offset.length()
        if distance >= detection:
            continue
        detected = True
        direction = _safe_normalize(offset)
        if distance < closest_distance:
            closest_distance = distance
            closest_direction = direction
        if distance < evasion:
            urgency = 1.0 - distance / evasion
            steer += direction * (urgency * urgency * config.evasion_strength)
            if distance < evasion * 0.5:
                triggered = True

    if not detected:
        return steer, triggered
    if steer.length_squared() == 0.0 and detection > 0.0:
        detection_urgency = 1.0 - closest_distance / detection
        steer = closest_direction * (detection_urgency * config.preemptive_evasion_strength)
    if steer.length_squared() > 0.0:
        multiplier = config.panic_speed_multiplier if (panicking or triggered) else config.calm_evasion_multiplier
        steer = _clamp_length(steer, config.max_force * config.danger_evasion_weight * multiplier)
    return steer, triggered
