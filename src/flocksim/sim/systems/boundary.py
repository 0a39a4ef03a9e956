from __future__ import annotations

from pygame.math import Vector3

from ...config import ShoalConfig


def soft_turn(config: ShoalConfig, position: Vector3, velocity: Vector3) -> None:
    """Nudge ``velocity`` inward in proportion to how deep ``position`` sits in the turn band."""
    margin = config.turn_margin
    if margin <= 0.0:
        return
    strength = config.turn_strength
    for axis, half in enumerate(config.half_extents):
        coord = position[axis]
        if coord < -half + margin:
            velocity[axis] += strength * (1.0 - (coord + half) / margin)
        elif coord > half - margin:
            velocity[axis] -= strength * (1.0 - (half - coord) / margin)


def hard_clamp(config: ShoalConfig, position: Vector3, velocity: Vector3) -> bool:
    """Pull ``position`` back just inside the box and reflect the outward velocity component.

    Reflection keeps the speed unchanged. Returns True when any axis was corrected.
    """
    inset = config.hard_clamp_inset
    corrected = False
    for axis, half in enumerate(config.half_extents):
        limit = max(0.0, half - inset)
        coord = position[axis]
        if coord < -half:
            position[axis] = -limit
            if velocity[axis] < 0.0:
                velocity[axis] = -velocity[axis]
            corrected = True
        elif coord > half:
            position[axis] = limit
            if velocity[axis] > 0.0:
                velocity[axis] = -velocity[axis]
            corrected = True
    return corrected
