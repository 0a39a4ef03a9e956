from __future__ import annotations

import math

from pygame.math import Vector3

from ...config import ShoalConfig
from ..core.agent import Agent
from ..utils.math3d import _clamp_value, _wrap_angle


def update_orientation(config: ShoalConfig, agent: Agent) -> None:
    """Ease yaw and pitch toward the heading and bank into turns.

    Panicking agents turn with ``panic_rotation_smoothness`` instead of
    ``rotation_smoothness``. Nearly stationary agents keep their orientation.
    """
    velocity = agent.velocity
    if velocity.length_squared() < 1e-4:
        return
    target_yaw = math.atan2(velocity.x, velocity.z)
    target_pitch = math.atan2(velocity.y, math.hypot(velocity.x, velocity.z))
    delta_yaw = _wrap_angle(target_yaw - agent.yaw)
    bank = _clamp_value(-delta_yaw * config.bank_factor, -config.max_bank, config.max_bank)
    smoothness = config.panic_rotation_smoothness if agent.panic else config.rotation_smoothness
    agent.yaw = _wrap_angle(agent.yaw + delta_yaw * smoothness)
    agent.pitch += (target_pitch - agent.pitch) * smoothness
    agent.roll += (bank - agent.roll) * smoothness


def apply_scale(config: ShoalConfig, agent: Agent) -> None:
    if agent.visual is not None:
        agent.visual.scale = agent.size_scale * config.agent_scale


def sync_visual(config: ShoalConfig, agent: Agent, dt: float) -> None:
    update_orientation(config, agent)
    visual = agent.visual
    if visual is None:
        return
    visual.position = Vector3(agent.position)
    visual.orientation = (agent.yaw, agent.pitch, agent.roll)
    animate = getattr(visual, "animate", None)
    if callable(animate):
        animate(dt)
