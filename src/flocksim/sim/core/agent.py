from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pygame.math import Vector3


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector3
    velocity: Vector3
    acceleration: Vector3 = field(default_factory=Vector3)
    wander_angle: float = 0.0
    panic: bool = False
    panic_timer: int = 0
    size_scale: float = 1.0
    appearance_h: float = 0.0
    appearance_s: float = 0.0
    appearance_l: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    visual: Any = None
