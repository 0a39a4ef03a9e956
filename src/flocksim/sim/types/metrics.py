from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    panicking: int
    average_speed: float
    max_speed: float
    neighbor_checks: int
    index_rebuilt: bool
    boundary_corrections: int
    tick_duration_ms: float = 0.0


@dataclass(slots=True)
class ShoalStats:
    agent_count: int
    average_speed: float
    average_distance: float
    panic_count: int
    threat_count: int
    index_enabled: bool
