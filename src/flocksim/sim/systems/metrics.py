from __future__ import annotations

from typing import Callable, List, Sequence

from ..core.agent import Agent
from ..types.metrics import ShoalStats, TickMetrics


def create_metrics(
    tick: int,
    agents: Sequence[Agent],
    neighbor_checks: int,
    index_rebuilt: bool,
    boundary_corrections: int,
    duration_ms: float,
) -> TickMetrics:
    population = len(agents)
    speed_sum = 0.0
    max_speed = 0.0
    panicking = 0
    for agent in agents:
        speed = agent.velocity.length()
        speed_sum += speed
        if speed > max_speed:
            max_speed = speed
        if agent.panic:
            panicking += 1
    return TickMetrics(
        tick=tick,
        population=population,
        panicking=panicking,
        average_speed=0.0 if population == 0 else speed_sum / population,
        max_speed=max_speed,
        neighbor_checks=neighbor_checks,
        index_rebuilt=index_rebuilt,
        boundary_corrections=boundary_corrections,
        tick_duration_ms=duration_ms,
    )


def compute_stats(
    agents: Sequence[Agent],
    neighbors_of: Callable[[int, float], List[int]],
    radius: float,
    threat_count: int,
    index_enabled: bool,
) -> ShoalStats:
    """Average speed plus the mean spacing of neighbor pairs within ``radius``.

    Each unordered pair is counted once.
    """
    population = len(agents)
    speed_sum = 0.0
    distance_sum = 0.0
    pairs = 0
    panic_count = 0
    for i, agent in enumerate(agents):
        speed_sum += agent.velocity.length()
        if agent.panic:
            panic_count += 1
        for j in neighbors_of(i, radius):
            if j > i:
                distance_sum += agent.position.distance_to(agents[j].position)
                pairs += 1
    return ShoalStats(
        agent_count=population,
        average_speed=0.0 if population == 0 else speed_sum / population,
        average_distance=0.0 if pairs == 0 else distance_sum / pairs,
        panic_count=panic_count,
        threat_count=threat_count,
        index_enabled=index_enabled,
    )
