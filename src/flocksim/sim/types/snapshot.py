from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    agents: List[Dict[str, Any]]
    threats: List[Dict[str, float]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"


@dataclass(slots=True)
class SnapshotWorld:
    area_size: float
    height: float
    origin: tuple[float, float, float]


@dataclass(slots=True)
class SnapshotMetadata:
    max_time_step: float
    seed: int
    index_enabled: bool
    index_rebuild_interval: int
