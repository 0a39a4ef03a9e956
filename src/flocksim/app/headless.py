from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..config import AppConfig
from ..sim.core.shoal import Shoal
from ..sim.types.metrics import TickMetrics
from .scenario import build_scenario

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "tick",
    "population",
    "panicking",
    "avg_speed",
    "max_speed",
    "neighbor_checks",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "panicking",
    "avg_speed",
    "max_speed",
    "neighbor_checks",
    "tick_ms",
    "panic_ratio",
    "neighbor_checks_per_agent",
    "tick_ms_per_agent",
    "index_rebuilt",
    "boundary_corrections",
    "occupied_cells",
    "centroid_x",
    "centroid_y",
    "centroid_z",
    "spread",
    "min_y",
    "max_y",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.panicking,
        f"{metrics.average_speed:.4f}",
        f"{metrics.max_speed:.4f}",
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(shoal: Shoal, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        panic_ratio = 0.0
        neighbor_checks_per_agent = 0.0
        tick_ms_per_agent = 0.0
        centroid = (0.0, 0.0, 0.0)
        spread = 0.0
        min_y = 0.0
        max_y = 0.0
    else:
        panic_ratio = metrics.panicking / population
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        tick_ms_per_agent = tick_ms / population

        sum_x = sum_y = sum_z = 0.0
        min_y = math.inf
        max_y = -math.inf
        for agent in shoal.agents:
            pos = agent.position
            sum_x += pos.x
            sum_y += pos.y
            sum_z += pos.z
            min_y = min(min_y, pos.y)
            max_y = max(max_y, pos.y)
        centroid = (sum_x / population, sum_y / population, sum_z / population)
        spread_sum = 0.0
        for agent in shoal.agents:
            pos = agent.position
            spread_sum += math.sqrt(
                (pos.x - centroid[0]) ** 2 + (pos.y - centroid[1]) ** 2 + (pos.z - centroid[2]) ** 2
            )
        spread = spread_sum / population

    return [
        metrics.tick,
        population,
        metrics.panicking,
        f"{metrics.average_speed:.4f}",
        f"{metrics.max_speed:.4f}",
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
        f"{panic_ratio:.4f}",
        f"{neighbor_checks_per_agent:.4f}",
        f"{tick_ms_per_agent:.4f}",
        int(metrics.index_rebuilt),
        metrics.boundary_corrections,
        shoal.occupied_cells(),
        f"{centroid[0]:.4f}",
        f"{centroid[1]:.4f}",
        f"{centroid[2]:.4f}",
        f"{spread:.4f}",
        f"{min_y:.4f}",
        f"{max_y:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config_path: Optional[Path] = None,
) -> Shoal:
    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    config = AppConfig.from_yaml(config_path) if config_path else AppConfig()
    if seed is not None:
        config.shoal.seed = seed
    scenario = build_scenario(config)
    shoal = scenario.shoal
    logger.info("headless run: %d steps, dt=%.4f, %d agents", steps, config.time_step, len(shoal))

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    speed_series: list[float] = []
    panic_series: list[float] = []
    neighbor_checks_series: list[float] = []
    try:
        for _ in range(steps):
            metrics = scenario.step(config.time_step)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            if summary_path:
                tick_ms_series.append(tick_ms)
                speed_series.append(metrics.average_speed)
                panic_series.append(float(metrics.panicking))
                neighbor_checks_series.append(float(metrics.neighbor_checks))
            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(shoal, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        stats = shoal.stats()
        summary = {
            "steps": steps,
            "seed": shoal.snapshot().metadata.seed,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "average_speed": _summary_stats(speed_series),
            "panicking": _summary_stats(panic_series),
            "neighbor_checks": _summary_stats(neighbor_checks_series),
            "final": {
                "agent_count": stats.agent_count,
                "average_speed": stats.average_speed,
                "average_distance": stats.average_distance,
                "panic_count": stats.panic_count,
            },
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail]),
                "average_speed": _summary_stats(speed_series[tail]),
                "panicking": _summary_stats(panic_series[tail]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return shoal


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML file with shoal/environment settings")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level for console output.")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="[%(levelname)s] %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
