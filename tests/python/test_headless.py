import csv
import json

import pytest

from flocksim.app.headless import run_headless
from flocksim.app.scenario import build_terrain
from flocksim.config import load_app_config
from flocksim.sim.core.environment import FlatTerrain, PolarHeightmapTerrain


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def test_headless_basic_log_header(tmp_path):
    log_path = tmp_path / "basic.csv"
    run_headless(steps=2, seed=1, log_path=log_path, deterministic_log=True, log_format="basic")
    rows = _read_csv(log_path)
    assert len(rows) == 3
    assert rows[0] == [
        "tick",
        "population",
        "panicking",
        "avg_speed",
        "max_speed",
        "neighbor_checks",
        "tick_ms",
    ]
    assert rows[1][0] == "1"
    assert rows[2][-1] == "0.000"


def test_headless_detailed_log_ratios(tmp_path):
    log_path = tmp_path / "detailed.csv"
    run_headless(steps=3, seed=2, log_path=log_path, deterministic_log=True, log_format="detailed")
    rows = _read_csv(log_path)
    assert len(rows) == 4
    header = rows[0]
    idx = {name: i for i, name in enumerate(header)}
    for column in ["panic_ratio", "neighbor_checks_per_agent", "index_rebuilt", "occupied_cells", "centroid_x", "spread"]:
        assert column in idx

    first_row = rows[1]
    population = int(first_row[idx["population"]])
    panicking = int(first_row[idx["panicking"]])
    neighbor_checks = int(first_row[idx["neighbor_checks"]])

    assert population == 15
    assert float(first_row[idx["panic_ratio"]]) == pytest.approx(panicking / population, abs=1e-4)
    assert float(first_row[idx["neighbor_checks_per_agent"]]) == pytest.approx(
        neighbor_checks / population, abs=1e-4
    )
    assert first_row[idx["index_rebuilt"]] == "1"
    assert 1 <= int(first_row[idx["occupied_cells"]]) <= population
    assert float(first_row[idx["tick_ms"]]) == 0.0


def test_headless_deterministic_logs_match(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=20, seed=9, log_path=first, deterministic_log=True)
    run_headless(steps=20, seed=9, log_path=second, deterministic_log=True)
    assert first.read_text() == second.read_text()


def test_headless_summary_output(tmp_path):
    summary_path = tmp_path / "summary.json"
    run_headless(
        steps=4,
        seed=3,
        log_path=None,
        deterministic_log=True,
        log_format="basic",
        summary_path=summary_path,
        summary_window=2,
    )
    payload = json.loads(summary_path.read_text())
    assert payload["steps"] == 4
    assert payload["seed"] == 3
    assert payload["log_format"] == "basic"
    assert payload["final"]["agent_count"] == 15
    assert "average_speed" in payload
    assert "neighbor_checks" in payload
    assert payload["tail_window"]["window"] == 2


def test_headless_reads_yaml_config(tmp_path):
    config_path = tmp_path / "run.yaml"
    config_path.write_text("shoal:\n  agent_count: 7\nenvironment:\n  threat_enabled: false\n")
    shoal = run_headless(steps=1, seed=4, log_path=None, config_path=config_path)
    assert len(shoal) == 7
    assert shoal.threats == ()


def test_headless_rejects_unknown_log_format(tmp_path):
    with pytest.raises(ValueError):
        run_headless(steps=1, seed=1, log_path=tmp_path / "x.csv", log_format="verbose")


def test_headless_polar_terrain_keeps_agents_off_the_floor(tmp_path):
    config_path = tmp_path / "dunes.yaml"
    config_path.write_text(
        "environment:\n"
        "  terrain_kind: polar\n"
        "  terrain_height: -20\n"
        "  terrain_amplitude: 4\n"
        "  terrain_segments: 12\n"
    )
    shoal = run_headless(steps=60, seed=5, log_path=None, config_path=config_path)

    assert len(shoal) == 15
    for agent in shoal.agents:
        assert agent.position.y >= -50.0


def test_build_terrain_picks_sampler_from_environment():
    flat = build_terrain(load_app_config({"environment": {"terrain_height": -5}}).environment)
    assert isinstance(flat, FlatTerrain)

    env = load_app_config(
        {"environment": {"terrain_kind": "polar", "terrain_height": -5, "terrain_segments": 6}}
    ).environment
    dunes = build_terrain(env)
    assert isinstance(dunes, PolarHeightmapTerrain)
    assert dunes.height_at(0.0, 0.0).y == pytest.approx(-5.0)
