from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

_HEX_COLOR = re.compile(r"#[0-9a-fA-F]{6}")

_INT_FIELDS = (
    "panic_duration",
    "agent_count",
    "spawn_max_attempts",
    "index_rebuild_interval",
    "index_padding_cells",
)
_OPTIONAL_FIELDS = ("spawn_radius", "index_cell_size")
_NON_REAL_FIELDS = frozenset({"color", "use_index", "origin", "seed", *_INT_FIELDS, *_OPTIONAL_FIELDS})


class ConfigError(ValueError):
    """Raised when a configuration value is rejected at the configuration boundary."""


@dataclass
class ShoalConfig:
    # Flocking
    separation_distance: float = 15.0
    alignment_distance: float = 40.0
    cohesion_distance: float = 50.0
    separation_weight: float = 3.0
    alignment_weight: float = 1.0
    cohesion_weight: float = 3.0

    # Movement
    max_speed: float = 80.0
    max_force: float = 5.0
    wander_strength: float = 0.1
    wander_jitter: float = 0.3

    # Danger response
    danger_detection_distance: float = 30.0
    danger_evasion_distance: float = 25.0
    danger_evasion_weight: float = 15.0
    evasion_strength: float = 5.0
    preemptive_evasion_strength: float = 2.0
    calm_evasion_multiplier: float = 1.5
    panic_speed_multiplier: float = 5.0
    panic_duration: int = 120
    panic_rotation_smoothness: float = 0.35

    # Boundaries
    area_size: float = 200.0
    height: float = 100.0
    bounds_weight: float = 5.0
    bounds_margin: float = 50.0
    turn_margin: float = 20.0
    turn_strength: float = 0.5
    hard_clamp_inset: float = 0.1

    # Terrain and obstacle avoidance
    terrain_margin: float = 3.0
    terrain_force_scale: float = 5.0
    terrain_force_cap: float = 5.0
    obstacle_margin: float = 5.0
    obstacle_proximity: float = 1.0

    # Population and appearance
    agent_count: int = 15
    color: str = "#506f6c"
    size_variation: float = 0.5
    color_variation: float = 0.2
    agent_scale: float = 1.0
    spawn_radius: Optional[float] = None
    spawn_dead_zone: float = 20.0
    spawn_max_attempts: int = 100

    # Spatial index
    use_index: bool = True
    index_rebuild_interval: int = 10
    index_cell_size: Optional[float] = None
    index_padding_cells: int = 1

    # Orientation smoothing
    rotation_smoothness: float = 0.2
    bank_factor: float = 4.5
    max_bank: float = 0.6

    # Integration and placement
    max_time_step: float = 0.1
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: float = 1.0
    seed: Optional[int] = None

    @property
    def awareness_radius(self) -> float:
        return max(self.separation_distance, self.alignment_distance, self.cohesion_distance)

    @property
    def half_extents(self) -> tuple[float, float, float]:
        half_area = self.area_size * 0.5
        return (half_area, self.height * 0.5, half_area)

    def validate(self) -> "ShoalConfig":
        self._validate_types()
        non_negative = (
            "separation_distance",
            "alignment_distance",
            "cohesion_distance",
            "separation_weight",
            "alignment_weight",
            "cohesion_weight",
            "max_speed",
            "max_force",
            "wander_strength",
            "wander_jitter",
            "danger_detection_distance",
            "danger_evasion_distance",
            "danger_evasion_weight",
            "panic_speed_multiplier",
            "bounds_weight",
            "bounds_margin",
            "turn_margin",
            "turn_strength",
            "hard_clamp_inset",
            "terrain_margin",
            "obstacle_margin",
            "obstacle_proximity",
            "size_variation",
            "color_variation",
            "spawn_dead_zone",
            "panic_duration",
            "agent_count",
            "index_padding_cells",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)!r}")
        for name in ("area_size", "height", "max_time_step", "scale"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0, got {getattr(self, name)!r}")
        if self.index_rebuild_interval < 1:
            raise ConfigError("index_rebuild_interval must be >= 1")
        if self.spawn_max_attempts < 1:
            raise ConfigError("spawn_max_attempts must be >= 1")
        if self.index_cell_size is not None and self.index_cell_size <= 0:
            raise ConfigError("index_cell_size must be > 0 when set")
        if self.spawn_radius is not None and self.spawn_radius < 0:
            raise ConfigError("spawn_radius must be >= 0 when set")
        for name in ("rotation_smoothness", "panic_rotation_smoothness"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must lie in [0, 1], got {value!r}")
        return self

    def _validate_types(self) -> None:
        for item in fields(self):
            if item.name not in _NON_REAL_FIELDS:
                _check_real(item.name, getattr(self, item.name))
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in _OPTIONAL_FIELDS:
            if getattr(self, name) is not None:
                _check_real(name, getattr(self, name))
        if not isinstance(self.use_index, bool):
            raise ConfigError(f"use_index must be a boolean, got {self.use_index!r}")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigError(f"seed must be an integer or None, got {self.seed!r}")
        if not isinstance(self.color, str) or not _HEX_COLOR.fullmatch(self.color):
            raise ConfigError(f"color must be a #rrggbb string, got {self.color!r}")
        if not isinstance(self.origin, (tuple, list)) or len(self.origin) != 3:
            raise ConfigError("origin must have three components")
        for component in self.origin:
            _check_real("origin", component)

    def merged(self, overrides: Mapping[str, Any]) -> "ShoalConfig":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown shoal parameter(s): {', '.join(unknown)}")
        values = dict(overrides)
        if "origin" in values:
            values["origin"] = _triple(values["origin"])
        return replace(self, **values).validate()

    @staticmethod
    def from_yaml(path: Path) -> "ShoalConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data.get("shoal", data))


@dataclass
class EnvironmentConfig:
    terrain_height: float = -45.0
    terrain_kind: str = "flat"
    terrain_radius: float = 120.0
    terrain_segments: int = 32
    terrain_amplitude: float = 6.0
    obstacle_enabled: bool = True
    obstacle_center: tuple[float, float, float] = (0.0, -30.0, 0.0)
    obstacle_half_size: tuple[float, float, float] = (10.0, 15.0, 10.0)
    threat_enabled: bool = True
    threat_orbit_radius: float = 60.0
    threat_orbit_speed: float = 0.5
    threat_height: float = 0.0


@dataclass
class AppConfig:
    shoal: ShoalConfig = field(default_factory=ShoalConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    time_step: float = 1.0 / 60.0
    broadcast_interval: int = 2

    @staticmethod
    def from_yaml(path: Path) -> "AppConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_app_config(data)


def _check_real(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be finite, got {value!r}")


def _triple(value: Any) -> tuple[float, float, float]:
    if isinstance(value, (tuple, list)) and len(value) == 3:
        for component in value:
            _check_real("vector component", component)
        return (float(value[0]), float(value[1]), float(value[2]))
    raise ConfigError(f"Expected a 3-component sequence, got {value!r}")


def load_config(raw: Mapping[str, Any]) -> ShoalConfig:
    return ShoalConfig().merged(raw)


def load_app_config(raw: Mapping[str, Any]) -> AppConfig:
    shoal = load_config(raw.get("shoal", {}))
    env_raw = dict(raw.get("environment", {}))
    for key in ("obstacle_center", "obstacle_half_size"):
        if key in env_raw:
            env_raw[key] = _triple(env_raw[key])
    try:
        environment = EnvironmentConfig(**env_raw)
    except TypeError as exc:
        raise ConfigError(f"Invalid environment section: {exc}") from exc
    if environment.terrain_kind not in {"flat", "polar"}:
        raise ConfigError(f"Unknown terrain kind: {environment.terrain_kind!r}")
    if isinstance(environment.terrain_segments, bool) or not isinstance(environment.terrain_segments, int):
        raise ConfigError("terrain_segments must be an integer")
    if environment.terrain_segments < 1:
        raise ConfigError("terrain_segments must be >= 1")
    for name in ("terrain_height", "terrain_radius", "terrain_amplitude"):
        _check_real(name, getattr(environment, name))
    if environment.terrain_radius <= 0:
        raise ConfigError("terrain_radius must be > 0")
    app_values = {k: v for k, v in raw.items() if k not in {"shoal", "environment"}}
    try:
        app = AppConfig(shoal=shoal, environment=environment, **app_values)
    except TypeError as exc:
        raise ConfigError(f"Invalid application config: {exc}") from exc
    _check_real("time_step", app.time_step)
    if isinstance(app.broadcast_interval, bool) or not isinstance(app.broadcast_interval, int):
        raise ConfigError(f"broadcast_interval must be an integer, got {app.broadcast_interval!r}")
    if app.time_step <= 0:
        raise ConfigError("time_step must be > 0")
    return app
