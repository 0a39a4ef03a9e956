from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pygame.math import Vector3

from ...config import ShoalConfig
from ...rng import DeterministicRng
from ..systems import boundary, metrics as metrics_system, population, steering, visuals
from ..types.metrics import ShoalStats, TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math3d import _clamp_length_xyz_f, _clamp_value
from .agent import Agent
from .environment import Aabb, Obstacle, TerrainSampler, Threat, TransformVisual
from .spatial_index import BruteForceIndex, SpatialIndex, UniformGridIndex

logger = logging.getLogger(__name__)

VisualFactory = Callable[[], Any]

_INDEX_FIELDS = frozenset(
    {
        "use_index",
        "index_cell_size",
        "index_padding_cells",
        "index_rebuild_interval",
        "separation_distance",
        "alignment_distance",
        "cohesion_distance",
        "max_speed",
        "panic_speed_multiplier",
        "max_time_step",
        "hard_clamp_inset",
    }
)


class Shoal:
    """One homogeneous flock: agents, shared configuration and environment references.

    ``update`` runs a tick in two phases. Every agent's steering is computed from the
    tick-start snapshot first; integration, panic bookkeeping and boundary containment
    follow. Agents live in a dense list and are removed from the tail only, so an index
    into ``agents`` is valid until the next ``add_agents``/``remove_agents`` call.
    """

    def __init__(
        self,
        config: Optional[ShoalConfig] = None,
        visual_factory: Optional[VisualFactory] = None,
        terrain: Optional[TerrainSampler] = None,
        obstacle: Optional[Obstacle] = None,
        rng: Optional[DeterministicRng] = None,
        visual_release: Optional[Callable[[Any], None]] = None,
    ):
        self._config = (config if config is not None else ShoalConfig()).validate()
        self._rng = rng if rng is not None else DeterministicRng(self._config.seed)
        self._visual_factory: VisualFactory = visual_factory if visual_factory is not None else TransformVisual
        self._visual_release = visual_release
        self._terrain = terrain
        self._obstacle = obstacle
        self._obstacle_box: Optional[Aabb] = None
        self._agents: List[Agent] = []
        self._threats: List[Threat] = []
        self._index: Optional[SpatialIndex] = None
        self._index_dirty = True
        self._ticks_since_rebuild = 0
        self._tick = 0
        self._next_id = 0
        self._metrics: TickMetrics | None = None
        self.build()
        logger.info(
            "shoal created: %d agents, index=%s, seed=%d",
            len(self._agents),
            "grid" if self._config.use_index else "brute-force",
            self._rng.seed,
        )

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def config(self) -> ShoalConfig:
        return self._config

    @property
    def threats(self) -> Tuple[Threat, ...]:
        return tuple(self._threats)

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def index_enabled(self) -> bool:
        return self._config.use_index

    def __len__(self) -> int:
        return len(self._agents)

    # Population

    def build(self) -> None:
        for _ in range(self._config.agent_count):
            self.create_agent()

    def create_agent(self) -> Agent:
        config = self._config
        rng = self._rng
        position = population.spawn_position(config, rng, self._terrain, Vector3(config.origin))
        velocity = population.initial_velocity(config, rng)
        wander_angle = rng.next_angle()
        size_scale = population.size_scale(config, rng)
        hue, saturation, lightness = population.appearance(config, rng)
        agent = Agent(
            id=self._next_id,
            position=position,
            velocity=velocity,
            wander_angle=wander_angle,
            size_scale=size_scale,
            appearance_h=hue,
            appearance_s=saturation,
            appearance_l=lightness,
            visual=self._visual_factory(),
        )
        self._next_id += 1
        if agent.visual is not None:
            agent.visual.position = Vector3(position)
            visuals.apply_scale(config, agent)
        self._agents.append(agent)
        self._index_dirty = True
        return agent

    def add_agents(self, count: int = 1) -> List[Agent]:
        created = [self.create_agent() for _ in range(max(0, int(count)))]
        if created:
            logger.debug("added %d agents (population %d)", len(created), len(self._agents))
        return created

    def remove_agents(self, count: int = 1) -> int:
        remove_count = min(max(0, int(count)), len(self._agents))
        for _ in range(remove_count):
            agent = self._agents.pop()
            if self._visual_release is not None and agent.visual is not None:
                self._visual_release(agent.visual)
            agent.visual = None
        if remove_count:
            self._index_dirty = True
            logger.debug("removed %d agents (population %d)", remove_count, len(self._agents))
        return remove_count

    def reset(self) -> None:
        self.remove_agents(len(self._agents))
        self._rng.reset()
        self._index = None
        self._index_dirty = True
        self._ticks_since_rebuild = 0
        self._tick = 0
        self._next_id = 0
        self._metrics = None
        self.build()
        logger.info("shoal reset: %d agents", len(self._agents))

    # Environment and tuning

    def add_threat(self, threat: Threat) -> None:
        if not any(existing is threat for existing in self._threats):
            self._threats.append(threat)

    def remove_threat(self, threat: Threat) -> None:
        for i, existing in enumerate(self._threats):
            if existing is threat:
                del self._threats[i]
                return

    def set_obstacle(self, obstacle: Optional[Obstacle]) -> None:
        self._obstacle = obstacle
        self._obstacle_box = None

    def set_terrain(self, terrain: Optional[TerrainSampler]) -> None:
        self._terrain = terrain

    def set_parameters(self, parameters: Optional[Mapping[str, Any]] = None, **overrides: Any) -> ShoalConfig:
        """Merge any subset of tunables into the configuration.

        The merged configuration is validated as a whole; on ``ConfigError`` the current
        configuration stays in effect.
        """
        values: Dict[str, Any] = dict(parameters or {})
        values.update(overrides)
        previous = self._config
        merged = previous.merged(values)
        self._config = merged
        changed = {name for name in values if getattr(previous, name) != getattr(merged, name)}
        if changed & _INDEX_FIELDS:
            self._index = None
            self._index_dirty = True
        if "obstacle_margin" in changed:
            self._obstacle_box = None
        if "agent_scale" in changed:
            for agent in self._agents:
                visuals.apply_scale(merged, agent)
        if changed:
            logger.info("shoal parameters changed: %s", ", ".join(sorted(changed)))
        return merged

    def set_index_enabled(self, enabled: bool) -> None:
        self.set_parameters(use_index=bool(enabled))

    def set_agent_scale(self, scale: float) -> None:
        self.set_parameters(agent_scale=scale)

    # Queries

    def neighbors(self, index: int, radius: Optional[float] = None) -> List[int]:
        """Indices of agents strictly closer than ``radius`` to agent ``index``, excluding itself."""
        if radius is None:
            radius = self._config.awareness_radius
        self._ensure_index()
        center = self._agents[index].position
        radius_sq = radius * radius
        found = []
        for j in self._candidates(index, center, radius):
            if center.distance_squared_to(self._agents[j].position) < radius_sq:
                found.append(j)
        return found

    def occupied_cells(self) -> int:
        """Grid cells holding at least one agent; 0 in brute-force mode."""
        self._ensure_index()
        if isinstance(self._index, UniformGridIndex):
            return self._index.occupied_cells()
        return 0

    def stats(self) -> ShoalStats:
        return metrics_system.compute_stats(
            self._agents,
            self.neighbors,
            self._config.cohesion_distance * 2.0,
            len(self._threats),
            self._config.use_index,
        )

    # Simulation

    def update(self, dt: float) -> TickMetrics:
        start = perf_counter()
        config = self._config
        if math.isnan(dt):
            dt = 0.0
        dt = _clamp_value(dt, 0.0, config.max_time_step)
        rebuilt = self._maintain_index()

        agents = self._agents
        ctx = steering.SteeringContext(
            config=config,
            positions=[Vector3(agent.position) for agent in agents],
            velocities=[Vector3(agent.velocity) for agent in agents],
            panicking=[agent.panic for agent in agents],
            wander_angles=[agent.wander_angle for agent in agents],
            threat_positions=[Vector3(t.world_position()) for t in self._threats if t.is_visible()],
            obstacle_box=self._obstacle_bounds(),
            terrain=self._terrain,
            origin=Vector3(config.origin),
            scale=config.scale,
        )
        awareness = config.awareness_radius
        neighbor_checks = 0
        results: List[steering.SteeringResult] = []
        for i in range(len(agents)):
            candidates = self._candidates(i, ctx.positions[i], awareness)
            neighbor_checks += len(candidates)
            results.append(steering.compute_steering(ctx, i, candidates, self._rng.next_centered()))

        corrections = 0
        for agent, result in zip(agents, results):
            if self._integrate(agent, result, dt):
                corrections += 1
            visuals.sync_visual(config, agent, dt)
        if not config.use_index:
            # the brute-force snapshot is exact only for the tick it was taken in
            self._index_dirty = True

        self._tick += 1
        elapsed_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(
            self._tick, agents, neighbor_checks, rebuilt, corrections, elapsed_ms
        )
        return self._metrics

    def snapshot(self) -> Snapshot:
        config = self._config
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(self._tick, self._agents, 0, False, 0, 0.0)
        threats = []
        for threat in self._threats:
            if threat.is_visible():
                pos = threat.world_position()
                threats.append({"x": pos.x, "y": pos.y, "z": pos.z})
        return Snapshot(
            tick=self._tick,
            metrics=metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            threats=threats,
            world=SnapshotWorld(area_size=config.area_size, height=config.height, origin=tuple(config.origin)),
            metadata=SnapshotMetadata(
                max_time_step=config.max_time_step,
                seed=self._rng.seed,
                index_enabled=config.use_index,
                index_rebuild_interval=config.index_rebuild_interval,
            ),
        )

    def _integrate(self, agent: Agent, result: steering.SteeringResult, dt: float) -> bool:
        config = self._config
        if agent.panic:
            agent.panic_timer -= 1
            if agent.panic_timer <= 0:
                agent.panic = False
                agent.panic_timer = 0
        if result.panic_triggered:
            agent.panic = True
            agent.panic_timer = config.panic_duration
        agent.wander_angle = result.wander_angle

        acceleration = result.force
        agent.acceleration.update(acceleration)
        velocity = agent.velocity
        position = agent.position
        velocity.update(
            velocity.x + acceleration.x * dt,
            velocity.y + acceleration.y * dt,
            velocity.z + acceleration.z * dt,
        )
        boundary.soft_turn(config, position, velocity)
        limit = config.max_speed * (config.panic_speed_multiplier if agent.panic else 1.0)
        vel_x, vel_y, vel_z = _clamp_length_xyz_f(velocity.x, velocity.y, velocity.z, limit)
        velocity.update(vel_x, vel_y, vel_z)
        position.update(position.x + vel_x * dt, position.y + vel_y * dt, position.z + vel_z * dt)
        return boundary.hard_clamp(config, position, velocity)

    def _maintain_index(self) -> bool:
        self._ticks_since_rebuild += 1
        interval = self._config.index_rebuild_interval if self._config.use_index else 1
        if self._index is None or self._index_dirty or self._ticks_since_rebuild >= interval:
            self._rebuild_index()
            return True
        return False

    def _ensure_index(self) -> None:
        if self._index is None or self._index_dirty:
            self._rebuild_index()

    def _rebuild_index(self) -> None:
        config = self._config
        if config.use_index:
            cell_size = config.index_cell_size or config.awareness_radius or 1.0
            padding = max(config.index_padding_cells, math.ceil(self._max_drift() / cell_size))
            index: SpatialIndex = UniformGridIndex(cell_size, padding)
        else:
            index = BruteForceIndex()
        index.rebuild([agent.position for agent in self._agents])
        self._index = index
        self._index_dirty = False
        self._ticks_since_rebuild = 0
        logger.debug("spatial index rebuilt over %d agents", len(self._agents))

    def _max_drift(self) -> float:
        """Farthest any agent can travel before the grid is rebuilt again.

        Per tick an agent moves at most the panic speed limit times the clamped time
        step, plus the hard-clamp inset.
        """
        config = self._config
        per_tick = config.max_speed * max(1.0, config.panic_speed_multiplier) * config.max_time_step
        return (per_tick + config.hard_clamp_inset) * config.index_rebuild_interval

    def _candidates(self, index: int, center: Vector3, radius: float) -> List[int]:
        index_structure = self._index
        if index_structure is None:
            return []
        return index_structure.query_radius(center, radius, exclude=index)

    def _obstacle_bounds(self) -> Optional[Aabb]:
        if self._obstacle is None:
            return None
        if self._obstacle_box is None:
            self._obstacle_box = self._obstacle.world_bounds().expanded(self._config.obstacle_margin)
            logger.debug("cached obstacle bounds %s", self._obstacle_box)
        return self._obstacle_box

    def _agent_snapshot(self, agent: Agent) -> Dict[str, Any]:
        position = agent.position
        velocity = agent.velocity
        return {
            "id": agent.id,
            "x": position.x,
            "y": position.y,
            "z": position.z,
            "vx": velocity.x,
            "vy": velocity.y,
            "vz": velocity.z,
            "speed": velocity.length(),
            "panic": agent.panic,
            "panic_timer": agent.panic_timer,
            "yaw": agent.yaw,
            "pitch": agent.pitch,
            "roll": agent.roll,
            "size": agent.size_scale * self._config.agent_scale,
            "appearance_h": agent.appearance_h,
            "appearance_s": agent.appearance_s,
            "appearance_l": agent.appearance_l,
        }
