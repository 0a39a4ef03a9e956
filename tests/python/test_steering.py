from __future__ import annotations

from pygame.math import Vector3
from pytest import approx

from flocksim.config import ShoalConfig
from flocksim.sim.core.environment import BoxObstacle, FlatTerrain
from flocksim.sim.systems import steering


def _context(config: ShoalConfig, positions, velocities, **kwargs) -> steering.SteeringContext:
    return steering.SteeringContext(
        config=config,
        positions=positions,
        velocities=velocities,
        panicking=[False] * len(positions),
        wander_angles=[0.0] * len(positions),
        **kwargs,
    )


def test_isolated_agent_receives_no_force(quiet_config):
    config = quiet_config()
    ctx = _context(config, [Vector3(0, 0, 0)], [Vector3(10, 0, 0)])

    result = steering.compute_steering(ctx, 0, [], wander_sample=0.3)

    assert result.force == Vector3()
    assert not result.panic_triggered


def test_wander_angle_advances_by_jittered_sample(quiet_config):
    config = quiet_config(wander_jitter=0.5)
    ctx = _context(config, [Vector3(0, 0, 0)], [Vector3(10, 0, 0)])
    ctx.wander_angles[0] = 1.0

    result = steering.compute_steering(ctx, 0, [], wander_sample=0.4)

    assert result.wander_angle == approx(1.2)
    # composer leaves its inputs untouched
    assert ctx.wander_angles[0] == 1.0


def test_separation_pushes_close_pair_apart_symmetrically(quiet_config):
    config = quiet_config(alignment_weight=0.0, cohesion_weight=0.0)
    positions = [Vector3(-0.5, 0, 0), Vector3(0.5, 0, 0)]
    velocities = [Vector3(), Vector3()]

    left = steering.flock_force(config, 0, positions, velocities, [1])
    right = steering.flock_force(config, 1, positions, velocities, [0])

    assert left.x < 0.0
    assert right.x > 0.0
    assert left.x == approx(-right.x)
    assert left.length() == approx(config.separation_weight)


def test_flock_ignores_candidates_outside_awareness(quiet_config):
    config = quiet_config()
    positions = [Vector3(0, 0, 0), Vector3(config.awareness_radius + 1.0, 0, 0), Vector3(0, 0, 0)]
    velocities = [Vector3(), Vector3(5, 0, 0), Vector3(5, 0, 0)]

    # a coincident agent (distance zero) is skipped as well
    assert steering.flock_force(config, 0, positions, velocities, [1, 2]) == Vector3()


def test_evasion_points_away_and_grows_as_threat_closes(quiet_config):
    config = quiet_config()
    threat = Vector3(0, 0, 0)
    magnitudes = []
    for distance in (24.0, 20.0, 15.0, 13.0):
        steer, triggered = steering.evasion_force(config, [threat], Vector3(distance, 0, 0), False)
        assert steer.x > 0.0
        assert steer.y == approx(0.0) and steer.z == approx(0.0)
        assert not triggered
        magnitudes.append(steer.length())

    assert magnitudes == sorted(magnitudes)
    assert magnitudes[0] > 0.0


def test_evasion_triggers_panic_inside_half_evasion_distance(quiet_config):
    config = quiet_config()
    _, triggered = steering.evasion_force(config, [Vector3()], Vector3(12.0, 0, 0), False)
    assert triggered


def test_threat_well_inside_evasion_radius_repels_and_panics(quiet_config):
    config = quiet_config()
    ctx = _context(config, [Vector3(5.0, 0, 0)], [Vector3()], threat_positions=[Vector3()])

    result = steering.compute_steering(ctx, 0, [], wander_sample=0.0)

    assert result.panic_triggered
    assert result.force.x > 0.0
    assert result.force.normalize().x == approx(1.0)


def test_preemptive_evasion_between_evasion_and_detection(quiet_config):
    config = quiet_config()
    steer, triggered = steering.evasion_force(config, [Vector3()], Vector3(0, 0, 27.0), False)

    expected = (1.0 - 27.0 / config.danger_detection_distance) * config.preemptive_evasion_strength
    assert steer.z == approx(expected)
    assert not triggered


def test_threat_beyond_detection_is_ignored(quiet_config):
    config = quiet_config()
    steer, triggered = steering.evasion_force(config, [Vector3()], Vector3(40.0, 0, 0), False)
    assert steer == Vector3()
    assert not triggered


def test_bounds_force_points_inward_near_wall(quiet_config):
    config = quiet_config()
    force = steering.bounds_force(config, Vector3(90.0, 0, 0), Vector3())
    assert force.x < 0.0
    assert steering.bounds_force(config, Vector3(0, 0, 0), Vector3()) == Vector3()


def test_terrain_force_lifts_agents_below_safe_height(quiet_config):
    config = quiet_config()
    terrain = FlatTerrain(0.0)

    assert steering.terrain_force(config, terrain, Vector3(0, 5.0, 0)) == Vector3()
    lift = steering.terrain_force(config, terrain, Vector3(0, 1.5, 0))
    assert lift.y == approx(0.25 * config.terrain_force_scale)
    capped = steering.terrain_force(config, terrain, Vector3(0, -10.0, 0))
    assert capped.y == approx(min(config.terrain_force_cap, 2.0 * config.max_speed))
    assert steering.terrain_force(config, None, Vector3(0, -10.0, 0)) == Vector3()


def test_obstacle_inside_pushes_out_through_nearest_face(quiet_config):
    config = quiet_config()
    box = BoxObstacle(Vector3(), Vector3(10, 10, 10)).world_bounds()

    near_face = steering.obstacle_force(config, box, Vector3(9.0, 0, 0))
    assert near_face.x == approx(config.max_speed * (1.0 + 0.01 * 3.0))
    assert near_face.y == 0.0 and near_face.z == 0.0

    deep = steering.obstacle_force(config, box, Vector3(0, -2.0, 0))
    assert deep.length() > near_face.length()


def test_obstacle_outside_pushes_radially_within_proximity(quiet_config):
    config = quiet_config(obstacle_proximity=1.0)
    box = BoxObstacle(Vector3(), Vector3(10, 10, 10)).world_bounds()

    close = steering.obstacle_force(config, box, Vector3(10.5, 0, 0))
    assert close.x == approx(config.max_speed * 0.5)
    assert steering.obstacle_force(config, box, Vector3(12.0, 0, 0)) == Vector3()


def test_total_force_is_clamped_to_twice_max_force(quiet_config):
    config = quiet_config(max_force=1.0)
    ctx = _context(
        config,
        [Vector3(0, 0, 0)],
        [Vector3()],
        threat_positions=[Vector3(1.0, 0, 0)],
        obstacle_box=BoxObstacle(Vector3(), Vector3(10, 10, 10)).world_bounds(),
    )

    result = steering.compute_steering(ctx, 0, [], wander_sample=0.0)

    assert result.force.length() <= 2.0 * config.max_force + 1e-9
    assert result.panic_triggered
