from __future__ import annotations

import math

from pygame.math import Vector3


def _safe_normalize(vector: Vector3) -> Vector3:
    return _safe_normalize_xyz(vector.x, vector.y, vector.z)


def _safe_normalize_xyz(x: float, y: float, z: float) -> Vector3:
    magnitude_sq = x * x + y * y + z * z
    if magnitude_sq < 1e-10:
        return Vector3()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector3(x * inv, y * inv, z * inv)


def _clamp_length(vector: Vector3, max_length: float) -> Vector3:
    if max_length <= 0:
        return Vector3()
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return Vector3(vector)
    if magnitude_sq == 0:
        return Vector3()
    return vector * (max_length / math.sqrt(magnitude_sq))


def _clamp_length_xyz_f(x: float, y: float, z: float, max_length: float) -> tuple[float, float, float]:
    if max_length <= 0.0:
        return 0.0, 0.0, 0.0
    magnitude_sq = x * x + y * y + z * z
    if magnitude_sq <= max_length * max_length:
        return x, y, z
    if magnitude_sq <= 1e-18:
        return 0.0, 0.0, 0.0
    inv = max_length / math.sqrt(magnitude_sq)
    return x * inv, y * inv, z * inv


def _steer_towards(direction: Vector3, velocity: Vector3, speed: float, limit: float) -> Vector3:
    """Reynolds steering: ``normalize(direction) * speed - velocity`` clamped to ``limit``.

    A zero ``direction`` yields a zero vector so the caller can skip the contribution.
    """
    desired = _safe_normalize(direction)
    if desired.length_squared() == 0.0:
        return Vector3()
    return _clamp_length(desired * speed - velocity, limit)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


def _wrap_angle(angle: float) -> float:
    if angle > math.pi:
        angle -= 2.0 * math.pi
    elif angle < -math.pi:
        angle += 2.0 * math.pi
    return angle
