"""Vector and angle helpers for world-anchored capture guidance.

World frame is right-handed with +Y up. Yaw 0 looks along -Z and yaw grows
counter-clockwise seen from above, so decreasing yaw turns the camera to the
right (clockwise). Pitch is measured from the horizontal plane, positive up.
"""
from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

TWO_PI = 2.0 * math.pi
WORLD_UP = np.array([0.0, 1.0, 0.0], dtype=np.float64)


def as_vector(values) -> np.ndarray:
    """Return a float64 copy of a 3-vector."""
    return np.asarray(values, dtype=np.float64).reshape(3).copy()


def normalize(vector, *, epsilon: float = 1e-12) -> np.ndarray:
    """Return the unit vector pointing along ``vector``.

    Raises:
        ValueError: If the vector has (near) zero length.
    """
    v = as_vector(vector)
    norm = float(np.linalg.norm(v))
    if norm <= epsilon:
        raise ValueError("Cannot normalise a zero-length vector.")
    return v / norm


def dot(a, b) -> float:
    return float(np.dot(as_vector(a), as_vector(b)))


def angle_between(a, b) -> float:
    """Angle in radians between two directions, clamped against rounding noise."""
    cosine = dot(normalize(a), normalize(b))
    return math.acos(max(-1.0, min(1.0, cosine)))


def wrap_angle(theta: float) -> float:
    """Wrap an angle in radians into ``[0, 2*pi)``."""
    wrapped = math.fmod(theta, TWO_PI)
    if wrapped < 0.0:
        wrapped += TWO_PI
    if wrapped >= TWO_PI:
        wrapped = 0.0
    # Fold -0.0 into 0.0.
    return wrapped + 0.0


def wrap_degrees(angle: float) -> float:
    """Wrap an angle in degrees into ``[0, 360)``."""
    return math.degrees(wrap_angle(math.radians(angle)))


def angular_difference(a: float, b: float) -> float:
    """Smallest signed difference ``a - b`` in radians, in ``(-pi, pi]``."""
    diff = wrap_angle(a - b)
    if diff > math.pi:
        diff -= TWO_PI
    return diff


def direction_from_angles(yaw: float, pitch: float = 0.0) -> np.ndarray:
    """Unit direction vector for the given yaw and pitch (radians)."""
    cos_pitch = math.cos(pitch)
    return np.array(
        [
            -math.sin(yaw) * cos_pitch,
            math.sin(pitch),
            -math.cos(yaw) * cos_pitch,
        ],
        dtype=np.float64,
    )


def yaw_of(direction) -> float:
    """Yaw of a direction in ``[0, 2*pi)``; undefined for vertical directions."""
    d = as_vector(direction)
    if math.hypot(d[0], d[2]) <= 1e-12:
        raise ValueError("Yaw is undefined for a vertical direction.")
    return wrap_angle(math.atan2(-d[0], -d[2]))


def pitch_of(direction) -> float:
    d = normalize(direction)
    return math.asin(max(-1.0, min(1.0, float(d[1]))))


def horizontal_forward(forward) -> np.ndarray:
    """Project a forward direction onto the horizontal plane and normalise it."""
    d = as_vector(forward)
    d[1] = 0.0
    return normalize(d)


def heading_degrees(yaw: float) -> float:
    """Clockwise compass-style heading in degrees for a counter-clockwise yaw."""
    return wrap_degrees(-math.degrees(yaw))


def ring_position(
    origin,
    yaw: float,
    tilt: float,
    distance: float,
) -> np.ndarray:
    """Place a point at ``distance`` from ``origin`` on a cone of half-angle ``tilt``.

    The horizontal offset is ``distance * cos(tilt)`` along the yaw direction and
    the vertical offset is ``distance * sin(tilt)``.
    """
    base = as_vector(origin)
    horizontal = direction_from_angles(yaw, 0.0) * (distance * math.cos(tilt))
    vertical = WORLD_UP * (distance * math.sin(tilt))
    return base + horizontal + vertical


def project_to_view(
    camera_position,
    forward,
    point,
    fov_deg: float,
    *,
    aspect: float = 1.0,
) -> Optional[Tuple[float, float]]:
    """Project a world point into normalised view coordinates.

    Returns ``(x, y)`` where ``x`` grows to the right and ``y`` grows upward and
    the visible frustum spans ``[-1, 1]`` on both axes. Points behind the camera
    return ``None``. Points outside the frustum still return coordinates so the
    caller can clamp them to the screen edge for a direction indicator.
    """
    f = normalize(forward)
    # Looking straight up or down has no stable horizon; fall back to -Z as up.
    reference_up = WORLD_UP if abs(float(np.dot(f, WORLD_UP))) < 0.999 else np.array([0.0, 0.0, -1.0])
    right = normalize(np.cross(f, reference_up))
    up = np.cross(right, f)

    offset = as_vector(point) - as_vector(camera_position)
    depth = float(np.dot(offset, f))
    if depth <= 1e-9:
        return None

    half_width = math.tan(math.radians(fov_deg) / 2.0)
    half_height = half_width / aspect
    x = float(np.dot(offset, right)) / (depth * half_width)
    y = float(np.dot(offset, up)) / (depth * half_height)
    return x, y
