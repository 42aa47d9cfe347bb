import math

import numpy as np
import pytest

from panoguide_app.math import geometry


def test_yaw_direction_roundtrip():
    for yaw in [0.1, math.pi / 2, math.pi, 4.0, 2 * math.pi - 0.2]:
        direction = geometry.direction_from_angles(yaw, 0.0)
        assert math.isclose(np.linalg.norm(direction), 1.0, abs_tol=1e-12)
        assert math.isclose(geometry.yaw_of(direction), yaw, abs_tol=1e-9)


def test_yaw_zero_looks_down_negative_z_and_decreasing_yaw_turns_right():
    forward = geometry.direction_from_angles(0.0)
    assert np.allclose(forward, [0.0, 0.0, -1.0])
    right = geometry.direction_from_angles(-math.pi / 2)
    assert np.allclose(right, [1.0, 0.0, 0.0])
    assert math.isclose(geometry.heading_degrees(-math.pi / 2), 90.0, abs_tol=1e-9)


def test_heading_of_zero_yaw_is_positive_zero():
    for value in (geometry.heading_degrees(0.0), geometry.wrap_angle(-0.0), geometry.wrap_degrees(-0.0)):
        assert value == 0.0
        assert math.copysign(1.0, value) == 1.0


def test_pitch_of_direction():
    direction = geometry.direction_from_angles(1.2, math.radians(30.0))
    assert math.isclose(geometry.pitch_of(direction), math.radians(30.0), abs_tol=1e-9)


def test_normalize_rejects_zero_vector():
    with pytest.raises(ValueError):
        geometry.normalize([0.0, 0.0, 0.0])


def test_angle_between_basic_cases():
    x = [1.0, 0.0, 0.0]
    assert math.isclose(geometry.angle_between(x, [2.0, 0.0, 0.0]), 0.0, abs_tol=1e-9)
    assert math.isclose(geometry.angle_between(x, [0.0, 3.0, 0.0]), math.pi / 2, abs_tol=1e-12)
    assert math.isclose(geometry.angle_between(x, [-1.0, 0.0, 0.0]), math.pi, abs_tol=1e-12)


def test_angle_between_clamps_rounding_noise():
    v = np.array([0.1, 0.7, -0.3])
    # Nearly identical vectors can produce a dot product slightly above 1.
    assert geometry.angle_between(v, v * (1.0 + 1e-15)) >= 0.0


def test_wrap_and_angular_difference():
    assert math.isclose(geometry.wrap_angle(-math.pi / 2), 1.5 * math.pi)
    assert math.isclose(geometry.wrap_degrees(-90.0), 270.0)
    assert math.isclose(geometry.angular_difference(0.1, 2 * math.pi - 0.1), 0.2, abs_tol=1e-12)
    assert math.isclose(geometry.angular_difference(2 * math.pi - 0.1, 0.1), -0.2, abs_tol=1e-12)


def test_horizontal_forward_drops_vertical_component():
    forward = geometry.horizontal_forward([0.0, 5.0, -1.0])
    assert np.allclose(forward, [0.0, 0.0, -1.0])
    with pytest.raises(ValueError):
        geometry.horizontal_forward([0.0, 1.0, 0.0])


def test_ring_position_distances():
    origin = np.array([1.0, 1.5, -2.0])
    tilt = math.radians(30.0)
    point = geometry.ring_position(origin, 0.7, tilt, 2.5)
    offset = point - origin
    assert math.isclose(np.linalg.norm(offset), 2.5, abs_tol=1e-9)
    assert math.isclose(math.hypot(offset[0], offset[2]), 2.5 * math.cos(tilt), abs_tol=1e-9)
    assert math.isclose(offset[1], 2.5 * math.sin(tilt), abs_tol=1e-9)
    assert math.isclose(geometry.yaw_of(offset), 0.7, abs_tol=1e-9)


def test_project_to_view():
    camera = np.zeros(3)
    forward = geometry.direction_from_angles(0.0)

    centre = geometry.project_to_view(camera, forward, [0.0, 0.0, -3.0], 60.0)
    assert centre is not None
    assert math.isclose(centre[0], 0.0, abs_tol=1e-12)
    assert math.isclose(centre[1], 0.0, abs_tol=1e-12)

    right_edge = [math.tan(math.radians(30.0)), 0.0, -1.0]
    x, y = geometry.project_to_view(camera, forward, right_edge, 60.0)
    assert math.isclose(x, 1.0, abs_tol=1e-9)
    assert math.isclose(y, 0.0, abs_tol=1e-9)

    _, y_up = geometry.project_to_view(camera, forward, [0.0, 0.5, -2.0], 60.0)
    assert y_up > 0.0

    assert geometry.project_to_view(camera, forward, [0.0, 0.0, 2.0], 60.0) is None
