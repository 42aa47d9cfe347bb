"""Placement of capture targets on conical rings around the observer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from loguru import logger

from ..math import geometry
from ..models.capture_target import CapturePass, CaptureTarget


@dataclass(slots=True, frozen=True)
class RingPlan:
    """Targets of one ring, in placement order."""

    capture_pass: CapturePass
    tilt: float
    targets: Tuple[CaptureTarget, ...]


def ring_yaws(initial_yaw: float, count: int, *, offset_steps: float = 0.0) -> List[float]:
    """Equally spaced yaws stepping clockwise from ``initial_yaw``.

    Target ``i`` sits at ``initial_yaw - (i + offset_steps) * 2*pi/count``.
    """
    if count < 1:
        raise ValueError("A ring needs at least one target.")
    step = geometry.TWO_PI / count
    return [geometry.wrap_angle(initial_yaw - (i + offset_steps) * step) for i in range(count)]


def place_targets(
    camera_position,
    camera_forward_horizontal,
    ring_count: int,
    targets_per_ring: int,
    distance: float,
    tilt_angles: Sequence[float],
) -> List[RingPlan]:
    """Compute the target rings for a whole session.

    Args:
        camera_position: Camera position at the moment of placement.
        camera_forward_horizontal: Camera forward direction; any vertical
            component is discarded.
        ring_count: Number of rings to place.
        targets_per_ring: Targets per ring, equally spaced in yaw.
        distance: Slant distance from the camera to each target in metres.
        tilt_angles: Tilt in radians for each ring. The first ring is expected
            to be level; later rings are offset by half a ring step so their
            targets interleave with the level ring.

    Returns:
        One :class:`RingPlan` per ring, in pass order.

    Raises:
        ValueError: If the arguments are inconsistent or the forward direction
            has no horizontal component.
    """
    if ring_count < 1:
        raise ValueError("At least one ring is required.")
    if len(tilt_angles) != ring_count:
        raise ValueError(f"Expected {ring_count} tilt angles, got {len(tilt_angles)}.")
    if distance <= 0.0:
        raise ValueError("Target distance must be positive.")

    origin = geometry.as_vector(camera_position)
    forward = geometry.horizontal_forward(camera_forward_horizontal)
    initial_yaw = geometry.yaw_of(forward)

    rings: List[RingPlan] = []
    seen_passes = set()
    for ring_index, tilt in enumerate(tilt_angles):
        capture_pass = CapturePass.for_tilt(tilt)
        if capture_pass in seen_passes:
            raise ValueError(f"Only one ring per pass is supported, got two {capture_pass.value} rings.")
        seen_passes.add(capture_pass)

        offset = 0.0 if ring_index == 0 else 0.5
        targets = tuple(
            CaptureTarget(
                geometry.ring_position(origin, yaw, tilt, distance),
                yaw=yaw,
                tilt=tilt,
                capture_pass=capture_pass,
            )
            for yaw in ring_yaws(initial_yaw, targets_per_ring, offset_steps=offset)
        )
        rings.append(RingPlan(capture_pass, float(tilt), targets))

    logger.info(
        "Placed {} ring(s) of {} targets at {:.2f} m, initial heading {:.1f} deg",
        ring_count,
        targets_per_ring,
        distance,
        geometry.heading_degrees(initial_yaw),
    )
    return rings

