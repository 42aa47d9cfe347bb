"""Camera pose domain models and pose providers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
import math
from typing import Optional

import numpy as np

from ..math import geometry


class TrackingQuality(Enum):
    """Reliability of the pose reported by the guidance source."""

    NORMAL = "normal"
    LIMITED = "limited"
    NOT_AVAILABLE = "not_available"

    @property
    def is_stable(self) -> bool:
        return self is TrackingQuality.NORMAL


@dataclass(slots=True, frozen=True)
class CameraPose:
    """Snapshot of the camera position and viewing direction."""

    position: np.ndarray
    forward: np.ndarray
    tracking: TrackingQuality = TrackingQuality.NORMAL

    @classmethod
    def from_vectors(
        cls,
        position,
        forward,
        tracking: TrackingQuality = TrackingQuality.NORMAL,
    ) -> "CameraPose":
        return cls(geometry.as_vector(position), geometry.normalize(forward), tracking)

    @property
    def yaw(self) -> float:
        """Yaw in radians (counter-clockwise positive)."""
        return geometry.yaw_of(self.forward)

    @property
    def pitch(self) -> float:
        return geometry.pitch_of(self.forward)

    @property
    def heading_deg(self) -> float:
        """Clockwise heading in degrees, ``[0, 360)``."""
        return geometry.heading_degrees(self.yaw)

    @property
    def elevation_deg(self) -> float:
        return math.degrees(self.pitch)


class PoseProvider(ABC):
    """Source of camera position and direction for capture guidance."""

    @abstractmethod
    def current_position(self) -> np.ndarray:
        """Camera position in world coordinates."""

    @abstractmethod
    def current_forward_direction(self) -> np.ndarray:
        """Unit camera forward direction in world coordinates."""

    @abstractmethod
    def tracking_quality(self) -> TrackingQuality:
        """Reliability of the latest pose."""

    def current_pose(self) -> CameraPose:
        return CameraPose(
            self.current_position(),
            self.current_forward_direction(),
            self.tracking_quality(),
        )

    def reset(self) -> None:
        """Forget provider state tied to a capture session."""


class WorldTrackingPoseProvider(PoseProvider):
    """6-DoF pose pushed by a world-tracking (AR) collaborator."""

    def __init__(self) -> None:
        self._position = np.zeros(3, dtype=np.float64)
        self._forward = geometry.direction_from_angles(0.0, 0.0)
        self._tracking = TrackingQuality.NOT_AVAILABLE

    def update(self, position, forward, tracking: TrackingQuality = TrackingQuality.NORMAL) -> None:
        try:
            self._forward = geometry.normalize(forward)
        except ValueError:
            self._tracking = TrackingQuality.NOT_AVAILABLE
            return
        self._position = geometry.as_vector(position)
        self._tracking = tracking

    def current_position(self) -> np.ndarray:
        return self._position.copy()

    def current_forward_direction(self) -> np.ndarray:
        return self._forward.copy()

    def tracking_quality(self) -> TrackingQuality:
        return self._tracking


class OrientationPoseProvider(PoseProvider):
    """Orientation-only guidance from device attitude, position locked at the origin.

    The first yaw reading becomes the reference so the initial heading is zero.
    """

    def __init__(self) -> None:
        self._reference_yaw: Optional[float] = None
        self._yaw = 0.0
        self._pitch = 0.0

    def update(self, device_yaw: float, device_pitch: float = 0.0) -> None:
        """Feed device attitude in radians, counter-clockwise yaw positive."""
        if self._reference_yaw is None:
            self._reference_yaw = device_yaw
        self._yaw = geometry.wrap_angle(device_yaw - self._reference_yaw)
        self._pitch = max(-math.pi / 2.0 + 1e-6, min(math.pi / 2.0 - 1e-6, device_pitch))

    def current_position(self) -> np.ndarray:
        return np.zeros(3, dtype=np.float64)

    def current_forward_direction(self) -> np.ndarray:
        return geometry.direction_from_angles(self._yaw, self._pitch)

    def tracking_quality(self) -> TrackingQuality:
        if self._reference_yaw is None:
            return TrackingQuality.NOT_AVAILABLE
        return TrackingQuality.NORMAL

    def reset(self) -> None:
        self._reference_yaw = None
        self._yaw = 0.0
        self._pitch = 0.0


def select_pose_provider(supports_world_tracking: bool) -> PoseProvider:
    """Pick the provider variant matching the device capability."""
    if supports_world_tracking:
        return WorldTrackingPoseProvider()
    return OrientationPoseProvider()
