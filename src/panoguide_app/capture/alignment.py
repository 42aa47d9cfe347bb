"""Per-frame alignment tracking and capture timing.

Each tick compares the camera forward direction with the direction to the next
uncaptured target. Sustained alignment passes through a settle window and then
a capture window; when the capture window fills, the tick reports that a
photo should be taken. Any misalignment drops all progress.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from loguru import logger

from ..config import CaptureConfig
from ..math import geometry
from ..models.capture_target import CaptureTarget


class AlignmentPhase(Enum):
    IDLE = "idle"
    SETTLING = "settling"
    CAPTURING = "capturing"


@dataclass(slots=True, frozen=True)
class AlignmentStatus:
    """Alignment feedback for one tick."""

    phase: AlignmentPhase
    progress: float = 0.0
    angle: Optional[float] = None
    target_id: Optional[int] = None
    fire: bool = False


IDLE_STATUS = AlignmentStatus(AlignmentPhase.IDLE)


class AlignmentTracker:
    """Alignment -> settle -> capture state machine with owned timers.

    Timers are only changed through the transition helpers. While a capture is
    in flight (between :meth:`begin_capture` and :meth:`finish_capture` or
    :meth:`abort_capture`) or during the post-capture cooldown every tick is
    idle.
    """

    def __init__(self, config: Optional[CaptureConfig] = None) -> None:
        self.config = config or CaptureConfig()
        self._settle_started_at: Optional[float] = None
        self._capture_started_at: Optional[float] = None
        self._cooldown_until: Optional[float] = None
        self._is_capturing = False
        self._status = IDLE_STATUS

    # ------------------------------------------------------------------
    @property
    def status(self) -> AlignmentStatus:
        return self._status

    @property
    def is_capturing(self) -> bool:
        return self._is_capturing

    @property
    def settle_started_at(self) -> Optional[float]:
        return self._settle_started_at

    @property
    def capture_started_at(self) -> Optional[float]:
        return self._capture_started_at

    # ------------------------------------------------------------------
    def update(
        self,
        camera_position,
        camera_forward,
        now: float,
        target: Optional[CaptureTarget],
    ) -> AlignmentStatus:
        """Advance the state machine by one tick."""
        if target is None or self._is_capturing or self._in_cooldown(now):
            return self._go_idle()

        try:
            angle = angle_to_target(camera_position, camera_forward, target)
        except ValueError:
            logger.debug("Degenerate pose for target {}; treating tick as idle", target.target_id)
            return self._go_idle()

        if not angle < self.config.alignment_threshold_rad:
            return self._go_idle(angle=angle, target_id=target.target_id)

        if self._settle_started_at is None:
            self._start_settling(now)
        settle_elapsed = now - self._settle_started_at

        if settle_elapsed < self.config.settle_duration_s:
            self._status = AlignmentStatus(AlignmentPhase.SETTLING, 0.0, angle, target.target_id)
            return self._status

        if self._capture_started_at is None:
            self._start_capture_window(now)
        progress = self._capture_progress(now)
        fire = progress >= 1.0
        self._status = AlignmentStatus(AlignmentPhase.CAPTURING, progress, angle, target.target_id, fire)
        if fire:
            logger.debug("Capture window complete for target {} (angle {:.4f} rad)", target.target_id, angle)
        return self._status

    def begin_capture(self) -> bool:
        """Mark a capture as in flight. Returns ``False`` if one already is."""
        if self._is_capturing:
            return False
        self._is_capturing = True
        return True

    def finish_capture(self, now: float) -> None:
        """Capture stored: reset timers and start the cooldown."""
        self._is_capturing = False
        self._reset_timers()
        self._cooldown_until = now + self.config.cooldown_s
        self._status = IDLE_STATUS

    def abort_capture(self) -> None:
        """Capture failed: reset timers so the same target is retried from scratch."""
        self._is_capturing = False
        self._reset_timers()
        self._status = IDLE_STATUS

    def reset(self) -> None:
        self._is_capturing = False
        self._cooldown_until = None
        self._reset_timers()
        self._status = IDLE_STATUS

    # ------------------------------------------------------------------
    def _go_idle(self, angle: Optional[float] = None, target_id: Optional[int] = None) -> AlignmentStatus:
        self._reset_timers()
        self._status = AlignmentStatus(AlignmentPhase.IDLE, 0.0, angle, target_id)
        return self._status

    def _start_settling(self, now: float) -> None:
        self._settle_started_at = now
        self._capture_started_at = None

    def _start_capture_window(self, now: float) -> None:
        self._capture_started_at = now

    def _reset_timers(self) -> None:
        self._settle_started_at = None
        self._capture_started_at = None

    def _in_cooldown(self, now: float) -> bool:
        if self._cooldown_until is None:
            return False
        if now < self._cooldown_until:
            return True
        self._cooldown_until = None
        return False

    def _capture_progress(self, now: float) -> float:
        duration = self.config.capture_duration_s
        if duration <= 0.0:
            return 1.0
        elapsed = now - self._capture_started_at
        return min(max(elapsed / duration, 0.0), 1.0)


def angle_to_target(camera_position, camera_forward, target: CaptureTarget) -> float:
    """Angular offset in radians between the camera forward and a target."""
    to_target = np.asarray(target.position) - geometry.as_vector(camera_position)
    return geometry.angle_between(camera_forward, to_target)

