"""Capture session state: passes of targets and the captured frames."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .capture_target import CapturePass, CaptureTarget


@dataclass(slots=True, frozen=True)
class CapturedFrame:
    """One stored capture.

    ``image_data`` holds the compressed image. ``azimuth_deg`` is the clockwise
    heading at capture time in ``[0, 360)`` and ``elevation_deg`` the camera
    pitch, both in degrees. ``sequence`` is the insertion order.
    """

    image_data: bytes
    azimuth_deg: float
    elevation_deg: float
    sequence: int
    target_id: Optional[int] = None
    capture_pass: Optional[CapturePass] = None


@dataclass(slots=True)
class PassTargets:
    """Ordered targets of one pass. The count is fixed at creation."""

    capture_pass: CapturePass
    tilt: float
    targets: Tuple[CaptureTarget, ...]

    @property
    def captured_count(self) -> int:
        return sum(1 for target in self.targets if target.captured)

    def next_uncaptured_index(self) -> Optional[int]:
        for index, target in enumerate(self.targets):
            if not target.captured:
                return index
        return None


class SessionProgress(Enum):
    """Outcome of :meth:`CaptureSession.advance_pass_if_complete`."""

    UNCHANGED = "unchanged"
    ADVANCED = "advanced"
    COMPLETED = "completed"


@dataclass(slots=True)
class CaptureSession:
    """Owns the passes, targets and frames of one guided capture."""

    passes: List[PassTargets] = field(default_factory=list)
    frames: List[CapturedFrame] = field(default_factory=list)
    current_pass_index: int = 0
    complete: bool = False
    _next_sequence: int = 0

    # ------------------------------------------------------------------
    @property
    def is_placed(self) -> bool:
        return bool(self.passes)

    def place(self, rings: Sequence) -> None:
        """Install the target rings. Placement happens once per session."""
        if self.passes:
            raise ValueError("Targets were already placed for this session.")
        if not rings:
            raise ValueError("At least one ring of targets is required.")
        counts = {len(ring.targets) for ring in rings}
        if len(counts) != 1 or 0 in counts:
            raise ValueError("Every pass must have the same, non-zero number of targets.")
        self.passes = [PassTargets(ring.capture_pass, ring.tilt, tuple(ring.targets)) for ring in rings]
        self.current_pass_index = 0

    @property
    def targets_per_ring(self) -> int:
        return len(self.passes[0].targets) if self.passes else 0

    @property
    def current_pass(self) -> Optional[PassTargets]:
        if not self.passes:
            return None
        return self.passes[self.current_pass_index]

    @property
    def revealed_targets(self) -> Tuple[CaptureTarget, ...]:
        """Targets of the current pass and every pass before it."""
        revealed: List[CaptureTarget] = []
        for pass_targets in self.passes[: self.current_pass_index + 1]:
            revealed.extend(pass_targets.targets)
        return tuple(revealed)

    @property
    def total_targets(self) -> int:
        return sum(len(p.targets) for p in self.passes)

    @property
    def total_captured(self) -> int:
        return sum(p.captured_count for p in self.passes)

    # ------------------------------------------------------------------
    def current_pass_captured(self) -> int:
        current = self.current_pass
        return current.captured_count if current is not None else 0

    def next_uncaptured_index(self) -> Optional[int]:
        current = self.current_pass
        if current is None or self.complete:
            return None
        return current.next_uncaptured_index()

    def next_target(self) -> Optional[CaptureTarget]:
        index = self.next_uncaptured_index()
        if index is None:
            return None
        return self.current_pass.targets[index]

    def record_capture(self, image_data: bytes, azimuth_deg: float, elevation_deg: float) -> CapturedFrame:
        """Store a capture for the next target of the current pass and mark it captured."""
        target = self.next_target()
        if target is None:
            raise ValueError("No uncaptured target left in the current pass.")
        frame = CapturedFrame(
            image_data=bytes(image_data),
            azimuth_deg=float(azimuth_deg),
            elevation_deg=float(elevation_deg),
            sequence=self._next_sequence,
            target_id=target.target_id,
            capture_pass=self.current_pass.capture_pass,
        )
        self._next_sequence += 1
        self.frames.append(frame)
        target.captured = True
        logger.info(
            "Recorded capture {} for target {} ({}) at azimuth {:.1f} deg",
            frame.sequence,
            target.target_id,
            frame.capture_pass.value,
            frame.azimuth_deg,
        )
        return frame

    def advance_pass_if_complete(self) -> SessionProgress:
        """Move to the next pass or complete the session once the pass is full."""
        current = self.current_pass
        if current is None or self.complete:
            return SessionProgress.UNCHANGED
        if current.captured_count < len(current.targets):
            return SessionProgress.UNCHANGED
        return self._advance()

    def force_complete_pass(self) -> SessionProgress:
        """Leave the current pass even if targets remain uncaptured."""
        if self.current_pass is None or self.complete:
            return SessionProgress.UNCHANGED
        return self._advance()

    def undo_last_capture(self) -> Optional[CapturedFrame]:
        """Remove the most recent capture and un-mark its target.

        Reverts to the pass the capture belonged to if it was taken in an
        earlier pass. Does nothing when there is nothing to undo.
        """
        if not self.frames:
            return None
        frame = self.frames.pop()
        pass_index, target = self._locate_target(frame.target_id)
        if target is not None:
            target.captured = False
            if pass_index != self.current_pass_index:
                logger.info(
                    "Undo reverted to pass {}",
                    self.passes[pass_index].capture_pass.value,
                )
            self.current_pass_index = pass_index
        self.complete = False
        logger.info("Undid capture {}; {} capture(s) remain", frame.sequence, len(self.frames))
        return frame

    def snapshot_frames(self) -> Tuple[CapturedFrame, ...]:
        """Immutable view of the captured frames for assembly."""
        return tuple(self.frames)

    # ------------------------------------------------------------------
    def _advance(self) -> SessionProgress:
        if self.current_pass_index + 1 < len(self.passes):
            self.current_pass_index += 1
            logger.info("Advanced to pass {}", self.passes[self.current_pass_index].capture_pass.value)
            return SessionProgress.ADVANCED
        self.complete = True
        logger.info("Capture session complete with {} frame(s)", len(self.frames))
        return SessionProgress.COMPLETED

    def _locate_target(self, target_id: Optional[int]) -> Tuple[int, Optional[CaptureTarget]]:
        for pass_index, pass_targets in enumerate(self.passes):
            for target in pass_targets.targets:
                if target.target_id == target_id:
                    return pass_index, target
        return self.current_pass_index, None
