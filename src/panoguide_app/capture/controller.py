"""Frame-driven orchestration of guided capture and panorama assembly."""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from loguru import logger

from ..config import CaptureConfig
from ..errors import AssemblyFailed, FrameDecodeFailed, InsufficientFrames, TrackingUnstable
from ..io.frames import encode_frame
from ..io.panorama_assembly import AssemblyResult, assemble_panorama
from ..math import geometry
from ..models.camera_pose import CameraPose, PoseProvider
from ..models.capture_session import CapturedFrame, CaptureSession, SessionProgress
from ..models.capture_target import CapturePass, TargetVisualState, compute_visual_states
from ..workers.task_runner import FunctionTask, TaskRunner
from .alignment import IDLE_STATUS, AlignmentStatus, AlignmentTracker
from .layout import place_targets


@dataclass(slots=True, frozen=True)
class FrameOutput:
    """Everything the guidance UI needs after one tick."""

    alignment: AlignmentStatus = IDLE_STATUS
    target_states: Dict[int, TargetVisualState] = field(default_factory=dict)
    next_target_view: Optional[Tuple[float, float]] = None
    heading_deg: Optional[float] = None
    captured_count: int = 0
    total_targets: int = 0
    current_pass: Optional[CapturePass] = None
    waiting_for_tracking: bool = False
    session_complete: bool = False
    captured_frame: Optional[CapturedFrame] = None


ResultCallback = Callable[[AssemblyResult], None]


class CaptureController:
    """Drive target placement, alignment timing, capture and assembly.

    All methods except the assembly itself run on the frame thread. The
    assembly is handed an immutable snapshot of the frames and submitted to a
    worker; its result arrives through ``on_result``.
    """

    def __init__(
        self,
        pose_provider: PoseProvider,
        config: Optional[CaptureConfig] = None,
        *,
        submit: Optional[Callable[[FunctionTask], None]] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self.config = config or CaptureConfig()
        self.pose_provider = pose_provider
        self.tracker = AlignmentTracker(self.config)
        self.session: Optional[CaptureSession] = None
        self.on_result = on_result
        self.last_result: Optional[AssemblyResult] = None
        self._submit = submit
        self._pending_task: Optional[FunctionTask] = None

    # ------------------------------------------------------------------
    @property
    def is_assembling(self) -> bool:
        return self._pending_task is not None

    def start_session(self) -> CaptureSession:
        """Begin a fresh session; targets are placed on the first stable frame."""
        self._discard_pending_assembly()
        self.tracker.reset()
        self.pose_provider.reset()
        self.session = CaptureSession()
        self.last_result = None
        logger.info("Capture session started")
        return self.session

    def reset(self) -> CaptureSession:
        """Drop all captures and place targets again on the next stable frame."""
        return self.start_session()

    def cancel(self) -> None:
        """Abandon the session and discard any assembly still running."""
        self._discard_pending_assembly()
        self.tracker.reset()
        if self.session is not None:
            logger.info("Capture session cancelled with {} capture(s)", len(self.session.frames))
        self.session = None

    def undo_last_capture(self) -> Optional[CapturedFrame]:
        session = self.session
        if session is None:
            return None
        self._discard_pending_assembly()
        frame = session.undo_last_capture()
        self.tracker.reset()
        return frame

    def force_complete_pass(self) -> SessionProgress:
        session = self.session
        if session is None or self.is_assembling:
            return SessionProgress.UNCHANGED
        progress = session.force_complete_pass()
        self.tracker.reset()
        if progress is SessionProgress.COMPLETED:
            self._start_assembly(session)
        return progress

    def finish(self) -> bool:
        """Assemble whatever has been captured so far.

        Returns ``True`` if an assembly was started. With fewer than two
        captures an :class:`InsufficientFrames` result is delivered and the
        session is kept.
        """
        session = self.session
        if session is None or self.is_assembling:
            return False
        if len(session.frames) < 2:
            self._deliver(AssemblyResult(error=InsufficientFrames(len(session.frames)), frame_count=len(session.frames)))
            return False
        session.complete = True
        self.tracker.reset()
        self._start_assembly(session)
        return True

    # ------------------------------------------------------------------
    def process_frame(self, pixels: Optional[np.ndarray], now: float) -> FrameOutput:
        """Consume one camera frame. Never raises for per-frame failures."""
        session = self.session
        if session is None or session.complete:
            return self._output(session, None, self.tracker.status)

        pose = self.pose_provider.current_pose()
        try:
            self._ensure_stable(pose)
            if not session.is_placed:
                self._place(session, pose)
        except TrackingUnstable as exc:
            logger.debug("Waiting for stable tracking: {}", exc)
            self.tracker.reset()
            return self._output(session, pose, IDLE_STATUS, waiting=True)

        status = self.tracker.update(pose.position, pose.forward, now, session.next_target())
        captured = None
        if status.fire:
            captured = self._capture(session, pixels, pose, now)
            status = self.tracker.status
        return self._output(session, pose, status, captured=captured)

    # ------------------------------------------------------------------
    def _ensure_stable(self, pose: CameraPose) -> None:
        if not pose.tracking.is_stable:
            raise TrackingUnstable(f"tracking quality is {pose.tracking.value}")

    def _place(self, session: CaptureSession, pose: CameraPose) -> None:
        try:
            rings = place_targets(
                pose.position,
                pose.forward,
                ring_count=self.config.ring_count,
                targets_per_ring=self.config.targets_per_ring,
                distance=self.config.target_distance_m,
                tilt_angles=self.config.ring_tilts_rad,
            )
        except ValueError as exc:
            raise TrackingUnstable(f"cannot place targets from this pose: {exc}") from exc
        session.place(rings)

    def _capture(
        self,
        session: CaptureSession,
        pixels: Optional[np.ndarray],
        pose: CameraPose,
        now: float,
    ) -> Optional[CapturedFrame]:
        if not self.tracker.begin_capture():
            return None
        try:
            data = encode_frame(pixels, self.config.jpeg_quality)
        except FrameDecodeFailed as exc:
            logger.warning("Dropped capture: {}", exc)
            self.tracker.abort_capture()
            return None

        heading = _safe_heading(pose)
        if heading is None:
            # Looking straight up or down: fall back to the target's placement heading.
            heading = geometry.heading_degrees(session.next_target().yaw)
        frame = session.record_capture(data, heading, pose.elevation_deg)
        self.tracker.finish_capture(now)
        if session.advance_pass_if_complete() is SessionProgress.COMPLETED:
            self._start_assembly(session)
        return frame

    def _output(
        self,
        session: Optional[CaptureSession],
        pose: Optional[CameraPose],
        status: AlignmentStatus,
        *,
        waiting: bool = False,
        captured: Optional[CapturedFrame] = None,
    ) -> FrameOutput:
        heading = _safe_heading(pose) if pose is not None else None
        if session is None or not session.is_placed:
            return FrameOutput(
                alignment=status,
                heading_deg=heading,
                waiting_for_tracking=waiting,
                captured_frame=captured,
            )

        revealed = session.revealed_targets
        next_target = session.next_target()
        next_index = revealed.index(next_target) if next_target is not None else None
        view = None
        if next_target is not None and pose is not None:
            view = geometry.project_to_view(
                pose.position, pose.forward, next_target.position, self.config.guide_fov_deg
            )
        current = session.current_pass
        return FrameOutput(
            alignment=status,
            target_states=compute_visual_states(revealed, next_index),
            next_target_view=view,
            heading_deg=heading,
            captured_count=session.total_captured,
            total_targets=session.total_targets,
            current_pass=current.capture_pass if current is not None else None,
            waiting_for_tracking=waiting,
            session_complete=session.complete,
            captured_frame=captured,
        )

    # ------------------------------------------------------------------
    def _start_assembly(self, session: CaptureSession) -> None:
        frames = session.snapshot_frames()
        task = FunctionTask(
            assemble_panorama,
            frames,
            max_height=self.config.max_panorama_height_px,
            overlap_fraction=self.config.overlap_fraction,
        )
        task.signals.finished.connect(partial(self._on_assembly_finished, task))
        task.signals.failed.connect(partial(self._on_assembly_failed, task))
        self._pending_task = task
        logger.info("Submitting panorama assembly for {} frame(s)", len(frames))
        if self._submit is None:
            self._submit = TaskRunner().submit
        self._submit(task)

    def _on_assembly_finished(self, task: FunctionTask, result: AssemblyResult) -> None:
        if task is not self._pending_task:
            logger.debug("Ignoring result of a superseded assembly")
            return
        self._pending_task = None
        if result.ok:
            self.session = None
        elif self.session is not None:
            self.session.complete = False
        self._deliver(result)

    def _on_assembly_failed(self, task: FunctionTask, message: str) -> None:
        self._on_assembly_finished(task, AssemblyResult(error=AssemblyFailed(message.splitlines()[0])))

    def _discard_pending_assembly(self) -> None:
        if self._pending_task is not None:
            self._pending_task.cancel()
            self._pending_task = None
            logger.info("Discarded pending panorama assembly")

    def _deliver(self, result: AssemblyResult) -> None:
        self.last_result = result
        if not result.ok:
            logger.warning("Panorama not created: {}", result.message)
        if self.on_result is not None:
            self.on_result(result)


def _safe_heading(pose: CameraPose) -> Optional[float]:
    try:
        return pose.heading_deg
    except ValueError:
        return None
