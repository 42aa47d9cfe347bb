import math
from typing import List

import numpy as np
import pytest

from panoguide_app.capture import controller as controller_module
from panoguide_app.capture.alignment import AlignmentPhase
from panoguide_app.capture.controller import CaptureController
from panoguide_app.config import CaptureConfig
from panoguide_app.errors import AssemblyFailed, InsufficientFrames
from panoguide_app.io.panorama_assembly import AssemblyResult
from panoguide_app.math import geometry
from panoguide_app.models.camera_pose import OrientationPoseProvider, TrackingQuality, WorldTrackingPoseProvider
from panoguide_app.models.capture_session import SessionProgress
from panoguide_app.models.capture_target import CapturePass, TargetVisualState

CAMERA = np.array([0.0, 1.5, 0.0])
TICK = 0.1


def pixels(width: int = 1000, height: int = 600) -> np.ndarray:
    ramp = np.tile(np.linspace(0, 255, width, dtype=np.uint8), (height, 1))
    return np.stack([ramp, ramp, ramp], axis=2)


class Harness:
    def __init__(self, config: CaptureConfig, deferred: bool = False) -> None:
        self.provider = WorldTrackingPoseProvider()
        self.results: List[AssemblyResult] = []
        self.tasks = []
        submit = self.tasks.append if deferred else (lambda task: task.run())
        self.controller = CaptureController(
            self.provider,
            config,
            submit=submit,
            on_result=self.results.append,
        )
        self.now = 0.0
        self.frame = pixels()

    def aim(self, point, tracking=TrackingQuality.NORMAL) -> None:
        self.provider.update(CAMERA, np.asarray(point) - CAMERA, tracking)

    def tick(self, frame=None):
        output = self.controller.process_frame(self.frame if frame is None else frame, self.now)
        self.now += TICK
        return output

    def hold_until_capture(self, target, max_ticks: int = 40):
        self.aim(target.position)
        for _ in range(max_ticks):
            output = self.tick()
            if output.captured_frame is not None:
                return output
        raise AssertionError("capture never fired")


def started(config: CaptureConfig, deferred: bool = False) -> Harness:
    harness = Harness(config, deferred)
    harness.controller.start_session()
    harness.provider.update(CAMERA, geometry.direction_from_angles(0.0))
    first = harness.tick()
    assert harness.controller.session.is_placed
    assert first.total_targets == config.targets_per_ring * config.ring_count
    return harness


def test_single_ring_round_trip_produces_panorama():
    config = CaptureConfig(targets_per_ring=4, target_distance_m=2.5)
    harness = started(config)
    session = harness.controller.session
    targets = list(session.current_pass.targets)

    headings = []
    for index, target in enumerate(targets):
        output = harness.hold_until_capture(target)
        headings.append(output.captured_frame.azimuth_deg)
        if index < len(targets) - 1:
            # The capture tick already reports the following target as next.
            assert output.alignment.phase is AlignmentPhase.IDLE
            assert output.target_states[target.target_id] is TargetVisualState.CAPTURED
            assert output.target_states[targets[index + 1].target_id] is TargetVisualState.NEXT

    assert [round(h) % 360 for h in headings] == [0, 90, 180, 270]
    assert len(session.frames) == 4
    assert session.complete
    assert len(harness.results) == 1
    result = harness.results[0]
    assert result.ok
    assert result.image.shape == (600, int(1000 * 0.75 * 3 + 1000), 3)
    # A finished session is discarded.
    assert harness.controller.session is None


def test_capture_requires_settle_plus_capture_duration():
    config = CaptureConfig(targets_per_ring=4)
    harness = started(config)
    target = harness.controller.session.next_target()
    harness.aim(target.position)

    start = harness.now
    output = harness.hold_until_capture(target)
    elapsed = (harness.now - TICK) - start
    assert elapsed >= config.settle_duration_s + config.capture_duration_s - 1e-9
    assert output.captured_frame.target_id == target.target_id


def test_second_pass_follows_level_pass_and_undo_reverts():
    config = CaptureConfig(targets_per_ring=4, ring_tilts_deg=(0.0, 30.0))
    harness = started(config)
    session = harness.controller.session

    for target in list(session.current_pass.targets):
        harness.hold_until_capture(target)
    output = harness.tick()
    assert output.current_pass is CapturePass.TILTED_UP
    assert len(output.target_states) == 8
    assert output.captured_count == 4
    assert not harness.results

    tilted_first = session.next_target()
    assert tilted_first.capture_pass is CapturePass.TILTED_UP
    harness.hold_until_capture(tilted_first)
    assert session.current_pass_captured() == 1

    harness.controller.undo_last_capture()
    harness.controller.undo_last_capture()
    assert session.current_pass.capture_pass is CapturePass.LEVEL
    assert session.total_captured == 3


def test_waits_for_stable_tracking_before_placing():
    config = CaptureConfig(targets_per_ring=4)
    harness = Harness(config)
    harness.controller.start_session()
    harness.aim([0.0, 1.5, -1.0], TrackingQuality.LIMITED)

    output = harness.tick()
    assert output.waiting_for_tracking
    assert not harness.controller.session.is_placed
    assert output.alignment.phase is AlignmentPhase.IDLE

    harness.aim([0.0, 1.5, -1.0])
    output = harness.tick()
    assert not output.waiting_for_tracking
    assert harness.controller.session.is_placed
    assert output.alignment.phase is AlignmentPhase.SETTLING


def test_tracking_loss_resets_alignment_progress():
    config = CaptureConfig(targets_per_ring=4)
    harness = started(config)
    target = harness.controller.session.next_target()
    for _ in range(8):
        harness.tick()
    assert harness.controller.tracker.status.phase is AlignmentPhase.CAPTURING

    harness.aim(target.position, TrackingQuality.LIMITED)
    assert harness.tick().waiting_for_tracking
    harness.aim(target.position)
    assert harness.tick().alignment.phase is AlignmentPhase.SETTLING


def test_failed_frame_conversion_keeps_target_next():
    config = CaptureConfig(targets_per_ring=4)
    harness = started(config)
    target = harness.controller.session.next_target()
    harness.aim(target.position)

    bad_frame = np.zeros((4, 4), dtype=np.float64)
    fired = False
    for _ in range(40):
        output = harness.tick(bad_frame)
        assert output.captured_frame is None
        if harness.controller.tracker.status.phase is AlignmentPhase.IDLE:
            fired = True
            break
    assert fired
    assert harness.controller.session.next_target() is target
    assert harness.controller.session.total_captured == 0

    # Tracking resumes on the next tick and a good frame is captured.
    output = harness.hold_until_capture(target)
    assert output.captured_frame.target_id == target.target_id


def test_undo_on_empty_session_is_noop():
    harness = started(CaptureConfig(targets_per_ring=4))
    assert harness.controller.undo_last_capture() is None
    assert harness.controller.session.total_captured == 0


def test_finish_with_too_few_captures_keeps_session():
    harness = started(CaptureConfig(targets_per_ring=4))
    harness.hold_until_capture(harness.controller.session.next_target())

    assert not harness.controller.finish()
    assert isinstance(harness.results[-1].error, InsufficientFrames)
    assert harness.controller.session is not None
    assert len(harness.controller.session.frames) == 1


def test_finish_early_with_two_captures():
    harness = started(CaptureConfig(targets_per_ring=8))
    session = harness.controller.session
    for _ in range(2):
        harness.hold_until_capture(session.next_target())

    assert harness.controller.finish()
    assert harness.results[-1].ok
    assert harness.results[-1].image.shape == (600, 1750, 3)


def test_cancel_discards_pending_assembly():
    harness = started(CaptureConfig(targets_per_ring=2), deferred=True)
    session = harness.controller.session
    for target in list(session.current_pass.targets):
        harness.hold_until_capture(target)
    assert harness.controller.is_assembling
    assert len(harness.tasks) == 1

    harness.controller.cancel()
    assert harness.controller.session is None
    harness.tasks[0].run()
    assert harness.results == []


def test_undo_discards_pending_assembly():
    harness = started(CaptureConfig(targets_per_ring=2), deferred=True)
    session = harness.controller.session
    for target in list(session.current_pass.targets):
        harness.hold_until_capture(target)
    assert session.complete
    assert harness.controller.is_assembling

    assert harness.controller.undo_last_capture() is not None
    assert not harness.controller.is_assembling
    harness.tasks[0].run()
    assert harness.results == []
    assert harness.controller.session is session
    assert session.complete is False
    assert session.total_captured == 1


def test_capture_looking_straight_up_uses_target_heading():
    config = CaptureConfig(targets_per_ring=4, ring_tilts_deg=(0.0, 85.0))
    harness = started(config)
    session = harness.controller.session
    for target in list(session.current_pass.targets):
        harness.hold_until_capture(target)
    assert session.current_pass.capture_pass is CapturePass.TILTED_UP

    target = session.next_target()
    harness.provider.update(CAMERA, [0.0, 1.0, 0.0])
    captured = None
    for _ in range(40):
        output = harness.tick()
        assert output.heading_deg is None
        if output.captured_frame is not None:
            captured = output.captured_frame
            break

    assert captured is not None
    assert captured.target_id == target.target_id
    assert math.isclose(captured.azimuth_deg, geometry.heading_degrees(target.yaw), abs_tol=1e-9)
    assert math.isclose(captured.elevation_deg, 90.0, abs_tol=1e-9)
    assert session.total_captured == 5


def test_assembly_failure_preserves_session(monkeypatch):
    def failing(frames, **_):
        return AssemblyResult(error=AssemblyFailed("boom"), frame_count=len(frames))

    monkeypatch.setattr(controller_module, "assemble_panorama", failing)
    harness = started(CaptureConfig(targets_per_ring=2))
    session = harness.controller.session
    for target in list(session.current_pass.targets):
        harness.hold_until_capture(target)

    assert isinstance(harness.results[-1].error, AssemblyFailed)
    assert harness.controller.session is session
    assert not session.complete
    assert harness.controller.undo_last_capture() is not None
    assert session.next_target() is session.current_pass.targets[1]


def test_force_complete_pass_triggers_assembly():
    harness = started(CaptureConfig(targets_per_ring=4))
    session = harness.controller.session
    for _ in range(2):
        harness.hold_until_capture(session.next_target())
    assert harness.controller.force_complete_pass() is SessionProgress.COMPLETED
    assert harness.results[-1].ok


def test_next_target_projection_points_toward_target():
    harness = started(CaptureConfig(targets_per_ring=4))
    session = harness.controller.session
    target = session.next_target()
    # Look slightly left of the target: it should appear right of centre.
    harness.provider.update(CAMERA, geometry.direction_from_angles(target.yaw + 0.2))
    output = harness.tick()
    assert output.next_target_view is not None
    assert output.next_target_view[0] > 0.0
    assert math.isclose(output.next_target_view[1], 0.0, abs_tol=1e-9)

    harness.provider.update(CAMERA, geometry.direction_from_angles(target.yaw + math.pi))
    assert harness.tick().next_target_view is None


def test_orientation_only_provider_drives_capture():
    provider = OrientationPoseProvider()
    results = []
    controller = CaptureController(
        provider,
        CaptureConfig(targets_per_ring=2),
        submit=lambda task: task.run(),
        on_result=results.append,
    )
    controller.start_session()
    provider.update(0.8, 0.0)
    frame = pixels(200, 100)

    now = 0.0
    for device_yaw in (0.8, 0.8 - math.pi):
        provider.update(device_yaw, 0.0)
        for _ in range(30):
            controller.process_frame(frame, now)
            now += TICK
            if results or (controller.session and controller.session.total_captured == 2):
                break
        now += 1.0
    assert len(results) == 1
    assert results[0].ok
    assert results[0].image.shape == (100, 350, 3)


def test_process_frame_without_session_is_idle():
    harness = Harness(CaptureConfig())
    output = harness.controller.process_frame(pixels(), 0.0)
    assert output.alignment.phase is AlignmentPhase.IDLE
    assert output.target_states == {}


@pytest.mark.parametrize("count", [1, 3])
def test_ring_size_is_respected(count):
    harness = started(CaptureConfig(targets_per_ring=count))
    assert len(harness.controller.session.current_pass.targets) == count
