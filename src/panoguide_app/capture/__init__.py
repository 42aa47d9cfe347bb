"""Guided capture: target layout, alignment timing and session orchestration."""

from .alignment import AlignmentPhase, AlignmentStatus, AlignmentTracker
from .controller import CaptureController, FrameOutput
from .layout import RingPlan, place_targets

__all__ = [
    "AlignmentPhase",
    "AlignmentStatus",
    "AlignmentTracker",
    "CaptureController",
    "FrameOutput",
    "RingPlan",
    "place_targets",
]
