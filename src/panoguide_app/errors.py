"""Error taxonomy for guided capture and panorama assembly."""
from __future__ import annotations


class CaptureError(Exception):
    """Base class for capture and assembly failures."""


class TrackingUnstable(CaptureError):
    """Camera pose is not reliable yet; placement and alignment are deferred."""


class FrameDecodeFailed(CaptureError):
    """A single pixel buffer could not be converted, compressed or decoded."""


class InsufficientFrames(CaptureError):
    """Assembly needs at least two usable frames."""

    def __init__(self, usable: int, required: int = 2) -> None:
        super().__init__(
            f"Need at least {required} usable photos to build a panorama, got {usable}."
        )
        self.usable = usable
        self.required = required


class AssemblyFailed(CaptureError):
    """Compositing failed for a reason other than missing frames."""
