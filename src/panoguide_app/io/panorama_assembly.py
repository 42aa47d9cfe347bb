"""Left-to-right overlap compositing of captured frames into a panorama."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np
from loguru import logger

from ..errors import AssemblyFailed, CaptureError, FrameDecodeFailed, InsufficientFrames
from ..models.capture_session import CapturedFrame
from .frames import decode_frame

DEFAULT_MAX_HEIGHT = 1200
DEFAULT_OVERLAP_FRACTION = 0.25


@dataclass(slots=True, frozen=True)
class AssemblyResult:
    """Outcome of a panorama assembly: an image or a typed error."""

    image: Optional[np.ndarray] = None
    error: Optional[CaptureError] = None
    frame_count: int = 0

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None

    @property
    def message(self) -> str:
        if self.ok:
            height, width = self.image.shape[:2]
            return f"Panorama created from {self.frame_count} photos ({width}x{height})."
        return str(self.error) if self.error is not None else "Failed to create panorama."


@dataclass(slots=True, frozen=True)
class PanoramaLayout:
    """Canvas geometry for ``frame_count`` frames of equal size."""

    frame_count: int
    image_width: int
    image_height: int
    overlap_fraction: float

    @property
    def effective_width(self) -> float:
        return self.image_width * (1.0 - self.overlap_fraction)

    @property
    def overlap_width(self) -> int:
        return int(math.floor(self.image_width * self.overlap_fraction))

    @property
    def total_width(self) -> int:
        return int(math.floor(self.effective_width * (self.frame_count - 1) + self.image_width))

    def offset(self, index: int) -> int:
        return int(math.floor(index * self.effective_width))


def sort_by_azimuth(frames: Sequence[CapturedFrame]) -> List[CapturedFrame]:
    """Order frames left to right by azimuth, ties by capture order."""
    return sorted(frames, key=lambda frame: (frame.azimuth_deg, frame.sequence))


def find_wraparound_seam(azimuths: Sequence[float]) -> Optional[int]:
    """Index after which the widest azimuth gap lies, if it is not the wrap gap.

    Frames sorted by azimuth are placed left to right, which assumes the widest
    uncovered gap lies across 0/360. When a capture path crosses 0 the widest gap
    is elsewhere and the seam lands in the wrong place.
    """
    if len(azimuths) < 2:
        return None
    ordered = sorted(a % 360.0 for a in azimuths)
    gaps = [ordered[i + 1] - ordered[i] for i in range(len(ordered) - 1)]
    wrap_gap = ordered[0] + 360.0 - ordered[-1]
    widest = max(range(len(gaps)), key=gaps.__getitem__)
    if gaps[widest] > wrap_gap:
        return widest
    return None


def scale_to_height(image: np.ndarray, max_height: int) -> np.ndarray:
    """Downscale to ``max_height`` preserving aspect ratio; never upscale."""
    height, width = image.shape[:2]
    if height <= max_height:
        return image
    scale = max_height / float(height)
    new_width = max(1, int(round(width * scale)))
    return cv2.resize(image, (new_width, max_height), interpolation=cv2.INTER_AREA)


def linear_alpha(width: int, start: float = 1.0, end: float = 0.0) -> np.ndarray:
    """Per-column alpha ramp from ``start`` to ``end`` across ``width`` columns."""
    if width <= 0:
        return np.zeros(0, dtype=np.float32)
    return np.linspace(start, end, width, dtype=np.float32)


def blend_overlay(base: np.ndarray, overlay: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """Composite ``overlay`` over ``base`` with a per-column alpha.

    ``out = alpha * overlay + (1 - alpha) * base``, evaluated in float and
    rounded back to ``uint8``.
    """
    if base.shape != overlay.shape:
        raise ValueError(f"Blend regions differ in shape: {base.shape} vs {overlay.shape}")
    if alpha.shape[0] != base.shape[1]:
        raise ValueError("Alpha ramp width must match the blend region width.")
    weights = alpha.reshape(1, -1, *([1] * (base.ndim - 2))).astype(np.float32)
    mixed = weights * overlay.astype(np.float32) + (1.0 - weights) * base.astype(np.float32)
    return np.clip(np.rint(mixed), 0, 255).astype(np.uint8)


def composite(images: Sequence[np.ndarray], overlap_fraction: float) -> np.ndarray:
    """Lay equally sized RGB images left to right, blending each seam.

    Every image after the first is drawn at ``i * effective_width``; the
    trailing overlap strip of the previous image is then alpha-blended on top
    with alpha falling from 1 to 0 left to right.
    """
    if len(images) < 2:
        raise InsufficientFrames(len(images))
    height, width = images[0].shape[:2]
    layout = PanoramaLayout(len(images), width, height, overlap_fraction)
    canvas = np.zeros((height, layout.total_width, 3), dtype=np.uint8)

    canvas[:, :width] = images[0]
    overlap = layout.overlap_width
    alpha = linear_alpha(overlap)
    for index in range(1, len(images)):
        x = layout.offset(index)
        span = min(width, layout.total_width - x)
        canvas[:, x : x + span] = images[index][:, :span]
        if overlap <= 0:
            continue
        strip_width = min(overlap, layout.total_width - x)
        previous_strip = images[index - 1][:, width - overlap : width - overlap + strip_width]
        region = canvas[:, x : x + strip_width]
        canvas[:, x : x + strip_width] = blend_overlay(region, previous_strip, alpha[:strip_width])
    return canvas


def _prepare_images(frames: Sequence[CapturedFrame], max_height: int) -> List[np.ndarray]:
    decoded: List[np.ndarray] = []
    for frame in frames:
        try:
            image = decode_frame(frame.image_data)
            decoded.append(scale_to_height(image, max_height))
        except (FrameDecodeFailed, cv2.error) as exc:
            logger.warning("Dropping frame {} from panorama: {}", frame.sequence, exc)
    if len(decoded) < 2:
        return decoded

    # Compositing assumes a single frame size: scale to the smallest height, then
    # crop or pad each frame to the first frame's width.
    target_height = min(image.shape[0] for image in decoded)
    scaled = [scale_to_height(image, target_height) for image in decoded]
    target_width = scaled[0].shape[1]
    normalised = []
    for image in scaled:
        if image.shape[1] != target_width:
            logger.debug("Fitting frame of width {} to {}", image.shape[1], target_width)
            image = fit_width(image, target_width)
        normalised.append(image)
    return normalised


def fit_width(image: np.ndarray, width: int) -> np.ndarray:
    """Centre-crop or black-pad ``image`` horizontally to ``width`` columns."""
    current = image.shape[1]
    if current == width:
        return image
    if current > width:
        left = (current - width) // 2
        return image[:, left : left + width]
    left = (width - current) // 2
    fitted = np.zeros((image.shape[0], width) + image.shape[2:], dtype=image.dtype)
    fitted[:, left : left + current] = image
    return fitted


def assemble_panorama(
    frames: Sequence[CapturedFrame],
    *,
    max_height: int = DEFAULT_MAX_HEIGHT,
    overlap_fraction: float = DEFAULT_OVERLAP_FRACTION,
) -> AssemblyResult:
    """Build a panorama from captured frames.

    Frames are sorted by azimuth, decoded, scaled to at most ``max_height`` and
    composited with ``overlap_fraction`` of each frame blended into its
    neighbour. Fewer than two usable frames yields :class:`InsufficientFrames`;
    any other failure yields :class:`AssemblyFailed`. Never raises.
    """
    if len(frames) < 2:
        logger.warning("Panorama assembly needs at least 2 photos, got {}", len(frames))
        return AssemblyResult(error=InsufficientFrames(len(frames)), frame_count=len(frames))

    ordered = sort_by_azimuth(frames)
    seam = find_wraparound_seam([frame.azimuth_deg for frame in ordered])
    if seam is not None:
        logger.warning(
            "Capture path crosses 0 deg; panorama seam between {:.1f} and {:.1f} deg may be misplaced",
            ordered[seam].azimuth_deg,
            ordered[seam + 1].azimuth_deg,
        )

    logger.info("Assembling panorama from {} photos", len(ordered))
    try:
        images = _prepare_images(ordered, max_height)
        if len(images) < 2:
            return AssemblyResult(error=InsufficientFrames(len(images)), frame_count=len(images))
        panorama = composite(images, overlap_fraction)
    except (cv2.error, MemoryError, ValueError) as exc:
        logger.warning("Panorama assembly failed: {}", exc)
        return AssemblyResult(error=AssemblyFailed(f"Failed to create panorama: {exc}"), frame_count=len(frames))

    logger.info("Panorama assembled: {}x{}", panorama.shape[1], panorama.shape[0])
    return AssemblyResult(image=panorama, frame_count=len(images))
