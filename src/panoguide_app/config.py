"""Tunable parameters for guided capture and panorama assembly."""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Tuple

from loguru import logger


@dataclass(slots=True, frozen=True)
class CaptureConfig:
    """Capture guidance, timing and compositing parameters.

    Attributes
    ----------
    alignment_threshold_rad:
        Largest angle between camera forward and target direction that still
        counts as aimed at the target.
    settle_duration_s, capture_duration_s:
        Aligned time before capture timing begins, then aligned time before the
        photo is taken.
    cooldown_s:
        Pause after a capture before the next target is tracked.
    targets_per_ring, target_distance_m, ring_tilts_deg:
        Layout of the world-anchored targets. The first ring must be level.
    jpeg_quality:
        Compression quality for stored captures (1-100).
    max_panorama_height_px, overlap_fraction:
        Assembly scaling and neighbour overlap.
    guide_fov_deg:
        Horizontal field of view used to project the next target for the
        direction indicator.
    """

    alignment_threshold_rad: float = 0.12
    settle_duration_s: float = 0.5
    capture_duration_s: float = 1.0
    cooldown_s: float = 0.3
    targets_per_ring: int = 8
    target_distance_m: float = 2.5
    ring_tilts_deg: Tuple[float, ...] = (0.0,)
    jpeg_quality: int = 50
    max_panorama_height_px: int = 1200
    overlap_fraction: float = 0.25
    guide_fov_deg: float = 60.0

    def __post_init__(self) -> None:
        if not 0.0 < self.alignment_threshold_rad < math.pi:
            raise ValueError("alignment_threshold_rad must be in (0, pi).")
        if min(self.settle_duration_s, self.capture_duration_s, self.cooldown_s) < 0.0:
            raise ValueError("Timing durations must be non-negative.")
        if self.targets_per_ring < 1:
            raise ValueError("targets_per_ring must be at least 1.")
        if self.target_distance_m <= 0.0:
            raise ValueError("target_distance_m must be positive.")
        tilts = tuple(float(t) for t in self.ring_tilts_deg)
        if not tilts or tilts[0] != 0.0:
            raise ValueError("The first ring must be the level ring (tilt 0).")
        if len(set(tilts)) != len(tilts):
            raise ValueError("Ring tilts must be unique.")
        if any(abs(t) >= 90.0 for t in tilts):
            raise ValueError("Ring tilts must lie strictly between -90 and 90 degrees.")
        object.__setattr__(self, "ring_tilts_deg", tilts)
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be in 1..100.")
        if self.max_panorama_height_px < 1:
            raise ValueError("max_panorama_height_px must be positive.")
        if not 0.0 <= self.overlap_fraction < 1.0:
            raise ValueError("overlap_fraction must be in [0, 1).")
        if not 0.0 < self.guide_fov_deg < 180.0:
            raise ValueError("guide_fov_deg must be in (0, 180).")

    @property
    def ring_count(self) -> int:
        return len(self.ring_tilts_deg)

    @property
    def ring_tilts_rad(self) -> Tuple[float, ...]:
        return tuple(math.radians(t) for t in self.ring_tilts_deg)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CaptureConfig":
        """Build a config from plain values, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ValueError(f"Unknown capture config keys: {', '.join(unknown)}")
        values = dict(mapping)
        if "ring_tilts_deg" in values:
            values["ring_tilts_deg"] = tuple(values["ring_tilts_deg"])
        return cls(**values)


def load_capture_config(path: Path) -> CaptureConfig:
    """Load a :class:`CaptureConfig` from a JSON object file."""
    resolved = path.expanduser()
    if not resolved.is_file():
        raise FileNotFoundError(f"Capture config not found: {resolved}")
    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Capture config {resolved} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Capture config {resolved} must contain a JSON object.")
    config = CaptureConfig.from_mapping(payload)
    logger.debug("Loaded capture config from {}: {}", resolved, config)
    return config
