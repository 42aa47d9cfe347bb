"""World-anchored capture target models."""
from __future__ import annotations

import itertools
from enum import Enum
from typing import Dict, Optional, Sequence

import numpy as np


class CapturePass(Enum):
    """Ring identifier for one set of targets at a fixed tilt."""

    LEVEL = "level"
    TILTED_UP = "tilted_up"
    TILTED_DOWN = "tilted_down"

    @classmethod
    def for_tilt(cls, tilt: float) -> "CapturePass":
        if tilt > 0.0:
            return cls.TILTED_UP
        if tilt < 0.0:
            return cls.TILTED_DOWN
        return cls.LEVEL

    def __str__(self) -> str:  # pragma: no cover - user friendly label
        return self.value


class TargetVisualState(Enum):
    """How the rendering collaborator should emphasise a target."""

    IDLE = "idle"
    NEXT = "next"
    CAPTURED = "captured"


_target_ids = itertools.count(1)


class CaptureTarget:
    """A marker fixed in world space that the user aims the camera at.

    Position, yaw and tilt are fixed at placement; only ``captured`` changes.
    """

    __slots__ = ("_target_id", "_position", "_yaw", "_tilt", "_capture_pass", "captured")

    def __init__(
        self,
        position,
        yaw: float,
        tilt: float,
        capture_pass: CapturePass,
        target_id: Optional[int] = None,
    ) -> None:
        pos = np.asarray(position, dtype=np.float64).reshape(3).copy()
        pos.setflags(write=False)
        self._target_id = next(_target_ids) if target_id is None else int(target_id)
        self._position = pos
        self._yaw = float(yaw)
        self._tilt = float(tilt)
        self._capture_pass = capture_pass
        self.captured = False

    @property
    def target_id(self) -> int:
        return self._target_id

    @property
    def position(self) -> np.ndarray:
        """Read-only world position."""
        return self._position

    @property
    def yaw(self) -> float:
        """Placement yaw in radians (counter-clockwise positive)."""
        return self._yaw

    @property
    def tilt(self) -> float:
        return self._tilt

    @property
    def capture_pass(self) -> CapturePass:
        return self._capture_pass

    def __repr__(self) -> str:
        x, y, z = (round(float(v), 3) for v in self._position)
        return (
            f"CaptureTarget(id={self._target_id}, pass={self._capture_pass.value}, "
            f"position=({x}, {y}, {z}), captured={self.captured})"
        )


def compute_visual_states(
    targets: Sequence[CaptureTarget],
    next_index: Optional[int],
) -> Dict[int, TargetVisualState]:
    """Derive the visual state of each target from its flag and the next index."""
    states: Dict[int, TargetVisualState] = {}
    for index, target in enumerate(targets):
        if target.captured:
            states[target.target_id] = TargetVisualState.CAPTURED
        elif index == next_index:
            states[target.target_id] = TargetVisualState.NEXT
        else:
            states[target.target_id] = TargetVisualState.IDLE
    return states

