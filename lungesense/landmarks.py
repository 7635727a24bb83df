"""
Per-frame landmark model: the six lower-body points lunge analysis needs.
Coordinates are normalized image coords (0..1, y grows downward).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Sequence


# MediaPipe Pose landmark indices (same as PoseLandmark)
class LandmarkIdx:
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


class Leg(str, enum.Enum):
    NONE = "none"
    LEFT = "left"
    RIGHT = "right"


def _attr(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0
    presence: float = 0.0

    @classmethod
    def from_any(cls, obj: Any) -> "Landmark":
        """
        Copy a landmark-like object (MediaPipe NormalizedLandmark, dict, Landmark).
        Missing visibility/presence is treated as 0.
        """
        x = _attr(obj, "x")
        y = _attr(obj, "y")
        if x is None or y is None:
            raise ValueError(f"landmark has no x/y: {obj!r}")
        z = _attr(obj, "z")
        vis = _attr(obj, "visibility")
        pres = _attr(obj, "presence")
        return cls(
            x=float(x),
            y=float(y),
            z=float(z) if z is not None else 0.0,
            visibility=float(vis) if vis is not None else 0.0,
            presence=float(pres) if pres is not None else 0.0,
        )


@dataclass(frozen=True)
class LandmarkSnapshot:
    left_knee: Landmark
    right_knee: Landmark
    left_hip: Landmark
    right_hip: Landmark
    left_ankle: Landmark
    right_ankle: Landmark

    @classmethod
    def from_landmarks(cls, landmarks: Sequence[Any]) -> "LandmarkSnapshot":
        """Extract the six lunge landmarks from one subject's full landmark list."""
        return cls(
            left_knee=Landmark.from_any(landmarks[LandmarkIdx.LEFT_KNEE]),
            right_knee=Landmark.from_any(landmarks[LandmarkIdx.RIGHT_KNEE]),
            left_hip=Landmark.from_any(landmarks[LandmarkIdx.LEFT_HIP]),
            right_hip=Landmark.from_any(landmarks[LandmarkIdx.RIGHT_HIP]),
            left_ankle=Landmark.from_any(landmarks[LandmarkIdx.LEFT_ANKLE]),
            right_ankle=Landmark.from_any(landmarks[LandmarkIdx.RIGHT_ANKLE]),
        )

    def landmarks(self) -> tuple[Landmark, ...]:
        return (
            self.left_knee,
            self.right_knee,
            self.left_ankle,
            self.right_ankle,
            self.left_hip,
            self.right_hip,
        )

    @property
    def avg_hip_y(self) -> float:
        return (self.left_hip.y + self.right_hip.y) / 2.0

    def front_leg(self) -> tuple[Landmark, Landmark]:
        """
        (knee, ankle) of the front leg: the knee with the larger y.
        Assumes the camera faces the subject from the front/side as in the
        tuned setup; a mirrored camera is not corrected for.
        """
        if self.left_knee.y > self.right_knee.y:
            return self.left_knee, self.left_ankle
        return self.right_knee, self.right_ankle

    def back_knee(self) -> Landmark:
        if self.left_knee.y > self.right_knee.y:
            return self.right_knee
        return self.left_knee
