"""
Tunable thresholds for lunge tracking.
Defaults match the values the counter was tuned with; override per instance
or via LUNGE_* environment variables (loaded from .env by run.py / web_app.py).
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Optional

# Minimum landmark confidence for a frame to be processed.
VISIBILITY_THRESHOLD = 0.5
# Normalized coordinate bounds (inclusive).
COORD_MIN = 0.0
COORD_MAX = 1.0
# Minimum vertical knee separation before progress is non-zero.
MIN_KNEE_SEPARATION = 0.02
# Maximum horizontal front knee / ankle offset before it counts as misaligned.
ALIGNMENT_THRESHOLD = 0.1
# Hysteresis on smoothed progress: enter lunge above HIGH, leave below LOW.
LUNGE_ENTER_THRESHOLD = 0.7
LUNGE_EXIT_THRESHOLD = 0.2
# Moving-average window for progress (frames).
SMOOTHING_WINDOW = 5
# Flat quality penalty when the back knee rises above hip level.
BACK_KNEE_PENALTY = 20
# Added to the hip-to-knee distance to avoid division by zero.
EPSILON = 1e-4

_ENV_NAMES = {
    "visibility_threshold": "VISIBILITY_THRESHOLD",
    "coord_min": "COORD_MIN",
    "coord_max": "COORD_MAX",
    "min_knee_separation": "MIN_KNEE_SEPARATION",
    "alignment_threshold": "ALIGNMENT_THRESHOLD",
    "lunge_enter_threshold": "ENTER_THRESHOLD",
    "lunge_exit_threshold": "EXIT_THRESHOLD",
    "smoothing_window": "SMOOTHING_WINDOW",
    "back_knee_penalty": "BACK_KNEE_PENALTY",
    "epsilon": "EPSILON",
}


@dataclass(frozen=True)
class LungeConfig:
    visibility_threshold: float = VISIBILITY_THRESHOLD
    coord_min: float = COORD_MIN
    coord_max: float = COORD_MAX
    min_knee_separation: float = MIN_KNEE_SEPARATION
    alignment_threshold: float = ALIGNMENT_THRESHOLD
    lunge_enter_threshold: float = LUNGE_ENTER_THRESHOLD
    lunge_exit_threshold: float = LUNGE_EXIT_THRESHOLD
    smoothing_window: int = SMOOTHING_WINDOW
    back_knee_penalty: int = BACK_KNEE_PENALTY
    epsilon: float = EPSILON

    def __post_init__(self) -> None:
        if self.smoothing_window < 1:
            raise ValueError(f"smoothing_window must be >= 1, got {self.smoothing_window}")
        if self.coord_min >= self.coord_max:
            raise ValueError(f"coord_min ({self.coord_min}) must be below coord_max ({self.coord_max})")
        for name in ("visibility_threshold", "lunge_enter_threshold", "lunge_exit_threshold"):
            val = getattr(self, name)
            if not 0.0 <= val <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {val}")
        if self.lunge_exit_threshold >= self.lunge_enter_threshold:
            raise ValueError(
                f"lunge_exit_threshold ({self.lunge_exit_threshold}) must be below "
                f"lunge_enter_threshold ({self.lunge_enter_threshold})"
            )
        if self.min_knee_separation < 0 or self.alignment_threshold < 0 or self.epsilon <= 0:
            raise ValueError("separation/alignment thresholds must be >= 0 and epsilon > 0")

    @classmethod
    def from_env(cls, prefix: str = "LUNGE_", env: Optional[dict[str, str]] = None) -> "LungeConfig":
        """Build config from environment variables, e.g. LUNGE_ENTER_THRESHOLD=0.65."""
        env = os.environ if env is None else env
        overrides: dict[str, float | int] = {}
        for f in fields(cls):
            raw = env.get(prefix + _ENV_NAMES[f.name])
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = int(raw) if f.type in (int, "int") else float(raw)
            except ValueError as e:
                raise ValueError(f"invalid {prefix}{_ENV_NAMES[f.name]}={raw!r}") from e
        return cls(**overrides)
