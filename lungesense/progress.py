"""
Lunge progress signal: raw per-frame estimate plus moving-average smoothing.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from .config import LungeConfig
from .landmarks import LandmarkSnapshot


def calculate_progress(
    snapshot: LandmarkSnapshot,
    config: Optional[LungeConfig] = None,
) -> float:
    """
    Raw lunge depth proxy in [0, 1]: vertical knee separation relative to the
    hip-to-front-knee height. 0 = standing, 1 = full lunge.
    """
    cfg = config or LungeConfig()
    left_y = snapshot.left_knee.y
    right_y = snapshot.right_knee.y
    knee_sep = abs(left_y - right_y)
    if knee_sep < cfg.min_knee_separation:
        return 0.0
    hip_knee = abs(snapshot.avg_hip_y - min(left_y, right_y))
    return max(0.0, min(1.0, knee_sep / (hip_knee + cfg.epsilon)))


class ProgressSmoother:
    """
    Fixed-size circular buffer of raw progress values, zero-initialized.
    push() overwrites the oldest slot and returns the mean of the whole window,
    so the first window_size - 1 outputs are biased toward 0.
    """

    def __init__(self, window_size: int = 5):
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        self._buf = np.zeros(window_size, dtype=float)
        self._idx = 0

    @property
    def window_size(self) -> int:
        return len(self._buf)

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the buffer in slot order (not chronological)."""
        view = self._buf.view()
        view.flags.writeable = False
        return view

    @property
    def index(self) -> int:
        return self._idx

    def push(self, value: float) -> float:
        self._buf[self._idx] = value
        self._idx = (self._idx + 1) % len(self._buf)
        return float(self._buf.mean())

    def copy(self) -> "ProgressSmoother":
        other = ProgressSmoother.__new__(ProgressSmoother)
        other._buf = self._buf.copy()
        other._idx = self._idx
        return other

    def reset(self) -> None:
        self._buf[:] = 0.0
        self._idx = 0
