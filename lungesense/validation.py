"""
Frame gate: reject snapshots the counter should not act on.
"""
from __future__ import annotations

import enum
from typing import Optional

from .config import LungeConfig
from .landmarks import LandmarkSnapshot


class FrameCheck(enum.Enum):
    VALID = "valid"
    INSUFFICIENT_VISIBILITY = "insufficient_visibility"
    OUT_OF_FRAME = "out_of_frame"


def _visible(snapshot: LandmarkSnapshot, threshold: float) -> bool:
    return all(lm.visibility >= threshold for lm in snapshot.landmarks())


def _in_frame(snapshot: LandmarkSnapshot, lo: float, hi: float) -> bool:
    # NaN fails both comparisons and is treated as out of frame
    return all(lo <= lm.x <= hi and lo <= lm.y <= hi for lm in snapshot.landmarks())


def validate_snapshot(
    snapshot: LandmarkSnapshot,
    config: Optional[LungeConfig] = None,
) -> FrameCheck:
    """Visibility is checked before coordinate bounds. Pure; no side effects."""
    cfg = config or LungeConfig()
    if not _visible(snapshot, cfg.visibility_threshold):
        return FrameCheck.INSUFFICIENT_VISIBILITY
    if not _in_frame(snapshot, cfg.coord_min, cfg.coord_max):
        return FrameCheck.OUT_OF_FRAME
    return FrameCheck.VALID
