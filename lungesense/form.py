"""
Lunge form checks: working-leg detection, post-rep quality score and
per-frame corrective cues.
"""
from __future__ import annotations

from typing import Optional

from .config import LungeConfig
from .landmarks import LandmarkSnapshot, Leg

MSG_KNEE_OVER_ANKLE = "Keep front knee over ankle"
MSG_LOWER_BACK_KNEE = "Lower your back knee"


def determine_lunge_leg(snapshot: LandmarkSnapshot) -> Leg:
    """Forward leg = larger knee-to-ankle vertical distance (ties go right)."""
    left_len = abs(snapshot.left_knee.y - snapshot.left_ankle.y)
    right_len = abs(snapshot.right_knee.y - snapshot.right_ankle.y)
    return Leg.LEFT if left_len > right_len else Leg.RIGHT


def assess_form_quality(
    snapshot: LandmarkSnapshot,
    config: Optional[LungeConfig] = None,
) -> int:
    """
    Quality score 0..100 at rep completion:
    - front knee drifting past the ankle costs its offset in percent points
    - back knee above hip level costs a flat penalty
    """
    cfg = config or LungeConfig()
    quality = 100

    front_knee, front_ankle = snapshot.front_leg()
    align_err = abs(front_knee.x - front_ankle.x)
    if align_err > cfg.alignment_threshold:
        quality -= int(round(align_err * 100))

    if snapshot.back_knee().y < snapshot.avg_hip_y:
        quality -= cfg.back_knee_penalty

    return max(0, min(100, quality))


def check_live_form(
    snapshot: LandmarkSnapshot,
    config: Optional[LungeConfig] = None,
) -> Optional[str]:
    """At most one cue per frame; knee alignment wins over back knee height."""
    cfg = config or LungeConfig()
    vis = cfg.visibility_threshold

    front_knee, front_ankle = snapshot.front_leg()
    if abs(front_knee.x - front_ankle.x) > cfg.alignment_threshold:
        if front_knee.visibility > vis and front_ankle.visibility > vis:
            return MSG_KNEE_OVER_ANKLE

    back_knee = snapshot.back_knee()
    if back_knee.y < snapshot.avg_hip_y and back_knee.visibility > vis:
        return MSG_LOWER_BACK_KNEE
    return None
