"""
Draw skeleton, lunge progress and coaching messages on frames (in-place).
"""
from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from .landmarks import LandmarkIdx as L

# Lower-body + torso connections; enough to judge lunge posture
_LUNGE_CONNECTIONS = frozenset([
    (L.LEFT_SHOULDER, L.RIGHT_SHOULDER), (L.LEFT_SHOULDER, L.LEFT_HIP),
    (L.RIGHT_SHOULDER, L.RIGHT_HIP), (L.LEFT_HIP, L.RIGHT_HIP),
    (L.LEFT_HIP, L.LEFT_KNEE), (L.LEFT_KNEE, L.LEFT_ANKLE), (L.LEFT_ANKLE, L.LEFT_HEEL),
    (L.LEFT_HEEL, L.LEFT_FOOT_INDEX), (L.LEFT_ANKLE, L.LEFT_FOOT_INDEX),
    (L.RIGHT_HIP, L.RIGHT_KNEE), (L.RIGHT_KNEE, L.RIGHT_ANKLE), (L.RIGHT_ANKLE, L.RIGHT_HEEL),
    (L.RIGHT_HEEL, L.RIGHT_FOOT_INDEX), (L.RIGHT_ANKLE, L.RIGHT_FOOT_INDEX),
])
_LEFT_IDX = frozenset([
    L.LEFT_SHOULDER, L.LEFT_HIP, L.LEFT_KNEE, L.LEFT_ANKLE, L.LEFT_HEEL, L.LEFT_FOOT_INDEX,
])


def _pt(p: tuple[float, float]) -> tuple[int, int]:
    return (int(round(p[0])), int(round(p[1])))


def draw_skeleton(
    frame: np.ndarray,
    keypoints: list[tuple[float, float]],
    left_color: tuple[int, int, int] = (255, 160, 0),
    right_color: tuple[int, int, int] = (0, 200, 255),
    thickness: int = 2,
) -> None:
    """Draw lower-body skeleton; left leg and right leg in different colors."""
    if not keypoints or len(keypoints) < 33:
        return
    for (i, j) in _LUNGE_CONNECTIONS:
        left_i, left_j = i in _LEFT_IDX, j in _LEFT_IDX
        if left_i and left_j:
            color = left_color
        elif left_i or left_j:
            color = (200, 200, 200)
        else:
            color = right_color
        cv2.line(frame, _pt(keypoints[i]), _pt(keypoints[j]), color, thickness)
    for idx in {i for pair in _LUNGE_CONNECTIONS for i in pair}:
        cv2.circle(frame, _pt(keypoints[idx]), 4, (255, 255, 255), -1)


def draw_progress_bar(
    frame: np.ndarray,
    progress: Optional[float],
    enter_threshold: float,
    exit_threshold: float,
) -> None:
    """Vertical bar on the right edge with enter/exit threshold ticks."""
    h, w = frame.shape[:2]
    x0, x1 = w - 40, w - 16
    y0, y1 = 190, h - 30
    if y1 - y0 < 20:
        return
    cv2.rectangle(frame, (x0, y0), (x1, y1), (80, 80, 80), 2)
    if progress is not None:
        fill_top = int(round(y1 - progress * (y1 - y0)))
        color = (0, 220, 0) if progress > enter_threshold else (0, 200, 255)
        cv2.rectangle(frame, (x0 + 2, fill_top), (x1 - 2, y1 - 2), color, -1)
    for t, color in ((enter_threshold, (0, 255, 0)), (exit_threshold, (0, 0, 255))):
        ty = int(round(y1 - t * (y1 - y0)))
        cv2.line(frame, (x0 - 6, ty), (x1 + 6, ty), color, 2)


def draw_realtime_overlay(
    frame: np.ndarray,
    keypoints: Optional[list[tuple[float, float]]],
    rep_count: int,
    progress: Optional[float],
    phase: str,
    last_leg: str,
    status_message: Optional[str] = None,
    feedback: Optional[str] = None,
    enter_threshold: float = 0.7,
    exit_threshold: float = 0.2,
) -> None:
    """
    Draw realtime overlay on frame (in-place):
    - Skeleton if keypoints present
    - Reps, progress, phase, last leg, last rep status
    - Feedback cue centered
    """
    h, w = frame.shape[:2]
    if keypoints:
        draw_skeleton(frame, keypoints)
    draw_progress_bar(frame, progress, enter_threshold, exit_threshold)

    panel_h = 170
    overlay = frame.copy()
    cv2.rectangle(overlay, (0, 0), (w, panel_h), (40, 40, 40), -1)
    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)

    font = cv2.FONT_HERSHEY_SIMPLEX
    scale = 0.6
    thick = 2
    y0, dy = 28, 28
    color = (255, 255, 255)

    def put(line: str, y: int) -> None:
        cv2.putText(frame, line, (12, y), font, scale, color, thick, cv2.LINE_AA)

    put(f"Reps: {rep_count}", y0)
    put(f"Progress: {progress:.2f}" if progress is not None else "Progress: --", y0 + dy)
    put(f"Phase: {phase}", y0 + 2 * dy)
    put(f"Last leg: {last_leg}", y0 + 3 * dy)
    if status_message:
        put(status_message.replace("\n", " | "), y0 + 4 * dy)

    if feedback:
        (tw, _), _ = cv2.getTextSize(feedback, font, 0.8, 2)
        cv2.putText(
            frame, feedback, (max(10, w // 2 - tw // 2), h // 2),
            font, 0.8, (0, 200, 255), 2, cv2.LINE_AA
        )
