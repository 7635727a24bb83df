"""
Frame sources for video files and webcams.
Each frame carries a timestamp (seconds) that drives rep durations:
video time for files, wall-clock time for cameras.
"""
from __future__ import annotations

import time
from typing import Generator, NamedTuple

import cv2
import numpy as np


class Frame(NamedTuple):
    image: np.ndarray
    index: int
    timestamp: float
    fps: float


def video_frames(video_path: str) -> Generator[Frame, None, None]:
    """Yield frames from a video file; timestamp = index / fps."""
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FileNotFoundError(f"Cannot open video: {video_path}")
    try:
        fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
        idx = 0
        while True:
            ret, image = cap.read()
            if not ret:
                break
            yield Frame(image, idx, idx / fps, fps)
            idx += 1
    finally:
        cap.release()


def webcam_frames(
    camera_id: int = 0,
    target_fps: float = 20,
) -> Generator[Frame, None, None]:
    """
    Yield frames from webcam. fps is an EMA estimate from actual frame timings;
    timestamp is time.monotonic() at capture.
    """
    cap = cv2.VideoCapture(camera_id)
    if not cap.isOpened():
        raise RuntimeError(f"Cannot open camera {camera_id}. Check permissions and that no other app is using it.")
    try:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)
        cap.set(cv2.CAP_PROP_FPS, target_fps)
        idx = 0
        t_prev = time.perf_counter()
        fps_est = float(target_fps)
        while True:
            ret, image = cap.read()
            if not ret:
                break
            t_now = time.perf_counter()
            dt = t_now - t_prev
            if dt > 0:
                fps_est = 0.9 * fps_est + 0.1 * (1.0 / dt)
            t_prev = t_now
            yield Frame(image, idx, time.monotonic(), fps_est)
            idx += 1
    finally:
        cap.release()
