"""
Live webcam pipeline: capture, pose, lunge rep counting, overlay window.
Saves session metrics and generates report on exit (q).
"""
from __future__ import annotations

import logging
import os
import time
from typing import Optional

import cv2

from .config import LungeConfig
from .io_stream import webcam_frames
from .landmarks import Landmark
from .overlay import draw_realtime_overlay
from .pose import create_pose_detector, detect_landmarks, to_pixel_keypoints
from .report import run_session_report, write_session_metrics
from .reps import FrameStatus, LungeRepCounter

logger = logging.getLogger(__name__)

# Target resize width for faster inference
LIVE_RESIZE_WIDTH = 960
# How long a feedback cue stays on screen (s)
FEEDBACK_HOLD_SEC = 1.5
# No-pose warning after this many seconds
NO_POSE_WARN_SEC = 2.0


def run_live_pipeline(
    camera_id: int = 0,
    target_fps: float = 20,
    record: bool = False,
    output_dir: str = "outputs",
    config: Optional[LungeConfig] = None,
) -> None:
    """
    Run live capture loop. q=quit, r=reset, s=snapshot.
    On quit: save metrics, generate report; optionally save recording.
    """
    os.makedirs(output_dir, exist_ok=True)
    cfg = config or LungeConfig()
    pose = create_pose_detector()

    feedback: Optional[str] = None
    feedback_time = 0.0
    status_message: Optional[str] = None

    def _on_feedback(text: str) -> None:
        nonlocal feedback, feedback_time
        feedback = text
        feedback_time = time.perf_counter()

    def _on_status(text: str) -> None:
        nonlocal status_message
        status_message = text

    counter = LungeRepCounter(cfg, on_feedback=_on_feedback, on_status=_on_status)
    logger.info("live: session started (camera=%s)", camera_id)

    fps_actual = target_fps
    progress: Optional[float] = None
    last_subject: Optional[list[Landmark]] = None
    last_pose_time = time.perf_counter()
    video_writer: Optional[cv2.VideoWriter] = None
    win_name = "Lunge Coach (q=quit, r=reset, s=snapshot)"

    cv2.namedWindow(win_name, cv2.WINDOW_NORMAL)
    try:
        for frame in webcam_frames(camera_id, target_fps=target_fps):
            fps_actual = frame.fps
            frame_bgr = frame.image
            h, w = frame_bgr.shape[:2]
            small = (
                cv2.resize(frame_bgr, (LIVE_RESIZE_WIDTH, int(round(h * LIVE_RESIZE_WIDTH / w))))
                if w > LIVE_RESIZE_WIDTH
                else frame_bgr
            )
            # Landmarks are normalized, so resizing does not change them
            subjects = detect_landmarks(small, pose)
            result = counter.process_frame(subjects, timestamp=frame.timestamp)
            if subjects:
                last_subject = subjects[0]
                last_pose_time = time.perf_counter()
            if result.status is FrameStatus.OK:
                progress = result.progress

            shown_feedback = feedback if (time.perf_counter() - feedback_time) <= FEEDBACK_HOLD_SEC else None
            if time.perf_counter() - last_pose_time > NO_POSE_WARN_SEC:
                shown_feedback = "Move into frame"
                last_subject = None

            out_frame = frame_bgr.copy()
            draw_realtime_overlay(
                out_frame,
                to_pixel_keypoints(last_subject, w, h),
                counter.rep_count,
                progress,
                "Lunging" if counter.in_lunge else "Standing",
                counter.last_lunge_leg.value,
                status_message,
                shown_feedback,
                enter_threshold=cfg.lunge_enter_threshold,
                exit_threshold=cfg.lunge_exit_threshold,
            )

            if record and video_writer is None:
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                rec_path = os.path.join(output_dir, "live_recording.mp4")
                video_writer = cv2.VideoWriter(
                    rec_path,
                    fourcc,
                    max(1, int(fps_actual)),
                    (out_frame.shape[1], out_frame.shape[0]),
                )
            if video_writer is not None:
                video_writer.write(out_frame)

            cv2.imshow(win_name, out_frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("r"):
                counter.reset()
                progress = None
                status_message = None
                logger.info("live: session reset")
            if key == ord("s"):
                snap_path = os.path.join(output_dir, f"snapshot_{frame.index}.jpg")
                cv2.imwrite(snap_path, out_frame)
                _on_feedback("Saved snapshot")
    finally:
        cv2.destroyAllWindows()
        if video_writer is not None:
            video_writer.release()

    logger.info("live: session stopped (rep_count=%s)", counter.rep_count)
    metrics_path = write_session_metrics(
        counter.session_summary(),
        os.path.join(output_dir, "live_metrics.json"),
        fps_est=float(fps_actual),
    )
    run_session_report(metrics_path, output_dir, source="live")
