#!/usr/bin/env python3
"""
Alternating-lunge coach: offline (video) or live (webcam).
Usage:
  Offline: python run.py --video path/to/video.mp4
  Live:    python run.py --live [--camera 0] [--record]
Thresholds can be overridden with LUNGE_* variables (see lungesense/config.py).
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

# Run from project root so lungesense is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

from lungesense.config import LungeConfig
from lungesense.io_stream import video_frames
from lungesense.live import run_live_pipeline
from lungesense.pose import create_pose_detector, detect_landmarks
from lungesense.report import run_session_report, write_session_metrics
from lungesense.reps import LungeRepCounter

logger = logging.getLogger("lungesense.run")


def run_offline(
    video_path: str,
    output_dir: str = "outputs",
    config: Optional[LungeConfig] = None,
) -> dict[str, Any]:
    """Process video file: pose -> lunge counter -> metrics + report."""
    os.makedirs(output_dir, exist_ok=True)
    pose = create_pose_detector()
    counter = LungeRepCounter(config or LungeConfig())
    fps = 30.0
    for frame in video_frames(video_path):
        fps = frame.fps
        counter.process_frame(detect_landmarks(frame.image, pose), timestamp=frame.timestamp)
    summary = counter.session_summary()
    metrics_path = write_session_metrics(
        summary,
        os.path.join(output_dir, "offline_metrics.json"),
        fps=fps,
        source_video=os.path.basename(video_path),
    )
    run_session_report(metrics_path, output_dir, source="offline")
    logger.info("offline: %s reps from %s frames", summary["rep_count"], summary["frames_seen"])
    return summary


def main() -> None:
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    ap = argparse.ArgumentParser(description="Lunge coach: offline video or live webcam")
    ap.add_argument("--video", type=str, default=None, help="Path to video file (offline mode)")
    ap.add_argument("--live", action="store_true", help="Use live webcam")
    ap.add_argument("--camera", type=int, default=0, help="Camera device id (default 0)")
    ap.add_argument("--record", action="store_true", help="Save live_recording.mp4 in live mode")
    ap.add_argument("--output-dir", type=str, default="outputs", help="Output directory")
    ap.add_argument("--log-level", type=str, default="INFO", help="Logging level (default INFO)")
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s | %(name)s | %(message)s")

    if args.live and args.video:
        print("Error: provide exactly one of --video or --live", file=sys.stderr)
        sys.exit(1)
    if not args.live and not args.video:
        print("Error: provide --video PATH or --live", file=sys.stderr)
        sys.exit(1)
    try:
        config = LungeConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.live:
        run_live_pipeline(
            camera_id=args.camera,
            target_fps=20,
            record=args.record,
            output_dir=args.output_dir,
            config=config,
        )
    else:
        if not os.path.isfile(args.video):
            print(f"Error: video file not found: {args.video}", file=sys.stderr)
            sys.exit(1)
        summary = run_offline(args.video, output_dir=args.output_dir, config=config)
        print(f"Offline done. Reps: {summary['rep_count']}. Report: {args.output_dir}/report.html")


if __name__ == "__main__":
    main()
