"""
Rep detection for alternating lunges: frame pipeline, hysteresis state machine
and rep bookkeeping.

Each frame: validate -> raw progress -> smoothing -> state machine
(+ live form cue while lunging) -> quality score on rep completion.
Outputs are pushed through optional callbacks and also returned as a
FrameResult so callers that poll (web socket, overlay) see the same data.
"""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Sequence

from .config import LungeConfig
from .form import assess_form_quality, check_live_form, determine_lunge_leg
from .landmarks import LandmarkSnapshot, Leg
from .progress import ProgressSmoother, calculate_progress
from .validation import FrameCheck, validate_snapshot

logger = logging.getLogger(__name__)

MSG_NOT_VISIBLE = "Full body not visible"
MSG_OUT_OF_FRAME = "Stay within camera frame"
MSG_ALTERNATE = "Remember to alternate legs!"


@dataclass(frozen=True)
class RepSummary:
    rep: int
    leg: Leg
    quality: int
    duration_sec: float
    start_time: float
    end_time: float

    def status_text(self) -> str:
        return (
            f"Good {self.leg.value} lunge!\n"
            f"Quality: {self.quality}%\n"
            f"Time: {self.duration_sec:.1f}s"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rep": self.rep,
            "leg": self.leg.value,
            "quality": self.quality,
            "duration_sec": self.duration_sec,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class ExerciseState:
    """Session state; only LungeStateMachine and LungeRepCounter mutate it."""

    progress_history: ProgressSmoother
    in_lunge: bool = False
    last_lunge_leg: Leg = Leg.NONE
    lunge_start_time: float = 0.0
    rep_count: int = 0
    alternation_warnings: int = 0

    @classmethod
    def initial(cls, config: LungeConfig) -> "ExerciseState":
        return cls(progress_history=ProgressSmoother(config.smoothing_window))

    def copy(self) -> "ExerciseState":
        return replace(self, progress_history=self.progress_history.copy())

    def enter_lunge(self, leg: Leg, now: float) -> bool:
        """Start a lunge. Returns False when the same leg is repeated."""
        self.in_lunge = True
        self.lunge_start_time = now
        if self.last_lunge_leg != Leg.NONE and leg == self.last_lunge_leg:
            self.alternation_warnings += 1
            return False
        self.last_lunge_leg = leg
        return True

    def complete_rep(self) -> int:
        self.in_lunge = False
        self.rep_count += 1
        return self.rep_count


@dataclass(frozen=True)
class Transition:
    entered: bool = False
    exited: bool = False
    leg: Leg = Leg.NONE
    alternation_violation: bool = False
    rep: Optional[RepSummary] = None


class LungeStateMachine:
    """
    Standing <-> Lunging with hysteresis on smoothed progress:
    enter when p > enter threshold, leave when p < exit threshold,
    hold state in between. Duration is recorded, never used as a trigger.
    """

    def __init__(self, config: Optional[LungeConfig] = None):
        self.config = config or LungeConfig()

    def step(
        self,
        state: ExerciseState,
        progress: float,
        snapshot: LandmarkSnapshot,
        now: float,
    ) -> Transition:
        cfg = self.config
        if not state.in_lunge and progress > cfg.lunge_enter_threshold:
            leg = determine_lunge_leg(snapshot)
            alternated = state.enter_lunge(leg, now)
            logger.debug("lunge: enter leg=%s p=%.3f alternated=%s", leg.value, progress, alternated)
            return Transition(entered=True, leg=leg, alternation_violation=not alternated)

        if state.in_lunge and progress < cfg.lunge_exit_threshold:
            duration = now - state.lunge_start_time
            quality = assess_form_quality(snapshot, cfg)
            start = state.lunge_start_time
            rep_no = state.complete_rep()
            rep = RepSummary(
                rep=rep_no,
                leg=state.last_lunge_leg,
                quality=quality,
                duration_sec=duration,
                start_time=start,
                end_time=now,
            )
            logger.debug("lunge: exit p=%.3f", progress)
            return Transition(exited=True, leg=state.last_lunge_leg, rep=rep)

        return Transition()


class FrameStatus(enum.Enum):
    OK = "ok"
    NO_SUBJECT = "no_subject"
    INSUFFICIENT_VISIBILITY = "insufficient_visibility"
    OUT_OF_FRAME = "out_of_frame"
    ERROR = "error"


_REJECTED = {
    FrameCheck.INSUFFICIENT_VISIBILITY: (FrameStatus.INSUFFICIENT_VISIBILITY, MSG_NOT_VISIBLE),
    FrameCheck.OUT_OF_FRAME: (FrameStatus.OUT_OF_FRAME, MSG_OUT_OF_FRAME),
}


@dataclass(frozen=True)
class FrameResult:
    status: FrameStatus
    progress: Optional[float] = None
    raw_progress: Optional[float] = None
    feedback: Optional[str] = None
    status_message: Optional[str] = None
    rep: Optional[RepSummary] = None
    in_lunge: bool = False
    rep_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FrameStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "frame_status": self.status.value,
            "progress": self.progress,
            "raw_progress": self.raw_progress,
            "feedback": self.feedback,
            "status_message": self.status_message,
            "rep": self.rep.to_dict() if self.rep else None,
            "in_lunge": self.in_lunge,
            "rep_count": self.rep_count,
            "error": self.error,
        }


ProgressCallback = Callable[[float], None]
MessageCallback = Callable[[str], None]
RepCallback = Callable[[], None]


class LungeRepCounter:
    """
    Owns the session ExerciseState and runs the per-frame pipeline.

    A frame is processed on a copy of the state; the copy replaces the live
    state only after the whole pipeline succeeds, so a bad frame leaves the
    session exactly as it was. Callbacks run after the commit.
    """

    def __init__(
        self,
        config: Optional[LungeConfig] = None,
        on_rep_count: Optional[RepCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_feedback: Optional[MessageCallback] = None,
        on_status: Optional[MessageCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or LungeConfig()
        self.on_rep_count = on_rep_count
        self.on_progress = on_progress
        self.on_feedback = on_feedback
        self.on_status = on_status
        self.clock = clock
        self.machine = LungeStateMachine(self.config)
        self._state = ExerciseState.initial(self.config)
        self.completed_reps: list[RepSummary] = []
        self.frames_seen = 0
        self.frames_rejected = 0

    @property
    def state(self) -> ExerciseState:
        return self._state.copy()

    @property
    def rep_count(self) -> int:
        return self._state.rep_count

    @property
    def in_lunge(self) -> bool:
        return self._state.in_lunge

    @property
    def last_lunge_leg(self) -> Leg:
        return self._state.last_lunge_leg

    def reset(self) -> None:
        self._state = ExerciseState.initial(self.config)
        self.completed_reps.clear()
        self.frames_seen = 0
        self.frames_rejected = 0

    def process_frame(
        self,
        pose_landmarks: Optional[Sequence[Sequence[Any]]],
        timestamp: Optional[float] = None,
    ) -> FrameResult:
        """
        Process one frame of detections (zero or more subjects; only the first
        is used). Never raises: failures come back as FrameResult.status.
        """
        self.frames_seen += 1
        try:
            if pose_landmarks is None or len(pose_landmarks) == 0:
                return self._result(FrameStatus.NO_SUBJECT)
            result, next_state = self._run_pipeline(pose_landmarks[0], timestamp)
        except Exception as e:
            logger.exception("lunge: frame %s skipped", self.frames_seen)
            self.frames_rejected += 1
            return self._result(FrameStatus.ERROR, error=f"{type(e).__name__}: {e}")

        if next_state is None:
            self.frames_rejected += 1
        else:
            self._state = next_state
            if result.rep is not None:
                self.completed_reps.append(result.rep)
                logger.info(
                    "lunge: rep %s leg=%s quality=%s duration=%.2fs",
                    result.rep.rep, result.rep.leg.value, result.rep.quality, result.rep.duration_sec,
                )
            result = replace(result, in_lunge=self._state.in_lunge, rep_count=self._state.rep_count)
        self._dispatch(result)
        return result

    def _run_pipeline(
        self,
        subject: Sequence[Any],
        timestamp: Optional[float],
    ) -> tuple[FrameResult, Optional[ExerciseState]]:
        cfg = self.config
        snapshot = LandmarkSnapshot.from_landmarks(subject)
        check = validate_snapshot(snapshot, cfg)
        if check is not FrameCheck.VALID:
            status, message = _REJECTED[check]
            logger.debug("lunge: frame rejected (%s)", check.value)
            return self._result(status, feedback=message), None

        now = self.clock() if timestamp is None else float(timestamp)
        state = self._state.copy()
        raw = calculate_progress(snapshot, cfg)
        smoothed = state.progress_history.push(raw)

        transition = self.machine.step(state, smoothed, snapshot, now)
        feedback = MSG_ALTERNATE if transition.alternation_violation else None
        if state.in_lunge and feedback is None:
            feedback = check_live_form(snapshot, cfg)

        rep = transition.rep
        result = FrameResult(
            status=FrameStatus.OK,
            progress=smoothed,
            raw_progress=raw,
            feedback=feedback,
            status_message=rep.status_text() if rep else None,
            rep=rep,
        )
        return result, state

    def _result(self, status: FrameStatus, **kwargs: Any) -> FrameResult:
        return FrameResult(
            status=status,
            in_lunge=self._state.in_lunge,
            rep_count=self._state.rep_count,
            **kwargs,
        )

    def _dispatch(self, result: FrameResult) -> None:
        if result.progress is not None:
            self._call(self.on_progress, result.progress)
        if result.feedback is not None:
            self._call(self.on_feedback, result.feedback)
        if result.rep is not None:
            self._call(self.on_rep_count)
            self._call(self.on_status, result.status_message)

    def _call(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("lunge: callback %s failed", getattr(callback, "__name__", callback))

    def session_summary(self) -> dict[str, Any]:
        """JSON-friendly summary of this session for the report."""
        return {
            "reps": [r.to_dict() for r in self.completed_reps],
            "rep_count": int(self._state.rep_count),
            "alternation_warnings": int(self._state.alternation_warnings),
            "frames_seen": self.frames_seen,
            "frames_rejected": self.frames_rejected,
        }
