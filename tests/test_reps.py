"""Tests for the lunge state machine and the per-frame counter pipeline."""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lungesense import reps as reps_module
from lungesense.config import LungeConfig
from lungesense.form import MSG_KNEE_OVER_ANKLE
from lungesense.landmarks import Landmark, LandmarkIdx, Leg
from lungesense.reps import (
    MSG_ALTERNATE,
    MSG_NOT_VISIBLE,
    MSG_OUT_OF_FRAME,
    ExerciseState,
    FrameStatus,
    LungeRepCounter,
    LungeStateMachine,
    RepSummary,
)

from synthetic import left_lunge_pose, make_pose, right_lunge_pose, snapshot, standing_pose

DT = 0.1


def _feed(counter, poses, t0=0.0):
    """Push one subject per frame with timestamps t0, t0 + DT, ..."""
    return [counter.process_frame([pose], timestamp=t0 + i * DT) for i, pose in enumerate(poses)]


def _one_rep(counter, pose_fn, t0=0.0):
    """5 lunge frames (enter on the 4th) then 5 standing frames (exit on the last)."""
    return _feed(counter, [pose_fn()] * 5 + [standing_pose()] * 5, t0=t0)


# ============================================================================
# State machine
# ============================================================================

class TestStateMachine:

    def setup_method(self):
        self.cfg = LungeConfig()
        self.machine = LungeStateMachine(self.cfg)
        self.state = ExerciseState.initial(self.cfg)
        self.left = snapshot(left_lunge_pose())
        self.stand = snapshot(standing_pose())

    def test_enter_above_high(self):
        t = self.machine.step(self.state, 0.71, self.left, now=1.0)
        assert t.entered and t.leg is Leg.LEFT
        assert self.state.in_lunge
        assert self.state.lunge_start_time == 1.0
        assert self.state.last_lunge_leg is Leg.LEFT

    def test_no_enter_at_threshold(self):
        t = self.machine.step(self.state, 0.7, self.left, now=1.0)
        assert not t.entered
        assert not self.state.in_lunge

    def test_hysteresis_dead_zone(self):
        self.machine.step(self.state, 0.9, self.left, now=0.0)
        for p in (0.69, 0.5, 0.3, 0.2, 0.65, 0.21):
            t = self.machine.step(self.state, p, self.stand, now=0.5)
            assert not t.exited
            assert self.state.in_lunge
        assert self.state.rep_count == 0

    def test_exit_below_low_counts_rep(self):
        self.machine.step(self.state, 0.9, self.left, now=2.0)
        t = self.machine.step(self.state, 0.19, self.stand, now=3.5)
        assert t.exited
        assert not self.state.in_lunge
        assert self.state.rep_count == 1
        assert t.rep == RepSummary(rep=1, leg=Leg.LEFT, quality=100, duration_sec=1.5, start_time=2.0, end_time=3.5)

    def test_low_progress_while_standing_does_nothing(self):
        t = self.machine.step(self.state, 0.0, self.stand, now=0.0)
        assert not t.entered and not t.exited
        assert self.state.rep_count == 0

    def test_same_leg_twice_flags_alternation(self):
        self.machine.step(self.state, 0.9, self.left, now=0.0)
        self.machine.step(self.state, 0.1, self.stand, now=1.0)
        t = self.machine.step(self.state, 0.9, self.left, now=2.0)
        assert t.entered and t.alternation_violation
        assert self.state.last_lunge_leg is Leg.LEFT
        assert self.state.alternation_warnings == 1

    def test_alternating_legs_not_flagged(self):
        self.machine.step(self.state, 0.9, self.left, now=0.0)
        self.machine.step(self.state, 0.1, self.stand, now=1.0)
        t = self.machine.step(self.state, 0.9, snapshot(right_lunge_pose()), now=2.0)
        assert t.entered and not t.alternation_violation
        assert self.state.last_lunge_leg is Leg.RIGHT

    def test_quality_uses_exit_snapshot(self):
        self.machine.step(self.state, 0.9, self.left, now=0.0)
        raised = snapshot(make_pose(left_knee=(0.45, 0.40), right_knee=(0.55, 0.45)))
        t = self.machine.step(self.state, 0.0, raised, now=1.0)
        assert t.rep.quality == 80

    def test_injected_thresholds(self):
        machine = LungeStateMachine(LungeConfig(lunge_enter_threshold=0.5, lunge_exit_threshold=0.4))
        assert machine.step(self.state, 0.55, self.left, now=0.0).entered
        assert machine.step(self.state, 0.39, self.stand, now=1.0).exited


# ============================================================================
# Counter pipeline: scenarios
# ============================================================================

class TestScenarios:

    def test_scenario_a_knees_level(self, make_counter, recorder):
        counter = make_counter()
        results = _feed(counter, [make_pose(left_knee=(0.45, 0.5), right_knee=(0.55, 0.5))] * 6)
        assert all(r.status is FrameStatus.OK for r in results)
        assert all(r.raw_progress == 0.0 for r in results)
        assert recorder.progress == [0.0] * 6
        assert not counter.in_lunge
        assert recorder.reps == 0

    def test_scenario_b_single_left_rep(self, make_counter, recorder):
        counter = make_counter()
        results = _one_rep(counter, left_lunge_pose)
        assert [r.in_lunge for r in results] == [False, False, False, True, True, True, True, True, True, False]
        assert recorder.reps == 1
        assert counter.rep_count == 1
        assert len(recorder.status) == 1
        assert "left" in recorder.status[0]
        assert "Quality: 100%" in recorder.status[0]
        # entered at t=0.3, left at t=0.9
        assert "Time: 0.6s" in recorder.status[0]
        assert recorder.feedback == []
        assert results[-1].rep.leg is Leg.LEFT

    def test_progress_reported_every_valid_frame(self, make_counter, recorder):
        counter = make_counter()
        _one_rep(counter, left_lunge_pose)
        assert recorder.progress == pytest.approx([0.2, 0.4, 0.6, 0.8, 1.0, 0.8, 0.6, 0.4, 0.2, 0.0])
        assert all(0.0 <= p <= 1.0 for p in recorder.progress)

    def test_scenario_c_repeated_leg(self, make_counter, recorder):
        counter = make_counter()
        _one_rep(counter, left_lunge_pose)
        second = _one_rep(counter, left_lunge_pose, t0=1.0)
        assert recorder.feedback == [MSG_ALTERNATE]
        assert second[3].feedback == MSG_ALTERNATE
        assert recorder.reps == 2
        assert counter.last_lunge_leg is Leg.LEFT
        assert "left" in recorder.status[1]

    def test_alternating_legs(self, make_counter, recorder):
        counter = make_counter()
        _one_rep(counter, left_lunge_pose)
        _one_rep(counter, right_lunge_pose, t0=1.0)
        assert recorder.feedback == []
        assert recorder.reps == 2
        assert "right" in recorder.status[1]
        assert [r.leg for r in counter.completed_reps] == [Leg.LEFT, Leg.RIGHT]

    def test_scenario_d_low_visibility(self, make_counter, recorder):
        counter = make_counter()
        pose = standing_pose()
        pose[LandmarkIdx.RIGHT_KNEE] = Landmark(0.55, 0.7, 0.0, 0.3, 0.9)
        result = counter.process_frame([pose])
        assert result.status is FrameStatus.INSUFFICIENT_VISIBILITY
        assert recorder.feedback == [MSG_NOT_VISIBLE]
        assert "full body not visible" in recorder.feedback[0].lower()
        assert recorder.progress == []
        assert counter.rep_count == 0
        assert counter.state.progress_history.index == 0

    def test_out_of_frame(self, make_counter, recorder):
        counter = make_counter()
        result = counter.process_frame([make_pose(left_ankle=(0.45, 1.2))])
        assert result.status is FrameStatus.OUT_OF_FRAME
        assert recorder.feedback == [MSG_OUT_OF_FRAME]
        assert recorder.progress == []

    @pytest.mark.parametrize("detections", [None, []])
    def test_no_subject_is_silent(self, make_counter, recorder, detections):
        counter = make_counter()
        result = counter.process_frame(detections)
        assert result.status is FrameStatus.NO_SUBJECT
        assert recorder.progress == [] and recorder.feedback == [] and recorder.reps == 0

    def test_only_first_subject_used(self, make_counter, recorder):
        counter = make_counter()
        for i in range(5):
            counter.process_frame([left_lunge_pose(), standing_pose()], timestamp=i * DT)
        assert counter.in_lunge

    def test_rejected_frames_do_not_advance_buffer(self, make_counter, recorder):
        counter = make_counter()
        hidden = standing_pose(visibility=0.1)
        poses = [left_lunge_pose(), hidden, left_lunge_pose(), hidden, left_lunge_pose()]
        _feed(counter, poses)
        assert recorder.progress == pytest.approx([0.2, 0.4, 0.6])
        assert counter.state.progress_history.index == 3

    def test_rep_count_monotonic(self, make_counter, recorder):
        counter = make_counter()
        seq = ([left_lunge_pose()] * 5 + [standing_pose()] * 5 + [right_lunge_pose()] * 5
               + [standing_pose(visibility=0.2)] * 3 + [standing_pose()] * 5)
        counts = [r.rep_count for r in _feed(counter, seq)]
        assert counts == sorted(counts)
        assert all(b - a in (0, 1) for a, b in zip(counts, counts[1:]))
        assert counts[-1] == 2 == recorder.reps

    def test_live_cue_while_lunging(self, make_counter, recorder):
        counter = make_counter()
        # left lunge with the dropped (front-judged) right knee drifting past its ankle
        drifting = left_lunge_pose(overrides={LandmarkIdx.RIGHT_KNEE: Landmark(0.80, 0.85, 0.0, 0.9, 0.9)})
        results = _feed(counter, [drifting] * 5)
        assert [r.feedback for r in results] == [None, None, None, MSG_KNEE_OVER_ANKLE, MSG_KNEE_OVER_ANKLE]

    def test_alternation_cue_replaces_live_cue_on_entry(self, make_counter, recorder):
        counter = make_counter()
        _one_rep(counter, left_lunge_pose)
        drifting = left_lunge_pose(overrides={LandmarkIdx.RIGHT_KNEE: Landmark(0.80, 0.85, 0.0, 0.9, 0.9)})
        results = _feed(counter, [drifting] * 5, t0=1.0)
        assert results[3].feedback == MSG_ALTERNATE
        assert results[4].feedback == MSG_KNEE_OVER_ANKLE

    def test_no_live_cue_while_standing(self, make_counter, recorder):
        counter = make_counter()
        pose = make_pose(left_knee=(0.80, 0.70))
        _feed(counter, [pose] * 3)
        assert recorder.feedback == []

    def test_clock_used_without_timestamp(self, recorder):
        ticks = iter([10.0, 10.1, 10.2, 10.3, 10.4, 10.5, 10.6, 10.7, 10.8, 12.0])
        counter = LungeRepCounter(on_status=recorder.on_status, clock=lambda: next(ticks))
        for pose in [left_lunge_pose()] * 5 + [standing_pose()] * 5:
            counter.process_frame([pose])
        assert "Time: 1.7s" in recorder.status[0]


# ============================================================================
# Frame-boundary error handling
# ============================================================================

class TestFrameErrors:

    def _snapshot_state(self, counter):
        s = counter.state
        return (s.in_lunge, s.last_lunge_leg, s.lunge_start_time, s.rep_count,
                s.progress_history.index, tuple(s.progress_history.values))

    def test_malformed_subject(self, make_counter, recorder):
        counter = make_counter()
        _feed(counter, [left_lunge_pose()] * 2)
        before = self._snapshot_state(counter)
        result = counter.process_frame([standing_pose()[:10]])
        assert result.status is FrameStatus.ERROR
        assert "IndexError" in result.error
        assert self._snapshot_state(counter) == before
        assert recorder.feedback == []

    @pytest.mark.parametrize("frame_landmarks", [
        pytest.param(lambda: (p for p in [left_lunge_pose()]), id="generator"),
        pytest.param(lambda: 5, id="int"),
    ])
    def test_non_sequence_landmarks(self, make_counter, recorder, frame_landmarks):
        counter = make_counter()
        _feed(counter, [left_lunge_pose()] * 2)
        before = self._snapshot_state(counter)
        result = counter.process_frame(frame_landmarks())
        assert result.status is FrameStatus.ERROR
        assert "TypeError" in result.error
        assert counter.frames_rejected == 1
        assert self._snapshot_state(counter) == before
        assert recorder.feedback == []

    def test_non_numeric_coordinate(self, make_counter):
        counter = make_counter()
        pose = standing_pose()
        pose[LandmarkIdx.LEFT_HIP] = {"x": "abc", "y": 0.5, "visibility": 0.9}
        assert counter.process_frame([pose]).status is FrameStatus.ERROR

    def test_failure_mid_pipeline_leaves_state_untouched(self, make_counter, recorder, monkeypatch):
        counter = make_counter()
        _feed(counter, [left_lunge_pose()] * 5)
        assert counter.in_lunge
        before = self._snapshot_state(counter)

        def _boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(reps_module, "assess_form_quality", _boom)
        results = _feed(counter, [standing_pose()] * 5, t0=1.0)
        assert results[-1].status is FrameStatus.ERROR
        assert counter.rep_count == 0
        assert recorder.reps == 0
        # frames before the failing one were committed normally
        assert counter.state.progress_history.index == (before[4] + 4) % 5
        assert counter.in_lunge

        monkeypatch.undo()
        counter.process_frame([standing_pose()], timestamp=2.0)
        assert counter.rep_count == 1

    def test_callback_error_does_not_break_counter(self, caplog):
        def _bad(value):
            raise RuntimeError("ui gone")

        counter = LungeRepCounter(on_progress=_bad)
        result = counter.process_frame([left_lunge_pose()], timestamp=0.0)
        assert result.ok
        assert counter.state.progress_history.index == 1
        assert "callback" in caplog.text


# ============================================================================
# Session bookkeeping
# ============================================================================

class TestSession:

    def test_summary_and_reset(self, make_counter):
        counter = make_counter()
        _one_rep(counter, left_lunge_pose)
        _one_rep(counter, left_lunge_pose, t0=1.0)
        counter.process_frame([standing_pose(visibility=0.1)])
        summary = counter.session_summary()
        assert summary["rep_count"] == 2
        assert summary["alternation_warnings"] == 1
        assert summary["frames_seen"] == 21
        assert summary["frames_rejected"] == 1
        assert [r["leg"] for r in summary["reps"]] == ["left", "left"]

        counter.reset()
        assert counter.rep_count == 0
        assert counter.completed_reps == []
        assert counter.last_lunge_leg is Leg.NONE

    def test_state_property_is_a_copy(self, make_counter):
        counter = make_counter()
        counter.state.rep_count = 99
        counter.state.progress_history.push(1.0)
        assert counter.rep_count == 0
        assert counter.state.progress_history.index == 0

    def test_error_result_to_dict(self, make_counter):
        counter = make_counter()
        out = counter.process_frame([standing_pose()[:10]]).to_dict()
        assert out["frame_status"] == "error"
        assert "IndexError" in out["error"]
        assert out["raw_progress"] is None

    def test_ok_result_to_dict_has_raw_progress(self, make_counter):
        counter = make_counter()
        out = _feed(counter, [left_lunge_pose()])[0].to_dict()
        assert out["error"] is None
        assert out["raw_progress"] == pytest.approx(1.0)
        assert out["progress"] == pytest.approx(0.2)

    def test_frame_result_to_dict(self, make_counter):
        counter = make_counter()
        out = _one_rep(counter, right_lunge_pose)[-1].to_dict()
        assert out["frame_status"] == "ok"
        assert out["rep_count"] == 1
        assert out["rep"]["leg"] == "right"
        assert out["status_message"].startswith("Good right lunge!")
