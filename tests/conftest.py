from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lungesense.config import LungeConfig
from lungesense.reps import LungeRepCounter


class Recorder:
    """Collects everything the counter pushes through its callbacks."""

    def __init__(self):
        self.reps = 0
        self.progress: list[float] = []
        self.feedback: list[str] = []
        self.status: list[str] = []

    def on_rep_count(self) -> None:
        self.reps += 1

    def on_progress(self, value: float) -> None:
        self.progress.append(value)

    def on_feedback(self, text: str) -> None:
        self.feedback.append(text)

    def on_status(self, text: str) -> None:
        self.status.append(text)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_counter(recorder):
    def _make(config: LungeConfig | None = None) -> LungeRepCounter:
        return LungeRepCounter(
            config,
            on_rep_count=recorder.on_rep_count,
            on_progress=recorder.on_progress,
            on_feedback=recorder.on_feedback,
            on_status=recorder.on_status,
            clock=lambda: 0.0,
        )
    return _make
