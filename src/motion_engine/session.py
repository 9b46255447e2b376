"""
session.py - Running and final statistics for one exercise session.

Pure bookkeeping: nothing here performs I/O. The finalized SessionSummary is the only
artifact handed back to the caller for storage.
"""
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Tuple

import numpy as np

from .exercise_analysis.profiles import ExerciseProfile
from .models import CoachingCue, FormMetrics


@dataclass(frozen=True)
class RepRecord:
    rep_number: int
    form_score: float
    duration: float
    violations: Tuple[str, ...]
    range_of_motion: float
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rep_number": self.rep_number,
            "form_score": self.form_score,
            "duration": round(self.duration, 2),
            "violations": list(self.violations),
            "range_of_motion": round(self.range_of_motion, 1),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class SessionSummary:
    """Read-only snapshot produced when a session stops."""
    exercise_id: str
    total_reps: int
    valid_reps: int
    average_score: float
    peak_score: float
    duration: float
    calories: float
    best_hold_seconds: float
    rep_log: Tuple[RepRecord, ...]
    cue_log: Tuple[CoachingCue, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "total_reps": self.total_reps,
            "valid_reps": self.valid_reps,
            "average_score": round(self.average_score, 1),
            "peak_score": self.peak_score,
            "duration": round(self.duration, 1),
            "calories": self.calories,
            "best_hold_seconds": round(self.best_hold_seconds, 1),
            "rep_log": [r.to_dict() for r in self.rep_log],
            "cue_log": [c.to_dict() for c in self.cue_log],
        }


class SessionAggregator:
    """Accumulates per-frame scores, per-rep snapshots and emitted cues."""

    def __init__(self, profile: ExerciseProfile, pass_threshold: float = 70.0, rolling_window: int = 30):
        self.profile = profile
        self.pass_threshold = pass_threshold
        self.rolling_window = rolling_window
        self.reset()

    def reset(self) -> None:
        self._score_sum = 0.0
        self._score_count = 0
        self._peak_score: Optional[float] = None
        self._recent_scores: Deque[float] = deque(maxlen=self.rolling_window)
        self._rep_log: List[RepRecord] = []
        self._cue_log: List[CoachingCue] = []
        self._cycle_violations: List[str] = []
        self._last_timestamp: Optional[float] = None
        self._active_seconds = 0.0
        self._best_hold = 0.0
        self._latest_score = 100.0

    # --- Recording ---
    def record_frame(self, metrics: FormMetrics, timestamp: float) -> None:
        if self._last_timestamp is not None and timestamp > self._last_timestamp:
            self._active_seconds += timestamp - self._last_timestamp
        self._last_timestamp = timestamp

        self._score_sum += metrics.score
        self._score_count += 1
        self._recent_scores.append(metrics.score)
        self._latest_score = metrics.score
        if self._peak_score is None or metrics.score > self._peak_score:
            self._peak_score = metrics.score
        for violation in metrics.violations:
            if violation.message not in self._cycle_violations:
                self._cycle_violations.append(violation.message)

    def record_rep(self, rep_number: int, timestamp: float, duration: float, range_of_motion: float) -> RepRecord:
        """Snapshot the cycle that just fired and start collecting the next one."""
        record = RepRecord(
            rep_number=rep_number,
            form_score=self._latest_score,
            duration=duration,
            violations=tuple(self._cycle_violations),
            range_of_motion=range_of_motion,
            timestamp=timestamp,
        )
        self._rep_log.append(record)
        self._cycle_violations = []
        return record

    def record_cue(self, cue: CoachingCue) -> None:
        self._cue_log.append(cue)

    def record_hold(self, hold_seconds: float) -> None:
        self._best_hold = max(self._best_hold, hold_seconds)

    def pause(self) -> None:
        """Exclude the gap until the next frame from the active duration."""
        self._last_timestamp = None

    # --- Stats ---
    @property
    def rep_count(self) -> int:
        return len(self._rep_log)

    @property
    def valid_reps(self) -> int:
        return sum(1 for r in self._rep_log if r.form_score >= self.pass_threshold)

    @property
    def average_score(self) -> float:
        if self._score_count == 0:
            return 100.0
        return self._score_sum / self._score_count

    @property
    def rolling_average(self) -> float:
        if not self._recent_scores:
            return 100.0
        return float(np.mean(self._recent_scores))

    @property
    def elapsed(self) -> float:
        return self._active_seconds

    def calories(self) -> float:
        if self.profile.calories_per_rep is not None:
            return round(self.rep_count * self.profile.calories_per_rep, 1)
        if self.profile.calories_per_minute is not None:
            return round(self._active_seconds / 60 * self.profile.calories_per_minute, 1)
        return 0.0

    def running_stats(self) -> Dict[str, Any]:
        return {
            "rep_count": self.rep_count,
            "average_score": self.rolling_average,
            "session_average": self.average_score,
            "elapsed": self.elapsed,
            "best_hold_seconds": self._best_hold,
        }

    def finalize(self) -> SessionSummary:
        return SessionSummary(
            exercise_id=self.profile.exercise_id,
            total_reps=self.rep_count,
            valid_reps=self.valid_reps,
            average_score=self.average_score,
            peak_score=self._peak_score if self._peak_score is not None else 100.0,
            duration=self._active_seconds,
            calories=self.calories(),
            best_hold_seconds=self._best_hold,
            rep_log=tuple(self._rep_log),
            cue_log=tuple(self._cue_log),
        )
