import pytest

from motion_engine.exercise_analysis.profiles import ExerciseProfile
from motion_engine.models import CoachingCue, CueCategory, FormMetrics, FormViolation, Severity, Urgency
from motion_engine.session import SessionAggregator


def metrics(score, *messages):
    violations = [FormViolation(m, Severity.MINOR, m, "fix it") for m in messages]
    return FormMetrics(score=score, violations=violations)


class TestSessionAggregator:
    @pytest.fixture
    def aggregator(self, profile):
        return SessionAggregator(profile, pass_threshold=70)

    def test_empty_session(self, aggregator):
        summary = aggregator.finalize()
        assert summary.total_reps == 0
        assert summary.valid_reps == 0
        assert summary.average_score == 100.0
        assert summary.peak_score == 100.0
        assert summary.duration == 0.0
        assert summary.calories == 0.0

    def test_scores_and_duration(self, aggregator):
        for t, score in [(0.0, 100), (0.5, 70), (1.0, 85)]:
            aggregator.record_frame(metrics(score), t)
        assert aggregator.average_score == pytest.approx(85.0)
        assert aggregator.elapsed == pytest.approx(1.0)
        assert aggregator.finalize().peak_score == 100

    def test_rep_snapshot_collects_cycle_violations(self, aggregator):
        aggregator.record_frame(metrics(85, "Shallow squat"), 0.0)
        aggregator.record_frame(metrics(85, "Shallow squat"), 0.1)
        aggregator.record_frame(metrics(70, "Knee drifting", "Shallow squat"), 0.2)
        record = aggregator.record_rep(1, 0.2, duration=1.8, range_of_motion=95.0)
        assert record.violations == ("Shallow squat", "Knee drifting")
        assert record.form_score == 70
        aggregator.record_frame(metrics(100), 0.3)
        second = aggregator.record_rep(2, 0.3, duration=1.5, range_of_motion=90.0)
        assert second.violations == ()

    def test_valid_reps_use_pass_threshold(self, aggregator):
        for n, score in enumerate([100, 69, 70], start=1):
            aggregator.record_frame(metrics(score), float(n))
            aggregator.record_rep(n, float(n), 1.0, 100.0)
        assert aggregator.rep_count == 3
        assert aggregator.valid_reps == 2

    def test_calories_per_rep(self, aggregator):
        for n in range(1, 4):
            aggregator.record_frame(metrics(100), float(n))
            aggregator.record_rep(n, float(n), 1.0, 100.0)
        assert aggregator.calories() == pytest.approx(1.5)

    def test_calories_per_minute(self, profile_data):
        profile_data.pop("calories_per_rep")
        profile_data["calories_per_minute"] = 4.0
        aggregator = SessionAggregator(ExerciseProfile.from_dict(profile_data))
        aggregator.record_frame(metrics(100), 0.0)
        aggregator.record_frame(metrics(100), 90.0)
        assert aggregator.calories() == pytest.approx(6.0)

    def test_pause_excludes_gap(self, aggregator):
        aggregator.record_frame(metrics(100), 0.0)
        aggregator.record_frame(metrics(100), 2.0)
        aggregator.pause()
        aggregator.record_frame(metrics(100), 60.0)
        aggregator.record_frame(metrics(100), 61.0)
        assert aggregator.elapsed == pytest.approx(3.0)

    def test_rolling_average(self, profile):
        aggregator = SessionAggregator(profile, rolling_window=2)
        for t, score in enumerate([40, 100, 80]):
            aggregator.record_frame(metrics(score), float(t))
        assert aggregator.rolling_average == pytest.approx(90.0)
        assert aggregator.running_stats()["session_average"] == pytest.approx(220 / 3)

    def test_summary_to_dict(self, aggregator):
        aggregator.record_frame(metrics(85, "Shallow squat"), 0.0)
        aggregator.record_rep(1, 0.0, 1.234, 88.88)
        aggregator.record_cue(CoachingCue("Lower to parallel", CueCategory.FORM, Urgency.HIGH, 0.0))
        data = aggregator.finalize().to_dict()
        assert data["exercise_id"] == "test-squat"
        assert data["rep_log"][0]["duration"] == 1.23
        assert data["rep_log"][0]["violations"] == ["Shallow squat"]
        assert data["cue_log"][0]["category"] == "form"

    def test_reset(self, aggregator):
        aggregator.record_frame(metrics(50), 0.0)
        aggregator.record_rep(1, 0.0, 1.0, 100.0)
        aggregator.reset()
        assert aggregator.rep_count == 0
        assert aggregator.average_score == 100.0
