import pytest

from motion_engine.exercise_analysis.form_scorer import FormScorer
from motion_engine.exercise_analysis.profiles import ExerciseProfile
from motion_engine.models import Severity

from conftest import leg_frame


class TestFormScorer:
    @pytest.fixture
    def scorer(self, profile):
        return FormScorer(profile, penalty=15)

    def test_clean_frame_scores_full_marks(self, scorer):
        metrics = scorer.evaluate(leg_frame(0.0, 90), "down")
        assert metrics.score == 100
        assert metrics.violations == []
        assert metrics.phase == "down"

    def test_each_failing_rule_costs_the_penalty(self, scorer):
        one = scorer.evaluate(leg_frame(0.0, 130), "down")
        assert one.score == 85
        assert [v.rule_id for v in one.violations] == ["depth"]

        two = scorer.evaluate(leg_frame(0.1, 130, knee_shift=0.1), "down")
        assert two.score == 70
        assert {v.rule_id for v in two.violations} == {"depth", "knee-over-ankle"}
        assert 100 - two.score == 15 * len(two.violations)
        assert two.has_critical()

    def test_violation_carries_rule_feedback(self, scorer):
        violation = scorer.evaluate(leg_frame(0.0, 130), "down").violations[0]
        assert violation.severity == Severity.MAJOR
        assert violation.message == "Shallow squat"
        assert violation.correction == "Lower to parallel"

    def test_rules_outside_their_phase_are_skipped(self, scorer):
        metrics = scorer.evaluate(leg_frame(0.0, 130), "up")
        assert metrics.score == 100

    def test_missing_landmarks_skip_rules(self, scorer):
        metrics = scorer.evaluate(leg_frame(0.0, 130, visibility=0.1, knee_shift=0.1), "down")
        assert metrics.score == 100
        assert metrics.violations == []

    def test_score_is_floored_at_zero(self, profile):
        scorer = FormScorer(profile, penalty=60)
        assert scorer.evaluate(leg_frame(0.0, 130, knee_shift=0.1), "down").score == 0

    def test_range_of_motion_is_passed_through(self, scorer):
        assert scorer.evaluate(leg_frame(0.0, 90), "down", range_of_motion=42.0).range_of_motion == 42.0

    def test_consistency(self, scorer):
        for i in range(5):
            metrics = scorer.evaluate(leg_frame(i * 0.1, 90), "down")
        assert metrics.consistency == 1.0
        for i in range(10):
            angle = 90 if i % 2 else 130
            metrics = scorer.evaluate(leg_frame(1 + i * 0.1, angle), "down")
        # last ten scores alternate 85/100, std 7.5
        assert metrics.consistency == pytest.approx(0.85)

    def test_fatigue_needs_ten_scores(self, scorer):
        for i in range(5):
            metrics = scorer.evaluate(leg_frame(i * 0.1, 90), "down")
        for i in range(4):
            metrics = scorer.evaluate(leg_frame(1 + i * 0.1, 130, knee_shift=0.1), "down")
        assert metrics.fatigue == 0.0
        metrics = scorer.evaluate(leg_frame(2.0, 130, knee_shift=0.1), "down")
        assert metrics.fatigue == pytest.approx(1.0)

    def test_reset_clears_history(self, scorer):
        for i in range(10):
            scorer.evaluate(leg_frame(i * 0.1, 130), "down")
        scorer.reset()
        assert scorer.fatigue() == 0.0
        assert scorer.consistency() == 1.0


class TestVelocityRule:
    @pytest.fixture
    def scorer(self, profile_data):
        profile_data["form_rules"].append({
            "id": "steady",
            "severity": "minor",
            "measurement": {"type": "velocity", "points": ["hip"], "optimal": 0, "tolerance": 0.05},
            "feedback": {"violation": "Moving too fast", "correction": "Slow down"},
        })
        return FormScorer(ExerciseProfile.from_dict(profile_data))

    def test_needs_two_samples(self, scorer):
        assert scorer.evaluate(leg_frame(0.0, 170), "up").violations == []

    def test_fast_movement_is_flagged(self, scorer):
        scorer.evaluate(leg_frame(0.0, 170), "up")
        metrics = scorer.evaluate(leg_frame(0.1, 90), "up")
        assert [v.rule_id for v in metrics.violations] == ["steady"]
        assert scorer.measure(scorer.profile.rule("steady"), leg_frame(0.1, 90)) > 2.0

    def test_still_point_passes(self, scorer):
        scorer.evaluate(leg_frame(0.0, 170), "up")
        metrics = scorer.evaluate(leg_frame(0.1, 170), "up")
        assert metrics.violations == []
