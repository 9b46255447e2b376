"""
form_scorer.py - Rule-based form scoring.

Every applicable rule is measured against the frame; each failing rule costs a fixed
penalty, so (100 - score) always equals penalty x number of violations (floored at 0).
Severity is carried on the violation for cue urgency but never weights the score.
"""
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from ..models import Frame, FormMetrics, FormViolation
from .pose_utils import (
    calculate_angle,
    point_line_deviation,
    rate_of_change,
    resolve_point,
    resolve_points,
    symmetry_deviation,
)
from .profiles import ExerciseProfile, FormRule, MeasurementKind

logger = logging.getLogger("FormScorer")

CONSISTENCY_WINDOW = 10
FATIGUE_SAMPLE = 5


class FormScorer:
    def __init__(
        self,
        profile: ExerciseProfile,
        penalty: float = 15.0,
        min_visibility: float = 0.5,
        velocity_window: int = 5,
        history_size: int = 60,
    ):
        """
        Args:
            profile: Exercise profile whose form rules are evaluated
            penalty: Points deducted per failing rule
            min_visibility: Landmarks below this visibility make a rule skip
            velocity_window: Samples averaged for velocity measurements
            history_size: Scores kept for the fatigue estimate
        """
        self.profile = profile
        self.penalty = penalty
        self.min_visibility = min_visibility
        self.velocity_window = velocity_window
        self.history_size = history_size
        points = profile.rep_counting.points
        self._tracked_point = points[len(points) // 2] if points else "hip"
        self.reset()

    def reset(self) -> None:
        self._rule_samples: Dict[str, Deque[Tuple[float, List[float]]]] = {
            rule.rule_id: deque(maxlen=self.velocity_window)
            for rule in self.profile.form_rules
            if rule.measurement.kind == MeasurementKind.VELOCITY
        }
        self._movement_samples: Deque[Tuple[float, List[float]]] = deque(maxlen=self.velocity_window)
        self._score_history: Deque[float] = deque(maxlen=self.history_size)

    # --- Measurements ---
    def measure(self, rule: FormRule, frame: Frame) -> Optional[float]:
        """
        Compute the rule's raw value for this frame.

        Returns:
            The measured value, or None when landmarks are missing or the value is undefined
        """
        m = rule.measurement
        if m.kind == MeasurementKind.VELOCITY:
            if resolve_point(frame, m.points[0], self.min_visibility) is None:
                return None
            samples = self._rule_samples.get(rule.rule_id)
            value = rate_of_change(list(samples)) if samples else np.nan
            return None if np.isnan(value) else value

        points = resolve_points(frame, m.points, self.min_visibility)
        if points is None:
            return None
        if m.kind == MeasurementKind.ANGLE:
            value = calculate_angle(points[0].coords(), points[1].coords(), points[2].coords())
        elif m.kind == MeasurementKind.ALIGNMENT:
            if len(points) == 3:
                value = point_line_deviation(points[1].coords(), points[0].coords(), points[2].coords())
            else:
                value = abs(points[0].axis_value(m.axis) - points[1].axis_value(m.axis))
        elif m.kind == MeasurementKind.SYMMETRY:
            value = symmetry_deviation(points[0], points[1], m.axis)
        else:
            return None
        return None if np.isnan(value) else float(value)

    def _sample_motion(self, frame: Frame) -> None:
        for rule in self.profile.form_rules:
            samples = self._rule_samples.get(rule.rule_id)
            if samples is None:
                continue
            point = resolve_point(frame, rule.measurement.points[0], self.min_visibility)
            if point is not None:
                samples.append((frame.timestamp, point.coords()))
        point = resolve_point(frame, self._tracked_point, self.min_visibility)
        if point is not None:
            self._movement_samples.append((frame.timestamp, point.coords()))

    # --- Scoring ---
    def evaluate(self, frame: Frame, raw_phase: Optional[str], range_of_motion: float = 0.0) -> FormMetrics:
        """
        Score one frame against the rules that apply to its raw phase.

        Args:
            frame: Current frame
            raw_phase: Undebounced phase estimate for this frame
            range_of_motion: Current rep counter ROM, passed through to the metrics

        Returns:
            FormMetrics with score, violations and trend estimates
        """
        self._sample_motion(frame)
        violations = []
        for rule in self.profile.form_rules:
            if not rule.applies_to(raw_phase):
                continue
            value = self.measure(rule, frame)
            if value is None:
                continue
            if not rule.measurement.is_within(value):
                violations.append(FormViolation(rule.rule_id, rule.severity, rule.violation, rule.correction))

        score = max(0.0, 100.0 - self.penalty * len(violations))
        self._score_history.append(score)

        velocity = rate_of_change(list(self._movement_samples))
        return FormMetrics(
            score=score,
            violations=violations,
            velocity=0.0 if np.isnan(velocity) else velocity,
            consistency=self.consistency(),
            range_of_motion=range_of_motion,
            fatigue=self.fatigue(),
            phase=raw_phase,
        )

    def consistency(self) -> float:
        """1 - std(last scores) / 50, clamped; 1.0 until three scores exist."""
        recent = list(self._score_history)[-CONSISTENCY_WINDOW:]
        if len(recent) < 3:
            return 1.0
        return float(1 - min(np.std(recent) / 50, 1))

    def fatigue(self) -> float:
        """Score drop of the newest samples against the oldest retained ones, scaled to [0, 1]."""
        history = list(self._score_history)
        if len(history) < 2 * FATIGUE_SAMPLE:
            return 0.0
        earlier = np.mean(history[:FATIGUE_SAMPLE])
        recent = np.mean(history[-FATIGUE_SAMPLE:])
        return float(np.clip((earlier - recent) / 30, 0, 1))
