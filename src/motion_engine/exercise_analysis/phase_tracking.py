import logging
import numpy as np
from typing import Optional, Sequence, Tuple

from ..models import Frame
from .pose_utils import calculate_angle, resolve_points
from .profiles import PhaseDefinition

logger = logging.getLogger("PhaseTracking")


class PhaseClassifier:
    """
    Per-frame raw phase estimate.

    Each declared phase scores the fraction of its angle checks the frame satisfies.
    The highest fraction wins; ties go to the phase declared first.
    """

    def __init__(self, phases: Sequence[PhaseDefinition], min_visibility: float = 0.5):
        self.phases = tuple(phases)
        self.min_visibility = min_visibility

    def _phase_fraction(self, phase: PhaseDefinition, frame: Frame) -> float:
        satisfied = 0
        for check in phase.angle_checks:
            points = resolve_points(frame, check.points, self.min_visibility)
            if points is None:
                continue
            angle = calculate_angle(points[0].coords(), points[1].coords(), points[2].coords())
            if not np.isnan(angle) and check.is_satisfied(angle):
                satisfied += 1
        return satisfied / len(phase.angle_checks)

    def classify(self, frame: Frame, previous_phase: Optional[str]) -> Tuple[Optional[str], float]:
        """
        Args:
            frame: Current frame
            previous_phase: Confirmed phase, returned when no phase matches at all

        Returns:
            (raw_phase, confidence in [0, 1])
        """
        best_phase = None
        best_fraction = 0.0
        for phase in self.phases:
            if not phase.angle_checks:
                continue
            fraction = self._phase_fraction(phase, frame)
            # strict comparison keeps the earlier phase on ties
            if fraction > best_fraction:
                best_phase = phase.name
                best_fraction = fraction
        if best_phase is None:
            return previous_phase, 0.0
        return best_phase, best_fraction


class PhaseDebouncer:
    """Turns jittery raw phases into a confirmed phase after N agreeing frames."""

    def __init__(self, start_phase: Optional[str], threshold: int = 3):
        if threshold < 1:
            raise ValueError("Debounce threshold must be at least 1")
        self.start_phase = start_phase
        self.threshold = threshold
        self.reset()

    def reset(self) -> None:
        self.confirmed_phase = self.start_phase
        self.last_raw_phase: Optional[str] = None
        self.stable_frames = 0
        self.last_change_time: Optional[float] = None

    def update(self, raw_phase: Optional[str], timestamp: float) -> bool:
        """
        Feed one raw observation.

        Returns:
            True when the confirmed phase changed on this frame
        """
        if raw_phase == self.last_raw_phase:
            self.stable_frames += 1
        else:
            self.stable_frames = 1
            self.last_raw_phase = raw_phase
        if (
            raw_phase is not None
            and self.stable_frames >= self.threshold
            and raw_phase != self.confirmed_phase
        ):
            logger.debug(f"[PHASE] {self.confirmed_phase} -> {raw_phase} at {timestamp:.2f}s")
            self.confirmed_phase = raw_phase
            self.last_change_time = timestamp
            return True
        return False
