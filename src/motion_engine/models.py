"""
models.py - Value types shared across the motion analysis engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class Landmark:
    """A tracked anatomical point with its detection confidence."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "Landmark":
        """
        Build a landmark from the [x, y, z, visibility] lists pose detectors emit.

        Args:
            values: Two to four numbers; missing z defaults to 0 and missing visibility to 1

        Returns:
            Landmark instance
        """
        if len(values) < 2:
            raise ValueError(f"Landmark needs at least x and y, got {list(values)}")
        z = float(values[2]) if len(values) > 2 else 0.0
        visibility = float(values[3]) if len(values) > 3 else 1.0
        return cls(float(values[0]), float(values[1]), z, visibility)

    def coords(self) -> List[float]:
        return [self.x, self.y, self.z]

    def axis_value(self, axis: str) -> float:
        return getattr(self, axis)


@dataclass
class Frame:
    """One timestamped snapshot of named landmarks. Timestamps are seconds."""
    timestamp: float
    landmarks: Dict[str, Landmark] = field(default_factory=dict)

    @classmethod
    def from_landmark_lists(cls, timestamp: float, landmarks: Dict[str, Sequence[float]]) -> "Frame":
        return cls(timestamp, {name: Landmark.from_sequence(values) for name, values in landmarks.items()})

    def get(self, name: str) -> Optional[Landmark]:
        return self.landmarks.get(name)


class RepPhase(Enum):
    IDLE = "idle"
    DESCENDING = "descending"
    BOTTOM = "bottom"
    ASCENDING = "ascending"


class Severity(Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class CueCategory(Enum):
    SAFETY = "safety"
    FORM = "form"
    MOTIVATION = "motivation"


class Urgency(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"


@dataclass
class RepState:
    """Snapshot of the rep counter exposed to consumers and the coaching service."""
    count: int = 0
    phase: RepPhase = RepPhase.IDLE
    confirmed_phase: Optional[str] = None
    armed: bool = False
    range_of_motion: float = 0.0
    hold_seconds: float = 0.0


@dataclass(frozen=True)
class FormViolation:
    rule_id: str
    severity: Severity
    message: str
    correction: str


@dataclass
class FormMetrics:
    """Result of scoring one frame."""
    score: float = 100.0
    violations: List[FormViolation] = field(default_factory=list)
    velocity: float = 0.0
    consistency: float = 1.0
    range_of_motion: float = 0.0
    fatigue: float = 0.0
    phase: Optional[str] = None

    def has_critical(self) -> bool:
        return any(v.severity == Severity.CRITICAL for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "violations": [
                {"rule_id": v.rule_id, "severity": v.severity.value, "message": v.message, "correction": v.correction}
                for v in self.violations
            ],
            "velocity": self.velocity,
            "consistency": self.consistency,
            "range_of_motion": self.range_of_motion,
            "fatigue": self.fatigue,
            "phase": self.phase,
        }


@dataclass(frozen=True)
class CoachingCue:
    message: str
    category: CueCategory
    urgency: Urgency
    timestamp: float
    duration: float = 3.0
    source: str = "local"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "urgency": self.urgency.value,
            "timestamp": self.timestamp,
            "duration": self.duration,
            "source": self.source,
        }
