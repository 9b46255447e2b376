"""
profiles.py - Exercise profile schema, validation and registry.

Profiles are JSON documents (see configs/) parsed once into frozen dataclasses.
Anything malformed raises ProfileValidationError at load time, never per frame.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import Severity
from .config_utils import list_profile_files, load_json_config

logger = logging.getLogger("ProfileRegistry")

AXES = ("x", "y", "z")


class ProfileValidationError(ValueError):
    """Raised when an exercise profile document is malformed."""


class MeasurementKind(Enum):
    ANGLE = "angle"
    ALIGNMENT = "alignment"
    SYMMETRY = "symmetry"
    VELOCITY = "velocity"


class SignalKind(Enum):
    POSITION = "position"
    ANGLE = "angle"
    TIMER = "timer"


# Number of points each measurement kind needs
_MEASUREMENT_POINTS = {
    MeasurementKind.ANGLE: (3,),
    MeasurementKind.ALIGNMENT: (2, 3),
    MeasurementKind.SYMMETRY: (2,),
    MeasurementKind.VELOCITY: (1,),
}

_SIGNAL_POINTS = {
    SignalKind.POSITION: 1,
    SignalKind.ANGLE: 3,
    SignalKind.TIMER: 0,
}


def normalize_exercise_id(exercise_id: str) -> str:
    """Case and separator insensitive key: "Push-Ups" and "push_ups" both become "pushups"."""
    return re.sub(r"[_\s-]", "", str(exercise_id).lower())


# --- Parsing helpers ---
def _require(data: Dict[str, Any], key: str, context: str) -> Any:
    if key not in data:
        raise ProfileValidationError(f"{context}: missing '{key}'")
    return data[key]


def _number(value: Any, context: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProfileValidationError(f"{context}: expected a number, got {value!r}")
    return float(value)


def _strings(value: Any, context: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ProfileValidationError(f"{context}: expected a list of strings")
    return tuple(value)


def _enum(enum_cls, value: Any, context: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ProfileValidationError(f"{context}: '{value}' is not one of {allowed}")


def _axis(value: Any, context: str) -> str:
    if value not in AXES:
        raise ProfileValidationError(f"{context}: axis must be one of x, y, z")
    return value


# --- Schema ---
@dataclass(frozen=True)
class AngleCheck:
    joint: str
    connected_to: Tuple[str, str]
    min_angle: float
    max_angle: float
    feedback: str = ""

    @property
    def points(self) -> Tuple[str, str, str]:
        return (self.connected_to[0], self.joint, self.connected_to[1])

    def is_satisfied(self, angle: float) -> bool:
        return self.min_angle <= angle <= self.max_angle

    @classmethod
    def from_dict(cls, data: Dict[str, Any], context: str) -> "AngleCheck":
        connected = _strings(_require(data, "connected_to", context), f"{context}.connected_to")
        if len(connected) != 2:
            raise ProfileValidationError(f"{context}: connected_to needs exactly two points")
        min_angle = _number(_require(data, "min_angle", context), f"{context}.min_angle")
        max_angle = _number(_require(data, "max_angle", context), f"{context}.max_angle")
        if min_angle > max_angle:
            raise ProfileValidationError(f"{context}: min_angle is above max_angle")
        return cls(
            joint=str(_require(data, "joint", context)),
            connected_to=(connected[0], connected[1]),
            min_angle=min_angle,
            max_angle=max_angle,
            feedback=data.get("feedback", ""),
        )


@dataclass(frozen=True)
class PhaseDefinition:
    name: str
    description: str = ""
    angle_checks: Tuple[AngleCheck, ...] = ()


@dataclass(frozen=True)
class Measurement:
    """Tagged measurement definition. `optimal` is always stored as a (low, high) range."""
    kind: MeasurementKind
    points: Tuple[str, ...]
    optimal: Tuple[float, float]
    tolerance: float
    axis: str = "y"

    def acceptable_range(self) -> Tuple[float, float]:
        return self.optimal[0] - self.tolerance, self.optimal[1] + self.tolerance

    def is_within(self, value: float) -> bool:
        low, high = self.acceptable_range()
        return low <= value <= high

    @classmethod
    def from_dict(cls, data: Dict[str, Any], context: str) -> "Measurement":
        kind = _enum(MeasurementKind, _require(data, "type", context), f"{context}.type")
        points = _strings(_require(data, "points", context), f"{context}.points")
        if len(points) not in _MEASUREMENT_POINTS[kind]:
            raise ProfileValidationError(
                f"{context}: {kind.value} measurement takes {_MEASUREMENT_POINTS[kind]} points, got {len(points)}"
            )
        optimal = _require(data, "optimal", context)
        if isinstance(optimal, list):
            if len(optimal) != 2:
                raise ProfileValidationError(f"{context}: optimal range needs [low, high]")
            low, high = (_number(v, f"{context}.optimal") for v in optimal)
        else:
            low = high = _number(optimal, f"{context}.optimal")
        if low > high:
            raise ProfileValidationError(f"{context}: optimal low is above high")
        tolerance = _number(data.get("tolerance", 0), f"{context}.tolerance")
        if tolerance < 0:
            raise ProfileValidationError(f"{context}: tolerance must not be negative")
        return cls(kind, points, (low, high), tolerance, _axis(data.get("axis", "y"), f"{context}.axis"))


@dataclass(frozen=True)
class FormRule:
    rule_id: str
    name: str
    severity: Severity
    measurement: Measurement
    violation: str
    correction: str
    phases: Tuple[str, ...] = ()
    description: str = ""

    def applies_to(self, phase: Optional[str]) -> bool:
        """Rules without a phase list apply in every phase."""
        return not self.phases or phase in self.phases

    @classmethod
    def from_dict(cls, data: Dict[str, Any], context: str) -> "FormRule":
        rule_id = str(_require(data, "id", context))
        context = f"{context}[{rule_id}]"
        feedback = _require(data, "feedback", context)
        return cls(
            rule_id=rule_id,
            name=data.get("name", rule_id),
            severity=_enum(Severity, _require(data, "severity", context), f"{context}.severity"),
            measurement=Measurement.from_dict(_require(data, "measurement", context), f"{context}.measurement"),
            violation=str(_require(feedback, "violation", f"{context}.feedback")),
            correction=str(_require(feedback, "correction", f"{context}.feedback")),
            phases=_strings(data.get("phases"), f"{context}.phases"),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class RepCountingConfig:
    """
    Hysteresis thresholds for one scalar signal.

    The signal arms when it passes start_threshold and fires when it then passes
    end_threshold. If start_threshold > end_threshold both comparisons are mirrored.
    """
    signal: SignalKind
    points: Tuple[str, ...] = ()
    axis: str = "y"
    start_threshold: float = 0.0
    end_threshold: float = 0.0
    min_duration: float = 0.0
    requires_full_range: bool = False
    min_range_of_motion: float = 80.0

    @property
    def is_timer(self) -> bool:
        return self.signal == SignalKind.TIMER

    @classmethod
    def from_dict(cls, data: Dict[str, Any], context: str) -> "RepCountingConfig":
        signal = _enum(SignalKind, _require(data, "signal", context), f"{context}.signal")
        points = _strings(data.get("points"), f"{context}.points")
        if len(points) != _SIGNAL_POINTS[signal]:
            raise ProfileValidationError(
                f"{context}: {signal.value} signal takes {_SIGNAL_POINTS[signal]} points, got {len(points)}"
            )
        start = _number(data.get("start_threshold", 0), f"{context}.start_threshold")
        end = _number(data.get("end_threshold", 0), f"{context}.end_threshold")
        if signal != SignalKind.TIMER and start == end:
            raise ProfileValidationError(f"{context}: start and end thresholds must differ")
        min_duration = _number(data.get("min_duration", 0), f"{context}.min_duration")
        min_rom = _number(data.get("min_range_of_motion", 80), f"{context}.min_range_of_motion")
        if min_duration < 0 or not 0 <= min_rom <= 100:
            raise ProfileValidationError(f"{context}: min_duration or min_range_of_motion out of range")
        return cls(
            signal=signal,
            points=points,
            axis=_axis(data.get("axis", "y"), f"{context}.axis"),
            start_threshold=start,
            end_threshold=end,
            min_duration=min_duration,
            requires_full_range=bool(data.get("requires_full_range", False)),
            min_range_of_motion=min_rom,
        )


@dataclass(frozen=True)
class RangeOfMotionRule:
    joint: str
    min_angle: float
    max_angle: float
    optimal_range: Tuple[float, float]


@dataclass(frozen=True)
class AlignmentSpec:
    name: str
    points: Tuple[str, ...]
    axis: str
    tolerance: float
    critical: bool = False


@dataclass(frozen=True)
class SymmetrySpec:
    left_point: str
    right_point: str
    max_deviation: float


@dataclass(frozen=True)
class VelocitySpec:
    phase: str
    expected_speed: str
    smoothness_threshold: float


@dataclass(frozen=True)
class Biomechanics:
    """Descriptive joint configuration carried for consumers and coaching context."""
    primary_joints: Tuple[str, ...] = ()
    secondary_joints: Tuple[str, ...] = ()
    range_of_motion: Tuple[RangeOfMotionRule, ...] = ()
    alignment: Tuple[AlignmentSpec, ...] = ()
    symmetry: Tuple[SymmetrySpec, ...] = ()
    velocity: Tuple[VelocitySpec, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], context: str) -> "Biomechanics":
        try:
            return cls(
                primary_joints=_strings(data.get("primary_joints"), f"{context}.primary_joints"),
                secondary_joints=_strings(data.get("secondary_joints"), f"{context}.secondary_joints"),
                range_of_motion=tuple(
                    RangeOfMotionRule(r["joint"], float(r["min_angle"]), float(r["max_angle"]),
                                      (float(r["optimal_range"][0]), float(r["optimal_range"][1])))
                    for r in data.get("range_of_motion", [])
                ),
                alignment=tuple(
                    AlignmentSpec(a["name"], tuple(a["points"]), _axis(a.get("axis", "y"), f"{context}.alignment"),
                                  float(a["tolerance"]), bool(a.get("critical", False)))
                    for a in data.get("alignment", [])
                ),
                symmetry=tuple(
                    SymmetrySpec(s["left_point"], s["right_point"], float(s["max_deviation"]))
                    for s in data.get("symmetry", [])
                ),
                velocity=tuple(
                    VelocitySpec(v["phase"], v["expected_speed"], float(v["smoothness_threshold"]))
                    for v in data.get("velocity", [])
                ),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            if isinstance(e, ProfileValidationError):
                raise
            raise ProfileValidationError(f"{context}: malformed biomechanics entry ({e})")


@dataclass(frozen=True)
class CoachingText:
    setup_cues: Tuple[str, ...] = ()
    common_mistakes: Tuple[str, ...] = ()
    motivational_cues: Tuple[str, ...] = ()
    correction_priority: str = "safety"


@dataclass(frozen=True)
class SafetyConfig:
    """Stop and warning conditions are form rule ids; stop conditions escalate to safety cues."""
    stop_conditions: Tuple[str, ...] = ()
    warning_conditions: Tuple[str, ...] = ()
    requires_warmup: bool = False


@dataclass(frozen=True)
class ExerciseProfile:
    exercise_id: str
    name: str
    movement_pattern: str
    rep_counting: RepCountingConfig
    form_rules: Tuple[FormRule, ...]
    phases: Tuple[PhaseDefinition, ...] = ()
    required_landmarks: Tuple[str, ...] = ()
    camera_view: str = "side"
    supported: bool = True
    aliases: Tuple[str, ...] = ()
    start_phase: Optional[str] = None
    hold_phase: str = "hold"
    biomechanics: Biomechanics = field(default_factory=Biomechanics)
    coaching: CoachingText = field(default_factory=CoachingText)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    calories_per_rep: Optional[float] = None
    calories_per_minute: Optional[float] = None

    @property
    def key(self) -> str:
        return normalize_exercise_id(self.exercise_id)

    @property
    def phase_names(self) -> List[str]:
        return [p.name for p in self.phases]

    def is_safety_rule(self, rule: FormRule) -> bool:
        """Critical rules, and rules named as stop conditions, escalate to safety cues."""
        return rule.severity == Severity.CRITICAL or rule.rule_id in self.safety.stop_conditions

    def rule(self, rule_id: str) -> Optional[FormRule]:
        for rule in self.form_rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExerciseProfile":
        """
        Build and validate a profile from its JSON document.

        Raises:
            ProfileValidationError: if any field is missing, mistyped or inconsistent
        """
        try:
            return cls._parse(data)
        except (AttributeError, KeyError, TypeError) as e:
            raise ProfileValidationError(f"malformed profile document: {e}")

    @classmethod
    def _parse(cls, data: Dict[str, Any]) -> "ExerciseProfile":
        if not isinstance(data, dict):
            raise ProfileValidationError("profile document must be an object")
        exercise_id = _require(data, "id", "profile")
        if not isinstance(exercise_id, str) or not normalize_exercise_id(exercise_id):
            raise ProfileValidationError("profile: 'id' must be a non-empty string")
        ctx = f"profile[{exercise_id}]"

        phases = []
        for i, raw in enumerate(data.get("phases", [])):
            pctx = f"{ctx}.phases[{i}]"
            name = str(_require(raw, "name", pctx))
            checks = tuple(
                AngleCheck.from_dict(c, f"{pctx}.angle_checks[{j}]") for j, c in enumerate(raw.get("angle_checks", []))
            )
            phases.append(PhaseDefinition(name, raw.get("description", ""), checks))
        phase_names = [p.name for p in phases]
        if len(set(phase_names)) != len(phase_names):
            raise ProfileValidationError(f"{ctx}: duplicate phase names")

        start_phase = data.get("start_phase", phase_names[0] if phase_names else None)
        if start_phase is not None and start_phase not in phase_names:
            raise ProfileValidationError(f"{ctx}: start_phase '{start_phase}' is not a declared phase")

        rep_counting = RepCountingConfig.from_dict(_require(data, "rep_counting", ctx), f"{ctx}.rep_counting")
        hold_phase = data.get("hold_phase", "hold")
        if rep_counting.is_timer and hold_phase not in phase_names:
            raise ProfileValidationError(f"{ctx}: timer profiles need a '{hold_phase}' phase")

        rules = tuple(FormRule.from_dict(r, f"{ctx}.form_rules") for r in data.get("form_rules", []))
        rule_ids = [r.rule_id for r in rules]
        if len(set(rule_ids)) != len(rule_ids):
            raise ProfileValidationError(f"{ctx}: duplicate form rule ids")
        for rule in rules:
            unknown = set(rule.phases) - set(phase_names)
            if unknown:
                raise ProfileValidationError(f"{ctx}: rule '{rule.rule_id}' names unknown phases {sorted(unknown)}")

        calories_per_rep = data.get("calories_per_rep")
        calories_per_minute = data.get("calories_per_minute")
        for label, value in (("calories_per_rep", calories_per_rep), ("calories_per_minute", calories_per_minute)):
            if value is not None and _number(value, f"{ctx}.{label}") < 0:
                raise ProfileValidationError(f"{ctx}: {label} must not be negative")

        coaching = data.get("coaching", {})
        safety = data.get("safety", {})
        for label in ("stop_conditions", "warning_conditions"):
            unknown = set(_strings(safety.get(label), f"{ctx}.safety.{label}")) - set(rule_ids)
            if unknown:
                raise ProfileValidationError(f"{ctx}: safety.{label} names unknown rules {sorted(unknown)}")
        return cls(
            exercise_id=exercise_id,
            name=data.get("name", exercise_id),
            movement_pattern=str(data.get("movement_pattern", "unknown")),
            rep_counting=rep_counting,
            form_rules=rules,
            phases=tuple(phases),
            required_landmarks=_strings(data.get("required_landmarks"), f"{ctx}.required_landmarks"),
            camera_view=data.get("camera_view", "side"),
            supported=bool(data.get("supported", True)),
            aliases=_strings(data.get("aliases"), f"{ctx}.aliases"),
            start_phase=start_phase,
            hold_phase=hold_phase,
            biomechanics=Biomechanics.from_dict(data.get("biomechanics", {}), f"{ctx}.biomechanics"),
            coaching=CoachingText(
                setup_cues=_strings(coaching.get("setup_cues"), f"{ctx}.coaching.setup_cues"),
                common_mistakes=_strings(coaching.get("common_mistakes"), f"{ctx}.coaching.common_mistakes"),
                motivational_cues=_strings(coaching.get("motivational_cues"), f"{ctx}.coaching.motivational_cues"),
                correction_priority=coaching.get("correction_priority", "safety"),
            ),
            safety=SafetyConfig(
                stop_conditions=_strings(safety.get("stop_conditions"), f"{ctx}.safety.stop_conditions"),
                warning_conditions=_strings(safety.get("warning_conditions"), f"{ctx}.safety.warning_conditions"),
                requires_warmup=bool(safety.get("requires_warmup", False)),
            ),
            calories_per_rep=None if calories_per_rep is None else float(calories_per_rep),
            calories_per_minute=None if calories_per_minute is None else float(calories_per_minute),
        )


# --- Registry ---
class ProfileRegistry:
    """Immutable exercise profiles keyed by normalized id and aliases."""

    def __init__(self, profiles: Iterable[ExerciseProfile] = ()):
        self._profiles: Dict[str, ExerciseProfile] = {}
        for profile in profiles:
            self.register(profile)

    @classmethod
    def from_directory(cls, config_dir: str = None) -> "ProfileRegistry":
        """
        Load every *.json profile in a directory. Malformed files are logged and skipped.
        """
        registry = cls()
        for path in list_profile_files(config_dir):
            try:
                profile = ExerciseProfile.from_dict(load_json_config(path))
            except (OSError, ValueError) as e:
                logger.error(f"Skipping exercise profile {path}: {e}")
                continue
            registry.register(profile)
        logger.debug(f"Loaded {len(registry)} exercise profiles")
        return registry

    def register(self, profile: ExerciseProfile) -> None:
        for key in [profile.exercise_id, *profile.aliases]:
            normalized = normalize_exercise_id(key)
            existing = self._profiles.get(normalized)
            if existing is not None and existing.exercise_id != profile.exercise_id:
                logger.warning(f"Profile '{profile.exercise_id}' shadows '{existing.exercise_id}' for key '{key}'")
            self._profiles[normalized] = profile

    def get(self, exercise_id: str) -> Optional[ExerciseProfile]:
        """Raw lookup, including unsupported profiles."""
        return self._profiles.get(normalize_exercise_id(exercise_id))

    def resolve(self, exercise_id: str) -> Optional[ExerciseProfile]:
        """
        Look up a profile usable for analysis.

        Returns:
            The profile, or None when the exercise is unknown, flagged unsupported,
            or has no form rules (the caller falls back to manual mode)
        """
        profile = self.get(exercise_id)
        if profile is None:
            logger.info(f"No exercise profile for '{exercise_id}'")
            return None
        if not profile.supported or not profile.form_rules:
            logger.info(f"Exercise '{exercise_id}' is not supported for motion analysis")
            return None
        return profile

    def exercise_ids(self) -> List[str]:
        return sorted({p.exercise_id for p in self._profiles.values()})

    def __len__(self) -> int:
        return len({p.exercise_id for p in self._profiles.values()})

    def __contains__(self, exercise_id: str) -> bool:
        return normalize_exercise_id(exercise_id) in self._profiles


_DEFAULT_REGISTRY: Optional[ProfileRegistry] = None


def default_registry() -> ProfileRegistry:
    """Registry of the packaged profiles, loaded on first use."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = ProfileRegistry.from_directory()
    return _DEFAULT_REGISTRY


def get_exercise_profile(exercise_id: str) -> Optional[ExerciseProfile]:
    return default_registry().resolve(exercise_id)
