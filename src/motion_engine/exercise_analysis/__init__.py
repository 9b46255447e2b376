"""
Exercise analysis package: profiles, geometry, phase tracking, rep counting and form scoring.
"""

from .form_scorer import FormScorer
from .phase_tracking import PhaseClassifier, PhaseDebouncer
from .profiles import (
    ExerciseProfile,
    FormRule,
    MeasurementKind,
    ProfileRegistry,
    ProfileValidationError,
    SignalKind,
    default_registry,
    normalize_exercise_id,
)
from .rep_counter import RepCounter

__all__ = [
    'FormScorer',
    'PhaseClassifier',
    'PhaseDebouncer',
    'ExerciseProfile',
    'FormRule',
    'MeasurementKind',
    'ProfileRegistry',
    'ProfileValidationError',
    'SignalKind',
    'default_registry',
    'normalize_exercise_id',
    'RepCounter',
]
