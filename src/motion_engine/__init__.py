"""
Motion analysis engine: rep counting, form scoring and coaching cues from pose landmarks.
"""

from .engine import MotionAnalysisEngine, create_engine
from .exercise_analysis.config_utils import EngineConfig, load_engine_config
from .exercise_analysis.profiles import ExerciseProfile, ProfileRegistry, ProfileValidationError, get_exercise_profile
from .feedback.coaching import CoachingService, CoachingServiceError
from .models import (
    CoachingCue,
    CueCategory,
    FormMetrics,
    FormViolation,
    Frame,
    Landmark,
    RepPhase,
    RepState,
    Severity,
    Urgency,
)
from .session import RepRecord, SessionSummary

__all__ = [
    'MotionAnalysisEngine',
    'create_engine',
    'EngineConfig',
    'load_engine_config',
    'ExerciseProfile',
    'ProfileRegistry',
    'ProfileValidationError',
    'get_exercise_profile',
    'CoachingService',
    'CoachingServiceError',
    'CoachingCue',
    'CueCategory',
    'FormMetrics',
    'FormViolation',
    'Frame',
    'Landmark',
    'RepPhase',
    'RepState',
    'Severity',
    'Urgency',
    'RepRecord',
    'SessionSummary',
]
