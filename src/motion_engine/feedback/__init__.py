"""
Coaching cue dispatch and output adapters (Gemini service, text-to-speech).
"""

from .coaching import CoachingDispatcher, CoachingService, CoachingServiceError, classify_service_cue

__all__ = [
    'CoachingDispatcher',
    'CoachingService',
    'CoachingServiceError',
    'classify_service_cue',
]
