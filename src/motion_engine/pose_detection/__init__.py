"""
Landmark providers. The MediaPipe detector needs the optional camera dependencies.
"""

from .base_detector import BasePoseDetector
from .landmarks import MEDIAPIPE_LANDMARK_NAMES, frame_from_landmarks, frame_from_sequence, read_frame_recording

__all__ = [
    'BasePoseDetector',
    'MEDIAPIPE_LANDMARK_NAMES',
    'frame_from_landmarks',
    'frame_from_sequence',
    'read_frame_recording',
]
