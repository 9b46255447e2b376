from typing import Dict, List, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np

from .base_detector import BasePoseDetector
from .landmarks import MEDIAPIPE_LANDMARK_NAMES


class MediaPipePoseDetector(BasePoseDetector):
    """BlazePose landmarks via MediaPipe, keyed by the snake_case names exercise profiles use."""

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5, model_complexity: int = 1):
        """
        Args:
            min_detection_confidence: Minimum confidence for pose detection
            min_tracking_confidence: Minimum confidence for pose tracking
            model_complexity: Complexity of the pose landmark model (0, 1, or 2)
        """
        self.pose = mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def detect(self, image: np.ndarray) -> Tuple[bool, Optional[Dict[str, List[float]]]]:
        """
        Run the pose model on one BGR image.

        Low-visibility landmarks are kept; the engine applies its own visibility threshold.
        """
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False
        results = self.pose.process(rgb)
        if not results.pose_landmarks:
            return False, None
        points = results.pose_landmarks.landmark
        return True, {
            name: [lm.x, lm.y, lm.z, lm.visibility]
            for name, lm in zip(MEDIAPIPE_LANDMARK_NAMES, points)
        }

    def get_landmark_names(self) -> List[str]:
        return list(MEDIAPIPE_LANDMARK_NAMES)

    def close(self) -> None:
        self.pose.close()
