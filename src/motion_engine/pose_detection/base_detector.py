from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..models import Frame
from .landmarks import frame_from_landmarks


class BasePoseDetector(ABC):
    """Base class for landmark providers feeding the motion engine."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> Tuple[bool, Optional[Dict[str, List[float]]]]:
        """
        Detect pose landmarks in the given image.

        Args:
            image: Input image as numpy array (BGR)

        Returns:
            Tuple containing:
            - Boolean indicating if detection was successful
            - Dictionary of landmark name -> [x, y, z, visibility] (if successful) or None
        """
        pass

    @abstractmethod
    def get_landmark_names(self) -> List[str]:
        """
        Get the list of landmark names that this detector provides.

        Returns:
            List of landmark names
        """
        pass

    def detect_frame(self, image: np.ndarray, timestamp: float) -> Optional[Frame]:
        """Detect landmarks and wrap them in a Frame stamped with `timestamp` (seconds)."""
        ok, landmarks = self.detect(image)
        if not ok or not landmarks:
            return None
        return frame_from_landmarks(landmarks, timestamp)

    def close(self) -> None:
        pass
