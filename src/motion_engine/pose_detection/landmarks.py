"""
landmarks.py - MediaPipe pose landmark names and conversion into engine frames.
"""
import json
from typing import Dict, Iterable, Iterator, List, Sequence

from ..models import Frame, Landmark

# BlazePose landmark order, index-aligned with results.pose_landmarks.landmark
MEDIAPIPE_LANDMARK_NAMES = [
    "nose", "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer", "left_ear",
    "right_ear", "mouth_left", "mouth_right", "left_shoulder",
    "right_shoulder", "left_elbow", "right_elbow", "left_wrist",
    "right_wrist", "left_pinky", "right_pinky", "left_index",
    "right_index", "left_thumb", "right_thumb", "left_hip",
    "right_hip", "left_knee", "right_knee", "left_ankle",
    "right_ankle", "left_heel", "right_heel", "left_foot_index",
    "right_foot_index"
]


def frame_from_landmarks(landmarks: Dict[str, Sequence[float]], timestamp: float) -> Frame:
    """Convert a name -> [x, y, z, visibility] mapping into a Frame."""
    return Frame.from_landmark_lists(timestamp, landmarks)


def frame_from_sequence(points: Iterable[Sequence[float]], timestamp: float, names: List[str] = None) -> Frame:
    """
    Convert index-ordered landmark values into a Frame.

    Args:
        points: One [x, y, z, visibility] entry per landmark, in detector order
        timestamp: Frame time in seconds
        names: Landmark names for each index; MediaPipe order by default
    """
    names = names or MEDIAPIPE_LANDMARK_NAMES
    return Frame(timestamp, {name: Landmark.from_sequence(p) for name, p in zip(names, points)})


def read_frame_recording(path: str) -> Iterator[Frame]:
    """
    Stream frames from a JSON-lines recording.

    Each line is {"timestamp": seconds, "landmarks": {name: [x, y, z, visibility]}}.
    Blank lines are skipped.
    """
    with open(path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
                yield frame_from_landmarks(record["landmarks"], float(record["timestamp"]))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: malformed frame record ({e})") from e
