import json

import pytest

from motion_engine.pose_detection.base_detector import BasePoseDetector
from motion_engine.pose_detection.landmarks import (
    MEDIAPIPE_LANDMARK_NAMES,
    frame_from_landmarks,
    frame_from_sequence,
    read_frame_recording,
)


class StubDetector(BasePoseDetector):
    def __init__(self, result):
        self.result = result

    def detect(self, image):
        return self.result

    def get_landmark_names(self):
        return ["left_hip"]


class TestFrameConversion:
    def test_mediapipe_order(self):
        assert len(MEDIAPIPE_LANDMARK_NAMES) == 33
        points = [[i / 100, i / 50, 0.0, 0.9] for i in range(33)]
        frame = frame_from_sequence(points, 1.5)
        assert frame.timestamp == 1.5
        assert frame.get("left_hip").x == pytest.approx(0.23)
        assert frame.get("right_foot_index").y == pytest.approx(0.64)

    def test_custom_names(self):
        frame = frame_from_sequence([[0.1, 0.2], [0.3, 0.4]], 0.0, names=["a", "b"])
        assert frame.get("b").y == pytest.approx(0.4)
        assert frame.get("a").visibility == 1.0

    def test_from_landmark_mapping(self):
        frame = frame_from_landmarks({"left_knee": [0.4, 0.6, -0.1, 0.8]}, 2.0)
        knee = frame.get("left_knee")
        assert (knee.x, knee.y, knee.z, knee.visibility) == pytest.approx((0.4, 0.6, -0.1, 0.8))

    def test_landmark_needs_two_values(self):
        with pytest.raises(ValueError):
            frame_from_landmarks({"left_knee": [0.4]}, 0.0)


class TestDetectorFrames:
    def test_detect_frame(self):
        detector = StubDetector((True, {"left_hip": [0.5, 0.5, 0.0, 0.9]}))
        frame = detector.detect_frame(None, 3.0)
        assert frame.timestamp == 3.0
        assert frame.get("left_hip").visibility == pytest.approx(0.9)

    def test_no_pose(self):
        assert StubDetector((False, None)).detect_frame(None, 0.0) is None


class TestFrameRecording:
    def test_reads_json_lines(self, tmp_path):
        path = tmp_path / "frames.jsonl"
        records = [
            {"timestamp": 0.0, "landmarks": {"left_hip": [0.5, 0.5, 0.0, 0.9]}},
            {"timestamp": 0.033, "landmarks": {"left_hip": [0.5, 0.52, 0.0, 0.9]}},
        ]
        path.write_text(json.dumps(records[0]) + "\n\n" + json.dumps(records[1]) + "\n")
        frames = list(read_frame_recording(str(path)))
        assert [f.timestamp for f in frames] == [0.0, 0.033]
        assert frames[1].get("left_hip").y == pytest.approx(0.52)

    def test_malformed_line_reports_position(self, tmp_path):
        path = tmp_path / "frames.jsonl"
        path.write_text(json.dumps({"timestamp": 0.0, "landmarks": {}}) + "\n" + '{"timestamp": 1.0}\n')
        with pytest.raises(ValueError, match="frames.jsonl:2"):
            list(read_frame_recording(str(path)))
