import math
from concurrent.futures import Executor, Future

import pytest

from motion_engine.exercise_analysis.profiles import ExerciseProfile
from motion_engine.models import Frame, Landmark


def make_frame(timestamp, points, visibility=0.9):
    """Frame from {name: (x, y)} or {name: (x, y, visibility)}."""
    landmarks = {}
    for name, values in points.items():
        vis = values[2] if len(values) > 2 else visibility
        landmarks[name] = Landmark(values[0], values[1], 0.0, vis)
    return Frame(timestamp, landmarks)


def leg_points(knee_angle, knee_shift=0.0):
    """Side-view leg with the given knee angle; shoulder sits straight above the hip."""
    knee = (0.5 + knee_shift, 0.6)
    ankle = (0.5, 0.8)
    rad = math.radians(knee_angle)
    # the ankle is straight below the knee only when knee_shift is 0
    hip = (knee[0] + 0.2 * math.sin(rad), knee[1] + 0.2 * math.cos(rad))
    shoulder = (hip[0], hip[1] - 0.3)
    points = {}
    for side in ("left", "right"):
        points[f"{side}_knee"] = knee
        points[f"{side}_ankle"] = ankle
        points[f"{side}_hip"] = hip
        points[f"{side}_shoulder"] = shoulder
    return points


def leg_frame(timestamp, knee_angle, visibility=0.9, knee_shift=0.0):
    return make_frame(timestamp, leg_points(knee_angle, knee_shift), visibility)


def squat_cycle_angles(fps=30, seconds=2.0, top=170.0, bottom=90.0):
    """Knee angles for one down-and-up cycle sampled at fps."""
    n = int(fps * seconds)
    half = n // 2
    down = [top - (top - bottom) * i / half for i in range(half)]
    up = [bottom + (top - bottom) * i / (n - half) for i in range(n - half)]
    return down + up + [top]


def squat_frames(reps=3, fps=30, start=0.0, **kwargs):
    frames = []
    t = start
    for _ in range(reps):
        for angle in squat_cycle_angles(fps=fps, **kwargs):
            frames.append(leg_frame(t, angle))
            t += 1.0 / fps
    return frames


class ImmediateExecutor(Executor):
    """Runs submitted work synchronously."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until run_pending() is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_pending(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


@pytest.fixture
def profile_data():
    return {
        "id": "test-squat",
        "name": "Test Squat",
        "aliases": ["test squats"],
        "movement_pattern": "squat-pattern",
        "required_landmarks": ["left_hip", "right_hip", "left_knee", "right_knee", "left_ankle", "right_ankle"],
        "phases": [
            {
                "name": "up",
                "angle_checks": [
                    {"joint": "left_knee", "connected_to": ["left_hip", "left_ankle"], "min_angle": 160, "max_angle": 180}
                ],
            },
            {
                "name": "down",
                "angle_checks": [
                    {"joint": "left_knee", "connected_to": ["left_hip", "left_ankle"], "min_angle": 60, "max_angle": 110}
                ],
            },
        ],
        "rep_counting": {
            "signal": "angle",
            "points": ["hip", "knee", "ankle"],
            "start_threshold": 100,
            "end_threshold": 160,
            "min_duration": 0.0,
            "requires_full_range": False,
        },
        "form_rules": [
            {
                "id": "depth",
                "severity": "major",
                "phases": ["down"],
                "measurement": {"type": "angle", "points": ["hip", "knee", "ankle"], "optimal": [80, 100], "tolerance": 10},
                "feedback": {"violation": "Shallow squat", "correction": "Lower to parallel"},
            },
            {
                "id": "knee-over-ankle",
                "severity": "critical",
                "measurement": {"type": "alignment", "points": ["knee", "ankle"], "axis": "x", "optimal": 0, "tolerance": 0.05},
                "feedback": {"violation": "Knee drifting", "correction": "Knees over ankles"},
            },
        ],
        "coaching": {"motivational_cues": ["Strong reps.", "Keep it smooth."]},
        "calories_per_rep": 0.5,
    }


@pytest.fixture
def profile(profile_data):
    return ExerciseProfile.from_dict(profile_data)
