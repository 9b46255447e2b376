"""
pose_utils.py - Geometry helpers for landmark frames.

All functions are pure. Degenerate input yields NaN (or None for lookups) instead of raising,
so callers can skip the affected rule.
"""
import numpy as np
from typing import List, Optional, Sequence, Tuple

from ..models import Frame, Landmark

SIDES = ("left", "right")
AXES = ("x", "y", "z")


# --- Math & Geometry Utilities ---
def calculate_angle(a: Sequence[float], b: Sequence[float], c: Sequence[float], use_depth: bool = False) -> float:
    """
    Calculate the angle at point b between the vectors b->a and b->c.

    Point ordering convention:
    - a: First point (e.g., hip for knee angle)
    - b: Vertex (e.g., knee)
    - c: Last point (e.g., ankle)

    Args:
        a: First point coordinates [x, y(, z)]
        b: Vertex coordinates [x, y(, z)]
        c: Last point coordinates [x, y(, z)]
        use_depth: Include the z coordinate; monocular depth is noisy so the default is planar
    Returns:
        Angle in degrees in [0, 180], or NaN if the calculation is not possible
    """
    dims = 3 if use_depth else 2
    try:
        a = np.array(a[:dims], dtype=float)
        b = np.array(b[:dims], dtype=float)
        c = np.array(c[:dims], dtype=float)
    except (TypeError, ValueError):
        return np.nan
    if a.shape != b.shape or b.shape != c.shape:
        return np.nan
    ba = a - b
    bc = c - b
    norm_ba = np.linalg.norm(ba)
    norm_bc = np.linalg.norm(bc)
    if norm_ba < 1e-6 or norm_bc < 1e-6:
        return np.nan
    cosine_angle = np.clip(np.dot(ba, bc) / (norm_ba * norm_bc), -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def calculate_length(a: Sequence[float], b: Sequence[float]) -> float:
    """Calculate planar Euclidean distance between two points."""
    return float(np.linalg.norm(np.array(a[:2], dtype=float) - np.array(b[:2], dtype=float)))


def midpoint(a: Landmark, b: Landmark) -> Landmark:
    """Midpoint of two landmarks; visibility is the weaker of the two."""
    return Landmark(
        (a.x + b.x) / 2,
        (a.y + b.y) / 2,
        (a.z + b.z) / 2,
        min(a.visibility, b.visibility),
    )


def point_line_deviation(point: Sequence[float], line_start: Sequence[float], line_end: Sequence[float]) -> float:
    """
    Perpendicular distance of a point from the line through two others,
    normalized by the length of the reference segment (so 0.1 = 10% of the segment).

    Returns:
        Normalized deviation, or NaN when the reference segment is degenerate
    """
    p = np.array(point[:2], dtype=float)
    s = np.array(line_start[:2], dtype=float)
    e = np.array(line_end[:2], dtype=float)
    seg = e - s
    length = np.linalg.norm(seg)
    if length < 1e-6:
        return np.nan
    cross = seg[0] * (p - s)[1] - seg[1] * (p - s)[0]
    return float(abs(cross) / (length * length))


def symmetry_deviation(left: Landmark, right: Landmark, axis: str = "y") -> float:
    """Absolute left/right difference along one axis."""
    if axis not in AXES:
        return np.nan
    return float(abs(left.axis_value(axis) - right.axis_value(axis)))


def rate_of_change(samples: Sequence[Tuple[float, Sequence[float]]]) -> float:
    """
    Average speed of a tracked point over timestamped samples.

    Args:
        samples: (timestamp seconds, [x, y]) pairs, oldest first

    Returns:
        Mean planar distance per second between consecutive samples,
        or NaN with fewer than two usable samples
    """
    speeds = []
    for (t0, p0), (t1, p1) in zip(samples, samples[1:]):
        dt = t1 - t0
        if dt <= 0:
            continue
        speeds.append(calculate_length(p0, p1) / dt)
    if not speeds:
        return np.nan
    return float(np.mean(speeds))


# --- Landmark lookup ---
def resolve_point(frame: Frame, name: str, min_visibility: float = 0.5) -> Optional[Landmark]:
    """
    Look up a landmark by name.

    A concrete name ("left_knee") must be present and visible. A bilateral name ("knee")
    resolves to the midpoint of both visible sides, or to the single visible side.
    """
    landmark = frame.get(name)
    if landmark is not None:
        return landmark if landmark.visibility >= min_visibility else None
    if name.startswith(SIDES):
        return None
    sides = [frame.get(f"{side}_{name}") for side in SIDES]
    visible = [lm for lm in sides if lm is not None and lm.visibility >= min_visibility]
    if len(visible) == 2:
        return midpoint(visible[0], visible[1])
    if len(visible) == 1:
        return visible[0]
    return None


def resolve_points(frame: Frame, names: Sequence[str], min_visibility: float = 0.5) -> Optional[List[Landmark]]:
    """Resolve every name or return None if any is missing."""
    points = []
    for name in names:
        point = resolve_point(frame, name, min_visibility)
        if point is None:
            return None
        points.append(point)
    return points


def check_landmark_visibility(frame: Frame, names: Sequence[str], min_visibility: float = 0.5) -> Tuple[bool, List[str]]:
    """
    Check that every named landmark can be resolved with sufficient visibility.

    Returns:
        (all_visible, missing_names)
    """
    missing = [name for name in names if resolve_point(frame, name, min_visibility) is None]
    return not missing, missing
