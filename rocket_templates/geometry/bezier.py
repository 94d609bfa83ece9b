"""
Composite cubic bezier outlines.

A panel outline is an ordered sequence of control points. Consecutive points
P_i, P_{i+1} define one cubic segment with inner controls
P_i.handle_out and P_{i+1}.handle_in; a missing handle collapses onto its
point, which turns the segment into a straight line.

All functions here are pure: the same control points always give the same
samples, bit for bit.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from rocket_templates.errors import InvalidOutline

Point = Tuple[float, float]


@dataclass(frozen=True)
class BezierControlPoint:
    """One outline vertex with optional absolute tangent handles."""
    x: float
    y: float
    handle_in: Optional[Point] = None
    handle_out: Optional[Point] = None

    @property
    def point(self) -> Point:
        return (float(self.x), float(self.y))


def _segment_controls(
    points: Sequence[BezierControlPoint],
    closed: bool,
) -> np.ndarray:
    """Build the (n_segments, 4, 2) array of cubic control polygons."""
    pairs = list(zip(points[:-1], points[1:]))
    if closed and len(points) > 2:
        pairs.append((points[-1], points[0]))

    controls = np.empty((len(pairs), 4, 2), dtype=np.float64)
    for i, (a, b) in enumerate(pairs):
        controls[i, 0] = a.point
        controls[i, 1] = a.handle_out if a.handle_out is not None else a.point
        controls[i, 2] = b.handle_in if b.handle_in is not None else b.point
        controls[i, 3] = b.point
    return controls


def evaluate_outline(
    points: Sequence[BezierControlPoint],
    samples: int,
    closed: bool = False,
) -> List[Point]:
    """Sample a composite cubic bezier path at uniform parameter steps.

    The global parameter runs from 0 (first point) to the number of
    segments (last point); ``samples`` values are spread evenly over that
    range, both ends included.

    Args:
        points: Ordered control points
        samples: Number of samples over the whole path (>= 2)
        closed: Add a closing segment from the last point back to the first

    Returns:
        List of (x, y) samples

    Raises:
        InvalidOutline: If samples < 2
    """
    if samples < 2:
        raise InvalidOutline(f"samples must be >= 2, got {samples}")
    if not points:
        return []
    if len(points) == 1:
        return [points[0].point]

    controls = _segment_controls(points, closed)
    n_segments = controls.shape[0]

    t = np.linspace(0.0, float(n_segments), samples)
    index = np.minimum(np.floor(t).astype(np.int64), n_segments - 1)
    u = (t - index)[:, None]
    v = 1.0 - u

    p0 = controls[index, 0]
    p1 = controls[index, 1]
    p2 = controls[index, 2]
    p3 = controls[index, 3]
    curve = v ** 3 * p0 + 3.0 * v ** 2 * u * p1 + 3.0 * v * u ** 2 * p2 + u ** 3 * p3

    return [(float(x), float(y)) for x, y in curve]


def samples_for(points: Sequence[BezierControlPoint], per_segment: int, closed: bool = False) -> int:
    """Sample count that gives roughly ``per_segment`` samples on each segment."""
    n_segments = max(len(points) - 1, 1)
    if closed and len(points) > 2:
        n_segments += 1
    return max(2, n_segments * per_segment + 1)


def closed_outline(points: Sequence[BezierControlPoint], per_segment: int) -> List[Point]:
    """Evaluate a panel outline as a closed path."""
    return evaluate_outline(points, samples_for(points, per_segment, closed=True), closed=True)
