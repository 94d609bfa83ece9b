"""
Planar outline statistics.

Provides:
- BoundingBox2D for layout and label placement
- Shoelace area and centroid of a closed outline (mass aggregation)
- Normalisation of an outline to the origin (template layout)
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]


@dataclass(frozen=True)
class BoundingBox2D:
    """Axis-aligned bounding box of an outline (mm)."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def union(self, other: 'BoundingBox2D') -> 'BoundingBox2D':
        return BoundingBox2D(
            min(self.min_x, other.min_x), min(self.min_y, other.min_y),
            max(self.max_x, other.max_x), max(self.max_y, other.max_y),
        )


def bounding_box(outline: Sequence[Point]) -> BoundingBox2D:
    """Bounding box of an outline; a zero box at the origin when empty."""
    if len(outline) == 0:
        return BoundingBox2D(0.0, 0.0, 0.0, 0.0)
    pts = np.asarray(outline, dtype=np.float64)
    lo = pts.min(axis=0)
    hi = pts.max(axis=0)
    return BoundingBox2D(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))


def _signed_area_terms(pts: np.ndarray) -> np.ndarray:
    x, y = pts[:, 0], pts[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)
    return x * y_next - x_next * y


def outline_area(outline: Sequence[Point]) -> float:
    """Enclosed area of the outline, treated as a closed polygon (mm^2)."""
    if len(outline) < 3:
        return 0.0
    pts = np.asarray(outline, dtype=np.float64)
    return float(abs(_signed_area_terms(pts).sum()) / 2.0)


def outline_centroid(outline: Sequence[Point]) -> Point:
    """Area centroid of the closed outline.

    Degenerate outlines (zero area) fall back to the mean of their points.
    """
    if len(outline) == 0:
        return (0.0, 0.0)
    pts = np.asarray(outline, dtype=np.float64)
    terms = _signed_area_terms(pts)
    signed_area = terms.sum() / 2.0
    if abs(signed_area) < 1e-12:
        mean = pts.mean(axis=0)
        return (float(mean[0]), float(mean[1]))

    x, y = pts[:, 0], pts[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)
    cx = ((x + x_next) * terms).sum() / (6.0 * signed_area)
    cy = ((y + y_next) * terms).sum() / (6.0 * signed_area)
    return (float(cx), float(cy))


def normalize_to_origin(outline: Sequence[Point]) -> List[Point]:
    """Translate an outline so its bounding box starts at (0, 0)."""
    box = bounding_box(outline)
    return [(x - box.min_x, y - box.min_y) for x, y in outline]


def scale_outline(outline: Sequence[Point], factor: float) -> List[Point]:
    """Uniformly scale an outline about the origin."""
    return [(x * factor, y * factor) for x, y in outline]
