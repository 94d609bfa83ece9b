"""Geometry kernel: bezier outlines, symmetry, planar statistics."""

from rocket_templates.geometry.bezier import (
    BezierControlPoint,
    closed_outline,
    evaluate_outline,
    samples_for,
)
from rocket_templates.geometry.outline_stats import (
    BoundingBox2D,
    bounding_box,
    normalize_to_origin,
    outline_area,
    outline_centroid,
    scale_outline,
)
from rocket_templates.geometry.symmetry import (
    SYMMETRY_AXES,
    SymmetryOptions,
    apply_symmetry,
)

__all__ = [
    "BezierControlPoint",
    "closed_outline",
    "evaluate_outline",
    "samples_for",
    "BoundingBox2D",
    "bounding_box",
    "normalize_to_origin",
    "outline_area",
    "outline_centroid",
    "scale_outline",
    "SYMMETRY_AXES",
    "SymmetryOptions",
    "apply_symmetry",
]
