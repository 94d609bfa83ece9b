"""
Symmetric replication of outlines.

Fins, spars and shroud panels are usually cut several times. A symmetry
setting turns one evaluated outline into ``count`` outlines spaced evenly
around the body axis (the outline origin).

Axes:
  central  copies rotated by 360/count degrees each
  x, y     same rotation, odd copies additionally mirrored across that axis
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from rocket_templates.errors import InvalidSymmetry

Point = Tuple[float, float]
Outline = List[Point]

SYMMETRY_AXES = ("central", "x", "y")

_MIRRORS = {
    "x": np.array([[1.0, 0.0], [0.0, -1.0]]),
    "y": np.array([[-1.0, 0.0], [0.0, 1.0]]),
}


@dataclass(frozen=True)
class SymmetryOptions:
    """Replication settings of a component."""
    enabled: bool = False
    count: int = 1
    axis: str = "central"

    @property
    def copies(self) -> int:
        """Number of physical copies this setting produces."""
        return self.count if self.enabled else 1


def _rotation(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s], [s, c]])


def apply_symmetry(outline: Sequence[Point], symmetry: SymmetryOptions) -> List[Outline]:
    """Replicate an outline according to symmetry options.

    Args:
        outline: Evaluated outline points
        symmetry: Replication settings

    Returns:
        ``[outline]`` when disabled or count == 1, else ``count`` outlines

    Raises:
        InvalidSymmetry: If count < 1 or the axis is unknown
    """
    if symmetry.count < 1:
        raise InvalidSymmetry(f"symmetry count must be >= 1, got {symmetry.count}")
    if not symmetry.enabled or symmetry.count == 1:
        return [list(outline)]
    if symmetry.axis not in SYMMETRY_AXES:
        raise InvalidSymmetry(
            f"unknown symmetry axis {symmetry.axis!r}, expected one of {SYMMETRY_AXES}"
        )

    if len(outline) == 0:
        return [[] for _ in range(symmetry.count)]

    pts = np.asarray(outline, dtype=np.float64)
    step = 2.0 * math.pi / symmetry.count
    mirror = _MIRRORS.get(symmetry.axis)

    result: List[Outline] = []
    for k in range(symmetry.count):
        transform = _rotation(k * step)
        if mirror is not None and k % 2 == 1:
            transform = transform @ mirror
        copy = pts @ transform.T
        result.append([(float(x), float(y)) for x, y in copy])
    return result
