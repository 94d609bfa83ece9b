"""
Unit tests for rocket_templates.geometry.symmetry module.

Tests:
- Copy counts
- Rotation about the body axis
- Mirrored copies
- Invalid options
"""

import pytest

from rocket_templates.errors import InvalidSymmetry
from rocket_templates.geometry.symmetry import SymmetryOptions, apply_symmetry

OUTLINE = [(10.0, 0.0), (20.0, 0.0), (20.0, 5.0)]


class TestApplySymmetry:
    """Tests for apply_symmetry function."""

    def test_disabled_returns_single_copy(self):
        """Test that disabled symmetry returns the outline unchanged."""
        result = apply_symmetry(OUTLINE, SymmetryOptions(enabled=False, count=4))
        assert result == [OUTLINE]

    def test_count_one(self):
        """Test that count 1 returns a single copy."""
        result = apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=1))
        assert len(result) == 1

    @pytest.mark.parametrize("count", [2, 3, 4, 6])
    def test_copy_count(self, count):
        """Test that enabled symmetry gives exactly `count` copies."""
        result = apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=count))
        assert len(result) == count
        assert all(len(copy) == len(OUTLINE) for copy in result)

    def test_central_rotation(self):
        """Test that central copies are rotated by 360/count degrees."""
        result = apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=4))
        assert result[0][0] == pytest.approx((10.0, 0.0))
        assert result[1][0] == pytest.approx((0.0, 10.0), abs=1e-9)
        assert result[2][0] == pytest.approx((-10.0, 0.0), abs=1e-9)

    def test_mirrored_copies(self):
        """Test that odd copies are mirrored across the named axis."""
        result = apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=2, axis="x"))
        # Mirror across x flips y, then a half turn
        assert result[1][2] == pytest.approx((-20.0, 5.0), abs=1e-9)

    def test_empty_outline(self):
        """Test that an empty outline yields empty copies."""
        result = apply_symmetry([], SymmetryOptions(enabled=True, count=3))
        assert result == [[], [], []]

    def test_count_below_one(self):
        """Test that count < 1 is rejected."""
        with pytest.raises(InvalidSymmetry):
            apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=0))

    def test_unknown_axis(self):
        """Test that an unknown axis is rejected."""
        with pytest.raises(InvalidSymmetry):
            apply_symmetry(OUTLINE, SymmetryOptions(enabled=True, count=2, axis="z"))

    def test_copies_property(self):
        """Test the number of physical copies."""
        assert SymmetryOptions(enabled=False, count=5).copies == 1
        assert SymmetryOptions(enabled=True, count=5).copies == 5
