"""
Unit tests for rocket_templates.analysis module.

Tests:
- Material catalog fallback
- Component mass and aggregation
- Center of pressure
- Stability classification thresholds
- Drag and height estimate
- DesignAnalyzer results
"""

import logging
import math

import pytest

from rocket_templates.analysis.mass_properties import (
    STABLE_MARGIN_CALIBERS,
    DesignAnalyzer,
    aggregate_mass,
    center_of_pressure,
    classify_stability,
    component_mass,
    drag_coefficient,
    estimate_height,
)
from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.geometry.bezier import BezierControlPoint
from rocket_templates.geometry.symmetry import SymmetryOptions
from rocket_templates.model.design import (
    Component,
    ComponentType,
    MaterialSpec,
    StabilityStatus,
    Vector3D,
)
from rocket_templates.project_config import AnalysisConfig, MaterialsConfig


def _square_component(size=100.0, thickness=1.0, doubled=False, symmetry=None, x=0.0):
    return Component(
        id="sq",
        type=ComponentType.OTHER,
        section_id="sec-body",
        name="Square",
        material=MaterialSpec("cardstock", thickness, doubled),
        bezier_controls=[
            BezierControlPoint(0.0, 0.0),
            BezierControlPoint(size, 0.0),
            BezierControlPoint(size, size),
            BezierControlPoint(0.0, size),
        ],
        position=Vector3D(x, 0.0, 0.0),
        symmetry=symmetry or SymmetryOptions(),
    )


class TestMaterialCatalog:
    """Tests for MaterialCatalog class."""

    def test_known_density(self):
        """Test lookup of a known material."""
        assert MaterialCatalog({"balsa": 160.0}).density("balsa") == 160.0

    def test_fallback_warns_once(self, caplog):
        """Test that unknown ids fall back and warn once per id."""
        catalog = MaterialCatalog({}, fallback_density=500.0)
        with caplog.at_level(logging.WARNING):
            assert catalog.density("mystery") == 500.0
            assert catalog.density("mystery") == 500.0
        assert sum("mystery" in r.getMessage() for r in caplog.records) == 1

    def test_from_config(self):
        """Test construction from configuration."""
        catalog = MaterialCatalog.from_config(MaterialsConfig({"x": 1.0}, 2.0))
        assert "x" in catalog
        assert catalog.fallback_density == 2.0


class TestComponentMass:
    """Tests for component_mass function."""

    def test_square_mass(self):
        """Test mass = density x area x thickness."""
        mass = component_mass(_square_component(), 750.0, 1.0, 8)
        # 750 kg/m^3 * 0.01 m^2 * 0.001 m
        assert mass.mass_kg == pytest.approx(0.0075)

    def test_doubled(self):
        """Test that doubled material doubles the mass."""
        mass = component_mass(_square_component(doubled=True), 750.0, 1.0, 8)
        assert mass.mass_kg == pytest.approx(0.015)

    def test_symmetry_copies(self):
        """Test that every symmetry copy adds mass."""
        comp = _square_component(symmetry=SymmetryOptions(enabled=True, count=4))
        assert component_mass(comp, 750.0, 1.0, 8).mass_kg == pytest.approx(0.03)

    def test_scale_is_squared(self):
        """Test that scale applies to both outline dimensions."""
        mass = component_mass(_square_component(), 750.0, 2.0, 8)
        assert mass.mass_kg == pytest.approx(0.03)

    def test_center_of_mass(self):
        """Test axial center = position + outline centroid."""
        mass = component_mass(_square_component(x=10.0), 750.0, 1.0, 8)
        assert mass.center_of_mass.x == pytest.approx(60.0)

    def test_degenerate_outline_has_no_mass(self):
        """Test that an outline without area weighs nothing."""
        comp = _square_component()
        comp.bezier_controls = comp.bezier_controls[:1]
        assert component_mass(comp, 750.0, 1.0, 8).mass_kg == 0.0


class TestAggregateMass:
    """Tests for aggregate_mass function."""

    def test_total_is_sum(self, design):
        """Test total mass equals the sum of component masses."""
        mp = aggregate_mass(design, MaterialCatalog())
        assert mp.total_mass_kg == pytest.approx(sum(m.mass_kg for m in mp.component_masses))
        assert len(mp.component_masses) == 3

    def test_cg_between_components(self, design):
        """Test the CG lies within the body."""
        mp = aggregate_mass(design, MaterialCatalog())
        assert 0.0 < mp.center_of_mass.x < design.global_settings.body_length_mm

    def test_no_components(self, design):
        """Test a massless design puts its CG at mid-body."""
        design.components = []
        mp = aggregate_mass(design, MaterialCatalog())
        assert mp.total_mass_kg == 0.0
        assert mp.center_of_mass.x == pytest.approx(250.0)


class TestCenterOfPressure:
    """Tests for center_of_pressure function."""

    def test_fins_move_cp_aft(self, design):
        """Test that fins pull the CP toward the tail."""
        with_fins = center_of_pressure(design)
        design.fin_designs = []
        without_fins = center_of_pressure(design)
        assert with_fins > without_fins

    def test_nose_only(self, design):
        """Test nose cone CP uses the nose shape factor."""
        design.fin_designs = []
        # Ogive nose over the first 100 mm
        assert center_of_pressure(design) == pytest.approx(0.466 * 100.0)

    def test_no_lifting_surface(self, design):
        """Test mid-body CP when nothing produces lift."""
        design.fin_designs = []
        design.sections = design.sections[1:]
        assert center_of_pressure(design) == pytest.approx(250.0)


class TestClassifyStability:
    """Tests for classify_stability thresholds."""

    def test_threshold_is_stable(self):
        """Test that exactly one caliber is stable."""
        assert STABLE_MARGIN_CALIBERS == 1.0
        assert classify_stability(1.0) is StabilityStatus.STABLE

    def test_just_below_threshold(self):
        """Test that 0.999 calibers is marginal."""
        assert classify_stability(0.999) is StabilityStatus.MARGINAL

    def test_zero_is_marginal(self):
        """Test the lower edge of the marginal band."""
        assert classify_stability(0.0) is StabilityStatus.MARGINAL

    def test_negative_is_unstable(self):
        """Test that negative margins are unstable."""
        assert classify_stability(-0.1) is StabilityStatus.UNSTABLE


class TestPerformance:
    """Tests for drag_coefficient and estimate_height."""

    def test_drag_grows_with_fins(self, design):
        """Test per-fin drag contribution."""
        base = drag_coefficient(design)
        design.components[2].symmetry = SymmetryOptions(enabled=True, count=6)
        assert drag_coefficient(design) == pytest.approx(base + 2 * 0.02)

    def test_height_without_mass(self):
        """Test that a massless design does not fly."""
        assert estimate_height(0.0, 0.5, 60.0, AnalysisConfig()) == 0.0

    def test_height_without_drag(self):
        """Test the ballistic limit when drag vanishes."""
        config = AnalysisConfig(launch_impulse_ns=1.0, gravity=10.0)
        # v0 = 10 m/s, h = v0^2 / 2g
        assert estimate_height(0.1, 0.0, 60.0, config) == pytest.approx(5.0)

    def test_drag_lowers_height(self):
        """Test that drag reduces the apogee."""
        config = AnalysisConfig()
        assert estimate_height(0.05, 0.8, 60.0, config) < estimate_height(0.05, 0.0, 60.0, config)


class TestDesignAnalyzer:
    """Tests for DesignAnalyzer class."""

    def test_margin_definition(self, design):
        """Test margin = (CP - CG) / diameter and matching status."""
        analysis = DesignAnalyzer().analyze(design)
        stability = analysis.stability
        expected = (stability.center_of_pressure.x - stability.center_of_gravity.x) / 60.0
        assert stability.stability_margin == pytest.approx(expected)
        assert stability.status is classify_stability(expected)
        assert analysis.performance.stability == pytest.approx(expected)

    def test_recommendations_for_unstable(self, design):
        """Test that non-stable designs get recommendations."""
        design.fin_designs = []
        analysis = DesignAnalyzer().analyze(design)
        assert analysis.stability.status is not StabilityStatus.STABLE
        assert analysis.stability.recommendations

    def test_zero_diameter(self, design):
        """Test that a zero diameter gives a zero margin and a warning."""
        design.global_settings.body_diameter_mm = 0.0
        analysis = DesignAnalyzer().analyze(design)
        assert analysis.stability.stability_margin == 0.0
        assert analysis.warnings

    def test_apply_to(self, design):
        """Test caching the metrics on a design."""
        analysis = DesignAnalyzer().analyze(design)
        analysis.apply_to(design)
        assert design.mass_properties is analysis.mass
        assert design.performance_metrics.weight_kg == pytest.approx(analysis.mass.total_mass_kg)

    def test_summary_and_dict(self, design):
        """Test report outputs."""
        analysis = DesignAnalyzer().analyze(design)
        assert "Margin:" in analysis.summary()
        data = analysis.to_dict()
        assert set(data) == {"mass_properties", "stability_analysis",
                             "performance_metrics", "warnings"}
        assert math.isfinite(data["performance_metrics"]["estimated_height_m"])
