"""
Mass and stability aggregation.

Provides:
- Per-component mass from outline area, material density and thickness
- Total mass and mass-weighted center of gravity
- Center of pressure (simplified Barrowman: nose cone + fin sets)
- Stability margin in calibers and its classification
- Drag coefficient and apogee estimate (categorical model)

Units: geometry in mm, densities in kg/m^3, masses in kg. Axial positions
are measured from the nose tip along +x.

These numbers are a design-time guide for paper and card rockets, not an
engineering-grade aerodynamic analysis.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.geometry.bezier import closed_outline
from rocket_templates.geometry.outline_stats import outline_area, outline_centroid
from rocket_templates.model.design import (
    Component,
    ComponentMass,
    ComponentType,
    Design,
    MassProperties,
    NoseconeStructure,
    PerformanceMetrics,
    StabilityAnalysis,
    StabilityStatus,
    Vector3D,
)
from rocket_templates.model.serialization import (
    mass_properties_to_dict,
    performance_to_dict,
    stability_to_dict,
)
from rocket_templates.project_config import AnalysisConfig

logger = logging.getLogger(__name__)

STABLE_MARGIN_CALIBERS = 1.0

# Nose cone CP station as a fraction of nose length, by nose shape
NOSE_CP_FACTORS = {
    "conical": 0.666,
    "ogive": 0.466,
    "parabolic": 0.5,
    "elliptical": 0.333,
    "von_karman": 0.437,
}
DEFAULT_NOSE_CP_FACTOR = 0.5
NOSE_CN_ALPHA = 2.0

# Base drag coefficient by nose tip construction
NOSE_BASE_DRAG = {
    "pointed": 0.30,
    "rounded": 0.35,
    "flat": 0.55,
}
DEFAULT_NOSE_BASE_DRAG = 0.40
PER_FIN_DRAG = 0.02
FINENESS_DRAG = 0.5


def classify_stability(margin: float) -> StabilityStatus:
    """Classify a static margin given in calibers."""
    if margin >= STABLE_MARGIN_CALIBERS:
        return StabilityStatus.STABLE
    if margin >= 0.0:
        return StabilityStatus.MARGINAL
    return StabilityStatus.UNSTABLE


@dataclass
class DesignAnalysis:
    """Derived metrics of one design."""
    mass: MassProperties
    stability: StabilityAnalysis
    performance: PerformanceMetrics
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """Generate human-readable summary."""
        cg = self.stability.center_of_gravity.x
        cp = self.stability.center_of_pressure.x
        lines = [
            "Design Analysis",
            "=" * 40,
            f"Components:   {len(self.mass.component_masses)}",
            f"Total mass:   {self.mass.total_mass_kg * 1000.0:.1f} g",
            f"",
            f"CG:           {cg:.1f} mm from nose tip",
            f"CP:           {cp:.1f} mm from nose tip",
            f"Margin:       {self.stability.stability_margin:.2f} cal "
            f"({self.stability.status.value})",
            f"",
            f"Drag coeff:   {self.performance.drag_coefficient:.3f}",
            f"Est. apogee:  {self.performance.estimated_height_m:.1f} m",
        ]
        if self.stability.recommendations:
            lines.append("")
            lines.append("Recommendations:")
            for rec in self.stability.recommendations:
                lines.append(f"  - {rec}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "mass_properties": mass_properties_to_dict(self.mass),
            "stability_analysis": stability_to_dict(self.stability),
            "performance_metrics": performance_to_dict(self.performance),
            "warnings": list(self.warnings),
        }

    def apply_to(self, design: Design) -> None:
        """Cache the metrics on a design."""
        design.mass_properties = self.mass
        design.stability_analysis = self.stability
        design.performance_metrics = self.performance


# ---------------------------------------------------------------------------
# Mass
# ---------------------------------------------------------------------------

def component_mass(component: Component, density: float, scale: float,
                   samples_per_segment: int) -> ComponentMass:
    """Mass and center of mass of one component, all copies included.

    Args:
        component: Component with a closed panel outline
        density: Material density (kg/m^3)
        scale: Global geometry scale factor
        samples_per_segment: Outline sampling density

    Returns:
        ComponentMass (kg, mm)
    """
    outline = closed_outline(component.bezier_controls, samples_per_segment)
    area_mm2 = outline_area(outline) * scale * scale
    cx, cy = outline_centroid(outline)

    thickness_m = component.material.thickness_mm * 1e-3
    mass = density * area_mm2 * 1e-6 * thickness_m
    if component.material.doubled:
        mass *= 2.0
    copies = component.symmetry.copies
    mass *= copies

    pos = component.position
    # Copies spread around the body axis; their lateral offsets cancel.
    lateral = pos.y + cy * scale if copies == 1 else pos.y
    center = Vector3D(pos.x + cx * scale, lateral, pos.z)
    return ComponentMass(component.id, mass, center)


def aggregate_mass(design: Design, catalog: MaterialCatalog,
                   samples_per_segment: int = 16) -> MassProperties:
    """Total structural mass and mass-weighted center of gravity.

    A design without mass puts its CG at mid-body.
    """
    scale = design.global_settings.scale
    masses = [
        component_mass(c, catalog.density(c.material.material_id), scale, samples_per_segment)
        for c in design.components
    ]
    total = sum(m.mass_kg for m in masses)

    if total <= 0.0:
        center = Vector3D(design.global_settings.body_length_mm / 2.0, 0.0, 0.0)
    else:
        center = Vector3D(
            sum(m.mass_kg * m.center_of_mass.x for m in masses) / total,
            sum(m.mass_kg * m.center_of_mass.y for m in masses) / total,
            sum(m.mass_kg * m.center_of_mass.z for m in masses) / total,
        )
    return MassProperties(total_mass_kg=total, center_of_mass=center, component_masses=masses)


# ---------------------------------------------------------------------------
# Aerodynamics
# ---------------------------------------------------------------------------

def _nose_term(design: Design) -> Optional[Tuple[float, float]]:
    """(CN_alpha, CP station) of the nose cone, or None without one."""
    nose = design.nosecone()
    if nose is None:
        return None
    body_length = design.global_settings.body_length_mm
    nose_length = (nose.end - nose.start) * body_length
    shape = nose.structure.support_type if isinstance(nose.structure, NoseconeStructure) else ""
    factor = NOSE_CP_FACTORS.get(shape, DEFAULT_NOSE_CP_FACTOR)
    return NOSE_CN_ALPHA, nose.start * body_length + factor * nose_length


def fin_set_terms(design: Design) -> List[Tuple[float, float]]:
    """(CN_alpha, CP station) of every fin set.

    A fin design counts once per symmetry copy of its fin component.
    Planforms with zero chord or span are skipped.
    """
    diameter = design.global_settings.body_diameter_mm
    radius = diameter / 2.0
    components = design.component_map()

    terms: List[Tuple[float, float]] = []
    for fin in design.fin_designs:
        component = components.get(fin.component_id)
        if component is None or component.type is not ComponentType.FIN:
            continue
        a, b, s = fin.root_chord_mm, fin.tip_chord_mm, fin.span_mm
        if a + b <= 0.0 or s <= 0.0 or diameter <= 0.0:
            continue
        n = component.symmetry.copies
        m = fin.sweep_length_mm

        mid_chord = math.sqrt(s * s + (m + (b - a) / 2.0) ** 2)
        interference = 1.0 + radius / (s + radius)
        cn = interference * (4.0 * n * (s / diameter) ** 2) / (
            1.0 + math.sqrt(1.0 + (2.0 * mid_chord / (a + b)) ** 2))
        x = (fin.axial_position_mm
             + m * (a + 2.0 * b) / (3.0 * (a + b))
             + (a + b - a * b / (a + b)) / 6.0)
        terms.append((cn, x))
    return terms


def center_of_pressure(design: Design) -> float:
    """Axial CP station (mm from nose tip); mid-body with no lifting surface."""
    terms = fin_set_terms(design)
    nose = _nose_term(design)
    if nose is not None:
        terms.append(nose)
    total_cn = sum(cn for cn, _ in terms)
    if total_cn <= 0.0:
        return design.global_settings.body_length_mm / 2.0
    return sum(cn * x for cn, x in terms) / total_cn


def fin_count(design: Design) -> int:
    return sum(c.symmetry.copies for c in design.components if c.type is ComponentType.FIN)


def drag_coefficient(design: Design) -> float:
    """Categorical drag estimate: nose tip + per-fin + fineness terms."""
    nose = design.nosecone()
    if nose is not None and isinstance(nose.structure, NoseconeStructure):
        cd = NOSE_BASE_DRAG.get(nose.structure.tip_construction, DEFAULT_NOSE_BASE_DRAG)
    else:
        cd = DEFAULT_NOSE_BASE_DRAG
    cd += PER_FIN_DRAG * fin_count(design)

    gs = design.global_settings
    if gs.body_diameter_mm > 0.0:
        fineness = gs.body_length_mm / gs.body_diameter_mm
        cd += FINENESS_DRAG / max(fineness, 1.0)
    return cd


def estimate_height(mass_kg: float, cd: float, diameter_mm: float,
                    config: AnalysisConfig) -> float:
    """Coast height of a vertical launch with quadratic drag.

    The launch impulse is delivered instantly: v0 = I / m, then
    h = m / (2k) * ln(1 + k v0^2 / (m g)) with k = rho Cd A / 2.
    """
    if mass_kg <= 0.0:
        return 0.0
    v0 = config.launch_impulse_ns / mass_kg
    area = math.pi * (diameter_mm * 1e-3 / 2.0) ** 2
    k = 0.5 * config.air_density * cd * area
    if k <= 0.0:
        return v0 * v0 / (2.0 * config.gravity)
    return mass_kg / (2.0 * k) * math.log1p(k * v0 * v0 / (mass_kg * config.gravity))


def recommendations(design: Design, status: StabilityStatus) -> List[str]:
    if status is StabilityStatus.STABLE:
        return []
    recs: List[str] = []
    if not design.fin_designs:
        recs.append("Add fins to the main body to move the center of pressure aft")
    if status is StabilityStatus.UNSTABLE:
        recs.append("Center of pressure is ahead of the center of gravity: "
                    "add nose weight or move the fins further aft")
    else:
        recs.append(f"Add nose weight or enlarge the fins to reach a margin of "
                    f"at least {STABLE_MARGIN_CALIBERS:.1f} caliber")
    return recs


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

class DesignAnalyzer:
    """Computes the derived metrics of designs."""

    def __init__(self, catalog: Optional[MaterialCatalog] = None,
                 config: Optional[AnalysisConfig] = None,
                 samples_per_segment: int = 16):
        self.catalog = catalog or MaterialCatalog()
        self.config = config or AnalysisConfig()
        self.samples_per_segment = samples_per_segment

    def analyze(self, design: Design) -> DesignAnalysis:
        """Compute mass, stability and performance of a design.

        Args:
            design: Design to analyze (not modified)

        Returns:
            DesignAnalysis with all derived metrics
        """
        warnings: List[str] = []
        mass = aggregate_mass(design, self.catalog, self.samples_per_segment)

        cp_x = center_of_pressure(design)
        cg = mass.center_of_mass
        diameter = design.global_settings.body_diameter_mm
        if diameter > 0.0:
            margin = (cp_x - cg.x) / diameter
        else:
            warnings.append("Body diameter is not positive; stability margin set to 0")
            margin = 0.0
        status = classify_stability(margin)

        stability = StabilityAnalysis(
            center_of_pressure=Vector3D(cp_x, 0.0, 0.0),
            center_of_gravity=cg,
            reference_diameter_mm=diameter,
            stability_margin=margin,
            status=status,
            recommendations=recommendations(design, status),
        )

        cd = drag_coefficient(design)
        performance = PerformanceMetrics(
            weight_kg=mass.total_mass_kg,
            stability=margin,
            drag_coefficient=cd,
            estimated_height_m=estimate_height(mass.total_mass_kg, cd, diameter, self.config),
            center_of_gravity=cg,
            center_of_pressure=stability.center_of_pressure,
        )

        for w in warnings:
            logger.warning("Design %s: %s", design.id, w)
        logger.debug("Analyzed design %s: mass=%.4f kg margin=%.2f cal (%s)",
                     design.id, mass.total_mass_kg, margin, status.value)

        return DesignAnalysis(mass, stability, performance, warnings)
