"""Mass, stability and performance aggregation."""

from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.analysis.mass_properties import (
    STABLE_MARGIN_CALIBERS,
    DesignAnalysis,
    DesignAnalyzer,
    aggregate_mass,
    center_of_pressure,
    classify_stability,
    component_mass,
    drag_coefficient,
    estimate_height,
)

__all__ = [
    "MaterialCatalog",
    "STABLE_MARGIN_CALIBERS",
    "DesignAnalysis",
    "DesignAnalyzer",
    "aggregate_mass",
    "center_of_pressure",
    "classify_stability",
    "component_mass",
    "drag_coefficient",
    "estimate_height",
]
