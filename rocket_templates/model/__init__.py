"""Design graph: entity model, document conversion, validation."""

from rocket_templates.geometry.bezier import BezierControlPoint
from rocket_templates.geometry.symmetry import SymmetryOptions
from rocket_templates.model.design import (
    BodyStructure,
    Component,
    ComponentMass,
    ComponentType,
    ConnectionType,
    CuttingMethod,
    Design,
    FinDesign,
    FinType,
    GlobalSettings,
    MassProperties,
    MaterialSpec,
    MechanismType,
    NoseconeStructure,
    PerformanceMetrics,
    Section,
    SectionConnection,
    SectionType,
    StabilityAnalysis,
    StabilityStatus,
    TemplateSettings,
    Vector3D,
    VersionHistoryEntry,
    default_sections,
    new_id,
)
from rocket_templates.model.validator import (
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
    validate_design,
)
from rocket_templates.model.serialization import (
    design_from_dict,
    design_to_dict,
    merge_patch,
)

__all__ = [
    "BezierControlPoint",
    "SymmetryOptions",
    "BodyStructure",
    "Component",
    "ComponentMass",
    "ComponentType",
    "ConnectionType",
    "CuttingMethod",
    "Design",
    "FinDesign",
    "FinType",
    "GlobalSettings",
    "MassProperties",
    "MaterialSpec",
    "MechanismType",
    "NoseconeStructure",
    "PerformanceMetrics",
    "Section",
    "SectionConnection",
    "SectionType",
    "StabilityAnalysis",
    "StabilityStatus",
    "TemplateSettings",
    "Vector3D",
    "VersionHistoryEntry",
    "default_sections",
    "new_id",
    "ValidationIssue",
    "ValidationReport",
    "ValidationSeverity",
    "validate_design",
    "design_from_dict",
    "design_to_dict",
    "merge_patch",
]
