"""
Design graph validation.

Checks a Design against the invariants that keep it buildable:
- Sections: non-empty, boundaries in [0, 1] with start < end, and the
  ordered sequence tiles [0, 1] without gaps or overlaps
- Unique ids within each entity list
- Every cross reference (component -> section, linked components,
  connections, fin designs) resolves inside the same design
- Section substructure matches the section type
- Global settings (scale, body length and diameter) are positive
- Symmetry and material parameters are physically meaningful
- Version history is ordered and ends at the current version

All violations are collected; validation never stops at the first one.
Warnings (unknown material, degenerate outline) do not make a report
invalid.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Mapping, Optional

from rocket_templates.errors import DesignValidationError
from rocket_templates.geometry.symmetry import SYMMETRY_AXES
from rocket_templates.model.design import (
    STRUCTURE_FOR_SECTION,
    ComponentType,
    Design,
)

logger = logging.getLogger(__name__)

BOUNDARY_TOLERANCE = 1e-9


class ValidationSeverity(Enum):
    """Severity level of validation issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """A single invariant violation."""
    code: str
    severity: ValidationSeverity
    message: str
    path: str = ""

    def __str__(self) -> str:
        where = f" at {self.path}" if self.path else ""
        return f"[{self.severity.value.upper()}] {self.code}{where}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "path": self.path,
        }


@dataclass
class ValidationReport:
    """Complete validation report for a design."""
    design_id: str
    n_sections: int
    n_components: int
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def warnings(self) -> List[ValidationIssue]:
        """Get all warning-level issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    @property
    def errors(self) -> List[ValidationIssue]:
        """Get all error-level issues."""
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def codes(self) -> List[str]:
        return [i.code for i in self.issues]

    def raise_if_invalid(self) -> None:
        """Raise DesignValidationError carrying every error-level issue."""
        if not self.is_valid:
            raise DesignValidationError(self.errors)

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            f"Design Validation Report",
            f"=" * 40,
            f"Design: {self.design_id or '(unsaved)'}",
            f"Sections: {self.n_sections}",
            f"Components: {self.n_components}",
        ]

        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  - {issue}")

        lines.append("")
        lines.append(f"Overall: {'VALID' if self.is_valid else 'INVALID'}")

        return "\n".join(lines)


class _Collector:
    def __init__(self):
        self.issues: List[ValidationIssue] = []

    def error(self, code: str, message: str, path: str = "") -> None:
        self.issues.append(ValidationIssue(code, ValidationSeverity.ERROR, message, path))

    def warning(self, code: str, message: str, path: str = "") -> None:
        self.issues.append(ValidationIssue(code, ValidationSeverity.WARNING, message, path))


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

def _check_duplicates(ids: Iterable[str], kind: str, out: _Collector) -> None:
    seen = set()
    for i, entity_id in enumerate(ids):
        if entity_id in seen:
            out.error("DUPLICATE_ID", f"duplicate {kind} id '{entity_id}'", f"{kind}s[{i}].id")
        seen.add(entity_id)


def _check_settings(design: Design, out: _Collector) -> None:
    gs = design.global_settings
    for name in ("scale", "body_length_mm", "body_diameter_mm"):
        value = getattr(gs, name)
        if value <= 0:
            out.error("INVALID_SETTINGS", f"{name} must be > 0, got {value}",
                      f"global_settings.{name}")


def _check_sections(design: Design, out: _Collector) -> None:
    sections = design.sections
    if not sections:
        out.error("EMPTY_SECTIONS", "design must have at least one section", "sections")
        return

    _check_duplicates((s.id for s in sections), "section", out)

    for i, s in enumerate(sections):
        path = f"sections[{i}]"
        if not (0.0 <= s.start <= 1.0) or not (0.0 <= s.end <= 1.0):
            out.error("BOUNDARY_RANGE",
                      f"section '{s.id}' boundaries [{s.start}, {s.end}] outside [0, 1]", path)
        elif s.start >= s.end:
            out.error("BOUNDARY_RANGE",
                      f"section '{s.id}' start {s.start} must be < end {s.end}", path)

        expected = STRUCTURE_FOR_SECTION[s.type]
        if not isinstance(s.structure, expected):
            out.error("SECTION_STRUCTURE_MISMATCH",
                      f"section '{s.id}' of type {s.type.value} needs a {expected.__name__}",
                      f"{path}.structure")

    if abs(sections[0].start) > BOUNDARY_TOLERANCE:
        out.error("BOUNDARY_TILING",
                  f"first section starts at {sections[0].start}, expected 0", "sections[0].start")
    if abs(sections[-1].end - 1.0) > BOUNDARY_TOLERANCE:
        out.error("BOUNDARY_TILING",
                  f"last section ends at {sections[-1].end}, expected 1",
                  f"sections[{len(sections) - 1}].end")
    for i in range(len(sections) - 1):
        a, b = sections[i], sections[i + 1]
        gap = b.start - a.end
        if abs(gap) > BOUNDARY_TOLERANCE:
            kind = "gap" if gap > 0 else "overlap"
            out.error("BOUNDARY_TILING",
                      f"{kind} between section '{a.id}' (end {a.end}) "
                      f"and '{b.id}' (start {b.start})",
                      f"sections[{i + 1}].start")


def _check_components(design: Design, materials: Optional[Mapping[str, float]],
                      out: _Collector) -> None:
    section_ids = {s.id for s in design.sections}
    component_ids = {c.id for c in design.components}

    _check_duplicates((c.id for c in design.components), "component", out)

    for i, c in enumerate(design.components):
        path = f"components[{i}]"
        if c.section_id not in section_ids:
            out.error("DANGLING_REFERENCE",
                      f"component '{c.id}' refers to missing section '{c.section_id}'",
                      f"{path}.section_id")

        for j, linked in enumerate(c.linked_components):
            if linked == c.id:
                out.error("SELF_REFERENCE",
                          f"component '{c.id}' links to itself",
                          f"{path}.linked_components[{j}]")
            elif linked not in component_ids:
                out.error("DANGLING_REFERENCE",
                          f"component '{c.id}' links to missing component '{linked}'",
                          f"{path}.linked_components[{j}]")

        if c.symmetry.count < 1:
            out.error("INVALID_SYMMETRY",
                      f"symmetry count must be >= 1, got {c.symmetry.count}",
                      f"{path}.symmetry.count")
        if c.symmetry.axis not in SYMMETRY_AXES:
            out.error("INVALID_SYMMETRY",
                      f"unknown symmetry axis '{c.symmetry.axis}'",
                      f"{path}.symmetry.axis")

        if c.material.thickness_mm <= 0:
            out.error("INVALID_MATERIAL",
                      f"material thickness must be > 0, got {c.material.thickness_mm}",
                      f"{path}.material.thickness_mm")
        if not c.material.material_id:
            out.error("INVALID_MATERIAL", "material id is empty", f"{path}.material.material_id")
        elif materials is not None and c.material.material_id not in materials:
            out.warning("UNKNOWN_MATERIAL",
                        f"material '{c.material.material_id}' not in catalog, "
                        f"fallback density will be used",
                        f"{path}.material.material_id")

        if len(c.bezier_controls) < 2:
            out.warning("DEGENERATE_OUTLINE",
                        f"component '{c.id}' has {len(c.bezier_controls)} control point(s)",
                        f"{path}.bezier_controls")


def _check_connections(design: Design, out: _Collector) -> None:
    section_ids = {s.id for s in design.sections}
    component_ids = {c.id for c in design.components}

    _check_duplicates((sc.id for sc in design.section_connections), "section_connection", out)

    for i, sc in enumerate(design.section_connections):
        path = f"section_connections[{i}]"
        if sc.section1_id == sc.section2_id:
            out.error("SELF_REFERENCE",
                      f"connection '{sc.id}' joins section '{sc.section1_id}' to itself", path)
        for key in ("section1_id", "section2_id"):
            ref = getattr(sc, key)
            if ref not in section_ids:
                out.error("DANGLING_REFERENCE",
                          f"connection '{sc.id}' refers to missing section '{ref}'",
                          f"{path}.{key}")
        for j, ref in enumerate(sc.components):
            if ref not in component_ids:
                out.error("DANGLING_REFERENCE",
                          f"connection '{sc.id}' refers to missing component '{ref}'",
                          f"{path}.components[{j}]")


def _check_fins(design: Design, out: _Collector) -> None:
    section_ids = {s.id for s in design.sections}
    components = design.component_map()

    _check_duplicates((f.id for f in design.fin_designs), "fin_design", out)

    for i, fin in enumerate(design.fin_designs):
        path = f"fin_designs[{i}]"
        component = components.get(fin.component_id)
        if component is None:
            out.error("DANGLING_REFERENCE",
                      f"fin design '{fin.id}' refers to missing component '{fin.component_id}'",
                      f"{path}.component_id")
        elif component.type is not ComponentType.FIN:
            out.error("TYPE_MISMATCH",
                      f"fin design '{fin.id}' refers to component '{fin.component_id}' "
                      f"of type {component.type.value}, expected fin",
                      f"{path}.component_id")
        if fin.section_id not in section_ids:
            out.error("DANGLING_REFERENCE",
                      f"fin design '{fin.id}' refers to missing section '{fin.section_id}'",
                      f"{path}.section_id")


def _check_history(design: Design, out: _Collector) -> None:
    """History starts at 1, never decreases, grows by at most 1 per entry
    and its last entry carries the current version.

    Repeated versions are allowed: visibility toggles record an entry
    without incrementing the version.
    """
    history = design.history
    if not history:
        return
    if history[0].version != 1:
        out.error("HISTORY_ORDER",
                  f"history must start at version 1, got {history[0].version}",
                  "history[0].version")
    for i in range(1, len(history)):
        step = history[i].version - history[i - 1].version
        if step < 0 or step > 1:
            out.error("HISTORY_ORDER",
                      f"history version jumps from {history[i - 1].version} "
                      f"to {history[i].version}",
                      f"history[{i}].version")
    if history[-1].version != design.version:
        out.error("HISTORY_ORDER",
                  f"latest history entry is version {history[-1].version}, "
                  f"design is at version {design.version}",
                  "version")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate_design(design: Design,
                    materials: Optional[Mapping[str, float]] = None) -> ValidationReport:
    """Validate a design graph.

    Args:
        design: Design (stored or drafted) to check
        materials: Optional material catalog (id -> density); when given,
            unknown material ids are reported as warnings

    Returns:
        ValidationReport with every issue found
    """
    logger.debug("Validating design %s: %d sections, %d components",
                 design.id, len(design.sections), len(design.components))

    out = _Collector()
    _check_settings(design, out)
    _check_sections(design, out)
    _check_components(design, materials, out)
    _check_connections(design, out)
    _check_fins(design, out)
    _check_history(design, out)

    report = ValidationReport(
        design_id=design.id,
        n_sections=len(design.sections),
        n_components=len(design.components),
        issues=out.issues,
    )

    if report.errors:
        logger.info("Validation of design %s: INVALID (%d error(s), %d warning(s))",
                    design.id, len(report.errors), len(report.warnings))
    else:
        logger.debug("Validation of design %s: VALID (%d warning(s))",
                     design.id, len(report.warnings))
    return report
