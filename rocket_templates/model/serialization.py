"""
Design document serialization.

Provides:
- design_to_dict / design_from_dict: Design <-> JSON-safe document
- merge_patch: draft the next state of a design from a partial document

Documents use snake_case keys and ISO-8601 timestamps. Optional fields may be
omitted from input documents; missing lists become empty lists.
"""

import copy
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from rocket_templates.errors import DesignValidationError
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
    default_structure,
)
from rocket_templates.model.validator import ValidationIssue, ValidationSeverity

logger = logging.getLogger(__name__)

# Keys owned by the versioning engine; a patch can never set them.
ENGINE_FIELDS = frozenset({"id", "owner_id", "created_at", "version", "history"})

# Derived, recomputed on every write.
DERIVED_FIELDS = frozenset({"mass_properties", "stability_analysis", "performance_metrics"})


class _DocumentError(ValueError):
    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(message)


# ---------------------------------------------------------------------------
# Design -> document
# ---------------------------------------------------------------------------

def _vec(v: Vector3D) -> Dict[str, float]:
    return {"x": v.x, "y": v.y, "z": v.z}


def _control_point(p: BezierControlPoint) -> dict:
    return {
        "x": p.x,
        "y": p.y,
        **({"handle_in": list(p.handle_in)} if p.handle_in is not None else {}),
        **({"handle_out": list(p.handle_out)} if p.handle_out is not None else {}),
    }


def _structure(structure) -> dict:
    data = {"kind": structure.kind}
    data.update(vars(structure))
    return data


def mass_properties_to_dict(mp: Optional[MassProperties]) -> Optional[dict]:
    if mp is None:
        return None
    return {
        "total_mass_kg": mp.total_mass_kg,
        "center_of_mass": _vec(mp.center_of_mass),
        "component_masses": [
            {
                "component_id": cm.component_id,
                "mass_kg": cm.mass_kg,
                "center_of_mass": _vec(cm.center_of_mass),
            }
            for cm in mp.component_masses
        ],
    }


def stability_to_dict(sa: Optional[StabilityAnalysis]) -> Optional[dict]:
    if sa is None:
        return None
    return {
        "center_of_pressure": _vec(sa.center_of_pressure),
        "center_of_gravity": _vec(sa.center_of_gravity),
        "reference_diameter_mm": sa.reference_diameter_mm,
        "stability_margin": sa.stability_margin,
        "status": sa.status.value,
        "recommendations": list(sa.recommendations),
    }


def performance_to_dict(pm: Optional[PerformanceMetrics]) -> Optional[dict]:
    if pm is None:
        return None
    return {
        "weight_kg": pm.weight_kg,
        "stability": pm.stability,
        "drag_coefficient": pm.drag_coefficient,
        "estimated_height_m": pm.estimated_height_m,
        "center_of_gravity": _vec(pm.center_of_gravity),
        "center_of_pressure": _vec(pm.center_of_pressure),
    }


def design_to_dict(design: Design) -> dict:
    """Convert a Design to a JSON-serializable dict."""
    gs = design.global_settings
    ts = design.template_settings
    return {
        "id": design.id,
        "name": design.name,
        "owner_id": design.owner_id,
        "is_public": design.is_public,
        "global_settings": {
            "default_cutting_method": gs.default_cutting_method.value,
            "default_material": gs.default_material,
            "scale": gs.scale,
            "body_length_mm": gs.body_length_mm,
            "body_diameter_mm": gs.body_diameter_mm,
        },
        "sections": [
            {
                "id": s.id,
                "type": s.type.value,
                "name": s.name,
                "start": s.start,
                "end": s.end,
                "structure": _structure(s.structure),
            }
            for s in design.sections
        ],
        "components": [
            {
                "id": c.id,
                "type": c.type.value,
                "section_id": c.section_id,
                "name": c.name,
                "material": {
                    "material_id": c.material.material_id,
                    "thickness_mm": c.material.thickness_mm,
                    "doubled": c.material.doubled,
                },
                "cutting_method": c.cutting_method.value,
                "bezier_controls": [_control_point(p) for p in c.bezier_controls],
                "position": _vec(c.position),
                "rotation": _vec(c.rotation),
                "symmetry": {
                    "enabled": c.symmetry.enabled,
                    "count": c.symmetry.count,
                    "axis": c.symmetry.axis,
                },
                "linked_components": list(c.linked_components),
                "constraints": list(c.constraints),
                "metadata": dict(c.metadata),
            }
            for c in design.components
        ],
        "section_connections": [
            {
                "id": sc.id,
                "section1_id": sc.section1_id,
                "section2_id": sc.section2_id,
                "connection_type": sc.connection_type.value,
                "mechanism_type": sc.mechanism_type.value,
                "components": list(sc.components),
            }
            for sc in design.section_connections
        ],
        "fin_designs": [
            {
                "id": f.id,
                "component_id": f.component_id,
                "section_id": f.section_id,
                "name": f.name,
                "fin_type": f.fin_type.value,
                "root_chord_mm": f.root_chord_mm,
                "tip_chord_mm": f.tip_chord_mm,
                "span_mm": f.span_mm,
                "sweep_angle_deg": f.sweep_angle_deg,
                "axial_position_mm": f.axial_position_mm,
            }
            for f in design.fin_designs
        ],
        "template_settings": {
            "paper_size": ts.paper_size,
            "orientation": ts.orientation,
            "units": ts.units,
            "include_instructions": ts.include_instructions,
            "include_registration_marks": ts.include_registration_marks,
        },
        "mass_properties": mass_properties_to_dict(design.mass_properties),
        "stability_analysis": stability_to_dict(design.stability_analysis),
        "performance_metrics": performance_to_dict(design.performance_metrics),
        "version": design.version,
        "history": [
            {
                "version": h.version,
                "timestamp": h.timestamp.isoformat(),
                "changes": h.changes,
            }
            for h in design.history
        ],
        "created_at": design.created_at.isoformat(),
        "updated_at": design.updated_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Document -> Design
# ---------------------------------------------------------------------------

def _require(data: dict, key: str, path: str) -> Any:
    if not isinstance(data, dict):
        raise _DocumentError(path, f"{path} must be an object")
    if key not in data:
        raise _DocumentError(f"{path}.{key}", f"missing required field '{key}'")
    return data[key]


def _enum(enum_cls, value, path: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise _DocumentError(path, f"invalid value {value!r} (expected one of: {allowed})")


def _float(value, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _DocumentError(path, f"expected a number, got {value!r}")
    if not math.isfinite(value):
        raise _DocumentError(path, f"expected a finite number, got {value!r}")
    return float(value)


def _bool(value, path: str) -> bool:
    if not isinstance(value, bool):
        raise _DocumentError(path, f"expected a boolean, got {value!r}")
    return value


def _int(value, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _DocumentError(path, f"expected an integer, got {value!r}")
    return value


def _list(data: dict, key: str, path: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise _DocumentError(f"{path}.{key}", f"'{key}' must be a list")
    return value


def _object(data: dict, key: str, path: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise _DocumentError(f"{path}.{key}", f"'{key}' must be an object")
    return value


def _timestamp(value, path: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise _DocumentError(path, f"invalid timestamp {value!r}")


def _parse_vec(data: Optional[dict], path: str) -> Vector3D:
    if data is None:
        return Vector3D()
    if not isinstance(data, dict):
        raise _DocumentError(path, f"{path} must be an object")
    return Vector3D(
        x=_float(data.get("x", 0.0), f"{path}.x"),
        y=_float(data.get("y", 0.0), f"{path}.y"),
        z=_float(data.get("z", 0.0), f"{path}.z"),
    )


def _parse_handle(value, path: str):
    if value is None:
        return None
    if isinstance(value, dict):
        value = [value.get("x"), value.get("y")]
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise _DocumentError(path, "handle must be [x, y]")
    return (_float(value[0], f"{path}[0]"), _float(value[1], f"{path}[1]"))


def _parse_control_point(data: dict, path: str) -> BezierControlPoint:
    return BezierControlPoint(
        x=_float(_require(data, "x", path), f"{path}.x"),
        y=_float(_require(data, "y", path), f"{path}.y"),
        handle_in=_parse_handle(data.get("handle_in"), f"{path}.handle_in"),
        handle_out=_parse_handle(data.get("handle_out"), f"{path}.handle_out"),
    )


def _parse_structure(section_type: SectionType, data: Optional[dict], path: str):
    """Parse a tagged section substructure.

    The tag is recorded but not enforced here: a nosecone carrying body
    fields is reported by the validator as SECTION_STRUCTURE_MISMATCH.
    """
    if data is None:
        return default_structure(section_type)
    if not isinstance(data, dict):
        raise _DocumentError(path, f"{path} must be an object")

    kind = data.get("kind")
    if kind is None:
        kind = "nosecone" if section_type is SectionType.NOSECONE else "body"
    if kind == "nosecone":
        cls = NoseconeStructure
    elif kind == "body":
        cls = BodyStructure
    else:
        raise _DocumentError(f"{path}.kind", f"unknown structure kind {kind!r}")

    template = cls()
    values = {}
    for name, default in vars(template).items():
        if name not in data:
            continue
        value = data[name]
        if isinstance(default, bool):
            value = _bool(value, f"{path}.{name}")
        elif isinstance(default, int):
            value = _int(value, f"{path}.{name}")
        elif not isinstance(value, str):
            raise _DocumentError(f"{path}.{name}", f"expected a string, got {value!r}")
        values[name] = value
    return cls(**values)


def _parse_section(data: dict, path: str) -> Section:
    section_type = _enum(SectionType, _require(data, "type", path), f"{path}.type")
    return Section(
        id=str(_require(data, "id", path)),
        type=section_type,
        name=str(data.get("name", section_type.value)),
        start=_float(_require(data, "start", path), f"{path}.start"),
        end=_float(_require(data, "end", path), f"{path}.end"),
        structure=_parse_structure(section_type, data.get("structure"), f"{path}.structure"),
    )


def _parse_component(data: dict, path: str, settings: GlobalSettings) -> Component:
    if not isinstance(data, dict):
        raise _DocumentError(path, f"{path} must be an object")
    material = _object(data, "material", path)
    symmetry = _object(data, "symmetry", path)
    metadata = _object(data, "metadata", path)

    return Component(
        id=str(_require(data, "id", path)),
        type=_enum(ComponentType, _require(data, "type", path), f"{path}.type"),
        section_id=str(_require(data, "section_id", path)),
        name=str(data.get("name", "")),
        material=MaterialSpec(
            material_id=str(material.get("material_id", settings.default_material)),
            thickness_mm=_float(material.get("thickness_mm", 0.0), f"{path}.material.thickness_mm"),
            doubled=_bool(material.get("doubled", False), f"{path}.material.doubled"),
        ),
        cutting_method=_enum(
            CuttingMethod,
            data.get("cutting_method", settings.default_cutting_method.value),
            f"{path}.cutting_method",
        ),
        bezier_controls=[
            _parse_control_point(p, f"{path}.bezier_controls[{i}]")
            for i, p in enumerate(_list(data, "bezier_controls", path))
        ],
        position=_parse_vec(data.get("position"), f"{path}.position"),
        rotation=_parse_vec(data.get("rotation"), f"{path}.rotation"),
        symmetry=SymmetryOptions(
            enabled=_bool(symmetry.get("enabled", False), f"{path}.symmetry.enabled"),
            count=_int(symmetry.get("count", 1), f"{path}.symmetry.count"),
            axis=str(symmetry.get("axis", "central")),
        ),
        linked_components=[str(x) for x in _list(data, "linked_components", path)],
        constraints=[str(x) for x in _list(data, "constraints", path)],
        metadata={str(k): str(v) for k, v in metadata.items()},
    )


def _parse_connection(data: dict, path: str) -> SectionConnection:
    return SectionConnection(
        id=str(_require(data, "id", path)),
        section1_id=str(_require(data, "section1_id", path)),
        section2_id=str(_require(data, "section2_id", path)),
        connection_type=_enum(
            ConnectionType, data.get("connection_type", "fixed"), f"{path}.connection_type"),
        mechanism_type=_enum(
            MechanismType, data.get("mechanism_type", "tab_slot"), f"{path}.mechanism_type"),
        components=[str(x) for x in _list(data, "components", path)],
    )


def _parse_fin(data: dict, path: str) -> FinDesign:
    return FinDesign(
        id=str(_require(data, "id", path)),
        component_id=str(_require(data, "component_id", path)),
        section_id=str(_require(data, "section_id", path)),
        name=str(data.get("name", "")),
        fin_type=_enum(FinType, data.get("fin_type", "main"), f"{path}.fin_type"),
        root_chord_mm=_float(data.get("root_chord_mm", 0.0), f"{path}.root_chord_mm"),
        tip_chord_mm=_float(data.get("tip_chord_mm", 0.0), f"{path}.tip_chord_mm"),
        span_mm=_float(data.get("span_mm", 0.0), f"{path}.span_mm"),
        sweep_angle_deg=_float(data.get("sweep_angle_deg", 0.0), f"{path}.sweep_angle_deg"),
        axial_position_mm=_float(data.get("axial_position_mm", 0.0), f"{path}.axial_position_mm"),
    )


def _parse_derived(data: dict, design: Design) -> None:
    # Cached metrics are advisory; unreadable ones are dropped, not fatal.
    try:
        mp = data.get("mass_properties")
        if mp:
            design.mass_properties = MassProperties(
                total_mass_kg=float(mp["total_mass_kg"]),
                center_of_mass=_parse_vec(mp.get("center_of_mass"), "mass_properties"),
                component_masses=[
                    ComponentMass(
                        component_id=cm["component_id"],
                        mass_kg=float(cm["mass_kg"]),
                        center_of_mass=_parse_vec(cm.get("center_of_mass"), "component_masses"),
                    )
                    for cm in mp.get("component_masses", [])
                ],
            )
        sa = data.get("stability_analysis")
        if sa:
            design.stability_analysis = StabilityAnalysis(
                center_of_pressure=_parse_vec(sa.get("center_of_pressure"), "stability_analysis"),
                center_of_gravity=_parse_vec(sa.get("center_of_gravity"), "stability_analysis"),
                reference_diameter_mm=float(sa["reference_diameter_mm"]),
                stability_margin=float(sa["stability_margin"]),
                status=StabilityStatus(sa["status"]),
                recommendations=list(sa.get("recommendations", [])),
            )
        pm = data.get("performance_metrics")
        if pm:
            design.performance_metrics = PerformanceMetrics(
                weight_kg=float(pm.get("weight_kg", 0.0)),
                stability=float(pm.get("stability", 0.0)),
                drag_coefficient=float(pm.get("drag_coefficient", 0.0)),
                estimated_height_m=float(pm.get("estimated_height_m", 0.0)),
                center_of_gravity=_parse_vec(pm.get("center_of_gravity"), "performance_metrics"),
                center_of_pressure=_parse_vec(pm.get("center_of_pressure"), "performance_metrics"),
            )
    except (KeyError, TypeError, ValueError, _DocumentError) as e:
        logger.warning("Dropping unreadable cached metrics of design %s: %s", design.id, e)
        design.mass_properties = None
        design.stability_analysis = None
        design.performance_metrics = None


def design_from_dict(data: dict) -> Design:
    """Build a Design from a document.

    Structural problems (missing required keys, wrong types, unknown enum
    values) are reported as a DesignValidationError with an INVALID_DOCUMENT
    issue. Graph invariants are NOT checked here; see validate_design().

    Raises:
        DesignValidationError: If the document cannot be parsed
    """
    try:
        return _design_from_dict(data)
    except _DocumentError as e:
        issue = ValidationIssue(
            code="INVALID_DOCUMENT",
            severity=ValidationSeverity.ERROR,
            message=str(e),
            path=e.path,
        )
        raise DesignValidationError([issue], f"Invalid design document: {e}") from e


def _design_from_dict(data: dict) -> Design:
    if not isinstance(data, dict):
        raise _DocumentError("$", "design document must be an object")

    gs_data = _object(data, "global_settings", "$")
    ts_data = _object(data, "template_settings", "$")
    defaults = GlobalSettings()

    settings = GlobalSettings(
        default_cutting_method=_enum(
            CuttingMethod,
            gs_data.get("default_cutting_method", defaults.default_cutting_method.value),
            "global_settings.default_cutting_method",
        ),
        default_material=str(gs_data.get("default_material", defaults.default_material)),
        scale=_float(gs_data.get("scale", defaults.scale), "global_settings.scale"),
        body_length_mm=_float(
            gs_data.get("body_length_mm", defaults.body_length_mm), "global_settings.body_length_mm"),
        body_diameter_mm=_float(
            gs_data.get("body_diameter_mm", defaults.body_diameter_mm), "global_settings.body_diameter_mm"),
    )

    template = TemplateSettings(
        paper_size=str(ts_data.get("paper_size", "letter")),
        orientation=str(ts_data.get("orientation", "portrait")),
        units=str(ts_data.get("units", "mm")),
        include_instructions=_bool(ts_data.get("include_instructions", True),
                                   "template_settings.include_instructions"),
        include_registration_marks=_bool(ts_data.get("include_registration_marks", True),
                                         "template_settings.include_registration_marks"),
    )

    design = Design(
        id=str(data.get("id", "")),
        name=str(data.get("name", "Untitled Rocket")),
        owner_id=str(data.get("owner_id", "")),
        is_public=_bool(data.get("is_public", False), "is_public"),
        global_settings=settings,
        sections=[
            _parse_section(s, f"sections[{i}]")
            for i, s in enumerate(_list(data, "sections", "$"))
        ],
        components=[
            _parse_component(c, f"components[{i}]", settings)
            for i, c in enumerate(_list(data, "components", "$"))
        ],
        section_connections=[
            _parse_connection(sc, f"section_connections[{i}]")
            for i, sc in enumerate(_list(data, "section_connections", "$"))
        ],
        fin_designs=[
            _parse_fin(f, f"fin_designs[{i}]")
            for i, f in enumerate(_list(data, "fin_designs", "$"))
        ],
        template_settings=template,
        version=_int(data.get("version", 1), "version"),
        history=[
            VersionHistoryEntry(
                version=_int(_require(h, "version", f"history[{i}]"), f"history[{i}].version"),
                timestamp=_timestamp(h.get("timestamp"), f"history[{i}].timestamp"),
                changes=str(h.get("changes", "")),
            )
            for i, h in enumerate(_list(data, "history", "$"))
        ],
    )
    if "created_at" in data:
        design.created_at = _timestamp(data["created_at"], "created_at")
    if "updated_at" in data:
        design.updated_at = _timestamp(data["updated_at"], "updated_at")

    _parse_derived(data, design)
    return design


# ---------------------------------------------------------------------------
# Patch merge
# ---------------------------------------------------------------------------

def sanitize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Drop engine-owned and derived keys from a partial document."""
    dropped = sorted(k for k in patch if k in ENGINE_FIELDS or k in DERIVED_FIELDS)
    if dropped:
        logger.debug("Ignoring engine-owned patch keys: %s", ", ".join(dropped))
    return {k: v for k, v in patch.items() if k not in ENGINE_FIELDS and k not in DERIVED_FIELDS}


def merge_patch(design: Design, patch: Dict[str, Any]) -> Design:
    """Draft the next state of a design from a partial document.

    Top-level keys of the patch replace the corresponding keys of the
    current document wholesale. Engine-owned keys (id, owner, creation time,
    version, history) and derived metrics are ignored. The input design is
    not modified.

    Args:
        design: Current stored design
        patch: Partial design document

    Returns:
        New, unvalidated Design

    Raises:
        DesignValidationError: If the merged document cannot be parsed
    """
    document = design_to_dict(design)
    for key, value in sanitize_patch(patch).items():
        document[key] = copy.deepcopy(value)
    for key in DERIVED_FIELDS:
        document[key] = None
    return design_from_dict(document)


def designs_to_list(designs: List[Design]) -> List[dict]:
    return [design_to_dict(d) for d in designs]
