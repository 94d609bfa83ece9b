"""
Design graph entity model.

The Design is the root aggregate. Sections, components, connections and fin
designs refer to each other by id only; the per-design arena maps returned
by ``section_map()`` / ``component_map()`` are the single way to resolve a
reference, which keeps cyclic links (connections, linked components) free
of ownership problems.

Section substructure is a tagged union keyed by section type:
nosecones carry a NoseconeStructure, payload bays and main bodies a
BodyStructure.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from rocket_templates.geometry.bezier import BezierControlPoint
from rocket_templates.geometry.symmetry import SymmetryOptions


class CuttingMethod(Enum):
    DIGITAL = "digital"
    HAND = "hand"
    HYBRID = "hybrid"
    LASER = "laser"
    DIE = "die"


class ComponentType(Enum):
    NOSECONE_SHROUD = "nosecone_shroud"
    PAYLOAD_SHROUD = "payload_shroud"
    MAIN_BODY_SHROUD = "main_body_shroud"
    BULKHEAD = "bulkhead"
    SPAR = "spar"
    FIN = "fin"
    NOSECONE_SUPPORT = "nosecone_support"
    OTHER = "other"


class SectionType(Enum):
    NOSECONE = "nosecone"
    PAYLOAD_BAY = "payload_bay"
    MAIN_BODY = "main_body"


class FinType(Enum):
    MAIN = "main"
    UPPER = "upper"


class ConnectionType(Enum):
    FIXED = "fixed"
    SEPARABLE = "separable"
    FUNCTIONAL = "functional"


class MechanismType(Enum):
    TAB_SLOT = "tab_slot"
    THREADED = "threaded"
    FRICTION = "friction"
    OTHER = "other"


class StabilityStatus(Enum):
    STABLE = "stable"
    MARGINAL = "marginal"
    UNSTABLE = "unstable"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque 24-hex-digit identifier."""
    return uuid.uuid4().hex[:24]


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass
class Vector3D:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class MaterialSpec:
    """Material reference of a component."""
    material_id: str
    thickness_mm: float
    doubled: bool = False


@dataclass
class GlobalSettings:
    default_cutting_method: CuttingMethod = CuttingMethod.DIGITAL
    default_material: str = "cardstock"
    scale: float = 1.0
    body_length_mm: float = 500.0
    body_diameter_mm: float = 60.0


@dataclass
class TemplateSettings:
    paper_size: str = "letter"
    orientation: str = "portrait"
    units: str = "mm"
    include_instructions: bool = True
    include_registration_marks: bool = True


@dataclass
class VersionHistoryEntry:
    version: int
    timestamp: datetime
    changes: str


# ---------------------------------------------------------------------------
# Section substructures (tagged by section type)
# ---------------------------------------------------------------------------

@dataclass
class NoseconeStructure:
    kind = "nosecone"
    support_type: str = "conical"
    reinforcement_rings: int = 2
    tip_construction: str = "rounded"
    bulkhead_reinforced: bool = True
    shell_construction: str = "gores"
    segment_count: int = 4
    attachment_method: str = "tab_slot"


@dataclass
class BodyStructure:
    kind = "body"
    main_fin_count: int = 4
    upper_fin_count: int = 0
    spar_type_a_count: int = 4
    spar_type_b_count: int = 0
    shroud_panel_count: int = 4
    shroud_doubled: bool = False


SectionStructure = Union[NoseconeStructure, BodyStructure]

STRUCTURE_FOR_SECTION = {
    SectionType.NOSECONE: NoseconeStructure,
    SectionType.PAYLOAD_BAY: BodyStructure,
    SectionType.MAIN_BODY: BodyStructure,
}


def default_structure(section_type: SectionType) -> SectionStructure:
    return STRUCTURE_FOR_SECTION[section_type]()


# ---------------------------------------------------------------------------
# Graph entities
# ---------------------------------------------------------------------------

@dataclass
class Section:
    id: str
    type: SectionType
    name: str
    start: float
    end: float
    structure: SectionStructure = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.structure is None:
            self.structure = default_structure(self.type)

    @property
    def length_fraction(self) -> float:
        return self.end - self.start


@dataclass
class Component:
    id: str
    type: ComponentType
    section_id: str
    name: str
    material: MaterialSpec
    cutting_method: CuttingMethod = CuttingMethod.DIGITAL
    bezier_controls: List[BezierControlPoint] = field(default_factory=list)
    position: Vector3D = field(default_factory=Vector3D)
    rotation: Vector3D = field(default_factory=Vector3D)
    symmetry: SymmetryOptions = field(default_factory=SymmetryOptions)
    linked_components: List[str] = field(default_factory=list)
    constraints: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class SectionConnection:
    id: str
    section1_id: str
    section2_id: str
    connection_type: ConnectionType
    mechanism_type: MechanismType
    components: List[str] = field(default_factory=list)


@dataclass
class FinDesign:
    """Trapezoidal fin planform attached to one fin component."""
    id: str
    component_id: str
    section_id: str
    name: str
    fin_type: FinType = FinType.MAIN
    root_chord_mm: float = 0.0
    tip_chord_mm: float = 0.0
    span_mm: float = 0.0
    sweep_angle_deg: float = 0.0
    axial_position_mm: float = 0.0

    @property
    def area_mm2(self) -> float:
        return 0.5 * (self.root_chord_mm + self.tip_chord_mm) * self.span_mm

    @property
    def sweep_length_mm(self) -> float:
        """Axial offset of the tip leading edge from the root leading edge."""
        return self.span_mm * math.tan(math.radians(self.sweep_angle_deg))


# ---------------------------------------------------------------------------
# Derived metrics (cached snapshot, recomputed on every write)
# ---------------------------------------------------------------------------

@dataclass
class ComponentMass:
    component_id: str
    mass_kg: float
    center_of_mass: Vector3D


@dataclass
class MassProperties:
    total_mass_kg: float
    center_of_mass: Vector3D
    component_masses: List[ComponentMass] = field(default_factory=list)


@dataclass
class StabilityAnalysis:
    center_of_pressure: Vector3D
    center_of_gravity: Vector3D
    reference_diameter_mm: float
    stability_margin: float
    status: StabilityStatus
    recommendations: List[str] = field(default_factory=list)


@dataclass
class PerformanceMetrics:
    weight_kg: float = 0.0
    stability: float = 0.0
    drag_coefficient: float = 0.0
    estimated_height_m: float = 0.0
    center_of_gravity: Vector3D = field(default_factory=Vector3D)
    center_of_pressure: Vector3D = field(default_factory=Vector3D)


# ---------------------------------------------------------------------------
# Root aggregate
# ---------------------------------------------------------------------------

@dataclass
class Design:
    id: str
    name: str
    owner_id: str
    is_public: bool = False
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    sections: List[Section] = field(default_factory=list)
    components: List[Component] = field(default_factory=list)
    section_connections: List[SectionConnection] = field(default_factory=list)
    fin_designs: List[FinDesign] = field(default_factory=list)
    template_settings: TemplateSettings = field(default_factory=TemplateSettings)
    mass_properties: Optional[MassProperties] = None
    stability_analysis: Optional[StabilityAnalysis] = None
    performance_metrics: Optional[PerformanceMetrics] = None
    version: int = 1
    history: List[VersionHistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def section_map(self) -> Dict[str, Section]:
        """Arena lookup id -> Section (last wins on duplicate ids)."""
        return {s.id: s for s in self.sections}

    def component_map(self) -> Dict[str, Component]:
        """Arena lookup id -> Component (last wins on duplicate ids)."""
        return {c.id: c for c in self.components}

    def components_in(self, section_id: str) -> List[Component]:
        return [c for c in self.components if c.section_id == section_id]

    def nosecone(self) -> Optional[Section]:
        for section in self.sections:
            if section.type is SectionType.NOSECONE:
                return section
        return None


def default_sections() -> List[Section]:
    """Nosecone / payload bay / main body tiling the whole body."""
    return [
        Section(new_id(), SectionType.NOSECONE, "Nosecone", 0.0, 0.2),
        Section(new_id(), SectionType.PAYLOAD_BAY, "Payload Bay", 0.2, 0.5),
        Section(new_id(), SectionType.MAIN_BODY, "Main Body", 0.5, 1.0),
    ]
