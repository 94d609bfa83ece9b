"""
Vector template document.

Turns a validated design into a format-neutral sheet of cut paths and
labels that every encoder renders:

- One group per section (in section order) headed by the section name
- Every component outline, symmetry-expanded, normalized and packed
  left to right in rows, each piece labelled with its component name
- Optional registration marks in the sheet corners and a block of
  cutting instructions below the pieces

Coordinates are in mm with the origin at the top-left corner of the sheet
and y pointing down. The sheet keeps the paper width and grows in height
when the pieces do not fit on one page.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

from rocket_templates.errors import EmptyDesign
from rocket_templates.geometry.bezier import closed_outline
from rocket_templates.geometry.outline_stats import (
    BoundingBox2D,
    bounding_box,
    normalize_to_origin,
    scale_outline,
)
from rocket_templates.geometry.symmetry import apply_symmetry
from rocket_templates.model.design import Component, Design
from rocket_templates.project_config import ExportConfig

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Paper sizes in mm, portrait
PAPER_SIZES: Dict[str, Tuple[float, float]] = {
    "letter": (215.9, 279.4),
    "legal": (215.9, 355.6),
    "a4": (210.0, 297.0),
    "a3": (297.0, 420.0),
}

LAYER_CUT = "CUT"
LAYER_LABEL = "LABEL"
LAYER_REGISTRATION = "REGISTRATION"
LAYER_INSTRUCTIONS = "INSTRUCTIONS"

REGISTRATION_MARK_MM = 6.0


@dataclass
class VectorPath:
    """Polyline in sheet coordinates."""
    points: List[Point]
    closed: bool = True
    layer: str = LAYER_CUT


@dataclass
class VectorLabel:
    """Single-line text anchored at its baseline start."""
    text: str
    position: Point
    size_mm: float
    layer: str = LAYER_LABEL


@dataclass
class VectorGroup:
    """All pieces of one section."""
    section_id: str
    name: str
    paths: List[VectorPath] = field(default_factory=list)
    labels: List[VectorLabel] = field(default_factory=list)


@dataclass
class VectorDocument:
    """Format-neutral template sheet."""
    design_id: str
    design_name: str
    width_mm: float
    height_mm: float
    page_height_mm: float = 0.0
    stroke_width_mm: float = 0.3
    font_family: str = "Arial"
    groups: List[VectorGroup] = field(default_factory=list)
    marks: List[VectorPath] = field(default_factory=list)
    annotations: List[VectorLabel] = field(default_factory=list)

    def iter_paths(self) -> Iterator[VectorPath]:
        for group in self.groups:
            yield from group.paths
        yield from self.marks

    def iter_labels(self) -> Iterator[VectorLabel]:
        for group in self.groups:
            yield from group.labels
        yield from self.annotations

    @property
    def piece_count(self) -> int:
        return sum(len(g.paths) for g in self.groups)


def sheet_size(paper_size: str, orientation: str) -> Tuple[float, float]:
    """(width, height) in mm of a named paper size in an orientation."""
    size = PAPER_SIZES.get(paper_size.lower())
    if size is None:
        logger.warning("Unknown paper size '%s', using letter", paper_size)
        size = PAPER_SIZES["letter"]
    width, height = size
    if orientation.lower() == "landscape":
        width, height = height, width
    return width, height


def _pieces(component: Component, scale: float, samples_per_segment: int) -> List[List[Point]]:
    """Normalized, symmetry-expanded outlines of one component."""
    outline = scale_outline(
        closed_outline(component.bezier_controls, samples_per_segment), scale)
    return [normalize_to_origin(copy) for copy in apply_symmetry(outline, component.symmetry)]


class _RowPacker:
    """Place boxes left to right, wrapping to a new row at the sheet edge."""

    def __init__(self, left: float, right: float, top: float, spacing: float):
        self.left = left
        self.right = right
        self.spacing = spacing
        self.x = left
        self.y = top
        self.row_height = 0.0

    def newline(self) -> None:
        if self.row_height > 0.0:
            self.y += self.row_height + self.spacing
        self.x = self.left
        self.row_height = 0.0

    def place(self, width: float, height: float) -> Point:
        if self.x > self.left and self.x + width > self.right:
            self.newline()
        origin = (self.x, self.y)
        self.x += width + self.spacing
        self.row_height = max(self.row_height, height)
        return origin

    @property
    def bottom(self) -> float:
        return self.y + self.row_height


def _registration_marks(width: float, height: float, margin: float) -> List[VectorPath]:
    half = REGISTRATION_MARK_MM / 2.0
    inset = margin / 2.0
    marks = []
    for cx, cy in ((inset, inset), (width - inset, inset),
                   (inset, height - inset), (width - inset, height - inset)):
        marks.append(VectorPath([(cx - half, cy), (cx + half, cy)], False, LAYER_REGISTRATION))
        marks.append(VectorPath([(cx, cy - half), (cx, cy + half)], False, LAYER_REGISTRATION))
    return marks


def _instructions(design: Design) -> List[str]:
    gs = design.global_settings
    materials = sorted({c.material.material_id for c in design.components})
    return [
        "Cut along the solid outlines. Pieces marked (k/n) are identical copies.",
        f"Materials: {', '.join(materials)}",
        f"Scale: {gs.scale:g}   Body: {gs.body_length_mm:g} x {gs.body_diameter_mm:g} mm",
        f"Design version {design.version}",
    ]


def vectorize(design: Design, config: ExportConfig) -> VectorDocument:
    """Lay out a design's components as a template sheet.

    Each section with at least one component gets one group headed by the
    section label; sections without components are left off the sheet.

    Args:
        design: Validated design
        config: Layout and rendering settings

    Returns:
        VectorDocument in sheet coordinates (mm, y down)

    Raises:
        EmptyDesign: If the design has no components
        InvalidSymmetry: If a component's symmetry cannot be applied
    """
    if not design.components:
        raise EmptyDesign(f"Design {design.id} has no components to render")

    settings = design.template_settings
    width, paper_height = sheet_size(settings.paper_size, settings.orientation)
    margin = config.margin_mm
    font = config.font_size_mm
    scale = design.global_settings.scale

    doc = VectorDocument(
        design_id=design.id,
        design_name=design.name,
        width_mm=width,
        height_mm=paper_height,
        page_height_mm=paper_height,
        stroke_width_mm=config.stroke_width_mm,
        font_family=config.font_family,
    )
    doc.annotations.append(VectorLabel(design.name, (margin, margin + font * 1.4),
                                       font * 1.4, LAYER_INSTRUCTIONS))

    packer = _RowPacker(margin, width - margin, margin + font * 1.4 + config.spacing_mm,
                        config.spacing_mm)

    for section in design.sections:
        components = design.components_in(section.id)
        if not components:
            continue

        group = VectorGroup(section_id=section.id, name=section.name)
        packer.newline()
        group.labels.append(VectorLabel(section.name, (margin, packer.y + font), font))
        packer.y += config.section_header_mm

        for component in components:
            if len(component.bezier_controls) < 2:
                logger.warning("Skipping component %s: degenerate outline", component.id)
                continue
            pieces = _pieces(component, scale, config.samples_per_segment)
            for k, piece in enumerate(pieces):
                box: BoundingBox2D = bounding_box(piece)
                label = component.name or component.id
                if len(pieces) > 1:
                    label = f"{label} ({k + 1}/{len(pieces)})"
                ox, oy = packer.place(box.width, box.height + font * 1.5)
                group.paths.append(VectorPath([(ox + x, oy + y) for x, y in piece]))
                group.labels.append(VectorLabel(label, (ox, oy + box.height + font * 1.2), font))

        doc.groups.append(group)

    content_bottom = packer.bottom
    if settings.include_instructions:
        y = content_bottom + config.spacing_mm
        for line in _instructions(design):
            y += font * 1.5
            doc.annotations.append(VectorLabel(line, (margin, y), font, LAYER_INSTRUCTIONS))
        content_bottom = y

    doc.height_mm = max(paper_height, content_bottom + margin)
    if settings.include_registration_marks:
        doc.marks.extend(_registration_marks(width, doc.height_mm, margin))

    logger.debug("Vectorized design %s: %d pieces in %d groups on %.1f x %.1f mm",
                 design.id, doc.piece_count, len(doc.groups), doc.width_mm, doc.height_mm)
    return doc
