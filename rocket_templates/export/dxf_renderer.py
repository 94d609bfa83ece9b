"""
DXF rendering of template sheets for laser and die cutters.

Layer naming convention:
- CUT           piece outlines (the only layer a cutter should cut)
- LABEL         piece and section names (engrave or ignore)
- REGISTRATION  corner marks for print-and-cut alignment
- INSTRUCTIONS  title and cutting notes

DXF has y pointing up, so sheet coordinates are flipped on the way in.

Usage:
    renderer = DxfRenderer()
    renderer.create_drawing(width_mm=215.9, height_mm=279.4)
    renderer.add_polyline([(0, 0), (10, 0), (10, 10)], closed=True)
    data = renderer.to_bytes()
"""

import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import ezdxf
from ezdxf import units
from ezdxf.enums import TextEntityAlignment

from rocket_templates.export.vector import (
    LAYER_CUT,
    LAYER_INSTRUCTIONS,
    LAYER_LABEL,
    LAYER_REGISTRATION,
    VectorDocument,
)

logger = logging.getLogger(__name__)

TEXT_STYLE = 'TEMPLATE'

# Layer definitions; lineweight in 0.01 mm
TEMPLATE_LAYERS = {
    LAYER_CUT: {'color': 7, 'linetype': 'CONTINUOUS', 'lineweight': 25},
    LAYER_LABEL: {'color': 3, 'linetype': 'CONTINUOUS', 'lineweight': 18},
    LAYER_REGISTRATION: {'color': 1, 'linetype': 'CONTINUOUS', 'lineweight': 25},
    LAYER_INSTRUCTIONS: {'color': 8, 'linetype': 'CONTINUOUS', 'lineweight': 18},
}


@dataclass
class DxfStyle:
    """Style parameters for DXF entities."""
    layer: str = LAYER_CUT
    color: Optional[int] = None  # None = ByLayer
    lineweight: Optional[int] = None  # None = ByLayer (in 0.01mm units)


class DxfRenderer:
    """Template sheet renderer using ezdxf."""

    def __init__(self):
        self.doc: Optional[ezdxf.document.Drawing] = None
        self.msp = None  # Modelspace
        self.width_mm: float = 0
        self.height_mm: float = 0

    def create_drawing(self, width_mm: float, height_mm: float,
                       dxf_version: str = 'R2010', font: str = 'arial.ttf') -> None:
        """Create a new DXF drawing.

        Args:
            width_mm: Sheet width in mm
            height_mm: Sheet height in mm
            dxf_version: DXF version (R12, R2000, R2004, R2007, R2010, R2013, R2018)
            font: TrueType font file for the text style
        """
        self.width_mm = width_mm
        self.height_mm = height_mm

        self.doc = ezdxf.new(dxf_version, units=units.MM)
        self.msp = self.doc.modelspace()

        for name, props in TEMPLATE_LAYERS.items():
            self.doc.layers.add(
                name,
                color=props['color'],
                linetype=props['linetype'],
                lineweight=props['lineweight'],
            )
        self.doc.styles.add(TEXT_STYLE, font=font)

        logger.debug("Created DXF drawing: %.0f x %.0f mm", width_mm, height_mm)

    def _require(self) -> None:
        if self.msp is None:
            raise RuntimeError("Drawing not created. Call create_drawing() first.")

    def _flip(self, point: Tuple[float, float]) -> Tuple[float, float]:
        return (float(point[0]), float(self.height_mm - point[1]))

    def add_polyline(self, points: List[Tuple[float, float]], closed: bool = False,
                     style: Optional[DxfStyle] = None) -> None:
        """Add a polyline given in sheet coordinates (y down)."""
        self._require()
        if len(points) < 2:
            return

        style = style or DxfStyle()
        attribs = {'layer': style.layer}
        if style.color is not None:
            attribs['color'] = style.color
        if style.lineweight is not None:
            attribs['lineweight'] = style.lineweight

        self.msp.add_lwpolyline([self._flip(p) for p in points], close=closed,
                                dxfattribs=attribs)

    def add_text(self, text: str, position: Tuple[float, float], height: float = 3.5,
                 style: Optional[DxfStyle] = None) -> None:
        """Add left-aligned baseline text at a sheet position (y down)."""
        self._require()
        style = style or DxfStyle(layer=LAYER_LABEL)
        attribs = {
            'layer': style.layer,
            'style': TEXT_STYLE,
            'height': height,
        }
        if style.color is not None:
            attribs['color'] = style.color

        self.msp.add_text(text, dxfattribs=attribs).set_placement(
            self._flip(position), align=TextEntityAlignment.LEFT
        )

    def to_bytes(self) -> bytes:
        """Serialize the drawing as ASCII DXF."""
        self._require()
        stream = io.StringIO()
        self.doc.write(stream)
        return stream.getvalue().encode('utf-8')


def render_dxf(doc: VectorDocument, dxf_version: str = 'R2010') -> bytes:
    """Render a template sheet as a DXF document."""
    renderer = DxfRenderer()
    renderer.create_drawing(doc.width_mm, doc.height_mm, dxf_version=dxf_version)

    for path in doc.iter_paths():
        renderer.add_polyline(path.points, closed=path.closed, style=DxfStyle(layer=path.layer))
    for label in doc.iter_labels():
        renderer.add_text(label.text, label.position, height=label.size_mm,
                          style=DxfStyle(layer=label.layer))

    logger.debug("Rendered DXF for design %s (%s)", doc.design_id, dxf_version)
    return renderer.to_bytes()
