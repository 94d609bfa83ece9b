"""
SVG rendering of template sheets.

Contains:
- LAYER_STYLES       stroke styles per vector layer
- render_svg_drawing build an svgwrite Drawing from a VectorDocument
- render_svg         serialize the drawing to UTF-8 bytes

Each section group becomes an SVG <g> with an id, so cutter software can
toggle sections independently.
"""

import io
from typing import Dict

import svgwrite

from rocket_templates.export.vector import (
    LAYER_CUT,
    LAYER_INSTRUCTIONS,
    LAYER_LABEL,
    LAYER_REGISTRATION,
    VectorDocument,
    VectorLabel,
    VectorPath,
)

LAYER_STYLES: Dict[str, Dict[str, str]] = {
    LAYER_CUT: {'stroke': 'black', 'fill': 'none'},
    LAYER_REGISTRATION: {'stroke': 'black', 'fill': 'none'},
    LAYER_LABEL: {'fill': 'black'},
    LAYER_INSTRUCTIONS: {'fill': '#333333'},
}


def _fmt(value: float) -> str:
    return f"{value:.3f}".rstrip('0').rstrip('.')


def _path_element(dwg: svgwrite.Drawing, path: VectorPath, stroke_width: float):
    style = LAYER_STYLES.get(path.layer, LAYER_STYLES[LAYER_CUT])
    points = [(round(x, 3), round(y, 3)) for x, y in path.points]
    if path.closed:
        return dwg.polygon(points, stroke_width=_fmt(stroke_width), **style)
    return dwg.polyline(points, stroke_width=_fmt(stroke_width), **style)


def _label_element(dwg: svgwrite.Drawing, label: VectorLabel, font_family: str):
    style = LAYER_STYLES.get(label.layer, LAYER_STYLES[LAYER_LABEL])
    return dwg.text(
        label.text,
        insert=(round(label.position[0], 3), round(label.position[1], 3)),
        font_size=_fmt(label.size_mm),
        font_family=font_family,
        **style,
    )


def render_svg_drawing(doc: VectorDocument) -> svgwrite.Drawing:
    """Build the SVG drawing; 1 user unit = 1 mm."""
    dwg = svgwrite.Drawing(
        size=(f"{_fmt(doc.width_mm)}mm", f"{_fmt(doc.height_mm)}mm"),
        viewBox=f"0 0 {_fmt(doc.width_mm)} {_fmt(doc.height_mm)}",
        profile='full',
    )
    dwg.set_desc(title=doc.design_name, desc=f"Cutting template for design {doc.design_id}")

    for group in doc.groups:
        g = dwg.g(id=f"section-{group.section_id}", class_='section')
        for path in group.paths:
            g.add(_path_element(dwg, path, doc.stroke_width_mm))
        for label in group.labels:
            g.add(_label_element(dwg, label, doc.font_family))
        dwg.add(g)

    if doc.marks:
        marks = dwg.g(id='registration-marks')
        for path in doc.marks:
            marks.add(_path_element(dwg, path, doc.stroke_width_mm))
        dwg.add(marks)

    if doc.annotations:
        notes = dwg.g(id='instructions')
        for label in doc.annotations:
            notes.add(_label_element(dwg, label, doc.font_family))
        dwg.add(notes)

    return dwg


def render_svg(doc: VectorDocument) -> bytes:
    """Serialize a template sheet as a standalone SVG document."""
    buffer = io.StringIO()
    render_svg_drawing(doc).write(buffer, pretty=True)
    return buffer.getvalue().encode('utf-8')
