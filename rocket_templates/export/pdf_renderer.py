"""
PDF rendering of template sheets.

Uses the matplotlib PDF backend. A sheet taller than one page is split
into consecutive paper-height pages; pieces crossing a page edge appear
clipped on both pages.

Figures are built with matplotlib.figure.Figure directly rather than
pyplot, so rendering keeps no global state and can run on worker threads.
"""

import io
import logging
import math
from typing import Dict

from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure

from rocket_templates.export.vector import (
    LAYER_INSTRUCTIONS,
    LAYER_REGISTRATION,
    VectorDocument,
)

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
POINTS_PER_MM = 72.0 / MM_PER_INCH

LAYER_COLORS: Dict[str, str] = {
    LAYER_REGISTRATION: "black",
    LAYER_INSTRUCTIONS: "#333333",
}


def page_count(doc: VectorDocument) -> int:
    page_height = doc.page_height_mm or doc.height_mm
    return max(1, math.ceil(doc.height_mm / page_height - 1e-9))


def _draw_page(fig: Figure, doc: VectorDocument, top: float, page_height: float) -> None:
    ax = fig.add_axes((0.0, 0.0, 1.0, 1.0))
    ax.set_xlim(0.0, doc.width_mm)
    # Sheet coordinates have y pointing down
    ax.set_ylim(top + page_height, top)
    ax.set_aspect("equal")
    ax.axis("off")

    linewidth = doc.stroke_width_mm * POINTS_PER_MM
    for path in doc.iter_paths():
        if not path.points:
            continue
        xs = [p[0] for p in path.points]
        ys = [p[1] for p in path.points]
        if path.closed:
            xs.append(xs[0])
            ys.append(ys[0])
        ax.plot(xs, ys, color=LAYER_COLORS.get(path.layer, "black"),
                linewidth=linewidth, solid_joinstyle="round")

    for label in doc.iter_labels():
        x, y = label.position
        if not top - label.size_mm <= y <= top + page_height + label.size_mm:
            continue
        ax.text(x, y, label.text, fontsize=label.size_mm * POINTS_PER_MM,
                family="sans-serif", color=LAYER_COLORS.get(label.layer, "black"),
                ha="left", va="baseline", clip_on=True)


def render_pdf(doc: VectorDocument) -> bytes:
    """Render a template sheet as a (possibly multi-page) PDF document."""
    page_height = doc.page_height_mm or doc.height_mm
    figsize = (doc.width_mm / MM_PER_INCH, page_height / MM_PER_INCH)
    n_pages = page_count(doc)

    buffer = io.BytesIO()
    with PdfPages(buffer, metadata={"Title": doc.design_name,
                                    "Subject": f"Cutting template {doc.design_id}"}) as pdf:
        for page in range(n_pages):
            fig = Figure(figsize=figsize)
            _draw_page(fig, doc, page * page_height, page_height)
            pdf.savefig(fig)

    logger.debug("Rendered PDF for design %s: %d page(s)", doc.design_id, n_pages)
    return buffer.getvalue()
