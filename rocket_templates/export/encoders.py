"""
Template encoders.

An Encoder turns a VectorDocument into the bytes of one output format.
Encoders are looked up by format name in an EncoderRegistry; names are
case-insensitive and may have aliases.

Built-in formats:
  svg      image/svg+xml
  pdf      application/pdf
  cutterA  Silhouette Studio wrapper (magic header + SVG payload)
  cutterB  Cricut Design Space wrapper (magic header + SVG payload)
  dxf      application/dxf
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from rocket_templates.errors import UnsupportedFormat
from rocket_templates.export.dxf_renderer import render_dxf
from rocket_templates.export.pdf_renderer import render_pdf
from rocket_templates.export.svg_renderer import render_svg
from rocket_templates.export.vector import VectorDocument

logger = logging.getLogger(__name__)

CUTTER_A_MAGIC = b"SILHOUETTE-STUDIO-FILE\n"
CUTTER_B_MAGIC = b"CRICUT-DESIGN-SPACE-FILE\n"


class Encoder(ABC):
    """Renders a template sheet to one output format."""

    name: str = ""
    content_type: str = "application/octet-stream"
    extension: str = ""
    aliases: tuple = ()

    @abstractmethod
    def encode(self, doc: VectorDocument) -> bytes:
        """Encode a template sheet."""


class SvgEncoder(Encoder):
    name = "svg"
    content_type = "image/svg+xml"
    extension = "svg"

    def encode(self, doc: VectorDocument) -> bytes:
        return render_svg(doc)


class PdfEncoder(Encoder):
    name = "pdf"
    content_type = "application/pdf"
    extension = "pdf"

    def encode(self, doc: VectorDocument) -> bytes:
        return render_pdf(doc)


class CutterEncoder(Encoder):
    """Proprietary cutter file: a fixed magic header followed by the SVG."""

    magic: bytes = b""

    def encode(self, doc: VectorDocument) -> bytes:
        return self.magic + render_svg(doc)


class CutterAEncoder(CutterEncoder):
    name = "cutterA"
    extension = "studio"
    aliases = ("silhouette",)
    magic = CUTTER_A_MAGIC


class CutterBEncoder(CutterEncoder):
    name = "cutterB"
    extension = "cricut"
    aliases = ("cricut",)
    magic = CUTTER_B_MAGIC


class DxfEncoder(Encoder):
    name = "dxf"
    content_type = "application/dxf"
    extension = "dxf"

    def __init__(self, dxf_version: str = "R2010"):
        self.dxf_version = dxf_version

    def encode(self, doc: VectorDocument) -> bytes:
        return render_dxf(doc, self.dxf_version)


class EncoderRegistry:
    """Format name -> Encoder lookup."""

    def __init__(self):
        self._encoders: Dict[str, Encoder] = {}
        self._names: List[str] = []

    def register(self, encoder: Encoder) -> None:
        """Register an encoder under its name and aliases (replacing any previous)."""
        if encoder.name not in self._names:
            self._names.append(encoder.name)
        for key in (encoder.name,) + tuple(encoder.aliases):
            self._encoders[key.lower()] = encoder
        logger.debug("Registered encoder '%s'", encoder.name)

    def get(self, fmt: Optional[str]) -> Encoder:
        """Find the encoder of a format.

        Raises:
            UnsupportedFormat: If no encoder is registered under that name
        """
        encoder = self._encoders.get((fmt or "").strip().lower())
        if encoder is None:
            raise UnsupportedFormat(
                f"Unsupported format {fmt!r}; supported: {', '.join(self.formats())}")
        return encoder

    def formats(self) -> List[str]:
        """Canonical names of registered formats."""
        return list(self._names)

    def __contains__(self, fmt: str) -> bool:
        return (fmt or "").strip().lower() in self._encoders


def default_registry(dxf_version: str = "R2010") -> EncoderRegistry:
    """Registry with all built-in formats."""
    registry = EncoderRegistry()
    for encoder in (SvgEncoder(), PdfEncoder(), CutterAEncoder(), CutterBEncoder(),
                    DxfEncoder(dxf_version)):
        registry.register(encoder)
    return registry
