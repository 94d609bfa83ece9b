"""Template export: vector layout, encoders, pipeline."""

from rocket_templates.export.encoders import (
    CUTTER_A_MAGIC,
    CUTTER_B_MAGIC,
    Encoder,
    EncoderRegistry,
    default_registry,
)
from rocket_templates.export.pipeline import (
    BatchExportResult,
    ExportedTemplate,
    ExportTask,
    FormatResult,
    LocalTemplateHandle,
    PersistedTemplate,
    TemplateExporter,
)
from rocket_templates.export.vector import VectorDocument, vectorize

__all__ = [
    "CUTTER_A_MAGIC",
    "CUTTER_B_MAGIC",
    "Encoder",
    "EncoderRegistry",
    "default_registry",
    "BatchExportResult",
    "ExportedTemplate",
    "ExportTask",
    "FormatResult",
    "LocalTemplateHandle",
    "PersistedTemplate",
    "TemplateExporter",
    "VectorDocument",
    "vectorize",
]
