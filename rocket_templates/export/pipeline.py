"""
Template export pipeline.

Provides:
- TemplateExporter.export: format lookup -> validate -> vectorize -> encode
- TemplateExporter.persist: export, then upload to blob storage with a
  local temporary file as fallback
- TemplateExporter.submit_export: the same as a cancellable background task
- TemplateExporter.export_many: several formats of one design in parallel

Usage:
    with TemplateExporter(config.export, blob_storage=storage) as exporter:
        template = exporter.export(design, "svg")
        results = exporter.export_many(design, ["svg", "pdf", "dxf"])
        print(results.summary())

The format is resolved before any other work, so an unknown format never
costs a validation or a layout pass. Uploads are never retried; a failed
upload degrades to a local file and a warning.
"""

import copy
import logging
import os
import tempfile
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from rocket_templates.errors import ExportCancelled, RocketTemplatesError, StorageFailure
from rocket_templates.export.encoders import EncoderRegistry, default_registry
from rocket_templates.export.vector import vectorize
from rocket_templates.logging_config import LogContext, log_timing
from rocket_templates.model.design import Design
from rocket_templates.model.validator import validate_design
from rocket_templates.project_config import ExportConfig
from rocket_templates.storage.blob import BlobStorage

logger = logging.getLogger(__name__)


@dataclass
class ExportedTemplate:
    """Encoded template bytes of one design in one format."""
    design_id: str
    format: str
    content_type: str
    extension: str
    data: bytes

    @property
    def filename(self) -> str:
        return f"{self.design_id}.{self.extension}"


class LocalTemplateHandle:
    """Owns a temporary template file until closed.

    Returned when a template could not be uploaded. The file is removed by
    close() or on leaving a ``with`` block.
    """

    def __init__(self, path: Path, content_type: str):
        self.path = Path(path)
        self.content_type = content_type
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read_bytes(self) -> bytes:
        if self._closed:
            raise ValueError(f"Template handle {self.path} is closed")
        return self.path.read_bytes()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.debug("Released temporary template %s", self.path)

    def __enter__(self) -> 'LocalTemplateHandle':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"LocalTemplateHandle({str(self.path)!r}, {state})"


@dataclass
class PersistedTemplate:
    """Where a persisted template ended up: a URL or a local file."""
    design_id: str
    format: str
    content_type: str
    url: Optional[str] = None
    local: Optional[LocalTemplateHandle] = None

    @property
    def is_local(self) -> bool:
        return self.url is None

    @property
    def location(self) -> str:
        return self.url if self.url is not None else str(self.local.path)


class ExportTask:
    """Handle of an export running on the exporter's thread pool."""

    def __init__(self, future: Future, cancel_event: threading.Event,
                 design_id: str, fmt: str):
        self._future = future
        self._cancel_event = cancel_event
        self.design_id = design_id
        self.format = fmt

    def cancel(self) -> None:
        """Request cancellation; takes effect at the next stage boundary."""
        self._cancel_event.set()
        self._future.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None):
        """Wait for the export.

        Raises:
            ExportCancelled: If the task was cancelled before finishing
        """
        if self._future.cancelled():
            raise ExportCancelled(f"Export of design {self.design_id} to {self.format} cancelled")
        return self._future.result(timeout)


@dataclass
class FormatResult:
    """Result of one format of a batch export."""
    format: str
    success: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0
    size_bytes: int = 0
    template: Optional[ExportedTemplate] = None

    @property
    def status(self) -> str:
        """Get status string."""
        return "OK" if self.success else "FAILED"


@dataclass
class BatchExportResult:
    """Result of exporting one design to several formats."""
    design_id: str
    results: List[FormatResult] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success_rate(self) -> float:
        """Success rate as percentage."""
        if self.total == 0:
            return 0.0
        return 100.0 * self.successful / self.total

    def templates(self) -> Dict[str, ExportedTemplate]:
        return {r.format: r.template for r in self.results if r.template is not None}

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Batch Export Summary",
            "=" * 40,
            f"Design:          {self.design_id}",
            f"Formats:         {self.total}",
            f"Successful:      {self.successful}",
            f"Failed:          {self.failed}",
            f"Success rate:    {self.success_rate:.1f}%",
            f"Total time:      {self.total_duration_seconds:.2f}s",
            "",
        ]

        if self.failed > 0:
            lines.append("Failed formats:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.format}: {r.error}")

        return "\n".join(lines)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'design_id': self.design_id,
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'success_rate': self.success_rate,
            'total_duration_seconds': self.total_duration_seconds,
            'results': [
                {
                    'format': r.format,
                    'success': r.success,
                    'error': r.error,
                    'duration': r.duration_seconds,
                    'size_bytes': r.size_bytes,
                }
                for r in self.results
            ],
        }


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Export cancelled before %s", stage)
        raise ExportCancelled(f"Export cancelled before {stage}")


class TemplateExporter:
    """Runs design -> template exports."""

    def __init__(self,
                 config: Optional[ExportConfig] = None,
                 blob_storage: Optional[BlobStorage] = None,
                 registry: Optional[EncoderRegistry] = None,
                 materials: Optional[Mapping[str, float]] = None,
                 temp_dir: Optional[str] = None):
        self.config = config or ExportConfig()
        self.blob_storage = blob_storage
        self.registry = registry or default_registry(self.config.dxf_version)
        self.materials = materials
        self.temp_dir = temp_dir
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # -- lifecycle ----------------------------------------------------------

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, self.config.max_workers),
                    thread_name_prefix="template-export",
                )
            return self._executor

    def close(self) -> None:
        """Shut down the worker pool, waiting for running exports."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self) -> 'TemplateExporter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- export -------------------------------------------------------------

    def export(self, design: Design, fmt: str,
               cancel_event: Optional[threading.Event] = None) -> ExportedTemplate:
        """Export a design to one format.

        Args:
            design: Design to export
            fmt: Format name (case-insensitive)
            cancel_event: Checked between stages when given

        Returns:
            ExportedTemplate with the encoded bytes

        Raises:
            UnsupportedFormat: Unknown format (raised before any other work)
            DesignValidationError: Design violates its invariants
            EmptyDesign: Design has no components
            ExportCancelled: cancel_event was set
        """
        encoder = self.registry.get(fmt)

        with LogContext(design_id=design.id), \
                log_timing(logger, f"export {encoder.name}", level=logging.DEBUG):
            _check_cancelled(cancel_event, "validation")
            validate_design(design, self.materials).raise_if_invalid()

            _check_cancelled(cancel_event, "vectorization")
            doc = vectorize(design, self.config)

            _check_cancelled(cancel_event, "encoding")
            data = encoder.encode(doc)

        logger.info("Exported design %s as %s (%d bytes)", design.id, encoder.name, len(data))
        return ExportedTemplate(
            design_id=design.id,
            format=encoder.name,
            content_type=encoder.content_type,
            extension=encoder.extension,
            data=data,
        )

    def persist(self, design: Design, fmt: str,
                cancel_event: Optional[threading.Event] = None) -> PersistedTemplate:
        """Export a design and store the result.

        The bytes go to a scoped temporary file first, then to blob storage
        under ``templates/<design_id>/<random>.<ext>``. When storage is not
        configured or the upload fails, a LocalTemplateHandle owning the
        temporary file is returned instead and a warning is logged.
        """
        template = self.export(design, fmt, cancel_event)
        return self.persist_template(template, cancel_event)

    def persist_template(self, template: ExportedTemplate,
                         cancel_event: Optional[threading.Event] = None) -> PersistedTemplate:
        """Store already encoded template bytes (see persist())."""
        fd, name = tempfile.mkstemp(suffix=f".{template.extension}",
                                    prefix=f"{template.design_id}-", dir=self.temp_dir)
        path = Path(name)
        handle = LocalTemplateHandle(path, template.content_type)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(template.data)

            _check_cancelled(cancel_event, "upload")

            if self.blob_storage is None:
                logger.warning("No blob storage configured; template kept at %s", path)
                _check_cancelled(cancel_event, "handing back the local file")
                return PersistedTemplate(template.design_id, template.format,
                                         template.content_type, local=handle)

            key = f"templates/{template.design_id}/{uuid.uuid4().hex}.{template.extension}"
            try:
                url = self.blob_storage.upload(template.data, key, template.content_type)
            except StorageFailure as e:
                logger.warning("Upload of %s failed, falling back to local file %s: %s",
                               key, path, e)
                _check_cancelled(cancel_event, "handing back the local file")
                return PersistedTemplate(template.design_id, template.format,
                                         template.content_type, local=handle)

            handle.close()
            logger.info("Persisted template %s", url)
            return PersistedTemplate(template.design_id, template.format,
                                     template.content_type, url=url)
        except BaseException:
            handle.close()
            raise

    # -- background ---------------------------------------------------------

    def submit_export(self, design: Design, fmt: str, persist: bool = False) -> ExportTask:
        """Run an export on the worker pool.

        The design is copied at submission, so later edits do not leak into
        a running export. The format is checked immediately.

        Returns:
            ExportTask whose result() is an ExportedTemplate, or a
            PersistedTemplate when ``persist`` is set
        """
        encoder = self.registry.get(fmt)
        snapshot = copy.deepcopy(design)
        cancel_event = threading.Event()

        if persist:
            future = self._pool().submit(self.persist, snapshot, encoder.name, cancel_event)
        else:
            future = self._pool().submit(self.export, snapshot, encoder.name, cancel_event)
        logger.debug("Submitted %s export of design %s", encoder.name, design.id)
        return ExportTask(future, cancel_event, design.id, encoder.name)

    def _export_one(self, design: Design, fmt: str) -> FormatResult:
        start = time.perf_counter()
        result = FormatResult(format=fmt)
        try:
            template = self.export(design, fmt)
            result.success = True
            result.template = template
            result.size_bytes = len(template.data)
        except RocketTemplatesError as e:
            result.error = str(e)
        except Exception as e:
            logger.exception("Unexpected error exporting design %s as %s", design.id, fmt)
            result.error = f"{type(e).__name__}: {e}"
        result.duration_seconds = time.perf_counter() - start
        return result

    def export_many(self, design: Design, formats: Sequence[str]) -> BatchExportResult:
        """Export one design to several formats in parallel.

        Failures are recorded per format; results keep the order of
        ``formats``.
        """
        start = time.perf_counter()
        snapshot = copy.deepcopy(design)
        futures = [self._pool().submit(self._export_one, snapshot, fmt) for fmt in formats]
        results = [f.result() for f in futures]

        batch = BatchExportResult(
            design_id=design.id,
            results=results,
            total_duration_seconds=time.perf_counter() - start,
        )
        logger.info("Batch export of design %s: %d/%d successful in %.2fs",
                    design.id, batch.successful, batch.total, batch.total_duration_seconds)
        return batch
