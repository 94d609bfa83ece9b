"""
Transport-agnostic API surface.

DesignApi wraps the design service and the template exporter in
request/response handlers that any web framework can mount. Every handler
returns an ApiResponse; no exception escapes a handler.

Status mapping:
  400  DesignValidationError (issue list in the body), InvalidQuery,
       UnsupportedFormat
  403  AccessDenied
  404  NotFound
  409  VersionConflict, ExportCancelled
  422  EmptyDesign, GeometryError
  500  PersistenceFailure and anything unexpected (generic message)
  501  VersionSnapshotUnavailable
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from rocket_templates.errors import (
    AccessDenied,
    DesignValidationError,
    EmptyDesign,
    ExportCancelled,
    GeometryError,
    InvalidQuery,
    NotFound,
    PersistenceFailure,
    UnsupportedFormat,
    VersionConflict,
    VersionSnapshotUnavailable,
)
from rocket_templates.export.pipeline import LocalTemplateHandle, TemplateExporter
from rocket_templates.logging_config import LogContext
from rocket_templates.model.serialization import design_to_dict
from rocket_templates.service.versioning import DesignPage, DesignService, parse_pagination

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_FORMAT = "svg"

_STATUS_BY_ERROR = (
    (DesignValidationError, 400),
    (InvalidQuery, 400),
    (UnsupportedFormat, 400),
    (AccessDenied, 403),
    (NotFound, 404),
    (VersionConflict, 409),
    (ExportCancelled, 409),
    (EmptyDesign, 422),
    (GeometryError, 422),
    (VersionSnapshotUnavailable, 501),
)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, supplied by the transport layer."""
    user_id: str
    role: str = "user"


@dataclass
class ApiResponse:
    """Status code, body and headers of a handled request.

    ``body`` is a JSON-serializable dict, or bytes for file downloads.
    ``attachment`` holds a local template file the caller must close()
    once it has been sent.
    """
    status: int
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)
    attachment: Optional[LocalTemplateHandle] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _error_response(exc: Exception) -> ApiResponse:
    if isinstance(exc, DesignValidationError):
        return ApiResponse(400, {
            "error": "Validation failed",
            "issues": [issue.to_dict() for issue in exc.issues],
        })
    if isinstance(exc, VersionConflict):
        return ApiResponse(409, {
            "error": str(exc),
            "expected_version": exc.expected,
            "actual_version": exc.actual,
        })
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return ApiResponse(status, {"error": str(exc)})
    if isinstance(exc, PersistenceFailure):
        logger.error("Persistence failure: %s", exc)
    else:
        logger.exception("Unhandled error: %s", exc)
    return ApiResponse(500, {"error": "Internal server error"})


def _handler(func: Callable[..., ApiResponse]) -> Callable[..., ApiResponse]:
    """Map exceptions raised by a handler to error responses."""
    @functools.wraps(func)
    def wrapper(self, *args: Any, **kwargs: Any) -> ApiResponse:
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            return _error_response(e)
    return wrapper


def _page_body(page: DesignPage, limit: int) -> Dict[str, Any]:
    return {
        "designs": [design_to_dict(d) for d in page.designs],
        "pagination": {
            "total": page.total,
            "page": page.page,
            "pages": page.pages,
            "limit": limit,
        },
    }


class DesignApi:
    """Request handlers for designs and template exports."""

    def __init__(self, service: DesignService, exporter: TemplateExporter):
        self.service = service
        self.exporter = exporter

    @_handler
    def create(self, identity: Identity, body: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        design = self.service.create_design(identity.user_id, body or {})
        return ApiResponse(201, design_to_dict(design))

    @_handler
    def list_own(self, identity: Identity, query: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        request = parse_pagination(query or {}, self.service.pagination)
        page = self.service.list_user_designs(identity.user_id, request)
        return ApiResponse(200, _page_body(page, request.limit))

    @_handler
    def list_public(self, query: Optional[Mapping[str, Any]] = None) -> ApiResponse:
        request = parse_pagination(query or {}, self.service.pagination)
        page = self.service.list_public_designs(request)
        return ApiResponse(200, _page_body(page, request.limit))

    @_handler
    def get(self, identity: Optional[Identity], design_id: str) -> ApiResponse:
        user_id = identity.user_id if identity else None
        return ApiResponse(200, design_to_dict(self.service.get_design(design_id, user_id)))

    @_handler
    def update(self, identity: Identity, design_id: str, body: Mapping[str, Any],
               change_description: Optional[str] = None,
               expected_version: Optional[int] = None) -> ApiResponse:
        design = self.service.update_design(
            design_id, identity.user_id, body, change_description, expected_version)
        return ApiResponse(200, design_to_dict(design))

    @_handler
    def delete(self, identity: Identity, design_id: str) -> ApiResponse:
        self.service.delete_design(design_id, identity.user_id)
        return ApiResponse(200, {"message": "Design deleted successfully"})

    @_handler
    def clone(self, identity: Identity, design_id: str,
              new_name: Optional[str] = None) -> ApiResponse:
        design = self.service.clone_design(design_id, identity.user_id, new_name)
        return ApiResponse(201, design_to_dict(design))

    @_handler
    def toggle_public(self, identity: Identity, design_id: str) -> ApiResponse:
        design = self.service.toggle_public_status(design_id, identity.user_id)
        return ApiResponse(200, design_to_dict(design))

    @_handler
    def get_version(self, identity: Optional[Identity], design_id: str,
                    version: int) -> ApiResponse:
        user_id = identity.user_id if identity else None
        design = self.service.get_design_version(design_id, user_id, version)
        return ApiResponse(200, design_to_dict(design))

    @_handler
    def analyze(self, identity: Optional[Identity], design_id: str) -> ApiResponse:
        user_id = identity.user_id if identity else None
        return ApiResponse(200, self.service.analyze_design(design_id, user_id).to_dict())

    @_handler
    def export(self, identity: Optional[Identity], design_id: str,
               fmt: Optional[str] = None) -> ApiResponse:
        """Export a visible design and return the file bytes."""
        user_id = identity.user_id if identity else None
        fmt = fmt or DEFAULT_EXPORT_FORMAT
        encoder = self.exporter.registry.get(fmt)
        with LogContext(design_id=design_id, user_id=user_id):
            design = self.service.get_design(design_id, user_id)
            template = self.exporter.export(design, encoder.name)
        return ApiResponse(200, template.data, {
            "Content-Type": template.content_type,
            "Content-Disposition": f'attachment; filename="{template.filename}"',
        })

    @_handler
    def export_url(self, identity: Optional[Identity], design_id: str,
                   fmt: Optional[str] = None) -> ApiResponse:
        """Export a visible design, store it and return its location."""
        user_id = identity.user_id if identity else None
        fmt = fmt or DEFAULT_EXPORT_FORMAT
        encoder = self.exporter.registry.get(fmt)
        with LogContext(design_id=design_id, user_id=user_id):
            design = self.service.get_design(design_id, user_id)
            persisted = self.exporter.persist(design, encoder.name)
        if persisted.is_local:
            return ApiResponse(200, {
                "path": str(persisted.local.path),
                "local": True,
                "format": persisted.format,
            }, attachment=persisted.local)
        return ApiResponse(200, {"url": persisted.url, "local": False,
                                 "format": persisted.format})
