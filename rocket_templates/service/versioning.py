"""
Design lifecycle and versioning.

Provides:
- DesignService: create, list, get, update, delete, clone, toggle visibility
- PageRequest / parse_pagination: validated listing parameters
- DesignPage: one page of a listing

Every accepted update produces version n+1 and exactly one history entry.
Visibility toggles record an entry under the current version without
incrementing it. History is an audit log only: past versions cannot be
reconstructed.

Mutations are read-validate-write sequences guarded by one service lock,
so concurrent updates through the same service are serialized. Callers
wanting protection against writers in other processes pass
``expected_version`` for a compare-and-swap check.
"""

import copy
import dataclasses
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from rocket_templates.analysis.mass_properties import DesignAnalysis, DesignAnalyzer
from rocket_templates.errors import (
    AccessDenied,
    InvalidQuery,
    NotFound,
    VersionConflict,
    VersionSnapshotUnavailable,
)
from rocket_templates.logging_config import LogContext
from rocket_templates.model.design import (
    CuttingMethod,
    Design,
    GlobalSettings,
    VersionHistoryEntry,
    default_sections,
    new_id,
    utcnow,
)
from rocket_templates.model.serialization import merge_patch
from rocket_templates.model.validator import validate_design
from rocket_templates.project_config import DesignDefaultsConfig, PaginationConfig
from rocket_templates.service.repository import SORTABLE_FIELDS, DesignRepository

logger = logging.getLogger(__name__)

INITIAL_CHANGE = "Initial design creation"
DEFAULT_CHANGE = "Design update"
DEFAULT_NAME = "Untitled Rocket"

SORT_ORDERS = ("asc", "desc")


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PageRequest:
    """Validated listing parameters."""
    page: int = 1
    limit: int = 10
    sort_by: str = "updated_at"
    sort_order: str = "desc"

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def validate(self, max_limit: int = 100) -> 'PageRequest':
        """Raise InvalidQuery when any parameter is out of range."""
        if self.page < 1:
            raise InvalidQuery(f"page must be >= 1, got {self.page}")
        if not 1 <= self.limit <= max_limit:
            raise InvalidQuery(f"limit must be between 1 and {max_limit}, got {self.limit}")
        if self.sort_by not in SORTABLE_FIELDS:
            raise InvalidQuery(
                f"sort_by must be one of {', '.join(SORTABLE_FIELDS)}, got {self.sort_by!r}")
        if self.sort_order not in SORT_ORDERS:
            raise InvalidQuery(f"sort_order must be asc or desc, got {self.sort_order!r}")
        return self


def _int_param(params: Mapping[str, Any], key: str, default: int) -> int:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidQuery(f"{key} must be an integer, got {value!r}")


def parse_pagination(params: Mapping[str, Any],
                     config: Optional[PaginationConfig] = None) -> PageRequest:
    """Build a validated PageRequest from raw query parameters.

    Args:
        params: Raw values (strings or ints) keyed page/limit/sort_by/sort_order
        config: Defaults and bounds

    Raises:
        InvalidQuery: If a parameter is malformed or out of range
    """
    config = config or PaginationConfig()
    request = PageRequest(
        page=_int_param(params, "page", 1),
        limit=_int_param(params, "limit", config.default_limit),
        sort_by=str(params.get("sort_by") or config.default_sort_by),
        sort_order=str(params.get("sort_order") or config.default_sort_order).lower(),
    )
    return request.validate(config.max_limit)


@dataclass
class DesignPage:
    """One page of a design listing."""
    designs: List[Design]
    total: int
    page: int
    pages: int


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class DesignService:
    """Versioning engine over a design repository."""

    def __init__(self,
                 repository: DesignRepository,
                 analyzer: Optional[DesignAnalyzer] = None,
                 defaults: Optional[DesignDefaultsConfig] = None,
                 pagination: Optional[PaginationConfig] = None,
                 clock: Callable = utcnow):
        self.repository = repository
        self.analyzer = analyzer or DesignAnalyzer()
        self.defaults = defaults or DesignDefaultsConfig()
        self.pagination = pagination or PaginationConfig()
        self.clock = clock
        self._lock = threading.RLock()

    # -- helpers ------------------------------------------------------------

    def _default_settings(self) -> GlobalSettings:
        return GlobalSettings(
            default_cutting_method=CuttingMethod(self.defaults.default_cutting_method),
            default_material=self.defaults.default_material,
            scale=self.defaults.scale,
            body_length_mm=self.defaults.body_length_mm,
            body_diameter_mm=self.defaults.body_diameter_mm,
        )

    def _validate(self, design: Design) -> None:
        report = validate_design(design, self.analyzer.catalog)
        for issue in report.warnings:
            logger.warning("Design %s: %s", design.id, issue)
        report.raise_if_invalid()

    def _refresh_metrics(self, design: Design) -> DesignAnalysis:
        analysis = self.analyzer.analyze(design)
        analysis.apply_to(design)
        return analysis

    def _load(self, design_id: str) -> Design:
        design = self.repository.find(design_id)
        if design is None:
            raise NotFound(f"Design {design_id} not found")
        return design

    def _load_owned(self, design_id: str, user_id: str) -> Design:
        design = self._load(design_id)
        if design.owner_id != user_id:
            raise AccessDenied(f"User {user_id} does not own design {design_id}")
        return design

    def _replace(self, design: Design) -> Design:
        changes = {f.name: getattr(design, f.name)
                   for f in dataclasses.fields(Design) if f.name not in ("id", "owner_id")}
        stored = self.repository.update(design.id, changes)
        if stored is None:
            raise NotFound(f"Design {design.id} not found")
        return stored

    def _page(self, filter: Dict[str, Any], page_request: Optional[PageRequest]) -> DesignPage:
        request = (page_request or PageRequest(
            limit=self.pagination.default_limit,
            sort_by=self.pagination.default_sort_by,
            sort_order=self.pagination.default_sort_order,
        )).validate(self.pagination.max_limit)
        total = self.repository.count(filter)
        designs = self.repository.find_many(
            filter, (request.sort_by, request.sort_order), request.skip, request.limit)
        pages = math.ceil(total / request.limit) if total else 0
        return DesignPage(designs=designs, total=total, page=request.page, pages=pages)

    # -- operations ---------------------------------------------------------

    def create_design(self, user_id: str, data: Optional[Mapping[str, Any]] = None) -> Design:
        """Create a design owned by ``user_id``.

        Omitted fields get defaults: the three standard sections, default
        global and template settings. The new design is at version 1 with
        an "Initial design creation" history entry.

        Raises:
            DesignValidationError: If the resulting design is invalid
        """
        now = self.clock()
        base = Design(
            id=new_id(),
            name=DEFAULT_NAME,
            owner_id=user_id,
            global_settings=self._default_settings(),
            sections=default_sections(),
            version=1,
            history=[VersionHistoryEntry(1, now, INITIAL_CHANGE)],
            created_at=now,
            updated_at=now,
        )
        design = merge_patch(base, dict(data)) if data else base

        with LogContext(design_id=design.id, user_id=user_id):
            self._validate(design)
            self._refresh_metrics(design)
            self.repository.insert(design)
            logger.info("Created design '%s'", design.name)
        return copy.deepcopy(design)

    def list_user_designs(self, user_id: str,
                          page_request: Optional[PageRequest] = None) -> DesignPage:
        """Designs owned by a user, one page at a time."""
        return self._page({"owner_id": user_id}, page_request)

    def list_public_designs(self, page_request: Optional[PageRequest] = None) -> DesignPage:
        """Public designs of all users, one page at a time."""
        return self._page({"is_public": True}, page_request)

    def get_design(self, design_id: str, user_id: Optional[str] = None) -> Design:
        """Fetch a design visible to the caller.

        Raises:
            NotFound: If the design does not exist
            AccessDenied: If it is private and not owned by ``user_id``
        """
        design = self._load(design_id)
        if not design.is_public and design.owner_id != user_id:
            raise AccessDenied(f"Design {design_id} is private")
        return design

    def update_design(self, design_id: str, user_id: str, patch: Mapping[str, Any],
                      change_description: Optional[str] = None,
                      expected_version: Optional[int] = None) -> Design:
        """Apply a partial update as a new version.

        Top-level keys of ``patch`` replace the stored ones. Owner, id,
        creation time, version and history in the patch are ignored.

        Args:
            design_id: Design to update
            user_id: Caller; must own the design
            patch: Partial design document
            change_description: History text (default "Design update")
            expected_version: If given, the stored version must equal it

        Returns:
            The stored design at version n+1

        Raises:
            NotFound, AccessDenied, VersionConflict, DesignValidationError
        """
        with LogContext(design_id=design_id, user_id=user_id), self._lock:
            current = self._load_owned(design_id, user_id)
            if expected_version is not None and expected_version != current.version:
                logger.info("Version conflict: expected %d, stored %d",
                            expected_version, current.version)
                raise VersionConflict(expected_version, current.version)

            now = self.clock()
            draft = merge_patch(current, dict(patch))
            draft.version = current.version + 1
            draft.history = current.history + [
                VersionHistoryEntry(draft.version, now, change_description or DEFAULT_CHANGE)
            ]
            draft.updated_at = now

            self._validate(draft)
            self._refresh_metrics(draft)
            stored = self._replace(draft)
            logger.info("Updated design to version %d", stored.version)
            return stored

    def delete_design(self, design_id: str, user_id: str) -> None:
        """Irreversibly delete an owned design."""
        with LogContext(design_id=design_id, user_id=user_id), self._lock:
            self._load_owned(design_id, user_id)
            if not self.repository.delete(design_id):
                raise NotFound(f"Design {design_id} not found")
            logger.info("Deleted design")

    def clone_design(self, design_id: str, user_id: str,
                     new_name: Optional[str] = None) -> Design:
        """Copy a visible design into a new private design owned by the caller.

        The clone gets a fresh id, version 1 and a single provenance entry.
        """
        with LogContext(design_id=design_id, user_id=user_id):
            source = self.get_design(design_id, user_id)
            now = self.clock()

            clone = copy.deepcopy(source)
            clone.id = new_id()
            clone.owner_id = user_id
            clone.name = new_name or f"Copy of {source.name}"
            clone.is_public = False
            clone.version = 1
            clone.history = [VersionHistoryEntry(1, now, f"Cloned from design {design_id}")]
            clone.created_at = now
            clone.updated_at = now

            self._refresh_metrics(clone)
            self.repository.insert(clone)
            logger.info("Cloned design into %s", clone.id)
            return copy.deepcopy(clone)

    def toggle_public_status(self, design_id: str, user_id: str) -> Design:
        """Flip visibility; recorded in history under the current version."""
        with LogContext(design_id=design_id, user_id=user_id), self._lock:
            current = self._load_owned(design_id, user_id)
            now = self.clock()
            is_public = not current.is_public
            entry = VersionHistoryEntry(
                current.version, now,
                "Made design public" if is_public else "Made design private",
            )
            stored = self.repository.update(design_id, {
                "is_public": is_public,
                "history": current.history + [entry],
                "updated_at": now,
            })
            if stored is None:
                raise NotFound(f"Design {design_id} not found")
            logger.info("Design is now %s", "public" if is_public else "private")
            return stored

    def get_design_version(self, design_id: str, user_id: Optional[str],
                           version: int) -> Design:
        """Look up a past version.

        Raises:
            NotFound: If the version never appears in the history
            VersionSnapshotUnavailable: Always otherwise; only the history
                log is kept, not full snapshots
        """
        design = self.get_design(design_id, user_id)
        if version not in {entry.version for entry in design.history}:
            raise NotFound(f"Version {version} of design {design_id} not found")
        raise VersionSnapshotUnavailable(
            f"Version {version} of design {design_id} is recorded in history "
            f"but snapshots are not stored")

    def analyze_design(self, design_id: str, user_id: Optional[str] = None) -> DesignAnalysis:
        """Recompute derived metrics; the owner's stored copy is refreshed."""
        with LogContext(design_id=design_id, user_id=user_id), self._lock:
            design = self.get_design(design_id, user_id)
            analysis = self.analyzer.analyze(design)
            if design.owner_id == user_id:
                self.repository.update(design_id, {
                    "mass_properties": analysis.mass,
                    "stability_analysis": analysis.stability,
                    "performance_metrics": analysis.performance,
                })
            return analysis
