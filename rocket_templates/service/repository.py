"""
Design document store.

Provides:
- DesignRepository: the persistence interface the versioning engine uses
- InMemoryDesignRepository: lock-guarded dict store (tests, single process)
- JsonDirectoryDesignRepository: one JSON document per design on disk

Repositories hand out copies: callers never hold a reference into the
store, so a rejected draft can never leak into stored state.
"""

import copy
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from rocket_templates.errors import DesignValidationError, PersistenceFailure
from rocket_templates.model.design import Design
from rocket_templates.model.serialization import design_from_dict, design_to_dict
from rocket_templates.project_config import StorageConfig

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("name", "created_at", "updated_at", "version")

Sort = Tuple[str, str]


def _matches(design: Design, filter: Mapping[str, Any]) -> bool:
    return all(getattr(design, key) == value for key, value in filter.items())


def _sorted(designs: List[Design], sort: Optional[Sort]) -> List[Design]:
    if sort is None:
        return designs
    field_name, order = sort
    # Stable secondary order by id keeps paging deterministic.
    designs = sorted(designs, key=lambda d: d.id)
    return sorted(designs, key=lambda d: getattr(d, field_name), reverse=(order == "desc"))


class DesignRepository(ABC):
    """Persistence interface for design documents."""

    @abstractmethod
    def find(self, design_id: str) -> Optional[Design]:
        """Return a copy of the stored design, or None."""

    @abstractmethod
    def find_many(self, filter: Mapping[str, Any], sort: Optional[Sort] = None,
                  skip: int = 0, limit: Optional[int] = None) -> List[Design]:
        """Return copies of matching designs, sorted and paged."""

    @abstractmethod
    def count(self, filter: Mapping[str, Any]) -> int:
        """Number of designs matching an equality filter."""

    @abstractmethod
    def insert(self, design: Design) -> None:
        """Store a new design."""

    @abstractmethod
    def update(self, design_id: str, changes: Mapping[str, Any]) -> Optional[Design]:
        """Replace top-level fields of a stored design; None when missing."""

    @abstractmethod
    def delete(self, design_id: str) -> bool:
        """Remove a design; False when it did not exist."""


class InMemoryDesignRepository(DesignRepository):
    """Dict-backed store; every operation is one locked transaction."""

    def __init__(self):
        self._designs: Dict[str, Design] = {}
        self._lock = threading.RLock()

    def find(self, design_id: str) -> Optional[Design]:
        with self._lock:
            design = self._designs.get(design_id)
            return copy.deepcopy(design) if design is not None else None

    def find_many(self, filter: Mapping[str, Any], sort: Optional[Sort] = None,
                  skip: int = 0, limit: Optional[int] = None) -> List[Design]:
        with self._lock:
            matched = [d for d in self._designs.values() if _matches(d, filter)]
            matched = _sorted(matched, sort)
            end = None if limit is None else skip + limit
            return [copy.deepcopy(d) for d in matched[skip:end]]

    def count(self, filter: Mapping[str, Any]) -> int:
        with self._lock:
            return sum(1 for d in self._designs.values() if _matches(d, filter))

    def insert(self, design: Design) -> None:
        with self._lock:
            if design.id in self._designs:
                raise PersistenceFailure(f"Design {design.id} already exists")
            self._designs[design.id] = copy.deepcopy(design)

    def update(self, design_id: str, changes: Mapping[str, Any]) -> Optional[Design]:
        with self._lock:
            design = self._designs.get(design_id)
            if design is None:
                return None
            for key, value in changes.items():
                setattr(design, key, copy.deepcopy(value))
            return copy.deepcopy(design)

    def delete(self, design_id: str) -> bool:
        with self._lock:
            return self._designs.pop(design_id, None) is not None


class JsonDirectoryDesignRepository(DesignRepository):
    """One ``<id>.json`` document per design under a root directory.

    Listing reads every document; fine for the small collections a
    classroom or a single user produces.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self._lock = threading.RLock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Cannot create design store at {self.root}: {e}") from e

    def _path(self, design_id: str) -> Path:
        if not design_id or os.sep in design_id or design_id.startswith("."):
            raise PersistenceFailure(f"Invalid design id {design_id!r}")
        return self.root / f"{design_id}.json"

    def _read(self, path: Path) -> Design:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return design_from_dict(data)
        except (OSError, json.JSONDecodeError, DesignValidationError) as e:
            logger.error("Unreadable design document %s: %s", path, e)
            raise PersistenceFailure(f"Unreadable design document {path.name}") from e

    def _write(self, design: Design) -> None:
        path = self._path(design.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(design_to_dict(design), indent=2, ensure_ascii=False),
                           encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            logger.error("Failed to write design %s: %s", design.id, e)
            raise PersistenceFailure(f"Failed to write design {design.id}") from e

    def _all(self) -> List[Design]:
        return [self._read(p) for p in sorted(self.root.glob("*.json"))]

    def find(self, design_id: str) -> Optional[Design]:
        with self._lock:
            path = self._path(design_id)
            if not path.exists():
                return None
            return self._read(path)

    def find_many(self, filter: Mapping[str, Any], sort: Optional[Sort] = None,
                  skip: int = 0, limit: Optional[int] = None) -> List[Design]:
        with self._lock:
            matched = _sorted([d for d in self._all() if _matches(d, filter)], sort)
            end = None if limit is None else skip + limit
            return matched[skip:end]

    def count(self, filter: Mapping[str, Any]) -> int:
        with self._lock:
            return sum(1 for d in self._all() if _matches(d, filter))

    def insert(self, design: Design) -> None:
        with self._lock:
            if self._path(design.id).exists():
                raise PersistenceFailure(f"Design {design.id} already exists")
            self._write(design)

    def update(self, design_id: str, changes: Mapping[str, Any]) -> Optional[Design]:
        with self._lock:
            design = self.find(design_id)
            if design is None:
                return None
            for key, value in changes.items():
                setattr(design, key, copy.deepcopy(value))
            self._write(design)
            return design

    def delete(self, design_id: str) -> bool:
        with self._lock:
            path = self._path(design_id)
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise PersistenceFailure(f"Failed to delete design {design_id}") from e
            return True


def create_repository(config: StorageConfig) -> DesignRepository:
    """Build the repository selected by the storage configuration."""
    if config.backend == "memory":
        return InMemoryDesignRepository()
    if config.backend == "json":
        logger.info("Using JSON design store at %s", config.path)
        return JsonDirectoryDesignRepository(config.path)
    raise ValueError(f"Unknown storage backend: {config.backend!r}")
