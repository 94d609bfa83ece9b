"""
Error taxonomy for rocket_templates.

Every failure the package raises on purpose derives from
RocketTemplatesError, so callers (the API layer, the CLI) can tell
expected business failures from unexpected ones.
"""

from typing import List, Optional


class RocketTemplatesError(Exception):
    """Base class for all expected rocket_templates failures."""


class DesignValidationError(RocketTemplatesError):
    """A design (or a drafted update) violates the design graph invariants.

    Carries the complete list of issues so batch edits get full feedback.
    """

    def __init__(self, issues: List, message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            message = f"Design is invalid ({len(self.issues)} issue(s))"
        super().__init__(message)


class InvalidQuery(RocketTemplatesError):
    """Pagination or sort parameters are out of range."""


class NotFound(RocketTemplatesError):
    """Entity id does not resolve."""


class AccessDenied(RocketTemplatesError):
    """Caller lacks ownership or visibility rights."""


class VersionConflict(RocketTemplatesError):
    """Stored version differs from the version the caller expected."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected version {expected}, stored version is {actual}")


class VersionSnapshotUnavailable(RocketTemplatesError):
    """History is advisory only: past versions cannot be reconstructed."""


class UnsupportedFormat(RocketTemplatesError):
    """Requested template format has no registered encoder."""


class EmptyDesign(RocketTemplatesError):
    """Design has no components to render."""


class GeometryError(RocketTemplatesError):
    """Geometry kernel precondition failed."""


class InvalidSymmetry(GeometryError):
    """Symmetry options cannot be applied (count < 1 or unknown axis)."""


class InvalidOutline(GeometryError):
    """Outline cannot be evaluated with the given parameters."""


class StorageFailure(RocketTemplatesError):
    """Blob upload failed. Never fatal to an export."""


class PersistenceFailure(RocketTemplatesError):
    """Document store is unreachable or returned unreadable data."""


class ExportCancelled(RocketTemplatesError):
    """An export task was cancelled before it finished."""
