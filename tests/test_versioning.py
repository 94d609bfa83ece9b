"""
Unit tests for rocket_templates.service.versioning module.

Tests:
- Design creation defaults
- Version counting on updates
- Rejected drafts leave stored state unchanged
- Access control
- Clone and visibility toggle
- Listing and pagination
- Version lookup and on-demand analysis
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from rocket_templates.analysis.mass_properties import DesignAnalyzer
from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.errors import (
    AccessDenied,
    DesignValidationError,
    InvalidQuery,
    NotFound,
    VersionConflict,
    VersionSnapshotUnavailable,
)
from rocket_templates.model.design import SectionType
from rocket_templates.model.serialization import design_to_dict
from rocket_templates.model.validator import validate_design
from rocket_templates.project_config import PaginationConfig
from rocket_templates.service.versioning import (
    DEFAULT_CHANGE,
    INITIAL_CHANGE,
    DesignService,
    PageRequest,
    parse_pagination,
)


class _Clock:
    """Deterministic clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clocked_service(repository):
    return DesignService(repository, clock=_Clock())


@pytest.fixture
def stored(service, design_patch):
    """Sample design stored for alice."""
    return service.create_design("alice", design_patch)


class TestCreateDesign:
    """Tests for create_design."""

    def test_defaults(self, service):
        """Test a design created without data."""
        design = service.create_design("alice")
        assert design.owner_id == "alice"
        assert design.name == "Untitled Rocket"
        assert design.is_public is False
        assert design.version == 1
        assert [(h.version, h.changes) for h in design.history] == [(1, INITIAL_CHANGE)]
        assert [s.type for s in design.sections] == [
            SectionType.NOSECONE, SectionType.PAYLOAD_BAY, SectionType.MAIN_BODY]
        assert [(s.start, s.end) for s in design.sections] == [(0.0, 0.2), (0.2, 0.5), (0.5, 1.0)]

    def test_with_data(self, stored):
        """Test that supplied fields replace the defaults."""
        assert stored.name == "Test Rocket"
        assert len(stored.components) == 3
        assert stored.id != "design-1"
        assert stored.mass_properties is not None
        assert stored.stability_analysis is not None

    def test_invalid_data_rejected(self, service, repository, design_patch):
        """Test that an invalid design is not stored."""
        design_patch["sections"][1]["start"] = 0.3
        with pytest.raises(DesignValidationError):
            service.create_design("alice", design_patch)
        assert repository.count({}) == 0

    @pytest.mark.parametrize("data", [
        {"is_public": "false"},
        {"global_settings": {"body_diameter_mm": float("nan")}},
    ])
    def test_malformed_values_rejected(self, service, repository, data):
        """Test that coercible but wrong values never reach the store."""
        with pytest.raises(DesignValidationError):
            service.create_design("alice", data)
        assert repository.count({}) == 0


class TestUpdateDesign:
    """Tests for update_design."""

    def test_version_counting(self, service, stored):
        """Test that each accepted update adds exactly one version."""
        service.update_design(stored.id, "alice", {"name": "v2"})
        updated = service.update_design(stored.id, "alice", {"name": "v3"}, "Renamed again")
        assert updated.version == 3
        assert [h.version for h in updated.history] == [1, 2, 3]
        assert updated.history[1].changes == DEFAULT_CHANGE
        assert updated.history[2].changes == "Renamed again"
        assert validate_design(updated).is_valid

    def test_engine_fields_ignored(self, service, stored):
        """Test that owner, version and history cannot be patched."""
        updated = service.update_design(stored.id, "alice", {
            "owner_id": "mallory", "version": 40, "history": [], "created_at": "2000-01-01",
        })
        assert updated.owner_id == "alice"
        assert updated.version == 2
        assert len(updated.history) == 2
        assert updated.created_at == stored.created_at

    def test_invalid_draft_leaves_store_unchanged(self, service, stored):
        """Test that a rejected draft is never committed."""
        sections = [
            {"id": "a", "type": "nosecone", "start": 0.0, "end": 0.4},
            {"id": "b", "type": "main_body", "start": 0.5, "end": 1.0},
        ]
        with pytest.raises(DesignValidationError) as exc_info:
            service.update_design(stored.id, "alice", {"sections": sections})
        assert "BOUNDARY_TILING" in [i.code for i in exc_info.value.issues]

        current = service.get_design(stored.id, "alice")
        assert current.version == 1
        assert len(current.sections) == 3

    def test_not_owner(self, service, stored):
        """Test that only the owner may update."""
        with pytest.raises(AccessDenied):
            service.update_design(stored.id, "bob", {"name": "mine now"})

    def test_missing(self, service):
        """Test update of an unknown design."""
        with pytest.raises(NotFound):
            service.update_design("nope", "alice", {"name": "x"})

    def test_expected_version(self, service, stored):
        """Test compare-and-swap on the stored version."""
        service.update_design(stored.id, "alice", {"name": "v2"}, expected_version=1)
        with pytest.raises(VersionConflict) as exc_info:
            service.update_design(stored.id, "alice", {"name": "stale"}, expected_version=1)
        assert (exc_info.value.expected, exc_info.value.actual) == (1, 2)

    def test_metrics_refreshed(self, service, stored):
        """Test that derived metrics follow the new geometry."""
        before = stored.mass_properties.total_mass_kg
        updated = service.update_design(
            stored.id, "alice", {"components": [], "fin_designs": []})
        assert updated.mass_properties.total_mass_kg == 0.0
        assert before > 0.0


class TestAccess:
    """Tests for get_design and delete_design."""

    def test_private_hidden_from_others(self, service, stored):
        """Test that private designs are owner-only."""
        with pytest.raises(AccessDenied):
            service.get_design(stored.id, "bob")
        with pytest.raises(AccessDenied):
            service.get_design(stored.id)

    def test_public_visible(self, service, stored):
        """Test that public designs are visible to everyone."""
        service.toggle_public_status(stored.id, "alice")
        assert service.get_design(stored.id).id == stored.id

    def test_not_found(self, service):
        with pytest.raises(NotFound):
            service.get_design("nope", "alice")

    def test_delete(self, service, stored):
        """Test irreversible deletion."""
        with pytest.raises(AccessDenied):
            service.delete_design(stored.id, "bob")
        service.delete_design(stored.id, "alice")
        with pytest.raises(NotFound):
            service.get_design(stored.id, "alice")


class TestCloneDesign:
    """Tests for clone_design."""

    def test_clone_resets_identity(self, service, stored):
        """Test fresh id, version 1, single provenance entry."""
        service.update_design(stored.id, "alice", {"name": "Original"})
        clone = service.clone_design(stored.id, "alice")
        assert clone.id != stored.id
        assert clone.name == "Copy of Original"
        assert clone.version == 1
        assert [(h.version, h.changes) for h in clone.history] == [
            (1, f"Cloned from design {stored.id}")]

    def test_clone_copies_content(self, service, stored):
        """Test that everything but identity, ownership and history is copied."""
        clone = service.clone_design(stored.id, "alice", stored.name)

        identity = ("id", "owner_id", "version", "history", "created_at", "updated_at")
        source_doc = design_to_dict(service.get_design(stored.id, "alice"))
        clone_doc = design_to_dict(clone)
        for key in identity:
            source_doc.pop(key)
            clone_doc.pop(key)

        assert clone_doc == source_doc
        assert len(clone_doc["components"]) == 3
        assert clone_doc["section_connections"][0]["id"] == "conn-1"
        assert clone_doc["fin_designs"][0]["root_chord_mm"] == 80.0

    def test_clone_public_by_other_user(self, service, stored):
        """Test that cloning a public design gives the caller a private copy."""
        service.toggle_public_status(stored.id, "alice")
        clone = service.clone_design(stored.id, "bob", "Bob's rocket")
        assert clone.owner_id == "bob"
        assert clone.is_public is False
        assert clone.name == "Bob's rocket"
        assert service.get_design(stored.id, "alice").owner_id == "alice"

    def test_clone_private_denied(self, service, stored):
        """Test that private designs cannot be cloned by others."""
        with pytest.raises(AccessDenied):
            service.clone_design(stored.id, "bob")


class TestTogglePublicStatus:
    """Tests for toggle_public_status."""

    def test_double_toggle(self, service, stored):
        """Test two toggles restore visibility without a version bump."""
        first = service.toggle_public_status(stored.id, "alice")
        assert first.is_public is True
        second = service.toggle_public_status(stored.id, "alice")
        assert second.is_public is False
        assert second.version == 1
        assert [(h.version, h.changes) for h in second.history] == [
            (1, INITIAL_CHANGE), (1, "Made design public"), (1, "Made design private")]
        assert validate_design(second).is_valid

    def test_not_owner(self, service, stored):
        with pytest.raises(AccessDenied):
            service.toggle_public_status(stored.id, "bob")


class TestListing:
    """Tests for list_user_designs, list_public_designs and pagination."""

    def test_user_designs_paged(self, clocked_service):
        """Test page counts and default newest-first order."""
        names = ["one", "two", "three"]
        for name in names:
            clocked_service.create_design("alice", {"name": name})
        clocked_service.create_design("bob", {"name": "bob's"})

        page = clocked_service.list_user_designs("alice", PageRequest(page=1, limit=2))
        assert (page.total, page.pages, page.page) == (3, 2, 1)
        assert [d.name for d in page.designs] == ["three", "two"]

        last = clocked_service.list_user_designs("alice", PageRequest(page=2, limit=2))
        assert [d.name for d in last.designs] == ["one"]

    def test_public_designs(self, service):
        """Test that only public designs are listed."""
        a = service.create_design("alice", {"name": "a"})
        service.create_design("bob", {"name": "b"})
        service.toggle_public_status(a.id, "alice")
        page = service.list_public_designs()
        assert [d.id for d in page.designs] == [a.id]

    def test_empty_listing(self, service):
        page = service.list_user_designs("nobody")
        assert (page.total, page.pages, page.designs) == (0, 0, [])

    def test_sort_by_name(self, service):
        for name in ["b", "c", "a"]:
            service.create_design("alice", {"name": name})
        page = service.list_user_designs("alice", PageRequest(sort_by="name", sort_order="asc"))
        assert [d.name for d in page.designs] == ["a", "b", "c"]

    @pytest.mark.parametrize("params", [
        {"page": "0"},
        {"limit": "0"},
        {"limit": "101"},
        {"page": "abc"},
        {"limit": 2.7},
        {"page": 1.0},
        {"limit": [5]},
        {"sort_by": "owner_id"},
        {"sort_order": "sideways"},
    ])
    def test_invalid_params(self, params):
        """Test that out-of-range parameters are rejected."""
        with pytest.raises(InvalidQuery):
            parse_pagination(params, PaginationConfig())

    def test_defaults(self):
        """Test default parameters."""
        request = parse_pagination({})
        assert request == PageRequest(1, 10, "updated_at", "desc")
        assert parse_pagination({"page": "3", "limit": "5"}).skip == 10


class TestVersionLookup:
    """Tests for get_design_version and analyze_design."""

    def test_unknown_version(self, service, stored):
        with pytest.raises(NotFound):
            service.get_design_version(stored.id, "alice", 7)

    def test_snapshot_unavailable(self, service, stored):
        """Test that recorded versions cannot be reconstructed."""
        with pytest.raises(VersionSnapshotUnavailable):
            service.get_design_version(stored.id, "alice", 1)

    def test_analyze_design(self, service, repository, stored):
        """Test on-demand analysis refreshes the owner's cached metrics."""
        repository.update(stored.id, {"mass_properties": None})
        analysis = service.analyze_design(stored.id, "alice")
        assert analysis.mass.total_mass_kg > 0.0
        assert repository.find(stored.id).mass_properties is not None

    def test_analyze_public_by_other_does_not_write(self, service, repository, stored):
        """Test that non-owners only read."""
        service.toggle_public_status(stored.id, "alice")
        repository.update(stored.id, {"mass_properties": None})
        service.analyze_design(stored.id, "bob")
        assert repository.find(stored.id).mass_properties is None

    def test_analyze_blocks_concurrent_update(self, repository, design_patch):
        """Test that an update cannot land between reading and caching metrics."""
        service = DesignService(repository)
        stored = service.create_design("alice", design_patch)

        class RacingAnalyzer(DesignAnalyzer):
            racer = None
            update_blocked = None

            def analyze(self, design):
                if self.racer is None:
                    self.racer = threading.Thread(target=service.update_design, args=(
                        stored.id, "alice", {"components": [], "fin_designs": []}))
                    self.racer.start()
                    self.racer.join(timeout=0.2)
                    self.update_blocked = self.racer.is_alive()
                return super().analyze(design)

        analyzer = RacingAnalyzer(MaterialCatalog())
        service.analyzer = analyzer
        service.analyze_design(stored.id, "alice")
        analyzer.racer.join(timeout=5)

        assert analyzer.update_blocked is True
        current = repository.find(stored.id)
        assert current.version == 2
        assert current.mass_properties.total_mass_kg == 0.0
