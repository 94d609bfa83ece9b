"""
Unit tests for rocket_templates.api module.

Tests:
- Status codes of every handler
- Error mapping to responses
- Export downloads and persisted exports
"""

import logging
from unittest.mock import MagicMock

import pytest

from rocket_templates.api import ApiResponse, DesignApi, Identity
from rocket_templates.errors import PersistenceFailure

ALICE = Identity("alice")
BOB = Identity("bob")


@pytest.fixture
def created(api, design_patch):
    """Sample design created through the API."""
    response = api.create(ALICE, design_patch)
    assert response.status == 201
    return response.body


class TestDesignHandlers:
    """Tests for CRUD handlers."""

    def test_create(self, created):
        assert created["owner_id"] == "alice"
        assert created["version"] == 1

    def test_create_invalid(self, api, design_patch):
        """Test that validation failures return the issue list."""
        design_patch["components"][0]["section_id"] = "missing"
        response = api.create(ALICE, design_patch)
        assert response.status == 400
        assert [i["code"] for i in response.body["issues"]] == ["DANGLING_REFERENCE"]

    def test_get(self, api, created):
        assert api.get(ALICE, created["id"]).status == 200
        assert api.get(BOB, created["id"]).status == 403
        assert api.get(None, created["id"]).status == 403
        assert api.get(ALICE, "missing").status == 404

    def test_update(self, api, created):
        response = api.update(ALICE, created["id"], {"name": "v2"}, "Rename")
        assert response.ok
        assert response.body["version"] == 2
        assert response.body["history"][-1]["changes"] == "Rename"

    def test_update_conflict(self, api, created):
        """Test that a stale expected version returns 409 with both versions."""
        api.update(ALICE, created["id"], {"name": "v2"})
        response = api.update(ALICE, created["id"], {"name": "v3"}, expected_version=1)
        assert response.status == 409
        assert (response.body["expected_version"], response.body["actual_version"]) == (1, 2)

    def test_delete(self, api, created):
        assert api.delete(BOB, created["id"]).status == 403
        response = api.delete(ALICE, created["id"])
        assert response.body == {"message": "Design deleted successfully"}
        assert api.get(ALICE, created["id"]).status == 404

    def test_clone_and_toggle(self, api, created):
        assert api.clone(BOB, created["id"]).status == 403
        assert api.toggle_public(ALICE, created["id"]).body["is_public"] is True
        response = api.clone(BOB, created["id"])
        assert response.status == 201
        assert response.body["name"] == "Copy of Test Rocket"

    def test_lists(self, api, created):
        """Test listing bodies and pagination metadata."""
        own = api.list_own(ALICE, {"limit": "5"})
        assert own.status == 200
        assert own.body["pagination"] == {"total": 1, "page": 1, "pages": 1, "limit": 5}
        assert api.list_public().body["designs"] == []

    def test_list_invalid_query(self, api):
        assert api.list_own(ALICE, {"limit": "1000"}).status == 400

    def test_get_version(self, api, created):
        assert api.get_version(ALICE, created["id"], 1).status == 501
        assert api.get_version(ALICE, created["id"], 5).status == 404

    def test_analyze(self, api, created):
        response = api.analyze(ALICE, created["id"])
        assert response.status == 200
        assert "stability_analysis" in response.body


class TestExportHandlers:
    """Tests for export and export_url handlers."""

    def test_export_default_svg(self, api, created):
        """Test download headers of the default format."""
        response = api.export(ALICE, created["id"])
        assert response.status == 200
        assert response.headers["Content-Type"] == "image/svg+xml"
        assert response.headers["Content-Disposition"] == \
            f'attachment; filename="{created["id"]}.svg"'
        assert isinstance(response.body, bytes)

    def test_export_unsupported(self, api, created):
        response = api.export(ALICE, created["id"], "bmp")
        assert response.status == 400

    def test_export_private_denied(self, api, created):
        assert api.export(BOB, created["id"], "pdf").status == 403

    def test_export_empty_design(self, api, created):
        api.update(ALICE, created["id"], {"components": [], "fin_designs": []})
        assert api.export(ALICE, created["id"]).status == 422

    def test_export_url_local(self, api, created):
        """Test the local fallback is handed to the caller as an attachment."""
        response = api.export_url(ALICE, created["id"], "pdf")
        assert response.status == 200
        assert response.body["local"] is True
        assert response.attachment is not None
        response.attachment.close()
        assert response.attachment.closed


class TestErrorMapping:
    """Tests for unexpected failures."""

    def test_unexpected_error_is_generic_500(self, caplog):
        """Test that internal details never reach the response."""
        service = MagicMock()
        service.get_design.side_effect = RuntimeError("db password is hunter2")
        api = DesignApi(service, MagicMock())
        with caplog.at_level(logging.ERROR):
            response = api.get(ALICE, "x")
        assert response.status == 500
        assert response.body == {"error": "Internal server error"}
        assert "hunter2" in caplog.text

    def test_persistence_failure(self):
        service = MagicMock()
        service.delete_design.side_effect = PersistenceFailure("disk full")
        response = DesignApi(service, MagicMock()).delete(ALICE, "x")
        assert response.status == 500
        assert "disk full" not in str(response.body)

    def test_response_ok(self):
        assert ApiResponse(204, None).ok
        assert not ApiResponse(404, {}).ok
