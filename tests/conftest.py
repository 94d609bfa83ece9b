"""
Pytest configuration and fixtures for rocket_templates.

Provides:
- Sample design documents and parsed designs
- Service, exporter and API fixtures over an in-memory store
- Package logger reset between tests
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict

import pytest

from rocket_templates.analysis.mass_properties import DesignAnalyzer
from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.api import DesignApi
from rocket_templates.export.pipeline import TemplateExporter
from rocket_templates.logging_config import PACKAGE_LOGGER, LogContext
from rocket_templates.model.design import Design
from rocket_templates.model.serialization import design_from_dict
from rocket_templates.project_config import ExportConfig
from rocket_templates.service.repository import InMemoryDesignRepository
from rocket_templates.service.versioning import DesignService


# ============================================================================
# Pytest Configuration Hooks
# ============================================================================

@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so caplog sees package records in every test."""
    yield
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        handler.close()
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    LogContext._stack.clear()


# ============================================================================
# Design Document Fixtures
# ============================================================================

def _rect(width: float, height: float):
    return [
        {"x": 0.0, "y": 0.0},
        {"x": width, "y": 0.0},
        {"x": width, "y": height},
        {"x": 0.0, "y": height},
    ]


def make_design_dict() -> Dict[str, Any]:
    """Three-section rocket with a nose shroud, a body shroud and four fins."""
    return {
        "id": "design-1",
        "name": "Test Rocket",
        "owner_id": "alice",
        "is_public": False,
        "global_settings": {
            "default_cutting_method": "digital",
            "default_material": "cardstock",
            "scale": 1.0,
            "body_length_mm": 500.0,
            "body_diameter_mm": 60.0,
        },
        "sections": [
            {"id": "sec-nose", "type": "nosecone", "name": "Nosecone",
             "start": 0.0, "end": 0.2,
             "structure": {"kind": "nosecone", "support_type": "ogive"}},
            {"id": "sec-payload", "type": "payload_bay", "name": "Payload Bay",
             "start": 0.2, "end": 0.5},
            {"id": "sec-body", "type": "main_body", "name": "Main Body",
             "start": 0.5, "end": 1.0},
        ],
        "components": [
            {
                "id": "cmp-nose",
                "type": "nosecone_shroud",
                "section_id": "sec-nose",
                "name": "Nose shroud",
                "material": {"material_id": "cardstock", "thickness_mm": 0.3},
                "bezier_controls": [
                    {"x": 0.0, "y": 0.0, "handle_out": [30.0, 40.0]},
                    {"x": 100.0, "y": 0.0},
                    {"x": 50.0, "y": 100.0},
                ],
                "position": {"x": 0.0, "y": 0.0, "z": 0.0},
            },
            {
                "id": "cmp-body",
                "type": "main_body_shroud",
                "section_id": "sec-body",
                "name": "Body shroud",
                "material": {"material_id": "cardstock", "thickness_mm": 0.3},
                "bezier_controls": _rect(190.0, 250.0),
                "position": {"x": 250.0, "y": 0.0, "z": 0.0},
            },
            {
                "id": "cmp-fin",
                "type": "fin",
                "section_id": "sec-body",
                "name": "Fin",
                "material": {"material_id": "cardstock", "thickness_mm": 0.5, "doubled": True},
                "bezier_controls": [
                    {"x": 0.0, "y": 0.0},
                    {"x": 80.0, "y": 0.0},
                    {"x": 60.0, "y": 50.0},
                    {"x": 20.0, "y": 50.0},
                ],
                "position": {"x": 420.0, "y": 0.0, "z": 0.0},
                "symmetry": {"enabled": True, "count": 4, "axis": "central"},
                "linked_components": ["cmp-body"],
            },
        ],
        "section_connections": [
            {"id": "conn-1", "section1_id": "sec-nose", "section2_id": "sec-payload",
             "connection_type": "separable", "mechanism_type": "friction"},
        ],
        "fin_designs": [
            {"id": "fin-main", "component_id": "cmp-fin", "section_id": "sec-body",
             "name": "Main fins", "fin_type": "main",
             "root_chord_mm": 80.0, "tip_chord_mm": 40.0, "span_mm": 50.0,
             "sweep_angle_deg": 20.0, "axial_position_mm": 420.0},
        ],
        "template_settings": {"paper_size": "a4", "orientation": "portrait"},
        "version": 1,
        "history": [
            {"version": 1, "timestamp": "2024-01-01T00:00:00+00:00",
             "changes": "Initial design creation"},
        ],
    }


@pytest.fixture
def design_dict() -> Dict[str, Any]:
    """Fresh sample design document."""
    return make_design_dict()


@pytest.fixture
def design(design_dict) -> Design:
    """Parsed sample design."""
    return design_from_dict(design_dict)


@pytest.fixture
def design_patch(design_dict) -> Dict[str, Any]:
    """Sample document without engine-owned fields, usable as create data."""
    data = copy.deepcopy(design_dict)
    for key in ("id", "owner_id", "version", "history"):
        data.pop(key)
    return data


@pytest.fixture
def design_file(tmp_path: Path, design_dict) -> Path:
    """Sample design written to a JSON file."""
    path = tmp_path / "rocket.json"
    path.write_text(json.dumps(design_dict), encoding="utf-8")
    return path


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def repository() -> InMemoryDesignRepository:
    return InMemoryDesignRepository()


@pytest.fixture
def service(repository) -> DesignService:
    """Design service over an empty in-memory store."""
    return DesignService(repository, DesignAnalyzer(MaterialCatalog()))


@pytest.fixture
def exporter(tmp_path: Path):
    """Template exporter without blob storage; temp files go to tmp_path."""
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    exp = TemplateExporter(ExportConfig(), materials=MaterialCatalog(), temp_dir=str(temp_dir))
    yield exp
    exp.close()


@pytest.fixture
def api(service, exporter) -> DesignApi:
    return DesignApi(service, exporter)
