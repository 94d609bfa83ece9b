"""
Unit tests for rocket_templates.export.vector module.

Tests:
- Sheet sizes and orientation
- Section groups, pieces and labels
- Symmetry expansion on the sheet
- Registration marks and instructions
- Empty and degenerate components
"""

import logging

import pytest

from rocket_templates.errors import EmptyDesign
from rocket_templates.export.vector import (
    LAYER_INSTRUCTIONS,
    LAYER_REGISTRATION,
    PAPER_SIZES,
    sheet_size,
    vectorize,
)
from rocket_templates.geometry.outline_stats import bounding_box
from rocket_templates.project_config import ExportConfig


class TestSheetSize:
    """Tests for sheet_size function."""

    def test_portrait(self):
        assert sheet_size("a4", "portrait") == PAPER_SIZES["a4"]

    def test_landscape_swaps(self):
        assert sheet_size("A4", "landscape") == (297.0, 210.0)

    def test_unknown_falls_back_to_letter(self, caplog):
        """Test fallback with a warning."""
        with caplog.at_level(logging.WARNING):
            assert sheet_size("tabloid", "portrait") == PAPER_SIZES["letter"]
        assert "tabloid" in caplog.text


class TestVectorize:
    """Tests for vectorize function."""

    def test_groups_per_section(self, design):
        """Test one group per section; the empty payload bay is left out."""
        doc = vectorize(design, ExportConfig())
        assert [g.section_id for g in doc.groups] == ["sec-nose", "sec-body"]
        assert doc.groups[0].labels[0].text == "Nosecone"

    def test_symmetry_copies_on_sheet(self, design):
        """Test that each symmetry copy becomes a piece with a k/n label."""
        doc = vectorize(design, ExportConfig())
        body = doc.groups[1]
        assert len(body.paths) == 1 + 4
        fin_labels = [label.text for label in body.labels if label.text.startswith("Fin")]
        assert fin_labels == ["Fin (1/4)", "Fin (2/4)", "Fin (3/4)", "Fin (4/4)"]
        assert doc.piece_count == 6

    def test_pieces_inside_sheet(self, design):
        """Test that pieces stay within the sheet width."""
        config = ExportConfig()
        doc = vectorize(design, config)
        for path in doc.iter_paths():
            box = bounding_box(path.points)
            assert box.min_x >= 0.0
            assert box.min_y >= 0.0
            assert box.max_y <= doc.height_mm

    def test_sheet_grows_when_full(self, design):
        """Test that the sheet height grows past one page."""
        doc = vectorize(design, ExportConfig())
        assert doc.page_height_mm == PAPER_SIZES["a4"][1]
        assert doc.height_mm >= doc.page_height_mm

    def test_registration_marks(self, design):
        """Test four corner crosses when enabled."""
        doc = vectorize(design, ExportConfig())
        assert len(doc.marks) == 8
        assert all(m.layer == LAYER_REGISTRATION and not m.closed for m in doc.marks)

    def test_no_marks_or_instructions(self, design):
        """Test that optional sheet furniture can be switched off."""
        design.template_settings.include_registration_marks = False
        design.template_settings.include_instructions = False
        doc = vectorize(design, ExportConfig())
        assert doc.marks == []
        # Only the title remains
        assert [a.text for a in doc.annotations] == ["Test Rocket"]

    def test_instructions(self, design):
        """Test that instructions list the materials."""
        doc = vectorize(design, ExportConfig())
        texts = [a.text for a in doc.annotations if a.layer == LAYER_INSTRUCTIONS]
        assert any("cardstock" in t for t in texts)

    def test_empty_design(self, design):
        """Test that a design without components cannot be rendered."""
        design.components = []
        with pytest.raises(EmptyDesign):
            vectorize(design, ExportConfig())

    def test_degenerate_component_skipped(self, design):
        """Test that components without an outline are left out."""
        design.components[0].bezier_controls = []
        doc = vectorize(design, ExportConfig())
        assert doc.groups[0].paths == []
        assert doc.piece_count == 5
