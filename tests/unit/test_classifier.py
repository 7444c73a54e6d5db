"""Unit tests for drag source and mode classification"""

import pytest

from canvascore.common.types import DragMode, DragSource, LayoutMode, Modifiers
from canvascore.drag.classifier import (
    DragModeClassifier,
    containerLayout_detect,
    dragMode_classify,
    parentLayout_detect,
)
from canvascore.tree.node import VisualNode, VisualTree


@pytest.fixture
def classifier(canvas_tree, canvas_config):
    return DragModeClassifier(canvas_tree, canvas_config.markers.palette_markers)


class TestDragModeRules:
    """Test the pure classification table"""

    def test_palette_is_external(self):
        for modifiers in (Modifiers.NONE, Modifiers.SHIFT):
            assert dragMode_classify(
                DragSource.EXTERNAL_PALETTE, modifiers, LayoutMode.ROW
            ) == DragMode.EXTERNAL

    def test_canvas_element_in_block_is_internal(self):
        assert dragMode_classify(
            DragSource.CANVAS_ELEMENT, Modifiers.NONE, LayoutMode.BLOCK
        ) == DragMode.INTERNAL

    @pytest.mark.parametrize("layout", [LayoutMode.ROW, LayoutMode.COLUMN])
    def test_canvas_element_in_flow_is_positioning(self, layout):
        assert dragMode_classify(
            DragSource.CANVAS_ELEMENT, Modifiers.NONE, layout
        ) == DragMode.POSITIONING

    def test_positioning_modifier(self):
        assert dragMode_classify(
            DragSource.CANVAS_ELEMENT, Modifiers.SHIFT | Modifiers.CTRL, LayoutMode.BLOCK
        ) == DragMode.POSITIONING
        assert dragMode_classify(
            DragSource.CANVAS_ELEMENT, Modifiers.ALT, LayoutMode.BLOCK, Modifiers.ALT
        ) == DragMode.POSITIONING
        assert dragMode_classify(
            DragSource.CANVAS_ELEMENT, Modifiers.SHIFT, LayoutMode.BLOCK, Modifiers.ALT
        ) == DragMode.INTERNAL

    def test_unknown_is_disabled(self):
        assert dragMode_classify(
            DragSource.UNKNOWN, Modifiers.SHIFT, LayoutMode.ROW
        ) == DragMode.DISABLED


class TestLayoutDetection:
    """Test flow layout detection from inline styles and classes"""

    def test_block_by_default(self):
        assert containerLayout_detect(VisualNode("div")) == LayoutMode.BLOCK
        assert containerLayout_detect(VisualNode("div", styles={"display": "grid"})) == LayoutMode.BLOCK

    def test_flex_row(self):
        assert containerLayout_detect(VisualNode("div", styles={"display": "flex"})) == LayoutMode.ROW
        assert containerLayout_detect(VisualNode("div", classes=["flex-container"])) == LayoutMode.ROW

    def test_flex_column(self):
        node = VisualNode("div", styles={"display": "inline-flex", "flex-direction": "column-reverse"})
        assert containerLayout_detect(node) == LayoutMode.COLUMN

    def test_parent_layout(self, canvas_tree):
        assert parentLayout_detect(canvas_tree.node_find("b1")) == LayoutMode.ROW
        assert parentLayout_detect(canvas_tree.node_find("title")) == LayoutMode.BLOCK
        assert parentLayout_detect(canvas_tree.root) == LayoutMode.BLOCK
        assert parentLayout_detect(None) == LayoutMode.BLOCK


class TestDragModeClassifier:
    """Test classification against a live tree"""

    def test_row_flow_child_without_modifier_is_positioning(self, classifier, canvas_tree):
        """Test a canvas element inside a row-flow container drags in positioning mode"""
        result = classifier.gesture_classify(canvas_tree.node_find("b1"), Modifiers.NONE)

        assert result.source == DragSource.CANVAS_ELEMENT
        assert result.parent_layout == LayoutMode.ROW
        assert result.mode == DragMode.POSITIONING
        assert result.confidence == 0.9

    def test_block_child_is_internal(self, classifier, canvas_tree):
        result = classifier.gesture_classify(canvas_tree.node_find("hero"), Modifiers.NONE)

        assert result.mode == DragMode.INTERNAL
        assert result.confidence == 0.8

    def test_shift_forces_positioning(self, classifier, canvas_tree):
        result = classifier.gesture_classify(canvas_tree.node_find("title"), Modifiers.SHIFT)

        assert result.mode == DragMode.POSITIONING
        assert result.confidence == 1.0

    def test_classification_is_reproducible(self, classifier, canvas_tree):
        node = canvas_tree.node_find("intro")
        first = classifier.gesture_classify(node, Modifiers.NONE)
        second = classifier.gesture_classify(node, Modifiers.NONE)
        assert first == second

    def test_root_and_foreign_nodes_disabled(self, classifier, canvas_tree):
        assert classifier.dragSource_identify(canvas_tree.root) == DragSource.UNKNOWN
        assert classifier.dragSource_identify(VisualNode("div")) == DragSource.UNKNOWN
        assert classifier.dragSource_identify(None) == DragSource.UNKNOWN

        result = classifier.gesture_classify(None, Modifiers.NONE)
        assert result.mode == DragMode.DISABLED
        assert result.confidence == 0.0

    def test_palette_sources(self, classifier):
        palette = VisualNode("div", classes=["component-palette"])
        entry = VisualNode("div")
        palette.child_append(entry)
        VisualTree(palette)

        assert classifier.dragSource_identify(entry) == DragSource.EXTERNAL_PALETTE
        assert classifier.gesture_classify(palette, Modifiers.NONE).confidence == 1.0
        assert classifier.gesture_classify(entry, Modifiers.NONE).confidence == 0.9

    def test_component_type_attribute_marks_palette(self, classifier):
        entry = VisualNode("div", attrs={"data-component-type": "button"})

        assert classifier.paletteNode_check(entry) is True
        assert classifier.gesture_classify(entry, Modifiers.NONE).mode == DragMode.EXTERNAL
