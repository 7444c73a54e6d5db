"""Drag gesture state machine, mode classification and drop resolution."""

from canvascore.drag.classifier import DragClassification, DragModeClassifier, dragMode_classify
from canvascore.drag.executor import DropExecutor, DropResult
from canvascore.drag.session import DragListener, DragOutcome, DragSession, DragStateMachine
from canvascore.drag.zones import DropZone, DropZoneScorer, ZoneSelection, zones_rank

__all__ = [
    "DragClassification",
    "DragListener",
    "DragModeClassifier",
    "DragOutcome",
    "DragSession",
    "DragStateMachine",
    "DropExecutor",
    "DropResult",
    "DropZone",
    "DropZoneScorer",
    "ZoneSelection",
    "dragMode_classify",
    "zones_rank",
]
