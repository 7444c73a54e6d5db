"""Pytest configuration and shared fixtures for canvascore tests

This module provides common fixtures and test utilities used across
unit and integration tests.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

import pytest

from canvascore.common.config import Config, ConfigLoader
from canvascore.common.scheduler import ManualScheduler
from canvascore.common.types import Rect
from canvascore.storage.store import MemoryStore
from canvascore.tree.mutations import MarkerFilter
from canvascore.tree.node import TextNode, VisualNode, VisualTree


class RecordingBridge:
    """Host bridge double that records every call"""

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock
        self.submissions: list[str] = []
        self.submit_times: list[float] = []
        self.added: list[tuple[str, str, int]] = []
        self.moved: list[tuple[str, str, int]] = []
        self.deleted: list[tuple[str, str, int]] = []
        self.logs: list[str] = []
        self.pings: int = 0
        self.ping_answer: str = "pong"
        self.submit_error: Optional[Exception] = None

    def snapshot_submit(self, payload: str) -> None:
        if self._clock is not None:
            self.submit_times.append(self._clock())
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append(payload)

    def element_added(self, element_id: str, parent_id: str, index: int) -> None:
        self.added.append((element_id, parent_id, index))

    def element_moved(self, element_id: str, parent_id: str, index: int) -> None:
        self.moved.append((element_id, parent_id, index))

    def element_deleted(self, element_id: str, parent_id: str, index: int) -> None:
        self.deleted.append((element_id, parent_id, index))

    def ping(self) -> str:
        self.pings += 1
        return self.ping_answer

    def log(self, message: str) -> None:
        self.logs.append(message)


def canvasRoot_build() -> VisualNode:
    """
    Build the sample canvas used across tests

    Layout (x, y, width, height)::

        canvas-root (0, 0, 800, 600)
          hero  <section>  (0, 0, 800, 200)
            title <h1>     (20, 20, 760, 60)
            intro <p>      (20, 100, 760, 60)
          row   <div> flex (0, 220, 800, 150)
            b1 <button>    (10, 240, 200, 100)
            b2 <button>    (220, 240, 200, 100)
          footer <div>     (0, 400, 800, 180)
    """
    root = VisualNode("div", node_id="canvas-root", bounds=Rect(0, 0, 800, 600))

    hero = VisualNode("section", node_id="hero", bounds=Rect(0, 0, 800, 200))
    title = VisualNode("h1", node_id="title", classes=["headline"], bounds=Rect(20, 20, 760, 60))
    title.child_append(TextNode("Welcome"))
    intro = VisualNode("p", node_id="intro", bounds=Rect(20, 100, 760, 60))
    intro.child_append(TextNode("  Build something  "))
    hero.child_append(title)
    hero.child_append(intro)

    row = VisualNode(
        "div",
        node_id="row",
        styles={"display": "flex"},
        bounds=Rect(0, 220, 800, 150),
    )
    b1 = VisualNode("button", node_id="b1", bounds=Rect(10, 240, 200, 100))
    b1.child_append(TextNode("One"))
    b2 = VisualNode("button", node_id="b2", bounds=Rect(220, 240, 200, 100))
    b2.child_append(TextNode("Two"))
    row.child_append(b1)
    row.child_append(b2)

    footer = VisualNode("div", node_id="footer", bounds=Rect(0, 400, 800, 180))

    root.child_append(hero)
    root.child_append(row)
    root.child_append(footer)
    return root


@pytest.fixture
def sample_config() -> Config:
    """Load sample configuration for testing

    Returns:
        Config object with test values
    """
    config_path = Path(__file__).parent.parent / "config.yml"
    if not config_path.exists():
        pytest.skip("config.yml not found - required for this test")
    return ConfigLoader.config_load(config_path)


@pytest.fixture
def canvas_config() -> Config:
    """Built-in default configuration"""
    return Config()


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    """Virtual clock starting at zero"""
    return ManualScheduler()


@pytest.fixture
def recording_bridge(manual_scheduler) -> RecordingBridge:
    """Bridge double timestamping submissions with the manual clock"""
    return RecordingBridge(clock=manual_scheduler.now)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def canvas_root() -> VisualNode:
    """Detached sample canvas root"""
    return canvasRoot_build()


@pytest.fixture
def canvas_tree(canvas_root, canvas_config) -> VisualTree:
    """Sample canvas wrapped in a tree with the default marker filter"""
    markers = canvas_config.markers
    return VisualTree(
        canvas_root,
        marker_filter=MarkerFilter(markers.node_markers, markers.state_markers),
    )


@pytest.fixture(autouse=True)
def setup_logging(caplog):
    """Setup logging for tests"""
    caplog.set_level(logging.DEBUG)


# Markers for test organization
def pytest_configure(config) -> None:
    """Register custom pytest markers used by this test suite."""
    config.addinivalue_line("markers", "integration: mark test as an end-to-end editor test")
