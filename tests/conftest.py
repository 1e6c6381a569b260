from __future__ import annotations

import os
from collections.abc import Generator

import pytest

from diagram_backend import DiagramManager
from diagram_core import CreateElement, DiagramModel, apply_commands


def _clear_diagram_tool_env() -> None:
    for key in list(os.environ):
        if key.startswith("DIAGRAM_TOOL_"):
            os.environ.pop(key, None)


_clear_diagram_tool_env()


@pytest.fixture(autouse=True)
def clear_diagram_tool_env() -> Generator[None, None, None]:
    _clear_diagram_tool_env()
    yield
    _clear_diagram_tool_env()


@pytest.fixture
def swarm_graph() -> DiagramModel:
    """A 400x300 swarm at (100, 100) with three agents, plus an unowned language model."""
    return apply_commands(
        DiagramModel(),
        [
            CreateElement(
                id="swarm",
                type="Swarm",
                values={"bounds": {"x": 100, "y": 100, "width": 400, "height": 300}},
            ),
            CreateElement(id="dispatcher", type="Dispatcher", owner="swarm", values={"bounds": {"x": 20, "y": 70}}),
            CreateElement(id="solver", type="Solver", owner="swarm", values={"bounds": {"x": 200, "y": 70}}),
            CreateElement(id="supervisor", type="Supervisor", owner="swarm", values={"bounds": {"x": 300, "y": 180}}),
            CreateElement(id="llm", type="LanguageModel", values={"bounds": {"x": 250, "y": 200}}),
        ],
    )


@pytest.fixture
def manager() -> DiagramManager:
    manager = DiagramManager(max_history=10)
    manager.new_diagram()
    return manager
