"""
Diagram Backend - Editing session, persistence and CLI on top of diagram_core.
"""

from .autosave import AutoSaver
from .config import EditorSettings, PersistenceSettings, configure_logging, load_settings
from .diagram_manager import DiagramManager, write_document

__all__ = [
    "AutoSaver",
    "DiagramManager",
    "EditorSettings",
    "PersistenceSettings",
    "configure_logging",
    "load_settings",
    "write_document",
]
