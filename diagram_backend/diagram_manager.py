"""
Diagram Manager - Session state, history and persistence for one diagram.

This module implements:
- Single diagram state management (one diagram open at a time)
- Every mutation applied as one command through `diagram_core.apply_command`
- O(1) relationship-by-element lookups via an index dictionary
- Linear undo/redo history using snapshots
- JSON file persistence (import aborts as a whole on any invalid record)
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from diagram_core import (
    REGISTRY,
    CreateElement,
    CreateRelationship,
    DeleteElement,
    DeleteRelationship,
    DiagramModel,
    DiagramType,
    Element,
    Endpoint,
    FlipRelationship,
    Relationship,
    RelationshipType,
    SetOwner,
    TypeRegistry,
    UpdateElement,
    UpdateRelationship,
    ValidationIssue,
    apply_command,
    deserialize_model,
    serialize_model,
    validate_diagram,
)
from diagram_core.commands import Command

logger = logging.getLogger(__name__)


class DiagramManager:
    """
    Manages a single diagram's state, history, and persistence.

    Features:
    - Commands applied atomically (a failed command changes nothing)
    - Snapshot-based undo/redo history
    - Change callbacks for autosave and real-time sync

    The history system works via snapshots:
    - Each mutation stores the serialized diagram before the change
    - Undo restores the previous snapshot
    - Redo re-applies a snapshot from the future stack
    """

    def __init__(self, max_history: int = 100, registry: TypeRegistry = REGISTRY, indent: Optional[int] = 2):
        self._registry = registry
        self._diagram: Optional[DiagramModel] = None
        self._file_path: Optional[Path] = None
        self._history: list[dict] = []  # Past states (snapshots)
        self._future: list[dict] = []   # Future states (for redo)
        self._max_history = max_history
        self._indent = indent
        self._dirty = False  # True if unsaved changes exist
        self._on_change_callbacks: list[Callable[[], None]] = []
        self._on_save_callbacks: list[Callable[[Path, dict], None]] = []

        self._relationships_by_element: dict[str, set[str]] = {}  # element_id -> relationship ids

    # --- Index Management ---

    def _rebuild_indexes(self):
        """Rebuild the relationship index from the current diagram state."""
        self._relationships_by_element.clear()
        if self._diagram is None:
            return
        for relationship in self._diagram.relationships.values():
            for element_id in (relationship.source.element, relationship.target.element):
                self._relationships_by_element.setdefault(element_id, set()).add(relationship.id)

    # --- Properties ---

    @property
    def diagram(self) -> Optional[DiagramModel]:
        """Get the current diagram."""
        return self._diagram

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    @property
    def is_dirty(self) -> bool:
        """Check if there are unsaved changes."""
        return self._dirty

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    # --- Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for diagram changes."""
        self._on_change_callbacks.append(callback)

    def on_save(self, callback: Callable[[Path, dict], None]):
        """Register a callback for diagram saves.

        Callback receives (path: Path, diagram_info: dict) where diagram_info contains:
        - type: diagram kind
        - element_count: number of elements
        - relationship_count: number of relationships
        """
        self._on_save_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Change callback %r failed", callback)

    def _notify_save(self, path: Path):
        if not self._on_save_callbacks or self._diagram is None:
            return

        diagram_info = {
            "type": self._diagram.type.value,
            "element_count": len(self._diagram.elements),
            "relationship_count": len(self._diagram.relationships),
        }
        for callback in self._on_save_callbacks:
            try:
                callback(path, diagram_info)
            except Exception:
                # Save already succeeded; a failing listener must not undo that
                logger.exception("Save callback %r failed", callback)

    # --- History Management ---

    def _save_to_history(self):
        """Save current state to history before a mutation."""
        if self._diagram is None:
            return

        # New action invalidates redo stack
        self._future.clear()
        self._history.append(serialize_model(self._diagram))
        if len(self._history) > self._max_history:
            self._history.pop(0)

    def _set_diagram(self, diagram: DiagramModel, dirty: bool):
        self._diagram = diagram
        self._dirty = dirty
        self._rebuild_indexes()
        self._notify_change()

    # --- File Operations ---

    def new_diagram(self, diagram_type: DiagramType = DiagramType.SWARM_DIAGRAM) -> DiagramModel:
        """Create a new empty diagram."""
        self._file_path = None
        self._history.clear()
        self._future.clear()
        self._set_diagram(DiagramModel(type=diagram_type), dirty=False)
        return self._diagram

    def import_diagram(self, data: dict) -> DiagramModel:
        """
        Replace the current diagram with an imported document.

        The import is all-or-nothing: on any error the current diagram,
        history and file path are left untouched.
        """
        diagram = deserialize_model(data, self._registry)
        self._save_to_history()
        self._set_diagram(diagram, dirty=True)
        logger.info(
            "Imported %s with %d elements and %d relationships",
            diagram.type.value, len(diagram.elements), len(diagram.relationships),
        )
        return diagram

    def open_diagram(self, file_path: str | Path) -> DiagramModel:
        """Open a diagram from a JSON file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Diagram file not found: {path}")

        with open(path, 'r') as f:
            data = json.load(f)

        diagram = deserialize_model(data, self._registry)
        self._file_path = path
        self._history.clear()
        self._future.clear()
        self._set_diagram(diagram, dirty=False)
        return diagram

    def save_diagram(self, file_path: Optional[str | Path] = None) -> Path:
        """
        Save the diagram to a JSON file.

        If file_path is provided, save to that path (Save As).
        Otherwise, save to the current file_path.
        """
        if self._diagram is None:
            raise ValueError("No diagram to save")

        if file_path:
            path = Path(file_path)
        elif self._file_path:
            path = self._file_path
        else:
            raise ValueError("No file path specified and no current file path")

        write_document(path, self.export(), self._indent)
        self._file_path = path
        self._dirty = False
        logger.info("Saved diagram to %s", path)

        self._notify_save(path)
        return path

    def export(self) -> dict:
        """Serialized form of the current diagram."""
        if self._diagram is None:
            raise ValueError("No diagram open")
        return serialize_model(self._diagram)

    # --- Undo/Redo ---

    def undo(self) -> Optional[DiagramModel]:
        """Undo the last action."""
        if not self.can_undo or self._diagram is None:
            return None

        self._future.append(serialize_model(self._diagram))
        snapshot = self._history.pop()
        self._set_diagram(deserialize_model(snapshot, self._registry), dirty=True)
        return self._diagram

    def redo(self) -> Optional[DiagramModel]:
        """Redo the last undone action."""
        if not self.can_redo or self._diagram is None:
            return None

        self._history.append(serialize_model(self._diagram))
        snapshot = self._future.pop()
        self._set_diagram(deserialize_model(snapshot, self._registry), dirty=True)
        return self._diagram

    # --- Commands ---

    def apply(self, command: Command) -> DiagramModel:
        """
        Apply one command to the open diagram.

        The command is applied in a single step; readers never see a partially
        applied command. On error nothing changes and no history entry is made.
        """
        if self._diagram is None:
            raise ValueError("No diagram open")

        updated = apply_command(self._diagram, command, self._registry)
        self._save_to_history()
        self._set_diagram(updated, dirty=True)
        return updated

    # --- Element Operations ---

    def add_element(self, element_type: str, owner: Optional[str] = None, **values: Any) -> Element:
        """Add a new element built from the registry defaults."""
        command = CreateElement(type=element_type, owner=owner, values=values)
        return self.apply(command).elements[command.id]

    def update_element(self, element_id: str, **changes: Any) -> Element:
        """Update an existing element (None values are ignored)."""
        return self.apply(UpdateElement(element_id=element_id, changes=changes)).elements[element_id]

    def set_owner(self, element_id: str, owner: Optional[str]) -> Element:
        """Move an element into a container, or out of it when owner is None."""
        return self.apply(SetOwner(element_id=element_id, owner=owner)).elements[element_id]

    def delete_element(self, element_id: str) -> bool:
        """Delete an element and all connected relationships."""
        if self._diagram is None:
            raise ValueError("No diagram open")
        if element_id not in self._diagram.elements:
            return False
        self.apply(DeleteElement(element_id=element_id))
        return True

    def get_element(self, element_id: str) -> Optional[Element]:
        if self._diagram is None:
            return None
        return self._diagram.elements.get(element_id)

    def allowed_relationship_kinds(self, element_id: str) -> frozenset[RelationshipType]:
        """Relationship kinds the given element may be the source of."""
        element = self.get_element(element_id)
        if element is None:
            raise ValueError(f"Element not found: {element_id}")
        return self._registry.allowed_relationship_kinds(element.type)

    # --- Relationship Operations ---

    def add_relationship(
        self,
        source: str,
        target: str,
        relationship_type: str = RelationshipType.SWARM_LINK.value,
        source_direction: Optional[str] = None,
        target_direction: Optional[str] = None,
        **values: Any,
    ) -> Relationship:
        """
        Add a relationship between two elements.

        A kind the source element may not create is stored as the generic link.
        """
        source_end = Endpoint(element=source)
        target_end = Endpoint(element=target)
        if source_direction:
            source_end = Endpoint(element=source, direction=source_direction)
        if target_direction:
            target_end = Endpoint(element=target, direction=target_direction)
        command = CreateRelationship(type=relationship_type, source=source_end, target=target_end, values=values)
        return self.apply(command).relationships[command.id]

    def update_relationship(
        self,
        relationship_id: str,
        relationship_type: Optional[str] = None,
        **changes: Any,
    ) -> Relationship:
        """Update a relationship; changing its kind re-labels it unless a name is given."""
        command = UpdateRelationship(relationship_id=relationship_id, type=relationship_type, changes=changes)
        return self.apply(command).relationships[relationship_id]

    def flip_relationship(self, relationship_id: str) -> Relationship:
        """Swap source and target; the kind is re-checked against the new source."""
        return self.apply(FlipRelationship(relationship_id=relationship_id)).relationships[relationship_id]

    def delete_relationship(self, relationship_id: str) -> bool:
        if self._diagram is None:
            raise ValueError("No diagram open")
        if relationship_id not in self._diagram.relationships:
            return False
        self.apply(DeleteRelationship(relationship_id=relationship_id))
        return True

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        if self._diagram is None:
            return None
        return self._diagram.relationships.get(relationship_id)

    def get_relationships_for_element(self, element_id: str) -> list[Relationship]:
        """Get all relationships connected to an element (O(1) index lookup)."""
        if self._diagram is None or element_id not in self._relationships_by_element:
            return []
        return [
            self._diagram.relationships[rid]
            for rid in self._relationships_by_element[element_id]
            if rid in self._diagram.relationships
        ]

    # --- Inspection ---

    def validate(self) -> list[ValidationIssue]:
        if self._diagram is None:
            return []
        return validate_diagram(self._diagram, self._registry)

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        if self._diagram is None:
            return {
                "diagram": None,
                "file_path": None,
                "is_dirty": False,
                "can_undo": False,
                "can_redo": False
            }

        return {
            "diagram": serialize_model(self._diagram),
            "file_path": str(self._file_path) if self._file_path else None,
            "is_dirty": self._dirty,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo
        }


def write_document(path: Path, document: dict, indent: Optional[int] = 2) -> None:
    """Write a diagram document, replacing the file only once it is fully written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, 'w') as f:
            json.dump(document, f, indent=indent)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
