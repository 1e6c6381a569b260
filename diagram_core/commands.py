"""
Diagram commands - the only way a diagram is mutated.

Each command is a small pydantic record. `apply_command(graph, command)` applies
it to a copy of the graph, re-runs containment layout and returns the new
graph. If the command fails the input graph is left exactly as it was, so a
command is either fully applied or not applied at all.

Invariants kept by every command:
- `child.owner == container.id` iff `child.id in container.owned_elements`
- relationship endpoints reference existing elements (deleting an element
  deletes its relationships)
- relationship kinds are within the source element's allow-list
- element bounds are at least the kind minimum, children are clamped into
  their container
"""

import logging
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from .construction import (
    build_from_partial,
    check_known_fields,
    enforce_minimum_size,
    merge_defaults,
    to_wire_keys,
)
from .errors import (
    DiagramModelError,
    ElementNotFoundError,
    OwnershipError,
    RelationshipNotFoundError,
    SerializationError,
)
from .layout import absolute_position, layout_graph
from .models import (
    Container,
    DiagramModel,
    Element,
    Endpoint,
    Relationship,
    Size,
    WireModel,
    generate_element_id,
    generate_relationship_id,
)
from .registry import REGISTRY, TypeRegistry
from .relationships import (
    apply_relationship_changes,
    change_relationship_type,
    check_endpoints,
    propose_relationship,
)
from .types import DiagramType

logger = logging.getLogger(__name__)

# Element fields that plain updates may not touch
PROTECTED_ELEMENT_FIELDS = frozenset({"id", "type", "owner", "ownedElements"})
PROTECTED_RELATIONSHIP_FIELDS = frozenset({"id", "type"})


# --- Commands ---

class CreateElement(WireModel):
    """Instantiate a registered element kind, optionally inside a container."""
    kind: Literal["create_element"] = "create_element"
    id: str = Field(default_factory=generate_element_id)
    type: str
    values: dict[str, Any] = Field(default_factory=dict)
    owner: Optional[str] = None  # Bounds in `values` are relative to this container


class UpdateElement(WireModel):
    """Partial update; None values are ignored."""
    kind: Literal["update_element"] = "update_element"
    element_id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class SetOwner(WireModel):
    """Move an element into a container, or out of it when `owner` is None."""
    kind: Literal["set_owner"] = "set_owner"
    element_id: str
    owner: Optional[str] = None


class DeleteElement(WireModel):
    kind: Literal["delete_element"] = "delete_element"
    element_id: str


class CreateRelationship(WireModel):
    kind: Literal["create_relationship"] = "create_relationship"
    id: str = Field(default_factory=generate_relationship_id)
    type: str = "SwarmLink"
    source: Endpoint
    target: Endpoint
    values: dict[str, Any] = Field(default_factory=dict)


class UpdateRelationship(WireModel):
    """Partial update, optionally changing the relationship kind in the same step."""
    kind: Literal["update_relationship"] = "update_relationship"
    relationship_id: str
    type: Optional[str] = None
    changes: dict[str, Any] = Field(default_factory=dict)


class FlipRelationship(WireModel):
    """Swap source and target; the drawn path is reversed with them."""
    kind: Literal["flip_relationship"] = "flip_relationship"
    relationship_id: str


class DeleteRelationship(WireModel):
    kind: Literal["delete_relationship"] = "delete_relationship"
    relationship_id: str


class UpdateDiagram(WireModel):
    kind: Literal["update_diagram"] = "update_diagram"
    size: Optional[Size] = None
    type: Optional[DiagramType] = None


Command = Annotated[
    Union[
        CreateElement,
        UpdateElement,
        SetOwner,
        DeleteElement,
        CreateRelationship,
        UpdateRelationship,
        FlipRelationship,
        DeleteRelationship,
        UpdateDiagram,
    ],
    Field(discriminator="kind"),
]

_COMMAND_ADAPTER = TypeAdapter(Command)


def parse_command(data: dict) -> Command:
    """Parse a command from its JSON form (dispatching on `kind`)."""
    try:
        return _COMMAND_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise SerializationError(f"Invalid command: {exc}") from exc


# --- Application ---

def apply_command(graph: DiagramModel, command: Command, registry: TypeRegistry = REGISTRY) -> DiagramModel:
    """
    Apply one command and return the resulting diagram.

    The input graph is never modified.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported command: {type(command).__name__}")
    working = graph.model_copy(deep=True)
    handler(working, command, registry)
    return layout_graph(working, registry)


def apply_commands(graph: DiagramModel, commands: list[Command], registry: TypeRegistry = REGISTRY) -> DiagramModel:
    """Apply a batch of commands as one unit: all of them or none."""
    result = graph
    for command in commands:
        result = apply_command(result, command, registry)
    return result


# --- Lookups ---

def _element(graph: DiagramModel, element_id: str) -> Element:
    element = graph.elements.get(element_id)
    if element is None:
        raise ElementNotFoundError(element_id)
    return element


def _relationship(graph: DiagramModel, relationship_id: str) -> Relationship:
    relationship = graph.relationships.get(relationship_id)
    if relationship is None:
        raise RelationshipNotFoundError(relationship_id)
    return relationship


def _ensure_unused_id(graph: DiagramModel, item_id: str) -> None:
    if item_id in graph.elements or item_id in graph.relationships:
        raise DiagramModelError(f"Id already in use: {item_id}")


def descendants(graph: DiagramModel, element_id: str) -> set[str]:
    """Ids of every element contained (directly or not) in `element_id`."""
    found: set[str] = set()
    pending = [element_id]
    while pending:
        current = graph.elements.get(pending.pop())
        if not isinstance(current, Container):
            continue
        for child_id in current.owned_elements:
            if child_id not in found:
                found.add(child_id)
                pending.append(child_id)
    return found


# --- Ownership helpers (operate on the working copy) ---

def _detach(graph: DiagramModel, element_id: str) -> None:
    element = graph.elements[element_id]
    owner = graph.elements.get(element.owner) if element.owner else None
    if isinstance(owner, Container):
        graph.elements[owner.id] = owner.model_copy(update={
            "owned_elements": [cid for cid in owner.owned_elements if cid != element_id]
        })
    graph.elements[element_id] = element.model_copy(update={"owner": None})


def _attach(graph: DiagramModel, element_id: str, owner_id: str) -> None:
    owner = graph.elements[owner_id]
    graph.elements[owner_id] = owner.model_copy(update={
        "owned_elements": [*owner.owned_elements, element_id]
    })
    graph.elements[element_id] = graph.elements[element_id].model_copy(update={"owner": owner_id})


def _check_owner(graph: DiagramModel, element_id: str, owner_id: str, registry: TypeRegistry) -> None:
    owner = _element(graph, owner_id)
    if not registry.is_container(owner.type):
        raise OwnershipError(f"Element {owner_id} of type {owner.type.value} cannot own elements")
    if owner_id == element_id or owner_id in descendants(graph, element_id):
        raise OwnershipError(f"Element {element_id} cannot be moved into itself or its descendant {owner_id}")


def _move_to(graph: DiagramModel, element_id: str, x: float, y: float) -> None:
    element = graph.elements[element_id]
    bounds = element.bounds.model_copy(update={"x": x, "y": y})
    graph.elements[element_id] = element.model_copy(update={"bounds": bounds})


def _forget(graph: DiagramModel, item_id: str) -> None:
    """Drop interactive flags and assessments of a removed item."""
    graph.interactive.elements.pop(item_id, None)
    graph.interactive.relationships.pop(item_id, None)
    graph.assessments.pop(item_id, None)


# --- Handlers ---

def _create_element(graph: DiagramModel, command: CreateElement, registry: TypeRegistry) -> None:
    entry = registry.element_entry(command.type)
    _ensure_unused_id(graph, command.id)
    values = to_wire_keys(entry.model, command.values)
    for key in ("owner", "ownedElements"):
        values.pop(key, None)
    check_known_fields((entry.model,), values, entry.type_tag.value)
    values["id"] = command.id
    element = build_from_partial(entry.type_tag, values, registry=registry)
    graph.elements[element.id] = element
    if command.owner is not None:
        _check_owner(graph, element.id, command.owner, registry)
        _attach(graph, element.id, command.owner)


def _update_element(graph: DiagramModel, command: UpdateElement, registry: TypeRegistry) -> None:
    element = _element(graph, command.element_id)
    model = registry.element_entry(element.type).model
    changes = to_wire_keys(model, command.changes)
    protected = PROTECTED_ELEMENT_FIELDS & changes.keys()
    if protected:
        raise DiagramModelError(f"Cannot update {', '.join(sorted(protected))} of element {element.id}")
    check_known_fields((model,), changes, f"element {element.id}")
    merged = merge_defaults(element.model_dump(by_alias=True), changes)
    try:
        updated = model.model_validate(merged)
    except ValidationError as exc:
        raise SerializationError(f"Invalid update for element {element.id}: {exc}") from exc
    graph.elements[element.id] = enforce_minimum_size(updated, registry)


def _set_owner(graph: DiagramModel, command: SetOwner, registry: TypeRegistry) -> None:
    element = _element(graph, command.element_id)
    if command.owner == element.owner:
        return
    if command.owner is not None:
        _check_owner(graph, element.id, command.owner, registry)

    # Keep the element where it is on the canvas
    abs_x, abs_y = absolute_position(graph, element.id)
    _detach(graph, element.id)
    if command.owner is None:
        _move_to(graph, element.id, abs_x, abs_y)
        return
    owner_x, owner_y = absolute_position(graph, command.owner)
    _attach(graph, element.id, command.owner)
    _move_to(graph, element.id, abs_x - owner_x, abs_y - owner_y)


def _delete_element(graph: DiagramModel, command: DeleteElement, registry: TypeRegistry) -> None:
    element = _element(graph, command.element_id)

    # Children are orphaned, not deleted; they keep their canvas position
    if isinstance(element, Container):
        positions = {cid: absolute_position(graph, cid) for cid in element.owned_elements if cid in graph.elements}
        for child_id, (x, y) in positions.items():
            graph.elements[child_id] = graph.elements[child_id].model_copy(update={"owner": None})
            _move_to(graph, child_id, x, y)
        graph.elements[element.id] = element.model_copy(update={"owned_elements": []})

    _detach(graph, element.id)
    for relationship in graph.relationships_for(element.id):
        del graph.relationships[relationship.id]
        _forget(graph, relationship.id)
    del graph.elements[element.id]
    _forget(graph, element.id)


def _create_relationship(graph: DiagramModel, command: CreateRelationship, registry: TypeRegistry) -> None:
    _ensure_unused_id(graph, command.id)
    model = registry.relationship_entry(command.type).model
    check_known_fields((model,), to_wire_keys(model, command.values), command.type)
    values = {**command.values, "id": command.id}
    relationship, resolution = propose_relationship(
        graph, command.type, command.source, command.target, values, registry=registry
    )
    if not resolution.accepted:
        logger.info(
            "Relationship kind %s is not allowed from %s; created %s instead",
            resolution.requested.value,
            graph.elements[command.source.element].type.value,
            resolution.resolved.value,
        )
    graph.relationships[relationship.id] = relationship


def _update_relationship(graph: DiagramModel, command: UpdateRelationship, registry: TypeRegistry) -> None:
    relationship = _relationship(graph, command.relationship_id)
    changes = to_wire_keys(type(relationship), command.changes)
    protected = PROTECTED_RELATIONSHIP_FIELDS & changes.keys()
    if protected:
        raise DiagramModelError(
            f"Cannot update {', '.join(sorted(protected))} of relationship {relationship.id}"
        )
    # Fields of the requested kind are accepted alongside the current kind's
    models = (type(relationship),)
    if command.type is not None:
        models += (registry.relationship_entry(command.type).model,)
    check_known_fields(models, changes, f"relationship {relationship.id}")
    updated = apply_relationship_changes(relationship, changes, registry)
    check_endpoints(graph, updated)

    # Re-checked even without a requested kind: a new source may not allow the current one
    source_type = graph.elements[updated.source.element].type
    requested = command.type if command.type is not None else updated.type
    updated, resolution = change_relationship_type(updated, requested, source_type, changes, registry)
    if not resolution.accepted:
        logger.info(
            "Relationship kind %s is not allowed from %s; relationship %s stored as %s",
            resolution.requested.value, source_type.value, relationship.id, resolution.resolved.value,
        )
    graph.relationships[relationship.id] = updated


def _flip_relationship(graph: DiagramModel, command: FlipRelationship, registry: TypeRegistry) -> None:
    relationship = _relationship(graph, command.relationship_id)
    flipped = relationship.model_copy(update={
        "source": relationship.target,
        "target": relationship.source,
        "path": list(reversed(relationship.path)),
    })
    check_endpoints(graph, flipped)

    # The old target becomes the source, so its allow-list decides the kind
    source_type = graph.elements[flipped.source.element].type
    flipped, resolution = change_relationship_type(flipped, flipped.type, source_type, registry=registry)
    if not resolution.accepted:
        logger.info(
            "Relationship kind %s is not allowed from %s; flipped relationship %s stored as %s",
            resolution.requested.value, source_type.value, relationship.id, resolution.resolved.value,
        )
    graph.relationships[relationship.id] = flipped


def _delete_relationship(graph: DiagramModel, command: DeleteRelationship, registry: TypeRegistry) -> None:
    relationship = _relationship(graph, command.relationship_id)
    del graph.relationships[relationship.id]
    _forget(graph, relationship.id)


def _update_diagram(graph: DiagramModel, command: UpdateDiagram, registry: TypeRegistry) -> None:
    if command.size is not None:
        graph.size = command.size
    if command.type is not None:
        graph.type = command.type


_HANDLERS: dict[type, Callable[[DiagramModel, Any, TypeRegistry], None]] = {
    CreateElement: _create_element,
    UpdateElement: _update_element,
    SetOwner: _set_owner,
    DeleteElement: _delete_element,
    CreateRelationship: _create_relationship,
    UpdateRelationship: _update_relationship,
    FlipRelationship: _flip_relationship,
    DeleteRelationship: _delete_relationship,
    UpdateDiagram: _update_diagram,
}
