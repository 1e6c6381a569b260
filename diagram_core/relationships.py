"""
Relationship validation and type changes.

A requested relationship kind is checked against the allow-list of the source
element's kind. Kinds that are not allowed fall back to the generic link,
which every source kind may create; this is never an error. Missing endpoint
elements are an error (`DanglingEndpointError`).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, TYPE_CHECKING

from pydantic import ValidationError

from .construction import build_from_partial, merge_defaults, to_wire_keys
from .errors import DanglingEndpointError, SerializationError
from .layout import absolute_position
from .models import Bounds, Endpoint, Point, Relationship
from .registry import REGISTRY, TypeRegistry
from .types import ElementType, RelationshipType

if TYPE_CHECKING:
    from .models import DiagramModel

# Fields that are reset to the new kind's defaults when a relationship changes kind
RELABELED_FIELDS = ("name", "strokeColor")


class RelationshipState(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TypeResolution:
    """Outcome of checking a requested kind against the source allow-list."""
    requested: RelationshipType
    resolved: RelationshipType
    state: RelationshipState

    @property
    def accepted(self) -> bool:
        return self.state == RelationshipState.ACCEPTED


def resolve_relationship_type(
    source_type: ElementType,
    requested: object,
    registry: TypeRegistry = REGISTRY,
) -> TypeResolution:
    """
    Decide which kind a relationship from `source_type` gets.

    Raises:
        UnknownTypeError: if `requested` is not a registered relationship kind
    """
    requested_type = registry.relationship_entry(requested).type_tag
    allowed = registry.allowed_relationship_kinds(source_type)
    if requested_type in allowed:
        return TypeResolution(requested_type, requested_type, RelationshipState.ACCEPTED)
    return TypeResolution(requested_type, registry.generic_relationship, RelationshipState.REJECTED)


def check_endpoints(graph: "DiagramModel", relationship: Relationship) -> None:
    """Raise DanglingEndpointError unless both endpoints reference existing elements."""
    if relationship.source.element not in graph.elements:
        raise DanglingEndpointError(relationship.id, "source", relationship.source.element)
    if relationship.target.element not in graph.elements:
        raise DanglingEndpointError(relationship.id, "target", relationship.target.element)


def straight_path(graph: "DiagramModel", source_id: str, target_id: str) -> tuple[Bounds, list[Point]]:
    """
    Straight line between the centers of two elements.

    Returns the bounding box in canvas coordinates and the two path points
    relative to it.
    """
    def center(element_id: str) -> tuple[float, float]:
        x, y = absolute_position(graph, element_id)
        return graph.elements[element_id].bounds.model_copy(update={"x": x, "y": y}).center()

    sx, sy = center(source_id)
    tx, ty = center(target_id)
    left, top = min(sx, tx), min(sy, ty)
    bounds = Bounds(x=left, y=top, width=abs(tx - sx), height=abs(ty - sy))
    path = [Point(x=sx - left, y=sy - top), Point(x=tx - left, y=ty - top)]
    return bounds, path


def propose_relationship(
    graph: "DiagramModel",
    relationship_type: object,
    source: Endpoint,
    target: Endpoint,
    values: Optional[Mapping[str, Any]] = None,
    registry: TypeRegistry = REGISTRY,
) -> tuple[Relationship, TypeResolution]:
    """
    Build a relationship that is ready to be inserted into `graph`.

    The requested kind is resolved against the source element's allow-list
    (falling back to the generic link); endpoints are verified; a straight path
    between the element centers is used unless `values` carries a path.

    Raises:
        UnknownTypeError: for an unregistered relationship kind
        DanglingEndpointError: if either endpoint element does not exist
    """
    requested = registry.relationship_entry(relationship_type).type_tag
    source_element = graph.elements.get(source.element)
    target_element = graph.elements.get(target.element)
    relationship_id = (values or {}).get("id") or "<new>"
    if source_element is None:
        raise DanglingEndpointError(relationship_id, "source", source.element)
    if target_element is None:
        raise DanglingEndpointError(relationship_id, "target", target.element)

    resolution = resolve_relationship_type(source_element.type, requested, registry)

    partial = to_wire_keys(registry.relationship_entry(resolution.resolved).model, values)
    partial["source"] = source.model_dump(by_alias=True)
    partial["target"] = target.model_dump(by_alias=True)
    if "path" not in partial:
        bounds, path = straight_path(graph, source.element, target.element)
        partial["bounds"] = bounds.model_dump(by_alias=True)
        partial["path"] = [point.model_dump(by_alias=True) for point in path]

    relationship = build_from_partial(resolution.resolved, partial, registry=registry)
    check_endpoints(graph, relationship)
    return relationship, resolution


def change_relationship_type(
    relationship: Relationship,
    requested: object,
    source_type: ElementType,
    overrides: Optional[Mapping[str, Any]] = None,
    registry: TypeRegistry = REGISTRY,
) -> tuple[Relationship, TypeResolution]:
    """
    Change the kind of an existing relationship.

    When the stored kind actually changes, `name` and `strokeColor` are reset to
    the new kind's defaults unless `overrides` supplies them. Fields specific to
    the old kind are dropped. Other overrides are applied as a partial update.
    """
    resolution = resolve_relationship_type(source_type, requested, registry)
    entry = registry.relationship_entry(resolution.resolved)
    changes = to_wire_keys(entry.model, overrides)
    changes.pop("type", None)

    if resolution.resolved == relationship.type:
        return apply_relationship_changes(relationship, changes, registry), resolution

    record = relationship.model_dump(by_alias=True, exclude_none=True)
    for field in RELABELED_FIELDS:
        if changes.get(field) is None:
            record[field] = entry.defaults.get(field)
    record = merge_defaults(record, changes)
    changed = build_from_partial(resolution.resolved, record, registry=registry)
    return changed, resolution


def apply_relationship_changes(
    relationship: Relationship,
    changes: Mapping[str, Any],
    registry: TypeRegistry = REGISTRY,
) -> Relationship:
    """Partial update of a relationship that keeps its kind."""
    record = relationship.model_dump(by_alias=True)
    merged = merge_defaults(record, to_wire_keys(type(relationship), changes))
    merged["type"] = relationship.type
    try:
        return registry.relationship_entry(relationship.type).model.model_validate(merged)
    except ValidationError as exc:
        raise SerializationError(f"Invalid update for relationship {relationship.id}: {exc}") from exc
