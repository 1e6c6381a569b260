"""
Element/relationship <-> plain JSON records, and the diagram document format.

Record rules:
- `type` is always written explicitly
- `owner` is always written (null for unowned records)
- optional colors and optional link metadata are omitted while unset
- nothing else is added, dropped or normalised: `deserialize(serialize(x)) == x`

Document import is all-or-nothing. Any record with an unknown type tag, any
relationship with a missing endpoint element, or an invalid document header
aborts the whole import.
"""

import json
import logging
from typing import Any, Mapping, Union

from pydantic import ValidationError

from .errors import SerializationError
from .models import (
    Assessment,
    Container,
    DiagramModel,
    Element,
    Relationship,
    Selection,
    Size,
)
from .registry import REGISTRY, TypeRegistry
from .relationships import change_relationship_type, check_endpoints

logger = logging.getLogger(__name__)

# Keys written only when they hold a value
OMIT_WHEN_UNSET = frozenset({
    "fillColor",
    "strokeColor",
    "textColor",
    "isManuallyLayouted",
    "delegationType",
    "supervisionLevel",
})


def serialize(item: Union[Element, Relationship]) -> dict:
    """Convert an element or relationship to its JSON record."""
    record = item.model_dump(mode="json", by_alias=True)
    for key in OMIT_WHEN_UNSET:
        if key in record and record[key] is None:
            del record[key]
    return record


def deserialize(record: Mapping[str, Any], registry: TypeRegistry = REGISTRY) -> Union[Element, Relationship]:
    """
    Convert a JSON record back to an element or relationship.

    Raises:
        UnknownTypeError: if the record's type tag is not registered
        SerializationError: if the record is not a mapping or does not validate
    """
    if not isinstance(record, Mapping):
        raise SerializationError(f"Expected a JSON object, got {type(record).__name__}")
    if "type" not in record:
        raise SerializationError(f"Record {record.get('id')!r} has no type tag")
    entry = registry.entry(record["type"])
    try:
        return entry.model.model_validate(dict(record))
    except ValidationError as exc:
        raise SerializationError(f"Invalid {entry.type_tag.value} record {record.get('id')!r}: {exc}") from exc


# --- Document ---

def serialize_model(graph: DiagramModel) -> dict:
    """Convert a diagram to the persisted/exchanged JSON document."""
    return {
        "version": graph.version,
        "type": graph.type.value,
        "size": graph.size.model_dump(mode="json", by_alias=True),
        "elements": {element_id: serialize(e) for element_id, e in graph.elements.items()},
        "relationships": {rel_id: serialize(r) for rel_id, r in graph.relationships.items()},
        "interactive": graph.interactive.model_dump(mode="json", by_alias=True),
        "assessments": {
            key: assessment.model_dump(mode="json", by_alias=True, exclude_none=True)
            for key, assessment in graph.assessments.items()
        },
    }


def deserialize_model(data: Mapping[str, Any], registry: TypeRegistry = REGISTRY) -> DiagramModel:
    """
    Build a diagram from a JSON document.

    Ownership lists are reconciled with the `owner` fields and relationship
    kinds outside the source allow-list become the generic link; both are
    logged. Unknown kinds and dangling endpoints abort the import.

    Raises:
        UnknownTypeError: for any unregistered element or relationship kind
        DanglingEndpointError: for a relationship whose endpoint is missing
        SerializationError: for a malformed document or record
    """
    if not isinstance(data, Mapping):
        raise SerializationError("Diagram document must be a JSON object")

    elements = {}
    for key, record in _section(data, "elements").items():
        element = deserialize(record, registry)
        if not isinstance(element, Element):
            raise SerializationError(f"Relationship record {key!r} found in elements")
        elements[element.id] = element

    relationships = {}
    for key, record in _section(data, "relationships").items():
        relationship = deserialize(record, registry)
        if not isinstance(relationship, Relationship):
            raise SerializationError(f"Element record {key!r} found in relationships")
        relationships[relationship.id] = relationship

    try:
        graph = DiagramModel(
            version=data.get("version", "3.0.0"),
            type=data.get("type", "SwarmDiagram"),
            size=Size.model_validate(data.get("size") or {}),
            elements=_reconcile_ownership(elements, registry),
            relationships=relationships,
            interactive=Selection.model_validate(data.get("interactive") or {}),
            assessments={
                key: Assessment.model_validate(value)
                for key, value in _section(data, "assessments").items()
            },
        )
    except ValidationError as exc:
        raise SerializationError(f"Invalid diagram document: {exc}") from exc

    for relationship in graph.relationships.values():
        check_endpoints(graph, relationship)
    graph.relationships.update(_normalize_relationship_kinds(graph, registry))
    return graph


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, Mapping):
        raise SerializationError(f"Document section {key!r} must be a JSON object")
    return section


def _reconcile_ownership(elements: dict[str, Element], registry: TypeRegistry) -> dict[str, Element]:
    """
    Make container child lists and `owner` fields agree.

    The stored child order is kept for children whose owner points back at the
    container; children known only through their `owner` field are appended in
    document order. Owners that are missing or not containers are cleared.
    """
    result = dict(elements)
    for element_id, element in elements.items():
        if element.owner is None:
            continue
        owner = elements.get(element.owner)
        if owner is None or element.owner == element_id or not registry.is_container(owner.type):
            logger.warning(
                "Clearing owner %s of element %s: not an existing container", element.owner, element_id
            )
            result[element_id] = element.model_copy(update={"owner": None})

    for container_id, container in list(result.items()):
        if not isinstance(container, Container):
            continue
        children = [
            child_id for child_id in container.owned_elements
            if child_id in result and result[child_id].owner == container_id
        ]
        for element_id, element in result.items():
            if element.owner == container_id and element_id not in children:
                children.append(element_id)
        if children != container.owned_elements:
            logger.warning("Reconciled child list of container %s", container_id)
            result[container_id] = container.model_copy(update={"owned_elements": children})
    return result


def _normalize_relationship_kinds(graph: DiagramModel, registry: TypeRegistry) -> dict[str, Relationship]:
    changed = {}
    for relationship_id, relationship in graph.relationships.items():
        source = graph.elements[relationship.source.element]
        if relationship.type in registry.allowed_relationship_kinds(source.type):
            continue
        generic = registry.generic_relationship
        logger.warning(
            "Relationship %s of kind %s is not allowed from %s; stored as %s",
            relationship_id, relationship.type.value, source.type.value, generic.value,
        )
        changed[relationship_id], _ = change_relationship_type(relationship, generic, source.type, registry=registry)
    return changed


# --- JSON text ---

def dumps_model(graph: DiagramModel, indent: int | None = 2) -> str:
    return json.dumps(serialize_model(graph), indent=indent)


def loads_model(text: str, registry: TypeRegistry = REGISTRY) -> DiagramModel:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Diagram is not valid JSON: {exc}") from exc
    return deserialize_model(data, registry)

