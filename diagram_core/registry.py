"""
Type registry - the single table of element and relationship kinds.

Each kind is registered exactly once with:
- the record model used to build and parse it
- its default field values (wire names, exact literals)
- minimum width/height
- the relationship kinds it may be the source of
- container layout parameters, for kinds that own children

The tables are built once at import time and are read-only afterwards.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from .errors import UnknownTypeError
from .models import (
    AgentGroup,
    DelegationLink,
    Element,
    LanguageModel,
    Relationship,
    SupervisionLink,
    Swarm,
)
from .types import ElementType, RelationshipType

GENERIC_RELATIONSHIP = RelationshipType.SWARM_LINK


@dataclass(frozen=True)
class ContainerLayout:
    """Content region of a container: children sit below the header, inside the padding."""
    header_height: float
    padding: float


@dataclass(frozen=True)
class ElementTypeEntry:
    type_tag: ElementType
    model: type[Element]
    defaults: Mapping[str, Any]
    min_width: float
    min_height: float
    allowed_relationships: frozenset[RelationshipType]
    container: Optional[ContainerLayout] = None
    requires_owner: bool = False  # Unowned placed instances are flagged as orphans


@dataclass(frozen=True)
class RelationshipTypeEntry:
    type_tag: RelationshipType
    model: type[Relationship]
    defaults: Mapping[str, Any]


TypeEntry = Union[ElementTypeEntry, RelationshipTypeEntry]


def _freeze(value: Any) -> Any:
    """Recursively wrap mappings in read-only proxies."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    return value


def _bounds(width: float, height: float) -> dict:
    return {"x": 0, "y": 0, "width": width, "height": height}


def _agent_defaults(name: str, role: str = "", fill_color: Optional[str] = None,
                    width: float = 60, height: float = 80) -> dict:
    defaults = {
        "name": name,
        "numAgents": 1,
        "framework": "BESSER-BAF",
        "persona": "",
        "role": role,
        "bounds": _bounds(width, height),
    }
    if fill_color is not None:
        defaults["fillColor"] = fill_color
    return defaults


class TypeRegistry:
    """Immutable lookup tables from type tag to construction/validation behavior."""

    def __init__(
        self,
        elements: list[ElementTypeEntry],
        relationships: list[RelationshipTypeEntry],
        generic_relationship: RelationshipType = GENERIC_RELATIONSHIP,
    ):
        self._elements: Mapping[ElementType, ElementTypeEntry] = MappingProxyType(
            {entry.type_tag: entry for entry in elements}
        )
        self._relationships: Mapping[RelationshipType, RelationshipTypeEntry] = MappingProxyType(
            {entry.type_tag: entry for entry in relationships}
        )
        if generic_relationship not in self._relationships:
            raise ValueError(f"Generic relationship kind is not registered: {generic_relationship}")
        self._generic = generic_relationship

    # --- Lookups ---

    @property
    def element_types(self) -> tuple[ElementType, ...]:
        return tuple(self._elements)

    @property
    def relationship_types(self) -> tuple[RelationshipType, ...]:
        return tuple(self._relationships)

    @property
    def generic_relationship(self) -> RelationshipType:
        """The link kind every source element is allowed to create."""
        return self._generic

    def element_entry(self, tag: object) -> ElementTypeEntry:
        try:
            return self._elements[ElementType(tag)]
        except (ValueError, KeyError):
            raise UnknownTypeError(tag) from None

    def relationship_entry(self, tag: object) -> RelationshipTypeEntry:
        try:
            return self._relationships[RelationshipType(tag)]
        except (ValueError, KeyError):
            raise UnknownTypeError(tag) from None

    def entry(self, tag: object) -> TypeEntry:
        """Entry for an element or relationship tag."""
        if self.is_element_type(tag):
            return self.element_entry(tag)
        return self.relationship_entry(tag)

    def is_element_type(self, tag: object) -> bool:
        try:
            return ElementType(tag) in self._elements
        except ValueError:
            return False

    def is_container(self, tag: object) -> bool:
        return self.element_entry(tag).container is not None

    def allowed_relationship_kinds(self, source_tag: object) -> frozenset[RelationshipType]:
        """Relationship kinds an element of `source_tag` may be the source of."""
        return self.element_entry(source_tag).allowed_relationships | {self._generic}

    # --- Construction ---

    def create_default(self, tag: object) -> Union[Element, Relationship]:
        """Build a fresh instance populated with the kind's documented defaults."""
        from .construction import build_from_partial
        return build_from_partial(tag, None, registry=self)


_GENERIC_ONLY = frozenset({GENERIC_RELATIONSHIP})

REGISTRY = TypeRegistry(
    elements=[
        ElementTypeEntry(
            type_tag=ElementType.SWARM,
            model=Swarm,
            defaults=_freeze({
                "name": "Swarm",
                "framework": "BESSER-BAF",
                "bounds": _bounds(200, 150),
            }),
            min_width=200,
            min_height=150,
            allowed_relationships=_GENERIC_ONLY,
            container=ContainerLayout(header_height=50, padding=10),
        ),
        ElementTypeEntry(
            type_tag=ElementType.AGENT_GROUP,
            model=AgentGroup,
            defaults=_freeze(_agent_defaults("AgentGroup", width=150, height=80)),
            min_width=40,
            min_height=40,
            allowed_relationships=_GENERIC_ONLY,
            requires_owner=True,
        ),
        ElementTypeEntry(
            type_tag=ElementType.EVALUATOR,
            model=AgentGroup,
            defaults=_freeze(_agent_defaults("Evaluator", "evaluator", "#f59e0b")),
            min_width=40,
            min_height=40,
            allowed_relationships=_GENERIC_ONLY,
            requires_owner=True,
        ),
        ElementTypeEntry(
            type_tag=ElementType.SOLVER,
            model=AgentGroup,
            defaults=_freeze(_agent_defaults("Solver", "solver", "#10b981")),
            min_width=40,
            min_height=40,
            allowed_relationships=_GENERIC_ONLY,
            requires_owner=True,
        ),
        ElementTypeEntry(
            type_tag=ElementType.SUPERVISOR,
            model=AgentGroup,
            defaults=_freeze(_agent_defaults("Supervisor", "supervisor", "#ef4444")),
            min_width=40,
            min_height=40,
            allowed_relationships=frozenset({RelationshipType.SUPERVISION_LINK, GENERIC_RELATIONSHIP}),
            requires_owner=True,
        ),
        ElementTypeEntry(
            type_tag=ElementType.DISPATCHER,
            model=AgentGroup,
            defaults=_freeze(_agent_defaults("Dispatcher", "dispatcher", "#3b82f6")),
            min_width=40,
            min_height=40,
            allowed_relationships=frozenset({RelationshipType.DELEGATION_LINK, GENERIC_RELATIONSHIP}),
            requires_owner=True,
        ),
        ElementTypeEntry(
            type_tag=ElementType.LANGUAGE_MODEL,
            model=LanguageModel,
            defaults=_freeze({
                "name": "LanguageModel",
                "provider": "OpenAI",
                "model": "gpt-4",
                "endpoint": "",
                "temperature": 0.7,
                "maxTokens": 2048,
                "apiKeySecret": "",
                "bounds": _bounds(160, 70),
            }),
            min_width=80,
            min_height=40,
            allowed_relationships=_GENERIC_ONLY,
        ),
    ],
    relationships=[
        RelationshipTypeEntry(
            type_tag=RelationshipType.SWARM_LINK,
            model=Relationship,
            defaults=_freeze({"name": "", "strokeColor": "#000000"}),
        ),
        RelationshipTypeEntry(
            type_tag=RelationshipType.DELEGATION_LINK,
            model=DelegationLink,
            defaults=_freeze({"name": "delegates", "strokeColor": "#3b82f6"}),
        ),
        RelationshipTypeEntry(
            type_tag=RelationshipType.SUPERVISION_LINK,
            model=SupervisionLink,
            defaults=_freeze({"name": "supervises", "strokeColor": "#6b7280"}),
        ),
    ],
)


def create_default(tag: object) -> Union[Element, Relationship]:
    """Build a default instance of `tag` from the process-wide registry."""
    return REGISTRY.create_default(tag)


def allowed_relationship_kinds(source_tag: object) -> frozenset[RelationshipType]:
    """Allow-list for `source_tag` in the process-wide registry."""
    return REGISTRY.allowed_relationship_kinds(source_tag)
