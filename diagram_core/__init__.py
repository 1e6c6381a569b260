"""
Diagram Core - Typed element/relationship model, layout, validation and serialization.

This package is the framework-free model layer shared by every diagram
consumer: the editor backend, import/export tooling and the CLI all go through
the same registry, commands and serializer.
"""

from .types import (
    # Enums
    DiagramType,
    ElementType,
    RelationshipType,
    Direction,
)

from .errors import (
    DiagramModelError,
    UnknownTypeError,
    DanglingEndpointError,
    ElementNotFoundError,
    RelationshipNotFoundError,
    OwnershipError,
    SerializationError,
)

from .models import (
    # Records
    Bounds,
    Point,
    Size,
    Style,
    Element,
    Container,
    Swarm,
    AgentGroup,
    LanguageModel,
    Endpoint,
    Relationship,
    DelegationLink,
    SupervisionLink,
    Selection,
    Assessment,
    DiagramModel,
    MODEL_VERSION,
)

from .registry import (
    REGISTRY,
    TypeRegistry,
    ElementTypeEntry,
    RelationshipTypeEntry,
    ContainerLayout,
    create_default,
    allowed_relationship_kinds,
)
from .construction import build_from_partial, merge_defaults, enforce_minimum_size
from .layout import LayoutResult, clamp, layout_container, layout_graph, absolute_position
from .relationships import (
    RelationshipState,
    TypeResolution,
    resolve_relationship_type,
    propose_relationship,
    change_relationship_type,
    check_endpoints,
)
from .serialization import (
    serialize,
    deserialize,
    serialize_model,
    deserialize_model,
    dumps_model,
    loads_model,
)
from .commands import (
    # Commands
    CreateElement,
    UpdateElement,
    SetOwner,
    DeleteElement,
    CreateRelationship,
    UpdateRelationship,
    FlipRelationship,
    DeleteRelationship,
    UpdateDiagram,
    Command,
    parse_command,
    apply_command,
    apply_commands,
)
from .validation import (
    validate_diagram,
    validation_summary,
    ValidationIssue,
    IssueSeverity,
    is_orphan,
    is_likely_preview,
)

__all__ = [
    # Enums
    "DiagramType",
    "ElementType",
    "RelationshipType",
    "Direction",
    # Errors
    "DiagramModelError",
    "UnknownTypeError",
    "DanglingEndpointError",
    "ElementNotFoundError",
    "RelationshipNotFoundError",
    "OwnershipError",
    "SerializationError",
    # Records
    "Bounds",
    "Point",
    "Size",
    "Style",
    "Element",
    "Container",
    "Swarm",
    "AgentGroup",
    "LanguageModel",
    "Endpoint",
    "Relationship",
    "DelegationLink",
    "SupervisionLink",
    "Selection",
    "Assessment",
    "DiagramModel",
    "MODEL_VERSION",
    # Registry
    "REGISTRY",
    "TypeRegistry",
    "ElementTypeEntry",
    "RelationshipTypeEntry",
    "ContainerLayout",
    "create_default",
    "allowed_relationship_kinds",
    # Construction
    "build_from_partial",
    "merge_defaults",
    "enforce_minimum_size",
    # Layout
    "LayoutResult",
    "clamp",
    "layout_container",
    "layout_graph",
    "absolute_position",
    # Relationships
    "RelationshipState",
    "TypeResolution",
    "resolve_relationship_type",
    "propose_relationship",
    "change_relationship_type",
    "check_endpoints",
    # Serialization
    "serialize",
    "deserialize",
    "serialize_model",
    "deserialize_model",
    "dumps_model",
    "loads_model",
    # Commands
    "CreateElement",
    "UpdateElement",
    "SetOwner",
    "DeleteElement",
    "CreateRelationship",
    "UpdateRelationship",
    "FlipRelationship",
    "DeleteRelationship",
    "UpdateDiagram",
    "Command",
    "parse_command",
    "apply_command",
    "apply_commands",
    # Validation
    "validate_diagram",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
    "is_orphan",
    "is_likely_preview",
]
