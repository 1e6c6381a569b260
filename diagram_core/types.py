"""
Closed type tags for the swarm diagram family.

Every element, relationship and diagram kind the model layer understands is
listed here. New kinds are added here and registered in `registry.py`;
nothing else in the package compares against raw type strings.
"""

from enum import Enum

from .errors import UnknownTypeError


class DiagramType(str, Enum):
    """Diagram kinds that share the element/relationship document format."""
    CLASS_DIAGRAM = "ClassDiagram"
    OBJECT_DIAGRAM = "ObjectDiagram"
    STATE_MACHINE_DIAGRAM = "StateMachineDiagram"
    AGENT_DIAGRAM = "AgentDiagram"
    SWARM_DIAGRAM = "SwarmDiagram"


class ElementType(str, Enum):
    """Element kinds of the swarm diagram."""
    SWARM = "Swarm"
    AGENT_GROUP = "AgentGroup"
    EVALUATOR = "Evaluator"
    SOLVER = "Solver"
    SUPERVISOR = "Supervisor"
    DISPATCHER = "Dispatcher"
    LANGUAGE_MODEL = "LanguageModel"


class RelationshipType(str, Enum):
    """Relationship kinds of the swarm diagram."""
    SWARM_LINK = "SwarmLink"              # Generic link, allowed from any source
    DELEGATION_LINK = "DelegationLink"
    SUPERVISION_LINK = "SupervisionLink"


class Direction(str, Enum):
    """Port on an element's border where a relationship attaches."""
    UP = "Up"
    RIGHT = "Right"
    DOWN = "Down"
    LEFT = "Left"
    UPRIGHT = "Upright"
    UPLEFT = "Upleft"
    DOWNRIGHT = "Downright"
    DOWNLEFT = "Downleft"
    TOPRIGHT = "Topright"
    TOPLEFT = "Topleft"
    BOTTOMRIGHT = "Bottomright"
    BOTTOMLEFT = "Bottomleft"


def parse_type_tag(tag: object) -> ElementType | RelationshipType:
    """
    Resolve a raw tag to its enum member.

    Raises:
        UnknownTypeError: if the tag is neither an element nor a relationship kind
    """
    if isinstance(tag, (ElementType, RelationshipType)):
        return tag
    try:
        return ElementType(tag)
    except ValueError:
        pass
    try:
        return RelationshipType(tag)
    except ValueError:
        raise UnknownTypeError(tag) from None
