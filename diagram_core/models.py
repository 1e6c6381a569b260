"""
Core data models for diagrams.

These models define the canonical in-memory shape of a diagram:
- Elements with bounds, colors and kind-specific fields
- Containers (elements that own an ordered list of children)
- Relationships connecting two elements along a drawn path
- The diagram document holding all of the above

Field Naming Convention:
- Python attributes are snake_case (`fill_color`, `num_agents`)
- The JSON form uses camelCase aliases (`fillColor`, `numAgents`)
- Both spellings are accepted on input
"""

from dataclasses import dataclass
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .types import DiagramType, Direction, ElementType, RelationshipType

MODEL_VERSION = "3.0.0"
VERSION_PATTERN = r"^3\.\d+\.\d+$"


def generate_element_id() -> str:
    """Generate a unique element ID."""
    return str(uuid.uuid4())


def generate_relationship_id() -> str:
    """Generate a unique relationship ID."""
    return str(uuid.uuid4())


class WireModel(BaseModel):
    """Base for every record that is exchanged as camelCase JSON."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class Bounds(WireModel):
    """Position and size; relative to the owning container when there is one."""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0

    def center(self) -> tuple[float, float]:
        """Get the center point of the box."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def right(self) -> float:
        return self.x + self.width

    def bottom(self) -> float:
        return self.y + self.height


class Point(WireModel):
    x: float = 0
    y: float = 0


class Size(WireModel):
    width: float = 1400
    height: float = 740


@dataclass(frozen=True)
class Style:
    """Read-only color view handed to the rendering layer."""
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    text_color: Optional[str] = None


class ModelElement(WireModel):
    """Fields shared by elements and relationships."""
    id: str = Field(default_factory=generate_element_id)
    name: str = ""
    owner: Optional[str] = None
    bounds: Bounds = Field(default_factory=Bounds)
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    text_color: Optional[str] = None

    @property
    def style(self) -> Style:
        return Style(self.fill_color, self.stroke_color, self.text_color)


# --- Elements ---

class Element(ModelElement):
    """
    A positioned element in the diagram.

    The concrete record shape is chosen by the type registry from `type`;
    subclasses only add the fields their kinds carry.
    """
    type: ElementType


class Container(Element):
    """An element that owns an ordered list of child elements."""
    owned_elements: list[str] = Field(default_factory=list)


class Swarm(Container):
    framework: str = "BESSER-BAF"


class AgentGroup(Element):
    """Record shape shared by AgentGroup, Evaluator, Solver, Supervisor and Dispatcher."""
    num_agents: int = 1
    framework: str = "BESSER-BAF"
    persona: str = ""
    role: str = ""


class LanguageModel(Element):
    provider: str = "OpenAI"
    model: str = "gpt-4"
    endpoint: str = ""
    temperature: float = 0.7
    max_tokens: int = 2048
    api_key_secret: str = ""


# --- Relationships ---

class Endpoint(WireModel):
    """One end of a relationship: the element it attaches to and the port used."""
    element: str = ""
    direction: Direction = Direction.RIGHT


def _default_path() -> list[Point]:
    return [Point(), Point()]


class Relationship(ModelElement):
    """A directed, typed edge between two elements."""
    id: str = Field(default_factory=generate_relationship_id)
    type: RelationshipType
    source: Endpoint = Field(default_factory=Endpoint)
    target: Endpoint = Field(default_factory=Endpoint)
    path: list[Point] = Field(default_factory=_default_path, min_length=2)
    is_manually_layouted: Optional[bool] = None


class DelegationLink(Relationship):
    delegation_type: Optional[str] = None  # "task", "query", "action", ...


class SupervisionLink(Relationship):
    supervision_level: Optional[str] = None  # "direct", "indirect", "advisory"


# --- Document ---

class Selection(WireModel):
    """Per-id flags for interactive elements/relationships."""
    elements: dict[str, bool] = Field(default_factory=dict)
    relationships: dict[str, bool] = Field(default_factory=dict)


class Assessment(WireModel):
    """Assessment attached to a model element; unknown keys are preserved."""
    model_config = ConfigDict(extra="allow")

    model_element_id: str
    element_type: str
    score: float = 0
    feedback: Optional[str] = None


class DiagramModel(WireModel):
    """
    The complete diagram structure.
    This is what gets saved to/loaded from JSON files.

    Elements and relationships are stored by id. Use `serialization` to convert
    to and from JSON; plain `model_validate` would lose the kind-specific record
    shapes.
    """
    version: str = Field(default=MODEL_VERSION, pattern=VERSION_PATTERN)
    type: DiagramType = DiagramType.SWARM_DIAGRAM
    size: Size = Field(default_factory=Size)
    elements: dict[str, Element] = Field(default_factory=dict)
    relationships: dict[str, Relationship] = Field(default_factory=dict)
    interactive: Selection = Field(default_factory=Selection)
    assessments: dict[str, Assessment] = Field(default_factory=dict)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        from .serialization import serialize_model
        return serialize_model(self)

    @classmethod
    def from_json_dict(cls, data: dict) -> "DiagramModel":
        """Create a DiagramModel from a JSON dict (aborts on any invalid record)."""
        from .serialization import deserialize_model
        return deserialize_model(data)

    def get_element(self, element_id: str) -> Optional[Element]:
        return self.elements.get(element_id)

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        return self.relationships.get(relationship_id)

    def containers(self) -> list[Container]:
        """All container elements, in document order."""
        return [e for e in self.elements.values() if isinstance(e, Container)]

    def children_of(self, container_id: str) -> list[Element]:
        """Children of a container in their owned order."""
        container = self.elements.get(container_id)
        if not isinstance(container, Container):
            return []
        return [self.elements[cid] for cid in container.owned_elements if cid in self.elements]

    def relationships_for(self, element_id: str) -> list[Relationship]:
        """Relationships with `element_id` as source or target."""
        return [
            r for r in self.relationships.values()
            if r.source.element == element_id or r.target.element == element_id
        ]
