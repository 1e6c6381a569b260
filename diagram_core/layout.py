"""
Containment layout for container elements.

Children of a container are positioned relative to it and must stay inside
its content region (below the header, inside the padding):

    padding <= child.x <= container.width - child.width - padding
    header_height + padding <= child.y <= container.height - child.height - padding

When a child is larger than the available space the upper limit falls below
the lower one; the child is then pinned to the lower limit and may visually
overflow. That is a normal outcome, not an error.

All functions here return new objects and never modify their arguments.
Clamping a value that is already in range is a no-op, so every layout
function is idempotent.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .construction import enforce_minimum_size
from .errors import ElementNotFoundError
from .registry import REGISTRY, ContainerLayout, TypeRegistry

if TYPE_CHECKING:
    from .models import DiagramModel, Element


@dataclass(frozen=True)
class LayoutResult:
    container: "Element"
    positioned_children: list["Element"]


def clamp(value: float, low: float, high: float) -> float:
    """Clamp `value` to [low, high]; resolves to `low` when high < low."""
    return max(low, min(value, high))


def container_layout(container: "Element", registry: TypeRegistry = REGISTRY) -> ContainerLayout:
    """Layout parameters of a container kind."""
    params = registry.element_entry(container.type).container
    if params is None:
        raise ValueError(f"Element {container.id} of type {container.type.value} is not a container")
    return params


def clamp_child(container: "Element", child: "Element", params: ContainerLayout) -> "Element":
    """Return `child` with its bounds clamped into the container's content region."""
    bounds = child.bounds
    x = clamp(
        bounds.x,
        params.padding,
        container.bounds.width - bounds.width - params.padding,
    )
    y = clamp(
        bounds.y,
        params.header_height + params.padding,
        container.bounds.height - bounds.height - params.padding,
    )
    if x == bounds.x and y == bounds.y:
        return child
    return child.model_copy(update={"bounds": bounds.model_copy(update={"x": x, "y": y})})


def layout_container(
    container: "Element",
    children: list["Element"],
    registry: TypeRegistry = REGISTRY,
) -> LayoutResult:
    """
    Raise the container to its minimum size, then clamp every child into it.

    Args:
        container: A container element
        children: Elements to position inside it (order is preserved)
        registry: Type registry supplying minimums and layout parameters

    Returns:
        LayoutResult with the (possibly resized) container and positioned children
    """
    params = container_layout(container, registry)
    resized = enforce_minimum_size(container, registry)
    positioned = [clamp_child(resized, child, params) for child in children]
    return LayoutResult(container=resized, positioned_children=positioned)


def layout_graph(graph: "DiagramModel", registry: TypeRegistry = REGISTRY) -> "DiagramModel":
    """
    Re-run containment layout for every container in the diagram.

    All containers are raised to their minimums first so that nested
    containers are clamped with their final size.
    """
    elements = dict(graph.elements)
    container_ids = [
        element_id for element_id, element in elements.items()
        if registry.is_container(element.type)
    ]
    for element_id in container_ids:
        elements[element_id] = enforce_minimum_size(elements[element_id], registry)

    for element_id in container_ids:
        container = elements[element_id]
        params = container_layout(container, registry)
        for child_id in container.owned_elements:
            child = elements.get(child_id)
            if child is not None:
                elements[child_id] = clamp_child(container, child, params)

    return graph.model_copy(update={"elements": elements})


def absolute_position(graph: "DiagramModel", element_id: str) -> tuple[float, float]:
    """Canvas position of an element, following its chain of owners."""
    element = graph.elements.get(element_id)
    if element is None:
        raise ElementNotFoundError(element_id)
    x, y = element.bounds.x, element.bounds.y
    seen = {element_id}
    owner_id = element.owner
    while owner_id is not None and owner_id not in seen:
        owner = graph.elements.get(owner_id)
        if owner is None:
            break
        x += owner.bounds.x
        y += owner.bounds.y
        seen.add(owner_id)
        owner_id = owner.owner
    return (x, y)
