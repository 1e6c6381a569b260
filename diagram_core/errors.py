"""
Exceptions raised by the diagram model layer.

All of them derive from `DiagramModelError`, itself a `ValueError`, so callers
that only guard against bad input keep working.
"""


class DiagramModelError(ValueError):
    """Base class for model-layer errors."""


class UnknownTypeError(DiagramModelError):
    """A type tag is not registered."""

    def __init__(self, tag: object):
        self.tag = tag
        super().__init__(f"Unknown type tag: {tag!r}")


class DanglingEndpointError(DiagramModelError):
    """A relationship endpoint references an element that does not exist."""

    def __init__(self, relationship_id: str, end: str, element_id: str):
        self.relationship_id = relationship_id
        self.end = end
        self.element_id = element_id
        super().__init__(
            f"Relationship {relationship_id} references non-existent {end} element: {element_id}"
        )


class ElementNotFoundError(DiagramModelError):
    """No element with the given id."""

    def __init__(self, element_id: str):
        self.element_id = element_id
        super().__init__(f"Element not found: {element_id}")


class RelationshipNotFoundError(DiagramModelError):
    """No relationship with the given id."""

    def __init__(self, relationship_id: str):
        self.relationship_id = relationship_id
        super().__init__(f"Relationship not found: {relationship_id}")


class OwnershipError(DiagramModelError):
    """An ownership change would break the containment tree."""


class SerializationError(DiagramModelError):
    """A record or document could not be converted."""
