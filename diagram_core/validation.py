"""
Diagram validation - Check diagrams for structural issues.

Commands keep a diagram valid, so on a diagram built through them only
warnings are expected. Errors show up for diagrams assembled by hand or
edited outside the command layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .registry import REGISTRY, TypeRegistry

if TYPE_CHECKING:
    from .models import DiagramModel, Element


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a diagram."""
    severity: IssueSeverity
    message: str
    element_id: str | None = None
    relationship_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.element_id:
            result["element_id"] = self.element_id
        if self.relationship_id:
            result["relationship_id"] = self.relationship_id
        return result


def is_likely_preview(element: "Element") -> bool:
    """
    Unowned element still at the origin, taken to be a palette preview.

    A real element that was placed at (0, 0) and never moved into a container
    looks the same; the two cases cannot be told apart from the record.
    """
    return element.owner is None and element.bounds.x == 0 and element.bounds.y == 0


def is_orphan(element: "Element", registry: TypeRegistry = REGISTRY) -> bool:
    """Placed element of a kind that belongs in a container, but has no owner."""
    entry = registry.element_entry(element.type)
    return entry.requires_owner and element.owner is None and not is_likely_preview(element)


def validate_diagram(diagram: "DiagramModel", registry: TypeRegistry = REGISTRY) -> list[ValidationIssue]:
    """
    Validate a diagram and return a list of issues.

    Checks for:
    - Empty diagram - INFO
    - Relationship endpoints that do not exist - ERROR
    - Relationship kinds outside the source allow-list - ERROR
    - Owner fields and container child lists that disagree - ERROR
    - Bounds below the kind minimum - ERROR
    - Children overflowing their container's content region - WARNING
    - Orphan agents (placed but not inside a container) - WARNING
    - Self-referencing relationships - WARNING

    Args:
        diagram: The diagram to validate
        registry: Type registry with allow-lists and minimum sizes

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []
    elements = diagram.elements

    if not elements:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Diagram has no elements"
        ))

    # Relationships
    for relationship in diagram.relationships.values():
        source = elements.get(relationship.source.element)
        target = elements.get(relationship.target.element)
        if source is None:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Relationship references non-existent source element: {relationship.source.element}",
                relationship_id=relationship.id
            ))
        if target is None:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Relationship references non-existent target element: {relationship.target.element}",
                relationship_id=relationship.id
            ))
        if source is not None and relationship.type not in registry.allowed_relationship_kinds(source.type):
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"{relationship.type.value} is not allowed from {source.type.value}",
                relationship_id=relationship.id,
                element_id=source.id
            ))
        if relationship.source.element == relationship.target.element:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-referencing relationship (element points to itself)",
                relationship_id=relationship.id,
                element_id=relationship.source.element
            ))

    # Ownership
    for element in elements.values():
        if element.owner is None:
            continue
        owner = elements.get(element.owner)
        if owner is None or not registry.is_container(owner.type):
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Owner {element.owner} does not exist or is not a container",
                element_id=element.id
            ))
        elif element.id not in owner.owned_elements:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Container {owner.id} does not list its child",
                element_id=element.id
            ))

    for container in diagram.containers():
        entry = registry.element_entry(container.type)
        for child_id in container.owned_elements:
            child = elements.get(child_id)
            if child is None or child.owner != container.id:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Container lists {child_id}, which it does not own",
                    element_id=container.id
                ))
                continue
            if entry.container is None:
                continue
            padding = entry.container.padding
            if (child.bounds.x < padding
                    or child.bounds.right() > container.bounds.width - padding
                    or child.bounds.y < entry.container.header_height + padding
                    or child.bounds.bottom() > container.bounds.height - padding):
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    message=f"Element overflows the content area of container {container.id}",
                    element_id=child.id
                ))

    # Sizes and placement
    for element in elements.values():
        entry = registry.element_entry(element.type)
        if element.bounds.width < entry.min_width or element.bounds.height < entry.min_height:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Bounds below the {element.type.value} minimum of {entry.min_width}x{entry.min_height}",
                element_id=element.id
            ))
        if is_orphan(element, registry):
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"{element.name or element.type.value} is not inside a container",
                element_id=element.id
            ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    return {
        "total": len(issues),
        "errors": len([i for i in issues if i.severity == IssueSeverity.ERROR]),
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": len([i for i in issues if i.severity == IssueSeverity.ERROR]) == 0
    }
