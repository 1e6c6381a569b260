from __future__ import annotations

import pytest

from diagram_core import (
    DanglingEndpointError,
    DelegationLink,
    DiagramModel,
    ElementType,
    Endpoint,
    Point,
    RelationshipState,
    RelationshipType,
    SupervisionLink,
    UnknownTypeError,
    build_from_partial,
    change_relationship_type,
    check_endpoints,
    propose_relationship,
    resolve_relationship_type,
)
from diagram_core.relationships import straight_path


@pytest.fixture
def loose_graph() -> DiagramModel:
    """Unowned agents, so relative and canvas coordinates coincide."""
    elements = [
        build_from_partial("Solver", {"id": "solver"}),
        build_from_partial("Dispatcher", {"id": "dispatcher", "bounds": {"x": 200, "y": 100}}),
        build_from_partial("Supervisor", {"id": "supervisor", "bounds": {"x": 400, "y": 0}}),
    ]
    return DiagramModel(elements={e.id: e for e in elements})


def _delegation(**values) -> DelegationLink:
    record = {
        "id": "rel",
        "source": {"element": "dispatcher"},
        "target": {"element": "solver"},
        "delegationType": "task",
        **values,
    }
    return build_from_partial("DelegationLink", record)


def test_disallowed_kind_falls_back_to_the_generic_link(loose_graph: DiagramModel) -> None:
    relationship, resolution = propose_relationship(
        loose_graph, "SupervisionLink", Endpoint(element="solver"), Endpoint(element="dispatcher")
    )

    assert resolution.state == RelationshipState.REJECTED
    assert resolution.requested == RelationshipType.SUPERVISION_LINK
    assert resolution.resolved == RelationshipType.SWARM_LINK
    assert relationship.type == RelationshipType.SWARM_LINK
    assert relationship.name == ""
    assert relationship.stroke_color == "#000000"


def test_allowed_kind_is_accepted(loose_graph: DiagramModel) -> None:
    relationship, resolution = propose_relationship(
        loose_graph, "DelegationLink", Endpoint(element="dispatcher"), Endpoint(element="solver"),
        {"delegation_type": "query"},
    )

    assert resolution.accepted
    assert isinstance(relationship, DelegationLink)
    assert relationship.name == "delegates"
    assert relationship.stroke_color == "#3b82f6"
    assert relationship.delegation_type == "query"


def test_resolution_never_raises_for_registered_kinds() -> None:
    for source in ElementType:
        for requested in RelationshipType:
            resolution = resolve_relationship_type(source, requested)
            assert resolution.resolved in (requested, RelationshipType.SWARM_LINK)


def test_unknown_relationship_kind_is_rejected(loose_graph: DiagramModel) -> None:
    with pytest.raises(UnknownTypeError):
        propose_relationship(loose_graph, "Association", Endpoint(element="solver"), Endpoint(element="dispatcher"))


def test_missing_endpoint_is_rejected(loose_graph: DiagramModel) -> None:
    with pytest.raises(DanglingEndpointError) as excinfo:
        propose_relationship(loose_graph, "SwarmLink", Endpoint(element="solver"), Endpoint(element="ghost"))

    assert excinfo.value.end == "target"
    assert excinfo.value.element_id == "ghost"


def test_check_endpoints(loose_graph: DiagramModel) -> None:
    check_endpoints(loose_graph, _delegation())

    with pytest.raises(DanglingEndpointError):
        check_endpoints(loose_graph, _delegation(source={"element": "gone"}))


def test_default_path_joins_the_element_centers(loose_graph: DiagramModel) -> None:
    bounds, path = straight_path(loose_graph, "solver", "dispatcher")

    assert (bounds.x, bounds.y, bounds.width, bounds.height) == (30, 40, 200, 100)
    assert path == [Point(x=0, y=0), Point(x=200, y=100)]


def test_explicit_path_is_kept(loose_graph: DiagramModel) -> None:
    path = [{"x": 0, "y": 0}, {"x": 5, "y": 5}, {"x": 10, "y": 0}]

    relationship, _ = propose_relationship(
        loose_graph, "SwarmLink", Endpoint(element="solver"), Endpoint(element="dispatcher"), {"path": path}
    )

    assert len(relationship.path) == 3


def test_changing_kind_relabels_the_relationship() -> None:
    changed, resolution = change_relationship_type(_delegation(), "SupervisionLink", ElementType.SUPERVISOR)

    assert resolution.accepted
    assert isinstance(changed, SupervisionLink)
    assert changed.name == "supervises"
    assert changed.stroke_color == "#6b7280"
    assert not hasattr(changed, "delegation_type")
    assert changed.source.element == "dispatcher"


def test_changing_kind_keeps_explicit_overrides() -> None:
    changed, _ = change_relationship_type(
        _delegation(), "SupervisionLink", ElementType.SUPERVISOR,
        {"name": "watches", "supervision_level": "direct"},
    )

    assert changed.name == "watches"
    assert changed.stroke_color == "#6b7280"
    assert changed.supervision_level == "direct"


def test_disallowed_kind_change_falls_back_and_relabels() -> None:
    changed, resolution = change_relationship_type(_delegation(), "SupervisionLink", ElementType.DISPATCHER)

    assert resolution.state == RelationshipState.REJECTED
    assert changed.type == RelationshipType.SWARM_LINK
    assert changed.name == ""
    assert changed.stroke_color == "#000000"


def test_same_kind_keeps_the_label() -> None:
    relationship = _delegation(name="hands off")

    changed, resolution = change_relationship_type(relationship, "DelegationLink", ElementType.DISPATCHER)

    assert resolution.accepted
    assert changed.name == "hands off"
    assert changed.delegation_type == "task"
