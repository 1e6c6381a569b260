from __future__ import annotations

import pytest

from diagram_core import (
    Assessment,
    Command,
    CreateElement,
    CreateRelationship,
    DanglingEndpointError,
    DeleteElement,
    DeleteRelationship,
    DiagramModel,
    DiagramModelError,
    DiagramType,
    ElementNotFoundError,
    Endpoint,
    FlipRelationship,
    OwnershipError,
    RelationshipNotFoundError,
    RelationshipType,
    SerializationError,
    SetOwner,
    Size,
    UnknownTypeError,
    UpdateDiagram,
    UpdateElement,
    UpdateRelationship,
    absolute_position,
    apply_command,
    apply_commands,
    parse_command,
    serialize_model,
)


def _link(graph: DiagramModel, source: str, target: str, kind: str = "SwarmLink", rel_id: str = "rel") -> DiagramModel:
    return apply_command(
        graph,
        CreateRelationship(id=rel_id, type=kind, source=Endpoint(element=source), target=Endpoint(element=target)),
    )


def _children_inside(graph: DiagramModel) -> bool:
    for container in graph.containers():
        for child in graph.children_of(container.id):
            if not (
                10 <= child.bounds.x <= container.bounds.width - child.bounds.width - 10
                and 60 <= child.bounds.y <= container.bounds.height - child.bounds.height - 10
            ):
                return False
    return True


# --- Elements ---

def test_create_element_inside_a_container(swarm_graph: DiagramModel) -> None:
    graph = apply_command(swarm_graph, CreateElement(id="eval", type="Evaluator", owner="swarm"))

    assert graph.elements["eval"].owner == "swarm"
    assert graph.elements["swarm"].owned_elements[-1] == "eval"
    assert (graph.elements["eval"].bounds.x, graph.elements["eval"].bounds.y) == (10, 60)
    assert "eval" not in swarm_graph.elements


def test_create_element_generates_an_id() -> None:
    command = CreateElement(type="LanguageModel")

    graph = apply_command(DiagramModel(), command)

    assert list(graph.elements) == [command.id]


def test_create_element_ignores_ownership_fields_in_values(swarm_graph: DiagramModel) -> None:
    graph = apply_command(
        swarm_graph,
        CreateElement(id="s2", type="Swarm", values={"ownedElements": ["solver"], "owner": "swarm"}),
    )

    assert graph.elements["s2"].owned_elements == []
    assert graph.elements["s2"].owner is None


def test_create_element_rejects_unknown_kind(swarm_graph: DiagramModel) -> None:
    with pytest.raises(UnknownTypeError):
        apply_command(swarm_graph, CreateElement(type="Widget"))


def test_create_element_rejects_non_container_owner(swarm_graph: DiagramModel) -> None:
    with pytest.raises(OwnershipError):
        apply_command(swarm_graph, CreateElement(type="Solver", owner="llm"))


def test_create_element_rejects_duplicate_id(swarm_graph: DiagramModel) -> None:
    with pytest.raises(DiagramModelError):
        apply_command(swarm_graph, CreateElement(id="solver", type="Solver"))


def test_update_element_merges_changes(swarm_graph: DiagramModel) -> None:
    graph = apply_command(
        swarm_graph,
        UpdateElement(element_id="solver", changes={"name": "Planner", "num_agents": 4, "fillColor": None}),
    )

    solver = graph.elements["solver"]
    assert solver.name == "Planner"
    assert solver.num_agents == 4
    assert solver.fill_color == "#10b981"
    assert swarm_graph.elements["solver"].name == "Solver"


def test_shrinking_a_swarm_raises_it_to_minimum_and_reclamps_children(swarm_graph: DiagramModel) -> None:
    graph = apply_command(
        swarm_graph, UpdateElement(element_id="swarm", changes={"bounds": {"width": 100, "height": 50}})
    )

    swarm = graph.elements["swarm"]
    assert (swarm.bounds.x, swarm.bounds.y, swarm.bounds.width, swarm.bounds.height) == (100, 100, 200, 150)
    assert (graph.elements["dispatcher"].bounds.x, graph.elements["dispatcher"].bounds.y) == (20, 60)
    assert (graph.elements["solver"].bounds.x, graph.elements["solver"].bounds.y) == (130, 60)
    assert _children_inside(graph)


def test_moving_a_child_out_of_its_container_is_clamped(swarm_graph: DiagramModel) -> None:
    graph = apply_command(swarm_graph, UpdateElement(element_id="solver", changes={"bounds": {"x": 5, "y": 5}}))

    assert (graph.elements["solver"].bounds.x, graph.elements["solver"].bounds.y) == (10, 60)


@pytest.mark.parametrize("field", ["id", "type", "owner", "ownedElements", "owned_elements"])
def test_update_element_rejects_protected_fields(swarm_graph: DiagramModel, field: str) -> None:
    with pytest.raises(DiagramModelError):
        apply_command(swarm_graph, UpdateElement(element_id="swarm", changes={field: "x"}))


def test_update_missing_element(swarm_graph: DiagramModel) -> None:
    with pytest.raises(ElementNotFoundError):
        apply_command(swarm_graph, UpdateElement(element_id="ghost", changes={"name": "x"}))


def test_invalid_update_is_rejected(swarm_graph: DiagramModel) -> None:
    with pytest.raises(SerializationError):
        apply_command(swarm_graph, UpdateElement(element_id="llm", changes={"temperature": "hot"}))


# --- Ownership ---

def test_set_owner_keeps_the_canvas_position(swarm_graph: DiagramModel) -> None:
    graph = apply_command(swarm_graph, SetOwner(element_id="llm", owner="swarm"))

    llm = graph.elements["llm"]
    assert llm.owner == "swarm"
    assert "llm" in graph.elements["swarm"].owned_elements
    assert (llm.bounds.x, llm.bounds.y) == (150, 100)
    assert absolute_position(graph, "llm") == (250, 200)


def test_set_owner_none_moves_out_of_the_container(swarm_graph: DiagramModel) -> None:
    graph = apply_command(swarm_graph, SetOwner(element_id="solver", owner=None))

    solver = graph.elements["solver"]
    assert solver.owner is None
    assert "solver" not in graph.elements["swarm"].owned_elements
    assert (solver.bounds.x, solver.bounds.y) == (300, 170)


def test_set_owner_rejects_non_containers(swarm_graph: DiagramModel) -> None:
    with pytest.raises(OwnershipError):
        apply_command(swarm_graph, SetOwner(element_id="llm", owner="solver"))


def test_set_owner_rejects_cycles(swarm_graph: DiagramModel) -> None:
    graph = apply_command(swarm_graph, CreateElement(id="inner", type="Swarm", owner="swarm"))

    with pytest.raises(OwnershipError):
        apply_command(graph, SetOwner(element_id="swarm", owner="swarm"))
    with pytest.raises(OwnershipError):
        apply_command(graph, SetOwner(element_id="swarm", owner="inner"))


# --- Deletion ---

def test_delete_container_orphans_its_children(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")

    graph = apply_command(graph, DeleteElement(element_id="swarm"))

    assert "swarm" not in graph.elements
    assert graph.elements["dispatcher"].owner is None
    assert (graph.elements["dispatcher"].bounds.x, graph.elements["dispatcher"].bounds.y) == (120, 170)
    assert "rel" in graph.relationships


def test_delete_element_cascades_to_relationships(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")
    graph.interactive.elements["solver"] = True
    graph.interactive.relationships["rel"] = True
    graph.assessments["solver"] = Assessment(model_element_id="solver", element_type="Solver", score=1)

    graph = apply_command(graph, DeleteElement(element_id="solver"))

    assert "solver" not in graph.elements
    assert graph.relationships == {}
    assert "solver" not in graph.elements["swarm"].owned_elements
    assert graph.interactive.elements == {}
    assert graph.interactive.relationships == {}
    assert graph.assessments == {}


def test_delete_missing_element(swarm_graph: DiagramModel) -> None:
    with pytest.raises(ElementNotFoundError):
        apply_command(swarm_graph, DeleteElement(element_id="ghost"))


# --- Relationships ---

def test_disallowed_relationship_is_stored_as_generic_link(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "solver", "dispatcher", "SupervisionLink")

    assert graph.relationships["rel"].type == RelationshipType.SWARM_LINK


def test_create_relationship_with_missing_endpoint(swarm_graph: DiagramModel) -> None:
    with pytest.raises(DanglingEndpointError):
        _link(swarm_graph, "solver", "ghost")


def test_default_path_uses_canvas_coordinates(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    bounds = graph.relationships["rel"].bounds
    # Centers: dispatcher (150, 210), solver (330, 210)
    assert (bounds.x, bounds.y, bounds.width, bounds.height) == (150, 210, 180, 0)


def test_update_relationship_kind_relabels(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "supervisor", "solver")

    graph = apply_command(graph, UpdateRelationship(relationship_id="rel", type="SupervisionLink"))

    relationship = graph.relationships["rel"]
    assert relationship.type == RelationshipType.SUPERVISION_LINK
    assert relationship.name == "supervises"
    assert relationship.stroke_color == "#6b7280"


def test_update_relationship_to_disallowed_kind_falls_back(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")

    graph = apply_command(graph, UpdateRelationship(relationship_id="rel", type="SupervisionLink"))

    relationship = graph.relationships["rel"]
    assert relationship.type == RelationshipType.SWARM_LINK
    assert relationship.name == ""
    assert relationship.stroke_color == "#000000"


def test_moving_the_source_rechecks_the_allow_list(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")

    graph = apply_command(
        graph, UpdateRelationship(relationship_id="rel", changes={"source": {"element": "supervisor"}})
    )

    assert graph.relationships["rel"].source.element == "supervisor"
    assert graph.relationships["rel"].type == RelationshipType.SWARM_LINK


def test_update_relationship_plain_changes(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")

    graph = apply_command(
        graph, UpdateRelationship(relationship_id="rel", changes={"name": "hands off", "delegation_type": "task"})
    )

    relationship = graph.relationships["rel"]
    assert relationship.name == "hands off"
    assert relationship.delegation_type == "task"
    assert relationship.type == RelationshipType.DELEGATION_LINK


def test_update_relationship_rejects_dangling_target(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    with pytest.raises(DanglingEndpointError):
        apply_command(graph, UpdateRelationship(relationship_id="rel", changes={"target": {"element": "ghost"}}))


def test_update_relationship_rejects_type_in_changes(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    with pytest.raises(DiagramModelError):
        apply_command(graph, UpdateRelationship(relationship_id="rel", changes={"type": "DelegationLink"}))


def test_flip_relationship_reverses_the_path_and_rechecks_the_kind(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver", "DelegationLink")
    before = graph.relationships["rel"]

    graph = apply_command(graph, FlipRelationship(relationship_id="rel"))

    relationship = graph.relationships["rel"]
    assert (relationship.source.element, relationship.target.element) == ("solver", "dispatcher")
    assert [(p.x, p.y) for p in relationship.path] == [(180, 0), (0, 0)]
    assert relationship.bounds == before.bounds
    # Solvers may only create the generic link
    assert relationship.type == RelationshipType.SWARM_LINK
    assert relationship.name == ""
    assert relationship.stroke_color == "#000000"


def test_flipping_twice_restores_the_endpoints(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")
    graph = apply_command(graph, UpdateRelationship(relationship_id="rel", changes={"name": "handoff"}))
    before = graph.relationships["rel"]

    graph = apply_command(graph, FlipRelationship(relationship_id="rel"))
    graph = apply_command(graph, FlipRelationship(relationship_id="rel"))

    relationship = graph.relationships["rel"]
    assert relationship.source == before.source
    assert relationship.target == before.target
    assert relationship.path == before.path
    assert relationship.name == "handoff"


def test_flip_missing_relationship(swarm_graph: DiagramModel) -> None:
    with pytest.raises(RelationshipNotFoundError):
        apply_command(swarm_graph, FlipRelationship(relationship_id="ghost"))


@pytest.mark.parametrize(
    "command",
    [
        UpdateElement(element_id="dispatcher", changes={"numAgent": 7}),
        UpdateElement(element_id="llm", changes={"num_agents": 3}),
        CreateElement(type="Solver", values={"colour": "#fff"}),
        CreateRelationship(source=Endpoint(element="dispatcher"), target=Endpoint(element="solver"),
                           values={"supervisionLevel": "direct"}),
    ],
)
def test_unknown_fields_are_rejected(swarm_graph: DiagramModel, command: Command) -> None:
    before = serialize_model(swarm_graph)

    with pytest.raises(DiagramModelError, match="Unknown field"):
        apply_command(swarm_graph, command)

    assert serialize_model(swarm_graph) == before


def test_update_relationship_rejects_unknown_fields(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    with pytest.raises(DiagramModelError, match="delegation"):
        apply_command(graph, UpdateRelationship(relationship_id="rel", changes={"delegation": "task"}))


def test_update_relationship_accepts_fields_of_the_requested_kind(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    graph = apply_command(
        graph,
        UpdateRelationship(relationship_id="rel", type="DelegationLink", changes={"delegationType": "task"}),
    )

    assert graph.relationships["rel"].delegation_type == "task"


def test_style_mapping_is_a_known_field(swarm_graph: DiagramModel) -> None:
    graph = apply_command(
        swarm_graph, UpdateElement(element_id="solver", changes={"style": {"fillColor": "#ffffff"}})
    )

    assert graph.elements["solver"].style.fill_color == "#ffffff"


def test_delete_relationship(swarm_graph: DiagramModel) -> None:
    graph = _link(swarm_graph, "dispatcher", "solver")

    graph = apply_command(graph, DeleteRelationship(relationship_id="rel"))

    assert graph.relationships == {}
    with pytest.raises(RelationshipNotFoundError):
        apply_command(graph, DeleteRelationship(relationship_id="rel"))


# --- Document and batches ---

def test_update_diagram(swarm_graph: DiagramModel) -> None:
    graph = apply_command(
        swarm_graph, UpdateDiagram(size=Size(width=2000, height=1000), type=DiagramType.AGENT_DIAGRAM)
    )

    assert (graph.size.width, graph.size.height) == (2000, 1000)
    assert graph.type == DiagramType.AGENT_DIAGRAM


def test_failed_command_leaves_the_graph_untouched(swarm_graph: DiagramModel) -> None:
    before = serialize_model(swarm_graph)

    with pytest.raises(OwnershipError):
        apply_command(swarm_graph, SetOwner(element_id="swarm", owner="swarm"))

    assert serialize_model(swarm_graph) == before


def test_failed_batch_applies_nothing(swarm_graph: DiagramModel) -> None:
    before = serialize_model(swarm_graph)

    with pytest.raises(ElementNotFoundError):
        apply_commands(
            swarm_graph,
            [
                UpdateElement(element_id="solver", changes={"name": "Renamed"}),
                DeleteElement(element_id="ghost"),
            ],
        )

    assert serialize_model(swarm_graph) == before


def test_parse_command_dispatches_on_kind() -> None:
    command = parse_command({"kind": "set_owner", "elementId": "solver", "owner": None})

    assert isinstance(command, SetOwner)
    assert command.element_id == "solver"

    command = parse_command({"kind": "create_relationship", "type": "DelegationLink",
                             "source": {"element": "a"}, "target": {"element": "b"}})
    assert isinstance(command, CreateRelationship)

    command = parse_command({"kind": "flip_relationship", "relationshipId": "rel"})
    assert isinstance(command, FlipRelationship)


def test_parse_command_rejects_unknown_kind() -> None:
    with pytest.raises(SerializationError):
        parse_command({"kind": "explode"})
