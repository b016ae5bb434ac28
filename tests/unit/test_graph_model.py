import pytest
from pydantic import ValidationError

from procflow.errors import GraphModelError
from procflow.graph import (
    Activity,
    ActivityKind,
    AssignmentStrategy,
    DepartmentAssignment,
    FieldType,
    ManualAssignment,
    Transition,
    WorkflowGraph,
    normalize_field_name,
)
from procflow.interchange import export_bpmn


def _chain(*ids: str) -> WorkflowGraph:
    graph = WorkflowGraph()
    for index, activity_id in enumerate(ids):
        kind = ActivityKind.START if index == 0 else ActivityKind.TASK
        graph.add_activity(kind, activity_id.upper(), activity_id=activity_id)
    for source, target in zip(ids, ids[1:]):
        graph.add_transition(source, target)
    return graph


def test_add_transition_twice_keeps_one():
    graph = _chain("a", "b")
    first = next(iter(graph.transitions.values()))

    again = graph.add_transition("a", "b", "x == 1")

    assert again is first
    assert len(graph.transitions) == 1
    assert again.condition is None


def test_add_transition_rejects_self_loops_and_unknown_activities():
    graph = _chain("a", "b")

    with pytest.raises(GraphModelError):
        graph.add_transition("a", "a")
    with pytest.raises(GraphModelError):
        graph.add_transition("a", "missing")


def test_remove_activity_cascades_to_transitions():
    graph = _chain("a", "b", "c")
    graph.add_field("b", "Notes")

    removed = graph.remove_activity("b")

    assert removed.fields[0].name == "notes"
    assert list(graph.activities) == ["a", "c"]
    assert graph.transitions == {}


def test_remove_transition():
    graph = _chain("a", "b")
    transition_id = next(iter(graph.transitions))

    graph.remove_transition(transition_id)

    assert graph.transitions == {}
    with pytest.raises(GraphModelError):
        graph.remove_transition(transition_id)


def test_set_condition_blank_becomes_default():
    graph = _chain("a", "b")
    transition_id = next(iter(graph.transitions))

    assert graph.set_condition(transition_id, "x > 1").condition == "x > 1"
    updated = graph.set_condition(transition_id, "  ")
    assert updated.condition is None
    assert updated.is_default
    assert graph.transitions[transition_id].condition is None
    assert "conditionExpression" not in export_bpmn(graph)


def test_delete_field_keeps_order_index_contiguous():
    graph = _chain("a")
    fields = [graph.add_field("a", label) for label in ("One", "Two", "Three", "Four")]

    graph.remove_field("a", fields[1].id)

    remaining = graph.activity("a").fields
    assert [f.name for f in remaining] == ["one", "three", "four"]
    assert [f.order_index for f in remaining] == [0, 1, 2]


def test_move_and_reorder_fields():
    graph = _chain("a")
    one, two, three = (graph.add_field("a", label) for label in ("One", "Two", "Three"))

    graph.move_field("a", three.id, 0)
    assert [f.name for f in graph.activity("a").fields] == ["three", "one", "two"]

    graph.move_field("a", three.id, 99)
    assert [f.name for f in graph.activity("a").fields] == ["one", "two", "three"]

    graph.reorder_fields("a", [two.id, three.id, one.id])
    fields = graph.activity("a").fields
    assert [f.name for f in fields] == ["two", "three", "one"]
    assert [f.order_index for f in fields] == [0, 1, 2]

    with pytest.raises(GraphModelError):
        graph.reorder_fields("a", [two.id, three.id])


def test_add_field_derives_unique_name_from_label():
    graph = _chain("a")

    field = graph.add_field("a", "Invoice Amount", FieldType.CURRENCY)

    assert field.name == "invoice_amount"
    assert field.activity_id == "a"
    with pytest.raises(GraphModelError):
        graph.add_field("a", "Invoice amount")
    with pytest.raises(GraphModelError):
        graph.add_field("a", "Other", name="Not Valid")


def test_update_field():
    graph = _chain("a")
    first = graph.add_field("a", "First")
    second = graph.add_field("a", "Second")

    updated = graph.update_field("a", first.id, label="Renamed", required=True)
    assert updated.label == "Renamed"
    assert updated.required
    assert updated.order_index == 0

    with pytest.raises(GraphModelError):
        graph.update_field("a", first.id, name=second.name)
    with pytest.raises(GraphModelError):
        graph.update_field("a", first.id, order_index=3)
    with pytest.raises(GraphModelError):
        graph.update_field("a", first.id, min_value=5, max_value=1)


def test_update_activity_revalidates():
    graph = _chain("a")

    graph.update_activity("a", name="Begin", due_date_hours=48)
    assert graph.activity("a").name == "Begin"
    assert graph.activity("a").due_date_hours == 48

    with pytest.raises(GraphModelError):
        graph.update_activity("a", due_date_hours=0)


def test_previous_activities():
    graph = _chain("a", "b", "c")
    graph.add_activity(ActivityKind.TASK, "Side", activity_id="side")
    graph.add_transition("side", "c")

    assert [a.id for a in graph.previous_activities("c")] == ["a", "b", "side"]
    assert graph.previous_activities("a") == []


def test_model_validate_rejects_dangling_transitions():
    with pytest.raises(ValidationError):
        WorkflowGraph.model_validate(
            {
                "activities": {"a": {"id": "a", "kind": "start", "name": "A"}},
                "transitions": {
                    "t": {"id": "t", "source_id": "a", "target_id": "missing"}
                },
            }
        )


def test_assignment_configuration_is_a_tagged_union():
    activity = Activity.model_validate(
        {
            "kind": "task",
            "name": "Pay",
            "assignment": {
                "type": "department",
                "department_id": "dep-fin",
                "strategy": "workload",
            },
        }
    )

    assert isinstance(activity.assignment, DepartmentAssignment)
    assert activity.assignment.strategy == AssignmentStrategy.WORKLOAD
    assert isinstance(Activity(kind="task", name="x").assignment, ManualAssignment)
    with pytest.raises(ValidationError):
        Activity.model_validate(
            {"kind": "task", "name": "x", "assignment": {"type": "department"}}
        )


def test_normalize_field_name():
    assert normalize_field_name("  Fecha de Pago! ") == "fecha_de_pago"
    assert normalize_field_name("Total (USD)") == "total_usd"


def test_blank_transition_condition_is_default():
    transition = Transition(source_id="a", target_id="b", condition=" ")
    assert transition.condition is None
    assert transition.is_default
