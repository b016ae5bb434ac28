from procflow.diagnostics import DiagnosticKind
from procflow.graph import ActivityKind, WorkflowGraph, validate_graph


def test_linear_graph_is_clean(linear_graph):
    report = validate_graph(linear_graph)

    assert report.executable
    assert report.diagnostics == []


def test_graph_without_start_is_not_executable():
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.TASK, "Draft", activity_id="draft")

    report = validate_graph(graph)

    assert not report.executable
    assert [d.kind for d in report.diagnostics] == [
        DiagnosticKind.NO_START_ACTIVITY,
        DiagnosticKind.DEAD_END_ACTIVITY,
    ]


def test_unreachable_activity_is_a_warning(linear_graph):
    linear_graph.add_activity(ActivityKind.TASK, "Orphan", activity_id="orphan")

    report = validate_graph(linear_graph)

    assert report.executable
    assert [d.subject_id for d in report.of_kind(DiagnosticKind.UNREACHABLE_ACTIVITY)] == [
        "orphan"
    ]
    assert [d.subject_id for d in report.of_kind(DiagnosticKind.DEAD_END_ACTIVITY)] == [
        "orphan"
    ]


def test_broken_conditions_are_reported(linear_graph):
    linear_graph.set_condition("t-start-end", "amount >")
    linear_graph.add_field("start", "Note", visibility_condition="(a == 1")

    report = validate_graph(linear_graph)

    broken = report.of_kind(DiagnosticKind.BROKEN_CONDITION)
    assert {d.subject_id for d in broken} == {
        "t-start-end",
        linear_graph.activity("start").fields[0].id,
    }


def test_field_sources_must_precede_the_activity():
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.START, "Start", activity_id="start")
    graph.add_activity(ActivityKind.TASK, "Check", activity_id="check")
    graph.add_activity(ActivityKind.END, "End", activity_id="end")
    graph.add_transition("start", "check")
    graph.add_transition("check", "end")
    graph.add_field("start", "Amount")
    graph.add_field("end", "Outcome")

    graph.add_field(
        "check", "Confirmed amount", source_activity_id="start", source_field_name="amount"
    )
    late = graph.add_field(
        "check", "Outcome copy", source_activity_id="end", source_field_name="outcome"
    )
    unknown = graph.add_field(
        "check", "Total", source_activity_id="start", source_field_name="total"
    )

    report = validate_graph(graph)

    invalid = report.of_kind(DiagnosticKind.INVALID_FIELD_SOURCE)
    assert [d.subject_id for d in invalid] == [late.id, unknown.id]
    assert report.executable
