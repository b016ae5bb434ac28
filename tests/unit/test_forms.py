from datetime import datetime, timedelta, timezone

import pytest

from procflow.diagnostics import DiagnosticKind, Diagnostics
from procflow.graph import ActivityKind, FieldType, WorkflowGraph
from procflow.runtime import (
    HistoryAction,
    HistoryEntry,
    data_by_activity,
    is_field_visible,
    prefill_values,
    validate_submission,
    visible_fields,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def form_graph() -> WorkflowGraph:
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.START, "Request", activity_id="request")
    graph.add_activity(ActivityKind.TASK, "Pay", activity_id="pay")
    graph.add_transition("request", "pay")

    graph.add_field("request", "Amount", FieldType.NUMBER, required=True, min_value=1, max_value=500)
    graph.add_field("request", "Email", FieldType.EMAIL)
    graph.add_field("request", "Priority", FieldType.SELECT, options=["low", "high", ""])
    graph.add_field("request", "Code", regex_pattern=r"[A-Z]{3}-\d+")
    graph.add_field("request", "Urgent", FieldType.BOOLEAN)
    graph.add_field("request", "Due", FieldType.DATE)
    graph.add_field(
        "request", "Reason", required=True, visibility_condition="priority == 'high'"
    )

    graph.add_field(
        "pay", "Amount to pay", source_activity_id="request", source_field_name="amount"
    )
    graph.add_field("pay", "Reference")
    return graph


def test_valid_submission(form_graph):
    errors = validate_submission(
        form_graph.activity("request"),
        {
            "amount": "250",
            "email": "ana@example.com",
            "priority": "low",
            "code": "INV-42",
            "urgent": "true",
            "due": "2024-04-01",
        },
    )

    assert errors == {}


def test_invalid_submission_reports_each_field(form_graph):
    errors = validate_submission(
        form_graph.activity("request"),
        {
            "amount": "900",
            "email": "not-an-email",
            "priority": "medium",
            "code": "inv-42",
            "urgent": "maybe",
            "due": "tomorrow",
        },
    )

    assert set(errors) == {"amount", "email", "priority", "code", "urgent", "due"}
    assert errors["amount"] == "Amount must be at most 500"


def test_required_fields_only_when_visible(form_graph):
    request = form_graph.activity("request")

    assert validate_submission(request, {"amount": 10, "priority": "low"}) == {}
    errors = validate_submission(request, {"amount": 10, "priority": "high"})
    assert errors == {"reason": "Reason is required"}
    assert validate_submission(request, {"priority": "high", "reason": " "}) == {
        "amount": "Amount is required",
        "reason": "Reason is required",
    }


def test_visibility_uses_accumulated_variables(form_graph):
    request = form_graph.activity("request")

    errors = validate_submission(request, {"amount": 10}, {"priority": "high"})

    assert errors == {"reason": "Reason is required"}


def test_blank_select_options_are_dropped(form_graph):
    priority = form_graph.activity("request").field_by_name("priority")
    assert priority.options == ["low", "high"]


def test_broken_visibility_condition_hides_field():
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.TASK, "Task", activity_id="task")
    field = graph.add_field("task", "Note", required=True, visibility_condition="a ==")
    diagnostics = Diagnostics()

    assert is_field_visible(field, {}, diagnostics) is False
    assert diagnostics.has(DiagnosticKind.BROKEN_CONDITION)
    assert validate_submission(graph.activity("task"), {}) == {}


def test_visible_fields_follow_form_order(form_graph):
    names = [f.name for f in visible_fields(form_graph.activity("request"), {})]

    assert names == ["amount", "email", "priority", "code", "urgent", "due"]


def test_prefill_from_upstream_submission(form_graph):
    history = [
        HistoryEntry(
            process_id="p1",
            activity_id="request",
            action=HistoryAction.COMPLETED,
            data={"amount": 100},
            created_at=T0,
        ),
        HistoryEntry(
            process_id="p1",
            activity_id="request",
            action=HistoryAction.COMPLETED,
            data={"amount": 120},
            created_at=T0 + timedelta(hours=1),
        ),
        HistoryEntry(
            process_id="p1",
            activity_id="pay",
            action=HistoryAction.STARTED,
            data={"amount": 1},
            created_at=T0 + timedelta(hours=1),
        ),
    ]

    data = data_by_activity(history)

    assert data == {"request": {"amount": 120}}
    assert prefill_values(form_graph.activity("pay"), data) == {"amount_to_pay": 120}
    assert prefill_values(form_graph.activity("pay"), {}) == {}
