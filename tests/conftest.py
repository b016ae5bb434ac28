import pytest

from procflow.assignment import Membership, OrgDirectory, OrgPosition
from procflow.graph import (
    ActivityKind,
    AssignmentStrategy,
    FieldType,
    PositionAssignment,
    WorkflowGraph,
)


@pytest.fixture
def linear_graph() -> WorkflowGraph:
    """start -> end, without conditions."""
    graph = WorkflowGraph(id="wf-linear", name="Linear")
    graph.add_activity(ActivityKind.START, "Start", activity_id="start")
    graph.add_activity(ActivityKind.END, "End", activity_id="end")
    graph.add_transition("start", "end", transition_id="t-start-end")
    return graph


@pytest.fixture
def approval_graph() -> WorkflowGraph:
    """A purchase request reviewed by a manager.

    request (start) -> review (decision) -> approved | rejected (end)
    """
    graph = WorkflowGraph(
        id="wf-approval", name="Purchase approval", name_template="Purchase {{item}}"
    )
    graph.add_activity(ActivityKind.START, "Request", activity_id="request")
    graph.add_activity(
        ActivityKind.DECISION,
        "Review",
        activity_id="review",
        assignment=PositionAssignment(
            position_id="pos-mgr", strategy=AssignmentStrategy.WORKLOAD
        ),
    )
    graph.add_activity(ActivityKind.END, "Approved", activity_id="approved")
    graph.add_activity(ActivityKind.END, "Rejected", activity_id="rejected")

    graph.add_field("request", "Item", required=True)
    graph.add_field("request", "Amount", FieldType.CURRENCY, required=True, min_value=0)
    graph.add_field(
        "review",
        "Decision",
        FieldType.SELECT,
        required=True,
        options=["approve", "reject"],
    )

    graph.add_transition("request", "review", transition_id="t-submit")
    graph.add_transition(
        "review", "approved", "decision == 'approve'", transition_id="t-approve"
    )
    graph.add_transition(
        "review", "rejected", "decision == 'reject'", transition_id="t-reject"
    )
    return graph


@pytest.fixture
def directory() -> OrgDirectory:
    return OrgDirectory(
        positions={
            "pos-mgr": OrgPosition(id="pos-mgr", title="Manager", department_id="dep-fin"),
            "pos-clerk": OrgPosition(id="pos-clerk", title="Clerk", department_id="dep-ops"),
        },
        memberships=[
            Membership(user_id="u1", position_id="pos-mgr"),
            Membership(user_id="u2", position_id="pos-mgr"),
            Membership(user_id="u3", position_id="pos-clerk"),
        ],
    )
