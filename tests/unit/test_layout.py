from procflow.config import LayoutConfig
from procflow.graph import ActivityKind, Position, WorkflowGraph
from procflow.layout import apply_layout, assign_ranks, compute_layout


def _diamond() -> WorkflowGraph:
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.START, "Start", activity_id="start")
    graph.add_activity(ActivityKind.TASK, "A", activity_id="a")
    graph.add_activity(ActivityKind.TASK, "B", activity_id="b")
    graph.add_activity(ActivityKind.END, "End", activity_id="end")
    graph.add_transition("start", "a")
    graph.add_transition("start", "b")
    graph.add_transition("a", "end")
    graph.add_transition("b", "end")
    return graph


def test_layout_centres_rows_by_rank():
    positions = compute_layout(_diamond())

    assert positions == {
        "start": Position(x=100, y=300),
        "a": Position(x=420, y=220),
        "b": Position(x=420, y=380),
        "end": Position(x=740, y=300),
    }


def test_layout_is_deterministic():
    graph = _diamond()

    assert compute_layout(graph) == compute_layout(graph)
    apply_layout(graph)
    first = {k: a.position for k, a in graph.activities.items()}
    apply_layout(graph)
    assert {k: a.position for k, a in graph.activities.items()} == first


def test_rank_is_first_seen_distance():
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.START, "Start", activity_id="start")
    graph.add_activity(ActivityKind.TASK, "A", activity_id="a")
    graph.add_activity(ActivityKind.TASK, "B", activity_id="b")
    graph.add_transition("start", "a")
    graph.add_transition("a", "b")
    graph.add_transition("start", "b")

    assert assign_ranks(graph) == {"start": 0, "a": 1, "b": 1}


def test_without_start_the_first_activity_seeds_the_layout():
    graph = WorkflowGraph()
    graph.add_activity(ActivityKind.TASK, "X", activity_id="x")
    graph.add_activity(ActivityKind.TASK, "Y", activity_id="y")
    graph.add_transition("y", "x")

    assert assign_ranks(graph) == {"x": 0, "y": 0}
    positions = compute_layout(graph, LayoutConfig(base_x=0, base_y=0, gap_x=10, gap_y=10))
    assert positions["x"] == Position(x=0, y=-5)
    assert positions["y"] == Position(x=0, y=5)


def test_cycles_terminate():
    graph = _diamond()
    graph.add_transition("end", "start")

    assert assign_ranks(graph) == {"start": 0, "a": 1, "b": 1, "end": 2}


def test_empty_graph():
    assert compute_layout(WorkflowGraph()) == {}
