"""Designer-time validation of workflow graphs.

Validation never rejects a graph: half-built models are normal while a
designer edits them. Problems are reported as diagnostics and the report
states whether the graph can be executed at all.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..conditions import check_syntax
from ..diagnostics import Diagnostic, DiagnosticKind, Diagnostics
from .workflow import WorkflowGraph


class ValidationReport(BaseModel):
    """Outcome of :func:`validate_graph`."""

    executable: bool
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]


def validate_graph(graph: WorkflowGraph) -> ValidationReport:
    diagnostics = Diagnostics()

    starts = graph.starts()
    if not starts:
        diagnostics.warn(
            DiagnosticKind.NO_START_ACTIVITY,
            f"Workflow {graph.id} has no start activity",
            subject_id=graph.id,
        )

    reachable = graph.reachable_from(a.id for a in starts)
    for activity in graph.activities.values():
        if starts and activity.id not in reachable:
            diagnostics.warn(
                DiagnosticKind.UNREACHABLE_ACTIVITY,
                f"Activity {activity.name!r} is not reachable from a start activity",
                subject_id=activity.id,
            )
        if not activity.is_end and not graph.outgoing(activity.id):
            diagnostics.warn(
                DiagnosticKind.DEAD_END_ACTIVITY,
                f"Activity {activity.name!r} has no outgoing transition",
                subject_id=activity.id,
            )
        _check_fields(graph, activity.id, diagnostics)

    for transition in graph.transitions.values():
        error = check_syntax(transition.condition)
        if error:
            diagnostics.warn(
                DiagnosticKind.BROKEN_CONDITION,
                f"Transition condition {transition.condition!r} is invalid: {error}",
                subject_id=transition.id,
            )

    return ValidationReport(executable=bool(starts), diagnostics=diagnostics.to_list())


def _check_fields(graph: WorkflowGraph, activity_id: str, diagnostics: Diagnostics) -> None:
    activity = graph.activities[activity_id]
    previous = None
    for field in activity.fields:
        error = check_syntax(field.visibility_condition)
        if error:
            diagnostics.warn(
                DiagnosticKind.BROKEN_CONDITION,
                f"Visibility condition of field {field.name!r} is invalid: {error}",
                subject_id=field.id,
            )
        if field.source_activity_id is None:
            continue
        if previous is None:
            previous = {a.id for a in graph.previous_activities(activity_id)}
        source = graph.activities.get(field.source_activity_id)
        if source is None or source.id not in previous:
            diagnostics.warn(
                DiagnosticKind.INVALID_FIELD_SOURCE,
                f"Field {field.name!r} is prefilled from an activity that does not "
                f"precede {activity.name!r}",
                subject_id=field.id,
                source_activity_id=field.source_activity_id,
            )
        elif source.field_by_name(field.source_field_name or "") is None:
            diagnostics.warn(
                DiagnosticKind.INVALID_FIELD_SOURCE,
                f"Field {field.name!r} is prefilled from unknown field "
                f"{field.source_field_name!r} of {source.name!r}",
                subject_id=field.id,
                source_activity_id=field.source_activity_id,
            )
