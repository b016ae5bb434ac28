"""Instance state machine.

Every function here is a pure transform: it receives an immutable graph,
the current instance and its history, and returns the updated instance
together with the *new* history entries. Nothing is persisted and inputs
are never mutated. Fatal outcomes are reported through
:attr:`AdvanceResult.failure` and leave the instance untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..assignment.models import AssignmentOutcome, WorkloadSnapshot
from ..assignment.resolver import AssignmentResolver
from ..conditions import evaluate
from ..diagnostics import Diagnostic, Diagnostics
from ..errors import AdvancementCode, AdvancementFailure
from ..graph.models import Activity, Transition
from ..graph.workflow import WorkflowGraph
from .forms import validate_submission
from .models import (
    HistoryAction,
    HistoryEntry,
    ProcessInstance,
    ProcessStatus,
    utcnow,
)
from .naming import resolve_instance_name

logger = logging.getLogger(__name__)


class AdvanceResult(BaseModel):
    """Outcome of a lifecycle operation.

    ``history`` only holds the entries created by this call. On failure
    ``instance`` is the unchanged input (``None`` when starting failed) and
    ``history`` is empty.
    """

    instance: Optional[ProcessInstance] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    transition_id: Optional[str] = None
    assignment: Optional[AssignmentOutcome] = None
    failure: Optional[AdvancementFailure] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> AdvanceResult:
        if self.failure is not None:
            self.failure.raise_for_failure()
        return self


def _fail(
    code: AdvancementCode,
    message: str,
    instance: Optional[ProcessInstance] = None,
    *,
    activity_id: Optional[str] = None,
    diagnostics: Optional[Diagnostics] = None,
    errors: Optional[Dict[str, str]] = None,
) -> AdvanceResult:
    logger.warning(
        f"Process {instance.id if instance else '-'}: {code.value}: {message}"
    )
    return AdvanceResult(
        instance=instance,
        diagnostics=diagnostics.to_list() if diagnostics else [],
        failure=AdvancementFailure(
            code=code,
            message=message,
            process_id=instance.id if instance else None,
            activity_id=activity_id,
            errors=errors or {},
        ),
    )


def collect_variables(history: Iterable[HistoryEntry]) -> Dict[str, Any]:
    """Flatten the data submitted so far into one variable mapping.

    Entries are applied in timestamp order so later submissions win.
    """
    variables: Dict[str, Any] = {}
    for entry in sorted(history, key=lambda e: e.created_at):
        variables.update(entry.data)
    return variables


def select_transition(
    graph: WorkflowGraph,
    activity_id: str,
    variables: Mapping[str, Any],
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[Transition]:
    """First outgoing transition, in definition order, whose condition holds."""
    for transition in graph.outgoing(activity_id):
        if evaluate(transition.condition, variables, diagnostics, subject_id=transition.id):
            return transition
    return None


def start_process(
    graph: WorkflowGraph,
    *,
    initiator_id: str,
    name: Optional[str] = None,
    start_activity_id: Optional[str] = None,
    data: Optional[Mapping[str, Any]] = None,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AdvanceResult:
    """Instantiate ``graph`` at its start activity.

    The start activity is owned by the initiator. When the graph has more
    than one start activity, ``start_activity_id`` must pick one.
    """
    starts = graph.starts()
    if start_activity_id is not None:
        start = next((a for a in starts if a.id == start_activity_id), None)
        if start is None:
            return _fail(
                AdvancementCode.UNKNOWN_ACTIVITY,
                f"{start_activity_id} is not a start activity of workflow {graph.id}",
                activity_id=start_activity_id,
            )
    elif not starts:
        return _fail(
            AdvancementCode.NO_START_ACTIVITY,
            f"Workflow {graph.id} has no start activity",
        )
    elif len(starts) > 1:
        return _fail(
            AdvancementCode.AMBIGUOUS_START,
            f"Workflow {graph.id} has {len(starts)} start activities; choose one",
        )
    else:
        start = starts[0]

    now = now or utcnow()
    data = dict(data or {})
    instance = ProcessInstance(
        workflow_id=graph.id,
        name=name or resolve_instance_name(graph.name_template, data) or graph.name,
        current_activity_id=start.id,
        created_at=now,
        created_by=initiator_id,
        assigned_user_id=initiator_id,
    )
    entry = HistoryEntry(
        process_id=instance.id,
        activity_id=start.id,
        action=HistoryAction.STARTED,
        comment=comment or "Process started",
        data=data,
        created_at=now,
        user_id=initiator_id,
    )
    logger.info(f"Started process {instance.id} of workflow {graph.id} at {start.name!r}")
    return AdvanceResult(
        instance=instance, history=[entry], assignment=instance.assignment
    )


def advance(
    graph: WorkflowGraph,
    instance: ProcessInstance,
    submitted: Optional[Mapping[str, Any]] = None,
    *,
    actor_id: str,
    history: Iterable[HistoryEntry] = (),
    resolver: Optional[AssignmentResolver] = None,
    workload: Optional[WorkloadSnapshot] = None,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
    validate_form: bool = True,
) -> AdvanceResult:
    """Complete the current activity and move along the first viable transition.

    ``submitted`` holds the form values of the current activity; together
    with the data found in ``history`` they are the variables the outgoing
    conditions are evaluated against.
    """
    if not instance.is_active:
        return _fail(
            AdvancementCode.NOT_ACTIVE,
            f"Process {instance.id} is {instance.status.value}",
            instance,
            activity_id=instance.current_activity_id,
        )

    current = graph.activities.get(instance.current_activity_id)
    if current is None:
        return _fail(
            AdvancementCode.UNKNOWN_ACTIVITY,
            f"Activity {instance.current_activity_id} is not part of workflow {graph.id}",
            instance,
            activity_id=instance.current_activity_id,
        )

    diagnostics = Diagnostics()
    submitted = dict(submitted or {})
    variables = collect_variables(history)
    variables.update(submitted)

    if validate_form:
        errors = validate_submission(current, submitted, variables, diagnostics)
        if errors:
            return _fail(
                AdvancementCode.INVALID_SUBMISSION,
                f"Form of {current.name!r} is invalid: {', '.join(sorted(errors))}",
                instance,
                activity_id=current.id,
                diagnostics=diagnostics,
                errors=errors,
            )

    transition = select_transition(graph, current.id, variables, diagnostics)
    if transition is None:
        return _fail(
            AdvancementCode.NO_VIABLE_TRANSITION,
            f"No transition out of {current.name!r} holds",
            instance,
            activity_id=current.id,
            diagnostics=diagnostics,
        )

    target = graph.activities[transition.target_id]
    resolver = resolver or AssignmentResolver()
    outcome = resolver.resolve(
        target.assignment,
        initiator_id=instance.created_by,
        workload=workload,
        workflow_id=instance.workflow_id,
        diagnostics=diagnostics,
        subject_id=target.id,
    )

    now = now or utcnow()
    new_entries = [
        HistoryEntry(
            process_id=instance.id,
            activity_id=current.id,
            action=HistoryAction.COMPLETED,
            comment=comment,
            data=submitted,
            created_at=now,
            user_id=actor_id,
        ),
        HistoryEntry(
            process_id=instance.id,
            activity_id=target.id,
            action=HistoryAction.STARTED,
            created_at=now,
            user_id=actor_id,
        ),
    ]

    changes: Dict[str, Any] = {
        "current_activity_id": target.id,
        "status": ProcessStatus.COMPLETED if target.is_end else ProcessStatus.ACTIVE,
    }
    name = _resolved_name(graph, current, variables)
    if name is not None:
        changes["name"] = name

    updated = instance.with_assignment(outcome, **changes)
    logger.info(
        f"Process {instance.id} moved {current.name!r} -> {target.name!r}"
        f" ({updated.status.value})"
    )
    return AdvanceResult(
        instance=updated,
        history=new_entries,
        diagnostics=diagnostics.to_list(),
        transition_id=transition.id,
        assignment=outcome,
    )


def _resolved_name(
    graph: WorkflowGraph, completed: Activity, variables: Mapping[str, Any]
) -> Optional[str]:
    # the name is only derived from the start form
    if not completed.is_start:
        return None
    return resolve_instance_name(graph.name_template, variables)


def add_comment(
    instance: ProcessInstance,
    comment: str,
    *,
    actor_id: str,
    data: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> HistoryEntry:
    return HistoryEntry(
        process_id=instance.id,
        activity_id=instance.current_activity_id,
        action=HistoryAction.COMMENTED,
        comment=comment,
        data=dict(data or {}),
        created_at=now or utcnow(),
        user_id=actor_id,
    )


def cancel_process(
    instance: ProcessInstance,
    *,
    actor_id: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AdvanceResult:
    """Stop an active instance; the cancellation is recorded as a comment."""
    if not instance.is_active:
        return _fail(
            AdvancementCode.NOT_ACTIVE,
            f"Process {instance.id} is {instance.status.value}",
            instance,
            activity_id=instance.current_activity_id,
        )
    entry = add_comment(
        instance, comment or "Process cancelled", actor_id=actor_id, now=now
    )
    logger.info(f"Process {instance.id} cancelled by {actor_id}")
    return AdvanceResult(
        instance=instance.model_copy(update={"status": ProcessStatus.CANCELLED}),
        history=[entry],
    )


def complete_process(
    instance: ProcessInstance,
    *,
    actor_id: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AdvanceResult:
    """Finish an active instance manually, wherever it currently stands."""
    if not instance.is_active:
        return _fail(
            AdvancementCode.NOT_ACTIVE,
            f"Process {instance.id} is {instance.status.value}",
            instance,
            activity_id=instance.current_activity_id,
        )
    entry = HistoryEntry(
        process_id=instance.id,
        activity_id=instance.current_activity_id,
        action=HistoryAction.COMPLETED,
        comment=comment or "Process completed manually",
        created_at=now or utcnow(),
        user_id=actor_id,
    )
    logger.info(f"Process {instance.id} completed manually by {actor_id}")
    return AdvanceResult(
        instance=instance.model_copy(update={"status": ProcessStatus.COMPLETED}),
        history=[entry],
    )
