"""Duration, workload and SLA figures derived from process history.

History is the only source of truth. The gap between two consecutive
entries of one process (ordered by timestamp) is the time spent in the
earlier entry's activity; it is credited to the user who recorded the later
entry, i.e. the one who finished the work.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..assignment.models import OrgDirectory, WorkloadSnapshot, WorkloadStat
from ..constants import DEFAULT_DUE_DATE_HOURS, NEAR_DUE_HOURS, OUTLIER_HOURS
from ..diagnostics import DiagnosticKind, Diagnostics
from ..graph.models import Activity
from .models import HistoryAction, HistoryEntry, ProcessInstance, ProcessStatus, utcnow

logger = logging.getLogger(__name__)


class ActivitySpan(BaseModel):
    """Time spent in one activity by one process."""

    process_id: str
    activity_id: str
    user_id: Optional[str] = None
    started_at: datetime
    ended_at: datetime
    hours: float

    model_config = ConfigDict(frozen=True)


class DepartmentHealth(BaseModel):
    active: int = 0
    overdue: int = 0
    near_due: int = 0

    model_config = ConfigDict(frozen=True)


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def activity_spans(
    history: Iterable[HistoryEntry],
    *,
    outlier_hours: float = OUTLIER_HOURS,
    diagnostics: Optional[Diagnostics] = None,
) -> List[ActivitySpan]:
    """Spans between consecutive history entries of each process.

    ``history`` may mix several processes. Gaps longer than
    ``outlier_hours`` are data-quality outliers: they are skipped and
    reported as ``outlier_duration`` diagnostics.
    """
    by_process: Dict[str, List[HistoryEntry]] = defaultdict(list)
    for entry in history:
        by_process[entry.process_id].append(entry)

    spans: List[ActivitySpan] = []
    for process_id, entries in by_process.items():
        entries.sort(key=lambda e: e.created_at)
        for earlier, later in zip(entries, entries[1:]):
            hours = _hours(earlier.created_at, later.created_at)
            if hours > outlier_hours:
                if diagnostics is not None:
                    diagnostics.warn(
                        DiagnosticKind.OUTLIER_DURATION,
                        f"Ignoring {hours:.0f}h gap in process {process_id}",
                        subject_id=earlier.id,
                        hours=hours,
                    )
                continue
            spans.append(
                ActivitySpan(
                    process_id=process_id,
                    activity_id=earlier.activity_id,
                    user_id=later.user_id,
                    started_at=earlier.created_at,
                    ended_at=later.created_at,
                    hours=hours,
                )
            )
    return spans


def average_hours_by_user(spans: Iterable[ActivitySpan]) -> Dict[str, float]:
    grouped: Dict[str, List[float]] = defaultdict(list)
    for span in spans:
        if span.user_id:
            grouped[span.user_id].append(span.hours)
    return {user_id: _mean(hours) for user_id, hours in grouped.items()}


def average_hours_by_activity(spans: Iterable[ActivitySpan]) -> Dict[str, float]:
    grouped: Dict[str, List[float]] = defaultdict(list)
    for span in spans:
        grouped[span.activity_id].append(span.hours)
    return {activity_id: _mean(hours) for activity_id, hours in grouped.items()}


def average_hours_by_user_and_workflow(
    spans: Iterable[ActivitySpan], workflow_of: Mapping[str, str]
) -> Dict[str, Dict[str, float]]:
    """Per-user averages split by workflow.

    ``workflow_of`` maps process ids to workflow ids; spans of unknown
    processes are ignored.
    """
    grouped: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))
    for span in spans:
        workflow_id = workflow_of.get(span.process_id)
        if span.user_id and workflow_id:
            grouped[span.user_id][workflow_id].append(span.hours)
    return {
        user_id: {wf: _mean(hours) for wf, hours in by_workflow.items()}
        for user_id, by_workflow in grouped.items()
    }


def average_resolution_by_workflow(
    instances: Iterable[ProcessInstance],
    histories: Mapping[str, Sequence[HistoryEntry]],
    *,
    outlier_hours: float = OUTLIER_HOURS,
) -> Dict[str, float]:
    """End-to-end hours of completed instances, averaged per workflow.

    An instance ends at its last ``completed`` history entry.
    """
    grouped: Dict[str, List[float]] = defaultdict(list)
    for instance in instances:
        if instance.status != ProcessStatus.COMPLETED:
            continue
        finished = [
            e.created_at
            for e in histories.get(instance.id, ())
            if e.action == HistoryAction.COMPLETED
        ]
        if not finished:
            continue
        hours = max(0.0, _hours(instance.created_at, max(finished)))
        if hours <= outlier_hours:
            grouped[instance.workflow_id].append(hours)
    return {workflow_id: _mean(hours) for workflow_id, hours in grouped.items()}


def build_workload_snapshot(
    instances: Iterable[ProcessInstance],
    histories: Optional[Mapping[str, Sequence[HistoryEntry]]] = None,
    *,
    outlier_hours: float = OUTLIER_HOURS,
    now: Optional[datetime] = None,
) -> WorkloadSnapshot:
    """Capture active counts and resolution averages in one snapshot.

    Active counts come from the assignment of active instances; averages
    from the spans in ``histories`` (keyed by process id).
    """
    instances = list(instances)
    active_users: Dict[str, int] = defaultdict(int)
    active_positions: Dict[str, int] = defaultdict(int)
    active_departments: Dict[str, int] = defaultdict(int)
    for instance in instances:
        if not instance.is_active:
            continue
        if instance.assigned_user_id:
            active_users[instance.assigned_user_id] += 1
        if instance.assigned_position_id:
            active_positions[instance.assigned_position_id] += 1
        if instance.assigned_department_id:
            active_departments[instance.assigned_department_id] += 1

    spans = activity_spans(
        (e for entries in (histories or {}).values() for e in entries),
        outlier_hours=outlier_hours,
    )
    by_user = average_hours_by_user(spans)
    by_user_workflow = average_hours_by_user_and_workflow(
        spans, {i.id: i.workflow_id for i in instances}
    )

    users = {
        user_id: WorkloadStat(
            active_count=active_users.get(user_id, 0),
            avg_resolution_hours=by_user.get(user_id),
            avg_hours_by_workflow=by_user_workflow.get(user_id, {}),
        )
        for user_id in dict.fromkeys([*active_users, *by_user])
    }
    logger.debug(
        f"Captured workload of {len(users)} users from {len(instances)} instances"
    )
    return WorkloadSnapshot(
        users=users,
        positions={k: WorkloadStat(active_count=v) for k, v in active_positions.items()},
        departments={
            k: WorkloadStat(active_count=v) for k, v in active_departments.items()
        },
        captured_at=now or utcnow(),
    )


def _departments_of(instance: ProcessInstance, directory: OrgDirectory) -> List[str]:
    if instance.assigned_department_id:
        return [instance.assigned_department_id]
    if instance.assigned_position_id:
        department_id = directory.department_of_position(instance.assigned_position_id)
        return [department_id] if department_id else []
    if instance.assigned_user_id:
        return directory.departments_of_user(instance.assigned_user_id)
    return []


def _entered_at(instance: ProcessInstance, history: Sequence[HistoryEntry]) -> datetime:
    entered = [
        e.created_at
        for e in history
        if e.action == HistoryAction.STARTED and e.activity_id == instance.current_activity_id
    ]
    return max(entered) if entered else instance.created_at


def department_health(
    instances: Iterable[ProcessInstance],
    activities: Mapping[str, Activity],
    directory: OrgDirectory,
    histories: Optional[Mapping[str, Sequence[HistoryEntry]]] = None,
    *,
    now: Optional[datetime] = None,
    near_due_hours: float = NEAR_DUE_HOURS,
    default_due_hours: float = DEFAULT_DUE_DATE_HOURS,
) -> Dict[str, DepartmentHealth]:
    """Active, overdue and near-due counts per department.

    An instance counts for its assigned department, else the department of
    its assigned position, else every department its assigned user belongs
    to. The SLA clock of the current activity starts when the instance
    entered it (its latest ``started`` entry) and falls back to the
    instance creation time. Activities missing from ``activities`` (e.g.
    removed from the graph since) use ``default_due_hours``.
    """
    now = now or utcnow()
    histories = histories or {}
    counters: Dict[str, Dict[str, int]] = {}

    for instance in instances:
        if not instance.is_active:
            continue
        activity = activities.get(instance.current_activity_id)
        due_hours = activity.due_date_hours if activity else default_due_hours
        elapsed = _hours(_entered_at(instance, histories.get(instance.id, ())), now)

        for department_id in _departments_of(instance, directory):
            counts = counters.setdefault(
                department_id, {"active": 0, "overdue": 0, "near_due": 0}
            )
            counts["active"] += 1
            if elapsed > due_hours:
                counts["overdue"] += 1
            elif due_hours - elapsed <= near_due_hours:
                counts["near_due"] += 1

    return {
        department_id: DepartmentHealth(**counts)
        for department_id, counts in counters.items()
    }
