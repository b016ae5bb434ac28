"""Process instances: state machine, forms, naming and analytics."""

from __future__ import annotations

from .analytics import (
    ActivitySpan,
    DepartmentHealth,
    activity_spans,
    average_hours_by_activity,
    average_hours_by_user,
    average_hours_by_user_and_workflow,
    average_resolution_by_workflow,
    build_workload_snapshot,
    department_health,
)
from .engine import (
    AdvanceResult,
    add_comment,
    advance,
    cancel_process,
    collect_variables,
    complete_process,
    select_transition,
    start_process,
)
from .forms import (
    data_by_activity,
    is_field_visible,
    prefill_values,
    validate_submission,
    visible_fields,
)
from .models import HistoryAction, HistoryEntry, ProcessInstance, ProcessStatus
from .naming import resolve_instance_name, substitute_variables
from .service import ProcessService

__all__ = [
    "ActivitySpan",
    "AdvanceResult",
    "DepartmentHealth",
    "HistoryAction",
    "HistoryEntry",
    "ProcessInstance",
    "ProcessService",
    "ProcessStatus",
    "activity_spans",
    "add_comment",
    "advance",
    "average_hours_by_activity",
    "average_hours_by_user",
    "average_hours_by_user_and_workflow",
    "average_resolution_by_workflow",
    "build_workload_snapshot",
    "cancel_process",
    "collect_variables",
    "complete_process",
    "data_by_activity",
    "department_health",
    "is_field_visible",
    "prefill_values",
    "resolve_instance_name",
    "select_transition",
    "start_process",
    "substitute_variables",
    "validate_submission",
    "visible_fields",
]
