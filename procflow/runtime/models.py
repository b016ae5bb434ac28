"""Runtime records: process instances and their audit history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..assignment.models import AssignmentOutcome
from ..graph.models import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HistoryAction(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    COMMENTED = "commented"


class ProcessInstance(BaseModel):
    """One live execution of a workflow.

    Instances are immutable; the engine returns an updated copy on every
    state change.
    """

    id: str = Field(default_factory=new_id)
    workflow_id: str
    name: str = ""
    current_activity_id: str
    status: ProcessStatus = ProcessStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str
    assigned_user_id: Optional[str] = None
    assigned_department_id: Optional[str] = None
    assigned_position_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == ProcessStatus.ACTIVE

    @property
    def assignment(self) -> AssignmentOutcome:
        return AssignmentOutcome(
            user_id=self.assigned_user_id,
            department_id=self.assigned_department_id,
            position_id=self.assigned_position_id,
        )

    def with_assignment(self, outcome: AssignmentOutcome, **changes: Any) -> ProcessInstance:
        return self.model_copy(
            update={
                "assigned_user_id": outcome.user_id,
                "assigned_department_id": outcome.department_id,
                "assigned_position_id": outcome.position_id,
                **changes,
            }
        )


class HistoryEntry(BaseModel):
    """Append-only audit record of an instance entering or leaving an activity."""

    id: str = Field(default_factory=new_id)
    process_id: str
    activity_id: str
    action: HistoryAction
    comment: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    user_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)
