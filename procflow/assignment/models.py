"""Inputs and outputs of assignment resolution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrgPosition(BaseModel):
    id: str
    title: str = ""
    department_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Membership(BaseModel):
    """A user holding a position."""

    user_id: str
    position_id: str
    is_primary: bool = True

    model_config = ConfigDict(frozen=True)


class OrgDirectory(BaseModel):
    """Organization chart slice needed to find eligible assignees.

    Membership order is significant: it is the tie-break order of the
    load-aware strategies.
    """

    positions: Dict[str, OrgPosition] = Field(default_factory=dict)
    memberships: List[Membership] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def users_in_position(self, position_id: str) -> list[str]:
        return _unique(m.user_id for m in self.memberships if m.position_id == position_id)

    def users_in_department(self, department_id: str) -> list[str]:
        position_ids = {
            p.id for p in self.positions.values() if p.department_id == department_id
        }
        return _unique(
            m.user_id for m in self.memberships if m.position_id in position_ids
        )

    def department_of_position(self, position_id: str) -> Optional[str]:
        position = self.positions.get(position_id)
        return position.department_id if position else None

    def departments_of_user(self, user_id: str) -> list[str]:
        return _unique(
            self.department_of_position(m.position_id)
            for m in self.memberships
            if m.user_id == user_id
        )


def _unique(values) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


class WorkloadStat(BaseModel):
    """Load figures for one user, position or department."""

    active_count: int = Field(default=0, ge=0)
    avg_resolution_hours: Optional[float] = Field(default=None, ge=0)
    avg_hours_by_workflow: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class WorkloadSnapshot(BaseModel):
    """Point-in-time workload figures captured by the caller.

    The snapshot is immutable so one advancement always sees a consistent
    view, even if it is stale.
    """

    users: Dict[str, WorkloadStat] = Field(default_factory=dict)
    positions: Dict[str, WorkloadStat] = Field(default_factory=dict)
    departments: Dict[str, WorkloadStat] = Field(default_factory=dict)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def active_count(self, user_id: str) -> int:
        stat = self.users.get(user_id)
        return stat.active_count if stat else 0

    def average_hours(
        self, user_id: str, workflow_id: Optional[str] = None
    ) -> Optional[float]:
        """Historical resolution time of ``user_id``.

        The per-workflow figure wins when present. ``None`` means the user
        has no history.
        """
        stat = self.users.get(user_id)
        if stat is None:
            return None
        if workflow_id is not None and workflow_id in stat.avg_hours_by_workflow:
            return stat.avg_hours_by_workflow[workflow_id]
        return stat.avg_resolution_hours


class AssignmentOutcome(BaseModel):
    """Who owns an activity instance.

    Either ``user_id`` is set, or the instance sits in the pool of
    ``department_id``/``position_id`` (or the global pool when both are
    empty).
    """

    user_id: Optional[str] = None
    department_id: Optional[str] = None
    position_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_pool(self) -> bool:
        return self.user_id is None
