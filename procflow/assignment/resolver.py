"""Pick the owner of a new activity instance."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..diagnostics import DiagnosticKind, Diagnostics
from ..graph.models import (
    AssignmentConfig,
    AssignmentStrategy,
    CreatorAssignment,
    DepartmentAssignment,
    ManualAssignment,
    PositionAssignment,
    SpecificUserAssignment,
)
from .models import AssignmentOutcome, OrgDirectory, WorkloadSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyContext:
    workload: WorkloadSnapshot
    workflow_id: Optional[str]
    rng: random.Random


# A strategy picks one user from a non-empty, ordered candidate list.
Strategy = Callable[[List[str], StrategyContext], str]


def least_loaded(candidates: List[str], ctx: StrategyContext) -> str:
    """Fewest active instances; the first candidate wins ties."""
    return min(candidates, key=ctx.workload.active_count)


def most_efficient(candidates: List[str], ctx: StrategyContext) -> str:
    """Lowest average resolution time.

    Users without history rank ahead of everybody so new hires receive
    work. Among equals (including several users without history) the first
    candidate wins.
    """

    def rank(user_id: str) -> tuple[int, float]:
        hours = ctx.workload.average_hours(user_id, ctx.workflow_id)
        return (0, 0.0) if hours is None else (1, hours)

    return min(candidates, key=rank)


def uniform_random(candidates: List[str], ctx: StrategyContext) -> str:
    return ctx.rng.choice(candidates)


DEFAULT_STRATEGIES: Dict[AssignmentStrategy, Strategy] = {
    AssignmentStrategy.WORKLOAD: least_loaded,
    AssignmentStrategy.EFFICIENCY: most_efficient,
    AssignmentStrategy.RANDOM: uniform_random,
}


class AssignmentResolver:
    """Resolve an activity's assignment configuration to an owner.

    Strategies are pluggable through :meth:`register_strategy`. The
    ``manual`` strategy is not a picker: it leaves the instance in the
    department or position pool.
    """

    def __init__(
        self,
        directory: Optional[OrgDirectory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.directory = directory or OrgDirectory()
        self._rng = rng or random.Random()
        self._strategies: Dict[AssignmentStrategy, Strategy] = dict(DEFAULT_STRATEGIES)

    def register_strategy(self, name: AssignmentStrategy, strategy: Strategy) -> None:
        if name == AssignmentStrategy.MANUAL:
            raise ValueError("the manual strategy always assigns to the pool")
        self._strategies[name] = strategy

    def resolve(
        self,
        config: AssignmentConfig,
        *,
        initiator_id: str,
        workload: Optional[WorkloadSnapshot] = None,
        workflow_id: Optional[str] = None,
        diagnostics: Optional[Diagnostics] = None,
        subject_id: Optional[str] = None,
    ) -> AssignmentOutcome:
        diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        if isinstance(config, CreatorAssignment):
            return AssignmentOutcome(user_id=initiator_id)

        if isinstance(config, SpecificUserAssignment):
            return AssignmentOutcome(user_id=config.user_id)

        if isinstance(config, ManualAssignment):
            return AssignmentOutcome(
                department_id=config.department_id, position_id=config.position_id
            )

        if isinstance(config, PositionAssignment):
            pool = AssignmentOutcome(
                department_id=config.department_id
                or self.directory.department_of_position(config.position_id),
                position_id=config.position_id,
            )
            candidates = self.directory.users_in_position(config.position_id)
            target = f"position {config.position_id}"
        elif isinstance(config, DepartmentAssignment):
            pool = AssignmentOutcome(department_id=config.department_id)
            candidates = self.directory.users_in_department(config.department_id)
            target = f"department {config.department_id}"
        else:  # pragma: no cover - exhaustive over AssignmentConfig
            raise TypeError(f"Unsupported assignment configuration: {config!r}")

        if config.strategy == AssignmentStrategy.MANUAL:
            return pool

        if not candidates:
            diagnostics.warn(
                DiagnosticKind.NO_ELIGIBLE_ASSIGNEE,
                f"No eligible users in {target}; assigning to the pool",
                subject_id=subject_id,
                strategy=config.strategy.value,
            )
            return pool

        strategy = self._strategies[config.strategy]
        ctx = StrategyContext(
            workload=workload or WorkloadSnapshot(),
            workflow_id=workflow_id,
            rng=self._rng,
        )
        user_id = strategy(candidates, ctx)
        logger.debug(
            f"Strategy {config.strategy.value} picked {user_id} among {len(candidates)} users of {target}"
        )
        return pool.model_copy(update={"user_id": user_id})
