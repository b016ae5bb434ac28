"""Assignment of activity instances to users or pools."""

from __future__ import annotations

from .models import (
    AssignmentOutcome,
    Membership,
    OrgDirectory,
    OrgPosition,
    WorkloadSnapshot,
    WorkloadStat,
)
from .resolver import (
    AssignmentResolver,
    StrategyContext,
    least_loaded,
    most_efficient,
    uniform_random,
)

__all__ = [
    "AssignmentOutcome",
    "AssignmentResolver",
    "Membership",
    "OrgDirectory",
    "OrgPosition",
    "StrategyContext",
    "WorkloadSnapshot",
    "WorkloadStat",
    "least_loaded",
    "most_efficient",
    "uniform_random",
]
