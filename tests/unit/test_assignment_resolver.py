import random

import pytest

from procflow.assignment import (
    AssignmentResolver,
    OrgDirectory,
    WorkloadSnapshot,
    WorkloadStat,
)
from procflow.diagnostics import DiagnosticKind, Diagnostics
from procflow.graph import (
    AssignmentStrategy,
    CreatorAssignment,
    DepartmentAssignment,
    ManualAssignment,
    PositionAssignment,
    SpecificUserAssignment,
)


def _position(strategy: AssignmentStrategy) -> PositionAssignment:
    return PositionAssignment(position_id="pos-mgr", strategy=strategy)


def test_creator_and_specific_user(directory):
    resolver = AssignmentResolver(directory)

    assert resolver.resolve(CreatorAssignment(), initiator_id="alice").user_id == "alice"
    outcome = resolver.resolve(SpecificUserAssignment(user_id="bob"), initiator_id="alice")
    assert outcome.user_id == "bob"


def test_manual_assignment_is_a_pool(directory):
    outcome = AssignmentResolver(directory).resolve(
        ManualAssignment(department_id="dep-fin"), initiator_id="alice"
    )

    assert outcome.is_pool
    assert outcome.department_id == "dep-fin"


def test_workload_picks_least_loaded(directory):
    workload = WorkloadSnapshot(
        users={"u1": WorkloadStat(active_count=2), "u2": WorkloadStat(active_count=0)}
    )

    outcome = AssignmentResolver(directory).resolve(
        _position(AssignmentStrategy.WORKLOAD), initiator_id="alice", workload=workload
    )

    assert outcome.user_id == "u2"
    assert outcome.position_id == "pos-mgr"
    assert outcome.department_id == "dep-fin"


def test_workload_ties_go_to_first_member(directory):
    outcome = AssignmentResolver(directory).resolve(
        _position(AssignmentStrategy.WORKLOAD),
        initiator_id="alice",
        workload=WorkloadSnapshot(),
    )

    assert outcome.user_id == "u1"


@pytest.mark.parametrize(
    "users, expected",
    [
        ({"u1": WorkloadStat(avg_resolution_hours=5)}, "u2"),
        ({"u1": WorkloadStat(avg_resolution_hours=5), "u2": WorkloadStat(avg_resolution_hours=3)}, "u2"),
        ({"u1": WorkloadStat(avg_resolution_hours=3), "u2": WorkloadStat(avg_resolution_hours=5)}, "u1"),
        ({}, "u1"),
    ],
)
def test_efficiency_prefers_fastest_and_users_without_history(directory, users, expected):
    outcome = AssignmentResolver(directory).resolve(
        _position(AssignmentStrategy.EFFICIENCY),
        initiator_id="alice",
        workload=WorkloadSnapshot(users=users),
    )

    assert outcome.user_id == expected


def test_efficiency_uses_per_workflow_average(directory):
    workload = WorkloadSnapshot(
        users={
            "u1": WorkloadStat(avg_resolution_hours=1, avg_hours_by_workflow={"wf": 9}),
            "u2": WorkloadStat(avg_resolution_hours=4),
        }
    )
    resolver = AssignmentResolver(directory)
    config = _position(AssignmentStrategy.EFFICIENCY)

    assert resolver.resolve(config, initiator_id="a", workload=workload).user_id == "u1"
    outcome = resolver.resolve(config, initiator_id="a", workload=workload, workflow_id="wf")
    assert outcome.user_id == "u2"


def test_random_picks_members_without_memoizing(directory):
    resolver = AssignmentResolver(directory, rng=random.Random(1234))
    config = _position(AssignmentStrategy.RANDOM)

    picks = {resolver.resolve(config, initiator_id="alice").user_id for _ in range(50)}

    assert picks == {"u1", "u2"}


def test_department_members_are_candidates(directory):
    workload = WorkloadSnapshot(users={"u1": WorkloadStat(active_count=1)})
    config = DepartmentAssignment(
        department_id="dep-fin", strategy=AssignmentStrategy.WORKLOAD
    )

    outcome = AssignmentResolver(directory).resolve(
        config, initiator_id="alice", workload=workload
    )

    assert outcome.user_id == "u2"
    assert outcome.department_id == "dep-fin"
    assert outcome.position_id is None


def test_manual_strategy_keeps_group_pool(directory):
    diagnostics = Diagnostics()
    outcome = AssignmentResolver(directory).resolve(
        DepartmentAssignment(department_id="dep-fin"),
        initiator_id="alice",
        diagnostics=diagnostics,
    )

    assert outcome.is_pool
    assert outcome.department_id == "dep-fin"
    assert not diagnostics


def test_no_eligible_user_falls_back_to_pool():
    diagnostics = Diagnostics()
    outcome = AssignmentResolver(OrgDirectory()).resolve(
        DepartmentAssignment(department_id="dep-empty", strategy=AssignmentStrategy.RANDOM),
        initiator_id="alice",
        diagnostics=diagnostics,
        subject_id="act-1",
    )

    assert outcome.is_pool
    assert outcome.department_id == "dep-empty"
    [diagnostic] = diagnostics.of_kind(DiagnosticKind.NO_ELIGIBLE_ASSIGNEE)
    assert diagnostic.subject_id == "act-1"


def test_custom_strategies(directory):
    resolver = AssignmentResolver(directory)
    resolver.register_strategy(AssignmentStrategy.RANDOM, lambda users, ctx: users[-1])

    outcome = resolver.resolve(_position(AssignmentStrategy.RANDOM), initiator_id="alice")

    assert outcome.user_id == "u2"
    with pytest.raises(ValueError):
        resolver.register_strategy(AssignmentStrategy.MANUAL, lambda users, ctx: users[0])
