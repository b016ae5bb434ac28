"""Async orchestration of the state machine around a repository."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

from ..assignment.models import OrgDirectory, WorkloadSnapshot
from ..assignment.resolver import AssignmentResolver
from ..config import ProcflowConfig
from ..errors import NotFoundError
from ..graph.workflow import WorkflowGraph
from ..persistence.repository import WorkflowRepository
from . import analytics, engine
from .analytics import DepartmentHealth
from .engine import AdvanceResult
from .models import HistoryEntry, ProcessInstance, ProcessStatus

logger = logging.getLogger(__name__)


class _ProcessLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        # callers holding or waiting for the lock
        self.users = 0


class ProcessService:
    """Run lifecycle operations against persisted state.

    Each call loads the graph, history and a fresh workload snapshot, runs
    the pure engine and writes back the new instance state and history
    entries. Calls touching the same process are serialized; different
    processes proceed independently. A process lock only lives while some
    call holds or waits for it.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        resolver: Optional[AssignmentResolver] = None,
        *,
        config: Optional[ProcflowConfig] = None,
        workload_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.repository = repository
        self.resolver = resolver or AssignmentResolver()
        self.config = config or ProcflowConfig()
        self._workload_provider = workload_provider
        self._locks: Dict[str, _ProcessLock] = {}

    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _locked(self, process_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(process_id)
        if entry is None:
            entry = self._locks[process_id] = _ProcessLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[process_id]

    async def _graph(self, workflow_id: str) -> WorkflowGraph:
        graph = await self.repository.load_graph(workflow_id)
        if graph is None:
            raise NotFoundError(f"Workflow {workflow_id} does not exist")
        return graph

    async def _instance(self, process_id: str) -> ProcessInstance:
        instance = await self.repository.get_instance(process_id)
        if instance is None:
            raise NotFoundError(f"Process {process_id} does not exist")
        return instance

    async def _persist(self, result: AdvanceResult, *, created: bool = False) -> None:
        # history entries are only written once the instance state is stored
        if not result.ok or result.instance is None:
            return
        if created:
            await self.repository.create_instance(result.instance)
        else:
            await self.repository.update_instance(result.instance)
        for entry in result.history:
            await self.repository.append_history(entry)
        logger.debug(
            f"Persisted {len(result.history)} history entries of process {result.instance.id}"
        )

    async def capture_workload(self) -> WorkloadSnapshot:
        """One consistent workload snapshot for a single advancement."""
        if self._workload_provider is not None:
            snapshot = self._workload_provider()
            if asyncio.iscoroutine(snapshot):
                snapshot = await snapshot
            return snapshot
        instances = await self.repository.list_instances()
        histories = await self.repository.list_histories()
        return analytics.build_workload_snapshot(
            instances, histories, outlier_hours=self.config.analytics.outlier_hours
        )

    async def department_health(
        self, directory: OrgDirectory, *, now: Optional[datetime] = None
    ) -> Dict[str, DepartmentHealth]:
        """SLA health of active instances across every stored workflow."""
        instances = await self.repository.list_instances(status=ProcessStatus.ACTIVE)
        histories = await self.repository.list_histories([i.id for i in instances])
        by_workflow: Dict[str, List[ProcessInstance]] = defaultdict(list)
        for instance in instances:
            by_workflow[instance.workflow_id].append(instance)

        totals: Dict[str, Dict[str, int]] = {}
        for workflow_id, group in by_workflow.items():
            graph = await self.repository.load_graph(workflow_id)
            health = analytics.department_health(
                group,
                graph.activities if graph is not None else {},
                directory,
                histories,
                now=now,
                near_due_hours=self.config.analytics.near_due_hours,
                default_due_hours=self.config.default_due_hours,
            )
            for department_id, counts in health.items():
                total = totals.setdefault(
                    department_id, {"active": 0, "overdue": 0, "near_due": 0}
                )
                for key, value in counts.model_dump().items():
                    total[key] += value
        return {
            department_id: DepartmentHealth(**counts)
            for department_id, counts in totals.items()
        }

    # ------------------------------------------------------------------
    async def start(
        self,
        workflow_id: str,
        *,
        initiator_id: str,
        name: Optional[str] = None,
        start_activity_id: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> AdvanceResult:
        graph = await self._graph(workflow_id)
        result = engine.start_process(
            graph,
            initiator_id=initiator_id,
            name=name,
            start_activity_id=start_activity_id,
            data=data,
        )
        await self._persist(result, created=True)
        return result

    async def advance(
        self,
        process_id: str,
        submitted: Optional[Mapping[str, Any]] = None,
        *,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> AdvanceResult:
        async with self._locked(process_id):
            instance = await self._instance(process_id)
            graph = await self._graph(instance.workflow_id)
            history = await self.repository.list_history(process_id)
            workload = await self.capture_workload()
            result = engine.advance(
                graph,
                instance,
                submitted,
                actor_id=actor_id,
                history=history,
                resolver=self.resolver,
                workload=workload,
                comment=comment,
            )
            await self._persist(result)
            return result

    async def comment(
        self,
        process_id: str,
        comment: str,
        *,
        actor_id: str,
        data: Optional[Mapping[str, Any]] = None,
    ) -> HistoryEntry:
        async with self._locked(process_id):
            instance = await self._instance(process_id)
            entry = engine.add_comment(instance, comment, actor_id=actor_id, data=data)
            await self.repository.append_history(entry)
            return entry

    async def cancel(
        self, process_id: str, *, actor_id: str, comment: Optional[str] = None
    ) -> AdvanceResult:
        async with self._locked(process_id):
            instance = await self._instance(process_id)
            result = engine.cancel_process(instance, actor_id=actor_id, comment=comment)
            await self._persist(result)
            return result

    async def complete(
        self, process_id: str, *, actor_id: str, comment: Optional[str] = None
    ) -> AdvanceResult:
        async with self._locked(process_id):
            instance = await self._instance(process_id)
            result = engine.complete_process(instance, actor_id=actor_id, comment=comment)
            await self._persist(result)
            return result
