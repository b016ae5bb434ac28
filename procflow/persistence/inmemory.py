"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..errors import NotFoundError, ProcflowError
from ..graph.workflow import WorkflowGraph
from ..runtime.models import HistoryEntry, ProcessInstance, ProcessStatus
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows and process state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Graphs are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._graphs: Dict[str, WorkflowGraph] = {}
        self._instances: Dict[str, ProcessInstance] = {}
        self._history: Dict[str, List[HistoryEntry]] = {}
        self._entry_ids: set[str] = set()

    # ------------------------------------------------------------------
    async def save_graph(self, graph: WorkflowGraph) -> None:
        # replacing the whole copy drops orphans along the way
        self._graphs[graph.id] = graph.model_copy(deep=True)

    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        graph = self._graphs.get(workflow_id)
        return graph.model_copy(deep=True) if graph else None

    async def list_graphs(self) -> list[WorkflowGraph]:
        return [g.model_copy(deep=True) for g in self._graphs.values()]

    # ------------------------------------------------------------------
    async def create_instance(self, instance: ProcessInstance) -> None:
        if instance.id in self._instances:
            raise ProcflowError(f"Process {instance.id} already exists")
        self._instances[instance.id] = instance
        self._history.setdefault(instance.id, [])

    async def update_instance(self, instance: ProcessInstance) -> None:
        if instance.id not in self._instances:
            raise NotFoundError(f"Process {instance.id} does not exist")
        self._instances[instance.id] = instance

    async def get_instance(self, process_id: str) -> ProcessInstance | None:
        return self._instances.get(process_id)

    async def list_instances(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ProcessStatus] = None,
    ) -> list[ProcessInstance]:
        return [
            i
            for i in self._instances.values()
            if (workflow_id is None or i.workflow_id == workflow_id)
            and (status is None or i.status == status)
        ]

    # ------------------------------------------------------------------
    async def append_history(self, entry: HistoryEntry) -> None:
        if entry.id in self._entry_ids:
            raise ProcflowError(f"History entry {entry.id} already exists")
        self._entry_ids.add(entry.id)
        self._history.setdefault(entry.process_id, []).append(entry)

    async def list_history(self, process_id: str) -> list[HistoryEntry]:
        return list(self._history.get(process_id, []))

    async def list_histories(
        self, process_ids: Optional[Sequence[str]] = None
    ) -> dict[str, list[HistoryEntry]]:
        ids = self._history.keys() if process_ids is None else process_ids
        return {pid: list(self._history[pid]) for pid in ids if self._history.get(pid)}
