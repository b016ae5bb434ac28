"""Repository abstraction for workflow definitions and process state."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..graph.workflow import WorkflowGraph
from ..runtime.models import HistoryEntry, ProcessInstance, ProcessStatus


class WorkflowRepository(Protocol):
    """Protocol for persistence backends.

    The core never calls a repository; callers load what the core needs
    before a call and persist its results afterwards.
    """

    async def save_graph(self, graph: WorkflowGraph) -> None:
        """Upsert a graph's activities, fields and transitions.

        Stored entities of the workflow whose ids are not part of ``graph``
        are deleted.
        """

    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        """Load a workflow graph by id."""

    async def list_graphs(self) -> list[WorkflowGraph]:
        """Return all stored workflow graphs."""

    async def create_instance(self, instance: ProcessInstance) -> None:
        """Persist a new process instance."""

    async def update_instance(self, instance: ProcessInstance) -> None:
        """Replace the stored state of an existing instance."""

    async def get_instance(self, process_id: str) -> ProcessInstance | None:
        """Retrieve a process instance by id."""

    async def list_instances(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ProcessStatus] = None,
    ) -> list[ProcessInstance]:
        """Return instances, optionally filtered by workflow and status."""

    async def append_history(self, entry: HistoryEntry) -> None:
        """Append an entry to a process history; entries are never rewritten."""

    async def list_history(self, process_id: str) -> list[HistoryEntry]:
        """Return the history of a process in append order."""

    async def list_histories(
        self, process_ids: Optional[Sequence[str]] = None
    ) -> dict[str, list[HistoryEntry]]:
        """Histories of several processes (all when ``process_ids`` is ``None``) in one read."""
