"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional, Sequence

from ..errors import NotFoundError, ProcflowError
from ..graph.models import Activity, FieldDefinition, Transition, dump_activity
from ..graph.workflow import WorkflowGraph
from ..runtime.models import HistoryEntry, ProcessInstance, ProcessStatus
from .repository import WorkflowRepository

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workflows (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        name_template TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activities (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        seq INTEGER NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_fields (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        activity_id TEXT NOT NULL,
        order_index INTEGER NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transitions (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        seq INTEGER NOT NULL,
        source_id TEXT NOT NULL,
        target_id TEXT NOT NULL,
        condition TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS process_instances (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        status TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS process_history (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        process_id TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
)


def _not_in(column: str, ids: Sequence[str]) -> tuple[str, list[str]]:
    if not ids:
        return "1 = 1", []
    return f"{column} NOT IN ({', '.join('?' for _ in ids)})", list(ids)


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflows and process state using SQLite.

    Activities and fields are stored as JSON documents next to the columns
    needed to query and order them.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock, self._conn:
            for statement in SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock, self._conn:
            return self._conn.execute(query, params).rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def _save_graph(self, graph: WorkflowGraph) -> None:
        activity_ids = list(graph.activities)
        field_ids = [f.id for a in graph.activities.values() for f in a.fields]
        transition_ids = list(graph.transitions)

        with self._lock, self._conn:
            cur = self._conn.cursor()
            cur.execute(
                """
                INSERT INTO workflows (id, name, name_template) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name, name_template = excluded.name_template
                """,
                (graph.id, graph.name, graph.name_template),
            )
            for seq, activity in enumerate(graph.activities.values()):
                cur.execute(
                    """
                    INSERT INTO activities (id, workflow_id, seq, data) VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        workflow_id = excluded.workflow_id,
                        seq = excluded.seq,
                        data = excluded.data
                    """,
                    (activity.id, graph.id, seq, json.dumps(dump_activity(activity))),
                )
                for field in activity.fields:
                    cur.execute(
                        """
                        INSERT INTO activity_fields
                            (id, workflow_id, activity_id, order_index, data)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            workflow_id = excluded.workflow_id,
                            activity_id = excluded.activity_id,
                            order_index = excluded.order_index,
                            data = excluded.data
                        """,
                        (
                            field.id,
                            graph.id,
                            activity.id,
                            field.order_index,
                            field.model_dump_json(),
                        ),
                    )
            for seq, transition in enumerate(graph.transitions.values()):
                cur.execute(
                    """
                    INSERT INTO transitions
                        (id, workflow_id, seq, source_id, target_id, condition)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        workflow_id = excluded.workflow_id,
                        seq = excluded.seq,
                        source_id = excluded.source_id,
                        target_id = excluded.target_id,
                        condition = excluded.condition
                    """,
                    (
                        transition.id,
                        graph.id,
                        seq,
                        transition.source_id,
                        transition.target_id,
                        transition.condition,
                    ),
                )

            # orphan cleanup
            for table, ids in (
                ("transitions", transition_ids),
                ("activity_fields", field_ids),
                ("activities", activity_ids),
            ):
                clause, params = _not_in("id", ids)
                cur.execute(
                    f"DELETE FROM {table} WHERE workflow_id = ? AND {clause}",
                    [graph.id, *params],
                )

    def _load_graph(self, row: sqlite3.Row) -> WorkflowGraph:
        workflow_id = row["id"]
        field_rows = self._fetchall(
            "SELECT activity_id, data FROM activity_fields WHERE workflow_id = ? ORDER BY order_index",
            workflow_id,
        )
        fields: dict[str, list[FieldDefinition]] = {}
        for r in field_rows:
            fields.setdefault(r["activity_id"], []).append(
                FieldDefinition.model_validate_json(r["data"])
            )

        activity_rows = self._fetchall(
            "SELECT id, data FROM activities WHERE workflow_id = ? ORDER BY seq",
            workflow_id,
        )
        activities = [
            Activity.model_validate({**json.loads(r["data"]), "fields": fields.get(r["id"], [])})
            for r in activity_rows
        ]
        transition_rows = self._fetchall(
            "SELECT id, source_id, target_id, condition FROM transitions WHERE workflow_id = ? ORDER BY seq",
            workflow_id,
        )
        transitions = [
            Transition(
                id=r["id"],
                source_id=r["source_id"],
                target_id=r["target_id"],
                condition=r["condition"],
            )
            for r in transition_rows
        ]
        return WorkflowGraph.from_parts(
            activities,
            transitions,
            id=workflow_id,
            name=row["name"],
            name_template=row["name_template"],
        )

    # ------------------------------------------------------------------
    # Repository API
    async def save_graph(self, graph: WorkflowGraph) -> None:
        await asyncio.to_thread(self._save_graph, graph)

    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, name_template FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row:
            return None
        return await asyncio.to_thread(self._load_graph, row)

    async def list_graphs(self) -> list[WorkflowGraph]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT id, name, name_template FROM workflows ORDER BY rowid"
        )
        graphs: list[WorkflowGraph] = []
        for row in rows:
            graphs.append(await asyncio.to_thread(self._load_graph, row))
        return graphs

    async def create_instance(self, instance: ProcessInstance) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO process_instances (id, workflow_id, status, data) VALUES (?, ?, ?, ?)",
                instance.id,
                instance.workflow_id,
                instance.status.value,
                instance.model_dump_json(),
            )
        except sqlite3.IntegrityError as exc:
            raise ProcflowError(f"Process {instance.id} already exists") from exc

    async def update_instance(self, instance: ProcessInstance) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE process_instances SET workflow_id = ?, status = ?, data = ? WHERE id = ?",
            instance.workflow_id,
            instance.status.value,
            instance.model_dump_json(),
            instance.id,
        )
        if not updated:
            raise NotFoundError(f"Process {instance.id} does not exist")

    async def get_instance(self, process_id: str) -> ProcessInstance | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM process_instances WHERE id = ?",
            process_id,
        )
        if not row:
            return None
        return ProcessInstance.model_validate_json(row["data"])

    async def list_instances(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[ProcessStatus] = None,
    ) -> list[ProcessInstance]:
        query = "SELECT data FROM process_instances WHERE 1 = 1"
        params: list[Any] = []
        if workflow_id is not None:
            query += " AND workflow_id = ?"
            params.append(workflow_id)
        if status is not None:
            query += " AND status = ?"
            params.append(ProcessStatus(status).value)
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY rowid", *params)
        return [ProcessInstance.model_validate_json(r["data"]) for r in rows]

    async def append_history(self, entry: HistoryEntry) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO process_history (id, process_id, data) VALUES (?, ?, ?)",
                entry.id,
                entry.process_id,
                entry.model_dump_json(),
            )
        except sqlite3.IntegrityError as exc:
            raise ProcflowError(f"History entry {entry.id} already exists") from exc

    async def list_history(self, process_id: str) -> list[HistoryEntry]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM process_history WHERE process_id = ? ORDER BY seq",
            process_id,
        )
        return [HistoryEntry.model_validate_json(r["data"]) for r in rows]

    async def list_histories(
        self, process_ids: Optional[Sequence[str]] = None
    ) -> dict[str, list[HistoryEntry]]:
        query = "SELECT data FROM process_history"
        params: list[Any] = []
        if process_ids is not None:
            if not process_ids:
                return {}
            query += f" WHERE process_id IN ({', '.join('?' for _ in process_ids)})"
            params.extend(process_ids)
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY seq", *params)
        histories: dict[str, list[HistoryEntry]] = {}
        for r in rows:
            entry = HistoryEntry.model_validate_json(r["data"])
            histories.setdefault(entry.process_id, []).append(entry)
        return histories
