"""File helpers for CLI commands working on graph documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from procflow.graph import WorkflowGraph


def _read_graph(path: Path) -> WorkflowGraph:
    """Load a graph saved with :func:`_dump_graph`.

    Raises ``OSError`` for unreadable files and pydantic's
    ``ValidationError`` for documents that are not a valid graph.
    """
    return WorkflowGraph.model_validate_json(path.read_text(encoding="utf-8"))


def _dump_graph(graph: WorkflowGraph) -> str:
    return json.dumps(graph.model_dump(mode="json"), indent=2) + "\n"


def _write_output(text: str, output: Optional[Path]) -> bool:
    """Write ``text`` to ``output``; returns ``False`` when there is no file to write."""
    if output is None:
        return False
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    return True
