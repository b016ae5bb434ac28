"""Deterministic auto-layout of a workflow graph."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, List, Optional

from .config import LayoutConfig
from .graph.models import Position
from .graph.workflow import WorkflowGraph

logger = logging.getLogger(__name__)


def assign_ranks(graph: WorkflowGraph) -> Dict[str, int]:
    """Breadth-first rank of every activity.

    The queue is seeded with every start activity at rank 0, or with the
    first activity when there is none. A node keeps the rank it was first
    dequeued with. Activities never reached get rank 0.

    The returned dict is ordered by visit, followed by unreached
    activities in insertion order; layout rows follow that order.
    """
    if not graph.activities:
        return {}

    roots = [a.id for a in graph.starts()] or [next(iter(graph.activities))]
    queue = deque((root, 0) for root in roots)
    ranks: Dict[str, int] = {}
    visited: set[str] = set()

    while queue:
        node, rank = queue.popleft()
        if node in visited:
            continue
        visited.add(node)
        ranks[node] = max(ranks.get(node, 0), rank)
        for transition in graph.outgoing(node):
            queue.append((transition.target_id, rank + 1))

    for activity_id in graph.activities:
        if activity_id not in visited:
            ranks[activity_id] = 0
    return ranks


def compute_layout(
    graph: WorkflowGraph, config: Optional[LayoutConfig] = None
) -> Dict[str, Position]:
    """Positions for every activity, keyed by id in insertion order."""
    config = config or LayoutConfig()
    ranks = assign_ranks(graph)

    rows: Dict[int, List[str]] = {}
    for activity_id, rank in ranks.items():
        rows.setdefault(rank, []).append(activity_id)

    positions: Dict[str, Position] = {}
    for activity_id in graph.activities:
        rank = ranks[activity_id]
        row = rows[rank]
        offset = row.index(activity_id) - (len(row) - 1) / 2
        positions[activity_id] = Position(
            x=config.base_x + rank * config.gap_x,
            y=config.base_y + offset * config.gap_y,
        )
    return positions


def apply_layout(
    graph: WorkflowGraph, config: Optional[LayoutConfig] = None
) -> WorkflowGraph:
    """Overwrite activity positions with :func:`compute_layout`."""
    positions = compute_layout(graph, config)
    for activity_id, position in positions.items():
        graph.activities[activity_id].position = position
    logger.debug(f"Laid out {len(positions)} activities of workflow {graph.id}")
    return graph
