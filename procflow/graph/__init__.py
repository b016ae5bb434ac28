"""Process graph model: activities, fields and transitions."""

from __future__ import annotations

from .models import (
    ActionConfig,
    ActionStep,
    ActionType,
    Activity,
    ActivityKind,
    AssignmentConfig,
    AssignmentStrategy,
    CreatorAssignment,
    DepartmentAssignment,
    FieldDefinition,
    FieldType,
    ManualAssignment,
    Position,
    PositionAssignment,
    SpecificUserAssignment,
    Transition,
    normalize_field_name,
)
from .validation import ValidationReport, validate_graph
from .workflow import WorkflowGraph

__all__ = [
    "ActionConfig",
    "ActionStep",
    "ActionType",
    "Activity",
    "ActivityKind",
    "AssignmentConfig",
    "AssignmentStrategy",
    "CreatorAssignment",
    "DepartmentAssignment",
    "FieldDefinition",
    "FieldType",
    "ManualAssignment",
    "Position",
    "PositionAssignment",
    "SpecificUserAssignment",
    "Transition",
    "ValidationReport",
    "WorkflowGraph",
    "normalize_field_name",
    "validate_graph",
]
