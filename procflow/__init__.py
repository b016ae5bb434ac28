"""Procflow: process graph modelling and instance advancement."""

from .assignment import AssignmentResolver, OrgDirectory, WorkloadSnapshot
from .conditions import evaluate
from .config import ProcflowConfig, load_config
from .diagnostics import Diagnostic, DiagnosticKind, Diagnostics
from .graph import Activity, ActivityKind, Transition, WorkflowGraph, validate_graph
from .interchange import export_bpmn, import_bpmn
from .layout import apply_layout, compute_layout
from .persistence import get_repository
from .runtime import ProcessInstance, ProcessService, advance, start_process

__version__ = "0.1.0"
__all__ = [
    "Activity",
    "ActivityKind",
    "AssignmentResolver",
    "Diagnostic",
    "DiagnosticKind",
    "Diagnostics",
    "OrgDirectory",
    "ProcessInstance",
    "ProcessService",
    "ProcflowConfig",
    "Transition",
    "WorkflowGraph",
    "WorkloadSnapshot",
    "advance",
    "apply_layout",
    "compute_layout",
    "evaluate",
    "export_bpmn",
    "get_repository",
    "import_bpmn",
    "load_config",
    "start_process",
    "validate_graph",
]
