"""BPMN 2.0 XML export and import.

Only topology, naming, descriptions, transition conditions and diagram
coordinates travel through this format. Fields, SLA hours, assignment and
automated actions are not represented and are lost on a round trip.

Export writes one ``bpmn:process`` whose nodes are start/end events, user
tasks and exclusive gateways, plus a ``bpmndi:BPMNDiagram`` with absolute
bounds per node and two waypoints (centre to centre) per edge. A
transition's condition is written to the flow's ``name`` attribute and, for
other BPMN tools, as a ``conditionExpression``.

Import assigns fresh ids to everything it reads and is all-or-nothing: a
malformed document yields a :class:`ConversionFailure` and no entities.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple, Union

import xml.etree.ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field

from ..constants import DEFAULT_DUE_DATE_HOURS, DEFAULT_IMPORT_X, DEFAULT_IMPORT_Y
from ..diagnostics import Diagnostic, DiagnosticKind, Diagnostics
from ..errors import ConversionFailure, GraphModelError
from ..graph.models import Activity, ActivityKind, Position, Transition, new_id
from ..graph.workflow import WorkflowGraph

logger = logging.getLogger(__name__)

NS_BPMN = "http://www.omg.org/spec/BPMN/20100524/MODEL"
NS_BPMNDI = "http://www.omg.org/spec/BPMN/20100524/DI"
NS_DC = "http://www.omg.org/spec/DD/20100524/DC"
NS_DI = "http://www.omg.org/spec/DD/20100524/DI"
NS_XSI = "http://www.w3.org/2001/XMLSchema-instance"
TARGET_NAMESPACE = "http://bpmn.io/schema/bpmn"

ET.register_namespace("xsi", NS_XSI)
ET.register_namespace("bpmn", NS_BPMN)
ET.register_namespace("bpmndi", NS_BPMNDI)
ET.register_namespace("dc", NS_DC)
ET.register_namespace("di", NS_DI)


def _q(ns: str, local: str) -> str:
    return f"{{{ns}}}{local}"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


EXPORT_TAGS: Dict[ActivityKind, str] = {
    ActivityKind.START: "startEvent",
    ActivityKind.TASK: "userTask",
    ActivityKind.DECISION: "exclusiveGateway",
    ActivityKind.END: "endEvent",
}

IMPORT_KINDS: Dict[str, ActivityKind] = {
    "startEvent": ActivityKind.START,
    "endEvent": ActivityKind.END,
    "userTask": ActivityKind.TASK,
    "task": ActivityKind.TASK,
    "manualTask": ActivityKind.TASK,
    "serviceTask": ActivityKind.TASK,
    "scriptTask": ActivityKind.TASK,
    "sendTask": ActivityKind.TASK,
    "receiveTask": ActivityKind.TASK,
    "businessRuleTask": ActivityKind.TASK,
    "exclusiveGateway": ActivityKind.DECISION,
    "inclusiveGateway": ActivityKind.DECISION,
    "complexGateway": ActivityKind.DECISION,
}

# Process children that carry no flow semantics.
IGNORED_ELEMENTS = frozenset(
    {
        "documentation",
        "extensionElements",
        "laneSet",
        "dataObject",
        "dataObjectReference",
        "dataStoreReference",
        "textAnnotation",
        "association",
        "sequenceFlow",
    }
)

SHAPE_SIZES: Dict[ActivityKind, Tuple[int, int]] = {
    ActivityKind.START: (36, 36),
    ActivityKind.END: (36, 36),
    ActivityKind.DECISION: (50, 50),
    ActivityKind.TASK: (100, 80),
}

DEFAULT_NAMES: Dict[ActivityKind, str] = {
    ActivityKind.START: "Start",
    ActivityKind.TASK: "Task",
    ActivityKind.DECISION: "Decision",
    ActivityKind.END: "End",
}


def _xml_id(prefix: str, raw_id: str) -> str:
    return f"{prefix}_{re.sub(r'[^A-Za-z0-9_]', '_', raw_id)}"


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_bpmn(graph: WorkflowGraph, process_name: Optional[str] = None) -> str:
    """Serialize ``graph`` to a BPMN XML document."""
    process_id = _xml_id("Process", graph.id)
    node_ids = {a.id: _xml_id("Activity", a.id) for a in graph.activities.values()}
    flow_ids = {t.id: _xml_id("Flow", t.id) for t in graph.transitions.values()}

    root = ET.Element(
        _q(NS_BPMN, "definitions"),
        {"id": _xml_id("Definitions", graph.id), "targetNamespace": TARGET_NAMESPACE},
    )
    process = ET.SubElement(
        root,
        _q(NS_BPMN, "process"),
        {
            "id": process_id,
            "name": process_name or graph.name,
            "isExecutable": "false",
        },
    )

    for activity in graph.activities.values():
        node = ET.SubElement(
            process,
            _q(NS_BPMN, EXPORT_TAGS[activity.kind]),
            {"id": node_ids[activity.id], "name": activity.name},
        )
        if activity.description:
            ET.SubElement(node, _q(NS_BPMN, "documentation")).text = activity.description
        for transition in graph.incoming(activity.id):
            ET.SubElement(node, _q(NS_BPMN, "incoming")).text = flow_ids[transition.id]
        for transition in graph.outgoing(activity.id):
            ET.SubElement(node, _q(NS_BPMN, "outgoing")).text = flow_ids[transition.id]

    for transition in graph.transitions.values():
        attrs = {
            "id": flow_ids[transition.id],
            "sourceRef": node_ids[transition.source_id],
            "targetRef": node_ids[transition.target_id],
        }
        if transition.condition:
            attrs["name"] = transition.condition
        flow = ET.SubElement(process, _q(NS_BPMN, "sequenceFlow"), attrs)
        if transition.condition:
            expr = ET.SubElement(
                flow,
                _q(NS_BPMN, "conditionExpression"),
                {_q(NS_XSI, "type"): "bpmn:tFormalExpression"},
            )
            expr.text = transition.condition

    diagram = ET.SubElement(
        root, _q(NS_BPMNDI, "BPMNDiagram"), {"id": _xml_id("Diagram", graph.id)}
    )
    plane = ET.SubElement(
        diagram,
        _q(NS_BPMNDI, "BPMNPlane"),
        {"id": _xml_id("Plane", graph.id), "bpmnElement": process_id},
    )

    for activity in graph.activities.values():
        width, height = SHAPE_SIZES[activity.kind]
        shape = ET.SubElement(
            plane,
            _q(NS_BPMNDI, "BPMNShape"),
            {"id": f"{node_ids[activity.id]}_di", "bpmnElement": node_ids[activity.id]},
        )
        ET.SubElement(
            shape,
            _q(NS_DC, "Bounds"),
            {
                "x": _num(activity.position.x),
                "y": _num(activity.position.y),
                "width": str(width),
                "height": str(height),
            },
        )

    for transition in graph.transitions.values():
        edge = ET.SubElement(
            plane,
            _q(NS_BPMNDI, "BPMNEdge"),
            {"id": f"{flow_ids[transition.id]}_di", "bpmnElement": flow_ids[transition.id]},
        )
        for activity_id in (transition.source_id, transition.target_id):
            x, y = _centre(graph.activities[activity_id])
            ET.SubElement(edge, _q(NS_DI, "waypoint"), {"x": _num(x), "y": _num(y)})

    ET.indent(root, space="  ")
    xml_bytes = ET.tostring(root, encoding="utf-8", xml_declaration=True)
    return xml_bytes.decode("utf-8")


def _centre(activity: Activity) -> Tuple[float, float]:
    width, height = SHAPE_SIZES[activity.kind]
    return activity.position.x + width / 2, activity.position.y + height / 2


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class ImportResult(BaseModel):
    """Outcome of :func:`import_bpmn`."""

    process_name: Optional[str] = None
    activities: List[Activity] = Field(default_factory=list)
    transitions: List[Transition] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    failure: Optional[ConversionFailure] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_graph(self, name: Optional[str] = None, **kwargs) -> WorkflowGraph:
        if self.failure is not None:
            self.failure.raise_for_failure()
        return WorkflowGraph.from_parts(
            self.activities,
            self.transitions,
            name=name or self.process_name or "",
            **kwargs,
        )

    def apply_to(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Add the imported entities to ``graph``, all or nothing."""
        if self.failure is not None:
            self.failure.raise_for_failure()
        clashes = [a.id for a in self.activities if a.id in graph.activities]
        clashes += [t.id for t in self.transitions if t.id in graph.transitions]
        if clashes:
            raise GraphModelError(f"Imported ids already exist: {', '.join(clashes)}")
        for activity in self.activities:
            graph.insert_activity(activity.model_copy(deep=True))
        for transition in self.transitions:
            graph.transitions[transition.id] = transition.model_copy()
        return graph


class _MalformedDocument(Exception):
    pass


def import_bpmn(
    xml: Union[str, bytes], *, due_date_hours: int = DEFAULT_DUE_DATE_HOURS
) -> ImportResult:
    """Read a BPMN document into fresh activities and transitions.

    BPMN carries no SLA, so every imported activity gets ``due_date_hours``.
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        logger.warning(f"Rejected BPMN document: {exc}")
        return ImportResult(
            failure=ConversionFailure(message="Document is not well-formed XML", detail=str(exc))
        )

    diagnostics = Diagnostics()
    try:
        return _read_definitions(root, diagnostics, due_date_hours)
    except _MalformedDocument as exc:
        logger.warning(f"Rejected BPMN document: {exc}")
        return ImportResult(
            failure=ConversionFailure(message=str(exc)),
            diagnostics=diagnostics.to_list(),
        )


def _read_definitions(
    root: ET.Element, diagnostics: Diagnostics, due_date_hours: int
) -> ImportResult:
    if root.tag != _q(NS_BPMN, "definitions"):
        raise _MalformedDocument(f"Unexpected root element {root.tag!r}")

    processes = root.findall(_q(NS_BPMN, "process"))
    if not processes:
        raise _MalformedDocument("Document contains no bpmn:process")
    process = processes[0]
    for extra in processes[1:]:
        diagnostics.warn(
            DiagnosticKind.SKIPPED_ELEMENT,
            f"Only the first process is imported; skipped {extra.get('id')!r}",
            subject_id=extra.get("id"),
        )

    bounds = _read_bounds(root)
    id_map: Dict[str, str] = {}
    activities: List[Activity] = []
    flows: List[ET.Element] = []

    for element in process:
        local = _local(element.tag)
        if local == "sequenceFlow":
            flows.append(element)
            continue
        kind = IMPORT_KINDS.get(local)
        if kind is None:
            if local not in IGNORED_ELEMENTS:
                diagnostics.warn(
                    DiagnosticKind.SKIPPED_ELEMENT,
                    f"Unsupported element bpmn:{local} was not imported",
                    subject_id=element.get("id"),
                )
            continue

        bpmn_id = element.get("id")
        if not bpmn_id:
            raise _MalformedDocument(f"bpmn:{local} element without id")
        if bpmn_id in id_map:
            raise _MalformedDocument(f"Duplicate element id {bpmn_id!r}")

        x, y = bounds.get(bpmn_id, (DEFAULT_IMPORT_X, DEFAULT_IMPORT_Y))
        documentation = element.find(_q(NS_BPMN, "documentation"))
        activity = Activity(
            id=new_id(),
            kind=kind,
            name=element.get("name") or DEFAULT_NAMES[kind],
            description=(documentation.text or None) if documentation is not None else None,
            position=Position(x=x, y=y),
            due_date_hours=due_date_hours,
        )
        id_map[bpmn_id] = activity.id
        activities.append(activity)

    transitions = _read_flows(flows, id_map, diagnostics)
    logger.info(
        f"Imported {len(activities)} activities and {len(transitions)} transitions"
    )
    return ImportResult(
        process_name=process.get("name") or None,
        activities=activities,
        transitions=transitions,
        diagnostics=diagnostics.to_list(),
    )


def _read_bounds(root: ET.Element) -> Dict[str, Tuple[int, int]]:
    bounds: Dict[str, Tuple[int, int]] = {}
    for shape in root.iter(_q(NS_BPMNDI, "BPMNShape")):
        element_id = shape.get("bpmnElement")
        box = shape.find(_q(NS_DC, "Bounds"))
        if not element_id or box is None:
            continue
        try:
            bounds[element_id] = (
                int(float(box.get("x", DEFAULT_IMPORT_X))),
                int(float(box.get("y", DEFAULT_IMPORT_Y))),
            )
        except ValueError as exc:
            raise _MalformedDocument(f"Invalid bounds for {element_id!r}: {exc}") from exc
    return bounds


def _read_flows(
    flows: List[ET.Element], id_map: Dict[str, str], diagnostics: Diagnostics
) -> List[Transition]:
    transitions: List[Transition] = []
    pairs: set[tuple[str, str]] = set()
    for flow in flows:
        flow_id = flow.get("id")
        source = id_map.get(flow.get("sourceRef", ""))
        target = id_map.get(flow.get("targetRef", ""))
        if source is None or target is None:
            diagnostics.warn(
                DiagnosticKind.SKIPPED_ELEMENT,
                f"Sequence flow {flow_id!r} references an element that was not imported",
                subject_id=flow_id,
            )
            continue
        if source == target:
            diagnostics.warn(
                DiagnosticKind.SKIPPED_ELEMENT,
                f"Sequence flow {flow_id!r} loops on a single element",
                subject_id=flow_id,
            )
            continue
        if (source, target) in pairs:
            diagnostics.warn(
                DiagnosticKind.DUPLICATE_TRANSITION,
                f"Sequence flow {flow_id!r} duplicates an earlier connection",
                subject_id=flow_id,
            )
            continue
        pairs.add((source, target))

        condition = flow.get("name")
        if not condition:
            expr = flow.find(_q(NS_BPMN, "conditionExpression"))
            condition = expr.text.strip() if expr is not None and expr.text else None
        transitions.append(
            Transition(id=new_id(), source_id=source, target_id=target, condition=condition)
        )
    return transitions
