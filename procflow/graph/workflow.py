"""Editable workflow graph: activities and transitions keyed by id."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..errors import GraphModelError
from .models import (
    Activity,
    ActivityKind,
    FieldDefinition,
    FieldType,
    Position,
    Transition,
    new_id,
    normalize_field_name,
)

logger = logging.getLogger(__name__)


class WorkflowGraph(BaseModel):
    """The graph of a workflow definition.

    Activities and transitions are stored in insertion-ordered dicts keyed
    by id. Insertion order is significant: transitions leaving an activity
    are evaluated in the order they were added, and the auto-layout uses it
    to break ties.

    All editing operations mutate the graph in place and perform no I/O.
    Persisting a batch of edits is the caller's job.
    """

    id: str = Field(default_factory=new_id)
    name: str = ""
    # e.g. "Invoice {{invoice_number}}", resolved from the start form
    name_template: Optional[str] = None
    activities: Dict[str, Activity] = Field(default_factory=dict)
    transitions: Dict[str, Transition] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self) -> WorkflowGraph:
        for key, activity in self.activities.items():
            if key != activity.id:
                raise ValueError(f"activity key {key!r} does not match id {activity.id!r}")
        pairs: set[tuple[str, str]] = set()
        for key, transition in self.transitions.items():
            if key != transition.id:
                raise ValueError(
                    f"transition key {key!r} does not match id {transition.id!r}"
                )
            for ref in (transition.source_id, transition.target_id):
                if ref not in self.activities:
                    raise ValueError(
                        f"transition {transition.id} references unknown activity {ref!r}"
                    )
            pair = (transition.source_id, transition.target_id)
            if pair in pairs:
                raise ValueError(
                    f"duplicate transition {transition.source_id} -> {transition.target_id}"
                )
            pairs.add(pair)
        return self

    @classmethod
    def from_parts(
        cls,
        activities: Iterable[Activity],
        transitions: Iterable[Transition],
        **kwargs: Any,
    ) -> WorkflowGraph:
        """Build a graph from flat lists, e.g. rows loaded from a store."""
        return cls(
            activities={a.id: a for a in activities},
            transitions={t.id: t for t in transitions},
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Queries
    def activity(self, activity_id: str) -> Activity:
        try:
            return self.activities[activity_id]
        except KeyError:
            raise GraphModelError(f"Unknown activity: {activity_id}") from None

    def starts(self) -> List[Activity]:
        return [a for a in self.activities.values() if a.is_start]

    def outgoing(self, activity_id: str) -> List[Transition]:
        """Transitions leaving ``activity_id`` in definition order."""
        return [t for t in self.transitions.values() if t.source_id == activity_id]

    def incoming(self, activity_id: str) -> List[Transition]:
        return [t for t in self.transitions.values() if t.target_id == activity_id]

    def find_transition(self, source_id: str, target_id: str) -> Optional[Transition]:
        return next(
            (
                t
                for t in self.transitions.values()
                if t.source_id == source_id and t.target_id == target_id
            ),
            None,
        )

    def reachable_from(self, activity_ids: Iterable[str]) -> set[str]:
        """Ids reachable from ``activity_ids`` (inclusive)."""
        seen: set[str] = set()
        queue = deque(activity_ids)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(t.target_id for t in self.outgoing(current))
        return seen

    def previous_activities(self, activity_id: str) -> List[Activity]:
        """Activities from which ``activity_id`` can be reached.

        These are the candidates a field may be prefilled from. The result
        follows activity insertion order and excludes ``activity_id`` itself
        unless it sits on a cycle.
        """
        self.activity(activity_id)
        seen: set[str] = set()
        queue = deque(t.source_id for t in self.incoming(activity_id))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(t.source_id for t in self.incoming(current))
        seen.discard(activity_id)
        return [a for a in self.activities.values() if a.id in seen]

    # ------------------------------------------------------------------
    # Activities
    def add_activity(
        self,
        kind: ActivityKind | str,
        name: str,
        *,
        activity_id: Optional[str] = None,
        x: float = 0.0,
        y: float = 0.0,
        **attrs: Any,
    ) -> Activity:
        """Create an activity and append it to the graph."""
        activity_id = activity_id or new_id()
        if activity_id in self.activities:
            raise GraphModelError(f"Activity {activity_id} already exists")
        try:
            activity = Activity(
                id=activity_id,
                kind=kind,
                name=name,
                position=Position(x=x, y=y),
                **attrs,
            )
        except ValidationError as exc:
            raise GraphModelError(str(exc)) from exc
        self.activities[activity.id] = activity
        return activity

    def insert_activity(self, activity: Activity) -> Activity:
        if activity.id in self.activities:
            raise GraphModelError(f"Activity {activity.id} already exists")
        self.activities[activity.id] = activity
        return activity

    def update_activity(self, activity_id: str, **changes: Any) -> Activity:
        current = self.activity(activity_id)
        if "id" in changes and changes["id"] != activity_id:
            raise GraphModelError("Activity ids cannot be changed")
        data = current.model_dump()
        data.update(changes)
        try:
            updated = Activity.model_validate(data)
        except ValidationError as exc:
            raise GraphModelError(str(exc)) from exc
        self.activities[activity_id] = updated
        return updated

    def move_activity(self, activity_id: str, x: float, y: float) -> Activity:
        activity = self.activity(activity_id)
        activity.position = Position(x=x, y=y)
        return activity

    def remove_activity(self, activity_id: str) -> Activity:
        """Delete an activity with its fields and every incident transition."""
        activity = self.activity(activity_id)
        incident = [
            t.id
            for t in self.transitions.values()
            if t.source_id == activity_id or t.target_id == activity_id
        ]
        for transition_id in incident:
            del self.transitions[transition_id]
        del self.activities[activity_id]
        logger.debug(
            f"Removed activity {activity_id} with {len(incident)} transitions"
        )
        return activity

    # ------------------------------------------------------------------
    # Transitions
    def add_transition(
        self,
        source_id: str,
        target_id: str,
        condition: Optional[str] = None,
        *,
        transition_id: Optional[str] = None,
    ) -> Transition:
        """Connect two activities.

        Adding a pair that is already connected is a no-op returning the
        existing transition.
        """
        self.activity(source_id)
        self.activity(target_id)
        if source_id == target_id:
            raise GraphModelError(f"Activity {source_id} cannot transition to itself")

        existing = self.find_transition(source_id, target_id)
        if existing is not None:
            logger.debug(
                f"Ignoring duplicate transition {source_id} -> {target_id}"
            )
            return existing

        transition = Transition(
            id=transition_id or new_id(),
            source_id=source_id,
            target_id=target_id,
            condition=condition,
        )
        if transition.id in self.transitions:
            raise GraphModelError(f"Transition {transition.id} already exists")
        self.transitions[transition.id] = transition
        return transition

    def set_condition(self, transition_id: str, condition: Optional[str]) -> Transition:
        transition = self._transition(transition_id)
        updated = Transition.model_validate(
            {**transition.model_dump(), "condition": condition}
        )
        self.transitions[transition_id] = updated
        return updated

    def remove_transition(self, transition_id: str) -> Transition:
        transition = self._transition(transition_id)
        del self.transitions[transition_id]
        return transition

    def _transition(self, transition_id: str) -> Transition:
        try:
            return self.transitions[transition_id]
        except KeyError:
            raise GraphModelError(f"Unknown transition: {transition_id}") from None

    # ------------------------------------------------------------------
    # Fields
    def add_field(
        self,
        activity_id: str,
        label: str,
        field_type: FieldType | str = FieldType.TEXT,
        *,
        name: Optional[str] = None,
        **attrs: Any,
    ) -> FieldDefinition:
        """Append a field to an activity's form.

        The technical ``name`` defaults to the normalized label and must be
        unique within the activity.
        """
        activity = self.activity(activity_id)
        name = name or normalize_field_name(label)
        if activity.field_by_name(name) is not None:
            raise GraphModelError(
                f"Field {name!r} already exists in activity {activity_id}"
            )
        try:
            field = FieldDefinition(
                activity_id=activity_id,
                name=name,
                label=label,
                type=field_type,
                order_index=len(activity.fields),
                **attrs,
            )
        except ValidationError as exc:
            raise GraphModelError(str(exc)) from exc
        activity.fields.append(field)
        return field

    def update_field(
        self, activity_id: str, field_id: str, **changes: Any
    ) -> FieldDefinition:
        activity = self.activity(activity_id)
        index = self._field_index(activity, field_id)
        for forbidden in ("id", "activity_id", "order_index"):
            if forbidden in changes:
                raise GraphModelError(f"{forbidden} cannot be changed with update_field")
        new_name = changes.get("name")
        if new_name is not None:
            clash = activity.field_by_name(new_name)
            if clash is not None and clash.id != field_id:
                raise GraphModelError(
                    f"Field {new_name!r} already exists in activity {activity_id}"
                )
        data = activity.fields[index].model_dump()
        data.update(changes)
        try:
            updated = FieldDefinition.model_validate(data)
        except ValidationError as exc:
            raise GraphModelError(str(exc)) from exc
        activity.fields[index] = updated
        return updated

    def remove_field(self, activity_id: str, field_id: str) -> FieldDefinition:
        activity = self.activity(activity_id)
        index = self._field_index(activity, field_id)
        removed = activity.fields.pop(index)
        self._renumber(activity)
        return removed

    def move_field(
        self, activity_id: str, field_id: str, new_index: int
    ) -> List[FieldDefinition]:
        """Move a field to ``new_index`` (clamped) and renumber the form."""
        activity = self.activity(activity_id)
        index = self._field_index(activity, field_id)
        field = activity.fields.pop(index)
        new_index = max(0, min(new_index, len(activity.fields)))
        activity.fields.insert(new_index, field)
        self._renumber(activity)
        return activity.fields

    def reorder_fields(
        self, activity_id: str, field_ids: List[str]
    ) -> List[FieldDefinition]:
        activity = self.activity(activity_id)
        if sorted(field_ids) != sorted(f.id for f in activity.fields):
            raise GraphModelError(
                f"Reorder of activity {activity_id} must list every field exactly once"
            )
        by_id = {f.id: f for f in activity.fields}
        activity.fields = [by_id[fid] for fid in field_ids]
        self._renumber(activity)
        return activity.fields

    @staticmethod
    def _field_index(activity: Activity, field_id: str) -> int:
        for index, field in enumerate(activity.fields):
            if field.id == field_id:
                return index
        raise GraphModelError(f"Unknown field {field_id} in activity {activity.id}")

    @staticmethod
    def _renumber(activity: Activity) -> None:
        activity.fields = [
            f if f.order_index == i else f.model_copy(update={"order_index": i})
            for i, f in enumerate(activity.fields)
        ]
