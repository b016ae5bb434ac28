"""Pydantic models describing the process graph."""

from __future__ import annotations

import re
import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import DEFAULT_DUE_DATE_HOURS

FIELD_NAME_PATTERN = re.compile(r"^[a-z0-9_]+$")


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_field_name(label: str) -> str:
    """Derive a technical field name from a human label.

    ``"Invoice Amount"`` becomes ``"invoice_amount"``.
    """
    name = re.sub(r"\s+", "_", label.strip().lower())
    return re.sub(r"[^a-z0-9_]", "", name)


class ActivityKind(str, Enum):
    START = "start"
    TASK = "task"
    DECISION = "decision"
    END = "end"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"
    SELECT = "select"
    BOOLEAN = "boolean"
    EMAIL = "email"
    PHONE = "phone"
    LOOKUP = "lookup"
    PROVIDER = "provider"


NUMERIC_FIELD_TYPES = frozenset({FieldType.NUMBER, FieldType.CURRENCY})


class Position(BaseModel):
    """Canvas coordinates of an activity."""

    x: float = 0.0
    y: float = 0.0


class FieldDefinition(BaseModel):
    """A form field collected when an activity is worked on."""

    id: str = Field(default_factory=new_id)
    activity_id: str
    name: str
    label: str = ""
    type: FieldType = FieldType.TEXT
    required: bool = False
    order_index: int = 0
    placeholder: Optional[str] = None
    description: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    regex_pattern: Optional[str] = None
    source_activity_id: Optional[str] = None
    source_field_name: Optional[str] = None
    visibility_condition: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not FIELD_NAME_PATTERN.match(v):
            raise ValueError(
                f"field name {v!r} must only contain lowercase letters, digits and '_'"
            )
        return v

    @field_validator("options")
    @classmethod
    def _drop_blank_options(cls, v: List[str]) -> List[str]:
        return [o for o in v if o != ""]

    @model_validator(mode="after")
    def _check_range(self) -> FieldDefinition:
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        if (self.source_activity_id is None) != (self.source_field_name is None):
            raise ValueError(
                "source_activity_id and source_field_name must be set together"
            )
        return self


# ---------------------------------------------------------------------------
# Assignment configuration
# ---------------------------------------------------------------------------


class AssignmentStrategy(str, Enum):
    MANUAL = "manual"
    WORKLOAD = "workload"
    EFFICIENCY = "efficiency"
    RANDOM = "random"


class CreatorAssignment(BaseModel):
    """The instance initiator owns the activity."""

    type: Literal["creator"] = "creator"


class SpecificUserAssignment(BaseModel):
    """A fixed user owns the activity."""

    type: Literal["specific_user"] = "specific_user"
    user_id: str


class ManualAssignment(BaseModel):
    """Nobody is assigned; the activity sits in a pool.

    The pool may be narrowed to a department or position.
    """

    type: Literal["manual"] = "manual"
    department_id: Optional[str] = None
    position_id: Optional[str] = None


class DepartmentAssignment(BaseModel):
    type: Literal["department"] = "department"
    department_id: str
    strategy: AssignmentStrategy = AssignmentStrategy.MANUAL


class PositionAssignment(BaseModel):
    type: Literal["position"] = "position"
    position_id: str
    department_id: Optional[str] = None
    strategy: AssignmentStrategy = AssignmentStrategy.MANUAL


AssignmentConfig = Annotated[
    Union[
        CreatorAssignment,
        SpecificUserAssignment,
        ManualAssignment,
        DepartmentAssignment,
        PositionAssignment,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Automated actions (executed outside the core)
# ---------------------------------------------------------------------------


class ActionType(str, Enum):
    NONE = "none"
    WEBHOOK = "webhook"
    SOAP = "soap"
    FINANCE = "finance"


class ActionStep(BaseModel):
    """One HTTP-like step of an automated action."""

    id: str = Field(default_factory=new_id)
    type: ActionType = ActionType.WEBHOOK
    url: Optional[str] = None
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    auth_type: Literal["none", "bearer", "basic"] = "none"
    auth_token: Optional[str] = None
    output_variable: Optional[str] = None

    # finance steps carry extra keys (amount, category, ...)
    model_config = ConfigDict(extra="allow")


class ActionConfig(BaseModel):
    type: ActionType = ActionType.NONE
    steps: List[ActionStep] = Field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return self.type != ActionType.NONE and bool(self.steps)


# ---------------------------------------------------------------------------
# Nodes and edges
# ---------------------------------------------------------------------------


class Activity(BaseModel):
    """A node in the process graph."""

    id: str = Field(default_factory=new_id)
    kind: ActivityKind
    name: str
    description: Optional[str] = None
    position: Position = Field(default_factory=Position)
    fields: List[FieldDefinition] = Field(default_factory=list)
    due_date_hours: int = Field(default=DEFAULT_DUE_DATE_HOURS, gt=0)
    assignment: AssignmentConfig = Field(default_factory=ManualAssignment)
    action: ActionConfig = Field(default_factory=ActionConfig)

    def get_field(self, field_id: str) -> Optional[FieldDefinition]:
        return next((f for f in self.fields if f.id == field_id), None)

    def field_by_name(self, name: str) -> Optional[FieldDefinition]:
        return next((f for f in self.fields if f.name == name), None)

    @property
    def is_start(self) -> bool:
        return self.kind == ActivityKind.START

    @property
    def is_end(self) -> bool:
        return self.kind == ActivityKind.END

    @model_validator(mode="after")
    def _check_fields(self) -> Activity:
        seen: set[str] = set()
        for f in self.fields:
            if f.activity_id != self.id:
                raise ValueError(f"field {f.id} belongs to activity {f.activity_id}")
            if f.name in seen:
                raise ValueError(f"duplicate field name {f.name!r} in activity {self.id}")
            seen.add(f.name)
        return self


class Transition(BaseModel):
    """A directed, optionally conditioned edge between two activities."""

    id: str = Field(default_factory=new_id)
    source_id: str
    target_id: str
    condition: Optional[str] = None

    @field_validator("condition")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def is_default(self) -> bool:
        """``True`` for catch-all transitions without a condition."""
        return self.condition is None


def dump_activity(activity: Activity) -> dict[str, Any]:
    """Serialize an activity without its fields (they are stored apart)."""
    return activity.model_dump(mode="json", exclude={"fields"})
