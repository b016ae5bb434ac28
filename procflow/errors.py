"""Exceptions and typed failure results."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProcflowError(Exception):
    """Base class for procflow exceptions."""


class GraphModelError(ProcflowError, ValueError):
    """Invalid use of the graph editing API."""


class NotFoundError(ProcflowError, LookupError):
    """A workflow or process instance does not exist in the repository."""


class ConditionError(ProcflowError):
    """A condition expression could not be evaluated."""


class ConditionSyntaxError(ConditionError):
    """The expression is not valid in the condition language."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class ConditionEvaluationError(ConditionError):
    """The expression parsed but its operands could not be compared."""


class AdvancementError(ProcflowError):
    """Raised by :meth:`AdvancementFailure.raise_for_failure`."""

    def __init__(self, failure: "AdvancementFailure") -> None:
        super().__init__(failure.message)
        self.failure = failure


class ConversionError(ProcflowError):
    """Raised by :meth:`ConversionFailure.raise_for_failure`."""

    def __init__(self, failure: "ConversionFailure") -> None:
        super().__init__(failure.message)
        self.failure = failure


class AdvancementCode(str, Enum):
    NO_VIABLE_TRANSITION = "no_viable_transition"
    NOT_ACTIVE = "not_active"
    UNKNOWN_ACTIVITY = "unknown_activity"
    NO_START_ACTIVITY = "no_start_activity"
    AMBIGUOUS_START = "ambiguous_start"
    INVALID_SUBMISSION = "invalid_submission"


class AdvancementFailure(BaseModel):
    """Fatal outcome of a single start or advance request."""

    code: AdvancementCode
    message: str
    process_id: Optional[str] = None
    activity_id: Optional[str] = None
    errors: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def raise_for_failure(self) -> None:
        raise AdvancementError(self)


class ConversionFailure(BaseModel):
    """Fatal outcome of an interchange import."""

    message: str
    detail: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def raise_for_failure(self) -> None:
        raise ConversionError(self)
