"""Non-fatal diagnostics reported alongside core results."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    BROKEN_CONDITION = "broken_condition"
    NO_ELIGIBLE_ASSIGNEE = "no_eligible_assignee"
    UNREACHABLE_ACTIVITY = "unreachable_activity"
    DUPLICATE_TRANSITION = "duplicate_transition"
    NO_START_ACTIVITY = "no_start_activity"
    INVALID_FIELD_SOURCE = "invalid_field_source"
    DEAD_END_ACTIVITY = "dead_end_activity"
    SKIPPED_ELEMENT = "skipped_element"
    OUTLIER_DURATION = "outlier_duration"


class Diagnostic(BaseModel):
    """A recoverable problem the caller may want to surface."""

    kind: DiagnosticKind
    message: str
    subject_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class Diagnostics:
    """Ordered collector of :class:`Diagnostic` records.

    Every recorded diagnostic is also logged at WARNING level so that
    callers which ignore the collector still leave a trace.
    """

    def __init__(self, items: Iterable[Diagnostic] = ()) -> None:
        self._items: List[Diagnostic] = list(items)

    def warn(
        self,
        kind: DiagnosticKind,
        message: str,
        subject_id: Optional[str] = None,
        **context: Any,
    ) -> Diagnostic:
        diagnostic = Diagnostic(
            kind=kind, message=message, subject_id=subject_id, context=context
        )
        self._items.append(diagnostic)
        logger.warning(f"[{kind.value}] {message}")
        return diagnostic

    def extend(self, other: Iterable[Diagnostic]) -> None:
        self._items.extend(other)

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        return [d for d in self._items if d.kind == kind]

    def has(self, kind: DiagnosticKind) -> bool:
        return any(d.kind == kind for d in self._items)

    def to_list(self) -> list[Diagnostic]:
        return list(self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
