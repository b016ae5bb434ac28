"""Activity forms: visibility, submission validation and prefill."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..conditions import evaluate
from ..diagnostics import Diagnostics
from ..graph.models import NUMERIC_FIELD_TYPES, Activity, FieldDefinition, FieldType
from .models import HistoryAction, HistoryEntry

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_field_visible(
    field: FieldDefinition,
    variables: Mapping[str, Any],
    diagnostics: Optional[Diagnostics] = None,
) -> bool:
    return evaluate(
        field.visibility_condition, variables, diagnostics, subject_id=field.id
    )


def visible_fields(
    activity: Activity,
    variables: Mapping[str, Any],
    diagnostics: Optional[Diagnostics] = None,
) -> List[FieldDefinition]:
    """Fields of ``activity`` shown for ``variables``, in form order."""
    ordered = sorted(activity.fields, key=lambda f: f.order_index)
    return [f for f in ordered if is_field_visible(f, variables, diagnostics)]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _check_value(field: FieldDefinition, value: Any) -> Optional[str]:
    if field.type in NUMERIC_FIELD_TYPES:
        number = _to_number(value)
        if number is None:
            return "must be a number"
        if field.min_value is not None and number < field.min_value:
            return f"must be at least {field.min_value:g}"
        if field.max_value is not None and number > field.max_value:
            return f"must be at most {field.max_value:g}"

    elif field.type == FieldType.EMAIL:
        if not EMAIL_RE.match(str(value).strip()):
            return "must be a valid email address"

    elif field.type == FieldType.SELECT:
        if field.options and str(value) not in field.options:
            return f"must be one of: {', '.join(field.options)}"

    elif field.type == FieldType.BOOLEAN:
        if not isinstance(value, bool) and str(value).strip().lower() not in ("true", "false"):
            return "must be true or false"

    elif field.type == FieldType.DATE:
        if not isinstance(value, (date, datetime)):
            try:
                date.fromisoformat(str(value).strip()[:10])
            except ValueError:
                return "must be a date (YYYY-MM-DD)"

    if field.regex_pattern:
        try:
            if re.fullmatch(field.regex_pattern, str(value)) is None:
                return "does not match the expected format"
        except re.error as exc:
            logger.warning(
                f"Ignoring invalid pattern {field.regex_pattern!r} on field {field.name}: {exc}"
            )
    return None


def validate_submission(
    activity: Activity,
    submitted: Mapping[str, Any],
    variables: Optional[Mapping[str, Any]] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[str, str]:
    """Check ``submitted`` against the visible fields of ``activity``.

    Returns a mapping of field name to error message; an empty mapping
    means the submission is valid. Hidden fields are never required.
    Unknown keys are accepted since automated actions may add outputs.
    """
    scope = {**(variables or {}), **submitted}
    errors: Dict[str, str] = {}
    for field in visible_fields(activity, scope, diagnostics):
        value = submitted.get(field.name)
        if _is_blank(value):
            if field.required:
                errors[field.name] = f"{field.label or field.name} is required"
            continue
        problem = _check_value(field, value)
        if problem:
            errors[field.name] = f"{field.label or field.name} {problem}"
    return errors


def data_by_activity(history: Iterable[HistoryEntry]) -> Dict[str, Dict[str, Any]]:
    """Latest submitted data per activity, taken from ``completed`` entries."""
    collected: Dict[str, Dict[str, Any]] = {}
    for entry in sorted(history, key=lambda e: e.created_at):
        if entry.action == HistoryAction.COMPLETED and entry.data:
            collected[entry.activity_id] = dict(entry.data)
    return collected


def prefill_values(
    activity: Activity, data: Mapping[str, Mapping[str, Any]]
) -> Dict[str, Any]:
    """Initial values for fields that reference an upstream field.

    ``data`` maps activity ids to the values submitted there, as returned
    by :func:`data_by_activity`.
    """
    values: Dict[str, Any] = {}
    for field in activity.fields:
        if field.source_activity_id is None:
            continue
        value = data.get(field.source_activity_id, {}).get(field.source_field_name or "")
        if value is not None:
            values[field.name] = value
    return values
