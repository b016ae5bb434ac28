"""``{{variable}}`` substitution for instance names and messages."""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Tuple

from ..graph.models import normalize_field_name

PLACEHOLDER_RE = re.compile(r"{{(.*?)}}")


def placeholders(template: str) -> List[str]:
    return [m.group(1).strip() for m in PLACEHOLDER_RE.finditer(template)]


def _lookup(data: Mapping[str, Any], name: str) -> Optional[str]:
    for key in (name, normalize_field_name(name)):
        value = data.get(key)
        if value is not None and value != "":
            return str(value)
    return None


def _substitute(template: str, data: Mapping[str, Any]) -> Tuple[str, List[str]]:
    missing: List[str] = []

    def replace(match: re.Match) -> str:
        name = match.group(1).strip()
        value = _lookup(data, name)
        if value is None:
            missing.append(name)
            return match.group(0)
        return value

    return PLACEHOLDER_RE.sub(replace, template), missing


def substitute_variables(template: str, data: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders with values from ``data``.

    A placeholder is looked up verbatim first, then by its normalized field
    name, so ``{{Invoice Number}}`` finds ``invoice_number``. Placeholders
    without a non-empty value are left untouched.
    """
    return _substitute(template, data)[0]


def resolve_instance_name(
    template: Optional[str], data: Mapping[str, Any]
) -> Optional[str]:
    """The instance name produced by ``template``, or ``None``.

    ``None`` is returned when there is no template or when any placeholder
    could not be resolved; a half-filled name is never used.
    """
    if not template:
        return None
    name, missing = _substitute(template, data)
    if missing:
        return None
    return name.strip() or None
