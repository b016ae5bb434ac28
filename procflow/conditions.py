"""Condition language used by transitions and field visibility rules.

The language is a small boolean expression grammar::

    expr       := and_expr ("||" and_expr)*
    and_expr   := not_expr ("&&" not_expr)*
    not_expr   := "!" not_expr | comparison
    comparison := operand (("==" | "=" | "!=" | ">" | "<" | ">=" | "<=") operand)?
    operand    := NUMBER | STRING | "true" | "false" | IDENT | "(" expr ")"

Identifiers are resolved against a flat mapping of process variables. A
missing (or ``None``) identifier is *undefined*: it is falsy and every
comparison involving it, ``!=`` included, is false. Numeric strings compare
as numbers, other strings compare case-insensitively for (in)equality.

:func:`evaluate` never raises. Blank expressions hold; malformed ones are
reported through the diagnostics channel and evaluate to ``False``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Mapping, Optional, Union

from .diagnostics import DiagnosticKind, Diagnostics
from .errors import ConditionError, ConditionEvaluationError, ConditionSyntaxError

logger = logging.getLogger(__name__)


class _Undefined:
    _instance: Optional[_Undefined] = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>-?(?:\d+(?:\.\d+)?|\.\d+))
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<op>&&|\|\||==|!=|>=|<=|=|>|<|!|\(|\))
  | (?P<ident>[A-Za-z_][A-Za-z0-9_.]*)
    """,
    re.VERBOSE,
)
_NUMERIC_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d+)?|\.\d+)$")
_COMPARISON_OPS = frozenset({"==", "=", "!=", ">", "<", ">=", "<="})


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    position: int


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Union[str, float, bool]


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Not:
    operand: "Expression"


@dataclass(frozen=True)
class BoolOp:
    op: str
    operands: tuple["Expression", ...]


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Expression"
    right: "Expression"


Expression = Union[Literal, Name, Not, BoolOp, Compare]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _tokenize(source: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise ConditionSyntaxError(
                f"Unexpected character {source[pos]!r} at position {pos}", pos
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    return tokens


def _unquote(raw: str) -> str:
    return re.sub(r"\\(.)", r"\1", raw[1:-1])


class _Parser:
    def __init__(self, source: str) -> None:
        self._tokens = _tokenize(source)
        self._index = 0

    def parse(self) -> Expression:
        if not self._tokens:
            raise ConditionSyntaxError("Empty expression", 0)
        expr = self._or()
        token = self._peek()
        if token is not None:
            raise ConditionSyntaxError(
                f"Unexpected {token.value!r} at position {token.position}",
                token.position,
            )
        return expr

    def _peek(self) -> Optional[_Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _accept(self, *values: str) -> Optional[_Token]:
        token = self._peek()
        if token is not None and token.kind == "op" and token.value in values:
            self._index += 1
            return token
        return None

    def _or(self) -> Expression:
        operands = [self._and()]
        while self._accept("||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else BoolOp("||", tuple(operands))

    def _and(self) -> Expression:
        operands = [self._not()]
        while self._accept("&&"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else BoolOp("&&", tuple(operands))

    def _not(self) -> Expression:
        if self._accept("!"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Expression:
        left = self._operand()
        token = self._accept(*_COMPARISON_OPS)
        if token is None:
            return left
        op = "==" if token.value == "=" else token.value
        return Compare(op, left, self._operand())

    def _operand(self) -> Expression:
        token = self._peek()
        if token is None:
            raise ConditionSyntaxError("Unexpected end of expression")
        self._index += 1
        if token.kind == "number":
            return Literal(float(token.value))
        if token.kind == "string":
            return Literal(_unquote(token.value))
        if token.kind == "ident":
            lowered = token.value.lower()
            if lowered in ("true", "false"):
                return Literal(lowered == "true")
            return Name(token.value)
        if token.kind == "op" and token.value == "(":
            expr = self._or()
            if not self._accept(")"):
                raise ConditionSyntaxError(
                    f"Missing ')' for '(' at position {token.position}",
                    token.position,
                )
            return expr
        raise ConditionSyntaxError(
            f"Unexpected {token.value!r} at position {token.position}", token.position
        )


@lru_cache(maxsize=512)
def parse(expression: str) -> Expression:
    """Parse ``expression`` into an AST, raising :class:`ConditionSyntaxError`."""
    return _Parser(expression).parse()


def check_syntax(expression: Optional[str]) -> Optional[str]:
    """Return a syntax error message for ``expression`` or ``None``."""
    if is_blank(expression):
        return None
    try:
        parse(expression.strip())
    except ConditionSyntaxError as exc:
        return str(exc)
    return None


def is_blank(expression: Optional[str]) -> bool:
    return expression is None or not expression.strip()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _truthy(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, str):
        return value.strip() != "" and value.strip().lower() != "false"
    return bool(value)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        return float(value.strip())
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _compare(op: str, left: Any, right: Any) -> bool:
    # a comparison on a missing variable never holds, whatever the operator
    if left is UNDEFINED or right is UNDEFINED:
        return False

    if isinstance(left, bool) or isinstance(right, bool):
        lb, rb = _as_bool(left), _as_bool(right)
        if op in ("==", "!="):
            equal = lb is not None and lb == rb
            return equal if op == "==" else not equal
        raise ConditionEvaluationError(f"Cannot order boolean values with {op!r}")

    ln, rn = _as_number(left), _as_number(right)
    if ln is not None and rn is not None:
        return {
            "==": ln == rn,
            "!=": ln != rn,
            ">": ln > rn,
            "<": ln < rn,
            ">=": ln >= rn,
            "<=": ln <= rn,
        }[op]

    if op in ("==", "!="):
        equal = str(left).casefold() == str(right).casefold()
        return equal if op == "==" else not equal
    if isinstance(left, str) and isinstance(right, str):
        return {">": left > right, "<": left < right, ">=": left >= right, "<=": left <= right}[op]
    raise ConditionEvaluationError(
        f"Cannot order {type(left).__name__} and {type(right).__name__} with {op!r}"
    )


def _eval(node: Expression, variables: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Name):
        value = variables.get(node.name, UNDEFINED)
        return UNDEFINED if value is None else value
    if isinstance(node, Not):
        return not _truthy(_eval(node.operand, variables))
    if isinstance(node, BoolOp):
        if node.op == "&&":
            return all(_truthy(_eval(o, variables)) for o in node.operands)
        return any(_truthy(_eval(o, variables)) for o in node.operands)
    if isinstance(node, Compare):
        return _compare(node.op, _eval(node.left, variables), _eval(node.right, variables))
    raise ConditionEvaluationError(f"Unsupported node {node!r}")  # pragma: no cover


def evaluate_strict(expression: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate ``expression`` raising :class:`ConditionError` on failure."""
    if is_blank(expression):
        return True
    return _truthy(_eval(parse(expression.strip()), variables))


def evaluate(
    expression: Optional[str],
    variables: Mapping[str, Any],
    diagnostics: Optional[Diagnostics] = None,
    *,
    subject_id: Optional[str] = None,
) -> bool:
    """Decide whether ``expression`` holds for ``variables``.

    Blank expressions hold. A broken expression evaluates to ``False`` and a
    ``broken_condition`` diagnostic is recorded on ``diagnostics``.
    """
    if is_blank(expression):
        return True
    try:
        return evaluate_strict(expression, variables)
    except ConditionError as exc:
        sink = diagnostics if diagnostics is not None else Diagnostics()
        sink.warn(
            DiagnosticKind.BROKEN_CONDITION,
            f"Condition {expression!r} could not be evaluated: {exc}",
            subject_id=subject_id,
            expression=expression,
        )
        return False
