"""Filter and sort expression parsing.

Filter expressions compare fields with literals or other fields and combine
comparisons with ``&&``, ``||`` and parentheses::

    message != "" && (author.name ~ 'ann' || created >= "2024-01-01")
    ownerId = @request.auth.id

Supported operators are ``=``, ``!=``, ``>``, ``>=``, ``<``, ``<=``, ``~``
(contains) and ``!~`` (does not contain). Sort expressions are comma
separated field names, optionally prefixed with ``-`` (descending) or ``+``.

Parsing only checks syntax; field names are checked against a collection
schema by :mod:`collection_export.lib.store.resolver`.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from collection_export.lib.store.errors import FilterSyntaxError


class Operator(StrEnum):
    EQ = "="
    NEQ = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "~"
    NOT_LIKE = "!~"


class SortDirection(StrEnum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    """A dotted field path or an ``@`` macro such as ``@request.auth.id``."""

    path: str

    @property
    def is_macro(self) -> bool:
        return self.path.startswith("@")


Operand = Literal | Identifier


@dataclass(frozen=True)
class Comparison:
    left: Operand
    op: Operator
    right: Operand


@dataclass(frozen=True)
class Logical:
    """Conjunction (``and``) or disjunction (``or``) of sub-expressions."""

    op: str
    operands: tuple["Expression", ...]


Expression = Comparison | Logical


@dataclass(frozen=True)
class SortField:
    name: str
    direction: SortDirection = SortDirection.ASC


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<op>!=|>=|<=|!~|&&|\|\||[=<>~()])
  | (?P<ident>@?[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
    """,
    re.VERBOSE,
)

_FIELD_NAME_RE = re.compile(r"^@?[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*$")

_KEYWORDS: dict[str, Any] = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    position: int


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if match is None:
            raise FilterSyntaxError(expression, f"unexpected character {expression[position]!r}", position)
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, match.group(), position))
        position = match.end()
    return tokens


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


class _Parser:
    """Recursive-descent parser over the token list."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.index = 0

    def _peek(self) -> _Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterSyntaxError(self.expression, "unexpected end of expression", len(self.expression))
        self.index += 1
        return token

    def parse(self) -> Expression:
        if not self.tokens:
            raise FilterSyntaxError(self.expression, "empty expression")
        expr = self._parse_or()
        token = self._peek()
        if token is not None:
            raise FilterSyntaxError(self.expression, f"unexpected token {token.value!r}", token.position)
        return expr

    def _parse_or(self) -> Expression:
        operands = [self._parse_and()]
        while (token := self._peek()) is not None and token.value == "||":
            self.index += 1
            operands.append(self._parse_and())
        return operands[0] if len(operands) == 1 else Logical("or", tuple(operands))

    def _parse_and(self) -> Expression:
        operands = [self._parse_primary()]
        while (token := self._peek()) is not None and token.value == "&&":
            self.index += 1
            operands.append(self._parse_primary())
        return operands[0] if len(operands) == 1 else Logical("and", tuple(operands))

    def _parse_primary(self) -> Expression:
        token = self._peek()
        if token is not None and token.value == "(":
            self.index += 1
            expr = self._parse_or()
            closing = self._next()
            if closing.value != ")":
                raise FilterSyntaxError(self.expression, "expected ')'", closing.position)
            return expr
        left = self._parse_operand()
        op_token = self._next()
        try:
            op = Operator(op_token.value)
        except ValueError:
            raise FilterSyntaxError(
                self.expression, f"expected comparison operator, got {op_token.value!r}", op_token.position
            ) from None
        right = self._parse_operand()
        return Comparison(left, op, right)

    def _parse_operand(self) -> Operand:
        token = self._next()
        if token.kind == "string":
            return Literal(_unquote(token.value))
        if token.kind == "number":
            number = float(token.value)
            return Literal(int(number) if number.is_integer() and "." not in token.value else number)
        if token.kind == "ident":
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return Identifier(token.value)
        raise FilterSyntaxError(self.expression, f"expected operand, got {token.value!r}", token.position)


def parse_filter(expression: str) -> Expression:
    """Parse a filter expression into an expression tree.

    Args:
        expression: The filter string.

    Returns:
        The root expression node.

    Raises:
        FilterSyntaxError: If the expression is not well formed.
    """
    return _Parser(expression).parse()


def parse_sort(expression: str) -> list[SortField]:
    """Parse a sort expression such as ``-created,title``.

    Args:
        expression: Comma-separated field names with optional ``-``/``+`` prefix.

    Returns:
        Sort fields in order; empty for an empty expression.

    Raises:
        FilterSyntaxError: If a field name is not a valid identifier.
    """
    fields: list[SortField] = []
    for raw in expression.split(","):
        item = raw.strip()
        if not item:
            continue
        direction = SortDirection.ASC
        if item[0] in "-+":
            direction = SortDirection.DESC if item[0] == "-" else SortDirection.ASC
            item = item[1:].strip()
        if not _FIELD_NAME_RE.match(item):
            raise FilterSyntaxError(expression, f"invalid sort field {item!r}")
        fields.append(SortField(item, direction))
    return fields
