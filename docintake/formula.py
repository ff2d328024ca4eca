"""Small arithmetic-expression evaluator for formula validation rules.

Grammar (recursive descent, no dynamic code execution)::

    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | NAME | "(" expr ")"

``NAME`` is a field path such as ``subtotal`` or ``totals.tax``; its value
comes from the caller-supplied resolver.
"""

from __future__ import annotations

import re
from typing import Callable, Mapping, Union

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+(?:\.\d*)?|\.\d+)|(?P<name>[A-Za-z_][A-Za-z0-9_.]*)|(?P<op>[-+*/()]))"
)

Resolver = Union[Callable[[str], float], Mapping[str, float]]


class FormulaError(ValueError):
    """Raised for malformed expressions or arithmetic errors."""


def tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    expression = expression.rstrip()
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None or match.end() == pos:
            raise FormulaError(f"Unexpected character at {pos}: {expression[pos:pos + 10]!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]], lookup: Callable[[str], float]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.lookup = lookup

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise FormulaError("Unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise FormulaError("Empty expression")
        value = self._expr()
        if self._peek() is not None:
            raise FormulaError(f"Unexpected token {self._peek()[1]!r}")
        return value

    def _expr(self) -> float:
        value = self._term()
        while (token := self._peek()) is not None and token[1] in ("+", "-"):
            self._next()
            rhs = self._term()
            value = value + rhs if token[1] == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._factor()
        while (token := self._peek()) is not None and token[1] in ("*", "/"):
            self._next()
            rhs = self._factor()
            if token[1] == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise FormulaError("Division by zero")
                value = value / rhs
        return value

    def _factor(self) -> float:
        kind, value = self._next()
        if kind == "op" and value in ("+", "-"):
            operand = self._factor()
            return operand if value == "+" else -operand
        if kind == "number":
            return float(value)
        if kind == "name":
            return float(self.lookup(value))
        if value == "(":
            inner = self._expr()
            kind, closing = self._next()
            if closing != ")":
                raise FormulaError("Missing closing parenthesis")
            return inner
        raise FormulaError(f"Unexpected token {value!r}")


def evaluate(expression: str, variables: Resolver) -> float:
    """Evaluate *expression*; names are resolved through *variables*."""
    if isinstance(variables, Mapping):
        mapping = variables

        def lookup(name: str) -> float:
            if name not in mapping:
                raise FormulaError(f"Unknown variable {name!r}")
            return mapping[name]
    else:
        lookup = variables
    return _Parser(tokenize(expression), lookup).parse()
