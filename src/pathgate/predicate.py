# predicate.py
"""
Gating predicates: boolean expressions over classification flags.

An expression is a small tree of Always / Flag / Not / And / Or nodes,
evaluated recursively against a flag mapping. Expressions can be built
with operators:

    flag("main") | flag("docs")
    flag("main") & ~flag("infra")

or parsed from text:

    parse("main || docs")
    parse("main and not infra")
    parse("always")
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Mapping, Tuple, Union

from .errors import ConfigError


class Expr:
    """Base class for predicate nodes."""

    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        raise NotImplementedError

    def flags(self) -> FrozenSet[str]:
        """Names of every flag referenced by this expression."""
        raise NotImplementedError

    def __and__(self, other: Expr) -> Expr:
        return And((self, other))

    def __or__(self, other: Expr) -> Expr:
        return Or((self, other))

    def __invert__(self) -> Expr:
        return Not(self)


@dataclass(frozen=True)
class Always(Expr):
    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        return True

    def flags(self) -> FrozenSet[str]:
        return frozenset()

    def __str__(self) -> str:
        return "always"


@dataclass(frozen=True)
class Flag(Expr):
    name: str

    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        if self.name not in flags:
            raise ConfigError(f"Predicate references unknown flag '{self.name}'")
        return bool(flags[self.name])

    def flags(self) -> FrozenSet[str]:
        return frozenset({self.name})

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr

    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        return not self.operand.evaluate(flags)

    def flags(self) -> FrozenSet[str]:
        return self.operand.flags()

    def __str__(self) -> str:
        return f"!{_wrap(self.operand)}"


@dataclass(frozen=True)
class And(Expr):
    operands: Tuple[Expr, ...]

    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        return all(op.evaluate(flags) for op in self.operands)

    def flags(self) -> FrozenSet[str]:
        return frozenset().union(*(op.flags() for op in self.operands))

    def __str__(self) -> str:
        return " && ".join(_wrap(op) for op in self.operands)


@dataclass(frozen=True)
class Or(Expr):
    operands: Tuple[Expr, ...]

    def evaluate(self, flags: Mapping[str, bool]) -> bool:
        return any(op.evaluate(flags) for op in self.operands)

    def flags(self) -> FrozenSet[str]:
        return frozenset().union(*(op.flags() for op in self.operands))

    def __str__(self) -> str:
        return " || ".join(_wrap(op) for op in self.operands)


ALWAYS = Always()


def _wrap(expr: Expr) -> str:
    if isinstance(expr, (And, Or)):
        return f"({expr})"
    return str(expr)


def flag(name: str) -> Flag:
    return Flag(name)


def any_of(*names: str) -> Expr:
    """OR of plain flag names, the common "run if any of these changed" case."""
    if not names:
        raise ConfigError("any_of() needs at least one flag name")
    if len(names) == 1:
        return Flag(names[0])
    return Or(tuple(Flag(n) for n in names))


def all_of(*names: str) -> Expr:
    if not names:
        raise ConfigError("all_of() needs at least one flag name")
    if len(names) == 1:
        return Flag(names[0])
    return And(tuple(Flag(n) for n in names))


# ---------------------------------------------------------------------
# Text syntax
# ---------------------------------------------------------------------

_TOKEN_RE = re.compile(r"\s*(?:(\|\||&&|!|\(|\))|([A-Za-z_][A-Za-z0-9_-]*))")
_KEYWORDS = {"and": "&&", "or": "||", "not": "!"}
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*\Z")
RESERVED_NAMES = frozenset({"always", "true", *_KEYWORDS})


def is_flag_name(name: str) -> bool:
    """True if `name` can be referenced from a text predicate."""
    return bool(_NAME_RE.match(name)) and name not in RESERVED_NAMES


def _tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise ConfigError(f"Invalid predicate {text!r}: unexpected input at offset {pos}")
        op, word = m.group(1), m.group(2)
        tokens.append(op if op is not None else _KEYWORDS.get(word, word))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def _peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> str:
        tok = self._peek()
        if tok is None:
            raise ConfigError(f"Invalid predicate {self.text!r}: unexpected end of expression")
        self.pos += 1
        return tok

    def parse(self) -> Expr:
        if not self.tokens:
            raise ConfigError("Empty predicate")
        expr = self._or()
        if self._peek() is not None:
            raise ConfigError(f"Invalid predicate {self.text!r}: unexpected {self._peek()!r}")
        return expr

    def _or(self) -> Expr:
        items = [self._and()]
        while self._peek() == "||":
            self._take()
            items.append(self._and())
        return items[0] if len(items) == 1 else Or(tuple(items))

    def _and(self) -> Expr:
        items = [self._unary()]
        while self._peek() == "&&":
            self._take()
            items.append(self._unary())
        return items[0] if len(items) == 1 else And(tuple(items))

    def _unary(self) -> Expr:
        if self._peek() == "!":
            self._take()
            return Not(self._unary())
        return self._atom()

    def _atom(self) -> Expr:
        tok = self._take()
        if tok == "(":
            expr = self._or()
            if self._take() != ")":
                raise ConfigError(f"Invalid predicate {self.text!r}: expected ')'")
            return expr
        if tok in ("always", "true"):
            return ALWAYS
        if tok in ("||", "&&", "!", ")"):
            raise ConfigError(f"Invalid predicate {self.text!r}: unexpected {tok!r}")
        return Flag(tok)


def parse(text: str) -> Expr:
    """Parse a predicate such as "main || docs" into an expression tree."""
    return _Parser(text).parse()


def as_expr(value: Union[Expr, str, bool, None]) -> Expr:
    """Coerce the DSL/manifest spellings of a predicate into an Expr."""
    if value is None or value is True:
        return ALWAYS
    if isinstance(value, Expr):
        return value
    if isinstance(value, str):
        return parse(value)
    raise ConfigError(f"Unsupported predicate value: {value!r}")
