"""
Parser for the expression surface used in declaration files.

Supported forms::

    module.<name>.<attribute>[.<attribute>...]
    module.<name>["<key>"].<attribute>      (integer keys: module.<name>[0])
    module.<name>  /  module.<name>["<key>"]
    <expr>[<expr>]
    length(<expr>)
    var.<name>  each.key  each.value  count.index
    "strings", 42, true, false, { key = value, "other": value }

Anything beyond that (operators, conditionals, interpolation) is rejected.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from modtree.core.expressions import (
    AttributeRef,
    EachRef,
    Expression,
    FunctionCall,
    Indexed,
    Literal,
    MapLiteral,
    ModuleRef,
    VariableRef,
)
from modtree.exceptions import DeclarationError, ExpressionSyntaxError

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<int>-?\d+)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_-]*)
  | (?P<punct>[.\[\](){},=:])
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: Any
    position: int


def _tokenize(text: str) -> list[_Token]:
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            raise ExpressionSyntaxError(f"unexpected character {text[position]!r}", text=text, position=position)
        kind = match.lastgroup
        raw = match.group()
        if kind == "string":
            tokens.append(_Token("string", json.loads(raw), position))
        elif kind == "int":
            tokens.append(_Token("int", int(raw), position))
        elif kind in ("ident", "punct"):
            tokens.append(_Token(kind, raw, position))
        position = match.end()
    tokens.append(_Token("eof", None, len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def error(self, message: str, token: _Token | None = None) -> ExpressionSyntaxError:
        token = token or self.current
        return ExpressionSyntaxError(message, text=self.text, position=token.position)

    def advance(self) -> _Token:
        token = self.current
        self.index += 1
        return token

    def accept(self, value: str) -> bool:
        if self.current.kind in ("punct", "ident") and self.current.value == value:
            self.index += 1
            return True
        return False

    def expect(self, value: str) -> _Token:
        if not (self.current.kind in ("punct", "ident") and self.current.value == value):
            raise self.error(f"expected {value!r}")
        return self.advance()

    def expect_ident(self) -> str:
        if self.current.kind != "ident":
            raise self.error("expected a name")
        return self.advance().value

    def parse(self) -> Expression:
        expr = self.expression()
        if self.current.kind != "eof":
            raise self.error(f"unexpected {self.current.value!r}")
        return expr

    def expression(self) -> Expression:
        expr = self.primary()
        while self.current.kind == "punct" and self.current.value in ("[", "."):
            if self.current.value == ".":
                raise self.error("attribute access is only supported on module references")
            self.advance()
            key = self.expression()
            self.expect("]")
            expr = Indexed(expr, key)
        return expr

    def primary(self) -> Expression:
        token = self.current
        if token.kind in ("string", "int"):
            self.advance()
            return Literal(token.value)
        if token.kind == "punct" and token.value == "{":
            return self.mapping()
        if token.kind == "punct" and token.value == "(":
            self.advance()
            expr = self.expression()
            self.expect(")")
            return expr
        if token.kind != "ident":
            raise self.error("expected an expression")

        name = self.advance().value
        if name in _KEYWORDS:
            return Literal(_KEYWORDS[name])
        if self.accept("("):
            return self.call(name)
        if name == "module":
            return self.module_reference()
        if name == "var":
            self.expect(".")
            return VariableRef(self.expect_ident())
        if name == "each":
            self.expect(".")
            attribute = self.expect_ident()
            if attribute not in ("key", "value"):
                raise self.error(f"unknown attribute each.{attribute}", token)
            return EachRef(attribute)
        if name == "count":
            self.expect(".")
            if self.expect_ident() != "index":
                raise self.error("only count.index is supported", token)
            return EachRef("index")
        raise self.error(f"unknown name {name!r}", token)

    def call(self, name: str) -> Expression:
        args: list[Expression] = []
        if not self.accept(")"):
            args.append(self.expression())
            while self.accept(","):
                args.append(self.expression())
            self.expect(")")
        return FunctionCall(name, tuple(args))

    def module_reference(self) -> Expression:
        self.expect(".")
        module = self.expect_ident()
        key: Any = None
        if self.current.kind == "punct" and self.current.value == "[":
            bracket = self.advance()
            key_expr = self.expression()
            self.expect("]")
            if not isinstance(key_expr, Literal):
                if self.current.kind == "punct" and self.current.value == ".":
                    raise self.error("instance key must be a literal when selecting an attribute", bracket)
                return Indexed(ModuleRef(module), key_expr)
            key = key_expr.value

        path: list[str] = []
        while self.accept("."):
            path.append(self.expect_ident())

        if not path:
            return ModuleRef(module) if key is None else Indexed(ModuleRef(module), Literal(key))
        return AttributeRef(module, key, tuple(path))

    def mapping(self) -> MapLiteral:
        open_token = self.expect("{")
        entries: list[tuple[Any, Expression]] = []
        seen: set[Any] = set()
        while not self.accept("}"):
            key_token = self.current
            if key_token.kind not in ("ident", "string", "int"):
                raise self.error("expected a map key")
            self.advance()
            if not (self.accept("=") or self.accept(":")):
                raise self.error("expected '=' or ':' after map key")
            if key_token.value in seen:
                raise DeclarationError(
                    f"Duplicate key {key_token.value!r} in map at position {open_token.position}",
                    details={"key": key_token.value, "text": self.text},
                )
            seen.add(key_token.value)
            entries.append((key_token.value, self.expression()))
            if not self.accept(","):
                self.expect("}")
                break
        return MapLiteral(tuple(entries))


def parse_expression(text: str) -> Expression:
    """
    Parse expression text into an Expression tree.

    Raises:
        ExpressionSyntaxError: if the text is not a supported expression
        DeclarationError: if an inline map repeats a key
    """
    return _Parser(text).parse()


_INTERPOLATION_RE = re.compile(r"^\$\{(.*)\}$", re.DOTALL)


def from_value(value: Any) -> Expression:
    """
    Convert a value loaded from YAML/JSON into an Expression.

    Strings of the form ``${...}`` are parsed as expressions; other strings
    are literals. Mappings become inline maps so nested ``${...}`` values
    are still evaluated.
    """
    if isinstance(value, str):
        match = _INTERPOLATION_RE.match(value.strip())
        if match:
            return parse_expression(match.group(1))
        return Literal(value)
    if isinstance(value, dict):
        return MapLiteral(tuple((k, from_value(v)) for k, v in value.items()))
    if isinstance(value, list):
        converted = [from_value(v) for v in value]
        if all(isinstance(c, Literal) for c in converted):
            return Literal([c.value for c in converted])
        raise DeclarationError("Expressions inside lists are not supported", details={"value": value})
    return Literal(value)
