"""
Expression parser.

Tokenizes and parses the rule expression language into a small AST.
The grammar is a restricted, JavaScript-flavoured expression subset:

    arrow       := IDENT '=>' arrow | '(' params ')' '=>' arrow | conditional
    conditional := nullish ('?' arrow ':' arrow)?
    nullish     := or ('??' or)*
    or          := and ('||' and)*
    and         := equality ('&&' equality)*
    equality    := relational (('==' | '!=' | '===' | '!==') relational)*
    relational  := additive (('<' | '<=' | '>' | '>=' | 'in') additive)*
    additive    := multiplicative (('+' | '-') multiplicative)*
    multiplicative := exponent (('*' | '/' | '%') exponent)*
    exponent    := unary ('**' exponent)?
    unary       := ('!' | '-' | '+' | 'typeof') unary | postfix
    postfix     := primary ('.' IDENT | '?.' IDENT | '[' arrow ']' | '(' args ')')*
    primary     := NUMBER | STRING | literal | IDENT | '(' arrow ')' | array | object

There are no statements, assignments or declarations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Tuple

from .errors import EvaluationBudgetExceeded, ExpressionSyntaxError

MAX_EXPRESSION_LENGTH = 4096
MAX_NESTING_DEPTH = 64

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    |(?P<op>===|!==|\*\*|=>|==|!=|<=|>=|&&|\|\||\?\?|\?\.(?!\d)|[-+*/%<>!?:.,()\[\]{}])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.DOTALL)

KEYWORD_LITERALS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class Token:
    kind: str  # number | string | name | op | eof
    value: Any
    pos: int


# --- AST nodes ---

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Undefined:
    pass


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class Member:
    obj: Any
    prop: str
    optional: bool = False


@dataclass(frozen=True)
class Index:
    obj: Any
    key: Any
    optional: bool = False


@dataclass(frozen=True)
class Call:
    callee: Any
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    op: str  # && || ??
    left: Any
    right: Any


@dataclass(frozen=True)
class Conditional:
    test: Any
    consequent: Any
    alternate: Any


@dataclass(frozen=True)
class ArrayLiteral:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class ObjectLiteral:
    entries: Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True)
class Arrow:
    params: Tuple[str, ...]
    body: Any


def _unescape(raw: str) -> str:
    def repl(match: "re.Match[str]") -> str:
        esc = match.group(1)
        if esc[0] in ("u", "x") and len(esc) > 1:
            return chr(int(esc[1:], 16))
        return _ESCAPES.get(esc, esc)

    return _ESCAPE_RE.sub(repl, raw)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionSyntaxError(f"Unexpected character {text[pos]!r} at position {pos}", text)
        kind = match.lastgroup
        raw = match.group(kind)
        if kind == "number":
            number = float(raw)
            value = int(number) if number.is_integer() and "e" not in raw.lower() and "." not in raw else number
            tokens.append(Token("number", value, pos))
        elif kind == "string":
            tokens.append(Token("string", _unescape(raw[1:-1]), pos))
        elif kind in ("name", "op"):
            tokens.append(Token(kind, raw, pos))
        pos = match.end()
    tokens.append(Token("eof", None, pos))
    return tokens


class Parser:
    """Recursive-descent parser over a token list."""

    _EQUALITY = ("==", "!=", "===", "!==")
    _RELATIONAL = ("<", "<=", ">", ">=")

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0
        self.depth = 0

    # token helpers

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        idx = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _is_op(self, *ops: str) -> bool:
        tok = self.current
        return tok.kind == "op" and tok.value in ops

    def _is_name(self, value: str) -> bool:
        tok = self.current
        return tok.kind == "name" and tok.value == value

    def _advance(self) -> Token:
        tok = self.current
        self.index += 1
        return tok

    def _expect_op(self, op: str) -> Token:
        if not self._is_op(op):
            self._fail(f"Expected '{op}'")
        return self._advance()

    def _fail(self, message: str) -> None:
        tok = self.current
        found = "end of expression" if tok.kind == "eof" else repr(tok.value)
        raise ExpressionSyntaxError(f"{message} but found {found} at position {tok.pos}", self.text)

    # grammar

    def parse(self) -> Any:
        if self.current.kind == "eof":
            raise ExpressionSyntaxError("Empty expression", self.text)
        node = self.parse_arrow()
        if self.current.kind != "eof":
            self._fail("Unexpected token")
        return node

    def parse_arrow(self) -> Any:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise EvaluationBudgetExceeded(
                f"Expression nested deeper than {MAX_NESTING_DEPTH} levels", self.text[:64]
            )
        try:
            return self._parse_arrow()
        finally:
            self.depth -= 1

    def _parse_arrow(self) -> Any:
        tok = self.current
        if tok.kind == "name" and self._peek().kind == "op" and self._peek().value == "=>":
            self._advance()
            self._advance()
            return Arrow((tok.value,), self.parse_arrow())
        if self._is_op("(") and self._looks_like_arrow_params():
            self._advance()
            params: List[str] = []
            while not self._is_op(")"):
                if self.current.kind != "name":
                    self._fail("Expected parameter name")
                params.append(self._advance().value)
                if not self._is_op(")"):
                    self._expect_op(",")
            self._expect_op(")")
            self._expect_op("=>")
            return Arrow(tuple(params), self.parse_arrow())
        return self.parse_conditional()

    def _looks_like_arrow_params(self) -> bool:
        offset = 1
        expect_name = True
        while True:
            tok = self._peek(offset)
            if tok.kind == "op" and tok.value == ")":
                nxt = self._peek(offset + 1)
                return nxt.kind == "op" and nxt.value == "=>"
            if expect_name and tok.kind == "name":
                expect_name = False
            elif not expect_name and tok.kind == "op" and tok.value == ",":
                expect_name = True
            else:
                return False
            offset += 1

    def parse_conditional(self) -> Any:
        test = self.parse_nullish()
        if self._is_op("?"):
            self._advance()
            consequent = self.parse_arrow()
            self._expect_op(":")
            alternate = self.parse_arrow()
            return Conditional(test, consequent, alternate)
        return test

    def parse_nullish(self) -> Any:
        left = self.parse_or()
        while self._is_op("??"):
            self._advance()
            left = Logical("??", left, self.parse_or())
        return left

    def parse_or(self) -> Any:
        left = self.parse_and()
        while self._is_op("||"):
            self._advance()
            left = Logical("||", left, self.parse_and())
        return left

    def parse_and(self) -> Any:
        left = self.parse_equality()
        while self._is_op("&&"):
            self._advance()
            left = Logical("&&", left, self.parse_equality())
        return left

    def parse_equality(self) -> Any:
        left = self.parse_relational()
        while self._is_op(*self._EQUALITY):
            op = self._advance().value
            left = Binary(op, left, self.parse_relational())
        return left

    def parse_relational(self) -> Any:
        left = self.parse_additive()
        while self._is_op(*self._RELATIONAL) or self._is_name("in"):
            op = self._advance().value
            left = Binary(op, left, self.parse_additive())
        return left

    def parse_additive(self) -> Any:
        left = self.parse_multiplicative()
        while self._is_op("+", "-"):
            op = self._advance().value
            left = Binary(op, left, self.parse_multiplicative())
        return left

    def parse_multiplicative(self) -> Any:
        left = self.parse_exponent()
        while self._is_op("*", "/", "%"):
            op = self._advance().value
            left = Binary(op, left, self.parse_exponent())
        return left

    def parse_exponent(self) -> Any:
        base = self.parse_unary()
        if self._is_op("**"):
            self._advance()
            return Binary("**", base, self.parse_exponent())
        return base

    def parse_unary(self) -> Any:
        if self._is_op("!", "-", "+"):
            op = self._advance().value
            return Unary(op, self.parse_unary())
        if self._is_name("typeof"):
            self._advance()
            return Unary("typeof", self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> Any:
        node = self.parse_primary()
        while True:
            if self._is_op("."):
                self._advance()
                if self.current.kind != "name":
                    self._fail("Expected property name after '.'")
                node = Member(node, self._advance().value)
            elif self._is_op("?."):
                self._advance()
                if self._is_op("["):
                    self._advance()
                    key = self.parse_arrow()
                    self._expect_op("]")
                    node = Index(node, key, optional=True)
                elif self.current.kind == "name":
                    node = Member(node, self._advance().value, optional=True)
                else:
                    self._fail("Expected property name after '?.'")
            elif self._is_op("["):
                self._advance()
                key = self.parse_arrow()
                self._expect_op("]")
                node = Index(node, key)
            elif self._is_op("("):
                self._advance()
                node = Call(node, tuple(self._parse_list(")")))
            else:
                return node

    def _parse_list(self, closer: str) -> List[Any]:
        items: List[Any] = []
        while not self._is_op(closer):
            items.append(self.parse_arrow())
            if not self._is_op(closer):
                self._expect_op(",")
        self._expect_op(closer)
        return items

    def parse_primary(self) -> Any:
        tok = self.current
        if tok.kind in ("number", "string"):
            self._advance()
            return Literal(tok.value)
        if tok.kind == "name":
            self._advance()
            if tok.value in KEYWORD_LITERALS:
                return Literal(KEYWORD_LITERALS[tok.value])
            if tok.value == "undefined":
                return Undefined()
            if tok.value in ("NaN", "Infinity"):
                return Literal(float(tok.value.lower().replace("infinity", "inf")))
            return Name(tok.value)
        if self._is_op("("):
            self._advance()
            node = self.parse_arrow()
            self._expect_op(")")
            return node
        if self._is_op("["):
            self._advance()
            return ArrayLiteral(tuple(self._parse_list("]")))
        if self._is_op("{"):
            self._advance()
            return self._parse_object()
        self._fail("Unexpected token")

    def _parse_object(self) -> ObjectLiteral:
        entries: List[Tuple[str, Any]] = []
        while not self._is_op("}"):
            tok = self.current
            if tok.kind in ("name", "string"):
                key = str(self._advance().value)
            elif tok.kind == "number":
                key = str(self._advance().value)
            else:
                self._fail("Expected property key")
            if self._is_op(":"):
                self._advance()
                value = self.parse_arrow()
            elif tok.kind == "name":
                value = Name(key)  # shorthand {a}
            else:
                self._fail("Expected ':'")
            entries.append((key, value))
            if not self._is_op("}"):
                self._expect_op(",")
        self._expect_op("}")
        return ObjectLiteral(tuple(entries))


@lru_cache(maxsize=1024)
def _parse_cached(text: str) -> Any:
    return Parser(text).parse()


def parse_expression(text: str, max_length: Optional[int] = None) -> Any:
    """Parse expression text into an AST. Raises ExpressionSyntaxError."""
    if not isinstance(text, str):
        raise ExpressionSyntaxError(f"Expression must be a string, got {type(text).__name__}", str(text))
    limit = MAX_EXPRESSION_LENGTH if max_length is None else max_length
    if len(text) > limit:
        raise EvaluationBudgetExceeded(f"Expression longer than {limit} characters", text[:64])
    try:
        return _parse_cached(text.strip())
    except RecursionError:
        raise EvaluationBudgetExceeded("Expression nested too deeply", text[:64]) from None
