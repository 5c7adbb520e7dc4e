"""Recursive-descent parser for the formula grammar.

    expression  := ternary
    ternary     := or ( "?" ternary ":" ternary )?
    or          := and ( "||" and )*
    and         := equality ( "&&" equality )*
    equality    := comparison ( ( "===" | "!==" ) comparison )*
    comparison  := additive ( ( ">" | "<" | ">=" | "<=" ) additive )*
    additive    := term ( ( "+" | "-" ) term )*
    term        := unary ( ( "*" | "/" ) unary )*
    unary       := ( "!" | "-" | "+" ) unary | primary
    primary     := NUMBER | STRING | "true" | "false" | IDENTIFIER | "(" expression ")"

There are no calls, assignments, subscripts or loops; identifiers are only ever
looked up in the evaluation context.
"""

from dataclasses import dataclass
from typing import Union

from cleanquote.domain.errors import FormulaSyntaxError
from cleanquote.domain.formulas.tokenizer import check_tokens, is_identifier, is_number, is_string, tokenize


@dataclass(frozen=True)
class Literal:
    value: Union[float, str, bool]


@dataclass(frozen=True)
class Reference:
    name: str
    attribute: str | None = None


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


Node = Union[Literal, Reference, Unary, Binary, Conditional]

_BINARY_LEVELS: tuple[tuple[str, ...], ...] = (
    ("||",),
    ("&&",),
    ("===", "!=="),
    (">", "<", ">=", "<="),
    ("+", "-"),
    ("*", "/"),
)


class _Parser:
    def __init__(self, tokens: list[str]) -> None:
        self.tokens = tokens
        self.position = 0

    def peek(self) -> str | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def advance(self) -> str:
        token = self.peek()
        if token is None:
            raise FormulaSyntaxError(detail="Unexpected end of formula", position=self.position)
        self.position += 1
        return token

    def expect(self, expected: str) -> None:
        token = self.peek()
        if token != expected:
            found = "end of formula" if token is None else f"'{token}'"
            raise FormulaSyntaxError(detail=f"Expected '{expected}' but found {found}", position=self.position)
        self.position += 1

    def parse(self) -> Node:
        if not self.tokens:
            raise FormulaSyntaxError(detail="Formula is empty", position=0)
        node = self.ternary()
        if self.peek() is not None:
            raise FormulaSyntaxError(detail=f"Unexpected token '{self.peek()}'", position=self.position)
        return node

    def ternary(self) -> Node:
        test = self.binary(0)
        if self.peek() != "?":
            return test
        self.advance()
        then = self.ternary()
        self.expect(":")
        otherwise = self.ternary()
        return Conditional(test, then, otherwise)

    def binary(self, level: int) -> Node:
        if level == len(_BINARY_LEVELS):
            return self.unary()
        operators = _BINARY_LEVELS[level]
        node = self.binary(level + 1)
        while self.peek() in operators:
            op = self.advance()
            node = Binary(op, node, self.binary(level + 1))
        return node

    def unary(self) -> Node:
        if self.peek() in ("!", "-", "+"):
            op = self.advance()
            return Unary(op, self.unary())
        return self.primary()

    def primary(self) -> Node:
        token = self.advance()
        if token == "(":
            node = self.ternary()
            self.expect(")")
            return node
        if is_number(token):
            return Literal(float(token))
        if is_string(token):
            return Literal(token[1:-1])
        if token in ("true", "false"):
            return Literal(token == "true")
        if is_identifier(token):
            name, _, attribute = token.partition(".")
            return Reference(name.lower(), attribute.lower() or None)
        raise FormulaSyntaxError(detail=f"Unexpected token '{token}'", position=self.position - 1)


def parse_tokens(tokens: list[str]) -> Node:
    check_tokens(tokens)
    try:
        return _Parser(tokens).parse()
    except RecursionError as exc:
        raise FormulaSyntaxError(detail="Formula is nested too deeply") from exc


def parse(source: str) -> Node:
    return parse_tokens(tokenize(source))


def references(node: Node) -> set[str]:
    if isinstance(node, Reference):
        return {node.name}
    if isinstance(node, Unary):
        return references(node.operand)
    if isinstance(node, Binary):
        return references(node.left) | references(node.right)
    if isinstance(node, Conditional):
        return references(node.test) | references(node.then) | references(node.otherwise)
    return set()
