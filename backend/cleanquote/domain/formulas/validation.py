from dataclasses import dataclass
from typing import Iterable

from cleanquote.domain.errors import FormulaSyntaxError
from cleanquote.domain.formulas.evaluator import build_expression
from cleanquote.domain.formulas.parser import parse_tokens, references
from cleanquote.domain.formulas.tokenizer import check_tokens, tokenize
from cleanquote.domain.pricing.models import FormulaElement


@dataclass(frozen=True)
class FormulaValidation:
    ok: bool
    error: str | None = None
    position: int | None = None


def check_balance(tokens: list[str]) -> None:
    depth = 0
    for position, token in enumerate(tokens):
        if token == "(":
            depth += 1
        elif token == ")":
            depth -= 1
            if depth < 0:
                raise FormulaSyntaxError(detail="Unbalanced parentheses: unexpected ')'", position=position)
    if depth:
        raise FormulaSyntaxError(detail="Unbalanced parentheses: missing ')'")
    questions = tokens.count("?")
    colons = tokens.count(":")
    if questions != colons:
        raise FormulaSyntaxError(
            detail=f"Unbalanced conditional: {questions} '?' but {colons} ':'"
        )


def validate_tokens(tokens: list[str], known_fields: Iterable[str] | None = None) -> None:
    check_tokens(tokens)
    check_balance(tokens)
    tree = parse_tokens(tokens)
    if known_fields is not None:
        known = set(known_fields)
        unknown = sorted(references(tree) - known)
        if unknown:
            raise FormulaSyntaxError(detail=f"Unknown field reference(s): {', '.join(unknown)}")


def validate_formula(
    elements: Iterable[FormulaElement],
    known_fields: Iterable[str] | None = None,
) -> FormulaValidation:
    """Save-time check: token grammar, parenthesis and ternary balance, known references."""
    try:
        validate_tokens(tokenize(build_expression(elements)), known_fields)
    except FormulaSyntaxError as exc:
        return FormulaValidation(ok=False, error=exc.detail, position=exc.position)
    return FormulaValidation(ok=True)
