import math
from typing import Any, Iterable, Mapping

from cleanquote.domain.errors import EvaluationError, FormulaSyntaxError
from cleanquote.domain.formulas.parser import Binary, Conditional, Literal, Node, Reference, Unary, parse
from cleanquote.domain.formulas.tokenizer import OPERATORS, is_number
from cleanquote.domain.pricing.field_lookup import normalize_key
from cleanquote.domain.pricing.field_resolver import FieldValues
from cleanquote.domain.pricing.models import Formula, FormulaElement, FormulaElementKind

Context = Mapping[str, FieldValues]

_ATTRIBUTE_FIELDS = {
    "value": "value",
    "time": "time",
    "min": "min_value",
    "max": "max_value",
}


def split_reference(element: FormulaElement) -> tuple[str, str | None]:
    reference = element.value.strip()
    base, dot, suffix = reference.rpartition(".")
    if dot and suffix.strip().lower() in _ATTRIBUTE_FIELDS:
        return normalize_key(base), suffix.strip().lower()
    return normalize_key(reference), element.attribute


def element_source(element: FormulaElement) -> str:
    if element.kind == FormulaElementKind.field:
        name, attribute = split_reference(element)
        if not name:
            raise FormulaSyntaxError(detail=f"Invalid field reference '{element.value}'")
        return f"{name}.{attribute}" if attribute else name
    text = element.value.strip()
    if element.kind == FormulaElementKind.operator:
        if text not in OPERATORS:
            raise FormulaSyntaxError(detail=f"Unknown operator '{element.value}'")
        return text
    if is_number(text) or text.lower() in ("true", "false"):
        return text.lower()
    raise FormulaSyntaxError(detail=f"Invalid number literal '{element.value}'")


def build_expression(elements: Iterable[FormulaElement]) -> str:
    return " ".join(element_source(element) for element in elements)


def compile_elements(elements: Iterable[FormulaElement]) -> Node:
    return parse(build_expression(elements))


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float))


def _truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    return left == right


def _number(value: Any, op: str) -> float:
    if not _is_numeric(value):
        raise EvaluationError(detail=f"Operator '{op}' requires numeric operands")
    return float(value)


def _lookup(node: Reference, context: Context) -> float:
    entry = context.get(node.name)
    if entry is None:
        raise EvaluationError(detail=f"Unknown field '{node.name}'")
    attribute = _ATTRIBUTE_FIELDS.get(node.attribute or "value")
    if attribute is None:
        raise EvaluationError(detail=f"Unknown attribute '{node.attribute}' on field '{node.name}'")
    return getattr(entry, attribute)


def _compare(op: str, left: Any, right: Any) -> bool:
    both_text = isinstance(left, str) and isinstance(right, str)
    if not both_text:
        left, right = _number(left, op), _number(right, op)
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    return left <= right


def evaluate_node(node: Node, context: Context) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Reference):
        return _lookup(node, context)
    if isinstance(node, Conditional):
        branch = node.then if _truthy(evaluate_node(node.test, context)) else node.otherwise
        return evaluate_node(branch, context)
    if isinstance(node, Unary):
        operand = evaluate_node(node.operand, context)
        if node.op == "!":
            return not _truthy(operand)
        number = _number(operand, node.op)
        return -number if node.op == "-" else number
    if isinstance(node, Binary):
        return _evaluate_binary(node, context)
    raise EvaluationError(detail=f"Unsupported expression node {type(node).__name__}")


def _evaluate_binary(node: Binary, context: Context) -> Any:
    op = node.op
    left = evaluate_node(node.left, context)
    if op == "&&":
        return evaluate_node(node.right, context) if _truthy(left) else left
    if op == "||":
        return left if _truthy(left) else evaluate_node(node.right, context)
    right = evaluate_node(node.right, context)
    if op == "===":
        return _strict_equal(left, right)
    if op == "!==":
        return not _strict_equal(left, right)
    if op in (">", "<", ">=", "<="):
        return _compare(op, left, right)
    left_number, right_number = _number(left, op), _number(right, op)
    if op == "+":
        return left_number + right_number
    if op == "-":
        return left_number - right_number
    if op == "*":
        return left_number * right_number
    if right_number == 0:
        raise EvaluationError(detail="Division by zero")
    return left_number / right_number


def evaluate_expression(node: Node, context: Context) -> float:
    try:
        result = evaluate_node(node, context)
    except OverflowError as exc:
        raise EvaluationError(detail="Formula result is not finite") from exc
    if isinstance(result, bool) or not _is_numeric(result):
        raise EvaluationError(detail=f"Formula produced a non-numeric result ({type(result).__name__})")
    if not math.isfinite(result):
        raise EvaluationError(detail="Formula result is not finite")
    return float(result)


def evaluate(formula: Formula | Iterable[FormulaElement], context: Context) -> float:
    """Evaluate a formula against resolved field values.

    ``context`` maps normalized field names to their resolved attributes. Syntax
    problems surface as FormulaSyntaxError, runtime problems as EvaluationError.
    """
    elements = formula.elements if isinstance(formula, Formula) else list(formula)
    return evaluate_expression(compile_elements(elements), context)
