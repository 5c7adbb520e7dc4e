import logging
from dataclasses import dataclass
from typing import Mapping

from cleanquote.domain.errors import EvaluationError
from cleanquote.domain.formulas.evaluator import evaluate_expression
from cleanquote.domain.formulas.parser import Node, references
from cleanquote.domain.pricing.calculators import CostCalculation, apply_override
from cleanquote.domain.pricing.field_lookup import normalize_key
from cleanquote.domain.pricing.field_resolver import FieldResolver, FieldValues
from cleanquote.domain.pricing.models import BookingDraft, Formula, FormulaFailure, PricingStrategy, QuoteBreakdown
from cleanquote.infra.metrics import metrics

logger = logging.getLogger(__name__)

BASE_TIME = "basetime"
ADDITIONAL_TIME = "additionaltime"
TOTAL_HOURS = "totalhours"
CLEANING_COST = "cleaningcost"
TOTAL_COST = "totalcost"
SHORT_NOTICE_CHARGE = "shortnoticecharge"

PIPELINE_FORMULAS = (BASE_TIME, ADDITIONAL_TIME, TOTAL_HOURS, CLEANING_COST, TOTAL_COST)
DERIVED_FIELDS = frozenset({BASE_TIME, ADDITIONAL_TIME, TOTAL_HOURS, CLEANING_COST, SHORT_NOTICE_CHARGE})


@dataclass(frozen=True)
class CompiledFormula:
    formula: Formula
    node: Node

    @property
    def key(self) -> str:
        return normalize_key(self.formula.name)


class FormulaPipeline:
    """Evaluates the named pipeline formulas in order.

    Each result is added to the context of the formulas after it. A formula that
    fails to evaluate falls back to the value the pipeline would use without it.
    """

    def __init__(
        self,
        formulas: Mapping[str, CompiledFormula],
        resolver: FieldResolver,
        *,
        minimum_hours: float,
        override_epsilon: float,
    ) -> None:
        self.formulas = formulas
        self.resolver = resolver
        self.minimum_hours = minimum_hours
        self.override_epsilon = override_epsilon

    def run(self, draft: BookingDraft, *, short_notice_charge: float) -> CostCalculation:
        errors: list[FormulaFailure] = []
        derived: dict[str, FieldValues] = {}

        calculated_base = self._evaluate(BASE_TIME, draft, derived, 0.0, errors)
        base_time, is_override = apply_override(calculated_base, draft.estimated_hours, self.override_epsilon)
        derived[BASE_TIME] = FieldValues.scalar(base_time)

        additional_time = self._evaluate(ADDITIONAL_TIME, draft, derived, 0.0, errors)
        if draft.ironing_hours:
            additional_time = draft.ironing_hours
        derived[ADDITIONAL_TIME] = FieldValues.scalar(additional_time)

        total_hours = self._evaluate(TOTAL_HOURS, draft, derived, base_time + additional_time, errors)
        total_hours = max(total_hours, self.minimum_hours)
        derived[TOTAL_HOURS] = FieldValues.scalar(total_hours)

        cleaning_cost = self._evaluate(CLEANING_COST, draft, derived, 0.0, errors)
        derived[CLEANING_COST] = FieldValues.scalar(cleaning_cost)
        derived[SHORT_NOTICE_CHARGE] = FieldValues.scalar(short_notice_charge)

        subtotal = self._evaluate(TOTAL_COST, draft, derived, cleaning_cost + short_notice_charge, errors)
        hourly_rate = cleaning_cost / total_hours if total_hours > 0 else 0.0

        return CostCalculation(
            strategy=PricingStrategy.formula,
            base_time=base_time,
            calculated_base_time=calculated_base,
            additional_time=additional_time,
            total_hours=total_hours,
            hourly_rate=hourly_rate,
            cleaning_cost=cleaning_cost,
            one_time_costs=0.0,
            subtotal=subtotal,
            is_user_override=is_override,
            breakdown=QuoteBreakdown(),
            formula_errors=errors,
        )

    def context_for(
        self, compiled: CompiledFormula, draft: BookingDraft, derived: Mapping[str, FieldValues]
    ) -> dict[str, FieldValues]:
        context = dict(derived)
        for name in references(compiled.node) - context.keys():
            if self.resolver.can_resolve(name, draft):
                context[name] = self.resolver.resolve(name, draft)
        return context

    def _evaluate(
        self,
        key: str,
        draft: BookingDraft,
        derived: Mapping[str, FieldValues],
        fallback: float,
        errors: list[FormulaFailure],
    ) -> float:
        compiled = self.formulas.get(key)
        if compiled is None:
            logger.debug("formula_missing", extra={"extra": {"formula": key}})
            return fallback
        try:
            return evaluate_expression(compiled.node, self.context_for(compiled, draft, derived))
        except EvaluationError as exc:
            logger.warning(
                "formula_evaluation_failed",
                extra={"extra": {"formula": compiled.formula.name, "detail": exc.detail, "fallback": fallback}},
            )
            metrics.record_formula_error(compiled.formula.name)
            errors.append(FormulaFailure(formula=compiled.formula.name, detail=exc.detail))
            return fallback
