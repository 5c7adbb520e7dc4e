from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleanquote.dependencies import get_config_snapshot
from cleanquote.domain.errors import FormulaSyntaxError
from cleanquote.domain.formulas import schemas
from cleanquote.domain.formulas.evaluator import build_expression
from cleanquote.domain.formulas.validation import validate_formula
from cleanquote.domain.pricing import repository
from cleanquote.domain.pricing.config_loader import ConfigSnapshot
from cleanquote.domain.pricing.formula_pipeline import DERIVED_FIELDS
from cleanquote.domain.pricing.models import Formula
from cleanquote.infra.db import get_db_session

router = APIRouter(tags=["formulas"])


def known_formula_fields(snapshot: ConfigSnapshot) -> set[str]:
    return snapshot.resolver.known_fields() | DERIVED_FIELDS


@router.post("/v1/formulas/validate", response_model=schemas.FormulaValidationResponse)
async def validate_formula_elements(
    payload: schemas.FormulaValidationRequest,
    snapshot: ConfigSnapshot = Depends(get_config_snapshot),
) -> schemas.FormulaValidationResponse:
    validation = validate_formula(payload.elements, known_formula_fields(snapshot))
    expression = None
    if validation.ok:
        expression = build_expression(payload.elements)
    return schemas.FormulaValidationResponse(
        ok=validation.ok,
        error=validation.error,
        position=validation.position,
        expression=expression,
    )


@router.get("/v1/admin/formulas", response_model=list[Formula])
async def list_formulas(
    include_inactive: bool = True,
    session: AsyncSession = Depends(get_db_session),
) -> list[Formula]:
    return await repository.list_formulas(session, active_only=not include_inactive)


@router.post("/v1/admin/formulas", response_model=Formula, status_code=status.HTTP_201_CREATED)
async def create_formula(
    payload: schemas.FormulaCreate,
    snapshot: ConfigSnapshot = Depends(get_config_snapshot),
    session: AsyncSession = Depends(get_db_session),
) -> Formula:
    formula = Formula(**payload.model_dump())
    try:
        created = await repository.create_formula(session, formula, known_formula_fields(snapshot))
    except FormulaSyntaxError:
        await session.rollback()
        raise
    await session.commit()
    return created


@router.delete("/v1/admin/formulas/{formula_id}", response_model=Formula)
async def deactivate_formula(
    formula_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> Formula:
    try:
        formula = await repository.deactivate_formula(session, formula_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Formula not found") from exc
    await session.commit()
    return formula
