from pydantic import BaseModel, Field

from cleanquote.domain.pricing.models import FormulaElement, FormulaResultType


class FormulaValidationRequest(BaseModel):
    elements: list[FormulaElement] = Field(default_factory=list)


class FormulaValidationResponse(BaseModel):
    ok: bool
    error: str | None = None
    position: int | None = None
    expression: str | None = None


class FormulaCreate(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    description: str | None = None
    result_type: FormulaResultType = FormulaResultType.cost
    elements: list[FormulaElement] = Field(min_length=1)
    is_active: bool = True
