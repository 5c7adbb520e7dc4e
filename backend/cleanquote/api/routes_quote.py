from datetime import datetime

from fastapi import APIRouter, Depends

from cleanquote.dependencies import get_app_settings, get_config_snapshot
from cleanquote.domain.pricing.config_loader import ConfigSnapshot
from cleanquote.domain.pricing.models import BookingDraft, QuoteResult
from cleanquote.domain.pricing.quote import compute_quote
from cleanquote.settings import Settings

router = APIRouter()


def get_quote_clock() -> datetime | None:
    return None


@router.post("/v1/quote", response_model=QuoteResult)
async def create_quote(
    draft: BookingDraft,
    snapshot: ConfigSnapshot = Depends(get_config_snapshot),
    now: datetime | None = Depends(get_quote_clock),
    app_settings: Settings = Depends(get_app_settings),
) -> QuoteResult:
    return compute_quote(draft, snapshot, now=now, app_settings=app_settings)
