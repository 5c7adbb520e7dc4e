from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cleanquote.dependencies import get_snapshot_holder
from cleanquote.domain.pricing import repository
from cleanquote.domain.pricing.config_loader import ConfigSnapshot, SnapshotHolder
from cleanquote.infra.db import get_db_session
from cleanquote.infra.metrics import metrics

router = APIRouter(tags=["admin-pricing"])
logger = logging.getLogger(__name__)


class SnapshotSummary(BaseModel):
    config_id: str
    config_version: str
    config_hash: str
    field_configs: int
    scheduling_rules: int
    formulas: int
    strategies: dict[str, str]


def summarize_snapshot(snapshot: ConfigSnapshot) -> SnapshotSummary:
    return SnapshotSummary(
        config_id=snapshot.config_id,
        config_version=snapshot.config_version,
        config_hash=snapshot.config_hash,
        field_configs=len(snapshot.field_configs),
        scheduling_rules=len(snapshot.scheduling_rules),
        formulas=len(snapshot.formulas),
        strategies={kind.value: strategy.value for kind, strategy in snapshot.strategies.items()},
    )


@router.get("/v1/admin/pricing/snapshot", response_model=SnapshotSummary)
async def current_snapshot(holder: SnapshotHolder = Depends(get_snapshot_holder)) -> SnapshotSummary:
    return summarize_snapshot(holder.snapshot)


@router.post("/v1/admin/pricing/reload", response_model=SnapshotSummary)
async def reload_snapshot(
    holder: SnapshotHolder = Depends(get_snapshot_holder),
    session: AsyncSession = Depends(get_db_session),
) -> SnapshotSummary:
    try:
        snapshot = await repository.load_snapshot_from_db(session, strategies=holder.snapshot.strategies)
    except Exception:
        metrics.record_snapshot_reload("error")
        logger.exception("pricing_snapshot_reload_failed")
        raise
    holder.replace(snapshot)
    metrics.record_snapshot_reload("ok")
    return summarize_snapshot(snapshot)
