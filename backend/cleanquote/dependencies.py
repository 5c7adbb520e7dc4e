from fastapi import Depends, HTTPException, Request

from cleanquote.domain.pricing.config_loader import ConfigSnapshot, SnapshotHolder
from cleanquote.settings import Settings, settings


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "app_settings", None) or settings


def get_snapshot_holder(request: Request) -> SnapshotHolder:
    holder = getattr(request.app.state, "snapshot_holder", None)
    if holder is None:
        raise HTTPException(status_code=503, detail="Pricing configuration not loaded")
    return holder


def get_config_snapshot(holder: SnapshotHolder = Depends(get_snapshot_holder)) -> ConfigSnapshot:
    return holder.snapshot
