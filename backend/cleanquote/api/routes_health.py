from fastapi import APIRouter, Request, Response

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request) -> dict[str, str]:
    holder = getattr(request.app.state, "snapshot_holder", None)
    if holder is None:
        return {"status": "ok", "pricing": "not_loaded"}
    snapshot = holder.snapshot
    return {
        "status": "ok",
        "config_id": snapshot.config_id,
        "config_version": snapshot.config_version,
        "config_hash": snapshot.config_hash,
    }


@router.head("/healthz")
async def healthz_head() -> Response:
    return Response(status_code=200)
