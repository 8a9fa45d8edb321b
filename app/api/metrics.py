from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from app.config import get_settings
from app.observability.metrics import get_metrics


router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics")
async def metrics() -> dict[str, Any]:
    if not get_settings().enable_metrics_endpoint:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics().snapshot()
