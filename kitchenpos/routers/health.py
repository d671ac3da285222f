from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from kitchenpos.core.config import settings
from kitchenpos.services.terminal import PosTerminal, get_terminal

router = APIRouter(tags=["health"])


@router.get("/health", operation_id="health_v1")
def health(t: PosTerminal = Depends(get_terminal)):
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": settings.app_version,
        "kds": "enabled" if t.kds.enabled else "disabled",
        "time": datetime.now(timezone.utc).isoformat(),
    }
