from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from kitchenpos.core.errors import InvalidScheduledTime

__all__ = ["resolve_scheduled_time", "to_hhmm"]

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def resolve_scheduled_time(hhmm: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """
    "HH:MM" -> instante ISO 8601 (UTC) de hoy; si ese horario ya pasó, de mañana.
    Vacío o None -> None (pedido para ya).
    """
    if not hhmm:
        return None
    m = _HHMM.match(hhmm.strip())
    if not m:
        raise InvalidScheduledTime(f"Horario inválido: {hhmm!r}, se espera HH:MM")

    now = now or datetime.now().astimezone()
    at = now.replace(hour=int(m.group(1)), minute=int(m.group(2)), second=0, microsecond=0)
    if at < now:
        at += timedelta(days=1)
    return at.astimezone(timezone.utc).isoformat()


def to_hhmm(iso: Optional[str], tz=None) -> str:
    """Inverso para edición: ISO -> "HH:MM" en hora local."""
    if not iso:
        return ""
    at = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    return at.astimezone(tz).strftime("%H:%M")
