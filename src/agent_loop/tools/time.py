"""Time tool (no external dependency)."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field


class TimeInput(BaseModel):
    timezone: str | None = Field(default=None, description="IANA timezone string, e.g. Europe/Paris")


class TimeOutput(BaseModel):
    timezone: str
    iso: str
    epoch_seconds: int


def get_current_time(payload: TimeInput) -> TimeOutput:
    tz_name = payload.timezone or "UTC"
    if tz_name.upper() == "UTC":
        tz = timezone.utc
    else:
        tz = ZoneInfo(tz_name)
    now = datetime.now(tz)
    return TimeOutput(
        timezone=tz_name,
        iso=now.isoformat(),
        epoch_seconds=int(now.timestamp()),
    )
