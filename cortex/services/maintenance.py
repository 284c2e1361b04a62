"""Daily maintenance window (13:00-14:30, America/Sao_Paulo).

The external sync job rewrites the financial tables during this window, so
API traffic is answered with 503 while it is open. Set
SKIP_MAINTENANCE_WINDOW=true to disable the gate (tests, emergency ops).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from cortex.core.config import env_flag

MAINTENANCE_START_HOUR = 13
MAINTENANCE_START_MINUTE = 0
MAINTENANCE_END_HOUR = 14
MAINTENANCE_END_MINUTE = 30
TIMEZONE = ZoneInfo("America/Sao_Paulo")
SKIP_FLAG = "SKIP_MAINTENANCE_WINDOW"

MESSAGE_ACTIVE = "O sistema está em atualização diária. Por favor, aguarde alguns minutos."
MESSAGE_IDLE = "Sistema operando normalmente."

_START_MINUTES = MAINTENANCE_START_HOUR * 60 + MAINTENANCE_START_MINUTE
_END_MINUTES = MAINTENANCE_END_HOUR * 60 + MAINTENANCE_END_MINUTE


@dataclass
class MaintenanceStatus:
    is_in_maintenance: bool
    message: str
    window_start: str
    window_end: str
    resumes_at: str | None
    remaining_minutes: int | None

    def to_dict(self) -> dict:
        return {
            "isInMaintenance": self.is_in_maintenance,
            "message": self.message,
            "windowStart": self.window_start,
            "windowEnd": self.window_end,
            "resumesAt": self.resumes_at,
            "remainingMinutes": self.remaining_minutes,
        }


def local_now(now: datetime | None = None) -> datetime:
    # naive inputs are taken as UTC
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(TIMEZONE)


def _format_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def _in_window(local: datetime) -> bool:
    current = local.hour * 60 + local.minute
    return _START_MINUTES <= current < _END_MINUTES


def is_maintenance_window(now: datetime | None = None) -> bool:
    if env_flag(SKIP_FLAG):
        return False
    return _in_window(local_now(now))


def get_maintenance_status(now: datetime | None = None) -> MaintenanceStatus:
    local = local_now(now)
    active = not env_flag(SKIP_FLAG) and _in_window(local)

    remaining = None
    resumes_at = None
    if active:
        remaining = _END_MINUTES - (local.hour * 60 + local.minute)
        resume = local.replace(hour=MAINTENANCE_END_HOUR, minute=MAINTENANCE_END_MINUTE, second=0, microsecond=0)
        resumes_at = resume.isoformat()

    return MaintenanceStatus(
        is_in_maintenance=active,
        message=MESSAGE_ACTIVE if active else MESSAGE_IDLE,
        window_start=_format_time(MAINTENANCE_START_HOUR, MAINTENANCE_START_MINUTE),
        window_end=_format_time(MAINTENANCE_END_HOUR, MAINTENANCE_END_MINUTE),
        resumes_at=resumes_at,
        remaining_minutes=remaining,
    )


def get_maintenance_response(now: datetime | None = None) -> dict:
    status = get_maintenance_status(now)
    return {
        "error": "maintenance",
        "message": status.message,
        "details": {
            "windowStart": status.window_start,
            "windowEnd": status.window_end,
            "resumesAt": status.resumes_at,
            "remainingMinutes": status.remaining_minutes,
        },
    }
