from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from config import TASK_RESET_HOURS


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def previous_reset_time(now: Optional[datetime] = None) -> datetime:
    """Most recent fixed reset boundary at or before ``now``."""
    now = _as_utc(now or _utc_now())
    hours = sorted(TASK_RESET_HOURS) or [0]
    passed = [hour for hour in hours if hour <= now.hour]
    base = now.replace(minute=0, second=0, microsecond=0)
    if passed:
        return base.replace(hour=passed[-1])
    return (base - timedelta(days=1)).replace(hour=hours[-1])


def next_reset_time(now: Optional[datetime] = None) -> datetime:
    now = _as_utc(now or _utc_now())
    hours = sorted(TASK_RESET_HOURS) or [0]
    base = now.replace(minute=0, second=0, microsecond=0)
    for hour in hours:
        if hour > now.hour:
            return base.replace(hour=hour)
    return (base + timedelta(days=1)).replace(hour=hours[0])


def should_reset(last_reset: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if last_reset is None:
        return True
    return previous_reset_time(now) > _as_utc(last_reset)


def seconds_until_next_reset(now: Optional[datetime] = None) -> int:
    now = _as_utc(now or _utc_now())
    return max(0, int((next_reset_time(now) - now).total_seconds()))


def task_reset_updates(user: Dict[str, object], now: Optional[datetime] = None) -> Dict[str, object]:
    """Column updates that start a new task window, or ``{}`` if still inside one."""
    now = _as_utc(now or _utc_now())
    last = user.get("last_task_reset")
    if isinstance(last, datetime) and not should_reset(last, now):
        return {}
    return {
        "task_invite_friend": 0,
        "task_watch_ad": 0,
        "last_task_reset": now,
    }
