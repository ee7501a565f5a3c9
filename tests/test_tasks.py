from datetime import datetime, timezone

from luckygame import tasks
from luckygame.tasks import (
    next_reset_time,
    previous_reset_time,
    seconds_until_next_reset,
    should_reset,
    task_reset_updates,
)


def _dt(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_previous_reset_time_uses_latest_passed_hour():
    assert previous_reset_time(_dt(2024, 5, 1, 7, 30)) == _dt(2024, 5, 1, 6)
    assert previous_reset_time(_dt(2024, 5, 1, 3)) == _dt(2024, 5, 1, 0)
    assert previous_reset_time(_dt(2024, 5, 1, 23, 59)) == _dt(2024, 5, 1, 18)


def test_previous_reset_time_falls_back_to_previous_day(monkeypatch):
    monkeypatch.setattr(tasks, "TASK_RESET_HOURS", [6, 18])
    assert previous_reset_time(_dt(2024, 5, 1, 3)) == _dt(2024, 4, 30, 18)


def test_next_reset_time():
    assert next_reset_time(_dt(2024, 5, 1, 7, 30)) == _dt(2024, 5, 1, 12)
    assert next_reset_time(_dt(2024, 5, 1, 19)) == _dt(2024, 5, 2, 0)


def test_naive_datetimes_are_treated_as_utc():
    assert previous_reset_time(datetime(2024, 5, 1, 13)) == _dt(2024, 5, 1, 12)


def test_should_reset():
    now = _dt(2024, 5, 1, 7)
    assert should_reset(None, now)
    assert not should_reset(_dt(2024, 5, 1, 6, 30), now)
    assert should_reset(_dt(2024, 5, 1, 5, 59), now)


def test_seconds_until_next_reset():
    assert seconds_until_next_reset(_dt(2024, 5, 1, 11, 59)) == 60


def test_task_reset_updates():
    now = _dt(2024, 5, 1, 7)

    assert task_reset_updates({"last_task_reset": _dt(2024, 5, 1, 6, 10)}, now) == {}
    assert task_reset_updates({"last_task_reset": _dt(2024, 5, 1, 5)}, now) == {
        "task_invite_friend": 0,
        "task_watch_ad": 0,
        "last_task_reset": now,
    }
    assert task_reset_updates({}, now)["last_task_reset"] == now
