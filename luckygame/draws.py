from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from config import (
    DRAW_HISTORY_COUNT,
    DRAW_INTERVAL_SEC,
    DRAW_NUMBERS_COUNT,
    DRAW_NUMBERS_MAX,
)

DRAW_INTERVAL_MS = DRAW_INTERVAL_SEC * 1000
DRAW_SLOT_PREFIX = "draw_"

LCG_MULTIPLIER = 1103515245
LCG_INCREMENT = 12345
LCG_MASK = 0x7FFFFFFF

JACKPOT_MATCHES = 7
JACKPOT_REWARD = 1000
DEFAULT_MATCH_REWARD = 10
MATCH_REWARDS = {0: 10, 1: 20, 2: 30, 3: 40, 4: 50, 5: 60, 6: 70}


def now_ms(now: Optional[datetime] = None) -> int:
    if now is None:
        now = datetime.now(timezone.utc)
    return int(now.timestamp() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def slot_floor(t_ms: int, interval_ms: int) -> int:
    return (int(t_ms) // int(interval_ms)) * int(interval_ms)


def slot_ceil(t_ms: int, interval_ms: int) -> int:
    return -(-int(t_ms) // int(interval_ms)) * int(interval_ms)


def current_draw_slot(now: Optional[datetime] = None, interval_ms: int = DRAW_INTERVAL_MS) -> int:
    """Start of the slot that contains ``now``, in epoch milliseconds."""
    return slot_floor(now_ms(now), interval_ms)


def next_draw_time(now: Optional[datetime] = None, interval_ms: int = DRAW_INTERVAL_MS) -> int:
    return current_draw_slot(now, interval_ms) + interval_ms


def slot_id(slot_ms: int, prefix: str = DRAW_SLOT_PREFIX) -> str:
    return f"{prefix}{int(slot_ms)}"


def parse_slot_id(value: str, prefix: str = DRAW_SLOT_PREFIX) -> int:
    raw = str(value or "").strip()
    if not raw.startswith(prefix):
        raise ValueError(f"not a slot id: {value!r}")
    digits = raw[len(prefix):]
    if not digits.isdigit():
        raise ValueError(f"not a slot id: {value!r}")
    return int(digits)


def lcg_next(seed: int) -> int:
    # Product and sum are taken in IEEE doubles, as the Mini App clients compute them.
    value = float(seed) * LCG_MULTIPLIER + LCG_INCREMENT
    return int(value) & LCG_MASK


def generate_draw_numbers(
    draw_time_ms: int,
    count: int = DRAW_NUMBERS_COUNT,
    max_number: int = DRAW_NUMBERS_MAX,
) -> List[int]:
    """Numbers drawn for the slot at ``draw_time_ms``.

    Every client that knows the slot time computes the same list: the seed is
    the slot time in whole seconds and the sequence is a plain LCG, so the
    result is reproducible but also predictable in advance.
    """
    if count < 0 or max_number <= 0:
        raise ValueError("count must be >= 0 and max_number > 0")
    if count > max_number:
        raise ValueError("cannot draw more unique numbers than the range holds")
    current = math.floor(int(draw_time_ms) / 1000)
    numbers: List[int] = []
    seen = set()
    while len(numbers) < count:
        current = lcg_next(current)
        num = current % max_number + 1
        if num not in seen:
            seen.add(num)
            numbers.append(num)
    return sorted(numbers)


def calculate_matches(selected: Iterable[int], drawn: Iterable[int]) -> int:
    drawn_set = set(drawn)
    return sum(1 for num in selected if num in drawn_set)


def reward_for_matches(matches: int) -> int:
    if matches == JACKPOT_MATCHES:
        return JACKPOT_REWARD
    return MATCH_REWARDS.get(matches, DEFAULT_MATCH_REWARD)


def validate_selection(
    selected: object,
    count: int = DRAW_NUMBERS_COUNT,
    max_number: int = DRAW_NUMBERS_MAX,
) -> Optional[List[int]]:
    if not isinstance(selected, list) or not selected:
        return None
    numbers: List[int] = []
    for raw in selected:
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            return None
        try:
            num = int(raw)
        except (TypeError, ValueError):
            return None
        if num < 1 or num > max_number:
            return None
        numbers.append(num)
    if len(numbers) != count or len(set(numbers)) != count:
        return None
    return sorted(numbers)


def draw_result(slot_ms: int) -> Dict[str, object]:
    return {
        "id": slot_id(slot_ms),
        "time": ms_to_datetime(slot_ms).isoformat(),
        "drawnNumbers": generate_draw_numbers(slot_ms),
    }


def past_draw_results(
    now: Optional[datetime] = None,
    count: int = DRAW_HISTORY_COUNT,
    interval_ms: int = DRAW_INTERVAL_MS,
) -> List[Dict[str, object]]:
    current = current_draw_slot(now, interval_ms)
    return [draw_result(current - index * interval_ms) for index in range(max(0, count))]
