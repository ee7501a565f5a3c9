from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from config import DRAW_NUMBERS_COUNT, DRAW_RESULT_GRACE_SEC
from luckygame.draws import (
    DRAW_INTERVAL_MS,
    calculate_matches,
    generate_draw_numbers,
    ms_to_datetime,
    next_draw_time,
    now_ms,
    reward_for_matches,
    slot_id,
    validate_selection,
)
from luckygame.repo import (
    create_lottery_entry,
    credit_coins,
    fetch_lottery_entry_for_update,
    insert_game_result,
    mark_lottery_entry_settled,
)

games_logger = logging.getLogger("games")


class LotteryError(Exception):
    def __init__(self, code: str, **extra: object) -> None:
        super().__init__(code)
        self.code = code
        self.extra = extra


async def join_draw(
    pool,
    telegram_id: int,
    selected: object,
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    """Register a full ticket for the next draw, before its numbers exist."""
    numbers = validate_selection(selected)
    if numbers is None:
        raise LotteryError("invalid_selection")
    draw_ms = next_draw_time(now)
    entry = await create_lottery_entry(
        pool, telegram_id, numbers, slot_id(draw_ms), ms_to_datetime(draw_ms)
    )
    if not entry:
        raise LotteryError("already_joined", drawSlot=slot_id(draw_ms))
    games_logger.info(
        "Lottery ticket. user_id=%s slot=%s numbers=%s",
        telegram_id,
        slot_id(draw_ms),
        numbers,
    )
    return {
        "drawSlot": slot_id(draw_ms),
        "drawTime": ms_to_datetime(draw_ms).isoformat(),
        "selectedNumbers": numbers,
    }


async def settle_draw(
    pool,
    telegram_id: int,
    slot_ms: Optional[int],
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    """Score the stored ticket for a finished draw and credit the reward once."""
    if slot_ms is None or slot_ms <= 0 or slot_ms % DRAW_INTERVAL_MS:
        raise LotteryError("invalid_slot")
    current = now_ms(now)
    if slot_ms > current:
        raise LotteryError("draw_pending")
    if current - slot_ms > DRAW_RESULT_GRACE_SEC * 1000:
        raise LotteryError("draw_expired")

    draw_slot = slot_id(slot_ms)
    draw_time = ms_to_datetime(slot_ms)
    async with pool.acquire() as conn:
        async with conn.transaction():
            entry = await fetch_lottery_entry_for_update(conn, telegram_id, draw_slot)
            if not entry or entry["created_at"] >= draw_time:
                raise LotteryError("not_joined")
            if entry.get("settled_at"):
                raise LotteryError("already_saved")
            selected = sorted(int(num) for num in entry["selected_numbers"])
            drawn = generate_draw_numbers(slot_ms, DRAW_NUMBERS_COUNT)
            matches = calculate_matches(selected, drawn)
            reward = reward_for_matches(matches)
            saved = await insert_game_result(
                conn,
                telegram_id,
                selected_numbers=selected,
                drawn_numbers=drawn,
                matches=matches,
                reward=reward,
                draw_slot=draw_slot,
                draw_time=draw_time,
            )
            if not saved:
                raise LotteryError("already_saved")
            await mark_lottery_entry_settled(conn, int(entry["id"]), matches, reward)
            balance = await credit_coins(conn, telegram_id, reward, reward)
    games_logger.info(
        "Lottery result. user_id=%s slot=%s matches=%s reward=%s",
        telegram_id,
        draw_slot,
        matches,
        reward,
    )
    return {
        "matches": matches,
        "reward": reward,
        "selectedNumbers": selected,
        "drawnNumbers": drawn,
        "balance": balance,
    }
