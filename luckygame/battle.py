from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from config import (
    BATTLE_CLAIM_TIMEOUT_SEC,
    BATTLE_INTERVAL_SEC,
    BATTLE_WINNER_PERCENT,
)
from luckygame.draws import ms_to_datetime, now_ms, slot_ceil, slot_id
from luckygame.repo import (
    add_round_participant,
    claim_due_rounds,
    get_or_create_round,
    get_round_by_slot,
    list_round_participants,
    settle_round,
)
from luckygame.rewards import battle_reward

BATTLE_INTERVAL_MS = BATTLE_INTERVAL_SEC * 1000
BATTLE_SLOT_PREFIX = "battle_"

battle_logger = logging.getLogger("battle")


class BattleError(Exception):
    def __init__(self, code: str, **extra: object) -> None:
        super().__init__(code)
        self.code = code
        self.extra = extra


def battle_round_time(now: Optional[datetime] = None) -> int:
    """Upcoming battle round boundary in epoch milliseconds."""
    return slot_ceil(now_ms(now), BATTLE_INTERVAL_MS)


def battle_round_slot(now: Optional[datetime] = None) -> Tuple[str, int]:
    round_ms = battle_round_time(now)
    return slot_id(round_ms, BATTLE_SLOT_PREFIX), round_ms


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def winner_count(participants: int, percent: float = BATTLE_WINNER_PERCENT) -> int:
    if participants <= 0:
        return 0
    return min(participants, max(1, round_half_up(participants * percent)))


def select_winners(
    participants: Sequence[Dict[str, object]],
    count: int,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, object]]:
    shuffled = list(participants)
    (rng or random).shuffle(shuffled)
    return shuffled[: max(0, count)]


def settlement_plan(
    participants: Sequence[Dict[str, object]],
    rng: Optional[random.Random] = None,
    percent: float = BATTLE_WINNER_PERCENT,
) -> List[Tuple[int, int, bool, int]]:
    """``(participant_id, user_id, is_winner, reward)`` for every participant."""
    winners = select_winners(participants, winner_count(len(participants), percent), rng)
    winner_ids = {int(item["id"]) for item in winners}
    plan = []
    for item in participants:
        is_winner = int(item["id"]) in winner_ids
        plan.append((int(item["id"]), int(item["user_id"]), is_winner, battle_reward(is_winner)))
    return plan


async def join_battle(pool, user: Dict[str, object], now: Optional[datetime] = None) -> Dict[str, object]:
    round_slot, round_ms = battle_round_slot(now)
    battle_round = await get_or_create_round(pool, round_slot, ms_to_datetime(round_ms))
    if battle_round.get("status") != "waiting":
        raise BattleError("round_closed")
    participant_id = await add_round_participant(pool, int(battle_round["id"]), user)
    if participant_id is None:
        raise BattleError("already_joined", alreadyJoined=True)
    battle_logger.info(
        "Battle join. user_id=%s round=%s", user.get("telegram_id"), round_slot
    )
    return {
        "roundId": round_slot,
        "roundTime": ms_to_datetime(round_ms).isoformat(),
        "participants": int(battle_round.get("total_participants") or 0) + 1,
    }


async def battle_state(
    pool, telegram_id: int, now: Optional[datetime] = None
) -> Dict[str, object]:
    round_slot, round_ms = battle_round_slot(now)
    battle_round = await get_round_by_slot(pool, round_slot)
    participants: List[Dict[str, object]] = []
    if battle_round:
        participants = await list_round_participants(pool, int(battle_round["id"]))
    joined = any(int(item["user_id"]) == int(telegram_id) for item in participants)
    return {
        "roundId": round_slot,
        "roundTime": ms_to_datetime(round_ms).isoformat(),
        "status": battle_round.get("status", "waiting") if battle_round else "waiting",
        "joined": joined,
        "participants": [
            {
                "userId": int(item["user_id"]),
                "username": item.get("username") or "",
                "firstName": item.get("first_name") or "",
                "photoUrl": item.get("photo_url") or "",
            }
            for item in participants
        ],
    }


async def process_due_rounds(
    pool,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[Dict[str, int]]:
    now = now or datetime.now(timezone.utc)
    stale_before = now - timedelta(seconds=BATTLE_CLAIM_TIMEOUT_SEC)
    claimed = await claim_due_rounds(pool, now, stale_before)
    processed: List[Dict[str, int]] = []
    for battle_round in claimed:
        round_id = int(battle_round["id"])
        participants = await list_round_participants(pool, round_id)
        plan = settlement_plan(participants, rng)
        winners = sum(1 for _, _, is_winner, _ in plan if is_winner)
        settled = await settle_round(
            pool,
            round_id,
            battle_round["claimed_at"],
            plan,
            winners,
            now,
        )
        if not settled:
            continue
        battle_logger.info(
            "Battle settled. round=%s participants=%s winners=%s",
            battle_round.get("round_slot"),
            len(plan),
            winners,
        )
        processed.append(
            {"round_id": round_id, "participants": len(plan), "winners": winners}
        )
    return processed
