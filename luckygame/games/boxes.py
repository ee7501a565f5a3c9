from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from config import (
    BOX_BET_OPTIONS,
    EGG_ENERGY_RECOVERY_SEC,
    EGG_MAX_ENERGY,
)
from luckygame.games.common import GameError, parse_bet
from luckygame.repo import (
    apply_user_updates,
    credit_coins,
    fetch_user_for_update,
    spend_coins,
)
from luckygame.rewards import (
    box_win_amount,
    pick_box_outcome,
    pick_egg_reward,
    pick_wheel_segment,
)
from luckygame.tasks import seconds_until_next_reset, should_reset

games_logger = logging.getLogger("games")


async def open_box(
    pool,
    telegram_id: int,
    bet: object,
    rng: Optional[random.Random] = None,
) -> Dict[str, object]:
    bet_value = parse_bet(bet, BOX_BET_OPTIONS)
    outcome = pick_box_outcome(rng)
    win = box_win_amount(bet_value, outcome)
    async with pool.acquire() as conn:
        async with conn.transaction():
            if await spend_coins(conn, telegram_id, bet_value) is None:
                raise GameError("insufficient_coins")
            balance = await credit_coins(conn, telegram_id, win)
    games_logger.info(
        "Box open. user_id=%s bet=%s outcome=%s win=%s",
        telegram_id,
        bet_value,
        outcome.name,
        win,
    )
    return {
        "outcome": outcome.name,
        "multiplier": outcome.multiplier,
        "win": win,
        "newCoins": balance["coins"] if balance else None,
    }


async def spin_wheel(
    pool,
    telegram_id: int,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, object]:
    now = now or datetime.now(timezone.utc)
    async with pool.acquire() as conn:
        async with conn.transaction():
            user = await fetch_user_for_update(conn, telegram_id)
            if not user:
                raise GameError("not_found")
            last_spin = user.get("last_wheel_spin")
            if isinstance(last_spin, datetime) and not should_reset(last_spin, now):
                raise GameError("wheel_cooldown", nextSpinIn=seconds_until_next_reset(now))
            index, value = pick_wheel_segment(rng)
            await apply_user_updates(conn, telegram_id, {"last_wheel_spin": now})
            balance = await credit_coins(conn, telegram_id, value, value)
    games_logger.info("Wheel spin. user_id=%s segment=%s value=%s", telegram_id, index, value)
    return {
        "segment": index,
        "reward": value,
        "newCoins": balance["coins"] if balance else None,
        "newTotalWinnings": balance["total_winnings"] if balance else None,
        "nextSpinIn": seconds_until_next_reset(now),
    }


def recover_egg_energy(
    energy: int,
    energy_at: Optional[datetime],
    now: datetime,
) -> Tuple[int, Optional[datetime]]:
    """Energy after passive recovery and the moment the next point starts accruing from."""
    if energy >= EGG_MAX_ENERGY or energy_at is None:
        return EGG_MAX_ENERGY, None
    elapsed = max(0.0, (now - energy_at).total_seconds())
    recovered = int(elapsed // EGG_ENERGY_RECOVERY_SEC)
    if energy + recovered >= EGG_MAX_ENERGY:
        return EGG_MAX_ENERGY, None
    return energy + recovered, energy_at + timedelta(seconds=recovered * EGG_ENERGY_RECOVERY_SEC)


def egg_state(energy: int, energy_at: Optional[datetime], now: datetime) -> Dict[str, object]:
    next_in = None
    if energy < EGG_MAX_ENERGY and energy_at is not None:
        next_in = max(0, int(EGG_ENERGY_RECOVERY_SEC - (now - energy_at).total_seconds()))
    return {"energy": energy, "maxEnergy": EGG_MAX_ENERGY, "nextEnergyIn": next_in}


async def crack_egg(
    pool,
    telegram_id: int,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, object]:
    now = now or datetime.now(timezone.utc)
    async with pool.acquire() as conn:
        async with conn.transaction():
            user = await fetch_user_for_update(conn, telegram_id)
            if not user:
                raise GameError("not_found")
            energy, energy_at = recover_egg_energy(
                int(user.get("egg_energy", EGG_MAX_ENERGY) or 0),
                user.get("egg_energy_at"),
                now,
            )
            if energy <= 0:
                raise GameError("no_energy", **egg_state(energy, energy_at, now))
            energy -= 1
            if energy_at is None:
                energy_at = now
            reward = pick_egg_reward(rng)
            await apply_user_updates(
                conn, telegram_id, {"egg_energy": energy, "egg_energy_at": energy_at}
            )
            balance = await credit_coins(conn, telegram_id, reward)
    games_logger.info("Egg crack. user_id=%s reward=%s energy=%s", telegram_id, reward, energy)
    return {
        "reward": reward,
        "newCoins": balance["coins"] if balance else None,
        **egg_state(energy, energy_at, now),
    }
