from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from config import REFERRAL_REWARD, REFERRAL_TASK_BONUS, REFERRAL_TASK_TARGET
from luckygame.repo import apply_user_updates, fetch_user_for_update, record_referral
from luckygame.tasks import should_reset

logger = logging.getLogger(__name__)


def parse_referrer_id(payload: str) -> Optional[int]:
    raw = (payload or "").strip()
    if not raw:
        return None
    if raw.startswith("ref_"):
        candidate = raw[4:]
    elif raw.startswith("ref"):
        candidate = raw[3:]
    else:
        return None
    candidate = candidate.split(" ", 1)[0].strip()
    return int(candidate) if candidate.isdigit() else None


def referral_reward_updates(
    referrer: Dict[str, object], now: Optional[datetime] = None
) -> Dict[str, object]:
    """Column values for a referrer who just brought in one more user.

    The invite-friend task counter restarts when its reset window has rolled
    over. Reaching the task target pays the bonus once per window.
    """
    now = now or datetime.now(timezone.utc)
    last_reset = referrer.get("last_task_reset")
    reset = should_reset(last_reset if isinstance(last_reset, datetime) else None, now)
    current = 0 if reset else int(referrer.get("task_invite_friend", 0) or 0)
    task_count = min(current + 1, REFERRAL_TASK_TARGET)
    bonus = REFERRAL_TASK_BONUS if task_count == REFERRAL_TASK_TARGET and current < REFERRAL_TASK_TARGET else 0
    updates: Dict[str, object] = {
        "coins": int(referrer.get("coins", 0) or 0) + REFERRAL_REWARD + bonus,
        "referral_count": int(referrer.get("referral_count", 0) or 0) + 1,
        "task_invite_friend": task_count,
    }
    if reset:
        updates["task_watch_ad"] = 0
        updates["last_task_reset"] = now
    return updates


async def apply_referral_reward(
    pool,
    referrer_id: int,
    referred_id: int,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, int]]:
    """Record the referral and pay the referrer.

    Returns ``None`` when the referrer is unknown or the referred user was
    already counted.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            referrer = await fetch_user_for_update(conn, referrer_id)
            if not referrer:
                return None
            if not await record_referral(conn, referrer_id, referred_id):
                return None
            updates = referral_reward_updates(referrer, now)
            await apply_user_updates(conn, referrer_id, updates)
    bonus = int(updates["coins"]) - int(referrer.get("coins", 0) or 0) - REFERRAL_REWARD
    logger.info(
        "Referral rewarded. referrer=%s referred=%s bonus=%s",
        referrer_id,
        referred_id,
        bonus,
    )
    return {
        "reward": REFERRAL_REWARD,
        "bonus": bonus,
        "referral_count": int(updates["referral_count"]),
    }
