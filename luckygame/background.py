from __future__ import annotations

import asyncio
import logging

from config import BATTLE_TICK_SEC
from luckygame.battle import process_due_rounds

battle_logger = logging.getLogger("battle")


async def battle_settlement_loop(db_pool, tick_sec: float = BATTLE_TICK_SEC) -> None:
    while True:
        try:
            await process_due_rounds(db_pool)
        except asyncio.CancelledError:
            raise
        except Exception:
            battle_logger.exception("Battle settlement tick failed")
        await asyncio.sleep(tick_sec)


def run_background_tasks(db_pool) -> list[asyncio.Task]:
    return [asyncio.create_task(battle_settlement_loop(db_pool))]
