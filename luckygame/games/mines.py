from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional, Sequence

from config import MINES_BET_OPTIONS
from luckygame.games.common import GameError, parse_bet, strict_int
from luckygame.repo import (
    credit_coins,
    get_mines_session,
    spend_coins,
    start_mines_session,
    update_mines_session,
)
from luckygame.rewards import (
    MINES_GRID_SIZE,
    MINES_MULTIPLIERS,
    mines_cashout_amount,
    mines_multiplier,
    pick_mines_bomb_count,
)

games_logger = logging.getLogger("games")


def place_bombs(count: int, rng: Optional[random.Random] = None) -> List[int]:
    return sorted((rng or random).sample(range(MINES_GRID_SIZE), count))


def serialize_session(session: Dict[str, object], *, reveal_bombs: bool = False) -> Dict[str, object]:
    bombs = list(session.get("bomb_cells") or [])
    revealed = list(session.get("revealed_cells") or [])
    bet = int(session.get("bet") or 0)
    payload: Dict[str, object] = {
        "status": session.get("status"),
        "bet": bet,
        "bombs": len(bombs),
        "revealed": revealed,
        "multiplier": mines_multiplier(len(bombs), len(revealed)),
        "potentialWin": mines_cashout_amount(bet, len(bombs), len(revealed)),
    }
    if reveal_bombs:
        payload["bombCells"] = bombs
    return payload


def apply_reveal(session: Dict[str, object], cell: int) -> Dict[str, object]:
    """Open ``cell`` on an active session and return the new session state."""
    if session.get("status") != "active":
        raise GameError("no_active_game")
    if not 0 <= cell < MINES_GRID_SIZE:
        raise GameError("invalid_cell")
    revealed: List[int] = list(session.get("revealed_cells") or [])
    if cell in revealed:
        raise GameError("already_revealed")
    bombs: Sequence[int] = session.get("bomb_cells") or []
    revealed.append(cell)
    status = "lost" if cell in bombs else "active"
    return {**session, "revealed_cells": revealed, "status": status}


async def start_game(
    pool,
    telegram_id: int,
    bet: object,
    bombs: Optional[object] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, object]:
    bet_value = parse_bet(bet, MINES_BET_OPTIONS)
    if bombs is None:
        bomb_count = pick_mines_bomb_count(rng)
    else:
        bomb_count = strict_int(bombs)
    if bomb_count is None or bomb_count not in MINES_MULTIPLIERS:
        raise GameError("invalid_bombs")
    cells = place_bombs(bomb_count, rng)
    async with pool.acquire() as conn:
        async with conn.transaction():
            current = await get_mines_session(conn, telegram_id, for_update=True)
            if current.get("status") == "active":
                raise GameError("game_in_progress")
            coins = await spend_coins(conn, telegram_id, bet_value)
            if coins is None:
                raise GameError("insufficient_coins")
            if not await start_mines_session(conn, telegram_id, bet_value, cells):
                raise GameError("game_in_progress")
    games_logger.info(
        "Mines start. user_id=%s bet=%s bombs=%s", telegram_id, bet_value, bomb_count
    )
    session = {"bet": bet_value, "bomb_cells": cells, "revealed_cells": [], "status": "active"}
    return {"game": serialize_session(session), "newCoins": coins}


async def reveal_cell(pool, telegram_id: int, cell: object) -> Dict[str, object]:
    cell_index = strict_int(cell)
    if cell_index is None:
        raise GameError("invalid_cell")
    async with pool.acquire() as conn:
        async with conn.transaction():
            session = await get_mines_session(conn, telegram_id, for_update=True)
            if not session:
                raise GameError("no_active_game")
            updated = apply_reveal(session, cell_index)
            await update_mines_session(
                conn, telegram_id, updated["revealed_cells"], str(updated["status"])
            )
    lost = updated["status"] == "lost"
    if lost:
        games_logger.info(
            "Mines lost. user_id=%s bet=%s revealed=%s",
            telegram_id,
            updated.get("bet"),
            len(updated["revealed_cells"]) - 1,
        )
    return {"bomb": lost, "game": serialize_session(updated, reveal_bombs=lost)}


async def cash_out(pool, telegram_id: int) -> Dict[str, object]:
    async with pool.acquire() as conn:
        async with conn.transaction():
            session = await get_mines_session(conn, telegram_id, for_update=True)
            if not session or session.get("status") != "active":
                raise GameError("no_active_game")
            revealed = list(session.get("revealed_cells") or [])
            if not revealed:
                raise GameError("nothing_revealed")
            bombs = len(session.get("bomb_cells") or [])
            win = mines_cashout_amount(int(session["bet"]), bombs, len(revealed))
            balance = await credit_coins(conn, telegram_id, win)
            await update_mines_session(conn, telegram_id, revealed, "cashed_out")
    games_logger.info(
        "Mines cashout. user_id=%s bet=%s revealed=%s win=%s",
        telegram_id,
        session["bet"],
        len(revealed),
        win,
    )
    finished = {**session, "status": "cashed_out"}
    return {
        "win": win,
        "newCoins": balance["coins"] if balance else None,
        "game": serialize_session(finished, reveal_bombs=True),
    }
