from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import asyncpg

from config import DAILY_STAT_FIELDS, NEW_USER_COINS, NEW_USER_TICKETS

USER_FIELDS = {
    "first_name",
    "last_name",
    "username",
    "photo_url",
    "coins",
    "tickets",
    "total_winnings",
    "referral_count",
    "referred_by",
    "task_invite_friend",
    "task_watch_ad",
    "last_task_reset",
    "last_wheel_spin",
    "egg_energy",
    "egg_energy_at",
}

_battle_logger = logging.getLogger("battle")


def _row_to_dict(row: Optional[asyncpg.Record]) -> Dict[str, Any]:
    return dict(row) if row else {}


def _build_assignments(fields: Dict[str, Any], start: int = 2) -> Tuple[str, list]:
    unknown = set(fields) - USER_FIELDS
    if unknown:
        raise ValueError(f"unknown user fields: {sorted(unknown)}")
    keys = list(fields.keys())
    assignments = ", ".join(f"{key} = ${index + start}" for index, key in enumerate(keys))
    return assignments, [fields[key] for key in keys]


async def get_or_create_user(
    pool: asyncpg.Pool,
    telegram_id: int,
    first_name: str = "",
    last_name: str = "",
    username: str = "",
    photo_url: str = "",
    *,
    coins: int = NEW_USER_COINS,
    tickets: int = NEW_USER_TICKETS,
    referred_by: Optional[int] = None,
) -> Tuple[Dict[str, Any], bool]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO users (
                telegram_id, first_name, last_name, username, photo_url,
                coins, tickets, referred_by
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (telegram_id) DO NOTHING
            RETURNING *
            """,
            int(telegram_id),
            first_name or "",
            last_name or "",
            username or "",
            photo_url or "",
            int(coins),
            int(tickets),
            referred_by,
        )
        if row:
            return dict(row), True
        row = await conn.fetchrow(
            "SELECT * FROM users WHERE telegram_id = $1", int(telegram_id)
        )
    return _row_to_dict(row), False


async def get_user(pool: asyncpg.Pool, telegram_id: int) -> Dict[str, Any]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM users WHERE telegram_id = $1", int(telegram_id)
        )
    return _row_to_dict(row)


async def update_user_fields(
    pool: asyncpg.Pool, telegram_id: int, fields: Dict[str, Any]
) -> Dict[str, Any]:
    if not fields:
        return await get_user(pool, telegram_id)
    assignments, values = _build_assignments(fields)
    sql = (
        f"UPDATE users SET {assignments}, updated_at = now() "
        "WHERE telegram_id = $1 RETURNING *"
    )
    async with pool.acquire() as conn:
        row = await conn.fetchrow(sql, int(telegram_id), *values)
    return _row_to_dict(row)


async def adjust_user_coins(
    pool: asyncpg.Pool,
    telegram_id: int,
    amount: int,
    winnings_delta: int = 0,
) -> Optional[Dict[str, int]]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            UPDATE users
            SET coins = GREATEST(0, coins + $2),
                total_winnings = total_winnings + $3,
                updated_at = now()
            WHERE telegram_id = $1
            RETURNING coins, total_winnings
            """,
            int(telegram_id),
            int(amount),
            int(winnings_delta),
        )
    if not row:
        return None
    return {"coins": int(row["coins"]), "total_winnings": int(row["total_winnings"])}


async def spend_coins(conn, telegram_id: int, amount: int) -> Optional[int]:
    row = await conn.fetchrow(
        """
        UPDATE users
        SET coins = coins - $2, updated_at = now()
        WHERE telegram_id = $1 AND coins >= $2
        RETURNING coins
        """,
        int(telegram_id),
        int(amount),
    )
    return int(row["coins"]) if row else None


async def credit_coins(
    conn, telegram_id: int, amount: int, winnings_delta: int = 0
) -> Optional[Dict[str, int]]:
    row = await conn.fetchrow(
        """
        UPDATE users
        SET coins = coins + $2,
            total_winnings = total_winnings + $3,
            updated_at = now()
        WHERE telegram_id = $1
        RETURNING coins, total_winnings
        """,
        int(telegram_id),
        int(amount),
        int(winnings_delta),
    )
    if not row:
        return None
    return {"coins": int(row["coins"]), "total_winnings": int(row["total_winnings"])}


async def fetch_user_for_update(conn, telegram_id: int) -> Dict[str, Any]:
    row = await conn.fetchrow(
        "SELECT * FROM users WHERE telegram_id = $1 FOR UPDATE",
        int(telegram_id),
    )
    return _row_to_dict(row)


async def apply_user_updates(conn, telegram_id: int, updates: Dict[str, Any]) -> None:
    if not updates:
        return
    assignments, values = _build_assignments(updates)
    sql = f"UPDATE users SET {assignments}, updated_at = now() WHERE telegram_id = $1"
    await conn.execute(sql, int(telegram_id), *values)


async def increment_daily_stat(pool: asyncpg.Pool, kind: str, day: date) -> bool:
    column = DAILY_STAT_FIELDS.get(kind)
    if not column:
        return False
    async with pool.acquire() as conn:
        await conn.execute(
            f"""
            INSERT INTO daily_stats (date, {column}) VALUES ($1, 1)
            ON CONFLICT (date) DO UPDATE
            SET {column} = daily_stats.{column} + 1
            """,
            day,
        )
    return True


async def count_referrals(pool: asyncpg.Pool, referrer_id: int) -> int:
    async with pool.acquire() as conn:
        total = await conn.fetchval(
            "SELECT COUNT(*) FROM referrals WHERE referrer_id = $1",
            int(referrer_id),
        )
    return int(total or 0)


async def record_referral(conn, referrer_id: int, referred_id: int) -> bool:
    row = await conn.fetchrow(
        """
        INSERT INTO referrals (referrer_id, referred_id)
        VALUES ($1, $2)
        ON CONFLICT (referred_id) DO NOTHING
        RETURNING id
        """,
        int(referrer_id),
        int(referred_id),
    )
    return bool(row)


async def create_lottery_entry(
    pool: asyncpg.Pool,
    telegram_id: int,
    selected_numbers: Sequence[int],
    draw_slot: str,
    draw_time: datetime,
) -> Optional[Dict[str, Any]]:
    """Bind a ticket to an upcoming draw.

    Returns ``None`` when the user already holds a ticket for this slot or
    the draw has already happened by the database clock.
    """
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO lottery_entries (user_id, draw_slot, draw_time, selected_numbers)
            SELECT $1, $2, $3, $4
            WHERE now() < $3
            ON CONFLICT (user_id, draw_slot) DO NOTHING
            RETURNING id, draw_slot, draw_time, selected_numbers, created_at
            """,
            int(telegram_id),
            draw_slot,
            draw_time,
            list(selected_numbers),
        )
    return dict(row) if row else None


async def fetch_lottery_entry_for_update(
    conn, telegram_id: int, draw_slot: str
) -> Dict[str, Any]:
    row = await conn.fetchrow(
        """
        SELECT * FROM lottery_entries
        WHERE user_id = $1 AND draw_slot = $2
        FOR UPDATE
        """,
        int(telegram_id),
        draw_slot,
    )
    return _row_to_dict(row)


async def insert_game_result(
    conn,
    telegram_id: int,
    *,
    selected_numbers: Sequence[int],
    drawn_numbers: Sequence[int],
    matches: int,
    reward: int,
    draw_slot: str,
    draw_time: datetime,
) -> bool:
    inserted = await conn.fetchrow(
        """
        INSERT INTO game_history (
            user_id, selected_numbers, drawn_numbers,
            matches, reward, draw_slot, draw_time
        ) VALUES ($1, $2, $3, $4, $5, $6, $7)
        ON CONFLICT (user_id, draw_slot) DO NOTHING
        RETURNING id
        """,
        int(telegram_id),
        list(selected_numbers),
        list(drawn_numbers),
        int(matches),
        int(reward),
        draw_slot,
        draw_time,
    )
    return bool(inserted)


async def mark_lottery_entry_settled(
    conn, entry_id: int, matches: int, reward: int
) -> None:
    await conn.execute(
        """
        UPDATE lottery_entries
        SET matches = $2, reward = $3, settled_at = now()
        WHERE id = $1
        """,
        int(entry_id),
        int(matches),
        int(reward),
    )


async def list_game_history(
    pool: asyncpg.Pool, telegram_id: int, limit: int = 50
) -> List[Dict[str, Any]]:
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT draw_slot, draw_time, selected_numbers, drawn_numbers, matches, reward
            FROM game_history
            WHERE user_id = $1
            ORDER BY draw_time DESC
            LIMIT $2
            """,
            int(telegram_id),
            int(limit),
        )
    return [dict(row) for row in rows]


async def create_withdrawal(
    pool: asyncpg.Pool,
    telegram_id: int,
    amount: int,
    wallet_address: Optional[str],
) -> Optional[Dict[str, Any]]:
    async with pool.acquire() as conn:
        async with conn.transaction():
            debited = await conn.fetchrow(
                """
                UPDATE users
                SET total_winnings = total_winnings - $2, updated_at = now()
                WHERE telegram_id = $1 AND total_winnings >= $2
                RETURNING total_winnings
                """,
                int(telegram_id),
                int(amount),
            )
            if not debited:
                return None
            row = await conn.fetchrow(
                """
                INSERT INTO withdrawals (user_id, amount, wallet_address, status)
                VALUES ($1, $2, $3, 'pending')
                RETURNING *
                """,
                int(telegram_id),
                int(amount),
                wallet_address,
            )
    data = _row_to_dict(row)
    data["total_winnings"] = int(debited["total_winnings"])
    return data


async def get_withdrawal(pool: asyncpg.Pool, withdrawal_id: int) -> Dict[str, Any]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            SELECT w.*, u.first_name, u.last_name, u.username
            FROM withdrawals w
            JOIN users u ON u.telegram_id = w.user_id
            WHERE w.id = $1
            """,
            int(withdrawal_id),
        )
    return _row_to_dict(row)


async def list_user_withdrawals(
    pool: asyncpg.Pool, telegram_id: int, limit: int = 20
) -> List[Dict[str, Any]]:
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT id, amount, wallet_address, status, created_at, processed_at
            FROM withdrawals
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            int(telegram_id),
            int(limit),
        )
    return [dict(row) for row in rows]


async def fetch_withdrawal_for_update(conn, withdrawal_id: int) -> Dict[str, Any]:
    row = await conn.fetchrow(
        "SELECT * FROM withdrawals WHERE id = $1 FOR UPDATE",
        int(withdrawal_id),
    )
    return _row_to_dict(row)


async def set_withdrawal_status(conn, withdrawal_id: int, status: str) -> Dict[str, Any]:
    row = await conn.fetchrow(
        """
        UPDATE withdrawals
        SET status = $2, processed_at = now()
        WHERE id = $1
        RETURNING *
        """,
        int(withdrawal_id),
        status,
    )
    return _row_to_dict(row)


async def get_or_create_round(
    pool: asyncpg.Pool, round_slot: str, round_time: datetime
) -> Dict[str, Any]:
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO battle_rounds (round_slot, round_time, status)
            VALUES ($1, $2, 'waiting')
            ON CONFLICT (round_slot) DO NOTHING
            """,
            round_slot,
            round_time,
        )
        row = await conn.fetchrow(
            "SELECT * FROM battle_rounds WHERE round_slot = $1", round_slot
        )
    return _row_to_dict(row)


async def get_round_by_slot(pool: asyncpg.Pool, round_slot: str) -> Dict[str, Any]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM battle_rounds WHERE round_slot = $1", round_slot
        )
    return _row_to_dict(row)


async def add_round_participant(
    pool: asyncpg.Pool, round_id: int, user: Dict[str, Any]
) -> Optional[int]:
    """Insert the user into a waiting round; ``None`` if already joined or closed."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            locked = await conn.fetchrow(
                "SELECT status FROM battle_rounds WHERE id = $1 FOR UPDATE",
                int(round_id),
            )
            if not locked or locked["status"] != "waiting":
                return None
            row = await conn.fetchrow(
                """
                INSERT INTO battle_participants (
                    round_id, user_id, username, first_name, photo_url
                ) VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (round_id, user_id) DO NOTHING
                RETURNING id
                """,
                int(round_id),
                int(user["telegram_id"]),
                str(user.get("username") or ""),
                str(user.get("first_name") or ""),
                str(user.get("photo_url") or ""),
            )
            if not row:
                return None
            await conn.execute(
                """
                UPDATE battle_rounds
                SET total_participants = total_participants + 1
                WHERE id = $1
                """,
                int(round_id),
            )
    return int(row["id"])


async def list_round_participants(
    pool: asyncpg.Pool, round_id: int
) -> List[Dict[str, Any]]:
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT id, user_id, username, first_name, photo_url, is_winner, reward
            FROM battle_participants
            WHERE round_id = $1
            ORDER BY id
            """,
            int(round_id),
        )
    return [dict(row) for row in rows]


async def claim_due_rounds(
    pool: asyncpg.Pool, now: datetime, stale_before: datetime
) -> List[Dict[str, Any]]:
    """Atomically move due rounds to ``processing``.

    Rounds left in ``processing`` by a crashed worker become claimable again
    once their claim is older than ``stale_before``.
    """
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            UPDATE battle_rounds
            SET status = 'processing', claimed_at = $1
            WHERE id IN (
                SELECT id FROM battle_rounds
                WHERE round_time <= $1
                  AND (
                    status = 'waiting'
                    OR (status = 'processing' AND claimed_at < $2)
                  )
                ORDER BY round_time
                FOR UPDATE SKIP LOCKED
            )
            RETURNING *
            """,
            now,
            stale_before,
        )
    return [dict(row) for row in rows]


async def settle_round(
    pool: asyncpg.Pool,
    round_id: int,
    claimed_at: datetime,
    results: Iterable[Tuple[int, int, bool, int]],
    winners: int,
    processed_at: datetime,
) -> bool:
    """Write participant results, credit coins and complete the round in one transaction.

    ``results`` holds ``(participant_id, user_id, is_winner, reward)`` tuples.
    Returns ``False`` if the claim was lost to another worker.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            owned = await conn.fetchrow(
                """
                SELECT id FROM battle_rounds
                WHERE id = $1 AND status = 'processing' AND claimed_at = $2
                FOR UPDATE
                """,
                int(round_id),
                claimed_at,
            )
            if not owned:
                _battle_logger.warning("Battle claim lost. round_id=%s", round_id)
                return False
            for participant_id, user_id, is_winner, reward in results:
                await conn.execute(
                    """
                    UPDATE battle_participants
                    SET is_winner = $2, reward = $3
                    WHERE id = $1
                    """,
                    int(participant_id),
                    bool(is_winner),
                    int(reward),
                )
                await credit_coins(conn, user_id, reward)
            await conn.execute(
                """
                UPDATE battle_rounds
                SET status = 'completed', total_winners = $2, processed_at = $3
                WHERE id = $1
                """,
                int(round_id),
                int(winners),
                processed_at,
            )
    return True


async def get_mines_session(conn, telegram_id: int, *, for_update: bool = False) -> Dict[str, Any]:
    sql = "SELECT * FROM mines_sessions WHERE user_id = $1"
    if for_update:
        sql += " FOR UPDATE"
    row = await conn.fetchrow(sql, int(telegram_id))
    return _row_to_dict(row)


async def start_mines_session(
    conn, telegram_id: int, bet: int, bomb_cells: Sequence[int]
) -> bool:
    """Open a round unless one is already active. Returns ``False`` if one is."""
    row = await conn.fetchrow(
        """
        INSERT INTO mines_sessions (user_id, bet, bomb_cells, revealed_cells, status)
        VALUES ($1, $2, $3, '{}', 'active')
        ON CONFLICT (user_id) DO UPDATE
        SET bet = EXCLUDED.bet,
            bomb_cells = EXCLUDED.bomb_cells,
            revealed_cells = '{}',
            status = 'active',
            created_at = now(),
            updated_at = now()
        WHERE mines_sessions.status <> 'active'
        RETURNING user_id
        """,
        int(telegram_id),
        int(bet),
        list(bomb_cells),
    )
    return bool(row)


async def update_mines_session(
    conn, telegram_id: int, revealed_cells: Sequence[int], status: str
) -> None:
    await conn.execute(
        """
        UPDATE mines_sessions
        SET revealed_cells = $2, status = $3, updated_at = now()
        WHERE user_id = $1
        """,
        int(telegram_id),
        list(revealed_cells),
        status,
    )


async def fetch_admin_stats(pool: asyncpg.Pool, day_start: datetime) -> Dict[str, int]:
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            SELECT
                (SELECT COUNT(*) FROM users) AS total_users,
                (SELECT COUNT(*) FROM users WHERE created_at >= $1) AS today_users,
                (SELECT COUNT(*) FROM withdrawals WHERE status = 'pending') AS pending_withdrawals,
                (SELECT COUNT(*) FROM withdrawals WHERE status = 'approved') AS approved_withdrawals,
                (SELECT COALESCE(SUM(amount), 0) FROM withdrawals WHERE status = 'paid') AS total_paid,
                (SELECT COUNT(*) FROM referrals) AS total_referrals,
                (SELECT COUNT(*) FROM game_history WHERE created_at >= $1) AS today_games,
                (SELECT COALESCE(SUM(coins), 0) FROM users) AS total_coins,
                (SELECT COALESCE(SUM(task_watch_ad), 0) FROM users) AS total_ad_views,
                (SELECT COALESCE(ads_watched, 0) FROM daily_stats WHERE date = $1::date) AS today_ads
            """,
            day_start,
        )
    return {key: int(value or 0) for key, value in _row_to_dict(row).items()}


async def fetch_top_users(pool: asyncpg.Pool, limit: int) -> List[Dict[str, Any]]:
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT telegram_id, username, first_name, last_name, coins, tickets,
                   referral_count, total_winnings, created_at
            FROM users
            ORDER BY coins DESC
            LIMIT $1
            """,
            int(limit),
        )
    return [dict(row) for row in rows]


async def fetch_all_user_ids(pool: asyncpg.Pool) -> List[int]:
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT telegram_id FROM users ORDER BY telegram_id")
    return [int(row["telegram_id"]) for row in rows]
