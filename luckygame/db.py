from __future__ import annotations

import asyncpg

from config import DATABASE_URL

INT_COLUMN_MAX = 2**31 - 1


async def create_pool() -> asyncpg.Pool:
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not set")
    return await asyncpg.create_pool(dsn=DATABASE_URL, min_size=1, max_size=10)


async def init_db(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                telegram_id BIGINT PRIMARY KEY,
                first_name TEXT NOT NULL DEFAULT '',
                last_name TEXT NOT NULL DEFAULT '',
                username TEXT NOT NULL DEFAULT '',
                photo_url TEXT NOT NULL DEFAULT '',
                coins INT NOT NULL DEFAULT 0,
                tickets INT NOT NULL DEFAULT 0,
                total_winnings INT NOT NULL DEFAULT 0,
                referral_count INT NOT NULL DEFAULT 0,
                referred_by BIGINT,
                task_invite_friend INT NOT NULL DEFAULT 0,
                task_watch_ad INT NOT NULL DEFAULT 0,
                last_task_reset TIMESTAMPTZ,
                last_wheel_spin TIMESTAMPTZ,
                egg_energy INT NOT NULL DEFAULT 5,
                egg_energy_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            """
        )
        await conn.execute(
            """
            ALTER TABLE users
            ADD COLUMN IF NOT EXISTS last_wheel_spin TIMESTAMPTZ;
            """
        )
        await conn.execute(
            """
            ALTER TABLE users
            ADD COLUMN IF NOT EXISTS egg_energy INT NOT NULL DEFAULT 5;
            """
        )
        await conn.execute(
            """
            ALTER TABLE users
            ADD COLUMN IF NOT EXISTS egg_energy_at TIMESTAMPTZ;
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS users_created_idx ON users(created_at);
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS referrals (
                id BIGSERIAL PRIMARY KEY,
                referrer_id BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
                referred_id BIGINT NOT NULL UNIQUE REFERENCES users(telegram_id) ON DELETE CASCADE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS referrals_referrer_idx ON referrals(referrer_id);
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS withdrawals (
                id BIGSERIAL PRIMARY KEY,
                user_id BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
                amount INT NOT NULL,
                wallet_address TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                processed_at TIMESTAMPTZ
            );
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS withdrawals_user_idx ON withdrawals(user_id);
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS withdrawals_status_idx ON withdrawals(status);
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS game_history (
                id BIGSERIAL PRIMARY KEY,
                user_id BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
                selected_numbers INT[] NOT NULL,
                drawn_numbers INT[] NOT NULL,
                matches INT NOT NULL,
                reward INT NOT NULL,
                draw_slot TEXT NOT NULL,
                draw_time TIMESTAMPTZ NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                UNIQUE (user_id, draw_slot)
            );
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS lottery_entries (
                id BIGSERIAL PRIMARY KEY,
                user_id BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
                draw_slot TEXT NOT NULL,
                draw_time TIMESTAMPTZ NOT NULL,
                selected_numbers INT[] NOT NULL,
                matches INT,
                reward INT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                settled_at TIMESTAMPTZ,
                CHECK (created_at < draw_time),
                UNIQUE (user_id, draw_slot)
            );
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS battle_rounds (
                id BIGSERIAL PRIMARY KEY,
                round_slot TEXT NOT NULL UNIQUE,
                round_time TIMESTAMPTZ NOT NULL,
                status TEXT NOT NULL DEFAULT 'waiting',
                total_participants INT NOT NULL DEFAULT 0,
                total_winners INT NOT NULL DEFAULT 0,
                claimed_at TIMESTAMPTZ,
                processed_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            """
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS battle_rounds_status_idx ON battle_rounds(status, round_time);
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS battle_participants (
                id BIGSERIAL PRIMARY KEY,
                round_id BIGINT NOT NULL REFERENCES battle_rounds(id) ON DELETE CASCADE,
                user_id BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
                username TEXT NOT NULL DEFAULT '',
                first_name TEXT NOT NULL DEFAULT '',
                photo_url TEXT NOT NULL DEFAULT '',
                is_winner BOOLEAN NOT NULL DEFAULT FALSE,
                reward INT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                UNIQUE (round_id, user_id)
            );
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS daily_stats (
                date DATE PRIMARY KEY,
                ads_watched INT NOT NULL DEFAULT 0,
                wheel_spins INT NOT NULL DEFAULT 0,
                games_played INT NOT NULL DEFAULT 0
            );
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS mines_sessions (
                user_id BIGINT PRIMARY KEY REFERENCES users(telegram_id) ON DELETE CASCADE,
                bet INT NOT NULL,
                bomb_cells INT[] NOT NULL,
                revealed_cells INT[] NOT NULL DEFAULT '{}',
                status TEXT NOT NULL DEFAULT 'active',
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
            );
            """
        )
