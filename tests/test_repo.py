from datetime import date, datetime, timezone

import pytest

from luckygame import repo

NOW = datetime(2024, 5, 1, 7, tzinfo=timezone.utc)


def test_build_assignments_numbers_placeholders():
    assignments, values = repo._build_assignments({"coins": 10, "username": "ali"})

    assert assignments == "coins = $2, username = $3"
    assert values == [10, "ali"]


def test_build_assignments_rejects_unknown_columns():
    with pytest.raises(ValueError):
        repo._build_assignments({"is_admin": True})


@pytest.mark.asyncio
async def test_get_or_create_user_falls_back_to_existing_row(fake_pool):
    fake_pool.conn.fetchrow.side_effect = [None, {"telegram_id": 42, "coins": 900}]

    user, created = await repo.get_or_create_user(fake_pool, 42, "Ali")

    assert created is False
    assert user == {"telegram_id": 42, "coins": 900}


@pytest.mark.asyncio
async def test_adjust_user_coins(fake_pool):
    fake_pool.conn.fetchrow.return_value = {"coins": 600, "total_winnings": 100}

    assert await repo.adjust_user_coins(fake_pool, 42, 100, 100) == {
        "coins": 600,
        "total_winnings": 100,
    }
    assert fake_pool.conn.fetchrow.await_args.args[1:] == (42, 100, 100)


@pytest.mark.asyncio
async def test_increment_daily_stat_ignores_unknown_kind(fake_pool):
    assert await repo.increment_daily_stat(fake_pool, "clicks", date(2024, 5, 1)) is False
    fake_pool.conn.execute.assert_not_awaited()

    assert await repo.increment_daily_stat(fake_pool, "ads", date(2024, 5, 1)) is True
    assert "ads_watched" in fake_pool.conn.execute.await_args.args[0]


@pytest.mark.asyncio
async def test_create_lottery_entry_returns_none_on_conflict(fake_pool):
    fake_pool.conn.fetchrow.return_value = None

    entry = await repo.create_lottery_entry(
        fake_pool, 42, [1, 2, 3, 4, 5, 6, 7], "draw_1", NOW
    )

    assert entry is None
    sql = fake_pool.conn.fetchrow.await_args.args[0]
    assert "ON CONFLICT (user_id, draw_slot) DO NOTHING" in sql
    assert "now() < $3" in sql


@pytest.mark.asyncio
async def test_create_lottery_entry_stores_ticket(fake_pool):
    fake_pool.conn.fetchrow.return_value = {"id": 5, "draw_slot": "draw_1"}

    entry = await repo.create_lottery_entry(
        fake_pool, 42, (1, 2, 3, 4, 5, 6, 7), "draw_1", NOW
    )

    assert entry == {"id": 5, "draw_slot": "draw_1"}
    assert fake_pool.conn.fetchrow.await_args.args[1:] == (
        42,
        "draw_1",
        NOW,
        [1, 2, 3, 4, 5, 6, 7],
    )


@pytest.mark.asyncio
async def test_insert_game_result_reports_duplicate_slot(fake_pool):
    fake_pool.conn.fetchrow.return_value = None

    saved = await repo.insert_game_result(
        fake_pool.conn,
        42,
        selected_numbers=[1, 2, 3, 4, 5, 6, 7],
        drawn_numbers=[1, 5, 9, 12, 20, 33, 40],
        matches=2,
        reward=30,
        draw_slot="draw_1",
        draw_time=NOW,
    )

    assert saved is False


@pytest.mark.asyncio
async def test_start_mines_session_skips_active_round(fake_pool):
    fake_pool.conn.fetchrow.return_value = None

    started = await repo.start_mines_session(fake_pool.conn, 42, 10, [1, 2, 3])

    assert started is False
    assert "status <> 'active'" in fake_pool.conn.fetchrow.await_args.args[0]


@pytest.mark.asyncio
async def test_create_withdrawal_requires_winnings(fake_pool):
    fake_pool.conn.fetchrow.return_value = None

    assert await repo.create_withdrawal(fake_pool, 42, 6000, None) is None
    assert fake_pool.conn.fetchrow.await_count == 1


@pytest.mark.asyncio
async def test_create_withdrawal_returns_remaining_winnings(fake_pool):
    fake_pool.conn.fetchrow.side_effect = [
        {"total_winnings": 1000},
        {"id": 3, "user_id": 42, "amount": 6000, "status": "pending"},
    ]

    withdrawal = await repo.create_withdrawal(fake_pool, 42, 6000, "UQwallet")

    assert withdrawal["id"] == 3
    assert withdrawal["total_winnings"] == 1000


@pytest.mark.asyncio
async def test_settle_round_stops_when_claim_lost(fake_pool):
    fake_pool.conn.fetchrow.return_value = None

    settled = await repo.settle_round(fake_pool, 1, NOW, [(100, 1, True, 20)], 1, NOW)

    assert settled is False
    fake_pool.conn.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_settle_round_credits_every_participant(fake_pool):
    fake_pool.conn.fetchrow.side_effect = [
        {"id": 1},
        {"coins": 20, "total_winnings": 0},
        {"coins": 40, "total_winnings": 0},
    ]
    results = [(100, 1, True, 20), (101, 2, False, 40)]

    assert await repo.settle_round(fake_pool, 1, NOW, results, 1, NOW) is True
    # two participant updates plus the round completion
    assert fake_pool.conn.execute.await_count == 3
    credited = [call.args[1:3] for call in fake_pool.conn.fetchrow.await_args_list[1:]]
    assert credited == [(1, 20), (2, 40)]


@pytest.mark.asyncio
async def test_add_round_participant_requires_waiting_round(fake_pool):
    fake_pool.conn.fetchrow.return_value = {"status": "completed"}

    assert await repo.add_round_participant(fake_pool, 1, {"telegram_id": 42}) is None
    assert fake_pool.conn.fetchrow.await_count == 1
