from contextlib import asynccontextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import test_utils

from luckygame import lottery, miniapp
from luckygame.draws import DRAW_INTERVAL_MS, current_draw_slot, generate_draw_numbers, slot_id
from luckygame.games import GameError
from luckygame.lottery import LotteryError

from tests.helpers import FakePool, sign_init_data

TOKEN = "123456:TEST-TOKEN"
TG_USER = {"id": 42, "first_name": "Ali", "last_name": "", "username": "ali"}


def _headers(token: str = TOKEN):
    return {"X-Init-Data": sign_init_data(token, TG_USER)}


def _db_user(**overrides):
    user = {
        "telegram_id": 42,
        "first_name": "Ali",
        "last_name": "",
        "username": "ali",
        "photo_url": "",
        "coins": 500,
        "total_winnings": 0,
        "referral_count": 0,
        "last_task_reset": datetime.now(timezone.utc),
    }
    user.update(overrides)
    return user


@pytest.fixture
def authorized(monkeypatch):
    monkeypatch.setattr(miniapp, "BOT_TOKEN", TOKEN)
    monkeypatch.setattr(
        miniapp, "get_or_create_user", AsyncMock(return_value=(_db_user(), False))
    )
    stat = AsyncMock()
    monkeypatch.setattr(miniapp, "increment_daily_stat", stat)
    return stat


@asynccontextmanager
async def _client(bot=None):
    pool = FakePool()
    app = miniapp.build_web_app(pool, bot)
    client = test_utils.TestClient(test_utils.TestServer(app))
    await client.start_server()
    try:
        yield client, pool
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_requests_without_valid_init_data_are_rejected(authorized):
    async with _client() as (client, _):
        missing = await client.post("/api/update-coins", json={"amount": 5})
        forged = await client.post(
            "/api/update-coins", json={"amount": 5}, headers=_headers("999:OTHER")
        )

        assert missing.status == 401
        assert (await missing.json()) == {"ok": False, "error": "unauthorized"}
        assert forged.status == 401


@pytest.mark.asyncio
async def test_update_coins_counts_winnings(monkeypatch, authorized):
    adjust = AsyncMock(return_value={"coins": 600, "total_winnings": 100})
    monkeypatch.setattr(miniapp, "adjust_user_coins", adjust)

    async with _client() as (client, pool):
        resp = await client.post(
            "/api/update-coins",
            json={"amount": 100, "source": "lottery", "updateStats": "ads"},
            headers=_headers(),
        )
        body = await resp.json()

    assert resp.status == 200
    assert body == {"ok": True, "success": True, "newCoins": 600, "newTotalWinnings": 100}
    adjust.assert_awaited_once_with(pool, 42, 100, 100)
    assert authorized.await_args.args[:2] == (pool, "ads")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, delta",
    [
        ({"amount": 100, "source": "ads"}, 0),
        ({"amount": -50, "source": "lottery"}, 0),
        ({"amount": "-20"}, 0),
    ],
)
async def test_update_coins_without_winnings(monkeypatch, authorized, payload, delta):
    adjust = AsyncMock(return_value={"coins": 450, "total_winnings": 0})
    monkeypatch.setattr(miniapp, "adjust_user_coins", adjust)

    async with _client() as (client, _):
        resp = await client.post("/api/update-coins", json=payload, headers=_headers())

    assert resp.status == 200
    assert adjust.await_args.args[3] == delta
    authorized.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, code",
    [
        ({"amount": "12abc"}, "invalid_amount"),
        ({"amount": True}, "invalid_amount"),
        ({"amount": 2**31}, "invalid_amount"),
        ({"amount": -(2**31)}, "invalid_amount"),
        ({"amount": 2.7}, "invalid_amount"),
        ({}, "invalid_amount"),
        ({"amount": 5, "updateStats": "clicks"}, "invalid_stat"),
    ],
)
async def test_update_coins_validation(monkeypatch, authorized, payload, code):
    adjust = AsyncMock()
    monkeypatch.setattr(miniapp, "adjust_user_coins", adjust)

    async with _client() as (client, _):
        resp = await client.post("/api/update-coins", json=payload, headers=_headers())
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == code
    adjust.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_coins_unknown_user(monkeypatch, authorized):
    monkeypatch.setattr(miniapp, "adjust_user_coins", AsyncMock(return_value=None))

    async with _client() as (client, _):
        resp = await client.post("/api/update-coins", json={"amount": 5}, headers=_headers())

    assert resp.status == 404


@pytest.mark.asyncio
async def test_unexpected_errors_become_server_error(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp, "adjust_user_coins", AsyncMock(side_effect=RuntimeError("db down"))
    )

    async with _client() as (client, _):
        resp = await client.post("/api/update-coins", json={"amount": 5}, headers=_headers())
        body = await resp.json()

    assert resp.status == 500
    assert body == {"ok": False, "error": "server"}
    assert resp.headers["Access-Control-Allow-Origin"]


@pytest.mark.asyncio
async def test_join_draw_returns_ticket(monkeypatch, authorized):
    ticket = {"drawSlot": "draw_900000", "drawTime": "x", "selectedNumbers": [1, 2, 3, 4, 5, 6, 7]}
    join = AsyncMock(return_value=ticket)
    monkeypatch.setattr(miniapp, "join_draw", join)

    async with _client() as (client, pool):
        resp = await client.post(
            "/api/join-draw",
            json={"selectedNumbers": [7, 6, 5, 4, 3, 2, 1]},
            headers=_headers(),
        )
        body = await resp.json()

    assert resp.status == 200
    assert body["drawSlot"] == "draw_900000"
    assert join.await_args.args == (pool, 42, [7, 6, 5, 4, 3, 2, 1])


@pytest.mark.asyncio
async def test_join_draw_rejects_short_ticket(monkeypatch, authorized):
    create = AsyncMock()
    monkeypatch.setattr(lottery, "create_lottery_entry", create)

    async with _client() as (client, _):
        resp = await client.post(
            "/api/join-draw", json={"selectedNumbers": [1, 2, 3]}, headers=_headers()
        )
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == "invalid_selection"
    create.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_game_result_settles_stored_ticket(monkeypatch, authorized):
    slot = current_draw_slot() - DRAW_INTERVAL_MS
    settle = AsyncMock(
        return_value={
            "matches": 2,
            "reward": 30,
            "selectedNumbers": [1, 2, 3, 4, 5, 6, 7],
            "drawnNumbers": generate_draw_numbers(slot),
            "balance": {"coins": 530, "total_winnings": 30},
        }
    )
    monkeypatch.setattr(miniapp, "settle_draw", settle)

    async with _client() as (client, pool):
        resp = await client.post(
            "/api/save-game-result",
            json={"selectedNumbers": [8, 9, 10, 11, 12, 13, 14], "drawSlot": slot_id(slot), "matches": 7},
            headers=_headers(),
        )
        body = await resp.json()

    assert resp.status == 200
    assert body["matches"] == 2
    assert body["selectedNumbers"] == [1, 2, 3, 4, 5, 6, 7]
    assert body["newCoins"] == 530
    assert settle.await_args.args == (pool, 42, slot)
    assert authorized.await_args.args[:2] == (pool, "games")


@pytest.mark.asyncio
async def test_save_game_result_refuses_published_slot_without_ticket(monkeypatch, authorized):
    monkeypatch.setattr(lottery, "fetch_lottery_entry_for_update", AsyncMock(return_value={}))
    credit = AsyncMock()
    monkeypatch.setattr(lottery, "credit_coins", credit)

    async with _client() as (client, _):
        resp = await client.post(
            "/api/save-game-result",
            json={"selectedNumbers": [1, 2, 3, 4, 5, 6, 7], "drawSlot": slot_id(current_draw_slot())},
            headers=_headers(),
        )
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == "not_joined"
    credit.assert_not_awaited()
    authorized.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_game_result_refuses_ancient_slot(monkeypatch, authorized):
    fetch = AsyncMock()
    monkeypatch.setattr(lottery, "fetch_lottery_entry_for_update", fetch)

    async with _client() as (client, _):
        resp = await client.post(
            "/api/save-game-result",
            json={"drawSlot": "draw_1577836800000"},
            headers=_headers(),
        )
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == "draw_expired"
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_game_result_rejects_replay(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp, "settle_draw", AsyncMock(side_effect=LotteryError("already_saved"))
    )
    slot = current_draw_slot() - DRAW_INTERVAL_MS

    async with _client() as (client, _):
        resp = await client.post(
            "/api/save-game-result", json={"drawSlot": slot}, headers=_headers()
        )
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == "already_saved"
    authorized.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "slot_offset, code",
    [
        (2 * DRAW_INTERVAL_MS, "draw_pending"),
        (-DRAW_INTERVAL_MS + 1, "invalid_slot"),
    ],
)
async def test_save_game_result_validation(monkeypatch, authorized, slot_offset, code):
    fetch = AsyncMock()
    monkeypatch.setattr(lottery, "fetch_lottery_entry_for_update", fetch)
    slot = current_draw_slot() + slot_offset

    async with _client() as (client, _):
        resp = await client.post(
            "/api/save-game-result", json={"drawSlot": slot}, headers=_headers()
        )
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == code
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_draws_are_public():
    async with _client() as (client, _):
        resp = await client.get("/api/draws")
        body = await resp.json()

    assert resp.status == 200
    assert len(body["results"]) == 24
    assert body["results"][0]["id"] == body["current"]["id"]
    assert body["current"]["drawnNumbers"] == body["results"][0]["drawnNumbers"]


@pytest.mark.asyncio
async def test_sync_user_refreshes_profile_and_referrals(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp,
        "get_or_create_user",
        AsyncMock(return_value=(_db_user(first_name="Old"), True)),
    )
    monkeypatch.setattr(miniapp, "count_referrals", AsyncMock(return_value=2))
    update = AsyncMock(return_value=_db_user(referral_count=2))
    monkeypatch.setattr(miniapp, "update_user_fields", update)

    async with _client() as (client, pool):
        resp = await client.post("/api/sync-user", json={}, headers=_headers())
        body = await resp.json()

    assert resp.status == 200
    assert body["created"] is True
    assert body["user"]["referral_count"] == 2
    assert body["nextTaskResetIn"] >= 0
    updates = update.await_args.args[2]
    assert updates["first_name"] == "Ali"
    assert updates["referral_count"] == 2
    assert "username" not in updates


@pytest.mark.asyncio
async def test_verify_subscription(authorized):
    bot = MagicMock()
    bot.get_chat_member = AsyncMock(return_value=SimpleNamespace(status="member"))

    async with _client(bot) as (client, _):
        resp = await client.post(
            "/api/verify-channel-subscription",
            json={"channelUsername": "LuckyGame_uz"},
            headers=_headers(),
        )
        body = await resp.json()

    assert body["ok"] is True
    assert body["subscribed"] is True
    bot.get_chat_member.assert_awaited_once_with(chat_id="@LuckyGame_uz", user_id=42)


@pytest.mark.asyncio
async def test_battle_process_requires_job_secret(monkeypatch):
    monkeypatch.setattr(miniapp, "JOB_SECRET", "s3cret")
    process = AsyncMock(return_value=[{"round_id": 1, "participants": 2, "winners": 1}])
    monkeypatch.setattr(miniapp, "process_due_rounds", process)

    async with _client() as (client, pool):
        denied = await client.post("/api/battle/process")
        wrong = await client.post("/api/battle/process", headers={"X-Job-Secret": "nope"})
        allowed = await client.post("/api/battle/process", headers={"X-Job-Secret": "s3cret"})
        body = await allowed.json()

    assert denied.status == 403
    assert wrong.status == 403
    assert body == {"ok": True, "processed": [{"round_id": 1, "participants": 2, "winners": 1}]}
    process.assert_awaited_once_with(pool)


@pytest.mark.asyncio
async def test_battle_join_duplicate(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp,
        "join_battle",
        AsyncMock(side_effect=miniapp.BattleError("already_joined", alreadyJoined=True)),
    )

    async with _client() as (client, _):
        resp = await client.post("/api/battle/join", headers=_headers())
        body = await resp.json()

    assert resp.status == 400
    assert body == {"ok": False, "error": "already_joined", "alreadyJoined": True}


@pytest.mark.asyncio
async def test_mines_start_endpoint(monkeypatch, authorized):
    start = AsyncMock(return_value={"game": {"status": "active", "bombs": 4}, "newCoins": 90})
    monkeypatch.setattr(miniapp, "start_game", start)

    async with _client() as (client, pool):
        resp = await client.post("/api/mines/start", json={"bet": 10}, headers=_headers())
        body = await resp.json()

    assert body == {"ok": True, "game": {"status": "active", "bombs": 4}, "newCoins": 90}
    start.assert_awaited_once_with(pool, 42, 10, None)


@pytest.mark.asyncio
async def test_game_errors_are_client_errors(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp, "open_box", AsyncMock(side_effect=GameError("insufficient_coins"))
    )

    async with _client() as (client, _):
        resp = await client.post("/api/box/open", json={"bet": 50}, headers=_headers())
        body = await resp.json()

    assert resp.status == 400
    assert body == {"ok": False, "error": "insufficient_coins"}


@pytest.mark.asyncio
async def test_wheel_spin_counts_daily_stat(monkeypatch, authorized):
    monkeypatch.setattr(
        miniapp,
        "spin_wheel",
        AsyncMock(return_value={"segment": 2, "reward": 30, "newCoins": 530}),
    )

    async with _client() as (client, pool):
        resp = await client.post("/api/wheel/spin", headers=_headers())
        body = await resp.json()

    assert body["reward"] == 30
    assert authorized.await_args.args[:2] == (pool, "wheel")


@pytest.mark.asyncio
async def test_cors_preflight():
    async with _client() as (client, _):
        resp = await client.options("/api/update-coins")

    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == miniapp.CORS_ORIGIN
    assert "x-init-data" in resp.headers["Access-Control-Allow-Headers"]
