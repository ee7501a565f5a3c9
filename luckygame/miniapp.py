from __future__ import annotations

import functools
import hashlib
import hmac
import json
import logging
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qsl

from aiohttp import web

from config import (
    BOT_TOKEN,
    CORS_ORIGIN,
    DAILY_STAT_FIELDS,
    JOB_SECRET,
    MAX_COIN_DELTA,
    WINNING_SOURCES,
)
from luckygame.battle import BattleError, battle_state, join_battle, process_due_rounds
from luckygame.draws import (
    DRAW_INTERVAL_MS,
    current_draw_slot,
    draw_result,
    ms_to_datetime,
    parse_slot_id,
    past_draw_results,
    slot_id,
)
from luckygame.games import (
    GameError,
    cash_out,
    crack_egg,
    open_box,
    reveal_cell,
    spin_wheel,
    start_game,
    strict_int,
)
from luckygame.lottery import LotteryError, join_draw, settle_draw
from luckygame.repo import (
    adjust_user_coins,
    count_referrals,
    get_or_create_user,
    increment_daily_stat,
    list_game_history,
    list_user_withdrawals,
    update_user_fields,
)
from luckygame.subscription import check_channel_subscription
from luckygame.tasks import seconds_until_next_reset, task_reset_updates
from luckygame.withdrawals import WithdrawalError, request_withdrawal

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "username": "username",
    "photo_url": "photoUrl",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _json_default(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


_dumps = functools.partial(json.dumps, default=_json_default)


def _json(payload: Dict[str, object], status: int = 200) -> web.Response:
    return web.json_response(payload, status=status, dumps=_dumps)


def _error(code: str, status: int = 400, **extra: object) -> web.Response:
    return _json({"ok": False, "error": code, **extra}, status=status)


def _parse_init_data(init_data: str) -> Optional[Dict[str, str]]:
    if not BOT_TOKEN:
        return None
    if not init_data:
        return None
    data = dict(parse_qsl(init_data, keep_blank_values=True))
    provided_hash = data.pop("hash", None)
    if not provided_hash:
        return None
    secret_key = hmac.new(
        b"WebAppData",
        BOT_TOKEN.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    data_check = "\n".join(f"{key}={value}" for key, value in sorted(data.items()))
    computed_hash = hmac.new(
        secret_key,
        data_check.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    if not hmac.compare_digest(computed_hash, str(provided_hash)):
        return None
    return data


def _extract_user_data(parsed: Dict[str, str]) -> Optional[Dict[str, object]]:
    raw_user = parsed.get("user")
    if not raw_user:
        return None
    try:
        data = json.loads(raw_user)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _user_profile(user_data: Dict[str, object]) -> Optional[Dict[str, object]]:
    try:
        telegram_id = int(user_data.get("id"))
    except (TypeError, ValueError):
        return None
    profile: Dict[str, object] = {"telegram_id": telegram_id}
    for field in PROFILE_FIELDS:
        profile[field] = str(user_data.get(field) or "").strip()
    return profile


def _init_data_from_request(request: web.Request) -> Optional[str]:
    return (
        request.headers.get("X-Init-Data")
        or request.query.get("initData")
        or request.query.get("init_data")
    )


def _request_profile(request: web.Request) -> Optional[Dict[str, object]]:
    parsed = _parse_init_data(_init_data_from_request(request) or "")
    if not parsed:
        return None
    user_data = _extract_user_data(parsed)
    if not user_data:
        return None
    return _user_profile(user_data)


async def _load_user(request: web.Request) -> Optional[Dict[str, object]]:
    profile = _request_profile(request)
    if not profile:
        return None
    pool = request.app.get("db_pool")
    if not pool:
        return None
    user, _ = await get_or_create_user(
        pool,
        int(profile["telegram_id"]),
        str(profile["first_name"]),
        str(profile["last_name"]),
        str(profile["username"]),
        str(profile["photo_url"]),
    )
    return user


async def _read_json(request: web.Request) -> Dict[str, object]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


def _today() -> date:
    return datetime.now(timezone.utc).date()


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = CORS_ORIGIN
    response.headers["Access-Control-Allow-Headers"] = (
        "authorization, content-type, x-init-data, x-job-secret"
    )
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error. method=%s path=%s", request.method, request.path)
        return _error("server", status=500)


async def miniapp_sync_user(request: web.Request) -> web.Response:
    profile = _request_profile(request)
    if not profile:
        return _error("unauthorized", status=401)
    pool = request.app.get("db_pool")
    if not pool:
        return _error("server", status=500)
    body = await _read_json(request)
    for field, key in PROFILE_FIELDS.items():
        if not profile[field] and isinstance(body.get(key), str):
            profile[field] = body[key].strip()

    telegram_id = int(profile["telegram_id"])
    user, created = await get_or_create_user(
        pool,
        telegram_id,
        str(profile["first_name"]),
        str(profile["last_name"]),
        str(profile["username"]),
        str(profile["photo_url"]),
    )
    if not user:
        return _error("sync_failed", status=500)

    updates: Dict[str, object] = {}
    for field in PROFILE_FIELDS:
        value = profile[field]
        if value and value != user.get(field):
            updates[field] = value
    referral_count = await count_referrals(pool, telegram_id)
    if referral_count != int(user.get("referral_count", 0) or 0):
        updates["referral_count"] = referral_count
    updates.update(task_reset_updates(user))
    if updates:
        user = await update_user_fields(pool, telegram_id, updates) or {**user, **updates}

    logger.info(
        "User synced. user_id=%s created=%s coins=%s refs=%s",
        telegram_id,
        created,
        user.get("coins"),
        user.get("referral_count"),
    )
    return _json(
        {
            "ok": True,
            "user": user,
            "created": created,
            "nextTaskResetIn": seconds_until_next_reset(),
        }
    )


async def miniapp_update_coins(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    pool = request.app["db_pool"]
    body = await _read_json(request)
    amount = strict_int(body.get("amount"))
    if amount is None or abs(amount) > MAX_COIN_DELTA:
        return _error("invalid_amount")
    source = str(body.get("source") or "")
    update_stats = body.get("updateStats")
    if update_stats is not None and update_stats not in DAILY_STAT_FIELDS:
        return _error("invalid_stat")

    winnings_delta = amount if amount > 0 and source in WINNING_SOURCES else 0
    balance = await adjust_user_coins(pool, int(user["telegram_id"]), amount, winnings_delta)
    if balance is None:
        return _error("not_found", status=404)
    if update_stats:
        await increment_daily_stat(pool, str(update_stats), _today())

    logger.info(
        "Coins updated. user_id=%s amount=%s source=%s coins=%s winnings=%s",
        user["telegram_id"],
        amount,
        source,
        balance["coins"],
        balance["total_winnings"],
    )
    return _json(
        {
            "ok": True,
            "success": True,
            "newCoins": balance["coins"],
            "newTotalWinnings": balance["total_winnings"],
        }
    )


def _parse_draw_slot(value: object) -> Optional[int]:
    if isinstance(value, str):
        try:
            return parse_slot_id(value)
        except ValueError:
            return strict_int(value)
    return strict_int(value)


async def miniapp_join_draw(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    body = await _read_json(request)
    try:
        ticket = await join_draw(
            request.app["db_pool"], int(user["telegram_id"]), body.get("selectedNumbers")
        )
    except LotteryError as exc:
        return _error(exc.code, **exc.extra)
    return _json({"ok": True, "success": True, **ticket})


async def miniapp_save_game_result(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    pool = request.app["db_pool"]
    body = await _read_json(request)
    try:
        result = await settle_draw(
            pool, int(user["telegram_id"]), _parse_draw_slot(body.get("drawSlot"))
        )
    except LotteryError as exc:
        return _error(exc.code, **exc.extra)
    await increment_daily_stat(pool, "games", _today())

    balance = result["balance"] or {}
    return _json(
        {
            "ok": True,
            "success": True,
            "matches": result["matches"],
            "reward": result["reward"],
            "selectedNumbers": result["selectedNumbers"],
            "drawnNumbers": result["drawnNumbers"],
            "newCoins": balance.get("coins"),
            "newTotalWinnings": balance.get("total_winnings"),
        }
    )


async def miniapp_draws(request: web.Request) -> web.Response:
    current = current_draw_slot()
    upcoming = current + DRAW_INTERVAL_MS
    return _json(
        {
            "ok": True,
            "current": draw_result(current),
            "next": {"id": slot_id(upcoming), "time": ms_to_datetime(upcoming).isoformat()},
            "results": past_draw_results(),
        }
    )


async def miniapp_history(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    items = await list_game_history(request.app["db_pool"], int(user["telegram_id"]))
    return _json({"ok": True, "items": items})


async def miniapp_request_withdrawal(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    body = await _read_json(request)
    wallet = body.get("walletAddress")
    try:
        withdrawal = await request_withdrawal(
            request.app["db_pool"],
            request.app.get("bot"),
            user,
            body.get("amount"),
            wallet if isinstance(wallet, str) else None,
        )
    except WithdrawalError as exc:
        return _error(exc.code)
    return _json(
        {
            "ok": True,
            "success": True,
            "withdrawal": withdrawal,
            "message": "So'rov yuborildi",
        }
    )


async def miniapp_withdrawals(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    items = await list_user_withdrawals(request.app["db_pool"], int(user["telegram_id"]))
    return _json({"ok": True, "items": items})


async def miniapp_verify_subscription(request: web.Request) -> web.Response:
    profile = _request_profile(request)
    if not profile:
        return _error("unauthorized", status=401, subscribed=False)
    bot = request.app.get("bot")
    if not bot:
        return _error("server", status=500, subscribed=False)
    body = await _read_json(request)
    channel = body.get("channelUsername")
    result = await check_channel_subscription(
        bot, int(profile["telegram_id"]), channel if isinstance(channel, str) else None
    )
    return _json({"ok": True, **result})


async def miniapp_battle_join(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    try:
        result = await join_battle(request.app["db_pool"], user)
    except BattleError as exc:
        return _error(exc.code, **exc.extra)
    return _json({"ok": True, "success": True, **result})


async def miniapp_battle_state(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    state = await battle_state(request.app["db_pool"], int(user["telegram_id"]))
    return _json({"ok": True, **state})


async def miniapp_battle_process(request: web.Request) -> web.Response:
    provided = request.headers.get("X-Job-Secret") or ""
    if not JOB_SECRET or not hmac.compare_digest(provided, JOB_SECRET):
        return _error("forbidden", status=403)
    processed = await process_due_rounds(request.app["db_pool"])
    return _json({"ok": True, "processed": processed})


def _game_handler(action: Callable[..., Awaitable[Dict[str, object]]], *fields: str) -> Handler:
    async def handler(request: web.Request) -> web.Response:
        user = await _load_user(request)
        if not user:
            return _error("unauthorized", status=401)
        body = await _read_json(request)
        args = [body.get(field) for field in fields]
        try:
            result = await action(request.app["db_pool"], int(user["telegram_id"]), *args)
        except GameError as exc:
            return _error(exc.code, **exc.extra)
        return _json({"ok": True, **result})

    return handler


async def miniapp_wheel_spin(request: web.Request) -> web.Response:
    user = await _load_user(request)
    if not user:
        return _error("unauthorized", status=401)
    pool = request.app["db_pool"]
    try:
        result = await spin_wheel(pool, int(user["telegram_id"]))
    except GameError as exc:
        return _error(exc.code, **exc.extra)
    await increment_daily_stat(pool, "wheel", _today())
    return _json({"ok": True, **result})


def setup_miniapp(app: web.Application) -> None:
    app.router.add_post("/api/sync-user", miniapp_sync_user)
    app.router.add_post("/api/update-coins", miniapp_update_coins)
    app.router.add_post("/api/join-draw", miniapp_join_draw)
    app.router.add_post("/api/save-game-result", miniapp_save_game_result)
    app.router.add_get("/api/draws", miniapp_draws)
    app.router.add_get("/api/history", miniapp_history)
    app.router.add_post("/api/request-withdrawal", miniapp_request_withdrawal)
    app.router.add_get("/api/withdrawals", miniapp_withdrawals)
    app.router.add_post("/api/verify-channel-subscription", miniapp_verify_subscription)
    app.router.add_post("/api/battle/join", miniapp_battle_join)
    app.router.add_get("/api/battle/state", miniapp_battle_state)
    app.router.add_post("/api/battle/process", miniapp_battle_process)
    app.router.add_post("/api/mines/start", _game_handler(start_game, "bet", "bombs"))
    app.router.add_post("/api/mines/reveal", _game_handler(reveal_cell, "cell"))
    app.router.add_post("/api/mines/cashout", _game_handler(cash_out))
    app.router.add_post("/api/box/open", _game_handler(open_box, "bet"))
    app.router.add_post("/api/wheel/spin", miniapp_wheel_spin)
    app.router.add_post("/api/egg/crack", _game_handler(crack_egg))


def build_web_app(db_pool, bot=None) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app["db_pool"] = db_pool
    app["bot"] = bot
    setup_miniapp(app)
    return app
