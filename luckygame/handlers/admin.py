from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Tuple

from aiogram import Bot, F, Router
from aiogram.exceptions import (
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramRetryAfter,
)
from aiogram.filters import Command, CommandObject, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import Message
from asyncpg import Pool

from config import ADMIN_TELEGRAM_ID, BROADCAST_DELAY_SEC, TOP_USERS_LIMIT
from luckygame.keyboards import (
    ADMIN_BROADCAST_BUTTON,
    ADMIN_CANCEL_BUTTON,
    ADMIN_CLOSE_BUTTON,
    ADMIN_STATS_BUTTON,
    build_admin_cancel_keyboard,
    build_admin_panel_keyboard,
    remove_keyboard,
)
from luckygame.repo import fetch_admin_stats, fetch_all_user_ids, fetch_top_users
from luckygame.texts import (
    ADMIN_PANEL,
    ADMIN_PANEL_CLOSED,
    BROADCAST_CANCELLED,
    BROADCAST_PROMPT,
    NO_ADMIN_RIGHTS,
    STATS_ERROR,
    admin_stats,
    broadcast_done,
    broadcast_started,
    top_users,
)

router = Router()
logger = logging.getLogger(__name__)


class BroadcastState(StatesGroup):
    waiting_message = State()


def _is_admin(user_id: Optional[int]) -> bool:
    return bool(user_id and ADMIN_TELEGRAM_ID and user_id == int(ADMIN_TELEGRAM_ID))


def _day_start() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


async def broadcast(
    user_ids: Iterable[int],
    send: Callable[[int], Awaitable[object]],
    delay: float = BROADCAST_DELAY_SEC,
) -> Tuple[int, int]:
    """Deliver to every user id; returns ``(sent, failed)``."""
    sent = 0
    failed = 0
    for uid in user_ids:
        if uid <= 0:
            continue
        try:
            await send(uid)
            sent += 1
        except TelegramRetryAfter as exc:
            await asyncio.sleep(max(0.1, float(exc.retry_after)))
            try:
                await send(uid)
                sent += 1
            except (TelegramRetryAfter, TelegramForbiddenError, TelegramBadRequest):
                failed += 1
        except (TelegramForbiddenError, TelegramBadRequest):
            failed += 1
        if delay:
            await asyncio.sleep(delay)
    return sent, failed


async def _run_broadcast(
    message: Message,
    db_pool: Pool,
    send: Callable[[int], Awaitable[object]],
) -> None:
    user_ids = await fetch_all_user_ids(db_pool)
    total = len(user_ids)
    await message.answer(broadcast_started(total))
    sent, failed = await broadcast(user_ids, send)
    logger.info("Broadcast done. sent=%s failed=%s total=%s", sent, failed, total)
    await message.answer(
        broadcast_done(sent, failed, total), reply_markup=build_admin_panel_keyboard()
    )


@router.message(Command("admin"))
async def admin_command(message: Message, state: FSMContext) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        await message.answer(NO_ADMIN_RIGHTS)
        return
    await state.clear()
    await message.answer(ADMIN_PANEL, reply_markup=build_admin_panel_keyboard())


@router.message(F.text == ADMIN_STATS_BUTTON)
async def admin_stats_button(message: Message, db_pool: Pool) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        return
    try:
        stats = await fetch_admin_stats(db_pool, _day_start())
    except Exception:
        logger.exception("Admin stats failed")
        await message.answer(STATS_ERROR)
        return
    await message.answer(admin_stats(stats))


@router.message(F.text == ADMIN_CLOSE_BUTTON)
async def admin_close_button(message: Message, state: FSMContext) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        return
    await state.clear()
    await message.answer(ADMIN_PANEL_CLOSED, reply_markup=remove_keyboard())


@router.message(F.text == ADMIN_BROADCAST_BUTTON)
async def admin_broadcast_button(message: Message, state: FSMContext) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        return
    await state.set_state(BroadcastState.waiting_message)
    await message.answer(BROADCAST_PROMPT, reply_markup=build_admin_cancel_keyboard())


@router.message(StateFilter(BroadcastState.waiting_message), F.text == ADMIN_CANCEL_BUTTON)
async def admin_broadcast_cancel(message: Message, state: FSMContext) -> None:
    await state.clear()
    await message.answer(BROADCAST_CANCELLED, reply_markup=build_admin_panel_keyboard())


@router.message(StateFilter(BroadcastState.waiting_message))
async def admin_broadcast_message(
    message: Message, state: FSMContext, db_pool: Pool, bot: Bot
) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        return
    await state.clear()

    async def send(uid: int) -> object:
        return await bot.copy_message(
            chat_id=uid, from_chat_id=message.chat.id, message_id=message.message_id
        )

    await _run_broadcast(message, db_pool, send)


@router.message(Command("broadcast"))
async def broadcast_command(
    message: Message, command: CommandObject, db_pool: Pool, bot: Bot
) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        return
    text = (command.args or "").strip()
    if not text:
        await message.answer("Foydalanish: /broadcast &lt;xabar&gt;")
        return

    async def send(uid: int) -> object:
        return await bot.send_message(chat_id=uid, text=text)

    await _run_broadcast(message, db_pool, send)


@router.message(Command("users"))
async def users_command(message: Message, db_pool: Pool) -> None:
    if not _is_admin(message.from_user.id if message.from_user else None):
        await message.answer(NO_ADMIN_RIGHTS)
        return
    stats = await fetch_admin_stats(db_pool, _day_start())
    users = await fetch_top_users(db_pool, TOP_USERS_LIMIT)
    await message.answer(top_users(users, stats, TOP_USERS_LIMIT))
