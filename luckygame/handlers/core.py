from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.filters import CommandStart
from aiogram.filters.command import CommandObject
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message, User
from asyncpg import Pool

from config import BOT_START_COINS, NEW_USER_TICKETS, REQUIRED_CHANNEL, SUBSCRIPTION_REQUIRED
from luckygame.keyboards import (
    build_back_to_menu_keyboard,
    build_main_menu_keyboard,
    build_subscription_keyboard,
)
from luckygame.referrals import apply_referral_reward, parse_referrer_id
from luckygame.repo import get_or_create_user, get_user
from luckygame.subscription import is_subscribed
from luckygame.texts import (
    GENERIC_ERROR,
    NOT_SUBSCRIBED_YET,
    RULES,
    referral_notice,
    subscribe_prompt,
    subscription_confirmed,
    welcome,
)

router = Router()
logger = logging.getLogger(__name__)


def parse_check_sub_payload(data: str) -> Optional[int]:
    raw = (data or "").rsplit("_", 1)[-1]
    return int(raw) if raw.isdigit() else None


async def register_bot_user(
    db_pool: Pool,
    bot: Bot,
    tg_user: User,
    referrer_id: Optional[int],
) -> Tuple[Dict[str, object], bool]:
    existing = await get_user(db_pool, tg_user.id)
    if existing:
        return existing, False
    referrer: Dict[str, object] = {}
    if referrer_id and referrer_id != tg_user.id:
        referrer = await get_user(db_pool, referrer_id)
    user, created = await get_or_create_user(
        db_pool,
        tg_user.id,
        tg_user.first_name or "",
        tg_user.last_name or "",
        tg_user.username or "",
        coins=BOT_START_COINS,
        tickets=NEW_USER_TICKETS,
        referred_by=int(referrer["telegram_id"]) if referrer else None,
    )
    if not created:
        return user, False
    logger.info("Bot user created. user_id=%s referrer=%s", tg_user.id, referrer_id)
    if referrer:
        reward = await apply_referral_reward(db_pool, int(referrer["telegram_id"]), tg_user.id)
        if reward:
            try:
                await bot.send_message(
                    int(referrer["telegram_id"]),
                    referral_notice(
                        tg_user.first_name or "", reward["bonus"], reward["referral_count"]
                    ),
                )
            except (TelegramBadRequest, TelegramForbiddenError) as exc:
                logger.warning(
                    "Referral notice failed. referrer=%s error=%s", referrer["telegram_id"], exc
                )
    return user, True


async def edit_or_send(
    message: Message, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None
) -> None:
    try:
        await message.edit_text(text, reply_markup=reply_markup)
    except TelegramBadRequest as exc:
        if "message is not modified" in str(exc).lower():
            return
        await message.answer(text, reply_markup=reply_markup)


@router.message(CommandStart())
async def start_command(
    message: Message,
    command: CommandObject,
    db_pool: Pool,
    bot: Bot,
) -> None:
    tg_user = message.from_user
    if not tg_user or message.chat.type != "private":
        return
    referrer_id = parse_referrer_id(command.args or "")
    if referrer_id == tg_user.id:
        referrer_id = None
    if SUBSCRIPTION_REQUIRED and not await is_subscribed(bot, tg_user.id, REQUIRED_CHANNEL):
        await message.answer(
            subscribe_prompt(REQUIRED_CHANNEL),
            reply_markup=build_subscription_keyboard(REQUIRED_CHANNEL, referrer_id),
            disable_web_page_preview=True,
        )
        return
    user, _ = await register_bot_user(db_pool, bot, tg_user, referrer_id)
    if not user:
        await message.answer(GENERIC_ERROR)
        return
    await message.answer(
        welcome(tg_user.first_name or ""), reply_markup=build_main_menu_keyboard()
    )


@router.callback_query(F.data.startswith("check_sub_"))
async def check_subscription_callback(query: CallbackQuery, db_pool: Pool, bot: Bot) -> None:
    tg_user = query.from_user
    if not tg_user:
        return
    if not await is_subscribed(bot, tg_user.id, REQUIRED_CHANNEL):
        await query.answer(NOT_SUBSCRIBED_YET, show_alert=True)
        return
    referrer_id = parse_check_sub_payload(query.data or "")
    user, _ = await register_bot_user(db_pool, bot, tg_user, referrer_id)
    if not user:
        await query.answer(GENERIC_ERROR, show_alert=True)
        return
    text = subscription_confirmed(tg_user.first_name or "")
    if query.message:
        await edit_or_send(query.message, text, build_main_menu_keyboard())
    else:
        await bot.send_message(tg_user.id, text, reply_markup=build_main_menu_keyboard())
    await query.answer()


@router.callback_query(F.data == "show_rules")
async def show_rules_callback(query: CallbackQuery) -> None:
    if query.message:
        await edit_or_send(query.message, RULES, build_back_to_menu_keyboard())
    await query.answer()


@router.callback_query(F.data == "back_to_menu")
async def back_to_menu_callback(query: CallbackQuery) -> None:
    first_name = query.from_user.first_name if query.from_user else ""
    if query.message:
        await edit_or_send(query.message, welcome(first_name or ""), build_main_menu_keyboard())
    await query.answer()
