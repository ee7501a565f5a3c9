from __future__ import annotations

import logging
from typing import Dict, Optional

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNotFound,
)

from config import PUBLIC_BOT_USERNAME, REQUIRED_CHANNEL

SUBSCRIBED_STATUSES = {"member", "administrator", "creator"}

logger = logging.getLogger(__name__)


def normalize_channel(channel: Optional[str]) -> str:
    value = (channel or "").strip() or REQUIRED_CHANNEL
    return value if value.startswith("@") else f"@{value}"


def describe_api_error(exc: TelegramAPIError) -> str:
    message = str(getattr(exc, "message", "") or exc).lower()
    if isinstance(exc, TelegramBadRequest):
        if "chat not found" in message:
            return "Kanal topilmadi. Admin botni kanalga qo'shishi kerak."
        if "user not found" in message:
            return "Foydalanuvchi topilmadi"
        return str(getattr(exc, "message", exc))
    if isinstance(exc, TelegramForbiddenError):
        return "Bot kanaldan chiqarilgan yoki bloklangan"
    if isinstance(exc, TelegramNotFound):
        bot_name = (PUBLIC_BOT_USERNAME or "").lstrip("@")
        suffix = f" (@{bot_name})" if bot_name else ""
        return (
            "Bot kanalga admin sifatida qo'shilmagan. "
            f"Iltimos, botni{suffix} kanalga admin qilib qo'shing."
        )
    return str(getattr(exc, "message", exc))


async def check_channel_subscription(
    bot: Bot, telegram_id: int, channel: Optional[str] = None
) -> Dict[str, object]:
    """Ask the Bot API whether ``telegram_id`` is a member of ``channel``.

    Never raises for Bot API failures; they come back as ``subscribed=False``
    with a readable ``error``.
    """
    chat = normalize_channel(channel)
    try:
        member = await bot.get_chat_member(chat_id=chat, user_id=int(telegram_id))
    except TelegramAPIError as exc:
        logger.warning(
            "Subscription check failed. user_id=%s channel=%s error=%s",
            telegram_id,
            chat,
            exc,
        )
        return {"subscribed": False, "error": describe_api_error(exc), "channel": chat}
    status = str(getattr(member.status, "value", member.status))
    subscribed = status in SUBSCRIBED_STATUSES
    logger.info(
        "Subscription status. user_id=%s channel=%s status=%s", telegram_id, chat, status
    )
    return {
        "subscribed": subscribed,
        "status": status,
        "channel": chat,
        "message": "Obuna tasdiqlandi" if subscribed else "Kanalga obuna bo'lmagan",
    }


async def is_subscribed(bot: Bot, telegram_id: int, channel: Optional[str] = None) -> bool:
    result = await check_channel_subscription(bot, telegram_id, channel)
    return bool(result["subscribed"])
