from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from config import ADMIN_TELEGRAM_ID, WITHDRAWAL_MIN_AMOUNT
from luckygame.db import INT_COLUMN_MAX
from luckygame.keyboards import build_withdrawal_admin_keyboard
from luckygame.repo import (
    create_withdrawal,
    credit_coins,
    fetch_withdrawal_for_update,
    get_withdrawal,
    set_withdrawal_status,
)
from luckygame.texts import (
    WITHDRAWAL_USER_MESSAGES,
    withdrawal_admin_message,
    withdrawal_requested,
)

ACTIONS = {"approve": "approved", "pay": "paid", "reject": "rejected"}

TRANSITIONS = {
    "pending": {"approved", "paid", "rejected"},
    "approved": {"paid"},
    "paid": set(),
    "rejected": set(),
}

withdrawals_logger = logging.getLogger("withdrawals")


class WithdrawalError(Exception):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


def parse_action(data: str) -> Optional[Tuple[str, int]]:
    action, _, raw_id = (data or "").partition("_")
    if action not in ACTIONS or not raw_id.isdigit():
        return None
    return ACTIONS[action], int(raw_id)


def can_transition(current: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(current, set())


def validate_amount(amount: object) -> int:
    if isinstance(amount, bool):
        raise WithdrawalError("invalid_amount")
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise WithdrawalError("invalid_amount") from None
    if value <= 0 or value > INT_COLUMN_MAX:
        raise WithdrawalError("invalid_amount")
    if value < WITHDRAWAL_MIN_AMOUNT:
        raise WithdrawalError("below_minimum")
    return value


async def _notify(bot: Optional[Bot], chat_id: int, text: str, reply_markup=None) -> bool:
    if not bot or not chat_id:
        return False
    try:
        await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
        return True
    except (TelegramBadRequest, TelegramForbiddenError) as exc:
        withdrawals_logger.warning("Notify failed. chat_id=%s error=%s", chat_id, exc)
        return False


async def request_withdrawal(
    pool,
    bot: Optional[Bot],
    user: Dict[str, object],
    amount: object,
    wallet_address: Optional[str] = None,
) -> Dict[str, object]:
    value = validate_amount(amount)
    telegram_id = int(user["telegram_id"])
    wallet = (wallet_address or "").strip() or None
    withdrawal = await create_withdrawal(pool, telegram_id, value, wallet)
    if withdrawal is None:
        raise WithdrawalError("insufficient_balance")
    withdrawals_logger.info(
        "Withdrawal requested. id=%s user_id=%s amount=%s",
        withdrawal["id"],
        telegram_id,
        value,
    )
    details = {
        **withdrawal,
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "username": user.get("username"),
    }
    await _notify(
        bot,
        ADMIN_TELEGRAM_ID,
        withdrawal_admin_message(details),
        build_withdrawal_admin_keyboard(int(withdrawal["id"])),
    )
    await _notify(bot, telegram_id, withdrawal_requested(value))
    return withdrawal


async def moderate_withdrawal(pool, withdrawal_id: int, new_status: str) -> Dict[str, object]:
    """Move a withdrawal to ``new_status``; rejection refunds the amount to coins."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            current = await fetch_withdrawal_for_update(conn, withdrawal_id)
            if not current:
                raise WithdrawalError("not_found")
            if not can_transition(str(current["status"]), new_status):
                raise WithdrawalError("invalid_transition")
            updated = await set_withdrawal_status(conn, withdrawal_id, new_status)
            if new_status == "rejected":
                await credit_coins(conn, int(current["user_id"]), int(current["amount"]))
    withdrawals_logger.info(
        "Withdrawal moderated. id=%s from=%s to=%s amount=%s",
        withdrawal_id,
        current["status"],
        new_status,
        current["amount"],
    )
    full = await get_withdrawal(pool, withdrawal_id)
    return full or updated


async def notify_status_change(bot: Optional[Bot], withdrawal: Dict[str, object]) -> bool:
    text = WITHDRAWAL_USER_MESSAGES.get(str(withdrawal.get("status")))
    if not text:
        return False
    return await _notify(bot, int(withdrawal["user_id"]), text)
