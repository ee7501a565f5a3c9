from __future__ import annotations

from aiogram import Bot, F, Router
from aiogram.types import CallbackQuery
from asyncpg import Pool

from config import ADMIN_TELEGRAM_ID
from luckygame.handlers.core import edit_or_send
from luckygame.keyboards import build_withdrawal_admin_keyboard
from luckygame.texts import WITHDRAWAL_NOT_FOUND, withdrawal_admin_message
from luckygame.withdrawals import (
    WithdrawalError,
    moderate_withdrawal,
    notify_status_change,
    parse_action,
    withdrawals_logger,
)

router = Router()

ERROR_TEXTS = {
    "not_found": WITHDRAWAL_NOT_FOUND,
    "invalid_transition": "⚠️ Bu so'rov allaqachon ko'rib chiqilgan",
}


@router.callback_query(F.data.regexp(r"^(approve|reject|pay)_\d+$"))
async def withdrawal_action_callback(query: CallbackQuery, db_pool: Pool, bot: Bot) -> None:
    admin_id = query.from_user.id if query.from_user else None
    if not admin_id or admin_id != int(ADMIN_TELEGRAM_ID or 0):
        withdrawals_logger.warning("Unauthorized withdrawal action. user_id=%s", admin_id)
        await query.answer()
        return
    parsed = parse_action(query.data or "")
    if not parsed:
        await query.answer()
        return
    new_status, withdrawal_id = parsed
    try:
        withdrawal = await moderate_withdrawal(db_pool, withdrawal_id, new_status)
    except WithdrawalError as exc:
        await query.answer(ERROR_TEXTS.get(exc.code, exc.code), show_alert=True)
        return
    await notify_status_change(bot, withdrawal)
    text = withdrawal_admin_message(withdrawal, new_status)
    keyboard = build_withdrawal_admin_keyboard(withdrawal_id, new_status)
    if query.message:
        await edit_or_send(query.message, text, keyboard)
    else:
        await bot.send_message(admin_id, text, reply_markup=keyboard)
    await query.answer()
