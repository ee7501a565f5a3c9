from __future__ import annotations

from typing import Optional

from aiogram.types import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
    WebAppInfo,
)

from config import MINIAPP_URL, PUBLIC_BOT_USERNAME, SUPPORT_URL

ADMIN_BROADCAST_BUTTON = "📨 Xabar yuborish"
ADMIN_STATS_BUTTON = "📊 Statistika"
ADMIN_CLOSE_BUTTON = "❌ Admin panelni yopish"
ADMIN_CANCEL_BUTTON = "❌ Bekor qilish"


def channel_url(channel: str) -> str:
    return f"https://t.me/{channel.lstrip('@')}"


def _play_button() -> InlineKeyboardButton:
    if MINIAPP_URL:
        return InlineKeyboardButton(text="🎲 Lotoreya", web_app=WebAppInfo(url=MINIAPP_URL))
    username = (PUBLIC_BOT_USERNAME or "").lstrip("@")
    url = f"https://t.me/{username}" if username else "https://t.me"
    return InlineKeyboardButton(text="🎲 Lotoreya", url=url)


def build_main_menu_keyboard() -> InlineKeyboardMarkup:
    second_row = [InlineKeyboardButton(text="📕 Qoidalar", callback_data="show_rules")]
    if SUPPORT_URL:
        second_row.append(InlineKeyboardButton(text="✉️ Aloqa uchun", url=SUPPORT_URL))
    return InlineKeyboardMarkup(inline_keyboard=[[_play_button()], second_row])


def build_back_to_menu_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="⬅️ Asosiy menuga qaytish", callback_data="back_to_menu")]
        ]
    )


def build_subscription_keyboard(channel: str, referrer_id: Optional[int]) -> InlineKeyboardMarkup:
    ref = str(referrer_id) if referrer_id else "none"
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📢 Kanalga o'tish", url=channel_url(channel))],
            [InlineKeyboardButton(text="✅ Tekshirish", callback_data=f"check_sub_reftg_{ref}")],
        ]
    )


def build_withdrawal_admin_keyboard(
    withdrawal_id: int, status: str = "pending"
) -> Optional[InlineKeyboardMarkup]:
    pay = InlineKeyboardButton(text="💰 To'lash", callback_data=f"pay_{withdrawal_id}")
    if status == "pending":
        return InlineKeyboardMarkup(
            inline_keyboard=[
                [
                    InlineKeyboardButton(text="✅ Qabul qilish", callback_data=f"approve_{withdrawal_id}"),
                    InlineKeyboardButton(text="❌ Rad etish", callback_data=f"reject_{withdrawal_id}"),
                ],
                [pay],
            ]
        )
    if status == "approved":
        return InlineKeyboardMarkup(inline_keyboard=[[pay]])
    return None


def build_admin_panel_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=ADMIN_BROADCAST_BUTTON), KeyboardButton(text=ADMIN_STATS_BUTTON)],
            [KeyboardButton(text=ADMIN_CLOSE_BUTTON)],
        ],
        resize_keyboard=True,
    )


def build_admin_cancel_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=ADMIN_CANCEL_BUTTON)]],
        resize_keyboard=True,
    )


def remove_keyboard() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()
