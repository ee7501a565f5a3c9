from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Dict, Iterable, Optional

from config import REFERRAL_REWARD, REFERRAL_TASK_BONUS

NO_ADMIN_RIGHTS = "⛔ Sizda admin huquqi yo'q"
GENERIC_ERROR = "❌ Xatolik yuz berdi. Qaytadan urinib ko'ring."
NOT_SUBSCRIBED_YET = (
    "❌ Siz hali kanalga obuna bo'lmagansiz!\n\n"
    "📢 Iltimos, avval kanalga obuna bo'ling va qaytadan tekshiring."
)
ADMIN_PANEL = "🔧 <b>Admin panel</b>\n\nQuyidagi tugmalardan birini tanlang:"
ADMIN_PANEL_CLOSED = "✅ Admin panel yopildi."
BROADCAST_PROMPT = (
    "📨 <b>Xabar yuborish</b>\n\n"
    "✏️ Endi xabar matnini yuboring.\n\n"
    "📷 Rasm bilan yuborishingiz ham mumkin (rasmga caption yozing).\n\n"
    "❌ Bekor qilish uchun tugmani bosing."
)
BROADCAST_CANCELLED = "❌ Xabar yuborish bekor qilindi."
STATS_ERROR = "❌ Statistikani olishda xatolik"
WITHDRAWAL_NOT_FOUND = "❌ So'rov topilmadi"

RULES = "\n".join(
    [
        "📕 <b>O'yin qoidalari va foydalanish shartlari</b>",
        "",
        "🎲 <b>Lotoreya</b>",
        "• Har 15 daqiqada avtomatik qur'a o'tkaziladi",
        "• 1 dan 42 gacha 7 ta raqam tanlanadi",
        "• Har bir ishtirok uchun 1 ta reklama ko'rish talab qilinadi",
        "• Mos kelgan raqamlar soniga qarab mukofot beriladi",
        "• Natijalar avtomatik tizim orqali aniqlanadi",
        "",
        "💰 <b>Tanga ishlash yo'llari</b>",
        "• Reklama ko'rish (har 6 soatda yangilanadi)",
        f"• Do'stlarni taklif qilish (+{REFERRAL_REWARD} tanga)",
        "• Hamkor kanallarga obuna bo'lish",
        "• G'ildirak aylantirish",
        "• Maxsus aksiyalar va bonus dasturlari",
        "",
        "💸 <b>Pul yechish</b>",
        "• So'rovlar 1-14 ish kuni ichida ko'rib chiqiladi",
        "• Tekshiruv jarayoni sababli to'lov muddati uzayishi mumkin",
        "",
        "👥 <b>Referal tizimi</b>",
        f"• Har bir taklif qilingan do'st uchun: {REFERRAL_REWARD} tanga",
        "• Bonus do'st kanalga obuna bo'lgandan so'ng hisoblanadi",
        "• Soxta akkauntlar aniqlansa, bonuslar bekor qilinadi",
        "",
        "⚖️ <b>Qo'shimcha qoidalar</b>",
        "• Bir nechta akkaunt ochish taqiqlanadi",
        "• Qoidalarni buzgan foydalanuvchi bloklanishi mumkin",
        "• Platforma qoidalarni o'zgartirish huquqini saqlab qoladi",
    ]
)

WITHDRAWAL_STATUS_LABELS = {
    "pending": ("⏳", "KUTILMOQDA"),
    "approved": ("✅", "TASDIQLANGAN"),
    "paid": ("💰", "TO'LANGAN"),
    "rejected": ("❌", "RAD ETILGAN"),
}

WITHDRAWAL_USER_MESSAGES = {
    "approved": "✅ Sizning pul yechish so'rovingiz qabul qilindi. Tez orada to'lov amalga oshiriladi.",
    "paid": "💰 Sizning pulingiz to'landi! Rahmat!",
    "rejected": "❌ Sizning pul yechish so'rovingiz rad etildi. Tangalaringiz balansga qaytarildi.",
}


def welcome(first_name: str) -> str:
    return (
        f"👋 Salom, <b>{escape(first_name)}</b> 🌿!\n\n"
        "🎉 Xush kelibsiz!\n\n"
        "🎲 Bepul o'yini omadingizni sinab ko'ring va real daromadga ega bo'ling"
    )


def subscription_confirmed(first_name: str) -> str:
    return (
        "🎉 <b>Tabriklaymiz!</b>\n\n"
        "✅ Obuna tasdiqlandi!\n\n"
        f"👋 Xush kelibsiz, <b>{escape(first_name)}</b>!\n\n"
        "🎲 Endi o'yinlardan foydalanishingiz mumkin!"
    )


def subscribe_prompt(channel: str) -> str:
    name = channel.lstrip("@")
    return (
        "📢 <b>Kanalga obuna bo'ling!</b>\n\n"
        "🎁 Lotoreyadan foydalanish uchun avval kanalimizga obuna bo'lishingiz kerak.\n\n"
        f'👉 <a href="https://t.me/{name}">{escape(channel)}</a>\n\n'
        '✅ Obuna bo\'lgandan so\'ng "Tekshirish" tugmasini bosing.'
    )


def referral_notice(new_user_name: str, bonus: int, referral_count: int) -> str:
    lines = [
        "🎉 <b>Yangi referal!</b>",
        "",
        f"{escape(new_user_name)} sizning havolangiz orqali qo'shildi.",
        f"💰 +{REFERRAL_REWARD} tanga qo'shildi!",
    ]
    if bonus:
        lines.extend(
            [
                "",
                "🏆 <b>Vazifa bajarildi!</b>",
                "2 ta do'st taklif qildingiz!",
                f"💰 +{REFERRAL_TASK_BONUS} bonus tanga qo'shildi!",
            ]
        )
    lines.extend(["", f"📊 Jami referallar: {referral_count}"])
    return "\n".join(lines)


def withdrawal_admin_message(withdrawal: Dict[str, object], status: Optional[str] = None) -> str:
    status = status or str(withdrawal.get("status") or "pending")
    wallet = withdrawal.get("wallet_address") or "ko'rsatilmagan"
    username = withdrawal.get("username") or "yo'q"
    full_name = " ".join(
        part for part in [str(withdrawal.get("first_name") or ""), str(withdrawal.get("last_name") or "")] if part
    )
    lines = []
    if status == "pending":
        lines.append("💰 <b>Yangi pul yechish so'rovi!</b>")
    else:
        emoji, label = WITHDRAWAL_STATUS_LABELS.get(status, ("", status.upper()))
        lines.append(f"{emoji} <b>Pul yechish so'rovi - {label}</b>")
    lines.extend(
        [
            "",
            f"👤 Foydalanuvchi: {escape(full_name)}",
            f"📱 Username: @{escape(str(username))}",
            f"🆔 Telegram ID: {withdrawal.get('user_id')}",
            f"💵 Miqdor: {withdrawal.get('amount')} tanga",
            f"📍 Hamyon: {escape(str(wallet))}",
        ]
    )
    created_at = withdrawal.get("created_at")
    if status == "pending" and isinstance(created_at, datetime):
        lines.append(f"🕐 Vaqt: {created_at.strftime('%Y-%m-%d %H:%M')}")
    else:
        lines.append(f"✅ Holat: {WITHDRAWAL_STATUS_LABELS.get(status, ('', status))[1]}")
    return "\n".join(lines)


def withdrawal_requested(amount: int) -> str:
    return (
        "📤 <b>Pul yechish so'rovi yuborildi!</b>\n\n"
        f"💵 Miqdor: {amount} tanga\n\n"
        "So'rov ko'rib chiqilmoqda. Natija haqida xabar beramiz."
    )


def _fmt(value: int) -> str:
    return f"{int(value):,}"


def admin_stats(stats: Dict[str, int]) -> str:
    return "\n".join(
        [
            "📊 <b>Statistika</b>",
            "",
            f"👥 Jami foydalanuvchilar: <b>{_fmt(stats.get('total_users', 0))}</b>",
            f"🆕 Bugun qo'shilgan: <b>{stats.get('today_users', 0)}</b>",
            f"💰 Tizimdagi tangalar: <b>{_fmt(stats.get('total_coins', 0))}</b>",
            "",
            "📺 <b>Reklama</b>",
            f"📺 Jami ko'rishlar: <b>{_fmt(stats.get('total_ad_views', 0))}</b>",
            f"📺 Bugungi ko'rishlar: <b>{stats.get('today_ads', 0)}</b>",
            "",
            "📤 <b>Pul yechish</b>",
            f"⏳ Kutilmoqda: <b>{stats.get('pending_withdrawals', 0)}</b>",
            f"✅ Tasdiqlangan: <b>{stats.get('approved_withdrawals', 0)}</b>",
            f"💸 Jami to'langan: <b>{_fmt(stats.get('total_paid', 0))} tanga</b>",
            "",
            f"👥 Jami referallar: <b>{_fmt(stats.get('total_referrals', 0))}</b>",
            f"🎮 Bugungi o'yinlar: <b>{stats.get('today_games', 0)}</b>",
        ]
    )


def top_users(users: Iterable[Dict[str, object]], stats: Dict[str, int], limit: int) -> str:
    lines = [
        "📊 <b>Foydalanuvchilar statistikasi</b>",
        "",
        f"👥 Jami foydalanuvchilar: <b>{_fmt(stats.get('total_users', 0))}</b>",
        f"🆕 Bugun qo'shilgan: <b>{stats.get('today_users', 0)}</b>",
        f"💰 Tizimdagi jami tangalar: <b>{_fmt(stats.get('total_coins', 0))}</b>",
        "",
        f"🏆 <b>Top {limit} foydalanuvchi:</b>",
        "",
    ]
    for index, user in enumerate(users, start=1):
        name = user.get("first_name") or user.get("username") or "Nomsiz"
        handle = f"@{user['username']}" if user.get("username") else ""
        lines.append(f"{index}. {escape(str(name))} {escape(handle)}".rstrip())
        lines.append(f"   🆔 <code>{user.get('telegram_id')}</code>")
        lines.append(
            f"   💰 {user.get('coins', 0)} | 🎟 {user.get('tickets', 0)} | 👥 {user.get('referral_count', 0)} ref"
        )
        lines.append(f"   🏆 Yutug': {user.get('total_winnings', 0)}")
        lines.append("")
    text = "\n".join(lines).rstrip()
    if len(text) > 4000:
        text = text[:3900] + "\n\n... (davomi cheklov sababli qisqartirildi)"
    return text


def broadcast_started(total: int) -> str:
    return f"📤 Xabar {total} ta foydalanuvchiga yuborilmoqda..."


def broadcast_done(sent: int, failed: int, total: int) -> str:
    return (
        "✅ <b>Xabar yuborildi!</b>\n\n"
        f"📤 Yuborildi: {sent}\n"
        f"❌ Xato: {failed}\n"
        f"📊 Jami: {total}"
    )
