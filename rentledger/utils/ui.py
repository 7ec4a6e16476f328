from datetime import date, datetime
from typing import List, Tuple, Optional

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, ReplyKeyboardMarkup, KeyboardButton

from rentledger.config import config

# ========== UI Constants ==========
class UIEmojis:
    HOME = "🏠"
    MONEY = "💰"
    CHECK = "✅"
    CANCEL = "❌"
    BACK = "◀️"

    # Actions
    ADD = "➕"
    DELETE = "🗑️"
    SEARCH = "🔍"
    LINK = "🔗"
    UNLINK = "🚪"

    # Details
    TENANT = "👤"
    PAYMENT = "💳"
    BELL = "🔔"
    MAIL = "📧"
    PHONE = "📞"
    WORK = "💼"
    KEY = "🔑"
    CALENDAR = "📅"
    HISTORY = "📜"


MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class UIMessages:
    """Formatted message templates"""

    DIVIDER_FULL = "━" * 30

    @staticmethod
    def header(title: str, emoji: str = "") -> str:
        if emoji:
            return f"\n{emoji} <b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"
        return f"\n<b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"

    @staticmethod
    def field(name: str, value: str, emoji: str = "") -> str:
        prefix = f"{emoji} " if emoji else "• "
        return f"{prefix}<b>{name}:</b> {value}\n"

    @staticmethod
    def success(text: str) -> str:
        return f"✅ {text}"

    @staticmethod
    def error(text: str) -> str:
        return f"❌ {text}"

    @staticmethod
    def warning(text: str) -> str:
        return f"⚠️ {text}"


class UIKeyboards:
    """Common keyboard layouts"""

    @staticmethod
    def back_button(callback_data: str = "dashboard") -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(inline_keyboard=[
            [InlineKeyboardButton(text=f"{UIEmojis.BACK} Back", callback_data=callback_data)]
        ])

    @staticmethod
    def confirm_cancel(
        confirm_text: str = "Confirm",
        cancel_text: str = "Cancel",
        confirm_callback: str = "confirm",
        cancel_callback: str = "cancel"
    ) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(inline_keyboard=[
            [
                InlineKeyboardButton(text=f"{UIEmojis.CHECK} {confirm_text}", callback_data=confirm_callback),
                InlineKeyboardButton(text=f"{UIEmojis.CANCEL} {cancel_text}", callback_data=cancel_callback)
            ]
        ])

    @staticmethod
    def menu_grid(items: List[Tuple[str, str]], columns: int = 2) -> InlineKeyboardMarkup:
        """Create a grid menu from list of (text, callback_data) tuples"""
        keyboard = []
        row = []

        for text, callback in items:
            row.append(InlineKeyboardButton(text=text, callback_data=callback))
            if len(row) == columns:
                keyboard.append(row)
                row = []

        if row:
            keyboard.append(row)

        return InlineKeyboardMarkup(inline_keyboard=keyboard)

    @staticmethod
    def main_reply_keyboard() -> ReplyKeyboardMarkup:
        """Persistent landlord menu"""
        keyboard = [
            [KeyboardButton(text="🏠 Houses"), KeyboardButton(text="💳 Bulk Payments")],
            [KeyboardButton(text="🔄 Refresh"), KeyboardButton(text="❔ Help")]
        ]
        return ReplyKeyboardMarkup(keyboard=keyboard, resize_keyboard=True)


# === Helper Functions ===

def format_amount(amount: Optional[float], currency: Optional[str] = None) -> str:
    """Format amount with currency symbol"""
    if amount is None:
        return "—"
    currency = config.CURRENCY_SYMBOL if currency is None else currency
    return f"{currency}{amount:,.2f}"


def format_date(date_obj) -> str:
    """dd Mon yyyy, e.g. 05 Mar 2024; N/A when missing"""
    if not date_obj:
        return "N/A"
    if isinstance(date_obj, str):
        date_obj = date.fromisoformat(date_obj[:10])
    elif isinstance(date_obj, datetime):
        date_obj = date_obj.date()
    return f"{date_obj.day:02d} {MONTHS[date_obj.month - 1]} {date_obj.year}"


def format_period(month: int, year: int) -> str:
    return f"{MONTHS[month - 1]} {year}"


def get_status_badge(status: str) -> str:
    """Get status badge emoji"""
    badges = {
        "Paid": "🟢",
        "Unpaid": "🟡",
        "Overdue": "🔴",
    }
    return badges.get(status, "⚪")
