from datetime import date
from typing import Optional

from rentledger.utils.ui import format_date


def reminder_due_date(today: date, rent_due_day: int) -> date:
    """Rent due date of the current month"""
    return today.replace(day=rent_due_day)


def generate_reminder_message(
    tenant_name: str,
    rent_amount: float,
    due_date: Optional[date],
    currency: str
) -> str:
    return (
        f"Dear {tenant_name},\n\n"
        f"This is a friendly reminder that your rent payment of {currency}{rent_amount:.2f} "
        f"is due on {format_date(due_date)}.\n\n"
        "Please make your payment at your earliest convenience.\n\n"
        "Thank you,\nLandlord"
    )
