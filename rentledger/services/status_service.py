"""
Payment status derivation.

Classifies a tenant's rent for one (month, year) as Paid, Unpaid or Overdue.
Every function here is pure: the caller passes `today` and the due day.
"""
import enum
from datetime import date
from typing import Iterable, List, NamedTuple, Optional

from rentledger.schemas.records import PaymentRecord, TenantRecord


class PaymentStatus(str, enum.Enum):
    paid = "Paid"
    unpaid = "Unpaid"
    overdue = "Overdue"


class StatusResult(NamedTuple):
    status: PaymentStatus
    payment: Optional[PaymentRecord]
    is_new_tenant: bool = False  # joined after the due day of the evaluated month


class MonthStatus(NamedTuple):
    """One row of a tenant's payment history"""
    month: int
    year: int
    status: PaymentStatus
    payment: Optional[PaymentRecord]
    is_new_tenant: bool


def effective_payment(
    payments: Iterable[PaymentRecord],
    tenant_id: str,
    month: int,
    year: int
) -> Optional[PaymentRecord]:
    """
    Pick the authoritative row for (tenant, month, year).

    Latest paid_date wins; undated rows rank below dated ones.
    On an exact tie the row seen last wins (most recently loaded or recorded).
    """
    best = None
    for payment in payments:
        if payment.tenant_id != tenant_id or payment.month != month or payment.year != year:
            continue
        if best is None:
            best = payment
            continue
        if payment.paid_date is None:
            if best.paid_date is None:
                best = payment
            continue
        if best.paid_date is None or payment.paid_date >= best.paid_date:
            best = payment
    return best


def derive_status(
    tenant: Optional[TenantRecord],
    payment: Optional[PaymentRecord],
    rent_due_day: int,
    today: date,
    month: Optional[int] = None,
    year: Optional[int] = None
) -> StatusResult:
    """
    Derive the rent status of `tenant` for (month, year), default the current month.

    Rules, first match wins:
    1. payment with a paid_date -> Paid
    2. no tenant (vacant house) -> Unpaid
    3. joined in the evaluated month after the due day -> Unpaid, new tenant
    4. current month: Overdue once today is past the due day, else Unpaid
    5. past month -> Overdue, future month -> Unpaid
    """
    month = month or today.month
    year = year or today.year

    if payment is not None and payment.paid_date is not None:
        return StatusResult(PaymentStatus.paid, payment)

    if tenant is None:
        return StatusResult(PaymentStatus.unpaid, None)

    join = tenant.join_date
    if join.year == year and join.month == month and join.day > rent_due_day:
        return StatusResult(PaymentStatus.unpaid, payment, is_new_tenant=True)

    evaluated = (year, month)
    current = (today.year, today.month)

    if evaluated == current:
        if today.day > rent_due_day:
            return StatusResult(PaymentStatus.overdue, payment)
        return StatusResult(PaymentStatus.unpaid, payment)

    if evaluated < current:
        return StatusResult(PaymentStatus.overdue, payment)

    return StatusResult(PaymentStatus.unpaid, payment)


def iter_months(start: date, end: date):
    """Yield (year, month) from start's month through end's month inclusive."""
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        month += 1
        if month > 12:
            month = 1
            year += 1


def payment_history(
    tenant: TenantRecord,
    payments: Iterable[PaymentRecord],
    rent_due_day: int,
    today: date
) -> List[MonthStatus]:
    """Status of every month from the join month to the current month, newest first."""
    payments = [p for p in payments if p.tenant_id == tenant.id]
    history = []
    for year, month in iter_months(tenant.join_date, today):
        payment = effective_payment(payments, tenant.id, month, year)
        result = derive_status(tenant, payment, rent_due_day, today, month, year)
        history.append(MonthStatus(
            month=month,
            year=year,
            status=result.status,
            payment=result.payment,
            is_new_tenant=result.is_new_tenant
        ))
    history.reverse()
    return history
