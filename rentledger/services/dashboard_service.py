"""
Dashboard view: houses resolved to tenant and current-month status, plus filtering.
"""
from datetime import date
from typing import Iterable, List, NamedTuple, Optional, Sequence, Union

from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.services.status_service import PaymentStatus, derive_status, effective_payment

ALL_STATUSES = "all"


class HouseView(NamedTuple):
    """A house card: the house, its tenant and the current-month status"""
    house: HouseRecord
    tenant: Optional[TenantRecord]
    payment: Optional[PaymentRecord]
    status: PaymentStatus
    is_new_tenant: bool


def build_house_views(
    houses: Sequence[HouseRecord],
    tenants: Sequence[TenantRecord],
    payments: Sequence[PaymentRecord],
    rent_due_day: int,
    today: date
) -> List[HouseView]:
    tenants_by_id = {t.id: t for t in tenants}
    views = []
    for house in houses:
        tenant = tenants_by_id.get(house.current_tenant_id) if house.current_tenant_id else None
        payment = None
        if tenant:
            payment = effective_payment(payments, tenant.id, today.month, today.year)
        result = derive_status(tenant, payment, rent_due_day, today)
        views.append(HouseView(
            house=house,
            tenant=tenant,
            payment=result.payment,
            status=result.status,
            is_new_tenant=result.is_new_tenant
        ))
    return views


def filter_houses(
    views: Iterable[HouseView],
    search_term: str = "",
    status_filter: Union[PaymentStatus, str] = ALL_STATUSES
) -> List[HouseView]:
    """
    Keep views matching both the status filter and the tenant-name search.

    A set search term never matches a vacant house.
    """
    term = (search_term or "").strip().lower()
    if status_filter != ALL_STATUSES:
        status_filter = PaymentStatus(status_filter)

    visible = []
    for view in views:
        if status_filter != ALL_STATUSES and view.status != status_filter:
            continue
        if term:
            if view.tenant is None or term not in view.tenant.name.lower():
                continue
        visible.append(view)
    return visible


def bulk_candidates(views: Iterable[HouseView]) -> List[HouseView]:
    """Occupied houses whose current-month rent is still Unpaid or Overdue."""
    return [
        v for v in views
        if v.tenant is not None and v.status in (PaymentStatus.unpaid, PaymentStatus.overdue)
    ]


def bulk_total(items) -> float:
    """Total amount of a selection of bulk payment items"""
    return sum(item.amount_paid for item in items)
