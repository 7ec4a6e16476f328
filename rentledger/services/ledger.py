"""
Session-scoped rent ledger.

Holds an immutable snapshot of houses, tenants and payments, answers
status/filter queries from it and applies mutations through the store.
A mutation replaces the snapshot only with what the store confirmed.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from rentledger.config import DEFAULT_HOUSES
from rentledger.errors import (
    ValidationError, ConflictError, PersistenceError,
    PartialDeletionError, PartialBatchFailure, FailedItem
)
from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.schemas.validation import (
    TenantCreate, PaymentCreate, BulkPaymentItem, parse_input
)
from rentledger.services.dashboard_service import (
    HouseView, ALL_STATUSES, build_house_views, filter_houses, bulk_candidates
)
from rentledger.services.status_service import (
    PaymentStatus, StatusResult, MonthStatus,
    derive_status, effective_payment, payment_history
)
from rentledger.store.base import Store


class LedgerState(NamedTuple):
    """Immutable snapshot; every `with_*` returns a new state"""
    houses: Tuple[HouseRecord, ...] = ()
    tenants: Tuple[TenantRecord, ...] = ()
    payments: Tuple[PaymentRecord, ...] = ()

    def with_house(self, house: HouseRecord) -> "LedgerState":
        houses = tuple(house if h.id == house.id else h for h in self.houses)
        return self._replace(houses=houses)

    def with_tenant(self, tenant: TenantRecord) -> "LedgerState":
        others = tuple(t for t in self.tenants if t.id != tenant.id)
        return self._replace(tenants=(tenant,) + others)

    def without_tenant(self, tenant_id: str) -> "LedgerState":
        return self._replace(tenants=tuple(t for t in self.tenants if t.id != tenant_id))

    def without_payments_of(self, tenant_id: str) -> "LedgerState":
        return self._replace(payments=tuple(p for p in self.payments if p.tenant_id != tenant_id))

    def with_payments(self, new_payments: Iterable[PaymentRecord]) -> "LedgerState":
        """Add confirmed rows, dropping older rows of the same (tenant, month, year)."""
        new_payments = tuple(new_payments)
        keys = {(p.tenant_id, p.month, p.year) for p in new_payments}
        kept = tuple(p for p in self.payments if (p.tenant_id, p.month, p.year) not in keys)
        return self._replace(payments=kept + new_payments)


def default_roster(roster=DEFAULT_HOUSES) -> Tuple[HouseRecord, ...]:
    return tuple(HouseRecord(id=house_id, house_number=number) for house_id, number in roster)


class RentLedger:
    def __init__(
        self,
        store: Store,
        rent_due_day: int,
        today: Callable[[], date] = date.today,
        roster=DEFAULT_HOUSES
    ):
        self.store = store
        self.rent_due_day = rent_due_day
        self.today = today
        self.roster = roster
        self.state = LedgerState(houses=default_roster(roster))
        self._submitting = False

    # --- Session ---

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @contextmanager
    def _submission(self):
        """One mutation at a time"""
        if self._submitting:
            raise ConflictError("Another operation is still in progress. Please wait.")
        self._submitting = True
        try:
            yield
        finally:
            self._submitting = False

    async def load(self) -> LedgerState:
        """Fetch all three collections; the snapshot is kept on failure."""
        houses, tenants, payments = await asyncio.gather(
            self.store.list_houses(),
            self.store.list_tenants(),
            self.store.list_payments(),
        )
        if not houses:
            logging.warning("Store returned no houses, using the default roster")
            houses = default_roster(self.roster)

        self.state = LedgerState(tuple(houses), tuple(tenants), tuple(payments))
        logging.info(
            f"Ledger loaded: {len(self.state.houses)} houses, "
            f"{len(self.state.tenants)} tenants, {len(self.state.payments)} payments"
        )
        return self.state

    # --- Lookups ---

    def get_house(self, house_id: str) -> HouseRecord:
        for house in self.state.houses:
            if house.id == house_id:
                return house
        raise ValidationError(f"House {house_id} not found")

    def get_tenant(self, tenant_id: str) -> TenantRecord:
        for tenant in self.state.tenants:
            if tenant.id == tenant_id:
                return tenant
        raise ValidationError(f"Tenant {tenant_id} not found")

    def house_of_tenant(self, tenant_id: str) -> Optional[HouseRecord]:
        for house in self.state.houses:
            if house.current_tenant_id == tenant_id:
                return house
        return None

    def payments_for_tenant(self, tenant_id: str) -> List[PaymentRecord]:
        return [p for p in self.state.payments if p.tenant_id == tenant_id]

    # --- Queries ---

    def status_for(self, tenant_id: str, month: Optional[int] = None, year: Optional[int] = None) -> StatusResult:
        today = self.today()
        month = month or today.month
        year = year or today.year
        tenant = self.get_tenant(tenant_id)
        payment = effective_payment(self.state.payments, tenant_id, month, year)
        return derive_status(tenant, payment, self.rent_due_day, today, month, year)

    def house_views(self) -> List[HouseView]:
        return build_house_views(
            self.state.houses, self.state.tenants, self.state.payments,
            self.rent_due_day, self.today()
        )

    def dashboard(self, search_term: str = "", status_filter: Union[PaymentStatus, str] = ALL_STATUSES) -> List[HouseView]:
        return filter_houses(self.house_views(), search_term, status_filter)

    def tenant_history(self, tenant_id: str) -> List[MonthStatus]:
        tenant = self.get_tenant(tenant_id)
        return payment_history(tenant, self.state.payments, self.rent_due_day, self.today())

    def unassigned_tenants(self) -> List[TenantRecord]:
        occupied = {h.current_tenant_id for h in self.state.houses if h.current_tenant_id}
        return [t for t in self.state.tenants if t.id not in occupied]

    def bulk_candidates(self) -> List[HouseView]:
        return bulk_candidates(self.house_views())

    def bulk_payment_items(self, paid_date, tenant_ids: Optional[Iterable[str]] = None) -> List[BulkPaymentItem]:
        """Current-month items for the bulk candidates, optionally narrowed to `tenant_ids`."""
        today = self.today()
        selected = set(tenant_ids) if tenant_ids is not None else None
        items = []
        for view in self.bulk_candidates():
            if selected is not None and view.tenant.id not in selected:
                continue
            items.append(parse_input(
                BulkPaymentItem,
                house_id=view.house.id,
                tenant_id=view.tenant.id,
                amount_paid=view.tenant.rent_amount,
                month=today.month,
                year=today.year,
                paid_date=paid_date
            ))
        return items

    # --- Occupancy ---

    async def assign_tenant(self, house_id: str, tenant_id: str) -> HouseRecord:
        house = self.get_house(house_id)
        self.get_tenant(tenant_id)

        if house.current_tenant_id == tenant_id:
            return house
        if house.current_tenant_id is not None:
            raise ConflictError(
                f"House {house.house_number} already has a tenant. Remove the current tenant first."
            )
        other = self.house_of_tenant(tenant_id)
        if other is not None:
            raise ConflictError(f"Tenant already occupies house {other.house_number}.")

        with self._submission():
            updated = await self.store.update_house_occupant(house_id, tenant_id)
            self.state = self.state.with_house(updated)

        logging.info(f"Tenant {tenant_id} assigned to house {house_id}")
        return updated

    async def remove_tenant(self, house_id: str) -> HouseRecord:
        """Vacate the house; the tenant record is kept."""
        house = self.get_house(house_id)
        if house.current_tenant_id is None:
            return house

        with self._submission():
            updated = await self.store.update_house_occupant(house_id, None)
            self.state = self.state.with_house(updated)

        logging.info(f"Tenant {house.current_tenant_id} removed from house {house_id}")
        return updated

    async def add_tenant(self, fields: Union[TenantCreate, Mapping], house_id: Optional[str] = None) -> TenantRecord:
        """Create a tenant and, when `house_id` is given, move them into that vacant house."""
        if not isinstance(fields, TenantCreate):
            fields = parse_input(TenantCreate, **fields)
        if fields.join_date > self.today():
            raise ValidationError("Join date cannot be in the future")

        house = self.get_house(house_id) if house_id else None
        if house is not None and house.current_tenant_id is not None:
            raise ConflictError(
                f"House {house.house_number} already has a tenant. Remove the current tenant first."
            )

        with self._submission():
            tenant = await self.store.create_tenant(fields)
            self.state = self.state.with_tenant(tenant)
            logging.info(f"Tenant {tenant.id} ({tenant.name}) created")

            if house is not None:
                try:
                    updated = await self.store.update_house_occupant(house.id, tenant.id)
                except PersistenceError as e:
                    raise PersistenceError(
                        f"Tenant {tenant.name} was created but not assigned to house "
                        f"{house.house_number}: {e.message}",
                        status=e.status, hint=e.hint
                    ) from e
                self.state = self.state.with_house(updated)
                logging.info(f"Tenant {tenant.id} assigned to house {house.id}")

        return tenant

    async def delete_tenant(self, tenant_id: str) -> None:
        """
        Clear the occupied house, delete the tenant's payments, delete the tenant.

        Raises PartialDeletionError when a later step fails after an earlier
        one was confirmed; the snapshot then reflects the confirmed steps.
        """
        self.get_tenant(tenant_id)
        house = self.house_of_tenant(tenant_id)

        with self._submission():
            cleared_house_id = None
            if house is not None:
                updated = await self.store.update_house_occupant(house.id, None)
                self.state = self.state.with_house(updated)
                cleared_house_id = house.id

            try:
                await self.store.delete_payments(tenant_id)
            except PersistenceError as e:
                if cleared_house_id is None:
                    raise
                raise self._partial_deletion(e, cleared_house_id, "payments", False) from e
            self.state = self.state.without_payments_of(tenant_id)

            try:
                await self.store.delete_tenant(tenant_id)
            except PersistenceError as e:
                raise self._partial_deletion(e, cleared_house_id, "tenant", True) from e
            self.state = self.state.without_tenant(tenant_id)

        logging.info(f"Tenant {tenant_id} deleted")

    @staticmethod
    def _partial_deletion(e: PersistenceError, cleared_house_id, step: str, payments_deleted: bool) -> PartialDeletionError:
        done = []
        if cleared_house_id:
            done.append(f"house {cleared_house_id} was cleared")
        if payments_deleted:
            done.append("payments were deleted")
        logging.warning(f"Tenant deletion stopped at {step} step after: {', '.join(done)}")
        return PartialDeletionError(
            f"Tenant Deletion Failed: {' and '.join(done)} but {step} deletion was rejected: {e.message}",
            cleared_house_id=cleared_house_id,
            failed_step=step,
            payments_deleted=payments_deleted,
            status=e.status,
            hint=e.hint
        )

    # --- Payments ---

    def _check_period(self, tenant: TenantRecord, month: int, year: int) -> None:
        today = self.today()
        if (year, month) < (tenant.join_date.year, tenant.join_date.month):
            raise ValidationError(f"{month:02d}/{year} is before {tenant.name} joined")
        if (year, month) > (today.year, today.month):
            raise ValidationError(f"{month:02d}/{year} is in the future")

    async def record_payment(self, tenant_id: str, month: int, year: int, amount_paid, paid_date) -> PaymentRecord:
        tenant = self.get_tenant(tenant_id)
        house = self.house_of_tenant(tenant_id)
        fields = parse_input(
            PaymentCreate,
            tenant_id=tenant_id,
            house_id=house.id if house else None,
            month=month,
            year=year,
            amount_paid=amount_paid,
            paid_date=paid_date
        )
        self._check_period(tenant, fields.month, fields.year)

        with self._submission():
            created = await self.store.create_payments([fields])
            if not created:
                raise PersistenceError("Payment recording did not return the new payment data.")
            self.state = self.state.with_payments(created[:1])

        payment = created[0]
        logging.info(f"Payment {payment.id} recorded for tenant {tenant_id} ({month:02d}/{year})")
        return payment

    def _validate_bulk_item(self, item) -> BulkPaymentItem:
        if not isinstance(item, BulkPaymentItem):
            item = parse_input(BulkPaymentItem, **dict(item))
        tenant = self.get_tenant(item.tenant_id)
        house = self.get_house(item.house_id)
        if house.current_tenant_id != item.tenant_id:
            raise ConflictError(f"{tenant.name} no longer occupies house {house.house_number}")
        self._check_period(tenant, item.month, item.year)
        return item

    async def record_bulk_payments(self, items: Iterable) -> List[PaymentRecord]:
        """
        Record many payments at once; each item settles independently.

        Returns the recorded rows when all succeed. Raises PartialBatchFailure
        when only some were recorded and PersistenceError when none were.
        """
        items = [self._validate_bulk_item(item) for item in items]
        seen = set()
        for item in items:
            if item.tenant_id in seen:
                raise ValidationError(f"Tenant {item.tenant_id} appears twice in the batch")
            seen.add(item.tenant_id)

        if not items:
            return []

        with self._submission():
            results = await asyncio.gather(
                *(self.store.create_payments([item]) for item in items),
                return_exceptions=True
            )

            succeeded: List[PaymentRecord] = []
            failed: List[FailedItem] = []
            unexpected = None
            for item, result in zip(items, results):
                if isinstance(result, PersistenceError):
                    failed.append(FailedItem(item, result.describe()))
                elif isinstance(result, BaseException):
                    unexpected = unexpected or result
                    failed.append(FailedItem(item, str(result)))
                elif result:
                    succeeded.extend(result[:1])
                else:
                    failed.append(FailedItem(item, "Store returned no payment row"))

            if succeeded:
                self.state = self.state.with_payments(succeeded)

        logging.info(f"Bulk payments: {len(succeeded)} recorded, {len(failed)} failed")
        if failed and succeeded:
            logging.warning(f"Bulk payments partially failed for tenants: {[f.item.tenant_id for f in failed]}")
            # Applied rows must still be reported when a store call blew up unexpectedly
            raise PartialBatchFailure(succeeded, failed) from unexpected
        if unexpected is not None:
            raise unexpected
        if failed:
            first = results[0] if isinstance(results[0], PersistenceError) else None
            raise PersistenceError(
                f"None of the {len(items)} payments were recorded: {failed[0].reason}",
                status=first.status if first else None,
                hint=first.hint if first else None
            )
        return succeeded
