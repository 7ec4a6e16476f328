import asyncio
import itertools
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from rentledger.config import DEFAULT_HOUSES
from rentledger.database.core import Base
from rentledger.database import models  # noqa: F401  (registers tables)
from rentledger.errors import PersistenceError
from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.services.ledger import RentLedger
from rentledger.store.database import DatabaseStore

TODAY = date(2024, 3, 10)


@pytest_asyncio.fixture
async def async_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool, echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_store(session_factory):
    store = DatabaseStore(session_factory)
    await store.seed_houses(DEFAULT_HOUSES)
    return store


class MemoryStore:
    """In-memory store with scripted failures"""

    def __init__(self, houses=None, tenants=(), payments=()):
        roster = houses if houses is not None else [HouseRecord(id=i, house_number=n) for i, n in DEFAULT_HOUSES]
        self.houses = {h.id: h for h in roster}
        self.tenants = {t.id: t for t in tenants}
        self.payments = list(payments)
        self.calls = []
        self.failures = {}
        self._ids = itertools.count(1)

    def fail(self, method, message="Simulated failure", status=None, when=None):
        """Make `method` raise PersistenceError, optionally only when `when(*args)` holds"""
        self.failures[method] = (message, status, when)

    def heal(self, method):
        self.failures.pop(method, None)

    async def _enter(self, method, *args):
        self.calls.append((method,) + args)
        await asyncio.sleep(0)
        if method in self.failures:
            message, status, when = self.failures[method]
            if when is None or when(*args):
                raise PersistenceError(message, status=status)

    def called(self, method):
        return [c for c in self.calls if c[0] == method]

    async def list_houses(self):
        await self._enter("list_houses")
        return list(self.houses.values())

    async def list_tenants(self):
        await self._enter("list_tenants")
        return list(self.tenants.values())

    async def list_payments(self):
        await self._enter("list_payments")
        return list(self.payments)

    async def create_tenant(self, fields):
        await self._enter("create_tenant", fields)
        tenant = TenantRecord(id=f"t{next(self._ids)}", **fields.model_dump())
        self.tenants[tenant.id] = tenant
        return tenant

    async def delete_tenant(self, tenant_id):
        await self._enter("delete_tenant", tenant_id)
        if any(p.tenant_id == tenant_id for p in self.payments):
            raise PersistenceError("violates foreign key constraint payments_tenant_id_fkey", status=409)
        self.tenants.pop(tenant_id, None)

    async def delete_payments(self, tenant_id):
        await self._enter("delete_payments", tenant_id)
        self.payments = [p for p in self.payments if p.tenant_id != tenant_id]

    async def update_house_occupant(self, house_id, tenant_id):
        await self._enter("update_house_occupant", house_id, tenant_id)
        house = self.houses[house_id].model_copy(update={"current_tenant_id": tenant_id})
        self.houses[house_id] = house
        return house

    async def create_payments(self, fields):
        await self._enter("create_payments", fields)
        rows = [PaymentRecord(id=f"p{next(self._ids)}", **f.model_dump()) for f in fields]
        self.payments.extend(rows)
        return rows


def make_tenant(tenant_id="t-alice", name="Alice", join_date=date(2023, 1, 15), rent_amount=1000.0, **extra):
    return TenantRecord(
        id=tenant_id, name=name, email=f"{name.lower()}@example.com",
        rent_amount=rent_amount, join_date=join_date, **extra
    )


def make_payment(tenant_id, month, year, paid_date=None, amount_paid=1000.0, payment_id=None, house_id=None):
    return PaymentRecord(
        id=payment_id or f"p-{tenant_id}-{year}-{month}-{paid_date}",
        tenant_id=tenant_id, house_id=house_id, month=month, year=year,
        paid_date=paid_date, amount_paid=amount_paid
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest_asyncio.fixture
async def ledger(memory_store):
    """Ledger over the in-memory store: Alice in H3 (unpaid), Bob in H4 (paid), Carol unassigned"""
    alice = make_tenant("t-alice", "Alice")
    bob = make_tenant("t-bob", "Bob", rent_amount=1200.0)
    carol = make_tenant("t-carol", "Carol", join_date=date(2024, 2, 1))
    for tenant in (alice, bob, carol):
        memory_store.tenants[tenant.id] = tenant
    memory_store.houses["H3"] = memory_store.houses["H3"].model_copy(update={"current_tenant_id": "t-alice"})
    memory_store.houses["H4"] = memory_store.houses["H4"].model_copy(update={"current_tenant_id": "t-bob"})
    memory_store.payments.append(make_payment("t-bob", 3, 2024, date(2024, 3, 2), 1200.0, house_id="H4"))

    ledger = RentLedger(memory_store, rent_due_day=5, today=lambda: TODAY)
    await ledger.load()
    memory_store.calls.clear()
    return ledger
