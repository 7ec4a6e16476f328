"""
SQLAlchemy store: the three ledger tables in a relational database.
"""
import logging
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rentledger.database.models import House, Tenant, Payment
from rentledger.errors import PersistenceError
from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.schemas.validation import TenantCreate, PaymentCreate


def _to_persistence_error(action: str, e: SQLAlchemyError) -> PersistenceError:
    # Report the driver message (e.g. "FOREIGN KEY constraint failed") rather than the SQL
    message = str(getattr(e, "orig", None) or e)
    logging.error(f"Database {action} failed: {message}")
    status = 409 if isinstance(e, IntegrityError) else None
    return PersistenceError(message, status=status)


class DatabaseStore:
    """Store backed by SQLAlchemy async sessions"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_houses(self) -> List[HouseRecord]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(select(House).order_by(House.house_number))
            except SQLAlchemyError as e:
                raise _to_persistence_error("list houses", e) from e
            return [HouseRecord.model_validate(h) for h in result.scalars().all()]

    async def list_tenants(self) -> List[TenantRecord]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(select(Tenant).order_by(Tenant.created_at.desc()))
            except SQLAlchemyError as e:
                raise _to_persistence_error("list tenants", e) from e
            return [TenantRecord.model_validate(t) for t in result.scalars().all()]

    async def list_payments(self) -> List[PaymentRecord]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(select(Payment).order_by(Payment.created_at))
            except SQLAlchemyError as e:
                raise _to_persistence_error("list payments", e) from e
            return [PaymentRecord.model_validate(p) for p in result.scalars().all()]

    async def create_tenant(self, fields: TenantCreate) -> TenantRecord:
        async with self.session_factory() as session:
            tenant = Tenant(**fields.model_dump())
            session.add(tenant)
            try:
                await session.commit()
                await session.refresh(tenant)  # load server defaults
            except SQLAlchemyError as e:
                await session.rollback()
                raise _to_persistence_error("create tenant", e) from e
            return TenantRecord.model_validate(tenant)

    async def delete_tenant(self, tenant_id: str) -> None:
        async with self.session_factory() as session:
            try:
                await session.execute(delete(Tenant).where(Tenant.id == tenant_id))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise _to_persistence_error(f"delete tenant {tenant_id}", e) from e

    async def delete_payments(self, tenant_id: str) -> None:
        async with self.session_factory() as session:
            try:
                await session.execute(delete(Payment).where(Payment.tenant_id == tenant_id))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise _to_persistence_error(f"delete payments of tenant {tenant_id}", e) from e

    async def update_house_occupant(self, house_id: str, tenant_id: Optional[str]) -> HouseRecord:
        async with self.session_factory() as session:
            try:
                # LOCK HOUSE ROW while its occupant changes
                stmt = select(House).where(House.id == house_id).with_for_update()
                result = await session.execute(stmt)
                house = result.scalar_one_or_none()
                if not house:
                    raise PersistenceError(f"House {house_id} not found", status=404)

                house.current_tenant_id = tenant_id
                await session.commit()
                await session.refresh(house)
            except SQLAlchemyError as e:
                await session.rollback()
                raise _to_persistence_error(f"update house {house_id}", e) from e
            return HouseRecord.model_validate(house)

    async def create_payments(self, fields: List[PaymentCreate]) -> List[PaymentRecord]:
        if not fields:
            return []

        async with self.session_factory() as session:
            payments = [Payment(**f.model_dump()) for f in fields]
            session.add_all(payments)
            try:
                await session.commit()
                for payment in payments:
                    await session.refresh(payment)
            except SQLAlchemyError as e:
                await session.rollback()
                raise _to_persistence_error("create payments", e) from e
            return [PaymentRecord.model_validate(p) for p in payments]

    async def seed_houses(self, roster) -> int:
        """Insert missing houses of the roster; returns how many were added."""
        async with self.session_factory() as session:
            result = await session.execute(select(House.id))
            existing = set(result.scalars().all())
            added = 0
            for house_id, house_number in roster:
                if house_id not in existing:
                    session.add(House(id=house_id, house_number=house_number))
                    added += 1
            await session.commit()
            logging.info(f"Seeded {added} house(s)")
            return added
