import uuid
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy import String, Boolean, ForeignKey, Integer, Numeric, DateTime, Text, DATE, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from rentledger.database.core import Base


def new_id() -> str:
    return str(uuid.uuid4())


# 1 House (fixed roster, ids like "H3")
class House(Base):
    __tablename__ = "houses"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    house_number: Mapped[str] = mapped_column(String, nullable=False)
    # Weak back-reference: the house does not own the tenant
    current_tenant_id: Mapped[Optional[str]] = mapped_column(ForeignKey("tenants.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# 2 Tenant
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String)
    work_info: Mapped[str] = mapped_column(Text, default="")
    rent_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    join_date: Mapped[date] = mapped_column(DATE, nullable=False)
    id_proof: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    payments: Mapped[List["Payment"]] = relationship(back_populates="tenant")


# 3 Payment (never updated in place; a re-record inserts a new row)
class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    # No ON DELETE CASCADE: payments are removed explicitly before the tenant
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    # Snapshot of the house occupied when paid
    house_id: Mapped[Optional[str]] = mapped_column(ForeignKey("houses.id", ondelete="SET NULL"), nullable=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    amount_paid: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant: Mapped["Tenant"] = relationship(back_populates="payments")

    __table_args__ = (
        Index('ix_payments_tenant_period', 'tenant_id', 'year', 'month'),
        CheckConstraint('month BETWEEN 1 AND 12', name='ck_payments_month'),
    )
