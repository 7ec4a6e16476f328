"""
Immutable in-memory records of the three ledger tables.

Parsed either from PostgREST JSON rows or from ORM objects (from_attributes).
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('id', mode='before')
    def stringify_id(cls, v):
        # PostgREST may hand back integer keys; the ledger keys everything by string
        return str(v) if v is not None else v


class HouseRecord(_Record):
    house_number: str
    current_tenant_id: Optional[str] = None

    @field_validator('current_tenant_id', mode='before')
    def stringify_tenant_id(cls, v):
        return str(v) if v is not None else None

    @property
    def is_vacant(self) -> bool:
        return self.current_tenant_id is None


class TenantRecord(_Record):
    name: str
    email: str
    phone: Optional[str] = None
    work_info: str = ""
    rent_amount: float
    join_date: date
    id_proof: bool = False

    @field_validator('work_info', mode='before')
    def none_to_empty(cls, v):
        return v or ""


class PaymentRecord(_Record):
    tenant_id: str
    house_id: Optional[str] = None
    month: int
    year: int
    paid_date: Optional[date] = None
    amount_paid: float

    @field_validator('tenant_id', 'house_id', mode='before')
    def stringify_refs(cls, v):
        return str(v) if v is not None else None
