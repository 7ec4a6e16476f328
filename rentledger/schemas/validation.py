from datetime import date, datetime
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, ValidationError as PydanticValidationError

from rentledger.errors import ValidationError

M = TypeVar("M", bound=BaseModel)

# Fits the NUMERIC(12, 2) amount columns
MAX_AMOUNT = 10 ** 10


def _parse_amount(v):
    if isinstance(v, str):
        # Drop thousands separators: "15,000" and "15 000"
        v = v.replace(',', '').replace(' ', '')
        return float(v)
    return v


def _parse_date(v):
    if isinstance(v, str):
        v = v.strip()
        for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y"):
            try:
                return datetime.strptime(v, fmt).date()
            except ValueError:
                continue
        raise ValueError("Date must look like 2024-03-15 or 15.03.2024")
    return v


class AmountModel(BaseModel):
    amount: float = Field(gt=0, lt=MAX_AMOUNT, allow_inf_nan=False, description="Positive amount")

    @field_validator('amount', mode='before')
    def parse_float(cls, v):
        return _parse_amount(v)


class DateModel(BaseModel):
    value: date

    @field_validator('value', mode='before')
    def parse_date(cls, v):
        return _parse_date(v)


class TenantCreate(BaseModel):
    """Fields accepted by add-tenant"""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: Optional[str] = None
    work_info: str = ""
    rent_amount: float = Field(gt=0, lt=MAX_AMOUNT, allow_inf_nan=False, description="Monthly rent")
    join_date: date
    id_proof: bool = False

    @field_validator('name', 'email', mode='before')
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    def check_email(cls, v):
        if "@" not in v:
            raise ValueError("Email must contain '@'")
        return v

    @field_validator('phone', mode='before')
    def blank_phone(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('work_info', mode='before')
    def none_to_empty(cls, v):
        return v or ""

    @field_validator('rent_amount', mode='before')
    def parse_rent(cls, v):
        return _parse_amount(v)

    @field_validator('join_date', mode='before')
    def parse_join_date(cls, v):
        return _parse_date(v)


class PaymentCreate(BaseModel):
    """Fields of a single payment row to insert"""
    tenant_id: str
    house_id: Optional[str] = None
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900, le=2100)
    paid_date: date
    amount_paid: float = Field(gt=0, lt=MAX_AMOUNT, allow_inf_nan=False)

    @field_validator('amount_paid', mode='before')
    def parse_paid(cls, v):
        return _parse_amount(v)

    @field_validator('paid_date', mode='before')
    def parse_paid_date(cls, v):
        return _parse_date(v)


class BulkPaymentItem(PaymentCreate):
    """One dashboard bulk entry; the house is always known"""
    house_id: str


def parse_input(model: Type[M], **data) -> M:
    """Build `model` or raise the ledger ValidationError with readable details."""
    try:
        return model(**data)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(details) from e
