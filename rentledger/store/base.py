from typing import List, Optional, Protocol

from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.schemas.validation import TenantCreate, PaymentCreate


class Store(Protocol):
    """
    Persistence collaborator of the ledger.

    Every method either returns the confirmed result or raises
    PersistenceError; nothing is applied in memory before it returns.
    """

    async def list_houses(self) -> List[HouseRecord]: ...

    async def list_tenants(self) -> List[TenantRecord]: ...

    async def list_payments(self) -> List[PaymentRecord]: ...

    async def create_tenant(self, fields: TenantCreate) -> TenantRecord: ...

    async def delete_tenant(self, tenant_id: str) -> None:
        """Fails with a foreign-key PersistenceError while dependents remain"""
        ...

    async def delete_payments(self, tenant_id: str) -> None: ...

    async def update_house_occupant(self, house_id: str, tenant_id: Optional[str]) -> HouseRecord: ...

    async def create_payments(self, fields: List[PaymentCreate]) -> List[PaymentRecord]:
        """Insert rows and return them; an empty batch returns []"""
        ...
