"""
Supabase (PostgREST) store.
Docs: https://postgrest.org/en/stable/references/api/tables_views.html
"""
import asyncio
import aiohttp
import logging
from typing import Any, List, Optional

from rentledger.errors import PersistenceError, NETWORK_HINT
from rentledger.schemas.records import HouseRecord, TenantRecord, PaymentRecord
from rentledger.schemas.validation import TenantCreate, PaymentCreate


class SupabaseStore:
    """Store backed by the Supabase REST API (`/rest/v1`)"""

    def __init__(self, project_url: str, anon_key: str, timeout: float = 10):
        self.base_url = f"{project_url.rstrip('/')}/rest/v1"
        self.anon_key = anon_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_headers(self, prefer: Optional[str] = None) -> dict:
        """Get request headers with auth"""
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Any = None,
        prefer: Optional[str] = None
    ) -> Any:
        """
        Send one request and decode the JSON body.

        Returns None for 204 and non-JSON responses.
        Raises PersistenceError with the most specific message the API gave.
        """
        url = f"{self.base_url}/{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method,
                    url,
                    headers=self._get_headers(prefer),
                    params=params,
                    json=json
                ) as resp:
                    if resp.status >= 400:
                        message = await self._error_message(resp)
                        logging.error(f"Supabase {method} {path} failed: {resp.status} - {message}")
                        raise PersistenceError(message, status=resp.status)

                    if resp.status == 204:
                        return None
                    if "application/json" not in resp.headers.get("Content-Type", ""):
                        return None
                    return await resp.json()

        except aiohttp.ClientError as e:
            logging.error(f"Supabase request {method} {path} failed: {e}")
            raise PersistenceError(f"Failed to fetch: {e}", hint=NETWORK_HINT) from e
        except asyncio.TimeoutError as e:
            logging.error(f"Supabase request {method} {path} timed out")
            raise PersistenceError("Request timeout", hint=NETWORK_HINT) from e

    @staticmethod
    async def _error_message(resp: aiohttp.ClientResponse) -> str:
        fallback = f"API Error: {resp.status} {resp.reason}"
        try:
            data = await resp.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return fallback
        if not isinstance(data, dict):
            return fallback
        return data.get("message") or data.get("error") or data.get("details") or data.get("hint") or fallback

    # --- Houses ---

    async def list_houses(self) -> List[HouseRecord]:
        rows = await self._request("GET", "houses", params={"select": "*", "order": "house_number.asc"})
        return [HouseRecord.model_validate(row) for row in rows or []]

    async def update_house_occupant(self, house_id: str, tenant_id: Optional[str]) -> HouseRecord:
        rows = await self._request(
            "PATCH", "houses",
            params={"id": f"eq.{house_id}"},
            json={"current_tenant_id": tenant_id},
            prefer="return=representation"
        )
        if not rows:
            raise PersistenceError("House update did not return the updated house data.")
        return HouseRecord.model_validate(rows[0])

    # --- Tenants ---

    async def list_tenants(self) -> List[TenantRecord]:
        rows = await self._request("GET", "tenants", params={"select": "*", "order": "created_at.desc"})
        return [TenantRecord.model_validate(row) for row in rows or []]

    async def create_tenant(self, fields: TenantCreate) -> TenantRecord:
        rows = await self._request(
            "POST", "tenants",
            json=fields.model_dump(mode="json"),
            prefer="return=representation"
        )
        if not rows:
            raise PersistenceError("Tenant creation did not return the new tenant data.")
        return TenantRecord.model_validate(rows[0])

    async def delete_tenant(self, tenant_id: str) -> None:
        await self._request(
            "DELETE", "tenants",
            params={"id": f"eq.{tenant_id}"},
            prefer="return=minimal"
        )

    # --- Payments ---

    async def list_payments(self) -> List[PaymentRecord]:
        rows = await self._request("GET", "payments", params={"select": "*", "order": "created_at.asc"})
        return [PaymentRecord.model_validate(row) for row in rows or []]

    async def delete_payments(self, tenant_id: str) -> None:
        await self._request(
            "DELETE", "payments",
            params={"tenant_id": f"eq.{tenant_id}"},
            prefer="return=minimal"
        )

    async def create_payments(self, fields: List[PaymentCreate]) -> List[PaymentRecord]:
        if not fields:
            return []

        # PostgREST inserts a JSON array as one statement
        rows = await self._request(
            "POST", "payments",
            json=[f.model_dump(mode="json") for f in fields],
            prefer="return=representation"
        )
        if not rows:
            raise PersistenceError("Payment recording did not return the new payment data.")
        return [PaymentRecord.model_validate(row) for row in rows]
