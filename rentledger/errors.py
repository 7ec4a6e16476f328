"""
Ledger error taxonomy.

ValidationError and ConflictError are raised before any store call.
PersistenceError wraps store failures and carries a human-readable hint
when the failure class is recognizable.
"""
from typing import List, Optional, NamedTuple, Any


class LedgerError(Exception):
    """Base class for all ledger failures"""


class ValidationError(LedgerError):
    """Malformed input: missing field, non-positive amount, invalid date"""


class ConflictError(LedgerError):
    """Occupancy conflict or another operation already in flight"""


FK_HINT = "Clear dependent records first (house occupancy and payments of this tenant)."
AUTH_HINT = "Authorization error. Check the backend URL/key and row-level security policies."
NETWORK_HINT = "Could not connect to the backend. Verify the backend URL, internet connection and project status."


def hint_for(message: str, status: Optional[int] = None) -> Optional[str]:
    """Map a raw store failure to a hint, or None if it is not recognizable."""
    text = (message or "").lower()
    if "foreign key" in text:
        return FK_HINT
    if status in (401, 403) or "forbidden" in text or "unauthorized" in text:
        return AUTH_HINT
    if "failed to fetch" in text or "cannot connect" in text or "network" in text or "timeout" in text:
        return NETWORK_HINT
    return None


class PersistenceError(LedgerError):
    """The store rejected or failed an operation"""

    def __init__(self, message: str, status: Optional[int] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.hint = hint if hint is not None else hint_for(message, status)

    def describe(self) -> str:
        if self.hint:
            return f"{self.message} (Hint: {self.hint})"
        return self.message


class PartialDeletionError(PersistenceError):
    """
    Tenant deletion stopped after an earlier step was already applied.

    `cleared_house_id` is the house that no longer points to the tenant (or None),
    `payments_deleted` tells whether the payment rows are already gone,
    `failed_step` is "payments" or "tenant".
    """

    def __init__(self, message: str, cleared_house_id: Optional[str], failed_step: str,
                 payments_deleted: bool = False,
                 status: Optional[int] = None, hint: Optional[str] = None):
        super().__init__(message, status=status, hint=hint)
        self.cleared_house_id = cleared_house_id
        self.failed_step = failed_step
        self.payments_deleted = payments_deleted


class FailedItem(NamedTuple):
    """A bulk item the store did not record"""
    item: Any
    reason: str


class PartialBatchFailure(LedgerError):
    """Some bulk payments were recorded, others were not"""

    def __init__(self, succeeded: List[Any], failed: List[FailedItem]):
        self.succeeded = succeeded
        self.failed = failed
        failed_ids = ", ".join(str(f.item.tenant_id) for f in failed)
        super().__init__(
            f"Recorded {len(succeeded)} payment(s); {len(failed)} failed for tenant(s): {failed_ids}"
        )

    @property
    def failed_tenant_ids(self) -> List[str]:
        return [f.item.tenant_id for f in self.failed]
