from rentledger.store.base import Store
from rentledger.store.database import DatabaseStore
from rentledger.store.supabase import SupabaseStore


def create_store(config) -> Store:
    """Build the store selected by STORE_BACKEND"""
    if config.STORE_BACKEND == "supabase":
        project_url, anon_key = config.require_supabase()
        return SupabaseStore(project_url, anon_key, timeout=config.STORE_TIMEOUT)

    if config.STORE_BACKEND == "database":
        from rentledger.database.core import AsyncSessionLocal
        return DatabaseStore(AsyncSessionLocal)

    raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND!r} (expected 'supabase' or 'database')")


__all__ = ["Store", "DatabaseStore", "SupabaseStore", "create_store"]
