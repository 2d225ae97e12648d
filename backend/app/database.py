import logging
from functools import lru_cache

from supabase import create_client, Client

from app.config import get_settings
from app.services.store import DocumentStore, InMemoryStore
from app.services.supabase_store import SupabaseStore

logger = logging.getLogger(__name__)

settings = get_settings()


def get_anon_client() -> Client:
    """
    Get Supabase client with anon key (for unauthenticated requests).

    Use for:
    - Verifying bearer tokens with Supabase Auth
    """
    return create_client(settings.supabase_url, settings.supabase_anon_key)


def get_service_client() -> Client:
    """
    Get Supabase client with service role key (BYPASSES RLS).

    ⚠️  DANGER: This client has full database access!

    ONLY use for:
    - The ledger store (reads + the commit_documents_atomic RPC)

    NEVER hand it to request handlers directly; all ledger writes go
    through LedgerService.
    """
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


@lru_cache()
def get_store() -> DocumentStore:
    """
    The process-wide ledger store, chosen by `STORE_BACKEND`.

    - memory: in-process optimistic store (dev, tests, single instance)
    - supabase: Postgres tables committed through commit_documents_atomic
    """
    if settings.store_backend == "supabase":
        logger.info(f"Using Supabase ledger store at {settings.supabase_url}")
        return SupabaseStore(get_service_client(), max_attempts=settings.max_transaction_attempts)

    logger.info("Using in-memory ledger store")
    return InMemoryStore(max_attempts=settings.max_transaction_attempts)
