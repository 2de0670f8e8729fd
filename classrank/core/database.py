from functools import lru_cache

from supabase import create_client, Client
from classrank.core.config import settings


@lru_cache(maxsize=1)
def _create_client(url: str, key: str) -> Client:
    return create_client(url, key)

# Dependency for getting database client
def get_database() -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set to use the database")
    return _create_client(settings.supabase_url, settings.supabase_key)
