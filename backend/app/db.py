"""
Database client configuration.
Uses Supabase for PostgreSQL + Storage.

The admin client is built on first use so that modules can be imported
(and tested with injected fakes) without Supabase credentials.
"""

import asyncio
from functools import lru_cache

from supabase import create_client, Client

from app.config import get_settings


@lru_cache
def get_supabase_admin() -> Client:
    """
    Return the service-role Supabase client (bypasses RLS).

    Raises:
        ValueError: if SUPABASE_URL or SUPABASE_SERVICE_KEY is not set
    """
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment variables"
        )
    return create_client(settings.supabase_url, settings.supabase_service_key)


async def execute(query):
    """
    Run a supabase-py query builder's ``.execute()`` off the event loop.

    The Supabase client is synchronous; pipeline code awaits this instead
    of blocking the loop on network I/O.
    """
    return await asyncio.to_thread(query.execute)
