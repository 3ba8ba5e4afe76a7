"""
Database client configuration.
Uses Supabase (PostgreSQL via PostgREST) for result storage.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()


@lru_cache(maxsize=1)
def get_supabase_admin() -> Client:
    """
    Return the service-level Supabase client (bypasses RLS).

    Created on first use so the app can start, and tests can import it,
    with the in-memory result store and no Supabase credentials.
    """
    supabase_url = os.getenv("SUPABASE_URL")
    service_key = os.getenv("SUPABASE_SERVICE_KEY")

    if not supabase_url or not service_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment variables"
        )

    return create_client(supabase_url, service_key)
