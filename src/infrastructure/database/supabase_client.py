from __future__ import annotations

import os

from supabase import Client, create_client

# Shared client for the project repository and the external image store
_CLIENT_SINGLETON: Client | None = None


def supabase_enabled() -> bool:
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    return not disabled and bool(os.getenv("SUPABASE_URL")) and bool(os.getenv("SUPABASE_ANON_KEY"))


def get_supabase_client() -> Client | None:
    """Return the Supabase client, or None in local fake mode."""
    global _CLIENT_SINGLETON
    if not supabase_enabled():
        return None
    if _CLIENT_SINGLETON is None:
        _CLIENT_SINGLETON = create_client(os.environ["SUPABASE_URL"], os.environ["SUPABASE_ANON_KEY"])
    return _CLIENT_SINGLETON
