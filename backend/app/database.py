"""
Centralized database client management.

This module provides a singleton Supabase client so the stores share one
connection throughout the application.
"""
import os
from functools import lru_cache
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()


class DatabaseConfig:
    """Configuration for database connections."""

    def __init__(self):
        self.supabase_url = os.getenv("SUPABASE_URL")
        self.supabase_anon_key = os.getenv("SUPABASE_KEY")
        self.supabase_service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        if not self.supabase_url:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not (self.supabase_anon_key or self.supabase_service_key):
            raise ValueError("SUPABASE_KEY or SUPABASE_SERVICE_ROLE_KEY environment variable is required")

    @property
    def service_key(self) -> str:
        """Get service key, falling back to anon key if not set."""
        return self.supabase_service_key or self.supabase_anon_key


_config: DatabaseConfig = None


def get_config() -> DatabaseConfig:
    """Get the database configuration singleton."""
    global _config
    if _config is None:
        _config = DatabaseConfig()
    return _config


@lru_cache(maxsize=1)
def get_supabase_service() -> Client:
    """
    Get the Supabase service client (bypasses RLS).

    The prep pipeline scopes every query by owner_id itself.

    Returns:
        Supabase Client with service role permissions
    """
    config = get_config()
    return create_client(config.supabase_url, config.service_key)
