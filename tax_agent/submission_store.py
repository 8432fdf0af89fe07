"""
Supabase client for submission persistence.

Provides database access through the Supabase REST API.

IMPORTANT: This module uses the SERVICE ROLE key for backend operations.
This key bypasses Row Level Security and should NEVER be exposed to a client.
"""

import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

SUBMISSIONS_TABLE = "efile_submissions"


@dataclass(frozen=True)
class SupabaseConfig:
    """Configuration for Supabase connection."""
    url: str
    service_role_key: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Load configuration from environment variables."""
        url = os.getenv("SUPABASE_URL")
        service_role_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        if not url:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not service_role_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY environment variable is required")

        return cls(url=url, service_role_key=service_role_key)

    def __repr__(self) -> str:
        return f"SupabaseConfig(url={self.url!r}, service_role_key=***)"


# Global client instance (lazy initialization)
_service_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get the Supabase client with SERVICE ROLE privileges.

    This client bypasses RLS and should only be used in backend code.
    """
    global _service_client

    if _service_client is None:
        config = SupabaseConfig.from_env()
        _service_client = create_client(config.url, config.service_role_key)

    return _service_client


def reset_clients() -> None:
    """Reset client instances (useful for testing)."""
    global _service_client
    _service_client = None
