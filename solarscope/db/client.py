"""
Supabase client for SolarScope.

Optional: install with the `supabase` extra. The in-memory store is used
when it is not installed or not configured.
"""

import logging
from functools import lru_cache
from typing import List, Optional

try:
    from supabase import create_client, Client
    SUPABASE_AVAILABLE = True
except ImportError:
    SUPABASE_AVAILABLE = False
    Client = None

from ..core.config import settings

logger = logging.getLogger(__name__)

ANALYSES_TABLE = "analyses"


class SupabaseClient:
    """Wrapper for the Supabase client with lazy initialization."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        if not SUPABASE_AVAILABLE:
            raise ImportError(
                "supabase-py not installed. Install with: pip install 'solarscope[supabase]'"
            )
        self.url = url or settings.supabase_url
        self.key = key or settings.supabase_key
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        """Get or create Supabase client."""
        if self._client is None:
            if not self.url or not self.key:
                raise ValueError(
                    "SOLARSCOPE_SUPABASE_URL and SOLARSCOPE_SUPABASE_KEY must be set"
                )
            self._client = create_client(self.url, self.key)
        return self._client

    # ============================================
    # Analyses
    # ============================================

    def insert_analysis(self, data: dict) -> Optional[dict]:
        """Insert a new analysis row."""
        result = self.client.table(ANALYSES_TABLE).insert(data).execute()
        return result.data[0] if result.data else None

    def get_analysis(self, analysis_id: str) -> Optional[dict]:
        """Get analysis by ID."""
        result = (
            self.client.table(ANALYSES_TABLE)
            .select("*")
            .eq("id", analysis_id)
            .execute()
        )
        return result.data[0] if result.data else None

    def list_children(self, parent_id: str) -> List[dict]:
        """Analyses re-run from the given one, oldest first."""
        result = (
            self.client.table(ANALYSES_TABLE)
            .select("*")
            .eq("parent_id", parent_id)
            .order("version")
            .execute()
        )
        return result.data or []


@lru_cache(maxsize=1)
def get_client() -> SupabaseClient:
    """Get singleton Supabase client instance."""
    return SupabaseClient()
