"""
Database module for SolarScope.

Analysis record persistence: in-memory by default, Supabase optionally.
"""

from .client import get_client, SupabaseClient
from .models import AnalysisRow
from .repository import (
    AnalysisStore,
    InMemoryAnalysisStore,
    SupabaseAnalysisStore,
    create_store,
)

__all__ = [
    "get_client",
    "SupabaseClient",
    "AnalysisRow",
    "AnalysisStore",
    "InMemoryAnalysisStore",
    "SupabaseAnalysisStore",
    "create_store",
]
