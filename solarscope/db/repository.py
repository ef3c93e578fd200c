"""
Persistence for analysis records.

Records are immutable: save() stores a new row and never updates an
existing one. Re-analysis stores a new record whose parent_id points to
the previous version.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..core.config import settings
from ..core.models import AnalysisRecord
from .client import SupabaseClient, get_client
from .models import AnalysisRow

logger = logging.getLogger(__name__)


class AnalysisStore(ABC):
    """Storage interface used by the analysis service."""

    @abstractmethod
    def save(self, record: AnalysisRecord) -> AnalysisRecord:
        """Persist a record. Raises ValueError if the id already exists."""

    @abstractmethod
    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        """Record by id, or None."""

    @abstractmethod
    def children(self, analysis_id: str) -> List[AnalysisRecord]:
        """Records re-analyzed directly from analysis_id, by version."""

    def history(self, analysis_id: str) -> List[AnalysisRecord]:
        """The record's ancestors and itself, oldest first."""
        chain: List[AnalysisRecord] = []
        record = self.get(analysis_id)
        while record is not None:
            chain.append(record)
            record = self.get(record.parent_id) if record.parent_id else None
        return list(reversed(chain))


class InMemoryAnalysisStore(AnalysisStore):
    """Process-local store; the default backend."""

    def __init__(self):
        self._records: Dict[str, AnalysisRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: AnalysisRecord) -> AnalysisRecord:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Analysis {record.id} already stored")
            self._records[record.id] = record
        return record

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        return self._records.get(analysis_id)

    def children(self, analysis_id: str) -> List[AnalysisRecord]:
        return sorted(
            (r for r in self._records.values() if r.parent_id == analysis_id),
            key=lambda r: r.version,
        )

    def __len__(self) -> int:
        return len(self._records)


class SupabaseAnalysisStore(AnalysisStore):
    """Store backed by the `analyses` table."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or get_client()

    def save(self, record: AnalysisRecord) -> AnalysisRecord:
        if self._client.get_analysis(record.id):
            raise ValueError(f"Analysis {record.id} already stored")
        self._client.insert_analysis(AnalysisRow.from_record(record).to_dict())
        return record

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        row = self._client.get_analysis(analysis_id)
        return AnalysisRow.from_dict(row).to_record() if row else None

    def children(self, analysis_id: str) -> List[AnalysisRecord]:
        return [AnalysisRow.from_dict(row).to_record() for row in self._client.list_children(analysis_id)]


def create_store(backend: Optional[str] = None) -> AnalysisStore:
    """Store for the configured backend."""
    backend = backend or settings.store_backend
    if backend == "supabase":
        logger.info("Using Supabase analysis store")
        return SupabaseAnalysisStore()
    return InMemoryAnalysisStore()
