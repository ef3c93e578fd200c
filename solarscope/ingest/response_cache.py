"""
On-disk cache for upstream provider responses.

Each provider response is stored as JSON under
<cache_dir>/<provider>/<cache_id>.json. The cache_id is a stable hash of the
provider name and request parameters, and is what AnalysisRecord.cache_ids
reports so a result can be traced back to the exact upstream answer.

Writes made from a thread running under abandon_on(event) are dropped once
the event is set, so a resolver that outlived its request leaves no entry.
"""

import hashlib
import json
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from ..core.config import settings

logger = logging.getLogger(__name__)

_local = threading.local()


@contextmanager
def abandon_on(event: threading.Event) -> Iterator[None]:
    """Drop cache writes from the current thread once event is set."""
    previous = getattr(_local, "abandoned", None)
    _local.abandoned = event
    try:
        yield
    finally:
        _local.abandoned = previous


def _abandoned() -> bool:
    event = getattr(_local, "abandoned", None)
    return event is not None and event.is_set()


class ResponseCache:
    """JSON file cache keyed by (provider, request params)."""

    def __init__(self, cache_dir: Optional[Path] = None, ttl_s: Optional[float] = 30 * 24 * 3600):
        self.cache_dir = Path(cache_dir or settings.cache_dir / "providers")
        self.ttl_s = ttl_s

    @staticmethod
    def cache_id(provider: str, params: Dict[str, Any]) -> str:
        """Stable identifier for a provider request."""
        canonical = json.dumps({"provider": provider, "params": params}, sort_keys=True, default=str)
        return hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]

    def _path(self, provider: str, cache_id: str) -> Path:
        return self.cache_dir / provider / f"{cache_id}.json"

    def get(self, provider: str, cache_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(provider, cache_id)
        if not path.exists():
            return None
        if self.ttl_s is not None and time.time() - path.stat().st_mtime > self.ttl_s:
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, e)
            return None

    def put(self, provider: str, cache_id: str, data: Dict[str, Any]) -> None:
        if _abandoned():
            logger.debug("Dropping cache write for an abandoned request", extra={"provider": provider, "cache_id": cache_id})
            return
        path = self._path(provider, cache_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, default=str), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write cache entry %s: %s", path, e)

    def fetch(
        self,
        provider: str,
        params: Dict[str, Any],
        loader: Callable[[], Optional[Dict[str, Any]]],
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Return (cache_id, data), calling loader() on a miss.

        Only non-empty results are stored; loader exceptions propagate.
        """
        key = self.cache_id(provider, params)
        cached = self.get(provider, key)
        if cached is not None:
            logger.debug("Cache hit", extra={"provider": provider, "cache_id": key})
            return key, cached

        data = loader()
        if data:
            self.put(provider, key, data)
        return key, data
