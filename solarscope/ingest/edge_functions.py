"""
Client for the serverless backend's edge functions.

The dashboard backend exposes functions under
<SUPABASE_URL>/functions/v1/<name>. Their bodies arrive either as JSON
objects or as JSON-encoded strings, wrapped in a {success, data, error}
envelope; the response normalizer takes care of both.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.config import settings
from ..core.errors import ErrorCode, UpstreamError
from .http_client import create_session, request_json

logger = logging.getLogger(__name__)


class EdgeFunctionClient:
    """Invoke backend edge functions with the project key."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.supabase_url or "").rstrip("/")
        self.api_key = api_key or settings.supabase_key
        self.timeout_s = timeout_s or settings.http_timeout_s
        self._session = session or create_session()

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def invoke(
        self,
        name: str,
        body: Dict[str, Any],
        timeout_code: ErrorCode = ErrorCode.NETWORK_ERROR,
    ) -> Dict[str, Any]:
        """
        Call an edge function and return its data payload.

        Raises:
            UpstreamError: If the client is not configured or the call fails.
        """
        if not self.configured:
            raise UpstreamError(ErrorCode.FUNCTION_NOT_FOUND, "Edge functions not configured", name)

        data = request_json(
            self._session,
            "POST",
            f"{self.base_url}/functions/v1/{name}",
            provider=name,
            timeout=self.timeout_s,
            timeout_code=timeout_code,
            json=body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "apikey": self.api_key,
            },
        )
        return data or {}
