"""
Tests for upstream plumbing: HTTP wrapper, response cache, edge functions
and geocoding.

Run with: pytest tests/test_ingest.py -v
"""

import threading
from unittest.mock import Mock

import pytest
import requests

from solarscope.core.errors import ErrorCode, UpstreamError
from solarscope.core.models import Coordinate
from solarscope.geo.geocoder import NominatimGeocoder
from solarscope.ingest.edge_functions import EdgeFunctionClient
from solarscope.ingest.http_client import request_json
from solarscope.ingest.response_cache import ResponseCache, abandon_on

from .conftest import http_response


def session_returning(response=None, error=None):
    session = Mock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return session


class TestRequestJson:
    """Tests for request_json status and body handling."""

    def call(self, session, **kwargs):
        return request_json(session, "GET", "https://api.test", provider="test", timeout=1, **kwargs)

    def test_json_object(self):
        assert self.call(session_returning(http_response({"a": 1}))) == {"a": 1}

    def test_envelope_is_unwrapped(self):
        body = {"success": True, "data": {"polygon": None, "area": 0}}
        assert self.call(session_returning(http_response(body))) == {"polygon": None, "area": 0}

    def test_explicit_failure(self):
        session = session_returning(http_response({"success": False, "error": "Créditos insuficientes"}))
        with pytest.raises(UpstreamError) as exc:
            self.call(session)
        assert exc.value.code is ErrorCode.INSUFFICIENT_CREDITS

    def test_empty_body(self):
        with pytest.raises(UpstreamError) as exc:
            self.call(session_returning(http_response("")))
        assert exc.value.code is ErrorCode.EMPTY_RESPONSE

    def test_malformed_body(self):
        with pytest.raises(UpstreamError) as exc:
            self.call(session_returning(http_response("<html>502</html>")))
        assert exc.value.code is ErrorCode.MALFORMED_RESPONSE

    @pytest.mark.parametrize("status,code", [
        (401, ErrorCode.AUTH_REQUIRED),
        (402, ErrorCode.INSUFFICIENT_CREDITS),
        (403, ErrorCode.AUTH_INVALID),
        (404, ErrorCode.FUNCTION_NOT_FOUND),
        (500, ErrorCode.EDGE_FUNCTION_ERROR),
    ])
    def test_status_codes(self, status, code):
        with pytest.raises(UpstreamError) as exc:
            self.call(session_returning(http_response("", status_code=status)))
        assert exc.value.code is code

    def test_error_body_is_more_specific(self):
        body = {"success": False, "error": "JWT expired"}
        with pytest.raises(UpstreamError) as exc:
            self.call(session_returning(http_response(body, status_code=401)))
        assert exc.value.code is ErrorCode.AUTH_EXPIRED

    def test_not_found_ok(self):
        assert self.call(session_returning(http_response("", status_code=404)), not_found_ok=True) is None

    def test_timeout_code(self):
        session = session_returning(error=requests.Timeout("slow"))
        with pytest.raises(UpstreamError) as exc:
            self.call(session, timeout_code=ErrorCode.FOOTPRINT_TIMEOUT)
        assert exc.value.code is ErrorCode.FOOTPRINT_TIMEOUT

    def test_connection_error(self):
        with pytest.raises(UpstreamError) as exc:
            self.call(session_returning(error=requests.ConnectionError("refused")))
        assert exc.value.code is ErrorCode.NETWORK_ERROR


class TestResponseCache:
    """Tests for the on-disk provider cache."""

    def test_miss_then_hit(self, tmp_path):
        cache = ResponseCache(tmp_path)
        loader = Mock(return_value={"value": 1})

        first = cache.fetch("provider", {"lat": 1}, loader)
        second = cache.fetch("provider", {"lat": 1}, loader)

        assert first == second
        assert first[1] == {"value": 1}
        loader.assert_called_once()
        assert (tmp_path / "provider" / f"{first[0]}.json").exists()

    def test_empty_results_are_not_cached(self, tmp_path):
        cache = ResponseCache(tmp_path)
        loader = Mock(return_value=None)

        cache.fetch("provider", {"lat": 1}, loader)
        cache.fetch("provider", {"lat": 1}, loader)

        assert loader.call_count == 2

    def test_id_is_stable_and_param_sensitive(self):
        assert ResponseCache.cache_id("p", {"a": 1, "b": 2}) == ResponseCache.cache_id("p", {"b": 2, "a": 1})
        assert ResponseCache.cache_id("p", {"a": 1}) != ResponseCache.cache_id("p", {"a": 2})
        assert ResponseCache.cache_id("p", {"a": 1}) != ResponseCache.cache_id("q", {"a": 1})

    def test_expired_entry(self, tmp_path):
        cache = ResponseCache(tmp_path, ttl_s=-1)
        loader = Mock(return_value={"value": 1})

        cache.fetch("provider", {}, loader)
        cache.fetch("provider", {}, loader)

        assert loader.call_count == 2

    def test_unreadable_entry(self, tmp_path):
        cache = ResponseCache(tmp_path)
        key = ResponseCache.cache_id("provider", {})
        path = tmp_path / "provider" / f"{key}.json"
        path.parent.mkdir(parents=True)
        path.write_text("{broken")

        assert cache.get("provider", key) is None

    def test_loader_errors_propagate(self, tmp_path):
        loader = Mock(side_effect=UpstreamError(ErrorCode.NETWORK_ERROR))
        with pytest.raises(UpstreamError):
            ResponseCache(tmp_path).fetch("provider", {}, loader)

    def test_abandoned_writes_are_dropped(self, tmp_path):
        cache = ResponseCache(tmp_path)
        abandoned = threading.Event()

        with abandon_on(abandoned):
            cache.put("provider", "kept", {"value": 1})
            abandoned.set()
            cache.put("provider", "dropped", {"value": 2})
        cache.put("provider", "after", {"value": 3})

        assert cache.get("provider", "kept") == {"value": 1}
        assert cache.get("provider", "dropped") is None
        assert cache.get("provider", "after") == {"value": 3}

    def test_abandon_is_per_thread(self, tmp_path):
        cache = ResponseCache(tmp_path)
        abandoned = threading.Event()
        abandoned.set()

        with abandon_on(abandoned):
            other = threading.Thread(target=cache.put, args=("provider", "other", {"value": 1}))
            other.start()
            other.join()

        assert cache.get("provider", "other") == {"value": 1}


class TestEdgeFunctionClient:

    def test_not_configured(self):
        client = EdgeFunctionClient(base_url="", api_key="", session=Mock())
        with pytest.raises(UpstreamError) as exc:
            client.invoke("footprints", {})
        assert exc.value.code is ErrorCode.FUNCTION_NOT_FOUND

    def test_invoke(self):
        session = session_returning(http_response({"success": True, "data": {"ok": True}}))
        client = EdgeFunctionClient(base_url="https://backend.test/", api_key="key", session=session)

        assert client.invoke("footprints", {"lat": 1}) == {"ok": True}

        call = session.request.call_args
        assert call.args == ("POST", "https://backend.test/functions/v1/footprints")
        assert call.kwargs["json"] == {"lat": 1}
        assert call.kwargs["headers"]["Authorization"] == "Bearer key"


class TestGeocoder:
    """Tests for Nominatim geocoding."""

    def make(self, payload=None, error=None):
        session = Mock()
        if error is not None:
            session.get.side_effect = error
        else:
            response = Mock()
            response.json.return_value = payload
            response.raise_for_status.return_value = None
            session.get.return_value = response
        return NominatimGeocoder(url="https://geo.test", session=session, country_codes="br"), session

    def test_geocode(self):
        geocoder, session = self.make([{"lat": "-23.5613", "lon": "-46.6565"}])

        assert geocoder.geocode("Av. Paulista 1000") == Coordinate(-23.5613, -46.6565)
        assert session.get.call_args.kwargs["params"]["countrycodes"] == "br"

    def test_short_address(self):
        geocoder, session = self.make([])
        with pytest.raises(UpstreamError) as exc:
            geocoder.geocode("Rua")
        assert exc.value.code is ErrorCode.INVALID_ADDRESS
        session.get.assert_not_called()

    def test_no_results(self):
        geocoder, _ = self.make([])
        with pytest.raises(UpstreamError) as exc:
            geocoder.geocode("Rua Inexistente 123")
        assert exc.value.code is ErrorCode.GEOCODING_FAILED

    def test_transport_error(self):
        geocoder, _ = self.make(error=requests.ConnectionError("down"))
        with pytest.raises(UpstreamError) as exc:
            geocoder.geocode("Av. Paulista 1000")
        assert exc.value.code is ErrorCode.GEOCODING_FAILED
