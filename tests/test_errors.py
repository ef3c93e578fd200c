"""
Tests for the error taxonomy: classification, descriptions and actions.

Run with: pytest tests/test_errors.py -v
"""

import pytest

from solarscope.core.errors import (
    CLASSIFICATION_RULES,
    ERROR_TABLE,
    ApiErrorRecord,
    ErrorAction,
    ErrorCode,
    UpstreamError,
    classify,
    describe,
)


class TestClassify:
    """Tests for free-text classification."""

    @pytest.mark.parametrize("message,expected", [
        ("Nenhum footprint encontrado para as coordenadas", ErrorCode.FOOTPRINT_NOT_FOUND),
        ("canceling statement due to statement timeout", ErrorCode.FOOTPRINT_TIMEOUT),
        ("Usuário não autenticado", ErrorCode.AUTH_REQUIRED),
        ("JWT expired", ErrorCode.AUTH_EXPIRED),
        ("Créditos insuficientes", ErrorCode.INSUFFICIENT_CREDITS),
        ("Failed to geocode address", ErrorCode.GEOCODING_FAILED),
        ("Function not found", ErrorCode.FUNCTION_NOT_FOUND),
        ("TypeError: network request failed", ErrorCode.NETWORK_ERROR),
        ("Empty response body", ErrorCode.EMPTY_RESPONSE),
        ("malformed JSON", ErrorCode.MALFORMED_RESPONSE),
        ("Edge Function returned a non-2xx status code", ErrorCode.EDGE_FUNCTION_ERROR),
    ])
    def test_known_phrases(self, message, expected):
        assert classify(message) is expected

    def test_empty_is_unknown(self):
        assert classify(None) is ErrorCode.UNKNOWN_ERROR
        assert classify("") is ErrorCode.UNKNOWN_ERROR

    def test_unrelated_text_is_unknown(self):
        assert classify("something odd happened") is ErrorCode.UNKNOWN_ERROR

    def test_case_insensitive(self):
        assert classify("STATEMENT TIMEOUT") is ErrorCode.FOOTPRINT_TIMEOUT

    def test_timeout_wins_over_auth(self):
        """Earlier rules take priority when several phrases match."""
        assert classify("auth check timeout") is ErrorCode.FOOTPRINT_TIMEOUT

    def test_footprint_not_found_wins_over_timeout(self):
        assert classify("no footprint found before timeout") is ErrorCode.FOOTPRINT_NOT_FOUND

    def test_rule_codes_are_unique(self):
        codes = [code for code, _ in CLASSIFICATION_RULES]
        assert len(codes) == len(set(codes))


class TestDescribe:
    """Tests for error descriptions."""

    def test_every_code_has_entry(self):
        assert set(ERROR_TABLE) == set(ErrorCode)

    @pytest.mark.parametrize("code", list(ErrorCode))
    def test_every_code_has_one_action(self, code):
        record = describe(code)
        assert record.code is code
        assert isinstance(record.action, ErrorAction)
        assert record.user_message
        assert record.message

    def test_idempotent(self):
        assert describe(ErrorCode.NETWORK_ERROR) == describe(ErrorCode.NETWORK_ERROR)

    def test_override_message(self):
        record = describe(ErrorCode.ANALYSIS_FAILED, "Falhou")
        assert record.user_message == "Falhou"
        assert record.message == "Analysis process failed"

    def test_string_code(self):
        assert describe("FOOTPRINT_INVALID").code is ErrorCode.FOOTPRINT_INVALID

    def test_unknown_string_code(self):
        assert describe("NOT_A_CODE").code is ErrorCode.UNKNOWN_ERROR

    @pytest.mark.parametrize("code,action", [
        (ErrorCode.FOOTPRINT_NOT_FOUND, ErrorAction.DRAW_MANUAL),
        (ErrorCode.FOOTPRINT_INVALID, ErrorAction.DRAW_MANUAL),
        (ErrorCode.FOOTPRINT_TIMEOUT, ErrorAction.RETRY),
        (ErrorCode.ANALYSIS_FAILED, ErrorAction.RETRY),
        (ErrorCode.AUTH_EXPIRED, ErrorAction.LOGIN),
        (ErrorCode.INSUFFICIENT_CREDITS, ErrorAction.BUY_CREDITS),
        (ErrorCode.UNKNOWN_ERROR, ErrorAction.CONTACT_SUPPORT),
    ])
    def test_actions(self, code, action):
        assert describe(code).action is action


class TestApiErrorRecord:
    """Tests for record serialization."""

    def test_response_shape(self):
        response = describe(ErrorCode.ANALYSIS_FAILED).to_response()
        assert response == {
            "success": False,
            "error": "Falha na análise. Tente novamente.",
            "errorCode": "ANALYSIS_FAILED",
            "action": "retry",
        }

    def test_flags(self):
        assert describe(ErrorCode.FOOTPRINT_NOT_FOUND).requires_drawing
        assert not describe(ErrorCode.FOOTPRINT_NOT_FOUND).can_retry
        assert describe(ErrorCode.NETWORK_ERROR).can_retry

    def test_frozen(self):
        record = describe(ErrorCode.NETWORK_ERROR)
        with pytest.raises(Exception):
            record.code = ErrorCode.UNKNOWN_ERROR

    def test_upstream_error_to_record(self):
        error = UpstreamError(ErrorCode.FOOTPRINT_TIMEOUT, "overpass timed out", "osm")
        assert str(error) == "overpass timed out"
        assert error.provider == "osm"
        assert isinstance(error.to_record(), ApiErrorRecord)
        assert error.to_record().code is ErrorCode.FOOTPRINT_TIMEOUT
