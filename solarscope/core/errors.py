"""
Error taxonomy for SolarScope.

Every upstream integration (footprint lookup, Google Solar, NASA POWER,
edge functions, geocoding) reports failures through the same closed set of
codes. Each code maps to a localized user message and exactly one suggested
recovery action, so callers can branch on the code (e.g. open the manual
drawing tool on FOOTPRINT_NOT_FOUND) instead of parsing free text.

Free text coming from legacy upstreams is classified ONCE at the edge with
classify(); everything downstream dispatches on ErrorCode.

Usage:
    from solarscope.core.errors import ErrorCode, classify, describe

    code = classify("statement timeout while searching footprints")
    record = describe(code)
    record.action        # ErrorAction.RETRY
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorCode(str, Enum):
    """Closed set of error codes shared by the whole application."""

    # Communication
    EDGE_FUNCTION_ERROR = "EDGE_FUNCTION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    FUNCTION_NOT_FOUND = "FUNCTION_NOT_FOUND"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"

    # Analysis
    GEOCODING_FAILED = "GEOCODING_FAILED"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    INVALID_ADDRESS = "INVALID_ADDRESS"

    # Footprint
    FOOTPRINT_NOT_FOUND = "FOOTPRINT_NOT_FOUND"
    FOOTPRINT_TIMEOUT = "FOOTPRINT_TIMEOUT"
    FOOTPRINT_INVALID = "FOOTPRINT_INVALID"

    # Authentication
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    AUTH_INVALID = "AUTH_INVALID"

    # Credits
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorAction(str, Enum):
    """Recovery action suggested to the caller."""
    RETRY = "retry"
    LOGIN = "login"
    DRAW_MANUAL = "draw_manual"
    CONTACT_SUPPORT = "contact_support"
    BUY_CREDITS = "buy_credits"


@dataclass(frozen=True)
class ApiErrorRecord:
    """A classified failure. Never mutated; built fresh per failure."""
    code: ErrorCode
    message: str          # Internal, English
    user_message: str     # Localized, shown to the user
    action: ErrorAction

    @property
    def can_retry(self) -> bool:
        return self.action is ErrorAction.RETRY

    @property
    def requires_drawing(self) -> bool:
        return self.action is ErrorAction.DRAW_MANUAL

    def to_response(self) -> Dict[str, Any]:
        """Caller-facing error body."""
        return {
            "success": False,
            "error": self.user_message,
            "errorCode": self.code.value,
            "action": self.action.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "userMessage": self.user_message,
            "action": self.action.value,
        }


class UpstreamError(Exception):
    """
    Raised inside provider clients when an upstream call fails.

    Resolvers catch it at their boundary and turn it into an ApiErrorRecord,
    so it never reaches the caller.
    """

    def __init__(self, code: ErrorCode, message: str = "", provider: str = ""):
        super().__init__(message or code.value)
        self.code = code
        self.provider = provider

    def to_record(self) -> ApiErrorRecord:
        return describe(self.code)


# =============================================================================
# MESSAGE TABLE
# =============================================================================

ERROR_TABLE: Dict[ErrorCode, Tuple[str, str, ErrorAction]] = {
    ErrorCode.EDGE_FUNCTION_ERROR: (
        "Edge Function returned a non-2xx status code",
        "Erro de comunicação com o servidor. Tente novamente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.NETWORK_ERROR: (
        "Network connection failed",
        "Erro de conexão. Verifique sua internet e tente novamente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.FUNCTION_NOT_FOUND: (
        "Edge function not found",
        "Serviço temporariamente indisponível. Tente novamente em alguns instantes.",
        ErrorAction.CONTACT_SUPPORT,
    ),
    ErrorCode.EMPTY_RESPONSE: (
        "Empty response from server",
        "Resposta vazia do servidor. Tente novamente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.MALFORMED_RESPONSE: (
        "Malformed response from server",
        "Erro ao processar resposta do servidor. Tente novamente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.GEOCODING_FAILED: (
        "Could not geocode address",
        "Endereço não encontrado. Verifique se está correto.",
        ErrorAction.RETRY,
    ),
    ErrorCode.ANALYSIS_FAILED: (
        "Analysis process failed",
        "Falha na análise. Tente novamente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.INVALID_ADDRESS: (
        "Invalid address format",
        "Formato de endereço inválido. Digite um endereço válido.",
        ErrorAction.RETRY,
    ),
    ErrorCode.FOOTPRINT_NOT_FOUND: (
        "No footprint found for this location",
        "Footprint não disponível nesta região. Desenhe o telhado manualmente.",
        ErrorAction.DRAW_MANUAL,
    ),
    ErrorCode.FOOTPRINT_TIMEOUT: (
        "Footprint search timeout",
        "Busca por footprint demorou muito. Tente novamente ou desenhe manualmente.",
        ErrorAction.RETRY,
    ),
    ErrorCode.FOOTPRINT_INVALID: (
        "Invalid footprint data",
        "Dados de footprint inválidos. Desenhe o telhado manualmente.",
        ErrorAction.DRAW_MANUAL,
    ),
    ErrorCode.AUTH_REQUIRED: (
        "Authentication required",
        "Você precisa estar logado para usar este recurso.",
        ErrorAction.LOGIN,
    ),
    ErrorCode.AUTH_EXPIRED: (
        "Authentication token expired",
        "Sua sessão expirou. Faça login novamente.",
        ErrorAction.LOGIN,
    ),
    ErrorCode.AUTH_INVALID: (
        "Invalid authentication token",
        "Sessão inválida. Faça login novamente.",
        ErrorAction.LOGIN,
    ),
    ErrorCode.INSUFFICIENT_CREDITS: (
        "Insufficient credits",
        "Créditos insuficientes para realizar esta operação.",
        ErrorAction.BUY_CREDITS,
    ),
    ErrorCode.UNKNOWN_ERROR: (
        "Unknown error occurred",
        "Erro inesperado. Tente novamente ou entre em contato com o suporte.",
        ErrorAction.CONTACT_SUPPORT,
    ),
}

_missing = [code.value for code in ErrorCode if code not in ERROR_TABLE]
if _missing:
    raise RuntimeError(f"ERROR_TABLE has no entry for: {', '.join(_missing)}")


# Ordered substring rules: the first rule with a matching phrase wins.
# A message mentioning both "timeout" and "auth" is a FOOTPRINT_TIMEOUT.
CLASSIFICATION_RULES: Tuple[Tuple[ErrorCode, Tuple[str, ...]], ...] = (
    (ErrorCode.FOOTPRINT_NOT_FOUND, ("footprint não encontrado", "nenhum footprint encontrado", "no footprint found")),
    (ErrorCode.FOOTPRINT_TIMEOUT, ("timeout", "statement timeout")),
    (ErrorCode.AUTH_REQUIRED, ("autenticado", "login", "auth")),
    (ErrorCode.AUTH_EXPIRED, ("expired", "expirou")),
    (ErrorCode.INSUFFICIENT_CREDITS, ("créditos", "credits")),
    (ErrorCode.GEOCODING_FAILED, ("geocode", "endereço não encontrado")),
    (ErrorCode.FUNCTION_NOT_FOUND, ("function not found", "404")),
    (ErrorCode.NETWORK_ERROR, ("network", "conexão")),
    (ErrorCode.EMPTY_RESPONSE, ("resposta vazia", "empty response")),
    (ErrorCode.MALFORMED_RESPONSE, ("malformed", "malformada")),
)


def classify(raw_message: Optional[str]) -> ErrorCode:
    """
    Map free-text upstream failure text to an ErrorCode.

    Args:
        raw_message: Error text as reported by an upstream service.

    Returns:
        The code of the first matching rule in CLASSIFICATION_RULES,
        EDGE_FUNCTION_ERROR for "edge function ... non-2xx" text,
        UNKNOWN_ERROR otherwise.
    """
    if not raw_message:
        return ErrorCode.UNKNOWN_ERROR

    message = raw_message.lower()

    for code, phrases in CLASSIFICATION_RULES:
        if any(phrase in message for phrase in phrases):
            return code

    # Needs both phrases, so it cannot live in the table above
    if "edge function" in message and "non-2xx" in message:
        return ErrorCode.EDGE_FUNCTION_ERROR

    return ErrorCode.UNKNOWN_ERROR


def describe(code: ErrorCode, override_message: Optional[str] = None) -> ApiErrorRecord:
    """
    Build the ApiErrorRecord for a code.

    Args:
        code: Error code (an ErrorCode or its string value)
        override_message: Custom user-facing message replacing the default

    Returns:
        Fresh ApiErrorRecord. Unknown code strings describe UNKNOWN_ERROR.
    """
    try:
        code = ErrorCode(code)
    except ValueError:
        code = ErrorCode.UNKNOWN_ERROR

    message, user_message, action = ERROR_TABLE[code]
    return ApiErrorRecord(
        code=code,
        message=message,
        user_message=override_message or user_message,
        action=action,
    )
