"""
Response normalizer.

Upstream calls (edge functions, provider APIs) answer in several shapes:
a decoded JSON object, a JSON-encoded string that still needs one parse
step, nothing at all, or garbage. This module tags the raw value once:

    Success(payload) | ParseableString(raw) | Empty() | Malformed(raw)

and resolves the tag into exactly one typed outcome, Ok(value) or
Err(ApiErrorRecord). Nothing in here raises past normalize().

Usage:
    outcome = normalize(raw_body, parse=FootprintPayload.from_dict)
    if outcome.ok:
        use(outcome.value)
    else:
        report(outcome.error)
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar, Union

from .errors import ApiErrorRecord, ErrorCode, classify, describe

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# RAW PAYLOAD TAGS
# =============================================================================

@dataclass(frozen=True)
class Success:
    """Already-decoded JSON object."""
    payload: Dict[str, Any]


@dataclass(frozen=True)
class ParseableString:
    """JSON text that needs one parse step."""
    raw: str


@dataclass(frozen=True)
class Empty:
    """No body at all."""


@dataclass(frozen=True)
class Malformed:
    """Something that can never become a JSON object."""
    raw: Any
    reason: str = ""


RawPayload = Union[Success, ParseableString, Empty, Malformed]


def classify_payload(raw: Any) -> RawPayload:
    """Tag a raw upstream value without interpreting its content."""
    if raw is None:
        return Empty()
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return Malformed(raw, "body is not UTF-8")
    if isinstance(raw, str):
        return ParseableString(raw) if raw.strip() else Empty()
    if isinstance(raw, dict):
        return Success(raw) if raw else Empty()
    return Malformed(raw, f"unexpected payload type {type(raw).__name__}")


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ApiErrorRecord

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Ok[T], Err]


def _malformed(detail: str) -> Err:
    logger.warning("Malformed upstream response: %s", detail)
    return Err(describe(ErrorCode.MALFORMED_RESPONSE))


def _failure_from_payload(payload: Dict[str, Any]) -> Err:
    """Turn an explicit success:false payload into a specific error code."""
    error_text = payload.get("error") or ""
    explicit = payload.get("errorCode")

    code = None
    if explicit:
        try:
            code = ErrorCode(explicit)
        except ValueError:
            code = None
    if code is None:
        code = classify(str(error_text))

    return Err(describe(code))


def normalize(
    raw: Any,
    parse: Optional[Callable[[Dict[str, Any]], T]] = None,
) -> Outcome:
    """
    Resolve a raw upstream value into Ok(value) or Err(ApiErrorRecord).

    Args:
        raw: Whatever the upstream call returned (dict, str, bytes, None, ...)
        parse: Optional converter from the data dict to a typed value. A
            ValueError, KeyError or TypeError from it counts as malformed.

    Returns:
        Ok with the parsed data, or Err with a classified error record.
    """
    tagged = classify_payload(raw)

    if isinstance(tagged, Empty):
        return Err(describe(ErrorCode.EMPTY_RESPONSE))

    if isinstance(tagged, Malformed):
        return _malformed(tagged.reason)

    if isinstance(tagged, ParseableString):
        try:
            decoded = json.loads(tagged.raw)
        except (json.JSONDecodeError, ValueError) as e:
            return _malformed(f"JSON decode failed: {e}")
        if decoded is None or isinstance(decoded, dict):
            retagged = classify_payload(decoded)
        else:
            retagged = Malformed(decoded, "JSON is not an object")
        if isinstance(retagged, Empty):
            return Err(describe(ErrorCode.EMPTY_RESPONSE))
        if not isinstance(retagged, Success):
            return _malformed(retagged.reason)
        tagged = retagged

    payload = tagged.payload

    if "success" in payload:
        if not payload["success"]:
            return _failure_from_payload(payload)
        data = payload.get("data")
        if data is None:
            data = {k: v for k, v in payload.items() if k != "success"}
    else:
        # Bare payload without envelope counts as success
        data = payload

    if parse is None:
        return Ok(data)

    try:
        return Ok(parse(data))
    except (ValueError, KeyError, TypeError) as e:
        return _malformed(f"payload did not match expected shape: {e}")


def to_caller_response(
    outcome: Outcome,
    serialize: Callable[[Any], Any] = lambda value: value,
) -> Dict[str, Any]:
    """Shape an outcome as {success, data?, error?, errorCode?, action?}."""
    if isinstance(outcome, Err):
        return outcome.error.to_response()
    return {"success": True, "data": serialize(outcome.value)}
