"""Classification of failed attempts.

Maps a completed error response, or a transport failure with no response,
to exactly one classification variant. Pure functions: no logging, no I/O.
"""

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from xgate.http.constants import (
    DEFAULT_API_ERROR_PREFIX,
    GENERAL_FIELD,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from xgate.http.models import (
    ApiFailure,
    NetworkFailure,
    RateLimitFailure,
    ValidationFailure,
)
from xgate.http.transport import TransportFailure


FieldErrors = dict[str, list[str]]
FieldErrorMatcher = Callable[[Mapping[str, Any], str], FieldErrors | None]

# Header aliases, first present wins
RETRY_AFTER_HEADERS = ("retry-after", "x-retry-after")
RATE_LIMIT_LIMIT_HEADERS = ("x-ratelimit-limit", "x-rate-limit-limit", "ratelimit-limit")
RATE_LIMIT_REMAINING_HEADERS = (
    "x-ratelimit-remaining",
    "x-rate-limit-remaining",
    "ratelimit-remaining",
)
RATE_LIMIT_RESET_HEADERS = ("x-ratelimit-reset", "x-rate-limit-reset", "ratelimit-reset")


def decode_body(response: httpx.Response) -> dict[str, Any] | None:
    """Decode a response body as a JSON object.

    Args:
        response: HTTP response.

    Returns:
        The decoded object, or None if the body is empty, not JSON, or
        not an object.
    """
    if not response.content:
        return None
    try:
        data = json.loads(response.content)
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def extract_message(body: Mapping[str, Any] | None, status_code: int) -> str:
    """Pick the human message from an error body.

    ``message`` wins over ``error``; both fall back to ``HTTP <status>``.
    """
    if body is not None:
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {status_code}"


def _normalize_field_errors(raw: object) -> FieldErrors | None:
    if not isinstance(raw, Mapping) or not raw:
        return None
    result: FieldErrors = {}
    for name, messages in raw.items():
        if isinstance(messages, str):
            result[str(name)] = [messages]
        elif isinstance(messages, list | tuple):
            result[str(name)] = [str(m) for m in messages]
        else:
            result[str(name)] = [str(messages)]
    return result


def _match_errors_key(body: Mapping[str, Any], _message: str) -> FieldErrors | None:
    """Laravel style: ``{"errors": {"field": ["msg"]}}``."""
    return _normalize_field_errors(body.get("errors"))


def _match_validation_errors_key(
    body: Mapping[str, Any], _message: str
) -> FieldErrors | None:
    """Alternative shape: ``{"validation_errors": {"field": ["msg"]}}``."""
    return _normalize_field_errors(body.get("validation_errors"))


def _match_validation_message(
    body: Mapping[str, Any], message: str
) -> FieldErrors | None:
    """A bare message that mentions validation becomes a general error."""
    raw = body.get("message")
    if isinstance(raw, str) and "validation" in raw.lower():
        return {GENERAL_FIELD: [message]}
    return None


FIELD_ERROR_MATCHERS: tuple[FieldErrorMatcher, ...] = (
    _match_errors_key,
    _match_validation_errors_key,
    _match_validation_message,
)


def extract_field_errors(body: Mapping[str, Any] | None, message: str) -> FieldErrors:
    """Extract per-field validation errors from a 422 body.

    Tries each matcher in ``FIELD_ERROR_MATCHERS`` in order; the first
    non-empty result wins. When nothing matches, a single general error
    is synthesized from ``message``.

    Args:
        body: Decoded error body, if any.
        message: Fallback message extracted from the body.

    Returns:
        Field name to ordered list of messages.
    """
    if body is not None:
        for matcher in FIELD_ERROR_MATCHERS:
            found = matcher(body, message)
            if found:
                return found
    return {GENERAL_FIELD: [f"Validation failed: {message}"]}


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header value.

    Args:
        value: Header value (seconds or HTTP date).

    Returns:
        Seconds to wait (never negative), or None if not parseable.
    """
    if not value:
        return None
    value = value.strip()

    # Try parsing as integer seconds
    try:
        return max(0, int(value))
    except ValueError:
        pass

    # Try parsing as HTTP date
    try:
        dt = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta = dt - datetime.now(UTC)
    return max(0, int(delta.total_seconds()))


def _first_int_header(headers: httpx.Headers, names: tuple[str, ...]) -> int | None:
    for name in names:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value.strip())
            except ValueError:
                return None
    return None


def _retry_after_seconds(
    headers: httpx.Headers, body: Mapping[str, Any] | None
) -> int:
    for name in RETRY_AFTER_HEADERS:
        parsed = parse_retry_after(headers.get(name))
        if parsed is not None:
            return parsed
    if body is not None:
        raw = body.get("retry_after")
        if isinstance(raw, int | float) and not isinstance(raw, bool):
            return max(0, int(raw))
    return 0


def classify_response(
    response: httpx.Response,
    api_error_prefix: str = DEFAULT_API_ERROR_PREFIX,
) -> ApiFailure | ValidationFailure | RateLimitFailure:
    """Classify a completed response with status >= 400.

    Args:
        response: The error response.
        api_error_prefix: Marker placed in front of generic API messages.

    Returns:
        The classification for the response.
    """
    status_code = response.status_code
    body = decode_body(response)
    message = extract_message(body, status_code)

    if status_code == HTTP_STATUS_UNPROCESSABLE_ENTITY:
        return ValidationFailure(
            message=message,
            field_errors=extract_field_errors(body, message),
        )

    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
        return RateLimitFailure(
            message=message,
            retry_after_seconds=_retry_after_seconds(response.headers, body),
            limit=_first_int_header(response.headers, RATE_LIMIT_LIMIT_HEADERS),
            remaining=_first_int_header(
                response.headers, RATE_LIMIT_REMAINING_HEADERS
            ),
            reset=_first_int_header(response.headers, RATE_LIMIT_RESET_HEADERS),
        )

    return ApiFailure(
        status_code=status_code,
        message=f"{api_error_prefix}{message}",
    )


def classify_transport_failure(failure: TransportFailure) -> NetworkFailure:
    """Classify a failure where no response was obtained."""
    return NetworkFailure(
        error_type=failure.error_type,
        description=failure.description or "Unknown transport failure",
    )
