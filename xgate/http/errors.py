"""Typed errors raised by the transport core.

Every failure that leaves the request pipeline is one of these. Validation
and rate-limit errors refine ``ApiError`` so callers catching the general
API failure still see them.
"""

import json
import time
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx

from xgate.http.constants import (
    GENERAL_FIELD,
    HTTP_STATUS_ERROR_MIN,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)


class NetworkErrorType(str, Enum):
    """Classification of failures where no response was obtained.

    - CONNECTION_TIMEOUT: Timed out while connecting
    - READ_TIMEOUT: Connected but the response took too long
    - TIMEOUT: Any other timeout (write, pool)
    - CONNECTION_REFUSED: Server actively refused the connection
    - DNS_RESOLUTION: Host name could not be resolved
    - SSL: Certificate or handshake failure
    - PROXY: Proxy rejected or failed the request
    - CONNECTION_FAILED: Connection could not be established
    - DECODING: Response body could not be decoded (bad content encoding)
    - TOO_MANY_REDIRECTS: Redirect limit exceeded
    - UNKNOWN: Unclassified transport failure
    """

    CONNECTION_TIMEOUT = "connection_timeout"
    READ_TIMEOUT = "read_timeout"
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    DNS_RESOLUTION = "dns_resolution"
    SSL = "ssl"
    PROXY = "proxy"
    CONNECTION_FAILED = "connection_failed"
    DECODING = "decoding"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    UNKNOWN = "unknown"


_NETWORK_SUGGESTIONS: dict[NetworkErrorType, str] = {
    NetworkErrorType.CONNECTION_TIMEOUT: (
        "Check your internet connection and consider a larger timeout."
    ),
    NetworkErrorType.READ_TIMEOUT: (
        "The response took too long to arrive. Consider a larger timeout."
    ),
    NetworkErrorType.TIMEOUT: "The request timed out. Consider a larger timeout.",
    NetworkErrorType.CONNECTION_REFUSED: (
        "The server is unavailable. "
        "Check that the service is up and the URL is correct."
    ),
    NetworkErrorType.DNS_RESOLUTION: (
        "The server name could not be resolved. Check the URL and your DNS settings."
    ),
    NetworkErrorType.SSL: (
        "SSL/TLS negotiation failed. Check that the certificate is valid and trusted."
    ),
    NetworkErrorType.PROXY: "The proxy failed the request. Check the proxy settings.",
    NetworkErrorType.CONNECTION_FAILED: (
        "The network or host is unreachable. Check connectivity and firewall rules."
    ),
    NetworkErrorType.DECODING: (
        "The response body was corrupted in transit. Try again or disable compression."
    ),
    NetworkErrorType.TOO_MANY_REDIRECTS: (
        "The server redirected too many times. Check the base URL."
    ),
    NetworkErrorType.UNKNOWN: (
        "Unknown network error. Check your internet connection and try again."
    ),
}


class XGateError(Exception):
    """Base exception for all client errors.

    Provides structured error information for logging and reporting.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            context: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }


class NetworkError(XGateError):
    """No response was obtained (connection, DNS, timeout)."""

    def __init__(
        self,
        message: str,
        error_type: NetworkErrorType = NetworkErrorType.UNKNOWN,
        attempts: int = 0,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the network error.

        Args:
            message: Human-readable error message.
            error_type: Classification of the transport failure.
            attempts: Number of transport calls made before giving up.
            context: Additional structured error details.
        """
        super().__init__(message, context)
        self.error_type = error_type
        self.attempts = attempts

    @property
    def is_timeout(self) -> bool:
        """Check if the failure was any kind of timeout."""
        return self.error_type in (
            NetworkErrorType.CONNECTION_TIMEOUT,
            NetworkErrorType.READ_TIMEOUT,
            NetworkErrorType.TIMEOUT,
        )

    @property
    def suggestion(self) -> str:
        """Get a resolution hint for the failure type."""
        return _NETWORK_SUGGESTIONS[self.error_type]

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary, including network details."""
        data = super().to_dict()
        data["error_type"] = self.error_type.value
        data["attempts"] = self.attempts
        return data


class ApiError(XGateError):
    """A response was obtained with status >= 400.

    Attributes:
        status_code: HTTP status code of the response.
        response: The response itself, when available.
        error_data: Decoded JSON object body, or None.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response: httpx.Response | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code
        self.response = response
        self.error_data = _decode_error_data(response)

    @property
    def response_body(self) -> str:
        """Get the raw response body text."""
        if self.response is None:
            return ""
        return self.response.text

    @property
    def api_error_code(self) -> str | None:
        """Get the upstream ``code`` field, if the body carried one."""
        if self.error_data is None:
            return None
        code = self.error_data.get("code")
        return str(code) if code is not None else None

    @property
    def is_client_error(self) -> bool:
        return HTTP_STATUS_ERROR_MIN <= self.status_code < HTTP_STATUS_SERVER_ERROR_MIN

    @property
    def is_server_error(self) -> bool:
        return (
            HTTP_STATUS_SERVER_ERROR_MIN
            <= self.status_code
            < HTTP_STATUS_SERVER_ERROR_MAX
        )

    @property
    def is_authentication_error(self) -> bool:
        return self.status_code == HTTP_STATUS_UNAUTHORIZED

    @property
    def is_authorization_error(self) -> bool:
        return self.status_code == HTTP_STATUS_FORBIDDEN

    @property
    def is_not_found(self) -> bool:
        return self.status_code == HTTP_STATUS_NOT_FOUND

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary, including response details."""
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["api_error_code"] = self.api_error_code
        return data


class ValidationError(ApiError):
    """The API rejected the payload (422) with per-field messages."""

    def __init__(
        self,
        message: str,
        field_errors: Mapping[str, list[str]],
        response: httpx.Response | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the validation error.

        Args:
            message: Human-readable error message.
            field_errors: Field name to ordered list of messages.
            response: The 422 response.
            context: Additional structured error details.
        """
        super().__init__(message, HTTP_STATUS_UNPROCESSABLE_ENTITY, response, context)
        self.field_errors = {name: list(msgs) for name, msgs in field_errors.items()}

    @property
    def failed_field(self) -> str | None:
        """Get the first field reported as invalid, ignoring general errors."""
        for name in self.field_errors:
            if name != GENERAL_FIELD:
                return name
        return None

    def get_field_errors(self, field: str) -> list[str]:
        return list(self.field_errors.get(field, []))

    def first_field_error(self, field: str) -> str | None:
        errors = self.field_errors.get(field)
        return errors[0] if errors else None

    def has_field_error(self, field: str) -> bool:
        return bool(self.field_errors.get(field))

    def all_errors(self) -> list[str]:
        """Flatten field errors into ``"field: message"`` strings."""
        return [
            f"{name}: {msg}" for name, msgs in self.field_errors.items() for msg in msgs
        ]

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_errors"] = {k: list(v) for k, v in self.field_errors.items()}
        return data


class RateLimitError(ApiError):
    """The API throttled the caller (429)."""

    def __init__(
        self,
        message: str,
        retry_after: int = 0,
        limit: int | None = None,
        remaining: int | None = None,
        reset: int | None = None,
        response: httpx.Response | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the rate-limit error.

        Args:
            message: Human-readable error message.
            retry_after: Seconds the server asked us to wait (0 if unknown).
            limit: Request quota, if advertised.
            remaining: Requests left in the window, if advertised.
            reset: Window reset timestamp, if advertised.
            response: The 429 response.
            context: Additional structured error details.
        """
        super().__init__(message, HTTP_STATUS_TOO_MANY_REQUESTS, response, context)
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining
        self.reset = reset

    @property
    def has_retry_after(self) -> bool:
        return self.retry_after > 0

    def is_limit_reset(self, now: float | None = None) -> bool:
        """Check if the advertised window reset time has passed."""
        if self.reset is None:
            return False
        return (time.time() if now is None else now) >= self.reset

    def seconds_until_reset(self, now: float | None = None) -> int:
        """Seconds until the window resets; 0 if past or unknown.

        Args:
            now: Current Unix time (defaults to ``time.time()``).
        """
        if self.reset is None:
            return 0
        current = time.time() if now is None else now
        return max(0, int(self.reset - current))

    @property
    def is_fully_exhausted(self) -> bool:
        """Check if the server reported no requests left in the window."""
        return self.remaining == 0

    @property
    def limit_usage_percentage(self) -> float | None:
        """Share of the quota already used, 0.0 to 100.0, if advertised."""
        if self.limit is None or self.remaining is None:
            return None
        if self.limit == 0:
            return 100.0
        return (self.limit - self.remaining) / self.limit * 100.0

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            retry_after=self.retry_after,
            limit=self.limit,
            remaining=self.remaining,
            reset=self.reset,
        )
        return data


class AuthenticationError(XGateError):
    """Raised by the authentication collaborator, never by the pipeline."""

    @classmethod
    def invalid_credentials(cls, email: str) -> "AuthenticationError":
        return cls(f"Invalid credentials for {email}", {"email": email})

    @classmethod
    def token_expired(cls) -> "AuthenticationError":
        return cls("Access token has expired")

    @classmethod
    def missing_token(cls) -> "AuthenticationError":
        return cls("No access token available; authenticate first")

    @classmethod
    def login_failed(cls, status_code: int, detail: str) -> "AuthenticationError":
        return cls(
            f"Login failed (HTTP {status_code}): {detail}",
            {"status_code": status_code},
        )


class ResponseDecodeError(XGateError):
    """A successful response body could not be decoded as JSON."""


def _decode_error_data(response: httpx.Response | None) -> dict[str, Any] | None:
    if response is None:
        return None
    try:
        data = json.loads(response.content or b"null")
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None
