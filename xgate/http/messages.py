"""User-facing error messages for the typed errors.

Turns any error raised by the client into a short English sentence fit
for end users: personal data is scrubbed from upstream text and values of
sensitive fields are masked.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Literal

import structlog

from xgate.http.constants import (
    DEFAULT_API_ERROR_PREFIX,
    GENERAL_FIELD,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from xgate.http.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NetworkErrorType,
    RateLimitError,
    ValidationError,
)
from xgate.http.redact import MASKED_VALUE, is_sensitive_field, sanitize_message


logger = structlog.get_logger()

Severity = Literal["critical", "high", "medium", "low", "debug"]

VALIDATION_TEMPLATES: dict[str, str] = {
    "required": "The field '{field}' is required",
    "format": "The field '{field}' has invalid format",
    "type": "The field '{field}' must be of the correct type",
    "range": "The field '{field}' value is out of range",
    "pattern": "The field '{field}' doesn't match the required pattern",
    "email": "The field '{field}' must be a valid email address",
    "url": "The field '{field}' must be a valid URL",
    "numeric": "The field '{field}' must be numeric",
    "default": "Validation failed for field '{field}'",
}

API_TEMPLATES: dict[str, str] = {
    "server_error": (
        "Server error occurred. Please try again later. (Status: {status_code})"
    ),
    "rate_limit": (
        "Too many requests. Please wait before trying again. (Status: {status_code})"
    ),
    "validation": "Request validation failed: {api_message}",
    "unauthorized": "Authentication required. Please check your credentials.",
    "forbidden": "Access denied. You don't have permission for this operation.",
    "not_found": "The requested resource was not found.",
    "client_error": "Request error: {api_message} (Status: {status_code})",
}

NETWORK_TEMPLATES: dict[NetworkErrorType, str] = {
    NetworkErrorType.CONNECTION_TIMEOUT: (
        "Connection timeout. Please check your internet connection."
    ),
    NetworkErrorType.READ_TIMEOUT: (
        "Request timeout. The server took too long to respond."
    ),
    NetworkErrorType.CONNECTION_REFUSED: (
        "Connection refused. The service may be unavailable."
    ),
    NetworkErrorType.DNS_RESOLUTION: (
        "DNS resolution failed. Please check the server address."
    ),
    NetworkErrorType.SSL: (
        "SSL error. Please verify the certificate and security settings."
    ),
    NetworkErrorType.CONNECTION_FAILED: (
        "Network unreachable. Please check your connection."
    ),
}
NETWORK_DEFAULT_TEMPLATE = "Network error: {original_message}"

NO_ERRORS = "No errors found"
MULTIPLE_ERRORS_HEADER = "Found {count} error(s):"
MORE_ERRORS = "... and {count} more error(s)"
CONTEXT_DETAILS = "Additional details: {details}"

# Maximum characters of a sensitive value replaced by asterisks
_MASK_WIDTH = 8

_SEVERITY_METHODS: dict[str, str] = {
    "critical": "critical",
    "high": "error",
    "medium": "warning",
    "low": "info",
    "debug": "debug",
}


def mask_field_value(field: str, value: object) -> object:
    """Hide the value of a sensitive field, keeping a hint of its length."""
    if isinstance(value, str) and is_sensitive_field(field):
        return "*" * min(len(value), _MASK_WIDTH)
    return value


def format_validation_error(
    field: str, rule: str, value: object = None, **parameters: Any
) -> str:
    """Format the message for one failed validation rule.

    Args:
        field: Field that failed.
        rule: Rule name (``required``, ``email``, ...); unknown rules use
            the generic template.
        value: Offending value, masked when the field is sensitive.
        **parameters: Extra placeholders used by the template.

    Returns:
        The formatted message.
    """
    template = VALIDATION_TEMPLATES.get(rule, VALIDATION_TEMPLATES["default"])
    return template.format(
        field=field, value=mask_field_value(field, value), **parameters
    )


def format_api_error(
    status_code: int, api_message: str, error_code: str | None = None
) -> str:
    """Format an API failure by status family.

    Args:
        status_code: HTTP status code.
        api_message: Message reported by the API.
        error_code: Upstream error code, if any.

    Returns:
        The formatted message.
    """
    if status_code >= HTTP_STATUS_SERVER_ERROR_MIN:
        key = "server_error"
    elif status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
        key = "rate_limit"
    elif status_code == HTTP_STATUS_UNPROCESSABLE_ENTITY:
        key = "validation"
    elif status_code == HTTP_STATUS_UNAUTHORIZED:
        key = "unauthorized"
    elif status_code == HTTP_STATUS_FORBIDDEN:
        key = "forbidden"
    elif status_code == HTTP_STATUS_NOT_FOUND:
        key = "not_found"
    else:
        key = "client_error"
    return API_TEMPLATES[key].format(
        status_code=status_code,
        api_message=sanitize_message(api_message),
        error_code=error_code or "",
    )


def format_network_error(error_type: NetworkErrorType, original_message: str) -> str:
    """Format a network failure by type."""
    template = NETWORK_TEMPLATES.get(error_type, NETWORK_DEFAULT_TEMPLATE)
    return template.format(original_message=sanitize_message(original_message))


def _validation_message(error: ValidationError) -> str:
    errors = error.field_errors
    if len(errors) == 1:
        ((field, messages),) = errors.items()
        if len(messages) == 1:
            detail = sanitize_message(messages[0])
            if field == GENERAL_FIELD:
                return detail
            prefix = VALIDATION_TEMPLATES["default"].format(field=field)
            return f"{prefix}: {detail}"
    return sanitize_message(error.message)


def _rate_limit_message(error: RateLimitError) -> str:
    message = API_TEMPLATES["rate_limit"].format(
        status_code=HTTP_STATUS_TOO_MANY_REQUESTS
    )
    if error.has_retry_after:
        message += f" Try again in {error.retry_after} seconds."
    return message


def _context_details(context: Mapping[str, Any]) -> str:
    details = [
        f"{key}: {MASKED_VALUE}"
        if is_sensitive_field(key)
        else f"{key}: {sanitize_message(str(value))}"
        for key, value in context.items()
        if isinstance(value, str | int | float | bool)
    ]
    if not details:
        return ""
    return "\n" + CONTEXT_DETAILS.format(details=", ".join(details))


def user_friendly_message(error: BaseException, include_details: bool = False) -> str:
    """Build an end-user message for any error.

    Args:
        error: Error to describe; non-client errors get their sanitized text.
        include_details: Append scalar values from the error context.

    Returns:
        The message.
    """
    if isinstance(error, ValidationError):
        message = _validation_message(error)
    elif isinstance(error, RateLimitError):
        message = _rate_limit_message(error)
    elif isinstance(error, ApiError):
        message = format_api_error(
            error.status_code,
            error.message.removeprefix(DEFAULT_API_ERROR_PREFIX),
            error.api_error_code,
        )
    elif isinstance(error, NetworkError):
        message = format_network_error(error.error_type, error.message)
    elif isinstance(error, AuthenticationError):
        message = API_TEMPLATES["unauthorized"]
    else:
        message = sanitize_message(str(error))

    context = getattr(error, "context", None)
    if include_details and isinstance(context, Mapping):
        message += _context_details(context)
    return message


def aggregate_errors(errors: Sequence[BaseException], max_display: int = 5) -> str:
    """Summarize several errors as a numbered list.

    Args:
        errors: Errors to summarize.
        max_display: Number of errors listed before the remainder is counted.

    Returns:
        The summary.
    """
    if not errors:
        return NO_ERRORS
    lines = [MULTIPLE_ERRORS_HEADER.format(count=len(errors))]
    lines.extend(
        f"  {i}. {user_friendly_message(error)}"
        for i, error in enumerate(errors[:max_display], start=1)
    )
    if len(errors) > max_display:
        lines.append(MORE_ERRORS.format(count=len(errors) - max_display))
    return "\n".join(lines)


def log_error(
    error: BaseException, severity: Severity = "medium", **context: Any
) -> None:
    """Log an error with its user-facing message at a severity-mapped level.

    Args:
        error: Error to log.
        severity: ``critical``, ``high``, ``medium``, ``low`` or ``debug``.
        **context: Extra key/value pairs for the log event.
    """
    log = logger.bind(component="errors")
    method = getattr(log, _SEVERITY_METHODS.get(severity, "error"))
    fields: dict[str, Any] = {
        "error_type": type(error).__name__,
        "message": user_friendly_message(error),
        **context,
    }
    if isinstance(error, ApiError):
        fields["status_code"] = error.status_code
    method("client_error_logged", **fields)
