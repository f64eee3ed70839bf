"""HTTP transport core with typed errors, retries, and masking.

This module provides the request-execution pipeline with:
- Header merging with a bearer token that callers cannot override
- Classification of failures into network, API, validation and rate-limit
- Retry policy with exponential backoff and bounded Retry-After waits
- Masking of secrets in debug logs
- User-facing error messages
- Metrics collection for observability
"""

from xgate.http.classifier import (
    FIELD_ERROR_MATCHERS,
    classify_response,
    classify_transport_failure,
    extract_field_errors,
    extract_message,
    parse_retry_after,
)
from xgate.http.config import HttpConfig
from xgate.http.constants import (
    DEFAULT_API_ERROR_PREFIX,
    DEFAULT_USER_AGENT,
    GENERAL_FIELD,
    MAX_RETRY_AFTER_SECONDS,
    SDK_VERSION,
)
from xgate.http.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NetworkErrorType,
    RateLimitError,
    ResponseDecodeError,
    ValidationError,
    XGateError,
)
from xgate.http.messages import (
    aggregate_errors,
    format_api_error,
    format_network_error,
    format_validation_error,
    log_error,
    user_friendly_message,
)
from xgate.http.metrics import HttpMetrics
from xgate.http.models import (
    ApiFailure,
    AttemptContext,
    ErrorClassification,
    HttpMethod,
    NetworkFailure,
    RateLimitFailure,
    RequestSpec,
    RetryDecision,
    ValidationFailure,
)
from xgate.http.pipeline import BackoffSleeper, RequestPipeline, merge_headers
from xgate.http.redact import (
    MASKED_VALUE,
    is_sensitive_field,
    is_sensitive_header,
    mask_body,
    mask_headers,
    redact_url_credentials,
    sanitize_message,
)
from xgate.http.retry import RetryPolicy
from xgate.http.state_machine import (
    PipelineState,
    PipelineStateError,
    PipelineStateMachine,
)
from xgate.http.transport import HttpxTransport, Transport, TransportFailure


__all__ = [
    # Pipeline
    "RequestPipeline",
    "BackoffSleeper",
    "merge_headers",
    "PipelineState",
    "PipelineStateError",
    "PipelineStateMachine",
    # Transport
    "Transport",
    "HttpxTransport",
    "TransportFailure",
    # Config
    "HttpConfig",
    "RetryPolicy",
    # Models
    "HttpMethod",
    "RequestSpec",
    "AttemptContext",
    "ErrorClassification",
    "NetworkFailure",
    "ApiFailure",
    "ValidationFailure",
    "RateLimitFailure",
    "RetryDecision",
    # Classification
    "classify_response",
    "classify_transport_failure",
    "extract_field_errors",
    "extract_message",
    "parse_retry_after",
    "FIELD_ERROR_MATCHERS",
    # Errors
    "XGateError",
    "NetworkError",
    "NetworkErrorType",
    "ApiError",
    "ValidationError",
    "RateLimitError",
    "AuthenticationError",
    "ResponseDecodeError",
    # Constants
    "SDK_VERSION",
    "DEFAULT_USER_AGENT",
    "DEFAULT_API_ERROR_PREFIX",
    "GENERAL_FIELD",
    "MAX_RETRY_AFTER_SECONDS",
    # Metrics
    "HttpMetrics",
    # Masking
    "MASKED_VALUE",
    "is_sensitive_field",
    "is_sensitive_header",
    "mask_body",
    "mask_headers",
    "redact_url_credentials",
    "sanitize_message",
    # User-facing messages
    "user_friendly_message",
    "aggregate_errors",
    "format_api_error",
    "format_network_error",
    "format_validation_error",
    "log_error",
]
