"""Python client for the XGATE payment API."""

from xgate.client import XGateClient
from xgate.http import (
    ApiError,
    AuthenticationError,
    HttpConfig,
    NetworkError,
    RateLimitError,
    RequestPipeline,
    ResponseDecodeError,
    SDK_VERSION,
    ValidationError,
    XGateError,
)
from xgate.settings import XGateSettings


__version__ = SDK_VERSION

__all__ = [
    "XGateClient",
    "XGateSettings",
    "HttpConfig",
    "RequestPipeline",
    "XGateError",
    "NetworkError",
    "ApiError",
    "ValidationError",
    "RateLimitError",
    "AuthenticationError",
    "ResponseDecodeError",
    "__version__",
]
