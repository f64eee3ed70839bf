"""HTTP constants for the transport core.

Centralizes status codes and wire defaults shared across modules.
"""

SDK_VERSION = "1.0.0"
DEFAULT_USER_AGENT = f"XGATE-Python-SDK/{SDK_VERSION}"
DEFAULT_BASE_URL = "https://api.xgate.global"

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_ERROR_MIN = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVICE_UNAVAILABLE = 503
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Default headers sent with every request (lowest precedence)
JSON_CONTENT_TYPE = "application/json"

# Marker placed in front of every API-originated error message
DEFAULT_API_ERROR_PREFIX = "API error: "

# Field name used when a validation failure has no per-field breakdown
GENERAL_FIELD = "_general"

# Maximum time (seconds) the pipeline will honor a Retry-After for
MAX_RETRY_AFTER_SECONDS = 60

# Exponential backoff: 1s, 2s, 4s, 8s...
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_EXPONENTIAL_BASE = 2.0

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_RETRIES = 3
