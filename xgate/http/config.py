"""Configuration model for the transport core."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xgate.http.constants import (
    DEFAULT_API_ERROR_PREFIX,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from xgate.http.retry import RetryPolicy


class HttpConfig(BaseModel):
    """Immutable configuration consumed by the request pipeline.

    ``max_retries`` bounds total attempts to ``max_retries + 1``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Annotated[str, Field(min_length=1)] = DEFAULT_BASE_URL
    timeout_seconds: Annotated[int, Field(ge=1, le=300)] = DEFAULT_TIMEOUT_SECONDS
    max_retries: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_RETRIES
    debug_mode: bool = False
    custom_headers: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Headers added to every request (read-only)",
    )
    proxy_url: str | None = None
    proxy_auth: str | None = Field(default=None, description="user:pass")
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    api_error_prefix: str = DEFAULT_API_ERROR_PREFIX
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("custom_headers")
    @classmethod
    def validate_no_auth_headers(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Reject credential headers and freeze the mapping."""
        forbidden = {"authorization", "cookie", "x-api-key"}
        for key in v:
            if key.lower() in forbidden:
                msg = (
                    f"Header '{key}' must not be set as a custom header; "
                    "credentials come from the authentication manager"
                )
                raise ValueError(msg)
        return MappingProxyType(dict(v))

    @field_validator("proxy_auth")
    @classmethod
    def validate_proxy_auth(cls, v: str | None) -> str | None:
        """Ensure proxy credentials look like ``user:pass``."""
        if v is not None and ":" not in v:
            msg = "proxy_auth must be in 'user:pass' form"
            raise ValueError(msg)
        return v

    @property
    def proxy_credentials(self) -> tuple[str, str] | None:
        """Split ``proxy_auth`` into a (user, password) pair."""
        if not self.proxy_auth:
            return None
        user, _, password = self.proxy_auth.partition(":")
        return user, password
