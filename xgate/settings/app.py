"""Client settings powered by Pydantic BaseSettings."""

import re
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from xgate.http.config import HttpConfig
from xgate.http.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
)
from xgate.http.redact import MASKED_VALUE, redact_url_credentials


_API_KEY_PATTERN = re.compile(r"^[A-Za-z0-9]{32,}$")


class XGateSettings(BaseSettings):
    """Environment configuration for the client.

    Every field reads from an ``XGATE_``-prefixed environment variable
    (e.g. ``XGATE_BASE_URL``) or a ``.env`` file, and may be passed
    explicitly as a keyword argument.
    """

    model_config = SettingsConfigDict(
        env_prefix="XGATE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Never sent on the wire; requests authenticate with the bearer token
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    environment: Literal["development", "production"] = "production"
    timeout: Annotated[int, Field(ge=1, le=300)] = DEFAULT_TIMEOUT_SECONDS
    max_retries: Annotated[int, Field(ge=0, le=10)] = DEFAULT_MAX_RETRIES
    debug: bool = False
    log_file: str | None = None
    custom_headers: dict[str, str] = Field(default_factory=dict)
    proxy_url: str | None = None
    proxy_auth: str | None = None

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        """Validate API key format when one is provided."""
        if v is not None and not _API_KEY_PATTERN.match(v):
            msg = "API key must be at least 32 alphanumeric characters"
            raise ValueError(msg)
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure the base URL is an absolute http(s) URL."""
        if not re.match(r"^https?://[^\s/]+", v):
            msg = f"Invalid base URL: {v}"
            raise ValueError(msg)
        return v.rstrip("/")

    def is_production(self) -> bool:
        return self.environment == "production"

    def is_development(self) -> bool:
        return self.environment == "development"

    def masked_api_key(self) -> str | None:
        """Return the API key with only its first and last 4 characters shown."""
        if self.api_key is None:
            return None
        return f"{self.api_key[:4]}{MASKED_VALUE}{self.api_key[-4:]}"

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        """Dump the settings, masking the API key and proxy credentials.

        Args:
            include_secrets: Return secrets unmasked.
        """
        data = self.model_dump()
        if include_secrets:
            return data
        data["api_key"] = self.masked_api_key()
        if self.proxy_url is not None:
            data["proxy_url"] = redact_url_credentials(self.proxy_url)
        if self.proxy_auth is not None:
            data["proxy_auth"] = MASKED_VALUE
        return data

    def to_http_config(self) -> HttpConfig:
        """Build the immutable transport configuration."""
        return HttpConfig(
            base_url=self.base_url,
            timeout_seconds=self.timeout,
            max_retries=self.max_retries,
            debug_mode=self.debug,
            custom_headers=dict(self.custom_headers),
            proxy_url=self.proxy_url,
            proxy_auth=self.proxy_auth,
        )


def get_settings() -> XGateSettings:
    """Get a settings instance."""
    return XGateSettings()
