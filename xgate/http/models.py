"""Data models for the request pipeline."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from xgate.http.constants import (
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from xgate.http.errors import NetworkErrorType


class HttpMethod(str, Enum):
    """HTTP methods accepted by the pipeline."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RequestSpec(BaseModel):
    """A request as handed to the transport.

    Immutable; per-attempt header augmentation goes through
    ``with_headers`` and never touches caller-supplied data.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: HttpMethod
    path: Annotated[str, Field(min_length=1)]
    params: dict[str, Any] | None = Field(
        default=None, description="Query string parameters"
    )
    json_body: Any = Field(default=None, description="JSON payload")
    headers: dict[str, str] = Field(default_factory=dict)

    def with_headers(self, headers: dict[str, str]) -> "RequestSpec":
        """Return a copy carrying the given headers."""
        return self.model_copy(update={"headers": dict(headers)})


class NetworkFailure(BaseModel):
    """No response was obtained."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["network"] = "network"
    error_type: NetworkErrorType = NetworkErrorType.UNKNOWN
    description: Annotated[str, Field(min_length=1)]


class ApiFailure(BaseModel):
    """Response obtained with an error status not otherwise refined."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["api"] = "api"
    status_code: Annotated[int, Field(ge=400)]
    message: Annotated[str, Field(min_length=1)]


class ValidationFailure(BaseModel):
    """Refinement of ``ApiFailure`` for 422 responses."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["validation"] = "validation"
    status_code: Literal[422] = HTTP_STATUS_UNPROCESSABLE_ENTITY
    message: Annotated[str, Field(min_length=1)]
    field_errors: dict[str, list[str]]


class RateLimitFailure(BaseModel):
    """Refinement of ``ApiFailure`` for 429 responses."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["rate_limit"] = "rate_limit"
    status_code: Literal[429] = HTTP_STATUS_TOO_MANY_REQUESTS
    message: Annotated[str, Field(min_length=1)]
    retry_after_seconds: Annotated[int, Field(ge=0)] = 0
    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None


ErrorClassification = Annotated[
    NetworkFailure | ApiFailure | ValidationFailure | RateLimitFailure,
    Field(discriminator="kind"),
]


class RetryDecision(BaseModel):
    """Outcome of consulting the retry policy for one failed attempt."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    should_retry: bool
    delay_ms: Annotated[int, Field(ge=0)] = 0

    @classmethod
    def stop(cls) -> "RetryDecision":
        return cls(should_retry=False, delay_ms=0)

    @classmethod
    def after(cls, delay_ms: int) -> "RetryDecision":
        return cls(should_retry=True, delay_ms=delay_ms)


@dataclass
class AttemptContext:
    """Bookkeeping for one ``execute`` call.

    Attributes:
        attempt: Current attempt number (1-based).
        started_at: Monotonic timestamp of pipeline entry.
        last_classification: Classification of the most recent failure.
    """

    attempt: int = 0
    started_at: float = field(default_factory=time.monotonic)
    last_classification: (
        NetworkFailure | ApiFailure | ValidationFailure | RateLimitFailure | None
    ) = None

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since the pipeline was entered."""
        return time.monotonic() - self.started_at

    def next_attempt(self) -> int:
        """Advance to the next attempt and return its number."""
        self.attempt += 1
        return self.attempt
