"""Retry decisions for failed attempts.

Rules, evaluated in order:
1. Attempts exhausted (``attempt >= max_retries + 1``): stop.
2. Network failure: retry with exponential backoff.
3. Rate limited: retry after exactly ``Retry-After`` seconds when it lies
   in ``(0, max_retry_after_seconds]``; otherwise surface immediately.
4. API failure with a retryable status (503): exponential backoff.
5. Anything else, validation included: stop.
"""

from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, ConfigDict, Field

from xgate.http.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_EXPONENTIAL_BASE,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
    MAX_RETRY_AFTER_SECONDS,
)
from xgate.http.models import (
    ApiFailure,
    NetworkFailure,
    RateLimitFailure,
    RetryDecision,
    ValidationFailure,
)


if TYPE_CHECKING:
    from xgate.http.config import HttpConfig


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ (attempt - 1))
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = (
        DEFAULT_EXPONENTIAL_BASE
    )
    retryable_statuses: tuple[int, ...] = (HTTP_STATUS_SERVICE_UNAVAILABLE,)
    max_retry_after_seconds: Annotated[int, Field(ge=1, le=3600)] = (
        MAX_RETRY_AFTER_SECONDS
    )

    def backoff_ms(self, attempt: int) -> int:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-based).

        Returns:
            Delay in milliseconds.
        """
        return int(self.base_delay_ms * (self.exponential_base ** (attempt - 1)))

    def decide(
        self,
        attempt: int,
        classification: NetworkFailure
        | ApiFailure
        | ValidationFailure
        | RateLimitFailure,
        config: "HttpConfig",
    ) -> RetryDecision:
        """Determine whether a failed attempt should be retried.

        Args:
            attempt: The attempt that just failed (1-based).
            classification: What went wrong.
            config: Transport configuration (supplies ``max_retries``).

        Returns:
            The retry decision.
        """
        if attempt >= config.max_retries + 1:
            return RetryDecision.stop()

        if isinstance(classification, NetworkFailure):
            return RetryDecision.after(self.backoff_ms(attempt))

        if isinstance(classification, RateLimitFailure):
            retry_after = classification.retry_after_seconds
            if 0 < retry_after <= self.max_retry_after_seconds:
                return RetryDecision.after(retry_after * 1000)
            return RetryDecision.stop()

        if isinstance(classification, ValidationFailure):
            return RetryDecision.stop()

        if classification.status_code in self.retryable_statuses:
            return RetryDecision.after(self.backoff_ms(attempt))

        return RetryDecision.stop()
