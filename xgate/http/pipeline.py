"""Request pipeline: header merging, auth injection, retries, typed errors.

Each ``execute`` call runs its own attempt loop on the calling thread.
The only state shared between concurrent calls is the immutable
configuration, the pooled transport and the backoff sleeper.
"""

import json as jsonlib
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import httpx
import structlog

from xgate.http.classifier import classify_response, classify_transport_failure
from xgate.http.config import HttpConfig
from xgate.http.constants import HTTP_STATUS_ERROR_MIN, JSON_CONTENT_TYPE
from xgate.http.errors import (
    ApiError,
    NetworkError,
    RateLimitError,
    ValidationError,
    XGateError,
)
from xgate.http.metrics import HttpMetrics
from xgate.http.models import (
    ApiFailure,
    AttemptContext,
    HttpMethod,
    NetworkFailure,
    RateLimitFailure,
    RequestSpec,
    RetryDecision,
    ValidationFailure,
)
from xgate.http.redact import mask_body, mask_headers, redact_url_credentials
from xgate.http.state_machine import PipelineStateMachine
from xgate.http.transport import HttpxTransport, Transport, TransportFailure


logger = structlog.get_logger()

TokenProvider = Callable[[], str | None]
Classification = NetworkFailure | ApiFailure | ValidationFailure | RateLimitFailure


class Sleeper(Protocol):
    """Blocking wait used between attempts."""

    def sleep(self, seconds: float) -> bool:
        """Wait for ``seconds``; return False if the wait was aborted."""
        ...

    def abort(self) -> None:
        """Wake every wait pending right now."""
        ...


class BackoffSleeper:
    """Interruptible sleep with one ``threading.Event`` per wait.

    ``abort`` wakes only the waits pending at that moment, so calls
    started afterwards back off and retry normally.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[threading.Event] = set()

    @property
    def pending(self) -> int:
        """Number of waits currently blocked."""
        with self._lock:
            return len(self._pending)

    def sleep(self, seconds: float) -> bool:
        """Block for ``seconds`` unless aborted.

        Returns:
            True if the full delay elapsed, False if aborted.
        """
        if seconds <= 0:
            return True
        event = threading.Event()
        with self._lock:
            self._pending.add(event)
        try:
            return not event.wait(seconds)
        finally:
            with self._lock:
                self._pending.discard(event)

    def abort(self) -> None:
        with self._lock:
            for event in self._pending:
                event.set()


def merge_headers(*layers: Mapping[str, str]) -> dict[str, str]:
    """Merge header mappings, later layers winning.

    Names compare case-insensitively; the spelling of the winning layer
    is kept.
    """
    merged: dict[str, str] = {}
    spelling: dict[str, str] = {}
    for layer in layers:
        for name, value in layer.items():
            previous = spelling.get(name.lower())
            if previous is not None:
                del merged[previous]
            merged[name] = value
            spelling[name.lower()] = name
    return merged


class RequestPipeline:
    """Executes requests against the API with retry and typed errors.

    Header precedence, lowest first: library defaults, configured custom
    headers, per-call headers, bearer token. The token therefore can never
    be overridden by a caller.
    """

    def __init__(
        self,
        config: HttpConfig,
        transport: Transport | None = None,
        token_provider: TokenProvider | None = None,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Immutable transport configuration.
            transport: Transport adapter; an ``HttpxTransport`` by default.
            token_provider: Returns the current bearer token, or None.
            sleeper: Wait used between attempts.
        """
        self._config = config
        self._transport = transport or HttpxTransport(config)
        self._token_provider = token_provider
        self._sleeper = sleeper or BackoffSleeper()
        self._metrics = HttpMetrics.get_instance()
        self._default_headers: dict[str, str] = {
            "Accept": JSON_CONTENT_TYPE,
            "Content-Type": JSON_CONTENT_TYPE,
            "User-Agent": config.user_agent,
        }
        self._log = logger.bind(component="http")
        if config.debug_mode and config.proxy_url:
            self._log.debug(
                "proxy_configured", proxy=redact_url_credentials(config.proxy_url)
            )

    @property
    def config(self) -> HttpConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def default_headers(self) -> dict[str, str]:
        """Get a copy of the library default headers."""
        return dict(self._default_headers)

    def set_default_header(self, name: str, value: str) -> None:
        self._default_headers = merge_headers(self._default_headers, {name: value})

    def remove_default_header(self, name: str) -> None:
        self._default_headers = {
            k: v for k, v in self._default_headers.items() if k.lower() != name.lower()
        }

    def set_token_provider(self, token_provider: TokenProvider | None) -> None:
        self._token_provider = token_provider

    def build_headers(
        self,
        call_headers: Mapping[str, str] | None = None,
        token: str | None = None,
    ) -> dict[str, str]:
        """Merge headers for one attempt in precedence order.

        Args:
            call_headers: Per-call header overrides.
            token: Bearer token to inject, if any.

        Returns:
            The merged headers.
        """
        auth = {"Authorization": f"Bearer {token}"} if token else {}
        return merge_headers(
            self._default_headers,
            self._config.custom_headers,
            call_headers or {},
            auth,
        )

    def execute(
        self,
        method: HttpMethod | str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        authenticated: bool = True,
        deadline_seconds: float | None = None,
    ) -> httpx.Response:
        """Execute a request, retrying transient failures.

        Args:
            method: HTTP method.
            path: Path relative to the configured base URL.
            params: Query string parameters.
            json: JSON payload.
            headers: Per-call header overrides.
            authenticated: Inject the bearer token when one is available.
            deadline_seconds: Overall budget; no retry sleep may overrun it.

        Returns:
            The first response with status < 400.

        Raises:
            ValidationError: On 422.
            RateLimitError: On 429 that is not (or no longer) retried.
            ApiError: On any other status >= 400 once retries are exhausted.
            NetworkError: When no response could be obtained.
        """
        request = RequestSpec(
            method=HttpMethod(method.upper()),
            path=path,
            params=dict(params) if params is not None else None,
            json_body=json,
            headers=dict(headers or {}),
        )
        request_id = uuid.uuid4().hex[:12]
        log = self._log.bind(
            request_id=request_id, method=request.method.value, path=request.path
        )
        machine = PipelineStateMachine(request_id)
        context = AttemptContext()
        max_attempts = self._config.max_retries + 1

        try:
            while context.attempt < max_attempts:
                attempt = context.next_attempt()
                machine.to_attempting()

                token = None
                if authenticated and self._token_provider is not None:
                    token = self._token_provider()
                prepared = request.with_headers(
                    self.build_headers(request.headers, token)
                )

                response, classification = self._send_once(prepared, log, attempt)
                if classification is None and response is not None:
                    machine.to_succeeded()
                    return response

                context.last_classification = classification
                decision = self._config.retry_policy.decide(
                    attempt, classification, self._config
                )
                if decision.should_retry and self._fits_deadline(
                    context, decision, deadline_seconds, log
                ):
                    machine.to_retrying()
                    self._metrics.record_retry()
                    self._log_retry(
                        log, classification, decision, attempt, max_attempts
                    )
                    if self._sleeper.sleep(decision.delay_ms / 1000.0):
                        continue
                    log.warning("retry_aborted", attempt=attempt)

                machine.to_failed()
                raise self._to_error(classification, response, request, attempt, log)

            # Never expected: the retry policy stops at the last attempt
            machine.to_failed()
            self._metrics.record_failure("network")
            raise NetworkError(
                "Unexpected end of request execution",
                attempts=context.attempt,
                context={"method": request.method.value, "path": request.path},
            )
        finally:
            self._metrics.record_duration(context.elapsed_seconds * 1000)

    def request(
        self, method: HttpMethod | str, path: str, **kwargs: Any
    ) -> httpx.Response:
        return self.execute(method, path, **kwargs)

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.execute(HttpMethod.GET, path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.execute(HttpMethod.POST, path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.execute(HttpMethod.PUT, path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.execute(HttpMethod.PATCH, path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.execute(HttpMethod.DELETE, path, **kwargs)

    def abort_waits(self) -> None:
        """Wake every pending backoff; interrupted calls raise their last error.

        Calls that start later are unaffected.
        """
        self._sleeper.abort()

    def close(self) -> None:
        """Abort pending waits and release the transport."""
        self.abort_waits()
        self._transport.close()

    def _send_once(
        self,
        request: RequestSpec,
        log: structlog.stdlib.BoundLogger,
        attempt: int,
    ) -> tuple[httpx.Response | None, Classification | None]:
        """Execute a single transport call and classify the outcome."""
        debug = self._config.debug_mode
        start_time_ns = time.perf_counter_ns()

        if debug:
            body = (
                jsonlib.dumps(request.json_body, ensure_ascii=False)
                if request.json_body is not None
                else ""
            )
            log.debug(
                "http_request",
                attempt=attempt,
                params=request.params,
                headers=mask_headers(request.headers),
                body=mask_body(body),
            )

        try:
            response = self._transport.send(
                request, timeout=float(self._config.timeout_seconds)
            )
        except TransportFailure as e:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            log.warning(
                "http_transport_failure",
                attempt=attempt,
                error_type=e.error_type.value,
                error=e.description,
                duration_ms=round(duration_ms, 2),
            )
            return None, classify_transport_failure(e)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_request(response.status_code)

        if debug:
            log.debug(
                "http_response",
                attempt=attempt,
                status_code=response.status_code,
                reason_phrase=response.reason_phrase,
                headers=mask_headers(dict(response.headers)),
                body=mask_body(response.text),
                duration_ms=round(duration_ms, 2),
            )

        if response.status_code < HTTP_STATUS_ERROR_MIN:
            return response, None
        return response, classify_response(response, self._config.api_error_prefix)

    def _fits_deadline(
        self,
        context: AttemptContext,
        decision: RetryDecision,
        deadline_seconds: float | None,
        log: structlog.stdlib.BoundLogger,
    ) -> bool:
        if deadline_seconds is None:
            return True
        projected = context.elapsed_seconds + decision.delay_ms / 1000.0
        if projected < deadline_seconds:
            return True
        log.info(
            "retry_skipped_deadline",
            attempt=context.attempt,
            delay_ms=decision.delay_ms,
            deadline_seconds=deadline_seconds,
        )
        return False

    def _log_retry(
        self,
        log: structlog.stdlib.BoundLogger,
        classification: Classification,
        decision: RetryDecision,
        attempt: int,
        max_attempts: int,
    ) -> None:
        if isinstance(classification, RateLimitFailure):
            log.info(
                "rate_limited",
                attempt=attempt,
                max_attempts=max_attempts,
                retry_after=classification.retry_after_seconds,
            )
            return
        log.warning(
            "retry_scheduled",
            attempt=attempt,
            max_attempts=max_attempts,
            kind=classification.kind,
            delay_ms=decision.delay_ms,
        )

    def _to_error(
        self,
        classification: Classification,
        response: httpx.Response | None,
        request: RequestSpec,
        attempts: int,
        log: structlog.stdlib.BoundLogger,
    ) -> XGateError:
        """Map the final classification to the typed error raised to callers."""
        context: dict[str, Any] = {
            "method": request.method.value,
            "path": request.path,
            "attempts": attempts,
        }
        self._metrics.record_failure(classification.kind)

        error: XGateError
        if isinstance(classification, ValidationFailure):
            error = ValidationError(
                f"Validation failed: {classification.message}",
                classification.field_errors,
                response=response,
                context=context,
            )
        elif isinstance(classification, RateLimitFailure):
            error = RateLimitError(
                f"Rate limit exceeded: {classification.message}",
                retry_after=classification.retry_after_seconds,
                limit=classification.limit,
                remaining=classification.remaining,
                reset=classification.reset,
                response=response,
                context=context,
            )
        elif isinstance(classification, ApiFailure):
            error = ApiError(
                classification.message,
                classification.status_code,
                response=response,
                context=context,
            )
        else:
            error = NetworkError(
                f"Network error after {attempts} attempt(s): "
                f"{classification.description}",
                error_type=classification.error_type,
                attempts=attempts,
                context=context,
            )

        log.warning(
            "http_request_failed",
            kind=classification.kind,
            status_code=getattr(classification, "status_code", None),
            attempts=attempts,
            error=error.message,
        )
        return error
