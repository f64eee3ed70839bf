"""Unit tests for the request pipeline."""

import json
import threading
import time
from collections.abc import Callable

import httpx
import pytest
from structlog.testing import capture_logs

from tests.helpers.http import (
    RecordingSleeper,
    ScriptedApi,
    fail,
    make_pipeline,
    reply,
)
from xgate.http.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NetworkErrorType,
    RateLimitError,
    ValidationError,
)
from xgate.http.metrics import HttpMetrics
from xgate.http.pipeline import BackoffSleeper, merge_headers
from xgate.http.retry import RetryPolicy


def wait_until(condition: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``condition`` until it holds or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            pytest.fail("condition not met in time")
        time.sleep(0.005)


class TestSuccess:
    """Tests for requests that succeed."""

    def test_first_response_below_400_returned(self) -> None:
        api = ScriptedApi([reply(200, json={"id": "abc"})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        response = pipeline.get("/customer/abc")

        assert response.status_code == 200
        assert response.json() == {"id": "abc"}
        assert api.call_count == 1
        assert sleeper.delays == []

    @pytest.mark.parametrize("status", [201, 204, 302])
    def test_non_error_statuses_returned(self, status: int) -> None:
        api = ScriptedApi([reply(status)])
        pipeline = make_pipeline(api)

        assert pipeline.get("/x").status_code == status

    def test_query_and_body_sent(self) -> None:
        api = ScriptedApi([reply(200, json={})])
        pipeline = make_pipeline(api)

        pipeline.post("/deposit", json={"amount": 10}, params={"currency": "BRL"})

        sent = api.requests[0]
        assert sent.method == "POST"
        assert sent.url.path == "/deposit"
        assert sent.url.params["currency"] == "BRL"
        assert json.loads(sent.content) == {"amount": 10}

    def test_lowercase_method_accepted(self) -> None:
        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api)

        pipeline.request("patch", "/x", json={"a": 1})

        assert api.requests[0].method == "PATCH"


class TestRetryScenarios:
    """End-to-end retry behavior."""

    def test_503_then_success(self) -> None:
        api = ScriptedApi([reply(503), reply(200, json={"ok": True})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        response = pipeline.get("/health")

        assert response.status_code == 200
        assert api.call_count == 2
        assert sleeper.delays == [1.0]

    def test_503_until_exhausted(self) -> None:
        api = ScriptedApi([reply(503, json={"message": "Maintenance"})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper, max_retries=2)

        with pytest.raises(ApiError) as exc_info:
            pipeline.get("/health")

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "API error: Maintenance"
        assert api.call_count == 3
        assert sleeper.delays == [1.0, 2.0]

    def test_validation_fails_immediately(self) -> None:
        api = ScriptedApi([reply(422, json={"errors": {"name": ["required"]}})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        with pytest.raises(ValidationError) as exc_info:
            pipeline.post("/customer", json={})

        error = exc_info.value
        assert error.field_errors == {"name": ["required"]}
        assert error.status_code == 422
        assert api.call_count == 1
        assert sleeper.delays == []

    def test_validation_error_is_api_error(self) -> None:
        api = ScriptedApi([reply(422, json={"message": "Bad"})])
        pipeline = make_pipeline(api)

        with pytest.raises(ApiError):
            pipeline.post("/customer", json={})

    def test_rate_limit_waits_retry_after(self) -> None:
        api = ScriptedApi(
            [reply(429, headers={"Retry-After": "2"}), reply(200, json={})]
        )
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        response = pipeline.get("/rates")

        assert response.status_code == 200
        assert api.call_count == 2
        assert sleeper.delays == [2.0]

    @pytest.mark.parametrize("retry_after", ["120", "0"])
    def test_rate_limit_outside_bound_fails_immediately(
        self, retry_after: str
    ) -> None:
        api = ScriptedApi([reply(429, headers={"Retry-After": retry_after})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        with pytest.raises(RateLimitError) as exc_info:
            pipeline.get("/rates")

        assert exc_info.value.retry_after == int(retry_after)
        assert exc_info.value.status_code == 429
        assert api.call_count == 1
        assert sleeper.delays == []

    def test_rate_limit_without_retry_after_fails(self) -> None:
        api = ScriptedApi([reply(429, json={"message": "Too many"})])
        pipeline = make_pipeline(api)

        with pytest.raises(RateLimitError) as exc_info:
            pipeline.get("/rates")

        assert exc_info.value.message == "Rate limit exceeded: Too many"
        assert not exc_info.value.has_retry_after

    def test_network_failure_backs_off_exponentially(self) -> None:
        api = ScriptedApi([fail(httpx.ConnectError, "[Errno 111] Connection refused")])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper, max_retries=3)

        with pytest.raises(NetworkError) as exc_info:
            pipeline.get("/x")

        error = exc_info.value
        assert error.error_type == NetworkErrorType.CONNECTION_REFUSED
        assert error.attempts == 4
        assert "Connection refused" in error.message
        assert api.call_count == 4
        assert sleeper.delays == [1.0, 2.0, 4.0]

    def test_network_then_success(self) -> None:
        api = ScriptedApi(
            [fail(httpx.ReadTimeout, "timed out"), reply(200, json={"ok": True})]
        )
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        assert pipeline.get("/x").json() == {"ok": True}
        assert sleeper.delays == [1.0]

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 500])
    def test_non_retryable_status_fails_once(self, status: int) -> None:
        api = ScriptedApi([reply(status, json={"message": "nope"})])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        with pytest.raises(ApiError) as exc_info:
            pipeline.get("/x")

        assert exc_info.value.status_code == status
        assert api.call_count == 1
        assert sleeper.delays == []

    def test_zero_retries_means_one_attempt(self) -> None:
        api = ScriptedApi([reply(503)])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper, max_retries=0)

        with pytest.raises(ApiError):
            pipeline.get("/x")

        assert api.call_count == 1
        assert sleeper.delays == []

    def test_error_keeps_response(self) -> None:
        api = ScriptedApi([reply(404, json={"message": "Missing", "code": "E404"})])
        pipeline = make_pipeline(api)

        with pytest.raises(ApiError) as exc_info:
            pipeline.get("/customer/unknown")

        error = exc_info.value
        assert error.response is not None
        assert error.api_error_code == "E404"
        assert error.context["path"] == "/customer/unknown"
        assert error.context["attempts"] == 1


class TestMalformedResponses:
    """Responses the HTTP engine cannot use still surface as typed errors."""

    def test_corrupt_gzip_body_is_network_error(self) -> None:
        api = ScriptedApi(
            [
                lambda request: httpx.Response(
                    200,
                    headers={"Content-Encoding": "gzip"},
                    content=b"not-gzip",
                    request=request,
                )
            ]
        )
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper, max_retries=1)

        with pytest.raises(NetworkError) as exc_info:
            pipeline.get("/x")

        assert exc_info.value.error_type == NetworkErrorType.DECODING
        assert api.call_count == 2
        assert sleeper.delays == [1.0]

    def test_status_above_599_is_api_error(self) -> None:
        api = ScriptedApi([reply(600, json={"message": "weird"})])
        pipeline = make_pipeline(api)

        with pytest.raises(ApiError) as exc_info:
            pipeline.get("/x")

        assert exc_info.value.status_code == 600
        assert exc_info.value.message == "API error: weird"
        assert api.call_count == 1


class TestHeaders:
    """Tests for header precedence and auth injection."""

    def test_default_headers_sent(self) -> None:
        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api)

        pipeline.get("/x")

        headers = api.requests[0].headers
        assert headers["accept"] == "application/json"
        assert headers["content-type"] == "application/json"
        assert headers["user-agent"] == "XGATE-Python-SDK/1.0.0"

    def test_precedence_and_token_wins(self) -> None:
        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(
            api,
            token_provider=lambda: "abc",
            custom_headers={"X-Tenant": "acme", "Content-Type": "text/plain"},
        )

        pipeline.get(
            "/x", headers={"Authorization": "Bearer forged", "X-Tenant": "call"}
        )

        headers = api.requests[0].headers
        assert headers["authorization"] == "Bearer abc"
        assert headers["content-type"] == "text/plain"
        assert headers["x-tenant"] == "call"

    def test_no_token_no_authorization(self) -> None:
        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api, token_provider=lambda: None)

        pipeline.get("/x")

        assert "authorization" not in api.requests[0].headers

    def test_unauthenticated_call_skips_token(self) -> None:
        calls: list[int] = []

        def provider() -> str:
            calls.append(1)
            return "abc"

        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api, token_provider=provider)

        pipeline.post("/auth/token", json={}, authenticated=False)

        assert "authorization" not in api.requests[0].headers
        assert calls == []

    def test_token_read_per_attempt(self) -> None:
        tokens = iter(["first", "second"])
        api = ScriptedApi([reply(503), reply(200)])
        pipeline = make_pipeline(api, token_provider=lambda: next(tokens))

        pipeline.get("/x")

        assert api.requests[0].headers["authorization"] == "Bearer first"
        assert api.requests[1].headers["authorization"] == "Bearer second"

    def test_token_provider_error_propagates(self) -> None:
        def provider() -> str:
            raise AuthenticationError.token_expired()

        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api, token_provider=provider)

        with pytest.raises(AuthenticationError):
            pipeline.get("/x")

        assert api.call_count == 0

    def test_caller_headers_not_mutated(self) -> None:
        api = ScriptedApi([reply(503), reply(200)])
        pipeline = make_pipeline(api, token_provider=lambda: "abc")
        headers = {"X-Trace": "1"}

        pipeline.get("/x", headers=headers)

        assert headers == {"X-Trace": "1"}

    def test_default_header_management(self) -> None:
        api = ScriptedApi([reply(200)])
        pipeline = make_pipeline(api)

        pipeline.set_default_header("accept", "text/csv")
        pipeline.remove_default_header("User-Agent")
        pipeline.get("/x")

        sent = api.requests[0].headers
        assert sent["accept"] == "text/csv"
        assert "User-Agent" not in pipeline.default_headers
        assert "accept" in pipeline.default_headers


class TestMergeHeaders:
    """Tests for merge_headers helper."""

    def test_later_layer_wins_case_insensitively(self) -> None:
        merged = merge_headers({"Content-Type": "a"}, {"content-type": "b"})

        assert merged == {"content-type": "b"}

    def test_inputs_untouched(self) -> None:
        first = {"A": "1"}
        second = {"a": "2"}

        merge_headers(first, second)

        assert first == {"A": "1"}
        assert second == {"a": "2"}


class TestDeadlineAndAbort:
    """Tests for deadline and cancellation of backoff waits."""

    def test_retry_skipped_when_deadline_too_close(self) -> None:
        api = ScriptedApi([reply(503)])
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(api, sleeper)

        with pytest.raises(ApiError):
            pipeline.get("/x", deadline_seconds=0.5)

        assert api.call_count == 1
        assert sleeper.delays == []

    def test_aborted_wait_raises_last_error(self) -> None:
        api = ScriptedApi([fail(httpx.ConnectError, "unreachable")])
        sleeper = RecordingSleeper(interrupted=True)
        pipeline = make_pipeline(api, sleeper)

        with pytest.raises(NetworkError):
            pipeline.get("/x")

        assert api.call_count == 1
        assert sleeper.delays == [1.0]

    def test_abort_waits_delegates_to_sleeper(self) -> None:
        sleeper = RecordingSleeper()
        pipeline = make_pipeline(ScriptedApi([reply(200)]), sleeper)

        pipeline.abort_waits()

        assert sleeper.abort_calls == 1

    def test_abort_interrupts_pending_call(self) -> None:
        api = ScriptedApi([reply(503)])
        sleeper = BackoffSleeper()
        pipeline = make_pipeline(
            api, sleeper, retry_policy=RetryPolicy(base_delay_ms=60000)
        )
        errors: list[Exception] = []

        def call() -> None:
            try:
                pipeline.get("/slow")
            except ApiError as e:
                errors.append(e)

        worker = threading.Thread(target=call)
        worker.start()
        wait_until(lambda: sleeper.pending == 1)
        pipeline.abort_waits()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert len(errors) == 1
        assert api.call_count == 1

    def test_calls_after_abort_still_retry(self) -> None:
        api = ScriptedApi([reply(503), reply(200)])
        pipeline = make_pipeline(
            api, BackoffSleeper(), retry_policy=RetryPolicy(base_delay_ms=1)
        )

        pipeline.abort_waits()
        response = pipeline.get("/later")

        assert response.status_code == 200
        assert api.call_count == 2


class TestBackoffSleeper:
    """Tests for BackoffSleeper."""

    def test_zero_delay_returns_immediately(self) -> None:
        assert BackoffSleeper().sleep(0) is True

    def test_abort_wakes_pending_wait(self) -> None:
        sleeper = BackoffSleeper()
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(sleeper.sleep(60)))
        worker.start()
        wait_until(lambda: sleeper.pending == 1)

        sleeper.abort()
        worker.join(timeout=5)

        assert results == [False]
        assert sleeper.pending == 0

    def test_abort_does_not_affect_later_waits(self) -> None:
        sleeper = BackoffSleeper()
        sleeper.abort()

        assert sleeper.sleep(0.001) is True


class TestMetrics:
    """Tests for pipeline metrics."""

    def test_counts_recorded(self) -> None:
        api = ScriptedApi([reply(503), reply(503), reply(200)])
        pipeline = make_pipeline(api)

        pipeline.get("/x")

        metrics = HttpMetrics.get_instance()
        assert metrics.http_requests_total == {503: 2, 200: 1}
        assert metrics.http_retry_total == 2
        assert metrics.http_failures_total == {}

    def test_failure_recorded_by_kind(self) -> None:
        api = ScriptedApi([reply(422, json={"errors": {"a": ["b"]}})])
        pipeline = make_pipeline(api)

        with pytest.raises(ValidationError):
            pipeline.post("/x", json={})

        assert HttpMetrics.get_instance().http_failures_total == {"validation": 1}


class TestDebugLogging:
    """Tests for masked debug logging."""

    def test_debug_logs_masked(self) -> None:
        api = ScriptedApi(
            [reply(200, json={"token": "server-secret"}, headers={"Set-Cookie": "s=1"})]
        )
        with capture_logs() as logs:
            pipeline = make_pipeline(
                api, token_provider=lambda: "abc", debug_mode=True
            )
            pipeline.post("/auth/token", json={"email": "a@b.c", "password": "pw"})

        request_log = next(e for e in logs if e["event"] == "http_request")
        response_log = next(e for e in logs if e["event"] == "http_response")

        assert request_log["headers"]["Authorization"] == "***"
        assert '"password":"***"' in request_log["body"]
        assert "pw" not in request_log["body"]
        assert response_log["headers"]["set-cookie"] == "***"
        assert "server-secret" not in response_log["body"]

        # Wire data is untouched
        assert api.requests[0].headers["authorization"] == "Bearer abc"
        assert json.loads(api.requests[0].content)["password"] == "pw"

    def test_no_request_logs_without_debug(self) -> None:
        api = ScriptedApi([reply(200)])
        with capture_logs() as logs:
            pipeline = make_pipeline(api)
            pipeline.get("/x")

        events = {e["event"] for e in logs}
        assert "http_request" not in events
        assert "http_response" not in events

    def test_retry_events_logged(self) -> None:
        api = ScriptedApi(
            [reply(503), reply(429, headers={"Retry-After": "1"}), reply(200)]
        )
        with capture_logs() as logs:
            pipeline = make_pipeline(api)
            pipeline.get("/x")

        events = [e["event"] for e in logs]
        assert "retry_scheduled" in events
        assert "rate_limited" in events
