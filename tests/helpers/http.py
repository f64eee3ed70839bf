"""Scripted HTTP responses and recording sleeps for pipeline tests."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from xgate.http.config import HttpConfig
from xgate.http.pipeline import RequestPipeline, Sleeper, TokenProvider
from xgate.http.transport import HttpxTransport


BASE_URL = "https://api.xgate.test"

Outcome = Callable[[httpx.Request], httpx.Response]


def reply(
    status_code: int,
    json: Any = None,
    headers: dict[str, str] | None = None,
    text: str | None = None,
) -> Outcome:
    """Build a factory producing a fresh response per request."""

    def _build(request: httpx.Request) -> httpx.Response:
        if text is not None:
            return httpx.Response(
                status_code, text=text, headers=headers, request=request
            )
        if json is not None:
            return httpx.Response(
                status_code, json=json, headers=headers, request=request
            )
        return httpx.Response(status_code, headers=headers, request=request)

    return _build


def fail(exc_type: type[httpx.TransportError], message: str) -> Outcome:
    """Build a factory that raises a transport exception."""

    def _raise(request: httpx.Request) -> httpx.Response:
        raise exc_type(message, request=request)

    return _raise


@dataclass
class ScriptedApi:
    """Serves outcomes in order, repeating the last one, and records requests."""

    outcomes: list[Outcome]
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.outcomes)) - 1
        return self.outcomes[index](request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.Client:
        return httpx.Client(
            base_url=BASE_URL, transport=httpx.MockTransport(self.handler)
        )


@dataclass
class RecordingSleeper:
    """Sleeper that records requested delays instead of waiting.

    With ``interrupted`` set, every wait reports that it was aborted.
    """

    delays: list[float] = field(default_factory=list)
    interrupted: bool = False
    abort_calls: int = 0

    def sleep(self, seconds: float) -> bool:
        self.delays.append(seconds)
        return not self.interrupted

    def abort(self) -> None:
        self.abort_calls += 1


def make_pipeline(
    api: ScriptedApi,
    sleeper: Sleeper | None = None,
    token_provider: TokenProvider | None = None,
    **config: Any,
) -> RequestPipeline:
    """Build a pipeline whose transport is served by ``api``."""
    http_config = HttpConfig(base_url=BASE_URL, **config)
    return RequestPipeline(
        http_config,
        transport=HttpxTransport(http_config, client=api.client()),
        token_provider=token_provider,
        sleeper=sleeper or RecordingSleeper(),
    )
