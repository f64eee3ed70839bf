"""High-level client wiring settings, transport, pipeline and auth."""

import json
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx
import structlog

from xgate.auth import AuthenticationManager, TokenStore
from xgate.http.constants import SDK_VERSION
from xgate.http.errors import AuthenticationError, ResponseDecodeError
from xgate.http.models import HttpMethod
from xgate.http.pipeline import RequestPipeline, Sleeper
from xgate.http.transport import HttpxTransport, Transport
from xgate.settings import XGateSettings


logger = structlog.get_logger()


class XGateClient:
    """Entry point for the XGATE payment API.

    Requests made after ``authenticate`` carry the bearer token
    automatically. The JSON verbs return the decoded response object;
    typed errors from the pipeline propagate unchanged.

    Example:
        with XGateClient(XGateSettings(base_url="https://api.xgate.global")) as client:
            client.authenticate("user@example.com", "secret")
            customer = client.get("/customer/123")
    """

    VERSION = SDK_VERSION

    def __init__(
        self,
        settings: XGateSettings | None = None,
        *,
        transport: Transport | None = None,
        token_store: TokenStore | None = None,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Client settings; read from the environment if omitted.
            transport: Transport adapter; an ``HttpxTransport`` by default.
            token_store: Where the access token is kept.
            sleeper: Wait used between retry attempts.
        """
        self._settings = settings or XGateSettings()
        config = self._settings.to_http_config()
        self._pipeline = RequestPipeline(
            config,
            transport=transport or HttpxTransport(config),
            sleeper=sleeper,
        )
        self._auth = AuthenticationManager(self._pipeline, token_store)
        self._pipeline.set_token_provider(self._auth.current_bearer_token)
        self._log = logger.bind(component="client")
        self._log.info(
            "client_initialized",
            version=self.VERSION,
            environment=self._settings.environment,
            base_url=config.base_url,
            api_key=self._settings.masked_api_key(),
        )

    @property
    def settings(self) -> XGateSettings:
        return self._settings

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    @property
    def auth(self) -> AuthenticationManager:
        return self._auth

    def authenticate(self, email: str, password: str) -> bool:
        """Log in with email and password.

        Raises:
            AuthenticationError: If the login is rejected.
        """
        try:
            success = self._auth.login(email, password)
        except AuthenticationError as e:
            self._log.error("authentication_failed", error=e.message)
            raise
        self._log.info("user_authenticated")
        return success

    def is_authenticated(self) -> bool:
        return self._auth.is_authenticated()

    def logout(self) -> bool:
        return self._auth.logout()

    def get(
        self, path: str, params: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        return self._request_json(HttpMethod.GET, path, params=params, **kwargs)

    def post(
        self, path: str, data: Any = None, **kwargs: Any
    ) -> dict[str, Any]:
        return self._request_json(HttpMethod.POST, path, json=data, **kwargs)

    def put(self, path: str, data: Any = None, **kwargs: Any) -> dict[str, Any]:
        return self._request_json(HttpMethod.PUT, path, json=data, **kwargs)

    def patch(self, path: str, data: Any = None, **kwargs: Any) -> dict[str, Any]:
        return self._request_json(HttpMethod.PATCH, path, json=data, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return self._request_json(HttpMethod.DELETE, path, **kwargs)

    def close(self) -> None:
        self._pipeline.close()

    def __enter__(self) -> "XGateClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _request_json(
        self, method: HttpMethod, path: str, **kwargs: Any
    ) -> dict[str, Any]:
        response = self._pipeline.execute(method, path, **kwargs)
        return decode_json_object(response)


def decode_json_object(response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response body.

    An empty body decodes to ``{}``; a JSON array is wrapped as
    ``{"data": [...]}``.

    Raises:
        ResponseDecodeError: If the body is not valid JSON.
    """
    if not response.content.strip():
        return {}
    try:
        data = json.loads(response.content)
    except (ValueError, UnicodeDecodeError) as e:
        msg = f"API response is not valid JSON: {e}"
        raise ResponseDecodeError(
            msg, {"status_code": response.status_code}
        ) from e
    if isinstance(data, dict):
        return data
    return {"data": data}
