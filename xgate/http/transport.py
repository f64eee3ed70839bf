"""Transport adapter: the only piece that talks to the HTTP engine.

HTTP error statuses are returned as responses; failures where no usable
response was obtained (connection, timeout, corrupt encoding, redirect
loops) are raised as ``TransportFailure``.
"""

from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from xgate.http.errors import NetworkErrorType


if TYPE_CHECKING:
    from xgate.http.config import HttpConfig
    from xgate.http.models import RequestSpec


logger = structlog.get_logger()


class TransportFailure(Exception):
    """No response could be obtained from the server."""

    def __init__(self, error_type: NetworkErrorType, description: str) -> None:
        """Initialize the failure.

        Args:
            error_type: Classification of the failure.
            description: Description of the underlying error.
        """
        super().__init__(description)
        self.error_type = error_type
        self.description = description


class Transport(Protocol):
    """Sends one request and returns whatever response came back."""

    def send(self, request: "RequestSpec", timeout: float) -> httpx.Response:
        """Send a request.

        Raises:
            TransportFailure: If no response was obtained.
        """
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


def _connect_error_type(message: str) -> NetworkErrorType:
    lower = message.lower()
    if (
        "name resolution" in lower
        or "nodename" in lower
        or "getaddrinfo" in lower
        or "resolve host" in lower
        or "name or service not known" in lower
    ):
        return NetworkErrorType.DNS_RESOLUTION
    if "ssl" in lower or "certificate" in lower or "tls" in lower:
        return NetworkErrorType.SSL
    if "refused" in lower:
        return NetworkErrorType.CONNECTION_REFUSED
    return NetworkErrorType.CONNECTION_FAILED


def classify_httpx_error(exc: httpx.RequestError) -> NetworkErrorType:
    """Map an httpx request exception to a network error type."""
    if isinstance(exc, httpx.ConnectTimeout):
        return NetworkErrorType.CONNECTION_TIMEOUT
    if isinstance(exc, httpx.ReadTimeout):
        return NetworkErrorType.READ_TIMEOUT
    if isinstance(exc, httpx.TimeoutException):
        return NetworkErrorType.TIMEOUT
    if isinstance(exc, httpx.ProxyError):
        return NetworkErrorType.PROXY
    if isinstance(exc, httpx.ConnectError):
        return _connect_error_type(str(exc))
    if isinstance(exc, httpx.DecodingError):
        return NetworkErrorType.DECODING
    if isinstance(exc, httpx.TooManyRedirects):
        return NetworkErrorType.TOO_MANY_REDIRECTS
    return NetworkErrorType.UNKNOWN


def build_proxy(config: "HttpConfig") -> httpx.Proxy | None:
    """Build the httpx proxy from configuration, if one is set."""
    if not config.proxy_url:
        return None
    return httpx.Proxy(url=config.proxy_url, auth=config.proxy_credentials)


class HttpxTransport:
    """Transport backed by a single pooled ``httpx.Client``."""

    def __init__(
        self,
        config: "HttpConfig",
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Transport configuration (base URL, timeout, proxy).
            client: Pre-built client to use instead of creating one.
        """
        self._config = config
        self._client = client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            proxy=build_proxy(config),
        )

    @property
    def client(self) -> httpx.Client:
        """Get the underlying httpx client."""
        return self._client

    def send(self, request: "RequestSpec", timeout: float) -> httpx.Response:
        """Send a request through the pooled client.

        Args:
            request: Fully merged request.
            timeout: Per-attempt timeout in seconds.

        Returns:
            The response, whatever its status code.

        Raises:
            TransportFailure: If no response was obtained.
        """
        kwargs: dict[str, object] = {}
        if request.json_body is not None:
            kwargs["json"] = request.json_body
        try:
            return self._client.request(
                request.method.value,
                request.path,
                params=request.params,
                headers=request.headers,
                timeout=timeout,
                **kwargs,
            )
        except httpx.RequestError as e:
            raise TransportFailure(classify_httpx_error(e), str(e) or repr(e)) from e

    def close(self) -> None:
        self._client.close()
