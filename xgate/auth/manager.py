"""Email/password login and bearer-token supply for the pipeline."""

from http import HTTPStatus

import structlog

from xgate.auth.store import DEFAULT_TOKEN_TTL_SECONDS, InMemoryTokenStore, TokenStore
from xgate.http.errors import ApiError, AuthenticationError, NetworkError
from xgate.http.pipeline import RequestPipeline


logger = structlog.get_logger()

_TOKEN_ENDPOINT = "/auth/token"  # noqa: S105


class AuthenticationManager:
    """Obtains access tokens and hands them to the request pipeline."""

    def __init__(
        self,
        pipeline: RequestPipeline,
        token_store: TokenStore | None = None,
        token_ttl_seconds: float = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> None:
        """Initialize the manager.

        Args:
            pipeline: Pipeline used for the login call.
            token_store: Where the access token is kept.
            token_ttl_seconds: Lifetime of a stored token.
        """
        self._pipeline = pipeline
        self._store = token_store or InMemoryTokenStore()
        self._ttl = token_ttl_seconds
        self._log = logger.bind(component="auth")

    def login(self, email: str, password: str) -> bool:
        """Exchange credentials for an access token and store it.

        Args:
            email: Account email.
            password: Account password.

        Returns:
            True once the token is stored.

        Raises:
            AuthenticationError: If the credentials are rejected, the
                response carries no token, or the API is unreachable.
        """
        try:
            response = self._pipeline.post(
                _TOKEN_ENDPOINT,
                json={"email": email, "password": password},
                authenticated=False,
            )
        except ApiError as e:
            self._log.warning("authentication_failed", status_code=e.status_code)
            if e.status_code == HTTPStatus.UNAUTHORIZED:
                raise AuthenticationError.invalid_credentials(email) from e
            raise AuthenticationError.login_failed(e.status_code, e.message) from e
        except NetworkError as e:
            self._log.warning("authentication_network_error", error=e.message)
            msg = f"Network error during authentication: {e.message}"
            raise AuthenticationError(msg) from e

        try:
            data = response.json()
        except (ValueError, UnicodeDecodeError):
            data = None
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthenticationError.login_failed(
                response.status_code, "No access token in response"
            )

        self._store.set(token, self._ttl)
        self._log.info("authenticated")
        return True

    def current_bearer_token(self) -> str | None:
        """Return the stored token, or None when not authenticated."""
        return self._store.get()

    def is_authenticated(self) -> bool:
        return self.current_bearer_token() is not None

    def authorization_header(self) -> dict[str, str]:
        """Build the Authorization header for the stored token.

        Raises:
            AuthenticationError: If no token is available.
        """
        token = self.current_bearer_token()
        if token is None:
            raise AuthenticationError.missing_token()
        return {"Authorization": f"Bearer {token}"}

    def logout(self) -> bool:
        """Forget the stored token."""
        cleared = self._store.clear()
        if cleared:
            self._log.info("logged_out")
        return cleared
