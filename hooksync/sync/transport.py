"""HTTP transport for webhook deliveries."""

from __future__ import annotations

import typing as typ

import httpx

from .config import AuthType
from .errors import WebhookDeliveryError

if typ.TYPE_CHECKING:
    from .config import SyncConfig

_AUTHORIZATION = "Authorization"
_HTTP_SUCCESS_MIN = 200
_HTTP_SUCCESS_MAX = 300


def authorization_value(config: SyncConfig) -> str | None:
    """Return the derived ``Authorization`` header value, if any."""
    token = config.auth_token.strip() if config.auth_token else ""
    if not token or config.auth_type is AuthType.NONE:
        return None
    if config.auth_type is AuthType.BEARER:
        return f"Bearer {token}"
    return token


def build_request_headers(config: SyncConfig) -> dict[str, str]:
    """Build the headers sent with every delivery.

    JSON content headers come first, then the static configured headers,
    then the derived ``Authorization`` header. A static header of the same
    name (compared case-insensitively) is replaced by the derived value.
    """
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    headers.update(config.headers)

    authorization = authorization_value(config)
    if authorization is not None:
        for name in [key for key in headers if key.lower() == "authorization"]:
            del headers[name]
        headers[_AUTHORIZATION] = authorization
    return headers


def build_timeout(config: SyncConfig) -> httpx.Timeout:
    """Return the httpx timeout for one delivery attempt."""
    return httpx.Timeout(
        config.read_timeout_s,
        connect=config.connect_timeout_s,
        read=config.read_timeout_s,
    )


class WebhookClient:
    """POST serialized payloads to the configured webhook endpoint.

    Parameters
    ----------
    config
        Dispatch configuration supplying the endpoint, headers and timeouts.
    http_client
        Optional ``httpx.AsyncClient`` for testing. If not provided, the
        instance creates and owns a client whose connection pool matches the
        worker count.
    close_client
        Close an injected ``http_client`` in :meth:`aclose` as if it were
        owned.

    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        close_client: bool = False,
    ) -> None:
        """Initialise the client with configuration."""
        self._config = config
        self._headers = build_request_headers(config)
        self._timeout = build_timeout(config)
        self._owns_client = http_client is None or close_client
        self._client = http_client or httpx.AsyncClient(
            timeout=self._timeout,
            limits=httpx.Limits(
                max_connections=config.worker_count,
                max_keepalive_connections=config.worker_count,
            ),
        )

    @property
    def headers(self) -> dict[str, str]:
        """Return a copy of the headers attached to each request."""
        return dict(self._headers)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def post(self, body: bytes) -> int:
        """Send one delivery attempt and return the response status.

        Raises
        ------
        WebhookDeliveryError
            On a timeout, a network failure, or a non-2xx response.

        """
        endpoint = self._config.endpoint
        if endpoint is None:
            msg = "webhook endpoint is not configured"
            raise WebhookDeliveryError(msg)

        try:
            response = await self._client.post(
                endpoint,
                content=body,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise WebhookDeliveryError.timeout() from exc
        except httpx.HTTPError as exc:
            raise WebhookDeliveryError.network_error(str(exc)) from exc

        if not _HTTP_SUCCESS_MIN <= response.status_code < _HTTP_SUCCESS_MAX:
            raise WebhookDeliveryError.http_error(response.status_code)
        return response.status_code


__all__ = [
    "WebhookClient",
    "authorization_value",
    "build_request_headers",
    "build_timeout",
]
