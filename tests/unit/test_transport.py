"""Unit tests for the webhook HTTP transport."""

from __future__ import annotations

import httpx
import pytest

from hooksync.sync import (
    AuthType,
    SyncConfig,
    WebhookClient,
    WebhookDeliveryError,
    build_request_headers,
)
from hooksync.sync.transport import authorization_value, build_timeout
from tests.helpers.settings import ENDPOINT, fast_config
from tests.helpers.webhook import ScriptedWebhook


class TestRequestHeaders:
    """Tests for header construction."""

    def test_header_order(self) -> None:
        """Content headers come first, then static headers, then auth."""
        config = fast_config(headers={"X-Tenant": "acme", "X-Trace": "1"})

        headers = build_request_headers(config)

        assert list(headers) == [
            "Content-Type",
            "Accept",
            "X-Tenant",
            "X-Trace",
            "Authorization",
        ]
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept"] == "application/json"

    def test_derived_authorization_replaces_static_header(self) -> None:
        """A static Authorization header of any case yields to the token."""
        config = fast_config(headers={"authorization": "Basic old"})

        headers = build_request_headers(config)

        assert "authorization" not in headers
        assert headers["Authorization"] == "Bearer s3cret"

    def test_static_authorization_kept_without_token(self) -> None:
        """Without a token a static Authorization header is sent unchanged."""
        config = fast_config(auth_token=None, headers={"Authorization": "Basic abc"})

        assert build_request_headers(config)["Authorization"] == "Basic abc"

    @pytest.mark.parametrize(
        ("auth_type", "token", "expected"),
        [
            pytest.param(AuthType.BEARER, "tok", "Bearer tok", id="bearer"),
            pytest.param(AuthType.RAW, "Basic dXNlcg==", "Basic dXNlcg==", id="raw"),
            pytest.param(AuthType.NONE, "tok", None, id="none"),
            pytest.param(AuthType.BEARER, "   ", None, id="blank_token"),
            pytest.param(AuthType.BEARER, None, None, id="no_token"),
        ],
    )
    def test_authorization_value(
        self, auth_type: AuthType, token: str | None, expected: str | None
    ) -> None:
        """The auth type decides how the token is presented."""
        config = SyncConfig(auth_type=auth_type, auth_token=token)
        assert authorization_value(config) == expected

    def test_timeout_uses_configured_values(self) -> None:
        """Connect and read timeouts are applied separately."""
        timeout = build_timeout(fast_config(connect_timeout_s=2, read_timeout_s=9))

        assert timeout.connect == 2
        assert timeout.read == 9


class TestWebhookClient:
    """Tests for single delivery attempts."""

    @pytest.mark.asyncio
    async def test_post_sends_body_and_headers(self) -> None:
        """The body is posted verbatim with the built headers."""
        webhook = ScriptedWebhook([201])
        client = WebhookClient(fast_config(), http_client=webhook.client())

        status = await client.post(b'{"eventId":"evt-1"}')

        assert status == 201
        (request,) = webhook.requests
        assert request.method == "POST"
        assert str(request.url) == ENDPOINT
        assert request.content == b'{"eventId":"evt-1"}'
        assert request.headers["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
    async def test_non_2xx_raises_http_error(self, status: int) -> None:
        """Any status outside 200-299 fails the attempt."""
        webhook = ScriptedWebhook([status])
        client = WebhookClient(fast_config(), http_client=webhook.client())

        with pytest.raises(WebhookDeliveryError) as excinfo:
            await client.post(b"{}")

        assert excinfo.value.status_code == status

    @pytest.mark.asyncio
    async def test_timeout_is_mapped(self) -> None:
        """httpx timeouts become delivery timeouts."""
        webhook = ScriptedWebhook([httpx.ConnectTimeout("slow handshake")])
        client = WebhookClient(fast_config(), http_client=webhook.client())

        with pytest.raises(WebhookDeliveryError, match="timed out") as excinfo:
            await client.post(b"{}")

        assert excinfo.value.status_code is None

    @pytest.mark.asyncio
    async def test_network_error_is_mapped(self) -> None:
        """Connection failures become network errors."""
        webhook = ScriptedWebhook([httpx.ConnectError("connection refused")])
        client = WebhookClient(fast_config(), http_client=webhook.client())

        with pytest.raises(WebhookDeliveryError, match="connection refused"):
            await client.post(b"{}")

    @pytest.mark.asyncio
    async def test_missing_endpoint_raises(self) -> None:
        """Posting without an endpoint fails before any request."""
        webhook = ScriptedWebhook()
        client = WebhookClient(SyncConfig(), http_client=webhook.client())

        with pytest.raises(WebhookDeliveryError):
            await client.post(b"{}")

        assert webhook.attempts == 0

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self) -> None:
        """Injected clients belong to the caller."""
        http_client = ScriptedWebhook().client()
        client = WebhookClient(fast_config(), http_client=http_client)

        await client.aclose()

        assert not http_client.is_closed
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_client(self) -> None:
        """A client created by WebhookClient is closed with it."""
        client = WebhookClient(fast_config())

        await client.aclose()

        assert client._client.is_closed  # noqa: SLF001

    @pytest.mark.asyncio
    async def test_aclose_closes_injected_client_when_asked(self) -> None:
        """``close_client`` hands ownership of an injected client over."""
        http_client = ScriptedWebhook().client()
        client = WebhookClient(
            fast_config(), http_client=http_client, close_client=True
        )

        await client.aclose()

        assert http_client.is_closed
