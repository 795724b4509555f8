# tests/test_integrations.py — Discord OAuth2 client and webhook notifier over mocked HTTP
import functools
import json

import httpx
import pytest

from exceptions import InfrastructureError
from notifier import DiscordWebhookNotifier, LogNotifier, Notification, build_notifier
from oauth import DiscordOAuthProvider


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through ``handler``; returns the captured requests."""
    captured = []

    def install(handler):
        def recording(request: httpx.Request):
            captured.append(request)
            return handler(request)
        real = httpx.AsyncClient
        monkeypatch.setattr(httpx, "AsyncClient", functools.partial(real, transport=httpx.MockTransport(recording)))
        return captured

    return install


def _provider():
    return DiscordOAuthProvider(client_id="cid", client_secret="csecret", api_base="https://discord.test/api")


class TestDiscordOAuth:
    def test_authorize_url(self):
        url = _provider().authorize_url("http://localhost:3000/authorize")
        assert url.startswith("https://discord.test/api/oauth2/authorize?")
        assert "client_id=cid" in url
        assert "redirect_uri=http%3A%2F%2Flocalhost%3A3000%2Fauthorize" in url
        assert "scope=identify" in url

    @pytest.mark.asyncio
    async def test_exchange_and_identify(self, mock_http):
        def handler(request: httpx.Request):
            if request.url.path.endswith("/oauth2/token"):
                return httpx.Response(200, json={"access_token": "at-1"})
            assert request.headers["Authorization"] == "Bearer at-1"
            return httpx.Response(200, json={"id": 1234, "username": "mod"})

        requests = mock_http(handler)
        provider = _provider()
        token = await provider.exchange_code("the-code", "http://localhost:3000/authorize")
        identity = await provider.fetch_identity(token)

        assert token == "at-1"
        assert identity.id == "1234"
        assert identity.username == "mod"
        form = requests[0].content.decode()
        assert "grant_type=authorization_code" in form
        assert "code=the-code" in form

    @pytest.mark.asyncio
    async def test_exchange_failure_is_502(self, mock_http):
        mock_http(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(InfrastructureError) as exc:
            await _provider().exchange_code("stale", "http://localhost:3000/authorize")
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_identity_missing_id(self, mock_http):
        mock_http(lambda request: httpx.Response(200, json={"username": "ghost"}))
        with pytest.raises(InfrastructureError):
            await _provider().fetch_identity("at-1")


class TestNotifier:
    def test_build_notifier(self):
        assert isinstance(build_notifier(""), LogNotifier)
        assert isinstance(build_notifier("https://discord.test/webhook"), DiscordWebhookNotifier)

    @pytest.mark.asyncio
    async def test_webhook_payload(self, mock_http):
        requests = mock_http(lambda request: httpx.Response(204))
        await DiscordWebhookNotifier("https://discord.test/webhook").send(Notification(
            title="Bot Approved", description="<@900>", fields={"Staff": "<@200>", "Reason": ""},
        ))
        embed = json.loads(requests[0].content)["embeds"][0]
        assert embed["title"] == "Bot Approved"
        assert embed["fields"][0] == {"name": "Staff", "value": "<@200>", "inline": True}
        assert embed["fields"][1]["value"] == "-"

    @pytest.mark.asyncio
    async def test_webhook_failure_is_not_raised(self, mock_http):
        mock_http(lambda request: httpx.Response(500))
        await DiscordWebhookNotifier("https://discord.test/webhook").send(Notification(title="t", description="d"))
