# oauth.py — Discord OAuth2 client used by the panel login flow
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

import config
from exceptions import InfrastructureError

logger = logging.getLogger("arcadia-panel.oauth")

USER_AGENT = "DiscordBot (arcadia v1.0)"


@dataclass(frozen=True)
class OAuthIdentity:
    id: str
    username: str


class OAuthProvider:
    """Interface the auth protocol consumes; swapped for a fake in tests."""

    def authorize_url(self, redirect_url: str) -> str:
        raise NotImplementedError

    async def exchange_code(self, code: str, redirect_url: str) -> str:
        raise NotImplementedError

    async def fetch_identity(self, access_token: str) -> OAuthIdentity:
        raise NotImplementedError


class DiscordOAuthProvider(OAuthProvider):
    def __init__(self, client_id: str = None, client_secret: str = None,
                 api_base: str = None, timeout: float = None):
        self.client_id = client_id if client_id is not None else config.CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.CLIENT_SECRET
        self.api_base = (api_base or config.DISCORD_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else config.OAUTH_TIMEOUT_SECONDS

    def authorize_url(self, redirect_url: str) -> str:
        query = {
            "client_id": self.client_id,
            "redirect_uri": redirect_url,
            "response_type": "code",
            "scope": "identify",
        }
        return f"{self.api_base}/oauth2/authorize?{urlencode(query)}"

    async def exchange_code(self, code: str, redirect_url: str) -> str:
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_url,
            "scope": "identify",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.api_base}/oauth2/token",
                    data=form,
                    headers={"User-Agent": USER_AGENT},
                )
                resp.raise_for_status()
                return resp.json()["access_token"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"OAuth2 code exchange failed: {e}")
            raise InfrastructureError("Failed to exchange OAuth2 code", status_code=502) from e

    async def fetch_identity(self, access_token: str) -> OAuthIdentity:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(
                    f"{self.api_base}/users/@me",
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "User-Agent": USER_AGENT,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
                return OAuthIdentity(id=str(data["id"]), username=data.get("username", ""))
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"Fetching OAuth2 identity failed: {e}")
            raise InfrastructureError("Failed to fetch user from OAuth2 provider", status_code=502) from e
