"""
Social provider clients.

``OAuthProvider`` is the seam between the linking flow and a concrete
third-party API. ``TwitterOAuthProvider`` talks to the X (Twitter) v2 API
using OAuth 2.0 authorization code with PKCE (S256) over a shared aiohttp
``ClientSession``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from aiohttp import BasicAuth, ClientError, ClientSession, FormData

from blogify.errors import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    """Lifetime of ``access_token`` in seconds, when the provider reports one."""


@dataclass(frozen=True)
class RemoteProfile:
    account_id: str
    handle: str


class OAuthProvider(ABC):
    name: str = "oauth"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    def authorization_url(self, state: str, code_challenge: str) -> str:
        """URL the user agent is redirected to in order to grant access."""

    @abstractmethod
    async def exchange_code(self, code: str, code_verifier: str) -> TokenGrant:
        pass

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenGrant:
        pass

    @abstractmethod
    async def profile(self, access_token: str) -> RemoteProfile:
        pass

    @abstractmethod
    async def publish(self, access_token: str, text: str) -> str:
        """Publish ``text`` on the user's behalf and return the remote id."""


class TwitterOAuthProvider(OAuthProvider):
    name = "twitter"

    authorize_endpoint = "https://twitter.com/i/oauth2/authorize"
    token_endpoint = "https://api.twitter.com/2/oauth2/token"
    api_base = "https://api.twitter.com/2"

    def __init__(
        self,
        http_session: ClientSession,
        client_id: Optional[str],
        client_secret: Optional[str],
        callback_url: Optional[str],
        scopes: List[str],
    ) -> None:
        self.http_session = http_session
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.scopes = scopes

    @property
    def configured(self) -> bool:
        return bool(self.client_id) and bool(self.callback_url)

    def authorization_url(self, state: str, code_challenge: str) -> str:
        query = {
            "response_type": "code",
            "client_id": self.client_id or "",
            "redirect_uri": self.callback_url or "",
            "scope": " ".join(self.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.authorize_endpoint}?{urlencode(query)}"

    def _client_auth(self) -> Optional[BasicAuth]:
        # Confidential clients authenticate with HTTP Basic; public clients
        # only send client_id in the form body.
        if self.client_id and self.client_secret:
            return BasicAuth(self.client_id, self.client_secret)
        return None

    async def _token_request(self, fields: Dict[str, str]) -> TokenGrant:
        data = FormData({**fields, "client_id": self.client_id or ""})
        try:
            async with self.http_session.post(
                self.token_endpoint, data=data, auth=self._client_auth()
            ) as resp:
                body = await resp.json(content_type=None)
                if resp.status != 200 or not isinstance(body, dict):
                    raise UpstreamFailure.social(
                        f"token endpoint returned {resp.status}", resp.status
                    )
        except (ClientError, ValueError) as e:
            raise UpstreamFailure.social(f"token endpoint unreachable: {e}") from e

        access_token = body.get("access_token", None)
        if access_token is None:
            raise UpstreamFailure.social("no access token in token response")

        expires_in = body.get("expires_in", None)
        return TokenGrant(
            access_token=access_token,
            refresh_token=body.get("refresh_token", None),
            expires_in=int(expires_in) if expires_in is not None else None,
        )

    async def exchange_code(self, code: str, code_verifier: str) -> TokenGrant:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.callback_url or "",
                "code_verifier": code_verifier,
            }
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _api_call(
        self, method: str, path: str, access_token: str, json: Optional[Any] = None
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with self.http_session.request(
                method, f"{self.api_base}{path}", headers=headers, json=json
            ) as resp:
                body = await resp.json(content_type=None)
                if resp.status not in (200, 201) or not isinstance(body, dict):
                    raise UpstreamFailure.social(
                        f"{method} {path} returned {resp.status}", resp.status
                    )
        except (ClientError, ValueError) as e:
            raise UpstreamFailure.social(f"{method} {path} failed: {e}") from e

        data = body.get("data", None)
        if not isinstance(data, dict):
            raise UpstreamFailure.social(f"{method} {path} returned no data")
        return data

    async def profile(self, access_token: str) -> RemoteProfile:
        data = await self._api_call("GET", "/users/me", access_token)
        if "id" not in data or "username" not in data:
            raise UpstreamFailure.social("GET /users/me returned an incomplete profile")
        return RemoteProfile(account_id=str(data["id"]), handle=str(data["username"]))

    async def publish(self, access_token: str, text: str) -> str:
        data = await self._api_call("POST", "/tweets", access_token, json={"text": text})
        return str(data.get("id", ""))
