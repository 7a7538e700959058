"""
Transient storage for in-flight OAuth round trips.

The anti-forgery ``state`` and the PKCE verifier are kept in redis under a
random flow id that travels to the browser in an HTTP-only cookie. ``take``
reads and deletes the entry in one ``GETDEL``, so each flow can be completed
at most once, even by two concurrent callbacks.
"""

import json
import logging
import secrets
from dataclasses import asdict, dataclass
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

FLOW_COOKIE = "social_flow"


@dataclass(frozen=True)
class OAuthFlow:
    state: str
    code_verifier: str
    account_id: str


class OAuthFlowStore:
    def __init__(
        self, redis_client: redis.Redis, ttl_seconds: int, prefix: str = "oauth_flow:"
    ) -> None:
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, flow_id: str) -> str:
        return f"{self.prefix}{flow_id}"

    async def put(self, flow: OAuthFlow) -> str:
        flow_id = secrets.token_urlsafe(32)
        await self.redis_client.set(
            self._key(flow_id), json.dumps(asdict(flow)), ex=self.ttl_seconds
        )
        return flow_id

    async def take(self, flow_id: Optional[str]) -> Optional[OAuthFlow]:
        if not flow_id:
            return None
        raw = await self.redis_client.getdel(self._key(flow_id))
        if raw is None:
            return None
        try:
            return OAuthFlow(**json.loads(raw))
        except (ValueError, TypeError):
            logger.warning("discarding malformed oauth flow entry")
            return None
