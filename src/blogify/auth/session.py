"""
Session token codec.

A session token is a compact JWS signed with HS256 under the shared
``session_secret``. It carries the account id (``sub``), the issue time
(``iat``) and an expiry (``exp``); nothing about it is stored server side, so
a leaked token stays valid until it expires or the secret is rotated.

``verify`` fails closed: a bad signature, a malformed envelope, an expired
token or a token without a subject all yield ``None``.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from jwcrypto import jwk, jwt
from jwcrypto.common import JWException, base64url_encode

logger = logging.getLogger(__name__)

SESSION_COOKIE = "token"
SESSION_ALGORITHM = "HS256"


def signing_key(secret: str) -> jwk.JWK:
    """HS256 needs a 256 bit key, so the secret is hashed down to one."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return jwk.JWK(kty="oct", k=base64url_encode(digest))


class SessionTokenCodec:
    def __init__(self, secret: str, expiry_seconds: int) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        self._key = signing_key(secret)
        self._expiry_seconds = expiry_seconds

    def issue(self, account_id: str, now: Optional[datetime] = None) -> str:
        if now is None:
            now = datetime.now(timezone.utc)
        issued_at = int(now.timestamp())
        token = jwt.JWT(
            header={"alg": SESSION_ALGORITHM, "typ": "JWT"},
            claims={
                "sub": account_id,
                "iat": issued_at,
                "exp": issued_at + self._expiry_seconds,
            },
        )
        token.make_signed_token(self._key)
        return token.serialize()

    def verify(self, serialized_token: str) -> Optional[str]:
        try:
            validated = jwt.JWT(
                jwt=serialized_token,
                key=self._key,
                algs=[SESSION_ALGORITHM],
                expected_type="JWS",
            )
            claims = json.loads(validated.claims)
        except (JWException, ValueError, TypeError) as e:
            logger.debug("rejecting session token: %s", type(e).__name__)
            return None

        if not isinstance(claims, dict):
            return None
        subject = claims.get("sub")
        if not isinstance(subject, str) or len(subject) == 0:
            return None
        if not isinstance(claims.get("exp"), int):
            return None
        return subject
