"""
Social Account Linking

Links a Blogify account to a third-party social account with the OAuth 2.0
authorization code grant and PKCE (RFC 7636), keeps the resulting tokens
fresh, and publishes announcements for new posts.

The flow has three stages:
1. Initiation (`oauth_init`): generate state and a PKCE pair, park them in
   the transient flow store and build the provider authorization URL
2. Completion (`oauth_complete`): consume the parked flow, check the state,
   exchange the code, read the remote profile and persist the encrypted
   tokens with auto-publish enabled
3. Unlinking (`oauth_disable`): clear the tokens and the auto-publish flag,
   keeping the remote handle for history

Tokens are refreshed lazily (`ensure_fresh_access_token`) when the stored
expiry is within `social_refresh_margin` seconds. A credential that is
expired and has no refresh token is broken: auto-publish is skipped until
the user links again.
"""

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import sentry_sdk
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blogify.app.config import Settings
from blogify.app.metrics import MetricsClient
from blogify.errors import InvalidOAuthState
from blogify.model.account import LinkedSocialCredential
from blogify.model.base import as_aware, utcnow
from blogify.social.provider import OAuthProvider, RemoteProfile
from blogify.social.transient import OAuthFlow, OAuthFlowStore
from blogify.store.accounts import get_linked_credential

logger = logging.getLogger(__name__)

ANNOUNCEMENT_MAX_LENGTH = 280


def generate_pkce_verifier() -> Tuple[str, str]:
    """
    Generate PKCE (Proof Key for Code Exchange) verifier and challenge.

    Returns:
        Tuple[str, str]: (pkce_verifier, pkce_challenge)
        - pkce_verifier: secret sent with the token request (86 characters,
          inside the 43-128 range of RFC 7636 section 4.1)
        - pkce_challenge: unpadded base64url SHA-256 of the verifier
    """
    pkce_token = secrets.token_urlsafe(64)

    hashed = hashlib.sha256(pkce_token.encode("ascii")).digest()
    encoded = base64.urlsafe_b64encode(hashed)
    pkce_challenge = encoded.decode("ascii").rstrip("=")
    return (pkce_token, pkce_challenge)


def encrypt_token(fernet: Fernet, token: Optional[str]) -> Optional[str]:
    if token is None:
        return None
    return fernet.encrypt(token.encode("utf-8")).decode("ascii")


def decrypt_token(fernet: Fernet, ciphertext: Optional[str]) -> Optional[str]:
    if ciphertext is None:
        return None
    return fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")


def needs_refresh(
    credential: LinkedSocialCredential, now: datetime, margin_seconds: int
) -> bool:
    expires_at = as_aware(credential.expires_at)
    if expires_at is None:
        return False
    return now >= expires_at - timedelta(seconds=margin_seconds)


def is_expired(credential: LinkedSocialCredential, now: datetime) -> bool:
    expires_at = as_aware(credential.expires_at)
    return expires_at is not None and now >= expires_at


async def oauth_init(
    provider: OAuthProvider, flow_store: OAuthFlowStore, account_id: str
) -> Tuple[str, str]:
    """
    Start linking ``account_id``.

    Returns:
        Tuple[str, str]: (authorization_url, flow_id). The flow id must be
        handed to the browser in the flow cookie.
    """
    state = secrets.token_urlsafe(32)
    (pkce_verifier, code_challenge) = generate_pkce_verifier()

    flow_id = await flow_store.put(
        OAuthFlow(state=state, code_verifier=pkce_verifier, account_id=account_id)
    )
    return provider.authorization_url(state, code_challenge), flow_id


async def oauth_complete(
    settings: Settings,
    provider: OAuthProvider,
    flow_store: OAuthFlowStore,
    database_session_maker: async_sessionmaker[AsyncSession],
    account_id: str,
    flow_id: Optional[str],
    state: Optional[str],
    code: Optional[str],
    now: Optional[datetime] = None,
) -> LinkedSocialCredential:
    """
    Finish linking after the provider redirected back.

    The parked flow is consumed before anything else, so it cannot be
    replayed whatever the outcome. The provider is only contacted once the
    state has been checked.

    Raises:
        InvalidOAuthState: no parked flow, no state/code, a state mismatch, or
            a flow started by another account
        UpstreamFailure: the provider rejected the exchange or profile read
    """
    flow = await flow_store.take(flow_id)
    if flow is None:
        raise InvalidOAuthState.missing()

    if state is None or code is None:
        raise InvalidOAuthState.missing()

    if not secrets.compare_digest(flow.state, state) or flow.account_id != account_id:
        raise InvalidOAuthState.mismatch()

    grant = await provider.exchange_code(code, flow.code_verifier)
    remote_profile = await provider.profile(grant.access_token)

    if now is None:
        now = utcnow()
    expires_at = (
        now + timedelta(seconds=grant.expires_in) if grant.expires_in is not None else None
    )

    fernet = settings.encryption_key
    async with database_session_maker() as database_session:
        async with database_session.begin():
            credential = await get_linked_credential(database_session, account_id)
            if credential is None:
                credential = LinkedSocialCredential(account_id=account_id)
                database_session.add(credential)

            credential.provider = provider.name
            credential.access_token = encrypt_token(fernet, grant.access_token)
            credential.refresh_token = encrypt_token(fernet, grant.refresh_token)
            credential.expires_at = expires_at
            credential.remote_account_id = remote_profile.account_id
            credential.remote_handle = remote_profile.handle
            credential.auto_publish = True
            credential.last_publish_at = None
            credential.linked_at = now

    logger.info(
        "account %s linked %s account @%s",
        account_id,
        provider.name,
        remote_profile.handle,
    )
    return credential


async def oauth_disable(
    database_session_maker: async_sessionmaker[AsyncSession], account_id: str
) -> bool:
    """
    Turn auto-publish off and drop the stored tokens.

    Idempotent. Returns True when a connected credential was actually changed.
    """
    async with database_session_maker() as database_session:
        async with database_session.begin():
            credential = await get_linked_credential(database_session, account_id)
            if credential is None:
                return False

            changed = credential.auto_publish or credential.is_connected
            credential.auto_publish = False
            credential.access_token = None
            credential.refresh_token = None
            credential.expires_at = None

    if changed:
        logger.info("account %s disabled social auto-publish", account_id)
    return changed


async def ensure_fresh_access_token(
    settings: Settings,
    provider: OAuthProvider,
    database_session_maker: async_sessionmaker[AsyncSession],
    account_id: str,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Return a usable plaintext access token, refreshing it first if needed.

    Returns None when the account is not connected or the credential is
    broken (expired with no refresh token, or undecryptable). Provider
    errors during refresh propagate as ``UpstreamFailure``.

    Two concurrent callers may both refresh; the last write wins.
    """
    if now is None:
        now = utcnow()
    fernet = settings.encryption_key

    async with database_session_maker() as database_session:
        async with database_session.begin():
            credential = await get_linked_credential(database_session, account_id)
            if credential is None or not credential.is_connected:
                return None
            try:
                access_token = decrypt_token(fernet, credential.access_token)
                refresh_token = decrypt_token(fernet, credential.refresh_token)
            except InvalidToken:
                logger.warning("stored social tokens for %s cannot be decrypted", account_id)
                return None
            stale = needs_refresh(credential, now, settings.social_refresh_margin)
            expired = is_expired(credential, now)

    if not stale:
        return access_token

    if refresh_token is None:
        if expired:
            logger.warning(
                "social credential for %s expired without a refresh token", account_id
            )
            return None
        return access_token

    grant = await provider.refresh(refresh_token)

    async with database_session_maker() as database_session:
        async with database_session.begin():
            credential = await get_linked_credential(database_session, account_id)
            if credential is None:
                return None
            credential.access_token = encrypt_token(fernet, grant.access_token)
            if grant.refresh_token is not None:
                credential.refresh_token = encrypt_token(fernet, grant.refresh_token)
            credential.expires_at = (
                now + timedelta(seconds=grant.expires_in)
                if grant.expires_in is not None
                else None
            )

    logger.info("refreshed social access token for %s", account_id)
    return grant.access_token


async def check_connection(
    settings: Settings,
    provider: OAuthProvider,
    database_session_maker: async_sessionmaker[AsyncSession],
    account_id: str,
) -> Optional[RemoteProfile]:
    """Refresh if needed and read the remote profile. None when not connected."""
    access_token = await ensure_fresh_access_token(
        settings, provider, database_session_maker, account_id
    )
    if access_token is None:
        return None
    return await provider.profile(access_token)


def announcement_text(settings: Settings, title: str, slug: str) -> str:
    link = f"{settings.external_url.rstrip('/')}/blog/{slug}"
    room = ANNOUNCEMENT_MAX_LENGTH - len(link) - len("New post:  ")
    if room < len(title):
        title = title[: max(room - 1, 0)].rstrip() + "…"
    return f"New post: {title} {link}"


async def publish_announcement(
    settings: Settings,
    provider: OAuthProvider,
    database_session_maker: async_sessionmaker[AsyncSession],
    metrics_client: MetricsClient,
    account_id: str,
    title: str,
    slug: str,
) -> bool:
    """
    Announce a new post on the author's linked account.

    Never raises: every failure is logged, reported and turned into False so
    the post that triggered it is unaffected.
    """
    try:
        async with database_session_maker() as database_session:
            async with database_session.begin():
                credential = await get_linked_credential(database_session, account_id)
                if credential is None or not credential.publishes:
                    return False

        access_token = await ensure_fresh_access_token(
            settings, provider, database_session_maker, account_id
        )
        if access_token is None:
            logger.warning("skipping auto-publish for %s: credential unusable", account_id)
            metrics_client.increment(
                "blogify.social.publish", 1, tag_dict={"status": "skipped"}
            )
            return False

        remote_id = await provider.publish(
            access_token, announcement_text(settings, title, slug)
        )

        async with database_session_maker() as database_session:
            async with database_session.begin():
                credential = await get_linked_credential(database_session, account_id)
                if credential is not None:
                    credential.last_publish_at = utcnow()

        logger.info("announced post %s for %s as %s", slug, account_id, remote_id)
        metrics_client.increment("blogify.social.publish", 1, tag_dict={"status": "ok"})
        return True
    except Exception as e:
        logger.exception("auto-publish failed for %s", account_id)
        sentry_sdk.capture_exception(e)
        metrics_client.increment(
            "blogify.social.publish",
            1,
            tag_dict={"status": "error", "exception": type(e).__name__},
        )
        return False
