"""
Social Account Handlers

Link an X (Twitter) account with OAuth 2.0 and PKCE, turn auto-publish off,
and check a linked connection.

OAuth Flow:
1. GET /social/connect parks state and the PKCE verifier in redis under a
   random flow id, sets the flow id cookie and redirects to the provider
2. The user approves access on the provider's site
3. GET /social/callback consumes the parked flow, checks the state, exchanges
   the code and stores the encrypted tokens

The flow cookie is deleted on every callback response, successful or not.

Endpoints:
- GET /social/connect - Start linking (login required)
- GET /social/callback - Provider redirect target
- POST /social/disable - Turn auto-publish off and drop the tokens
- POST /social/test - JSON connection check
"""

import logging

import sentry_sdk
from aiohttp import web

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    HealthGaugeAppKey,
    OAuthFlowStoreAppKey,
    OAuthProviderAppKey,
    SettingsAppKey,
)
from blogify.app.handlers.helpers import current_account, require_login
from blogify.errors import InvalidOAuthState, UpstreamFailure
from blogify.social.oauth import check_connection, oauth_complete, oauth_disable, oauth_init
from blogify.social.transient import FLOW_COOKIE

logger = logging.getLogger(__name__)

PROVIDER_MESSAGES = {
    401: "Your X access token is invalid or expired. Please reconnect your account.",
    403: "The connected X app does not have the required permissions.",
    429: "X rate limit reached. Please try again later.",
}


def _clear_flow_cookie(response: web.StreamResponse):
    response.del_cookie(FLOW_COOKIE, path="/social")


async def handle_social_connect(request: web.Request):
    account = require_login(request)
    settings = request.app[SettingsAppKey]
    provider = request.app[OAuthProviderAppKey]

    if not provider.configured:
        raise web.HTTPFound("/user/profile?social=unconfigured")

    (authorization_url, flow_id) = await oauth_init(
        provider, request.app[OAuthFlowStoreAppKey], account.id
    )

    response = web.HTTPFound(authorization_url)
    response.set_cookie(
        FLOW_COOKIE,
        flow_id,
        max_age=settings.oauth_flow_ttl,
        path="/social",
        httponly=True,
        samesite="Lax",
        secure=settings.secure_cookies,
    )
    raise response


async def handle_social_callback(request: web.Request):
    """
    Handle the provider redirect.

    Query Parameters:
        state: anti-forgery value issued by /social/connect
        code: authorization code to exchange
        error: set by the provider when the user declined
    """
    account = current_account(request)
    flow_id = request.cookies.get(FLOW_COOKIE, None)

    try:
        if account is None:
            # Still consume the parked flow so it cannot be replayed.
            await request.app[OAuthFlowStoreAppKey].take(flow_id)
            response = web.HTTPFound("/user/signin?next=/user/profile")
        elif request.query.get("error", None) is not None:
            await request.app[OAuthFlowStoreAppKey].take(flow_id)
            logger.info(
                "provider declined linking for %s: %s",
                account.id,
                request.query.get("error"),
            )
            response = web.HTTPFound("/user/profile?social=error&reason=denied")
        else:
            await oauth_complete(
                request.app[SettingsAppKey],
                request.app[OAuthProviderAppKey],
                request.app[OAuthFlowStoreAppKey],
                request.app[DatabaseSessionMakerAppKey],
                account.id,
                flow_id,
                request.query.get("state", None),
                request.query.get("code", None),
            )
            response = web.HTTPFound("/user/profile?social=connected")
    except InvalidOAuthState as e:
        logger.warning("rejected oauth callback: %s", e)
        response = web.HTTPFound("/user/profile?social=error&reason=state")
    except UpstreamFailure as e:
        logger.exception("oauth callback failed upstream")
        sentry_sdk.capture_exception(e)
        response = web.HTTPFound("/user/profile?social=error&reason=upstream")
    except Exception as e:
        logger.exception("unexpected error completing oauth callback")
        await request.app[HealthGaugeAppKey].record_error()
        sentry_sdk.capture_exception(e)
        response = web.HTTPFound("/user/profile?social=error&reason=unexpected")

    _clear_flow_cookie(response)
    raise response


async def handle_social_disable(request: web.Request):
    account = require_login(request)
    await oauth_disable(request.app[DatabaseSessionMakerAppKey], account.id)
    raise web.HTTPFound("/user/profile?social=disabled")


async def handle_social_test(request: web.Request):
    account = require_login(request)

    try:
        remote_profile = await check_connection(
            request.app[SettingsAppKey],
            request.app[OAuthProviderAppKey],
            request.app[DatabaseSessionMakerAppKey],
            account.id,
        )
    except UpstreamFailure as e:
        logger.warning("social connection test failed for %s: %s", account.id, e)
        message = PROVIDER_MESSAGES.get(
            e.upstream_status, "Could not reach X. Please try again later."
        )
        return web.json_response(
            {"ok": False, "error": message, "status": e.upstream_status}, status=400
        )

    if remote_profile is None:
        return web.json_response(
            {"ok": False, "error": "No connected X account. Please connect first."},
            status=400,
        )

    return web.json_response(
        {
            "ok": True,
            "handle": remote_profile.handle,
            "message": f"Connected as @{remote_profile.handle}",
        }
    )
