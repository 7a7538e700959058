import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import aiohttp_jinja2
import sentry_sdk
from aiohttp import web

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    MetricsClientAppKey,
    SessionCodecAppKey,
    SettingsAppKey,
)
from blogify.auth.ownership import require_account
from blogify.auth.session import SESSION_COOKIE
from blogify.model.account import Account
from blogify.store.accounts import get_account

logger = logging.getLogger(__name__)

ACCOUNT_KEY = "account"


async def authenticate_request(request: web.Request) -> Optional[Account]:
    """
    Resolve the session cookie into an account, or None for an anonymous request.

    This never fails the request: a missing, malformed, forged or expired cookie
    and a token for a deleted account all leave the request anonymous.
    Enforcement is up to the individual routes.
    """
    serialized_token = request.cookies.get(SESSION_COOKIE, None)
    if serialized_token is None or len(serialized_token) == 0:
        return None

    account_id = request.app[SessionCodecAppKey].verify(serialized_token)
    if account_id is None:
        return None

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        async with database_session_maker() as database_session:
            account = await get_account(database_session, account_id)
    except Exception as e:
        sentry_sdk.capture_exception(e)
        request.app[MetricsClientAppKey].increment(
            "blogify.auth.exception",
            1,
            tag_dict={"exception": type(e).__name__},
        )
        logger.exception("authenticate_request: Exception")
        return None

    if account is None:
        logger.info("session token refers to missing account %s", account_id)
    return account


@web.middleware
async def authentication_middleware(request: web.Request, handler):
    request[ACCOUNT_KEY] = await authenticate_request(request)
    return await handler(request)


def current_account(request: web.Request) -> Optional[Account]:
    return request.get(ACCOUNT_KEY, None)


def require_login(request: web.Request) -> Account:
    return require_account(current_account(request))


def wants_json(request: web.Request) -> bool:
    if request.path.startswith("/assistant/") or request.path.startswith(
        "/internal/api/"
    ):
        return True
    return "application/json" in request.headers.get("Accept", "")


def signin_location(request: web.Request) -> str:
    return "/user/signin?" + urlencode({"next": request.path_qs})


def safe_next(location: Optional[str]) -> str:
    """Only follow same-site relative redirects."""
    if location is None or not location.startswith("/") or location.startswith("//"):
        return "/"
    return location


def set_session_cookie(request: web.Request, response: web.StreamResponse, token: str):
    settings = request.app[SettingsAppKey]
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_token_expiry,
        path="/",
        httponly=True,
        samesite="Lax",
        secure=settings.secure_cookies,
    )


def clear_session_cookie(response: web.StreamResponse):
    response.del_cookie(SESSION_COOKIE, path="/")


def form_str(data: Mapping[str, Any], name: str) -> Optional[str]:
    """A text form field, or None when absent or a file upload."""
    value = data.get(name, None)
    if isinstance(value, str):
        return value
    return None


async def render(
    request: web.Request,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    status: int = 200,
) -> web.Response:
    return await aiohttp_jinja2.render_template_async(
        template, request, context=context or {}, status=status
    )
