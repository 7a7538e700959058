"""
Account Handlers

Registration, sign in and out, and the profile page.

Endpoints:
- GET/POST /user/signup - Create an account and sign it in
- GET/POST /user/signin - Exchange email and password for a session cookie
- GET /user/logout - Clear the session cookie
- GET /user/profile - Profile and linked social account state
- POST /user/profile - Change the display name
- POST /user/password - Change the password
"""

import logging

from aiohttp import web

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    OAuthProviderAppKey,
    SessionCodecAppKey,
)
from blogify.app.handlers.helpers import (
    clear_session_cookie,
    form_str,
    render,
    require_login,
    safe_next,
    set_session_cookie,
)
from blogify.errors import ValidationFailed
from blogify.store.accounts import (
    authenticate,
    change_password,
    create_account,
    get_linked_credential,
    update_account_fields,
)

logger = logging.getLogger(__name__)

# Query flags set by the social routes and shown on the profile page.
SOCIAL_MESSAGES = {
    "connected": "Your X account is connected. New posts will be announced automatically.",
    "disabled": "Auto-publish is off and the stored tokens were removed.",
    "error": "Linking your X account failed. Please try again.",
    "unconfigured": "Social linking is not configured on this server.",
}


async def handle_signup(request: web.Request):
    return await render(request, "signup.html")


async def handle_signup_submit(request: web.Request):
    data = await request.post()
    display_name = form_str(data, "displayName")
    email = form_str(data, "email")

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        async with database_session_maker() as database_session:
            async with database_session.begin():
                account = await create_account(
                    database_session,
                    email=email or "",
                    display_name=display_name or "",
                    password=form_str(data, "password") or "",
                )
    except ValidationFailed as e:
        return await render(
            request,
            "signup.html",
            context={
                "error_message": str(e),
                "display_name": display_name,
                "email": email,
            },
            status=400,
        )

    response = web.HTTPFound("/")
    set_session_cookie(request, response, request.app[SessionCodecAppKey].issue(account.id))
    raise response


async def handle_signin(request: web.Request):
    return await render(
        request, "signin.html", context={"next": safe_next(request.query.get("next"))}
    )


async def handle_signin_submit(request: web.Request):
    data = await request.post()
    email = form_str(data, "email")
    destination = safe_next(form_str(data, "next"))

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        async with database_session_maker() as database_session:
            account = await authenticate(
                database_session, email or "", form_str(data, "password") or ""
            )
    except ValidationFailed as e:
        logger.info("failed sign in for %s", email)
        return await render(
            request,
            "signin.html",
            context={"error_message": str(e), "email": email, "next": destination},
            status=400,
        )

    response = web.HTTPFound(destination)
    set_session_cookie(request, response, request.app[SessionCodecAppKey].issue(account.id))
    raise response


async def handle_logout(request: web.Request):
    response = web.HTTPFound("/")
    clear_session_cookie(response)
    raise response


async def _render_profile(
    request: web.Request, error_message=None, notice=None, status: int = 200
):
    account = require_login(request)
    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        credential = await get_linked_credential(database_session, account.id)

    social_flag = request.query.get("social", None)
    return await render(
        request,
        "profile.html",
        context={
            "profile": account,
            "credential": credential,
            "social_configured": request.app[OAuthProviderAppKey].configured,
            "social_message": SOCIAL_MESSAGES.get(social_flag or ""),
            "social_error": social_flag == "error",
            "notice": notice,
            "error_message": error_message,
        },
        status=status,
    )


async def handle_profile(request: web.Request):
    notice = None
    if request.query.get("password") == "changed":
        notice = "Your password was changed."
    elif request.query.get("profile") == "saved":
        notice = "Your profile was saved."
    return await _render_profile(request, notice=notice)


async def handle_profile_submit(request: web.Request):
    account = require_login(request)
    data = await request.post()

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        async with database_session_maker() as database_session:
            async with database_session.begin():
                await update_account_fields(
                    database_session,
                    account.id,
                    display_name=form_str(data, "displayName"),
                )
    except ValidationFailed as e:
        return await _render_profile(request, error_message=str(e), status=400)

    raise web.HTTPFound("/user/profile?profile=saved")


async def handle_password_submit(request: web.Request):
    account = require_login(request)
    data = await request.post()

    new_password = form_str(data, "newPassword") or ""
    if new_password != (form_str(data, "confirmPassword") or ""):
        return await _render_profile(
            request,
            error_message=str(
                ValidationFailed.field("new password", "does not match the confirmation")
            ),
            status=400,
        )

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        async with database_session_maker() as database_session:
            async with database_session.begin():
                await change_password(
                    database_session,
                    account.id,
                    form_str(data, "currentPassword") or "",
                    new_password,
                )
    except ValidationFailed as e:
        return await _render_profile(request, error_message=str(e), status=400)

    logger.info("account %s changed its password", account.id)
    raise web.HTTPFound("/user/profile?password=changed")
