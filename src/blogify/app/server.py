import asyncio
import contextlib
import logging
import os
from time import time
from typing import Optional

import aiohttp
import aiohttp_jinja2
import jinja2
import redis.asyncio as redis
import sentry_sdk
from aiohttp import web
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from blogify.app.config import (
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    HealthGaugeAppKey,
    ImageStoreAppKey,
    MetricsClientAppKey,
    OAuthFlowStoreAppKey,
    OAuthProviderAppKey,
    RedisClientAppKey,
    RedisPoolAppKey,
    SessionAppKey,
    SessionCodecAppKey,
    Settings,
    SettingsAppKey,
    TextGenerationAppKey,
    TickHealthTaskAppKey,
)
from blogify.app.handlers.accounts import (
    handle_logout,
    handle_password_submit,
    handle_profile,
    handle_profile_submit,
    handle_signin,
    handle_signin_submit,
    handle_signup,
    handle_signup_submit,
)
from blogify.app.handlers.assistant import (
    handle_assistant_calendar,
    handle_assistant_draft,
    handle_assistant_seo,
)
from blogify.app.handlers.helpers import (
    authentication_middleware,
    current_account,
    render,
    signin_location,
    wants_json,
)
from blogify.app.handlers.internal import (
    handle_internal_alive,
    handle_internal_me,
    handle_internal_ready,
)
from blogify.app.handlers.posts import (
    handle_comment_create,
    handle_index,
    handle_post_create,
    handle_post_delete,
    handle_post_edit,
    handle_post_new,
    handle_post_update,
    handle_post_view,
)
from blogify.app.handlers.social import (
    handle_social_callback,
    handle_social_connect,
    handle_social_disable,
    handle_social_test,
)
from blogify.app.metrics import create_metrics_client
from blogify.app.tasks import tick_health_task
from blogify.assistant.provider import OpenAIChatProvider
from blogify.auth.session import SessionTokenCodec
from blogify.errors import BlogifyError, InvalidOAuthState, Unauthorized
from blogify.model.health import HealthGauge
from blogify.social.provider import TwitterOAuthProvider
from blogify.social.transient import OAuthFlowStore
from blogify.uploads import LocalImageStore

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")


async def background_tasks(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(settings.database_url)
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session

    trace_config = aiohttp.TraceConfig()

    if settings.debug:

        async def on_request_start(
            session, trace_config_ctx, params: aiohttp.TraceRequestStartParams
        ):
            logger.debug("Starting request: %s %s", params.method, params.url)

        async def on_request_end(
            session, trace_config_ctx, params: aiohttp.TraceRequestEndParams
        ):
            logger.debug(
                "Ending request: %s %s %s",
                params.method,
                params.url,
                params.response.status,
            )

        trace_config.on_request_start.append(on_request_start)
        trace_config.on_request_end.append(on_request_end)

    http_session = aiohttp.ClientSession(trace_configs=[trace_config])
    app[SessionAppKey] = http_session

    app[RedisPoolAppKey] = redis.ConnectionPool.from_url(str(settings.redis_dsn))
    app[RedisClientAppKey] = redis.Redis(connection_pool=app[RedisPoolAppKey])

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    app[OAuthProviderAppKey] = TwitterOAuthProvider(
        http_session,
        settings.social_client_id,
        settings.social_client_secret,
        settings.social_callback_url,
        settings.social_scopes,
    )
    app[OAuthFlowStoreAppKey] = OAuthFlowStore(
        app[RedisClientAppKey], settings.oauth_flow_ttl
    )
    app[TextGenerationAppKey] = OpenAIChatProvider(
        http_session,
        settings.llm_base_url,
        settings.llm_api_key,
        timeout_seconds=settings.llm_timeout,
    )

    logger.info("Startup complete")

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    await app[DatabaseAppKey].dispose()
    await app[SessionAppKey].close()
    await app[RedisPoolAppKey].aclose()
    await app[MetricsClientAppKey].close()


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        response = await handler(request)
        return response
    except (web.HTTPException, BlogifyError):
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        raise e


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method
    request_path = request.path
    if request.match_info.route.resource is not None:
        request_path = request.match_info.route.resource.canonical

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise e
    except Exception as e:
        metrics_client.increment(
            "blogify.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "blogify.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "blogify.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


async def _error_response(request: web.Request, status: int, message: str):
    if wants_json(request):
        return web.json_response({"error": message}, status=status)
    return await render(
        request, "alert.html", context={"error_message": message}, status=status
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    """
    Map the error taxonomy onto responses.

    Unauthorized sends browsers to the sign in page, a failed OAuth state check
    goes back to the profile with an error flag, and other Blogify errors answer
    with their status. Anything else is a 500 with a generic message.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Unauthorized as e:
        if wants_json(request):
            return web.json_response({"error": str(e)}, status=e.status)
        raise web.HTTPFound(signin_location(request))
    except InvalidOAuthState as e:
        logger.warning("invalid oauth state: %s", e)
        raise web.HTTPFound("/user/profile?social=error&reason=state")
    except BlogifyError as e:
        if e.status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, e)
        return await _error_response(request, e.status, str(e))
    except Exception as e:
        logger.exception("Unexpected error handling %s %s", request.method, request.path)
        await request.app[HealthGaugeAppKey].record_error()

        message = "Internal Server Error"
        if request.app[SettingsAppKey].debug:
            message = f"Internal Server Error: {type(e).__name__}"
        return await _error_response(request, 500, message)


async def template_context(request: web.Request):
    return {"account": current_account(request)}


def build_app(settings: Settings) -> web.Application:
    """
    Create the application with its routes, middleware and stateless services.

    Resources that need a running loop (database, redis, HTTP client, metrics
    and the providers built on them) are attached by ``background_tasks``, which
    ``start_web_server`` installs. Tests may attach their own instead.
    """
    app = web.Application(
        middlewares=[
            statsd_middleware,
            error_middleware,
            sentry_middleware,
            authentication_middleware,
        ]
    )

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()
    app[SessionCodecAppKey] = SessionTokenCodec(
        settings.session_secret, settings.session_token_expiry
    )
    app[ImageStoreAppKey] = LocalImageStore(settings.static_dir, settings.upload_subdir)

    os.makedirs(settings.static_dir, exist_ok=True)
    app.add_routes([web.static("/static", settings.static_dir, append_version=True)])

    app.add_routes(
        [
            web.get("/", handle_index),
            web.get("/blog/add-new", handle_post_new),
            web.post("/blog", handle_post_create),
            web.get("/blog/edit/{slug}", handle_post_edit),
            web.post("/blog/edit/{slug}", handle_post_update),
            web.post("/blog/delete/{slug}", handle_post_delete),
            web.post("/blog/comment/{slug}", handle_comment_create),
            web.get("/blog/{slug}", handle_post_view),
        ]
    )

    app.add_routes(
        [
            web.get("/user/signup", handle_signup),
            web.post("/user/signup", handle_signup_submit),
            web.get("/user/signin", handle_signin),
            web.post("/user/signin", handle_signin_submit),
            web.get("/user/logout", handle_logout),
            web.get("/user/profile", handle_profile),
            web.post("/user/profile", handle_profile_submit),
            web.post("/user/password", handle_password_submit),
        ]
    )

    app.add_routes(
        [
            web.get("/social/connect", handle_social_connect),
            web.get("/social/callback", handle_social_callback),
            web.post("/social/disable", handle_social_disable),
            web.post("/social/test", handle_social_test),
        ]
    )

    app.add_routes(
        [
            web.post("/assistant/draft", handle_assistant_draft),
            web.post("/assistant/seo", handle_assistant_seo),
            web.get("/assistant/calendar", handle_assistant_calendar),
        ]
    )

    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
            web.get("/internal/api/me", handle_internal_me),
        ]
    )

    _ = aiohttp_jinja2.setup(
        app,
        enable_async=True,
        loader=jinja2.FileSystemLoader(TEMPLATE_DIR),
        autoescape=jinja2.select_autoescape(["html"]),
        context_processors=[template_context],
    )

    return app


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=True,
            integrations=[AioHttpIntegration()],
        )

    app = build_app(settings)
    app.cleanup_ctx.append(background_tasks)

    return app
