"""
Content Assistant Handlers

JSON endpoints wrapping the content generation workflows. Every response
carries the workflow output, how the model reply was interpreted
(``outcome``) and an ``error`` string when the provider failed. Provider
failures never turn into error responses: the workflows fall back to locally
computed defaults instead.

Endpoints:
- POST /assistant/draft - ``{"topic": ...}``
- POST /assistant/seo - ``{"content": ..., "title": ...}``
- GET /assistant/calendar - suggestions from the caller's recent posts
"""

import logging
from typing import Any, Dict

from aiohttp import web

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    SettingsAppKey,
    TextGenerationAppKey,
)
from blogify.app.handlers.helpers import require_login
from blogify.assistant import workflows
from blogify.errors import ValidationFailed
from blogify.model.base import utcnow
from blogify.store.posts import list_recent_posts_by_account

logger = logging.getLogger(__name__)


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed.field("request body", "must be a JSON object")
    if not isinstance(body, dict):
        raise ValidationFailed.field("request body", "must be a JSON object")
    return body


def _required_text(body: Dict[str, Any], name: str) -> str:
    value = body.get(name, None)
    if not isinstance(value, str) or len(value.strip()) == 0:
        raise ValidationFailed.field(name, "must not be empty")
    return value


async def handle_assistant_draft(request: web.Request):
    require_login(request)
    body = await _json_body(request)
    topic = _required_text(body, "topic").strip()

    result = await workflows.draft(
        request.app[TextGenerationAppKey], request.app[SettingsAppKey].llm_model, topic
    )
    return web.json_response(
        {
            "topic": topic,
            "draft": result.value.model_dump(),
            "outcome": result.outcome,
            "error": result.error,
        }
    )


async def handle_assistant_seo(request: web.Request):
    require_login(request)
    body = await _json_body(request)
    content = _required_text(body, "content")
    title = body.get("title", None)
    if not isinstance(title, str):
        title = ""

    result = await workflows.seo_metadata(
        request.app[TextGenerationAppKey],
        request.app[SettingsAppKey].llm_model,
        content,
        title,
    )
    return web.json_response(
        {
            "meta": result.value.model_dump(),
            "outcome": result.outcome,
            "error": result.error,
        }
    )


async def handle_assistant_calendar(request: web.Request):
    account = require_login(request)

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        recent_posts = await list_recent_posts_by_account(
            database_session, account.id, limit=workflows.CALENDAR_RECENT_POSTS
        )

    result = await workflows.calendar(
        request.app[TextGenerationAppKey],
        request.app[SettingsAppKey].llm_model,
        recent_posts,
        utcnow().date(),
    )
    return web.json_response(
        {
            "topics": [entry.model_dump(by_alias=True) for entry in result.value],
            "outcome": result.outcome,
            "error": result.error,
        }
    )
