"""
Blog Post Handlers

Endpoints:
- GET / - All posts, newest first
- GET /blog/add-new - New post form (login required)
- POST /blog - Create a post, with an optional ``coverImage`` upload
- GET /blog/{slug} - A post and its comments
- GET/POST /blog/edit/{slug} - Edit a post (author only)
- POST /blog/delete/{slug} - Delete a post and its comments (author only)
- POST /blog/comment/{slug} - Comment on a post (login required)

Edit and delete load the post first and compare its stored author with the
signed-in account before writing anything. Announcing a new post on the
author's linked social account happens after the post is committed and can
never fail the request.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional

from aiohttp import web

from blogify.app.config import (
    DatabaseSessionMakerAppKey,
    ImageStoreAppKey,
    MetricsClientAppKey,
    OAuthProviderAppKey,
    SettingsAppKey,
)
from blogify.app.handlers.helpers import (
    current_account,
    form_str,
    render,
    require_login,
)
from blogify.auth.ownership import load_owned_post
from blogify.errors import ValidationFailed
from blogify.social.oauth import publish_announcement
from blogify.store.posts import (
    add_comment,
    author_names,
    create_post,
    delete_post,
    get_post_by_slug,
    list_comments,
    list_posts,
    update_post,
    validate_post,
)

logger = logging.getLogger(__name__)

COVER_IMAGE_FIELD = "coverImage"


async def _store_cover_image(
    request: web.Request, data: Mapping[str, Any]
) -> Optional[str]:
    """Save the uploaded cover image, if one was chosen, and return its URI."""
    field = data.get(COVER_IMAGE_FIELD, None)
    if not isinstance(field, web.FileField) or not field.filename:
        return None
    loop = asyncio.get_running_loop()
    payload = await loop.run_in_executor(None, field.file.read)
    image_store = request.app[ImageStoreAppKey]
    return await image_store.save(field.filename, field.content_type, payload)


async def handle_index(request: web.Request):
    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        posts = await list_posts(database_session)
        authors = await author_names(
            database_session, [post.created_by for post in posts]
        )
    return await render(request, "home.html", context={"posts": posts, "authors": authors})


async def handle_post_new(request: web.Request):
    require_login(request)
    return await render(request, "post_form.html", context={"action": "/blog"})


async def handle_post_create(request: web.Request):
    account = require_login(request)
    data = await request.post()
    title = form_str(data, "title")
    body = form_str(data, "body")

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    try:
        (title, body) = validate_post(title, body)
        cover_image_url = await _store_cover_image(request, data)
        try:
            async with database_session_maker() as database_session:
                async with database_session.begin():
                    post = await create_post(
                        database_session, account.id, title, body, cover_image_url
                    )
        except Exception:
            if cover_image_url is not None:
                await request.app[ImageStoreAppKey].discard(cover_image_url)
            raise
    except ValidationFailed as e:
        return await render(
            request,
            "post_form.html",
            context={
                "action": "/blog",
                "error_message": str(e),
                "title": title,
                "body": body,
            },
            status=400,
        )

    await publish_announcement(
        request.app[SettingsAppKey],
        request.app[OAuthProviderAppKey],
        database_session_maker,
        request.app[MetricsClientAppKey],
        account.id,
        post.title,
        post.slug,
    )

    raise web.HTTPFound(f"/blog/{post.slug}")


async def handle_post_view(request: web.Request):
    slug = request.match_info["slug"]
    account = current_account(request)

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        post = await get_post_by_slug(database_session, slug)
        comments = await list_comments(database_session, post.id)
        authors = await author_names(
            database_session,
            [post.created_by] + [comment.created_by for comment in comments],
        )

    return await render(
        request,
        "post.html",
        context={
            "post": post,
            "comments": comments,
            "authors": authors,
            "is_owner": account is not None and account.id == post.created_by,
        },
    )


async def handle_post_edit(request: web.Request):
    slug = request.match_info["slug"]
    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        post = await load_owned_post(database_session, slug, current_account(request))

    return await render(
        request,
        "post_form.html",
        context={
            "action": f"/blog/edit/{post.slug}",
            "post": post,
            "title": post.title,
            "body": post.body,
        },
    )


async def handle_post_update(request: web.Request):
    slug = request.match_info["slug"]
    data = await request.post()
    title = form_str(data, "title")
    body = form_str(data, "body")

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        async with database_session.begin():
            post = await load_owned_post(
                database_session, slug, current_account(request)
            )
            try:
                (title, body) = validate_post(title, body)
                cover_image_url = await _store_cover_image(request, data)
                try:
                    await update_post(database_session, post, title, body, cover_image_url)
                except Exception:
                    if cover_image_url is not None:
                        await request.app[ImageStoreAppKey].discard(cover_image_url)
                    raise
            except ValidationFailed as e:
                return await render(
                    request,
                    "post_form.html",
                    context={
                        "action": f"/blog/edit/{post.slug}",
                        "post": post,
                        "error_message": str(e),
                        "title": title,
                        "body": body,
                    },
                    status=400,
                )

    logger.info("post %s updated", post.slug)
    raise web.HTTPFound(f"/blog/{post.slug}")


async def handle_post_delete(request: web.Request):
    slug = request.match_info["slug"]
    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        async with database_session.begin():
            post = await load_owned_post(
                database_session, slug, current_account(request)
            )
            await delete_post(database_session, post)

    raise web.HTTPFound("/")


async def handle_comment_create(request: web.Request):
    account = require_login(request)
    slug = request.match_info["slug"]
    data = await request.post()

    database_session_maker = request.app[DatabaseSessionMakerAppKey]
    async with database_session_maker() as database_session:
        async with database_session.begin():
            post = await get_post_by_slug(database_session, slug)
            await add_comment(
                database_session, post, account.id, form_str(data, "body") or ""
            )

    raise web.HTTPFound(f"/blog/{slug}")
