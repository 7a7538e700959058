"""
Post and comment persistence.

Slugs are derived from the title once, at creation, and made unique by
suffixing ``-2``, ``-3``... Deleting a post removes its comments first; the
database does not cascade on its own.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ulid import ULID

from blogify.errors import NotFound, ValidationFailed
from blogify.model.account import Account
from blogify.model.base import utcnow
from blogify.model.post import Comment, Post
from blogify.slug import DEFAULT_SLUG, SLUG_MAX_LENGTH, slugify

logger = logging.getLogger(__name__)

# Slugs that would shadow static routes under /blog/.
RESERVED_SLUGS = frozenset({"add-new", "edit", "delete", "comment"})

TITLE_MAX_LENGTH = 256


def _validated_title(title: Optional[str]) -> str:
    if title is None or len(title.strip()) == 0:
        raise ValidationFailed.field("title", "must not be empty")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationFailed.field("title", "is too long")
    return title.strip()


def _validated_body(body: Optional[str], name: str = "body") -> str:
    if body is None or len(body.strip()) == 0:
        raise ValidationFailed.field(name, "must not be empty")
    return body


def validate_post(title: Optional[str], body: Optional[str]) -> Tuple[str, str]:
    return _validated_title(title), _validated_body(body)


async def _slugs_sharing_prefix(session: AsyncSession, base: str, prefix_length: int):
    stmt = select(Post.slug).where(
        (Post.slug == base) | (Post.slug.like(f"{base[:prefix_length]}%"))
    )
    return set((await session.scalars(stmt)).all())


async def unique_slug(session: AsyncSession, title: str) -> str:
    base = slugify(title) or DEFAULT_SLUG

    # Covers every candidate up to "-999"; longer suffixes cut more of the base
    # and widen the lookup.
    queried_length = SLUG_MAX_LENGTH - 4
    taken = await _slugs_sharing_prefix(session, base, queried_length)
    taken.update(RESERVED_SLUGS)

    if base not in taken:
        return base

    counter = 2
    while True:
        suffix = f"-{counter}"
        kept_length = SLUG_MAX_LENGTH - len(suffix)
        if kept_length < queried_length:
            queried_length = kept_length
            taken.update(await _slugs_sharing_prefix(session, base, queried_length))
        candidate = f"{base[:kept_length]}{suffix}"
        if candidate not in taken:
            return candidate
        counter += 1


async def create_post(
    session: AsyncSession,
    author_id: str,
    title: str,
    body: str,
    cover_image_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Post:
    title = _validated_title(title)
    body = _validated_body(body)
    if now is None:
        now = utcnow()

    post = Post(
        id=str(ULID()),
        slug=await unique_slug(session, title),
        title=title,
        body=body,
        cover_image_url=cover_image_url,
        created_by=author_id,
        created_at=now,
        updated_at=now,
    )
    session.add(post)
    try:
        await session.flush()
    except IntegrityError as e:
        raise ValidationFailed.field("title", "produces a slug already in use") from e

    logger.info("account %s created post %s (%s)", author_id, post.id, post.slug)
    return post


async def get_post_by_slug(session: AsyncSession, slug: str) -> Post:
    post: Optional[Post] = (
        await session.scalars(select(Post).where(Post.slug == slug))
    ).first()
    if post is None:
        raise NotFound.post()
    return post


async def list_posts(session: AsyncSession, limit: Optional[int] = None) -> List[Post]:
    stmt = select(Post).order_by(Post.created_at.desc(), Post.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.scalars(stmt)).all())


async def list_recent_posts_by_account(
    session: AsyncSession, account_id: str, limit: int = 3
) -> List[Post]:
    stmt = (
        select(Post)
        .where(Post.created_by == account_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(limit)
    )
    return list((await session.scalars(stmt)).all())


async def update_post(
    session: AsyncSession,
    post: Post,
    title: str,
    body: str,
    cover_image_url: Optional[str] = None,
) -> Post:
    """Overwrite title and body, and the cover only when a new one is given.

    The owner and the slug never change. Authorization is the caller's job.
    """
    post.title = _validated_title(title)
    post.body = _validated_body(body)
    if cover_image_url is not None:
        post.cover_image_url = cover_image_url
    post.updated_at = utcnow()
    await session.flush()
    return post


async def delete_post(session: AsyncSession, post: Post) -> int:
    """Delete ``post`` and every comment on it. Returns the number of comments removed."""
    result = await session.execute(delete(Comment).where(Comment.post_id == post.id))
    await session.delete(post)
    await session.flush()
    removed = result.rowcount or 0
    logger.info("deleted post %s and %d comments", post.id, removed)
    return removed


async def add_comment(
    session: AsyncSession,
    post: Post,
    author_id: str,
    body: str,
    now: Optional[datetime] = None,
) -> Comment:
    comment = Comment(
        id=str(ULID()),
        body=_validated_body(body, "comment"),
        created_by=author_id,
        post_id=post.id,
        created_at=now or utcnow(),
    )
    session.add(comment)
    await session.flush()
    return comment


async def list_comments(session: AsyncSession, post_id: str) -> List[Comment]:
    stmt = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    return list((await session.scalars(stmt)).all())


async def count_comments(session: AsyncSession, post_id: str) -> int:
    stmt = select(func.count()).select_from(Comment).where(Comment.post_id == post_id)
    return int((await session.scalar(stmt)) or 0)


async def author_names(
    session: AsyncSession, account_ids: Iterable[str]
) -> Dict[str, str]:
    ids = set(account_ids)
    if len(ids) == 0:
        return {}
    stmt = select(Account.id, Account.display_name).where(Account.id.in_(ids))
    return {row.id: row.display_name for row in (await session.execute(stmt)).all()}
