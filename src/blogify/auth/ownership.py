"""
Ownership authorization for mutating post routes.

The order is fixed: an identity is required first, then the post is loaded
from storage, then its stored owner is compared with the identity. Nothing
the client sends about ownership is trusted.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from blogify.errors import Forbidden, Unauthorized
from blogify.model.account import Account
from blogify.model.post import Post
from blogify.store.posts import get_post_by_slug


def require_account(account: Optional[Account]) -> Account:
    if account is None:
        raise Unauthorized.login_required()
    return account


def require_owner(post: Post, account: Account) -> None:
    if post.created_by != account.id:
        raise Forbidden.not_owner()


async def load_owned_post(
    session: AsyncSession, slug: str, account: Optional[Account]
) -> Post:
    owner = require_account(account)
    post = await get_post_by_slug(session, slug)
    require_owner(post, owner)
    return post
