"""
Tests for post and comment persistence, slugs and ownership checks.
"""

from datetime import timedelta

import pytest

from blogify.auth.ownership import load_owned_post
from blogify.errors import Forbidden, NotFound, Unauthorized, ValidationFailed
from blogify.model.post import Post
from blogify.slug import slugify
from blogify.store.posts import (
    add_comment,
    author_names,
    count_comments,
    create_post,
    delete_post,
    get_post_by_slug,
    list_comments,
    list_posts,
    list_recent_posts_by_account,
    update_post,
)
from tests.test_helpers import generate_test_datetime, make_account


class TestSlugify:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Hello World", "hello-world"),
            ("  Hello,   World!  ", "hello-world"),
            ("Python 3.12 -- what's new?", "python-312-whats-new"),
            ("already-a-slug", "already-a-slug"),
            ("!!!", ""),
        ],
    )
    def test_slugify(self, text, expected):
        assert slugify(text) == expected

    def test_length_limit(self):
        slug = slugify("word " * 40)
        assert len(slug) <= 50
        assert not slug.endswith("-")


class TestPosts:
    @pytest.mark.asyncio
    async def test_create_post(self, session):
        author = await make_account(session)
        post = await create_post(session, author.id, "Hello World", "First post body")
        await session.commit()

        assert post.slug == "hello-world"
        assert post.created_by == author.id
        assert post.cover_image_url is None

        found = await get_post_by_slug(session, "hello-world")
        assert found.id == post.id
        assert found.title == "Hello World"

    @pytest.mark.asyncio
    async def test_slugs_made_unique(self, session):
        author = await make_account(session)
        first = await create_post(session, author.id, "Hello World", "one")
        second = await create_post(session, author.id, "Hello, World!", "two")
        third = await create_post(session, author.id, "hello world", "three")
        await session.commit()
        assert [first.slug, second.slug, third.slug] == [
            "hello-world",
            "hello-world-2",
            "hello-world-3",
        ]

    @pytest.mark.asyncio
    async def test_reserved_and_empty_slugs_avoided(self, session):
        author = await make_account(session)
        reserved = await create_post(session, author.id, "Add New", "body")
        symbols = await create_post(session, author.id, "???", "body")
        assert reserved.slug == "add-new-2"
        assert symbols.slug == "post"

    @pytest.mark.asyncio
    async def test_thousandth_collision_on_long_title(self, session):
        author = await make_account(session)
        title = "a" * 60
        base = "a" * 50
        now = generate_test_datetime()
        taken = [base] + [f"{base[: 50 - len(f'-{n}')]}-{n}" for n in range(2, 1000)]
        session.add_all(
            [
                Post(
                    id=f"01HPOST{n:06d}",
                    slug=slug,
                    title=title,
                    body="body",
                    created_by=author.id,
                    created_at=now,
                    updated_at=now,
                )
                for (n, slug) in enumerate(taken)
            ]
        )
        await session.flush()

        post = await create_post(session, author.id, title, "body")
        assert post.slug == "a" * 45 + "-1000"

        # The widened lookup also sees slugs beyond the first suffix width.
        again = await create_post(session, author.id, title, "body")
        assert again.slug == "a" * 45 + "-1001"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,body", [("", "body"), ("  ", "body"), ("Title", "")])
    async def test_empty_title_or_body_rejected(self, session, title, body):
        author = await make_account(session)
        with pytest.raises(ValidationFailed):
            await create_post(session, author.id, title, body)

    @pytest.mark.asyncio
    async def test_missing_post(self, session):
        with pytest.raises(NotFound):
            await get_post_by_slug(session, "missing")

    @pytest.mark.asyncio
    async def test_list_newest_first(self, session):
        author = await make_account(session)
        older = await create_post(
            session, author.id, "Older", "body", now=generate_test_datetime(-10)
        )
        newer = await create_post(
            session, author.id, "Newer", "body", now=generate_test_datetime()
        )
        await session.commit()

        assert [post.id for post in await list_posts(session)] == [newer.id, older.id]
        assert [post.id for post in await list_posts(session, limit=1)] == [newer.id]

    @pytest.mark.asyncio
    async def test_recent_posts_by_account(self, session):
        author = await make_account(session)
        other = await make_account(session, email="u2@example.com")
        start = generate_test_datetime(-60)
        for i in range(5):
            await create_post(
                session, author.id, f"Post {i}", "body", now=start + timedelta(minutes=i)
            )
        await create_post(session, other.id, "Not mine", "body")
        await session.commit()

        recent = await list_recent_posts_by_account(session, author.id, limit=3)
        assert [post.title for post in recent] == ["Post 4", "Post 3", "Post 2"]

    @pytest.mark.asyncio
    async def test_update_keeps_slug_owner_and_cover(self, session):
        author = await make_account(session)
        post = await create_post(
            session, author.id, "Hello World", "body", "/static/uploads/a.png"
        )
        await update_post(session, post, "A Different Title", "new body")
        await session.commit()

        found = await get_post_by_slug(session, "hello-world")
        assert found.title == "A Different Title"
        assert found.body == "new body"
        assert found.created_by == author.id
        assert found.cover_image_url == "/static/uploads/a.png"

    @pytest.mark.asyncio
    async def test_delete_removes_comments(self, session):
        author = await make_account(session)
        reader = await make_account(session, email="u2@example.com")
        post = await create_post(session, author.id, "Hello World", "body")
        kept = await create_post(session, author.id, "Another", "body")
        await add_comment(session, post, reader.id, "first")
        await add_comment(session, post, author.id, "second")
        await add_comment(session, kept, reader.id, "elsewhere")
        await session.commit()

        assert await count_comments(session, post.id) == 2
        removed = await delete_post(session, post)
        await session.commit()

        assert removed == 2
        assert await count_comments(session, post.id) == 0
        assert await count_comments(session, kept.id) == 1
        with pytest.raises(NotFound):
            await get_post_by_slug(session, "hello-world")

    @pytest.mark.asyncio
    async def test_comments_and_author_names(self, session):
        author = await make_account(session)
        reader = await make_account(session, email="u2@example.com", display_name="Reader")
        post = await create_post(session, author.id, "Hello World", "body")
        await add_comment(session, post, reader.id, "older", now=generate_test_datetime(-5))
        await add_comment(session, post, author.id, "newer", now=generate_test_datetime())
        await session.commit()

        comments = await list_comments(session, post.id)
        assert [comment.body for comment in comments] == ["newer", "older"]

        names = await author_names(session, [c.created_by for c in comments])
        assert names == {author.id: "User One", reader.id: "Reader"}
        assert await author_names(session, []) == {}

    @pytest.mark.asyncio
    async def test_empty_comment_rejected(self, session):
        author = await make_account(session)
        post = await create_post(session, author.id, "Hello World", "body")
        with pytest.raises(ValidationFailed):
            await add_comment(session, post, author.id, "   ")


class TestOwnership:
    @pytest.mark.asyncio
    async def test_owner_loads_post(self, session):
        author = await make_account(session)
        post = await create_post(session, author.id, "Hello World", "body")
        await session.commit()

        loaded = await load_owned_post(session, "hello-world", author)
        assert loaded.id == post.id

    @pytest.mark.asyncio
    async def test_anonymous_refused_before_lookup(self, session):
        # Unauthorized even though the post does not exist.
        with pytest.raises(Unauthorized):
            await load_owned_post(session, "missing", None)

    @pytest.mark.asyncio
    async def test_other_account_forbidden(self, session):
        author = await make_account(session)
        other = await make_account(session, email="u2@example.com")
        await create_post(session, author.id, "Hello World", "body")
        await session.commit()

        with pytest.raises(Forbidden):
            await load_owned_post(session, "hello-world", other)

        unchanged = await get_post_by_slug(session, "hello-world")
        assert unchanged.title == "Hello World"
        assert unchanged.created_by == author.id

    @pytest.mark.asyncio
    async def test_missing_post_for_signed_in_account(self, session):
        author = await make_account(session)
        with pytest.raises(NotFound):
            await load_owned_post(session, "missing", author)
