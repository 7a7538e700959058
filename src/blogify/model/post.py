"""Post and comment models.

Comments reference their post by id; deleting a post removes its comments
in the same transaction (see ``blogify.store.posts.delete_post``).
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blogify.model.base import Base, str256, str512, ulidpk


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[ulidpk]
    slug: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str256]
    body: Mapped[str] = mapped_column(Text, nullable=False)
    cover_image_url: Mapped[Optional[str512]] = mapped_column(nullable=True)
    created_by: Mapped[str] = mapped_column(
        String(32), ForeignKey("accounts.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_posts_slug", "slug", unique=True),
        Index("idx_posts_created_by", "created_by"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[ulidpk]
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(
        String(32), ForeignKey("accounts.id"), nullable=False
    )
    post_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("posts.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (Index("idx_comments_post_id", "post_id"),)
