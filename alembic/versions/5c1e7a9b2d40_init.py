"""init

Revision ID: 5c1e7a9b2d40
Revises:
Create Date: 2026-10-19 09:12:41.508113

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c1e7a9b2d40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("email", sa.String(256), nullable=False),
        sa.Column("display_name", sa.String(256), nullable=False),
        sa.Column("password_hash", sa.String(128), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "linked_social_credentials",
        sa.Column(
            "account_id",
            sa.String(32),
            sa.ForeignKey("accounts.id"),
            primary_key=True,
        ),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("access_token", sa.Text, nullable=True),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remote_account_id", sa.String(128), nullable=True),
        sa.Column("remote_handle", sa.String(512), nullable=True),
        sa.Column("auto_publish", sa.Boolean, nullable=False),
        sa.Column("last_publish_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "posts",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("slug", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("cover_image_url", sa.String(512), nullable=True),
        sa.Column(
            "created_by", sa.String(32), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_posts_slug", "posts", ["slug"], unique=True)
    op.create_index("idx_posts_created_by", "posts", ["created_by"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column(
            "created_by", sa.String(32), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column(
            "post_id", sa.String(32), sa.ForeignKey("posts.id"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_comments_post_id", "comments", ["post_id"])


def downgrade() -> None:
    op.drop_table("comments")
    op.drop_table("posts")
    op.drop_table("linked_social_credentials")
    op.drop_table("accounts")
