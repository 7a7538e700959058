"""Account and linked social credential models.

An account owns posts and comments and may carry one linked social
credential. The credential lives in its own table keyed by the account id,
so unlinking clears tokens but keeps the row (and the last known handle).
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blogify.model.base import Base, str256, str512, ulidpk

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class Account(Base):
    """A registered user. The password is only ever stored as a bcrypt hash."""

    __tablename__ = "accounts"

    id: Mapped[ulidpk]
    email: Mapped[str256]
    display_name: Mapped[str256]
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_USER)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (Index("idx_accounts_email", "email", unique=True),)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class LinkedSocialCredential(Base):
    """Encrypted third-party tokens plus the auto-publish preference.

    Tokens are Fernet ciphertexts. A credential without an access token is
    "not connected" whatever the value of ``auto_publish``.
    """

    __tablename__ = "linked_social_credentials"

    account_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accounts.id"), primary_key=True
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    remote_account_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True
    )
    remote_handle: Mapped[Optional[str512]] = mapped_column(nullable=True)
    auto_publish: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_publish_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    @property
    def is_connected(self) -> bool:
        return self.access_token is not None

    @property
    def publishes(self) -> bool:
        return self.auto_publish and self.is_connected
