"""
Credential store.

Accounts are looked up by id or email and created or partially updated
here. Password material is hashed exactly once, at this boundary, and only
for fields modified in the current call: callers hand over plaintext under
``password`` and never a hash.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from ulid import ULID

from blogify.auth.passwords import (
    MAX_PASSWORD_BYTES,
    MIN_PASSWORD_LENGTH,
    hash_password,
    looks_hashed,
    verify_password,
)
from blogify.errors import NotFound, ValidationFailed
from blogify.model.account import ROLE_USER, ROLES, Account, LinkedSocialCredential
from blogify.model.base import utcnow

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

UPDATABLE_FIELDS = frozenset({"email", "display_name", "role", "password"})


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validated_email(email: Optional[str]) -> str:
    if email is None or not _EMAIL.match(normalize_email(email)):
        raise ValidationFailed.field("email", "must be a valid address")
    return normalize_email(email)


def _validated_display_name(display_name: Optional[str]) -> str:
    if display_name is None or len(display_name.strip()) == 0:
        raise ValidationFailed.field("display name", "must not be empty")
    if len(display_name) > 256:
        raise ValidationFailed.field("display name", "is too long")
    return display_name.strip()


def _password_hash_for(password: Optional[str]) -> str:
    if password is None:
        raise ValidationFailed.field("password", "is required")
    if looks_hashed(password):
        raise ValidationFailed.prehashed_password()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed.field(
            "password", f"must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed.field("password", "is too long")
    return hash_password(password)


async def get_account(session: AsyncSession, account_id: str) -> Optional[Account]:
    return (await session.scalars(select(Account).where(Account.id == account_id))).first()


async def find_account_by_id(session: AsyncSession, account_id: str) -> Account:
    account = await get_account(session, account_id)
    if account is None:
        raise NotFound.account()
    return account


async def find_account_by_email(session: AsyncSession, email: str) -> Account:
    stmt = select(Account).where(Account.email == normalize_email(email))
    account: Optional[Account] = (await session.scalars(stmt)).first()
    if account is None:
        raise NotFound.account()
    return account


async def _email_taken(
    session: AsyncSession, email: str, exclude_id: Optional[str] = None
) -> bool:
    stmt = select(Account.id).where(Account.email == email)
    if exclude_id is not None:
        stmt = stmt.where(Account.id != exclude_id)
    return (await session.scalars(stmt)).first() is not None


async def create_account(
    session: AsyncSession,
    email: str,
    display_name: str,
    password: str,
    role: str = ROLE_USER,
    now: Optional[datetime] = None,
) -> Account:
    email = _validated_email(email)
    display_name = _validated_display_name(display_name)
    if role not in ROLES:
        raise ValidationFailed.field("role", f"must be one of {', '.join(ROLES)}")

    if await _email_taken(session, email):
        raise ValidationFailed.duplicate_email()

    if now is None:
        now = utcnow()

    account = Account(
        id=str(ULID()),
        email=email,
        display_name=display_name,
        password_hash=_password_hash_for(password),
        role=role,
        created_at=now,
        updated_at=now,
    )
    session.add(account)
    try:
        await session.flush()
    except IntegrityError as e:
        # Lost a race against a concurrent registration.
        raise ValidationFailed.duplicate_email() from e

    logger.info("created account %s", account.id)
    return account


async def update_account_fields(
    session: AsyncSession, account_id: str, **fields: Any
) -> Account:
    """Apply a partial update. Only ``UPDATABLE_FIELDS`` are accepted."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if "password_hash" in unknown:
        raise ValidationFailed.prehashed_password()
    if unknown:
        raise ValidationFailed.field(sorted(unknown)[0], "cannot be updated")

    account = await find_account_by_id(session, account_id)

    if "email" in fields:
        email = _validated_email(fields["email"])
        if await _email_taken(session, email, exclude_id=account.id):
            raise ValidationFailed.duplicate_email()
        account.email = email

    if "display_name" in fields:
        account.display_name = _validated_display_name(fields["display_name"])

    if "role" in fields:
        if fields["role"] not in ROLES:
            raise ValidationFailed.field("role", f"must be one of {', '.join(ROLES)}")
        account.role = fields["role"]

    if "password" in fields:
        account.password_hash = _password_hash_for(fields["password"])

    account.updated_at = utcnow()
    try:
        await session.flush()
    except IntegrityError as e:
        raise ValidationFailed.duplicate_email() from e
    return account


async def authenticate(session: AsyncSession, email: str, password: str) -> Account:
    """Return the account for matching credentials or raise ``ValidationFailed``."""
    try:
        account = await find_account_by_email(session, email)
    except NotFound:
        raise ValidationFailed.invalid_credentials()
    if not verify_password(password, account.password_hash):
        raise ValidationFailed.invalid_credentials()
    return account


async def change_password(
    session: AsyncSession, account_id: str, current_password: str, new_password: str
) -> Account:
    account = await find_account_by_id(session, account_id)
    if not verify_password(current_password, account.password_hash):
        raise ValidationFailed.field("current password", "is incorrect")
    return await update_account_fields(session, account_id, password=new_password)


async def get_linked_credential(
    session: AsyncSession, account_id: str
) -> Optional[LinkedSocialCredential]:
    stmt = select(LinkedSocialCredential).where(
        LinkedSocialCredential.account_id == account_id
    )
    return (await session.scalars(stmt)).first()
