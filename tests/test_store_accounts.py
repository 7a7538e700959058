"""
Tests for the credential store and password hashing.
"""

import pytest

from blogify.auth.passwords import hash_password, looks_hashed, verify_password
from blogify.errors import NotFound, ValidationFailed
from blogify.store.accounts import (
    authenticate,
    change_password,
    create_account,
    find_account_by_email,
    find_account_by_id,
    get_account,
    update_account_fields,
)
from tests.test_helpers import DEFAULT_PASSWORD, make_account


class TestPasswords:
    def test_hash_and_verify(self):
        password_hash = hash_password("hunter22hunter22")
        assert password_hash != "hunter22hunter22"
        assert looks_hashed(password_hash)
        assert verify_password("hunter22hunter22", password_hash)
        assert not verify_password("hunter22hunter23", password_hash)

    def test_salted(self):
        assert hash_password("same password") != hash_password("same password")

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_plaintext_does_not_look_hashed(self):
        assert not looks_hashed("correct horse battery")


class TestCreateAccount:
    @pytest.mark.asyncio
    async def test_create_and_find(self, session):
        account = await make_account(session, email="  U1@Example.COM ")
        assert account.email == "u1@example.com"
        assert account.role == "user"
        assert account.password_hash != DEFAULT_PASSWORD
        assert verify_password(DEFAULT_PASSWORD, account.password_hash)

        found = await find_account_by_email(session, "u1@example.com")
        assert found.id == account.id
        assert (await find_account_by_id(session, account.id)).email == account.email

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, session):
        await make_account(session, email="dup@example.com")
        with pytest.raises(ValidationFailed, match="error-blogify-1001"):
            await create_account(session, "DUP@example.com", "Other", DEFAULT_PASSWORD)

    @pytest.mark.asyncio
    async def test_prehashed_password_rejected(self, session):
        with pytest.raises(ValidationFailed, match="error-blogify-1003"):
            await create_account(
                session, "u2@example.com", "User Two", hash_password("whatever123")
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,display_name,password",
        [
            ("not-an-email", "Name", DEFAULT_PASSWORD),
            ("u3@example.com", "   ", DEFAULT_PASSWORD),
            ("u3@example.com", "Name", "short"),
            ("u3@example.com", "Name", "x" * 73),
        ],
    )
    async def test_invalid_input_rejected(self, session, email, display_name, password):
        with pytest.raises(ValidationFailed):
            await create_account(session, email, display_name, password)

    @pytest.mark.asyncio
    async def test_unknown_account(self, session):
        assert await get_account(session, "01HMISSING") is None
        with pytest.raises(NotFound):
            await find_account_by_id(session, "01HMISSING")


class TestUpdateAccount:
    @pytest.mark.asyncio
    async def test_password_hashed_once(self, session):
        account = await make_account(session)
        updated = await update_account_fields(
            session, account.id, password="a brand new password"
        )
        await session.commit()

        # Verifies against the plaintext, so it was hashed exactly once.
        assert verify_password("a brand new password", updated.password_hash)
        assert not verify_password(DEFAULT_PASSWORD, updated.password_hash)

    @pytest.mark.asyncio
    async def test_untouched_password_left_alone(self, session):
        account = await make_account(session)
        original_hash = account.password_hash
        updated = await update_account_fields(
            session, account.id, display_name="Renamed"
        )
        assert updated.display_name == "Renamed"
        assert updated.password_hash == original_hash

    @pytest.mark.asyncio
    async def test_password_hash_field_refused(self, session):
        account = await make_account(session)
        with pytest.raises(ValidationFailed, match="error-blogify-1003"):
            await update_account_fields(
                session, account.id, password_hash=hash_password("whatever123")
            )

    @pytest.mark.asyncio
    async def test_email_collision_refused(self, session):
        await make_account(session, email="a@example.com")
        second = await make_account(session, email="b@example.com")
        with pytest.raises(ValidationFailed, match="error-blogify-1001"):
            await update_account_fields(session, second.id, email="a@example.com")

    @pytest.mark.asyncio
    async def test_unknown_field_refused(self, session):
        account = await make_account(session)
        with pytest.raises(ValidationFailed):
            await update_account_fields(session, account.id, created_at=None)


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_valid_credentials(self, session):
        account = await make_account(session)
        authenticated = await authenticate(session, "U1@example.com", DEFAULT_PASSWORD)
        assert authenticated.id == account.id

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_alike(self, session):
        await make_account(session)
        with pytest.raises(ValidationFailed) as wrong_password:
            await authenticate(session, "u1@example.com", "wrong password")
        with pytest.raises(ValidationFailed) as unknown_email:
            await authenticate(session, "nobody@example.com", DEFAULT_PASSWORD)
        assert str(wrong_password.value) == str(unknown_email.value)

    @pytest.mark.asyncio
    async def test_change_password(self, session):
        account = await make_account(session)
        with pytest.raises(ValidationFailed):
            await change_password(session, account.id, "wrong password", "new password 1")

        await change_password(session, account.id, DEFAULT_PASSWORD, "new password 1")
        await session.commit()
        assert (await authenticate(session, "u1@example.com", "new password 1")).id == account.id
