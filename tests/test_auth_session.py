"""
Tests for the session token codec.

A token issued under one secret verifies to its account id until it expires.
Anything else (another secret, garbage, an expired token, a token without a
subject) verifies to None.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jwcrypto import jwt

from blogify.auth.session import SESSION_ALGORITHM, SessionTokenCodec, signing_key


@pytest.fixture
def codec():
    return SessionTokenCodec("test-secret-with-enough-entropy", 3600)


class TestSessionTokenCodec:
    def test_round_trip(self, codec):
        token = codec.issue("01HACCOUNT")
        assert codec.verify(token) == "01HACCOUNT"

    def test_token_is_compact_jws(self, codec):
        token = codec.issue("01HACCOUNT")
        assert token.count(".") == 2

    def test_other_secret_rejected(self, codec):
        token = SessionTokenCodec("another-secret-with-enough-entropy", 3600).issue("01HACCOUNT")
        assert codec.verify(token) is None

    @pytest.mark.parametrize(
        "garbage", ["", "garbage", "a.b.c", "eyJhbGciOiJIUzI1NiJ9..", "..."]
    )
    def test_garbage_rejected(self, codec, garbage):
        assert codec.verify(garbage) is None

    def test_expired_token_rejected(self, codec):
        # Well past the validation leeway.
        issued = datetime.now(timezone.utc) - timedelta(hours=3)
        token = codec.issue("01HACCOUNT", now=issued)
        assert codec.verify(token) is None

    def test_recent_token_accepted(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(minutes=30)
        token = codec.issue("01HACCOUNT", now=issued)
        assert codec.verify(token) == "01HACCOUNT"

    def test_token_without_subject_rejected(self, codec):
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.JWT(
            header={"alg": SESSION_ALGORITHM, "typ": "JWT"},
            claims={"iat": now, "exp": now + 600},
        )
        token.make_signed_token(signing_key("test-secret-with-enough-entropy"))
        assert codec.verify(token.serialize()) is None

    def test_tampered_payload_rejected(self, codec):
        token = codec.issue("01HACCOUNT")
        other = codec.issue("01HOTHER")
        (header, _, signature) = token.split(".")
        forged = ".".join([header, other.split(".")[1], signature])
        assert codec.verify(forged) is None

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            SessionTokenCodec("", 3600)

    def test_short_secret_signs_and_verifies(self):
        codec = SessionTokenCodec("short", 3600)
        assert codec.verify(codec.issue("01HACCOUNT")) == "01HACCOUNT"

    def test_signing_key_is_256_bits(self):
        key = signing_key("short")
        assert len(key.export_symmetric(as_dict=True)["k"]) == 43
