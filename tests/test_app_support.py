"""
Tests for configuration, cover image storage, the health gauge and the
operator utilities.
"""

import asyncio
import base64
import os
from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet

from blogify.app.config import Settings
from blogify.app.util.__main__ import gen_crypto_key, gen_session_secret
from blogify.errors import UpstreamFailure, ValidationFailed
from blogify.model.health import HealthGauge
from blogify.uploads import MAX_IMAGE_BYTES, LocalImageStore, image_extension

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class TestSettings:
    def test_session_secret_required(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError):
                Settings()  # type: ignore

    def test_environment_variables(self):
        crypto_key = gen_crypto_key()
        env = {
            "SESSION_SECRET": "from-env",
            "PG_DSN": "sqlite+aiosqlite:///blogify.db",
            "ENCRYPTION_KEY": crypto_key,
            "SOCIAL_SCOPES": "tweet.read, users.read offline.access",
            "GROQ_API_KEY": "gsk-test",
            "ENVIRONMENT": "production",
            "PORT": "9000",
            "TELEGRAF_HOST": "metrics.internal",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()  # type: ignore

        assert settings.session_secret == "from-env"
        assert settings.database_url == "sqlite+aiosqlite:///blogify.db"
        assert settings.social_scopes == ["tweet.read", "users.read", "offline.access"]
        assert settings.llm_api_key == "gsk-test"
        assert settings.http_port == 9000
        assert settings.statsd_host == "metrics.internal"
        assert settings.secure_cookies is True

        token = settings.encryption_key.encrypt(b"x")
        assert Fernet(base64.b64decode(crypto_key)).decrypt(token) == b"x"

    def test_development_cookies_not_secure(self, settings):
        assert settings.environment == "development"
        assert settings.secure_cookies is False

    def test_defaults(self, settings):
        assert settings.session_token_expiry == 604800
        assert settings.social_refresh_margin == 60
        assert settings.metrics_backend == "none"


class TestImageStore:
    def test_extension(self):
        assert image_extension("image/png") == ".png"
        assert image_extension("image/jpeg") == ".jpg"

    @pytest.mark.asyncio
    async def test_save(self, tmp_path):
        store = LocalImageStore(str(tmp_path), "uploads")
        uri = await store.save("cover.png", "image/png", PNG_BYTES)

        assert uri.startswith("/static/uploads/")
        assert uri.endswith(".png")
        stored_path = os.path.join(tmp_path, "uploads", os.path.basename(uri))
        with open(stored_path, "rb") as fd:
            assert fd.read() == PNG_BYTES

    @pytest.mark.asyncio
    async def test_names_are_unique(self, tmp_path):
        store = LocalImageStore(str(tmp_path))
        first = await store.save("cover.png", "image/png", PNG_BYTES)
        second = await store.save("cover.png", "image/png", PNG_BYTES)
        assert first != second

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content_type,data",
        [
            ("text/plain", b"hello"),
            ("image/svg+xml", b"<svg onload=\"alert(1)\"></svg>"),
            ("image/x-evil", b"<script>alert(1)</script>"),
            (None, PNG_BYTES),
            ("image/png", b""),
            ("image/png", b"\x00" * (MAX_IMAGE_BYTES + 1)),
        ],
    )
    async def test_rejected_uploads(self, tmp_path, content_type, data):
        store = LocalImageStore(str(tmp_path))
        with pytest.raises(ValidationFailed):
            await store.save("upload", content_type, data)
        assert not os.path.exists(os.path.join(tmp_path, "uploads"))

    @pytest.mark.asyncio
    async def test_extension_never_taken_from_filename(self, tmp_path):
        store = LocalImageStore(str(tmp_path))
        uri = await store.save("evil.html", "image/png", PNG_BYTES)
        assert uri.endswith(".png")

    @pytest.mark.asyncio
    async def test_discard(self, tmp_path):
        store = LocalImageStore(str(tmp_path))
        uri = await store.save("cover.png", "image/png", PNG_BYTES)

        await store.discard(uri)
        assert os.listdir(os.path.join(tmp_path, "uploads")) == []

        # Already gone, or not one of ours.
        await store.discard(uri)
        await store.discard("https://elsewhere.example/cover.png")

    @pytest.mark.asyncio
    async def test_write_failure_raised(self, tmp_path):
        blocker = os.path.join(tmp_path, "blocker")
        with open(blocker, "w") as fd:
            fd.write("not a directory")

        store = LocalImageStore(blocker)
        with pytest.raises(UpstreamFailure, match="error-blogify-1502"):
            await store.save("cover.png", "image/png", PNG_BYTES)


class TestHealthGauge:
    @pytest.mark.asyncio
    async def test_threshold(self):
        health_gauge = HealthGauge(health_threshold=2)
        assert await health_gauge.is_healthy()

        for _ in range(3):
            await health_gauge.record_error()
        assert health_gauge.value == 3
        assert not await health_gauge.is_healthy()

        await health_gauge.tick()
        assert await health_gauge.is_healthy()

    @pytest.mark.asyncio
    async def test_tick_stops_at_zero(self):
        health_gauge = HealthGauge()
        await health_gauge.tick()
        assert health_gauge.value == 0

    @pytest.mark.asyncio
    async def test_concurrent_errors_counted(self):
        health_gauge = HealthGauge()
        await asyncio.gather(*[health_gauge.record_error() for _ in range(50)])
        assert health_gauge.value == 50


class TestUtil:
    def test_gen_crypto_key(self):
        key = gen_crypto_key()
        Fernet(base64.b64decode(key))

    def test_gen_session_secret(self):
        assert gen_session_secret() != gen_session_secret()
        assert len(gen_session_secret(16)) >= 16
