"""
Configuration Module for Blogify

This module defines the configuration system for Blogify, using Pydantic for settings
validation and dependency injection through AppKeys.

The Settings class is loaded from environment variables with defaults suitable for
development environments. Handlers access settings and shared resources through typed
AppKeys attached to the aiohttp application.

Key configuration areas include:
- Service networking and environment mode
- Database and cache connections
- Session signing and token encryption
- Social provider (X/Twitter) OAuth client
- Text-generation provider
- Cover image storage
- Monitoring and observability
"""

import asyncio
import base64
import logging
from typing import Annotated, Final, List, Literal, Optional

from aiohttp import ClientSession, web
from cryptography.fernet import Fernet
from pydantic import AliasChoices, Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, NoDecode
from redis import asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from blogify.app.metrics import MetricsClient
from blogify.assistant.provider import TextGenerationProvider
from blogify.auth.session import SessionTokenCodec
from blogify.model.health import HealthGauge
from blogify.social.provider import OAuthProvider
from blogify.social.transient import OAuthFlowStore
from blogify.uploads import ImageStore

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for Blogify.

    Environment variables are mapped to fields case-insensitively, with aliases
    for common alternative names. For example, the database connection string can
    be set with either DATABASE_URL or PG_DSN.
    """

    # Environment and debugging settings
    debug: bool = False
    """
    Enable debug mode for verbose logging. Internal error responses include the
    exception type in debug mode.
    Set with DEBUG=true environment variable.
    """

    environment: Literal["development", "production"] = "development"
    """
    Deployment mode. In production every cookie carries the Secure flag.
    Set with ENVIRONMENT environment variable.
    """

    # Network settings
    http_port: int = Field(alias="port", default=8000)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    external_url: str = "http://localhost:8000"
    """
    Public base URL of the site, used for links in social announcements.
    Set with EXTERNAL_URL environment variable.
    """

    # Monitoring and error reporting
    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    # Database and cache connections
    database_url: str = Field(
        "postgresql+asyncpg://postgres:password@db/blogify",
        validation_alias=AliasChoices("database_url", "pg_dsn"),
    )
    """
    SQLAlchemy async connection string.
    Set with DATABASE_URL or PG_DSN environment variables.
    """

    redis_dsn: RedisDsn = Field(
        "redis://valkey:6379/1?decode_responses=True",
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )  # type: ignore
    """
    Redis connection string for in-flight OAuth state.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    # Security and cryptography settings
    session_secret: str
    """
    Shared secret signing session tokens (required, no default).
    Rotating it signs every user out.
    Set with SESSION_SECRET environment variable.
    """

    session_token_expiry: int = 7 * 24 * 60 * 60
    """
    Session token lifetime in seconds, also used as the cookie max-age.
    Set with SESSION_TOKEN_EXPIRY environment variable.
    Default: 604800 (7 days)
    """

    encryption_key: Fernet = Fernet(Fernet.generate_key())
    """
    Fernet symmetric encryption key for social tokens at rest.
    Can be set to a Fernet object or base64-encoded key string.
    Set with ENCRYPTION_KEY environment variable.
    """

    # Social provider settings
    social_client_id: Optional[str] = None
    """
    OAuth 2.0 client id of the X (Twitter) app.
    Set with SOCIAL_CLIENT_ID environment variable.
    """

    social_client_secret: Optional[str] = None
    """
    OAuth 2.0 client secret. Leave unset for a public client.
    Set with SOCIAL_CLIENT_SECRET environment variable.
    """

    social_callback_url: Optional[str] = None
    """
    Callback URL registered with the provider, e.g. https://example.com/social/callback.
    Set with SOCIAL_CALLBACK_URL environment variable.
    """

    social_scopes: Annotated[List[str], NoDecode] = [
        "tweet.read",
        "tweet.write",
        "users.read",
        "offline.access",
    ]
    """
    Scopes requested when linking, separated by spaces or commas.
    Set with SOCIAL_SCOPES environment variable.
    """

    social_refresh_margin: int = 60
    """
    Access tokens expiring within this many seconds are refreshed before use.
    Set with SOCIAL_REFRESH_MARGIN environment variable.
    """

    oauth_flow_ttl: int = 600
    """
    Seconds an initiated OAuth flow stays valid.
    Set with OAUTH_FLOW_TTL environment variable.
    """

    # Text generation settings
    llm_base_url: str = "https://api.groq.com/openai/v1"
    """
    Base URL of an OpenAI-compatible chat completions API.
    Set with LLM_BASE_URL environment variable.
    """

    llm_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("llm_api_key", "groq_api_key")
    )
    """
    API key for the text-generation provider.
    Set with LLM_API_KEY or GROQ_API_KEY environment variables.
    """

    llm_model: str = "llama3-8b-8192"
    """
    Model identifier sent with every completion request.
    Set with LLM_MODEL environment variable.
    """

    llm_timeout: int = 60
    """
    Total timeout in seconds for one completion request.
    Set with LLM_TIMEOUT environment variable.
    """

    # Cover image storage
    static_dir: str = "./static"
    """
    Directory served under /static.
    Set with STATIC_DIR environment variable.
    """

    upload_subdir: str = "uploads"
    """
    Subdirectory of static_dir receiving cover images.
    Set with UPLOAD_SUBDIR environment variable.
    """

    # Monitoring and observability settings
    metrics_backend: Literal["telegraf", "none"] = "none"
    """
    Metrics backend. Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"

    @field_validator("social_scopes", mode="before")
    @classmethod
    def decode_social_scopes(cls, v) -> List[str]:
        if isinstance(v, str):
            return [scope for scope in v.replace(",", " ").split() if scope]
        return v

    @field_validator("encryption_key", mode="before")
    @classmethod
    def decode_encryption_key(cls, v) -> Fernet:
        """
        Validate and process the encryption_key setting.

        This validator accepts either:
        - An existing Fernet object (for programmatic configuration)
        - A base64-encoded string containing a Fernet key

        Raises:
            ValueError: If the input is neither a Fernet object nor a valid base64 key
        """
        if isinstance(v, Fernet):
            return v
        elif isinstance(v, str):
            key_data = base64.b64decode(v)
            return Fernet(key_data)
        raise ValueError(
            "encryption_key must be a Fernet object or a base64-encoded key string"
        )


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

SessionAppKey: Final = web.AppKey("http_session", ClientSession)
"""AppKey for accessing the shared aiohttp client session"""

RedisPoolAppKey: Final = web.AppKey("redis_pool", redis.ConnectionPool)
"""AppKey for accessing the Redis connection pool"""

RedisClientAppKey: Final = web.AppKey("redis_client", redis.Redis)
"""AppKey for accessing the Redis client"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that monitors service health"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client"""

SessionCodecAppKey: Final = web.AppKey("session_codec", SessionTokenCodec)
"""AppKey for the session token codec"""

OAuthProviderAppKey: Final = web.AppKey("oauth_provider", OAuthProvider)
"""AppKey for the social OAuth provider"""

OAuthFlowStoreAppKey: Final = web.AppKey("oauth_flow_store", OAuthFlowStore)
"""AppKey for the transient OAuth flow store"""

TextGenerationAppKey: Final = web.AppKey("text_generation", TextGenerationProvider)
"""AppKey for the text-generation provider"""

ImageStoreAppKey: Final = web.AppKey("image_store", ImageStore)
"""AppKey for the cover image store"""
