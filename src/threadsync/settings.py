"""
threadsync Settings and Configuration.

Pydantic settings with environment variable support:
- Nested settings with env_prefix for organization
- Environment variables use double underscore delimiter (ENV__NESTED__VAR)
- Global settings singleton

Example .env file:
    # Messaging API
    MESSAGING__BASE_URL=http://localhost:5001
    MESSAGING__API_TOKEN=eyJhbGciOi...
    MESSAGING__TENANT_ID=default
    MESSAGING__AGENT=Support Agent
    MESSAGING__TIMEOUT_SECONDS=30
    MESSAGING__HEARTBEAT_SECONDS=15

    # Conversation sync
    CONVERSATION__MESSAGE_PAGE_SIZE=15
    CONVERSATION__THREAD_PAGE_SIZE=50
    CONVERSATION__OPTIMISTIC_MATCH_WINDOW_MS=5000
    CONVERSATION__HANDOVER_WINDOW_MS=60000
    CONVERSATION__HANDOVER_DEBOUNCE_MS=3000

    # Logging
    LOG__LEVEL=INFO
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MessagingSettings(BaseSettings):
    """
    Messaging API connection settings.

    Environment variables:
        MESSAGING__BASE_URL - Base URL of the messaging server
        MESSAGING__API_TOKEN - Bearer token (token refresh is handled upstream)
        MESSAGING__TENANT_ID - Tenant sent as X-Tenant-Id
        MESSAGING__AGENT - Default agent name for thread listing and sends
        MESSAGING__TIMEOUT_SECONDS - Timeout for REST calls and stream connect
        MESSAGING__HEARTBEAT_SECONDS - Heartbeat interval requested for push streams
    """

    model_config = SettingsConfigDict(
        env_prefix="MESSAGING__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(
        default="http://localhost:5001",
        description="Base URL of the messaging server",
    )

    api_token: str | None = Field(
        default=None,
        description="Bearer token for the messaging API",
    )

    tenant_id: str | None = Field(
        default=None,
        description="Tenant identifier sent as X-Tenant-Id (omitted when unset)",
    )

    agent: str | None = Field(
        default=None,
        description="Default agent name used when a command does not specify one",
    )

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for REST calls; the push stream only uses it for connect",
    )

    heartbeat_seconds: int = Field(
        default=15,
        ge=1,
        description="Heartbeat interval the server should use on push streams",
    )


class ConversationSettings(BaseSettings):
    """
    Conversation synchronization settings.

    Environment variables:
        CONVERSATION__MESSAGE_PAGE_SIZE - Messages per history page
        CONVERSATION__THREAD_PAGE_SIZE - Threads per thread-list page
        CONVERSATION__TOPIC_PAGE_SIZE - Topics per topic-list page
        CONVERSATION__OPTIMISTIC_MATCH_WINDOW_MS - Max clock skew between an
            optimistic message and its streamed echo
        CONVERSATION__HANDOVER_WINDOW_MS - Only handovers younger than this notify
        CONVERSATION__HANDOVER_DEBOUNCE_MS - Min gap between thread refreshes
        CONVERSATION__RECENT_WINDOW_MS - "Just sent" highlighting window
        CONVERSATION__AWAITING_REPLY_MS - Delay before "awaiting reply" shows
        CONVERSATION__POSSIBLE_ERROR_MS - Delay before "possible error" shows
    """

    model_config = SettingsConfigDict(
        env_prefix="CONVERSATION__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    message_page_size: int = Field(default=15, ge=1, description="Messages per page")
    thread_page_size: int = Field(default=50, ge=1, description="Threads per page")
    topic_page_size: int = Field(default=50, ge=1, description="Topics per page")

    optimistic_match_window_ms: int = Field(
        default=5000,
        ge=0,
        description="Time window for matching an optimistic message to its echo",
    )

    handover_window_ms: int = Field(
        default=60_000,
        ge=0,
        description="Handover messages older than this never trigger a refresh",
    )

    handover_debounce_ms: int = Field(
        default=3000,
        ge=0,
        description="Minimum time between thread metadata refreshes",
    )

    recent_window_ms: int = Field(
        default=60_000,
        ge=0,
        description="Messages younger than this are highlighted as just sent",
    )

    awaiting_reply_ms: int = Field(default=5000, ge=0)
    possible_error_ms: int = Field(default=60_000, ge=0)


class LogSettings(BaseSettings):
    """
    Logging settings.

    Environment variables:
        LOG__LEVEL - Default loguru level for the CLI (DEBUG, INFO, WARNING, ...)
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Default log level")


class Settings(BaseSettings):
    """
    Global application settings.

    Aggregates all nested settings groups with environment variable support.
    Uses double underscore delimiter for nested variables (MESSAGING__BASE_URL).

    Environment variables:
        ENVIRONMENT - Environment (development, staging, production)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )

    # Nested settings groups
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    log: LogSettings = Field(default_factory=LogSettings)


# Global settings singleton
settings = Settings()
