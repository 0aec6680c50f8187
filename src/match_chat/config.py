from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str = ""
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    OUTBOX_POLL_INTERVAL: float = 1.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5

    WS_HEARTBEAT_SECONDS: int = 30

    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "info"

    REDIS_PUBSUB_CHANNEL: str = "chat.fanout"
    REDIS_USER_CHANNEL_PREFIX: str = "chat.user."
    REDIS_TYPING_CHANNEL_PREFIX: str = "chat.typing."

    BILLING_EVENTS_STREAM: str = "billing.events"
    BILLING_EVENTS_GROUP: str = "match-chat"

    # Quota defaults for users without a purchased plan
    FREE_START_CREDITS: int = 1
    FREE_START_CREDITS_DAYS: int | None = None
    FREE_MONTHLY_MESSAGE_CAP: int = 5
    PACK_DEFAULT_DURATION_DAYS: int = 30

    # Client-side synchronisation
    CHAT_API_URL: str = "http://localhost:8000"
    CHAT_API_TIMEOUT: float = 10.0
    REALTIME_DEBOUNCE_SECONDS: float = 0.5
    REALTIME_RECONNECT_MAX_SECONDS: float = 30.0
    TYPING_EXPIRY_SECONDS: float = 3.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    def user_channel(self, user_id: int) -> str:
        return f"{self.REDIS_USER_CHANNEL_PREFIX}{user_id}"

    def typing_channel(self, conversation_id: object) -> str:
        return f"{self.REDIS_TYPING_CHANNEL_PREFIX}{conversation_id}"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
