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
    DATABASE_URL: str | None = None

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "chat.relay"
    FANOUT_MODE: Literal["redis", "local"] = "redis"

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    STORE_TIMEOUT_SECONDS: float = 20.0

    HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    HEARTBEAT_MAX_MISSED: int = 3

    PRESENCE_SWEEP_INTERVAL_SECONDS: float = 300.0
    PRESENCE_STALE_AFTER_SECONDS: float = 60.0
    # Must stay below PRESENCE_STALE_AFTER_SECONDS so live users never look stale.
    PRESENCE_REFRESH_INTERVAL_SECONDS: float = 20.0

    HISTORY_DEFAULT_LIMIT: int = 50
    HISTORY_MAX_LIMIT: int = 100

    MAX_MESSAGE_LENGTH: int = 2000
    MAX_FILE_BYTES: int = 5 * 1024 * 1024
    CLIENT_TIMESTAMP_MAX_AGE_SECONDS: float = 300.0
    CLIENT_TIMESTAMP_MAX_SKEW_SECONDS: float = 5.0

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
