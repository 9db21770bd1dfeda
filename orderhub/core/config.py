"""
Order Hub — Configuration
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "order-hub"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8006
    LOG_LEVEL: str = "INFO"

    # ── PostgreSQL (Order Store) ──────────────────────────────
    POSTGRES_HOST: str = "orders-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "orders_db"
    POSTGRES_USER: str = "orders_user"
    POSTGRES_PASSWORD: str = "orders_pass"
    DATABASE_URL: str | None = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis (realtime fan-out) ───────────────────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── Realtime ──────────────────────────────────────────────
    REALTIME_BACKEND: str = "redis"  # "redis" | "memory"
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── JWT (tokens issued by the identity provider) ──────────
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"

    # ── Orders listing ────────────────────────────────────────
    ORDERS_PAGE_SIZE: int = 20
    ORDERS_MAX_PAGE_SIZE: int = 100

    # ── Console (operator / tracker clients) ──────────────────
    ORDER_HUB_URL: str = "http://order-hub:8006"
    HTTP_TIMEOUT_SECONDS: float = 5.0
    REALTIME_RETRY_SECONDS: float = 3.0
    REALTIME_MAX_RETRY_SECONDS: float = 30.0
    REALTIME_RETRY_JITTER_SECONDS: float = 0.5
    NOTIFICATION_PERMISSION_DELAY_SECONDS: float = 2.0
    DESKTOP_NOTIFICATION_TIMEOUT_SECONDS: float = 15.0
    AUDIO_STAGE_TIMEOUT_SECONDS: float = 2.0
    TOAST_DURATION_SECONDS: float = 5.0

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
