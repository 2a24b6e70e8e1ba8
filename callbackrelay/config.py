from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = Field(
        default=3005,
        validation_alias=AliasChoices("SERVICE_PORT", "PORT"),
    )
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    # Comma-separated list of allowed origins, "*" for any
    CORS_ORIGINS: str = "*"
    # Callback retention and reaper schedule
    RETENTION_WINDOW_MS: int = 300000
    SWEEP_INTERVAL_MS: int = 120000
    MAX_CALLBACK_SIZE: int = 65536
    # WebSocket push channel
    PUSH_EVENT_NAME: str = "tronlink_callback"
    WS_PING_INTERVAL: int = 30
    WS_RATE_LIMIT_MESSAGES: int = 100
    WS_RATE_LIMIT_WINDOW: int = 60
    # /debug and /cleanup expose every stored payload
    ENABLE_DIAGNOSTICS: bool = True

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def retention_window_seconds(self) -> float:
        return self.RETENTION_WINDOW_MS / 1000.0

    @property
    def sweep_interval_seconds(self) -> float:
        return self.SWEEP_INTERVAL_MS / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
