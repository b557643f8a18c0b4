from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Poller and worker loops; disabled in tests and one-off tooling
    BACKGROUND_TASKS_ENABLED: bool = True

    # Upstream feed
    GITHUB_TOKEN: str = ""
    GITHUB_EVENTS_URL: str = "https://api.github.com/events"
    GITHUB_PER_PAGE: int = 100
    GITHUB_TIMEOUT_SECONDS: float = 20.0
    POLL_INTERVAL_SECONDS: float = 10.0
    BACKOFF_INITIAL_SECONDS: float = 1.0
    BACKOFF_MAX_SECONDS: float = 60.0
    BACKOFF_FLOOR_SECONDS: float = 0.1

    # Classification
    PROTECTED_BRANCHES: str = "main,master"  # Comma-separated branch names
    LARGE_PUSH_THRESHOLD: int = 10

    # Generative backend
    GEMINI_API_KEY: str = ""
    GEMINI_API_URL: str = (
        "https://generativelanguage.googleapis.com/v1/models/"
        "gemini-2.0-flash:generateContent"
    )
    GEMINI_TIMEOUT_SECONDS: float = 30.0
    WORKER_BATCH_SIZE: int = 10
    WORKER_ITEM_DELAY_SECONDS: float = 2.0
    WORKER_IDLE_DELAY_SECONDS: float = 15.0
    WORKER_ERROR_DELAY_SECONDS: float = 30.0

    # Live stream
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0
    SUBSCRIBER_MAX_PENDING: int = 100

    # Storage selection: "memory" or "redis"
    STORE_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None

    @property
    def protected_branches(self) -> frozenset[str]:
        return frozenset(b.strip() for b in self.PROTECTED_BRANCHES.split(",") if b.strip())

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
