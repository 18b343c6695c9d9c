from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Service URLs (used by the gateway proxy)
    MEMBERS_SERVICE_URL: str = "http://members-service:8001"
    COMMUNICATIONS_SERVICE_URL: str = "http://communications-service:8002"
    APPROVALS_SERVICE_URL: str = "http://approvals-service:8003"
    GATEWAY_PROXY_TIMEOUT_SECONDS: float = 30.0

    # Session tokens are issued by the auth frontend; we only verify them.
    SESSION_JWT_SECRET: str = "test-session-secret"
    SESSION_JWT_ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "system_session"

    # Object storage (Supabase Storage REST API)
    SUPABASE_URL: str = "http://localhost"
    SUPABASE_SERVICE_ROLE_KEY: str = "test-service-role-key"
    STORAGE_SIGNED_URL_TTL_SECONDS: int = 600
    SIGNED_URL_CACHE_TTL_SECONDS: int = 300

    # Optional shared cache; in-process memory cache when unset
    REDIS_URL: Optional[str] = None

    # Scope resolution limits
    LEADER_TREE_MAX_DEPTH: int = 16
    LEADER_TREE_MAX_NODES: int = 20000
    ASSISTANT_SCOPE_SAME_LEADER: bool = True
    ASSISTANT_SCOPE_MAX_NODES: int = 2000

    # Course catalog
    COURSE_COUNT: int = 21
    LEARNING_STATUS_MIN_OPEN_COURSES: int = 2

    # Listing
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
