from __future__ import annotations

import os


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Runtime configuration read from environment variables."""

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./championship.db")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    TOKEN_ALGORITHM: str = os.getenv("TOKEN_ALGORITHM", "HS256")
    TOKEN_EXPIRE_MINUTES: int = int(os.getenv("TOKEN_EXPIRE_MINUTES", "720"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = _as_bool(os.getenv("LOG_JSON", "false"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    @classmethod
    def cors_origins(cls) -> list[str]:
        return [origin.strip() for origin in cls.CORS_ORIGINS.split(",") if origin.strip()]

    @classmethod
    def connect_args(cls) -> dict:
        if cls.DATABASE_URL.startswith("sqlite"):
            return {"check_same_thread": False}
        return {}


settings = Settings()
