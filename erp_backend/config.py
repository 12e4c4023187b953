# erp_backend/config.py

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from erp_backend.errors import ConfigError

# ---------------- ENV ----------------
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"))


class Settings(BaseModel):
    database_url: str = "sqlite:///./app.db"
    sql_echo: bool = False

    # trusted callers of the email webhook
    service_role_key: Optional[str] = None

    # bearer tokens issued by /auth/login
    secret_key: Optional[str] = None
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # email provider
    resend_api_key: Optional[str] = None
    resend_from_email: Optional[str] = None
    app_url: Optional[str] = None

    frontend_origin: Optional[str] = None
    cache_version: str = "v2"
    log_level: str = "INFO"

    def require(self, *names: str) -> None:
        """Raise ConfigError listing every named setting that is unset."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            env_names = ", ".join(name.upper() for name in missing)
            raise ConfigError(f"Missing required configuration: {env_names}")


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./app.db"),
        sql_echo=os.getenv("SQL_ECHO", "false").lower() == "true",
        service_role_key=os.getenv("SERVICE_ROLE_KEY"),
        secret_key=os.getenv("SECRET_KEY"),
        algorithm=os.getenv("ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
        resend_api_key=os.getenv("RESEND_API_KEY"),
        resend_from_email=os.getenv("RESEND_FROM_EMAIL"),
        app_url=os.getenv("APP_URL"),
        frontend_origin=os.getenv("FRONTEND_ORIGIN"),
        cache_version=os.getenv("CACHE_VERSION", "v2"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
