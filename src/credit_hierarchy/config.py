from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Startup configuration, read from `CREDIT_HIERARCHY_*` environment
    variables (or a `.env` file). `jwt_secret` has no default: the process
    refuses to start without one.
    """

    model_config = SettingsConfigDict(
        env_prefix="CREDIT_HIERARCHY_",
        env_file=".env",
        extra="ignore",
    )

    jwt_secret: SecretStr
    jwt_algorithm: str = "HS256"
    token_ttl_seconds: Optional[int] = None

    timezone: str = "UTC"

    mongo_uri: Optional[str] = None
    mongo_db: str = "credit_hierarchy"

    audit_log_path: Path = Path("logs/audit.log")
    bcrypt_rounds: int = 12

    cookie_name: str = "token"
    cookie_secure: bool = False
    login_path: str = "/Login"

    allow_partial_updates: bool = True

    log_level: str = "INFO"


def load_settings(**overrides) -> Settings:
    return Settings(**overrides)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
