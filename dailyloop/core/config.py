import logging
from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """dailyloop settings, read from the environment and ``.env``."""

    # Runtime mode: development | test | production
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Persistence collaborator (SQLAlchemy URL)
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Timezone assumed for profiles that never set one
    DEFAULT_TIMEZONE: str = "UTC"

    # Comma-separated CORS origins for the journal frontend
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # Background persist failures kept per sequence run until delivered
    PERSIST_NOTICE_LIMIT: int = Field(default=20, ge=1)

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def allowed_origins(settings_obj: Optional[Settings] = None) -> List[str]:
    raw = (settings_obj or settings).ALLOWED_ORIGINS or ""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def missing_storage_config(settings_obj=None) -> List[str]:
    """Keys that must be set before a sequence can load or save a day."""
    cfg = settings_obj or settings
    if getattr(cfg, "DATABASE_URL", None) or getattr(cfg, "TEST_DATABASE_URL", None):
        return []
    return ["DATABASE_URL"]


def validate_config(strict: Optional[bool] = None, settings_obj=None, logger: Optional[logging.Logger] = None) -> bool:
    """Warn about missing storage config, or raise RuntimeError when strict.

    Only key names are reported, never values.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("dailyloop")
    if strict is None:
        strict = bool(getattr(cfg, "CONFIG_STRICT", False))

    missing = missing_storage_config(cfg)
    if not missing:
        return True
    message = f"Missing required configuration: {', '.join(missing)} (sequences cannot start without storage)"
    if strict:
        raise RuntimeError(message)
    log.warning(message)
    return True
