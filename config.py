import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        api_prefix: str,
        cors_origins: list[str],
        log_level: str,
        auto_create_schema: bool,
        host: str,
        port: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.api_prefix = api_prefix
        self.cors_origins = cors_origins
        self.log_level = log_level
        self.auto_create_schema = auto_create_schema
        self.host = host
        self.port = port


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("KAKEIBO_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("KAKEIBO_DATABASE_URL")
    if not database_url:
        data_dir = _ensure_data_dir()
        database_url = f"sqlite:///{data_dir / 'kakeibo.db'}"
    timezone = os.getenv("KAKEIBO_TIMEZONE", "Asia/Tokyo")
    api_prefix = os.getenv("KAKEIBO_API_PREFIX", "/api").rstrip("/")
    cors_origins = [
        origin.strip()
        for origin in os.getenv("KAKEIBO_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    log_level = os.getenv("KAKEIBO_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        api_prefix=api_prefix,
        cors_origins=cors_origins,
        log_level=log_level,
        auto_create_schema=_env_flag("KAKEIBO_AUTO_CREATE_SCHEMA", "1"),
        host=os.getenv("KAKEIBO_HOST", "0.0.0.0"),
        port=int(os.getenv("KAKEIBO_PORT", "8080")),
    )
