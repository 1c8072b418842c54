import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


def _env_flag(key: str) -> bool:
    return _env_or(key, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    openai_api_key: str
    openai_model: str
    venue_name: str
    menu_file_path: str
    manifest_path: str
    report_recipient: str
    report_timezone: str
    receipt_debounce_ms: int
    enable_change_streams: bool
    allowed_origins: List[str]
    log_level: str
    port: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    origins = _env_or("ALLOWED_ORIGINS", "*")
    return Settings(
        database_url=_env_or("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=_env_or("DATABASE_NAME", "restaurant_pos"),
        openai_api_key=_env_or("OPENAI_API_KEY", ""),
        openai_model=_env_or("OPENAI_MODEL", "gpt-4o-mini"),
        venue_name=_env_or("VENUE_NAME", "Up & Above Cafe"),
        menu_file_path=_env_or("MENU_FILE_PATH", os.path.join("data", "menu.json")),
        manifest_path=_env_or("MANIFEST_PATH", os.path.join("public", "site.webmanifest")),
        report_recipient=_env_or("REPORT_RECIPIENT", ""),
        report_timezone=_env_or("REPORT_TIMEZONE", "UTC"),
        receipt_debounce_ms=int(_env_or("RECEIPT_DEBOUNCE_MS", "500")),
        enable_change_streams=_env_flag("ENABLE_CHANGE_STREAMS"),
        allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=_env_or("LOG_LEVEL", "INFO"),
        port=int(_env_or("PORT", "8000")),
    )
