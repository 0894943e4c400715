"""Runtime settings read from the environment (and a local ``.env`` if present)."""

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CALENDAR_ID = (
    "865d9be49c7fe3679063400a3796fcb5d38560d6c907e9bbbf77802bc646a4ac"
    "@group.calendar.google.com"
)
DEFAULT_CORS_ORIGINS = "https://chat.openai.com,https://chatgpt.com,http://localhost:3000"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    service_account_key_base64: Optional[str] = None
    service_account_key_path: str = "service-account-key.json"
    default_calendar_id: str = DEFAULT_CALENDAR_ID
    default_time_zone: str = "America/Los_Angeles"
    host: str = "0.0.0.0"
    port: int = Field(3000, gt=0, lt=65536)
    environment: str = "development"
    log_level: str = "INFO"
    retry_interval_seconds: float = Field(60.0, gt=0)
    retry_max_attempts: int = Field(5, ge=1)
    cache_credentials: bool = True
    upstream_timeout_seconds: float = Field(30.0, gt=0)
    list_window_days: int = Field(7, ge=1)
    cors_origins: List[str] = Field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        env = os.environ
        return cls(
            service_account_key_base64=env.get("GOOGLE_SERVICE_ACCOUNT_KEY_BASE64") or None,
            service_account_key_path=env.get(
                "GOOGLE_SERVICE_ACCOUNT_KEY_PATH", "service-account-key.json"
            ),
            default_calendar_id=env.get("DEFAULT_CALENDAR_ID", DEFAULT_CALENDAR_ID),
            default_time_zone=env.get("DEFAULT_TIME_ZONE", "America/Los_Angeles"),
            host=env.get("HOST", "0.0.0.0"),
            port=env.get("PORT", "3000"),
            environment=env.get("APP_ENV") or env.get("NODE_ENV") or "development",
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            retry_interval_seconds=env.get("RETRY_INTERVAL_SECONDS", "60"),
            retry_max_attempts=env.get("RETRY_MAX_ATTEMPTS", "5"),
            cache_credentials=_as_bool(env.get("CACHE_CREDENTIALS", "true")),
            upstream_timeout_seconds=env.get("UPSTREAM_TIMEOUT_SECONDS", "30"),
            list_window_days=env.get("LIST_WINDOW_DAYS", "7"),
            cors_origins=[
                o.strip()
                for o in env.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
                if o.strip()
            ],
        )
