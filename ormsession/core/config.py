"""
Session store configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``SESSION_``) or a .env file.
"""

import json
from typing import Annotated, Any, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./data/sessions.db"
    table_name: str = "sessions"
    create_table: bool = True

    # Garbage collection of expired rows
    gc_enabled: bool = True
    gc_interval: float = 600.0  # seconds

    # Encoding. secure=False stores plain JSON and must only be used in development
    secure: bool = True
    key_pairs: Annotated[list[str], NoDecode] = []

    # Cookie defaults copied into every new session
    max_age: int = 86400 * 30
    path: str = "/"
    domain: Optional[str] = None
    cookie_secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("key_pairs", mode="before")
    @classmethod
    def parse_key_pairs(cls, value: Any) -> list[str]:
        """Accept a JSON list or a comma-separated string of keys."""
        if value is None or value == "":
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return [item.strip() for item in value.split(",") if item.strip()]
            if isinstance(parsed, list):
                return [str(item) for item in parsed]
            return [str(parsed)]
        return value

    @field_validator("gc_interval")
    @classmethod
    def check_gc_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("gc_interval must be positive")
        return value
