"""Environment configuration, read from the process environment and ``.env``."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    base_url: str | None = None
    token: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")
