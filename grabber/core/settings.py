"""
Centralised settings (environment / .env), kept injectable for tests.
"""
# @file purpose: Centralized settings using Pydantic Settings.

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GRABBER_", env_file=".env", extra="ignore")

    headless: bool = True
    slow_mo_ms: int = 0
    default_timeout_ms: int = 30_000

    grabs_dir: Path = Path("grabs")
    resources_dir: Path = Path("resources")
    extensions: list[str] = []

    log_level: str = "WARNING"
    log_file: Path | None = None

    rate_limit_window_ms: int = Field(default=900_000, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    host: str = "127.0.0.1"
    port: int = Field(default=3000, validation_alias=AliasChoices("PORT", "GRABBER_PORT"))


settings = Settings()
