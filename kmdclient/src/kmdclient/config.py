"""
Configuration management using pydantic-settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from kmdclient.constants import (
    DEFAULT_KMD_HOST,
    DEFAULT_KMD_PORT,
    DEFAULT_RENEW_MARGIN,
    DEFAULT_REQUEST_TIMEOUT,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KMD_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    host: str = DEFAULT_KMD_HOST
    port: int = Field(default=DEFAULT_KMD_PORT, ge=1, le=65535)
    api_token: str = ""

    timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    renew_margin: float = Field(default=DEFAULT_RENEW_MARGIN, ge=0)

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
