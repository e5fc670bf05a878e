"""Application configuration."""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ImageMode = Literal["base64", "url"]
LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

_LOOPBACK_HOSTNAME = "localhost"
_WILDCARD_HOST = "0.0.0.0"


class DeliveryMode(str, Enum):
    """How a rendered image is handed back to the caller."""

    INLINE = "inline"
    STORED = "stored"


def _default_public_path() -> str:
    return str(Path.cwd() / "public")


class Settings(BaseSettings):
    """Service settings loaded once from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Server
    host: str = _WILDCARD_HOST
    port: int = 3000
    log_level: LogLevel = "INFO"

    # Delivery
    image_mode: ImageMode = "base64"
    public_path: str = Field(default_factory=_default_public_path)
    public_url_prefix: str = "/images"
    base_url: str = ""

    # Request handling
    body_limit_bytes: int = Field(default=10 * 1024 * 1024, ge=0)
    max_concurrent_renders: int = Field(default=0, ge=0)
    cors_allow_origins: list[str] = ["*"]

    # Engine defaults
    chart_width: int = Field(default=600, gt=0)
    chart_height: int = Field(default=400, gt=0)
    chart_dpi: int = Field(default=100, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @property
    def delivery_mode(self) -> DeliveryMode:
        if self.image_mode == "url":
            return DeliveryMode.STORED
        return DeliveryMode.INLINE

    @property
    def storage_dir(self) -> Path:
        return Path(self.public_path)

    @property
    def url_prefix(self) -> str:
        """Public prefix with a leading slash and no trailing slash."""
        prefix = "/" + self.public_url_prefix.strip("/")
        return "" if prefix == "/" else prefix

    @property
    def resolved_base_url(self) -> str:
        """Base URL for stored artifact links.

        ``BASE_URL`` wins when set; otherwise it is derived from the listening
        address with the wildcard host swapped for a loopback hostname.
        """
        if self.base_url.strip():
            return self.base_url.strip().rstrip("/")
        host = _LOOPBACK_HOSTNAME if self.host == _WILDCARD_HOST else self.host
        return f"http://{host}:{self.port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
