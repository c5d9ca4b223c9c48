"""Global configuration helpers for the vprok.ru parsers."""

from __future__ import annotations

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Iterable, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _default_browser_args() -> List[str]:
    return ["--no-sandbox", "--disable-setuid-sandbox", "--lang=ru-RU,ru"]


def _default_user_agent() -> str:
    return (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
    )


class Settings(BaseSettings):
    """Container for runtime configuration values.

    Every attribute has a default matching the behaviour of the command line
    tools, so the parsers run without any ``.env`` file.  Environment variables
    prefixed with ``VPROK_`` override the attributes, e.g. ``VPROK_HEADLESS=1``.
    """

    model_config = SettingsConfigDict(
        env_prefix="VPROK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(default="https://www.vprok.ru")

    catalog_output_file: Path = Field(default=Path("products_api.txt"))
    product_output_file: Path = Field(default=Path("product.txt"))
    screenshot_file: Path = Field(default=Path("screenshot.jpg"))
    screenshot_quality: int = Field(default=85, ge=0, le=100)

    headless: bool = Field(default=False)
    viewport_width: int = Field(default=1366)
    viewport_height: int = Field(default=900)
    locale: str = Field(default="ru-RU")
    browser_args: Annotated[List[str], NoDecode] = Field(
        default_factory=_default_browser_args
    )
    user_agent: str = Field(default_factory=_default_user_agent)

    # Playwright deadlines, milliseconds.
    navigation_timeout_ms: int = Field(default=60_000)
    catalog_response_timeout_ms: int = Field(default=15_000)
    product_load_timeout_ms: int = Field(default=15_000)
    product_block_timeout_ms: int = Field(default=5_000)
    region_control_timeout_ms: int = Field(default=5_000)
    region_list_timeout_ms: int = Field(default=5_000)
    region_confirm_timeout_ms: int = Field(default=7_000)

    request_timeout: float = Field(default=30.0)

    log_level: str = Field(default="INFO")
    log_file: Path | None = None

    @field_validator("browser_args", mode="before")
    @classmethod
    def _parse_browser_args(cls, value: object) -> Iterable[str] | object:
        if value is None or isinstance(value, (list, tuple, set)):
            return value
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated filesystem access."""

    try:
        return Settings()
    except Exception:
        fallback = Settings.model_construct()
        if not fallback.browser_args:
            fallback.browser_args = _default_browser_args()
        return fallback
