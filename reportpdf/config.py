"""
Runtime settings, read from the environment (``REPORTPDF_*``) or a ``.env`` file.

License: MIT
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reportpdf import __version__


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REPORTPDF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "reportpdf"
    app_url: str = "https://github.com/reportpdf/reportpdf"
    version: str = __version__

    # Page setup
    default_page_size: str = "A4"
    unit: Literal["pt", "mm", "cm", "in"] = "pt"
    margin_left: float = Field(default=18.0, ge=0)
    margin_right: float = Field(default=9.9, ge=0)
    margin_top: float = Field(default=26.8, ge=0)
    margin_bottom: float = Field(default=21.6, ge=0)
    header_margin: Optional[float] = Field(default=None, ge=0)
    footer_margin: Optional[float] = Field(default=None, ge=0)

    # Output
    compression: bool = True
    invariant: bool = False
    encoding_errors: Literal["strict", "replace"] = "strict"

    # Layout
    footnote_placement: Literal["page", "document"] = "page"
    auto_page_break: bool = True
    generated_by: str = "Generated by reportpdf"

    # Service
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    image_base_dir: Optional[str] = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
