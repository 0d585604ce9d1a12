"""
mailcomposer Configuration

Manages composition settings with environment variable support.
Every setting can be overridden with a MAILCOMPOSER_* variable or a .env file.
"""

import re
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# RFC 2046 bchars, minus the space that may not end a boundary
_BOUNDARY_CHARS = re.compile(r"^[0-9A-Za-z'()+_,\-./:=?]+$")

# "?=_" + counter + "-" + base token must still fit in 70 characters
_BOUNDARY_PREFIX_MAX = 40


class Settings(BaseSettings):
    """Composer settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCOMPOSER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "mailcomposer"
    app_version: str = "1.0.0"

    # MIME structure
    boundary_prefix: str = "----mailcomposer-"
    header_fold_length: int = 76
    max_line_length: int = 998
    mime_word_max_length: int = 75
    binary_ratio_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    default_calendar_method: str = "PUBLISH"
    message_id_domain: str = "localhost"

    # SMTP hand-off
    smtp_host: str = "127.0.0.1"
    smtp_port: int = 25
    smtp_start_tls: bool = False
    smtp_use_tls: bool = False
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_timeout: int = 60

    # Attachment downloads
    http_timeout: int = 30

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("boundary_prefix")
    @classmethod
    def validate_boundary_prefix(cls, v: str) -> str:
        """Keep boundaries within the RFC 2046 character set and length."""
        if not _BOUNDARY_CHARS.match(v):
            raise ValueError("boundary_prefix may only contain RFC 2046 boundary characters")
        if len(v) > _BOUNDARY_PREFIX_MAX:
            raise ValueError(f"boundary_prefix must be at most {_BOUNDARY_PREFIX_MAX} characters")
        return v

    @field_validator("header_fold_length")
    @classmethod
    def validate_fold_length(cls, v: int) -> int:
        if not 20 <= v <= 998:
            raise ValueError("header_fold_length must be between 20 and 998")
        return v

    @field_validator("default_calendar_method")
    @classmethod
    def uppercase_method(cls, v: str) -> str:
        return v.strip().upper() or "PUBLISH"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
