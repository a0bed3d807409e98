"""Vigil configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VigilConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "VIGIL"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./vigil.db"
    db_wal_mode: bool = True
    db_busy_timeout: int = 5000  # ms
    db_synchronous: str = "NORMAL"

    # Application-wide secret; the content cache key is derived from it
    secret_key: str = "CHANGE_ME_IN_PRODUCTION"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Scanning
    scan_root: str = "."
    scan_file_types: list[str] = [
        "php", "js", "css", "html", "htm", "json", "xml", "ini", "htaccess", "txt",
    ]
    exclude_patterns: list[str] = [
        "*/cache/*", "*/logs/*", "*/uploads/*", "*/.git/*", "*/node_modules/*",
    ]
    max_file_size: int = 10_485_760  # 10 MB
    scan_batch_size: int = 256
    checksum_workers: int = 4

    # Diffing
    diff_max_file_size: int = 1_048_576  # 1 MB
    diff_context_lines: int = 3
    text_extensions: list[str] = [
        "php", "phtml", "inc", "js", "mjs", "ts", "css", "scss", "less",
        "html", "htm", "xml", "svg", "json", "yml", "yaml", "ini", "conf",
        "htaccess", "txt", "md", "csv", "sql", "py", "rb", "pl", "sh",
    ]

    # Retention
    retention_period_days: int = 90
    retention_tier2_days: int = 30
    retention_tier3_days: int = 90
    retention_keep_baseline: bool = True

    # Maintenance intervals (seconds)
    cache_cleanup_interval: int = 6 * 3600
    retention_interval: int = 6 * 3600

    # Priority classification: ordered glob -> level
    priority_rules: dict[str, str] = {}

    @field_validator("max_file_size", "diff_max_file_size", "scan_batch_size", "checksum_workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("cache_cleanup_interval", "retention_interval", "retention_period_days")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("intervals and periods must be positive")
        return v

    @field_validator("priority_rules")
    @classmethod
    def validate_priority_levels(cls, v: dict[str, str]) -> dict[str, str]:
        allowed = {"critical", "high", "normal"}
        for pattern, level in v.items():
            if level not in allowed:
                raise ValueError(f"priority level for {pattern!r} must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def validate_tiers(self) -> "VigilConfig":
        if self.retention_tier2_days < 0:
            raise ValueError("retention_tier2_days must not be negative")
        if self.retention_tier3_days <= self.retention_tier2_days:
            raise ValueError("retention_tier3_days must be greater than retention_tier2_days")
        return self

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> VigilConfig:
    """Factory function to create config instance."""
    return VigilConfig()
