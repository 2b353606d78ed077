# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: source and
target directories, processing switches, concurrency limits, courtesy
delays, download and rate-limit tuning, SFTP credentials and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent or incomplete."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Source ===
    source_db_url: str = ""
    source_dir: Path | None = None
    target_base_dir: Path | None = None
    eu_csv_dir: Path | None = None

    # === Processing switches ===
    process_decentralized: bool = False
    process_spc: bool = True
    process_leaflet: bool = True
    process_centralized: bool = False
    transfer_decentralized: bool = False
    transfer_centralized: bool = False
    max_files_to_process: int | None = None

    # === Concurrency ===
    decentralized_concurrency: int = 5
    decentralized_sftp_concurrency: int = 5
    centralized_concurrency: int = 5
    centralized_sftp_concurrency: int = 5

    # === Courtesy delays (milliseconds) ===
    decentralized_min_delay_ms: int = 200
    decentralized_max_delay_ms: int = 700
    centralized_min_delay_ms: int = 200
    centralized_max_delay_ms: int = 700
    sftp_min_delay_ms: int = 100
    sftp_max_delay_ms: int = 300

    # === Download ===
    download_retry_count: int = 5
    download_base_delay_s: float = 1.0
    download_timeout_s: float = 30.0
    download_stall_timeout_s: float = 60.0
    download_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
    )

    # === Rate-limit circuit breaker ===
    rate_limit_error_threshold: int = 15
    rate_limit_pause_s: float = 300.0
    rate_limit_poll_s: float = 1.0
    rate_limit_wait_margin_s: float = 60.0

    # === SFTP ===
    sftp_host: str = ""
    sftp_port: int = 22
    sftp_user: str = ""
    sftp_private_key_path: Path | None = None
    sftp_remote_base_dir: str = ""
    sftp_known_hosts: Path | None = None
    transfer_retry_passes: int = 3

    # === Audit store ===
    audit_db_path: Path = Path("./logs/audit.db")

    # === EU download recovery ===
    recovery_repeat: bool = False
    recovery_delay_s: float = 30.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = Path("./logs/rcpsync.log")
    log_rotation: str = "10MB"
    log_retention: int = 12

    # --- Validators ---

    @field_validator(
        "decentralized_concurrency",
        "decentralized_sftp_concurrency",
        "centralized_concurrency",
        "centralized_sftp_concurrency",
        "download_retry_count",
        "transfer_retry_passes",
        "rate_limit_error_threshold",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("max_files_to_process")
    @classmethod
    def validate_max_files(cls, v: int | None) -> int | None:  # noqa: N805
        """A zero or negative cap means no cap."""
        if v is not None and v <= 0:
            return None
        return v

    @model_validator(mode="after")
    def validate_delay_windows(self) -> Settings:
        """Every courtesy delay window must satisfy 0 <= min <= max."""
        errors: list[str] = []
        for name in ("decentralized", "centralized", "sftp"):
            low = getattr(self, f"{name}_min_delay_ms")
            high = getattr(self, f"{name}_max_delay_ms")
            if low < 0 or high < low:
                errors.append(
                    f"{name.upper()}_MIN_DELAY_MS/{name.upper()}_MAX_DELAY_MS "
                    f"must satisfy 0 <= min <= max (got {low}, {high})"
                )
        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    # --- Helpers ---

    @property
    def any_processing_enabled(self) -> bool:
        return self.process_decentralized or self.process_centralized

    @property
    def any_transfer_enabled(self) -> bool:
        return self.transfer_decentralized or self.transfer_centralized

    def missing_sftp_fields(self) -> list[str]:
        """Return the names of SFTP settings required for a transfer but unset."""
        missing: list[str] = []
        if not self.sftp_host:
            missing.append("SFTP_HOST")
        if not self.sftp_user:
            missing.append("SFTP_USER")
        if self.sftp_private_key_path is None:
            missing.append("SFTP_PRIVATE_KEY_PATH")
        if not self.sftp_remote_base_dir:
            missing.append("SFTP_REMOTE_BASE_DIR")
        return missing


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
