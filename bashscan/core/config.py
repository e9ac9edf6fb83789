"""Scanner configuration files and process settings via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

SCANNER_CONFIG_NAME = ".bash-scanner.yaml"


class Config(BaseModel):
    """Project or user overrides read from ``.bash-scanner.yaml``."""

    model_config = ConfigDict(frozen=True)

    safe_paths: list[str] = []
    whitelisted_commands: list[str] = []

    @field_validator("safe_paths", "whitelisted_commands", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


def load_config_file(path: Path) -> Config | None:
    """Read one scanner config file. Returns ``None`` if it is missing or invalid."""
    if not path.is_file():
        return None
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("scanner_config_read_failed", path=str(path), error=str(exc))
        return None

    if not isinstance(raw, dict):
        logger.warning("scanner_config_not_a_mapping", path=str(path))
        return None

    try:
        config = Config(**raw)
    except ValidationError as exc:
        logger.warning("scanner_config_invalid", path=str(path), error=str(exc))
        return None

    logger.info(
        "config_loaded",
        path=str(path),
        safe_paths=len(config.safe_paths),
        whitelisted_commands=len(config.whitelisted_commands),
    )
    return config


def load_config(project_dir: str | Path | None) -> Config:
    """Project ``.bash-scanner.yaml``, then ``~/.bash-scanner.yaml``, then defaults."""
    candidates: list[Path] = []
    if project_dir:
        candidates.append(Path(project_dir) / SCANNER_CONFIG_NAME)
    try:
        candidates.append(Path.home() / SCANNER_CONFIG_NAME)
    except RuntimeError:
        logger.debug("home_directory_unavailable")

    for path in candidates:
        config = load_config_file(path)
        if config is not None:
            return config
    return Config()


class BashscanSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BASHSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scanning
    cwd: Path | None = None
    project_dir: Path | None = None

    # Logging
    log_level: str = "WARNING"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5
    audit_log_path: Path | None = None

    @field_validator("cwd", "project_dir", "log_dir", "audit_log_path", mode="before")
    @classmethod
    def parse_optional_path(cls, v: Path | str | None) -> Path | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return Path(v).expanduser()

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()
