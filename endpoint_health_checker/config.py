"""
Configuration management for Endpoint Health Checker.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DURATION_PATTERN = r"^(\d+)([smhd])$"


class Config(BaseModel):
    """Configuration model for Endpoint Health Checker."""

    # Server settings
    port: int = Field(default=3001, ge=1, le=65535)
    bind_address: str = Field(default="0.0.0.0")  # nosec B104

    # TLS settings for the API itself
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None

    # Certificate inspection
    openssl_path: str = Field(default="openssl")
    handshake_timeout: str = Field(default="10s")
    command_timeout: str = Field(default="15s")
    batch_timeout: str = Field(default="30s")
    inspection_workers: int = Field(default=4, ge=1, le=32)
    expiry_warning_days: int = Field(default=30, ge=0, le=365)

    # HTTP liveness checks
    http_timeout: str = Field(default="10s")
    http_user_agent: str = Field(default="SFMC-Health-Checker/1.0")

    # CORS
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:5174",
            "http://localhost:3000",
        ]
    )
    cors_origin_regex: Optional[str] = Field(
        default=r"^https://.*\.(app\.github\.dev|githubpreview\.dev|preview\.app\.github\.dev)$"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    docs_enabled: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("handshake_timeout", "http_timeout")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Validate duration format (e.g., '10s', '1m')."""
        if not v:
            raise ValueError("Duration cannot be empty")

        if not re.match(DURATION_PATTERN, v):
            raise ValueError("Duration must be in format like '5m', '1h', '30s', '1d'")
        return v

    @field_validator("command_timeout", "batch_timeout")
    @classmethod
    def validate_optional_duration(cls, v: str) -> str:
        """Validate a duration that may be disabled with an empty string."""
        if v and not re.match(DURATION_PATTERN, v):
            raise ValueError("Duration must be empty or in format like '5m', '1h', '30s', '1d'")
        return v

    @field_validator("cors_origin_regex")
    @classmethod
    def validate_origin_regex(cls, v: Optional[str]) -> Optional[str]:
        """Validate the CORS origin pattern compiles."""
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid cors_origin_regex '{v}': {e}") from e
        return v or None

    def parse_duration_seconds(self, duration: str) -> int:
        """Parse duration string to seconds."""
        match = re.match(DURATION_PATTERN, duration)
        if not match:
            raise ValueError(f"Invalid duration format: {duration}")

        value, unit = match.groups()
        multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400}

        return int(value) * multipliers[unit]

    @property
    def handshake_timeout_seconds(self) -> int:
        """Outer process-kill timeout for one handshake."""
        return self.parse_duration_seconds(self.handshake_timeout)

    @property
    def command_timeout_seconds(self) -> Optional[int]:
        """Wrapper-command timeout, or None when the wrapper is disabled."""
        if not self.command_timeout:
            return None
        return self.parse_duration_seconds(self.command_timeout)

    @property
    def batch_timeout_seconds(self) -> Optional[int]:
        """Overall batch deadline, or None when unbounded."""
        if not self.batch_timeout:
            return None
        return self.parse_duration_seconds(self.batch_timeout)

    @property
    def http_timeout_seconds(self) -> int:
        """Timeout for one HTTP liveness request."""
        return self.parse_duration_seconds(self.http_timeout)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Config object
    """
    config_data: Dict[str, Any] = {}

    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    # Override with environment variables
    config_data.update(_get_env_overrides())

    return Config(**config_data)


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, tuple[str, Callable[[str], Any]]] = {
        "HEALTH_CHECKER_PORT": ("port", int),
        "HEALTH_CHECKER_BIND_ADDRESS": ("bind_address", str),
        "HEALTH_CHECKER_TLS_CERT": ("tls_cert", str),
        "HEALTH_CHECKER_TLS_KEY": ("tls_key", str),
        "HEALTH_CHECKER_OPENSSL_PATH": ("openssl_path", str),
        "HEALTH_CHECKER_HANDSHAKE_TIMEOUT": ("handshake_timeout", str),
        "HEALTH_CHECKER_COMMAND_TIMEOUT": ("command_timeout", str),
        "HEALTH_CHECKER_BATCH_TIMEOUT": ("batch_timeout", str),
        "HEALTH_CHECKER_INSPECTION_WORKERS": ("inspection_workers", int),
        "HEALTH_CHECKER_EXPIRY_WARNING_DAYS": ("expiry_warning_days", int),
        "HEALTH_CHECKER_HTTP_TIMEOUT": ("http_timeout", str),
        "HEALTH_CHECKER_HTTP_USER_AGENT": ("http_user_agent", str),
        "HEALTH_CHECKER_LOG_LEVEL": ("log_level", str),
        "HEALTH_CHECKER_LOG_FILE": ("log_file", str),
        "HEALTH_CHECKER_DOCS_ENABLED": (
            "docs_enabled",
            lambda x: x.lower() in ("true", "1", "yes"),
        ),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    cors_origins = os.getenv("HEALTH_CHECKER_CORS_ORIGINS")
    if cors_origins:
        overrides["cors_origins"] = [o.strip() for o in cors_origins.split(",") if o.strip()]

    return overrides


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example_config = {
        "port": 3001,
        "bind_address": "0.0.0.0",  # nosec B104
        "openssl_path": "openssl",
        "handshake_timeout": "10s",
        "command_timeout": "15s",
        "batch_timeout": "30s",
        "inspection_workers": 4,
        "expiry_warning_days": 30,
        "http_timeout": "10s",
        "http_user_agent": "SFMC-Health-Checker/1.0",
        "cors_origins": ["http://localhost:5173", "http://localhost:3000"],
        "log_level": "INFO",
        "docs_enabled": True,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
