"""
Configuration management for the Kling panel core.

Centralizes all configuration including:
- Replicate API endpoint and model selection
- Polling cadence and limits
- Output and settings storage locations
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class APIConfig:
    """API configuration for the video generation service."""

    api_base: str = field(
        default_factory=lambda: os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1")
    )

    # Kling models hosted on Replicate
    text_to_video_model: str = field(
        default_factory=lambda: os.getenv("KLING_T2V_MODEL", "kwaivgi/kling-v2.1-master")
    )
    image_to_video_model: str = field(
        default_factory=lambda: os.getenv("KLING_I2V_MODEL", "kwaivgi/kling-v2.1-master")
    )

    request_timeout: float = 60.0  # seconds, per HTTP request


@dataclass
class PollingConfig:
    """How often and how long to wait on a remote job."""
    interval_seconds: float = field(default_factory=lambda: _env_float("KLING_POLL_INTERVAL", 5.0))
    timeout_seconds: float = field(default_factory=lambda: _env_float("KLING_POLL_TIMEOUT", 600.0))
    max_consecutive_errors: int = 5


@dataclass
class StorageConfig:
    """Storage configuration for downloaded videos and settings."""
    output_dir: str = field(default_factory=lambda: os.getenv("KLING_OUTPUT_DIR", "./output"))
    credentials_path: str = field(
        default_factory=lambda: os.getenv(
            "KLING_CREDENTIALS_PATH",
            str(Path.home() / ".kling_panel" / "settings.json"),
        )
    )
    chunk_size: int = 64 * 1024
    progress_step_bytes: int = 5 * 1024 * 1024  # used when size is unknown


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Send a cancel request to the service when the caller aborts mid-job
    cancel_remote_on_abort: bool = field(
        default_factory=lambda: os.getenv("KLING_CANCEL_REMOTE", "false").lower() == "true"
    )

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.api_base.startswith(("http://", "https://")):
            issues.append(f"REPLICATE_API_BASE is not an HTTP URL: {self.api.api_base}")

        if self.polling.interval_seconds <= 0:
            issues.append("KLING_POLL_INTERVAL must be positive")

        if self.polling.timeout_seconds < self.polling.interval_seconds:
            issues.append("KLING_POLL_TIMEOUT is shorter than the poll interval")

        if self.polling.max_consecutive_errors < 1:
            issues.append("max_consecutive_errors must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
