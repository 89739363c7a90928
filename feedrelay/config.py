"""Configuration management for Feed Relay."""

import os
from dataclasses import dataclass


@dataclass
class DiscordConfig:
    """Configuration for the Discord REST API."""

    bot_token: str
    api_base: str = "https://discord.com/api/v10"
    retry_attempts: int = 3
    backoff_factor: float = 2.0


@dataclass
class FetchConfig:
    """Configuration for feed downloads."""

    user_agent: str = "feed-relay/1.0"
    probe_timeout: float = 2.5
    fetch_timeout: float = 10.0


@dataclass
class BackoffConfig:
    """Configuration for skipping repeatedly failing subscriptions."""

    threshold: int = 3
    base_seconds: int = 600
    max_seconds: int = 21600

    @property
    def enabled(self) -> bool:
        return self.threshold > 0


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


class Config:
    """Main configuration manager."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.table_name = os.getenv("FEED_TABLE", "feed-relay-kv")
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.discord_secret_name = os.getenv(
            "DISCORD_SECRET_NAME", "feed-relay-discord-token"
        )
        self.discord_api_base = os.getenv(
            "DISCORD_API_BASE", "https://discord.com/api/v10"
        )
        self.probe_timeout_ms = _int_env("PROBE_TIMEOUT_MS", 2500)
        self.fetch_timeout_ms = _int_env("FETCH_TIMEOUT_MS", 10000)
        self.backoff_threshold = _int_env("ERROR_BACKOFF_THRESHOLD", 3)
        self.backoff_base_seconds = _int_env("ERROR_BACKOFF_BASE_SECONDS", 600)
        self.backoff_max_seconds = _int_env("ERROR_BACKOFF_MAX_SECONDS", 21600)
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    def get_discord_config(self) -> DiscordConfig:
        """Get Discord configuration."""
        # Token will be retrieved from Secrets Manager at runtime
        return DiscordConfig(bot_token="", api_base=self.discord_api_base)

    def get_fetch_config(self) -> FetchConfig:
        """Get feed download configuration."""
        return FetchConfig(
            probe_timeout=self.probe_timeout_ms / 1000,
            fetch_timeout=self.fetch_timeout_ms / 1000,
        )

    def get_backoff_config(self) -> BackoffConfig:
        """Get error backoff configuration."""
        return BackoffConfig(
            threshold=self.backoff_threshold,
            base_seconds=self.backoff_base_seconds,
            max_seconds=self.backoff_max_seconds,
        )
