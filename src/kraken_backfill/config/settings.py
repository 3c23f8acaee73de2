"""Configuration settings for the trade backfill service."""

import os
import yaml
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ..models import cursor_from_datetime


@dataclass
class KrakenConfig:
    """Kraken REST API configuration."""
    rest_base_url: str = "https://api.kraken.com"
    page_size: int = 1000
    request_timeout_seconds: float = 30.0

    def __post_init__(self):
        self.page_size = int(self.page_size)
        self.request_timeout_seconds = float(self.request_timeout_seconds)
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        if self.request_timeout_seconds <= 0:
            raise ValueError(f"request_timeout_seconds must be positive, got {self.request_timeout_seconds}")


@dataclass
class PollerConfig:
    """Polling and clustering configuration."""
    pairs: List[str] = field(default_factory=list)
    start_time: Optional[str] = None  # ISO 8601, UTC when no offset is given
    bucket_width_seconds: float = 60
    request_delay_seconds: float = 1.0
    poll_interval_seconds: float = 5.0

    def __post_init__(self):
        if isinstance(self.pairs, str):
            self.pairs = [p.strip() for p in self.pairs.split(",") if p.strip()]
        if not self.pairs:
            raise ValueError("at least one pair must be configured")
        self.bucket_width_seconds = float(self.bucket_width_seconds)
        self.request_delay_seconds = float(self.request_delay_seconds)
        self.poll_interval_seconds = float(self.poll_interval_seconds)
        if self.bucket_width_seconds <= 0:
            raise ValueError(f"bucket_width_seconds must be positive, got {self.bucket_width_seconds}")
        if self.request_delay_seconds < 0:
            raise ValueError(f"request_delay_seconds must not be negative, got {self.request_delay_seconds}")
        if self.poll_interval_seconds < 0:
            raise ValueError(f"poll_interval_seconds must not be negative, got {self.poll_interval_seconds}")
        # fail at load time rather than when the first poller starts
        self.start_cursor()

    @property
    def bucket_width(self) -> timedelta:
        return timedelta(seconds=self.bucket_width_seconds)

    def start_cursor(self) -> int:
        """Starting cursor in nanoseconds; 0 (the beginning of history) when unset."""
        if not self.start_time:
            return 0
        try:
            moment = datetime.fromisoformat(str(self.start_time))
        except ValueError:
            raise ValueError(f"invalid start_time: {self.start_time!r}")
        return cursor_from_datetime(moment)


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"
    output: str = "stdout"


@dataclass
class BackfillConfig:
    """Main configuration for the backfill service."""
    kraken: KrakenConfig
    poller: PollerConfig
    logging: LoggingConfig


def load_config(config_file: str) -> BackfillConfig:
    """Load configuration from YAML file."""

    with open(config_file, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    # Environment variable substitution
    config_data = _substitute_env_vars(config_data)

    return BackfillConfig(
        kraken=KrakenConfig(**config_data.get('kraken', {})),
        poller=PollerConfig(**config_data.get('poller', {})),
        logging=LoggingConfig(**config_data.get('logging', {}))
    )


def _substitute_env_vars(data):
    """Recursively substitute environment variables in configuration."""
    if isinstance(data, dict):
        return {key: _substitute_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    elif isinstance(data, str) and data.startswith('${') and data.endswith('}'):
        # Extract environment variable name and default value
        env_spec = data[2:-1]

        if ':' in env_spec:
            env_name, default_value = env_spec.split(':', 1)
        else:
            env_name, default_value = env_spec, None

        return os.getenv(env_name, default_value)
    else:
        return data
