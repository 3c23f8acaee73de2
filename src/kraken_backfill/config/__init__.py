"""Configuration loading for the backfill service."""

from .settings import BackfillConfig, KrakenConfig, LoggingConfig, PollerConfig, load_config

__all__ = ["BackfillConfig", "KrakenConfig", "LoggingConfig", "PollerConfig", "load_config"]
