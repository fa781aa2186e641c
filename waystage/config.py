from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_SIGNAL_TOPIC


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()
    signal_topic: str = DEFAULT_SIGNAL_TOPIC


class SchedulerConfig(BaseModel):
    """Polling cadence of the scheduling loop."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    wake_on_signal: bool = False


class WaystageConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> WaystageConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to WAYSTAGE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("WAYSTAGE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = WaystageConfig(**data)
    else:
        config = WaystageConfig()

    env_db_url = os.getenv("WAYSTAGE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
