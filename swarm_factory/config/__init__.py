"""Configuration management.

Settings come from `swarm-factory.yml` in the working directory, or the file
named by `SWARM_FACTORY_CONFIG`. A `.env` next to it is loaded first so
`${VAR}` references and `store.token_env` can be satisfied from there.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from swarm_factory.config.loader import load_config
from swarm_factory.config.schema import (
    BoardConfig,
    DispatchConfig,
    NotificationsConfig,
    RetryConfig,
    RunnerConfig,
    StoreConfig,
    SwarmFactoryConfig,
)

CONFIG_ENV = "SWARM_FACTORY_CONFIG"
DEFAULT_CONFIG_FILE = "swarm-factory.yml"


def resolve_config_path(path: Optional[str] = None) -> Path:
    return Path(path or os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_FILE).expanduser()


def load_settings(path: Optional[str] = None) -> SwarmFactoryConfig:
    """Load `.env`, then the YAML config (defaults when the file is absent)."""
    config_path = resolve_config_path(path)
    load_dotenv(config_path.parent / ".env")
    return load_config(config_path, SwarmFactoryConfig)


__all__ = [
    "BoardConfig",
    "DispatchConfig",
    "NotificationsConfig",
    "RetryConfig",
    "RunnerConfig",
    "StoreConfig",
    "SwarmFactoryConfig",
    "CONFIG_ENV",
    "DEFAULT_CONFIG_FILE",
    "load_settings",
    "resolve_config_path",
]
