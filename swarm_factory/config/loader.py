import os
import re
from pathlib import Path
from typing import Type, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from swarm_factory.core.errors import ConfigurationError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def expand_env_vars(config: object) -> object:
    """Recursively expand environment variables in config.

    Replaces ${VAR} patterns with environment variable values. Unset
    variables are left as written.
    """
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, config)
    return config


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if model.model_extra:
        logger.warning("unknown config keys", section=path, config_path=str(config_path), keys=list(model.model_extra))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Path, model_class: Type[T]) -> T:
    """Load and validate configuration from a YAML file.

    A missing file yields the model defaults.

    Raises:
        ConfigurationError: unreadable YAML or values that fail validation.
    """
    if not path.exists():
        return model_class()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    try:
        model = model_class.model_validate(expand_env_vars(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {path}: {e}") from e
    _warn_unknown_keys(model, "root", path)
    return model
