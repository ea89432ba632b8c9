"""Configuration loading and management for Convoy.

Functions:
    load_config: Load configuration from ~/.convoy/config.yaml (or a path)
    create_default_config: Write a default config.yaml
    ensure_config_dir: Ensure ~/.convoy/ exists
    config_exists: Check whether config.yaml is present
    get_config_path: Resolve the config path from CONVOY_CONFIG or the default
"""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError
import yaml

# Load .env file from current directory and ~/.convoy/
load_dotenv()
load_dotenv(Path.home() / ".convoy" / ".env")

from convoy.config.models import ConvoyConfig, get_config_dir, get_default_config
from convoy.core.errors import ConfigError


def ensure_config_dir() -> Path:
    """Ensure the configuration directory and its logs/ subdirectory exist.

    Returns:
        Path to the configuration directory.
    """
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "logs").mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Resolve the configuration file path.

    Priority:
        1. CONVOY_CONFIG environment variable
        2. ~/.convoy/config.yaml
    """
    env_path = os.environ.get("CONVOY_CONFIG", "").strip()
    if env_path:
        return Path(env_path).expanduser()
    return get_config_dir() / "config.yaml"


def _model_to_yaml_dict(model: ConvoyConfig) -> dict[str, Any]:
    return model.model_dump(mode="json")


def create_default_config(
    config_dir: Path | None = None,
    *,
    overwrite: bool = False,
) -> Path:
    """Create a default config.yaml.

    Args:
        config_dir: Directory to create the file in. Defaults to ~/.convoy/
        overwrite: If True, overwrite an existing file.

    Returns:
        Path of the written config file.

    Raises:
        ConfigError: If the file exists and overwrite=False.
    """
    if config_dir is None:
        config_dir = ensure_config_dir()
    else:
        config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / "config.yaml"
    if config_path.exists() and not overwrite:
        raise ConfigError(
            f"Configuration file already exists: {config_path}",
            config_file=str(config_path),
        )

    with config_path.open("w") as f:
        yaml.dump(
            _model_to_yaml_dict(get_default_config()),
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return config_path


def load_config(config_path: Path | None = None) -> ConvoyConfig:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to config file. Defaults to get_config_path().

    Returns:
        Validated ConvoyConfig instance.

    Raises:
        ConfigError: If the file doesn't exist, is malformed, or fails validation.
    """
    if config_path is None:
        config_path = get_config_path()

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}. "
            "Run `convoy config init` to create default configuration.",
            config_file=str(config_path),
        )

    try:
        with config_path.open() as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse configuration file: {e}",
            config_file=str(config_path),
            details={"yaml_error": str(e)},
        ) from e

    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise ConfigError(
            "Configuration root must be a mapping",
            config_file=str(config_path),
        )

    try:
        return ConvoyConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            error_messages.append(f"  - {loc}: {error['msg']}")

        raise ConfigError(
            "Configuration validation failed:\n" + "\n".join(error_messages),
            config_file=str(config_path),
            details={"validation_errors": e.errors()},
        ) from e


def config_exists(config_path: Path | None = None) -> bool:
    """Check if the configuration file exists."""
    return (config_path or get_config_path()).exists()
