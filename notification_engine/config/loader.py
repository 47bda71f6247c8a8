"""Configuration loader for the notification engine."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from notification_engine.logging import get_logger

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig, ProviderMode
from .validators import check_for_warnings, emit_warnings

logger = get_logger(__name__, component="config")

DEFAULT_CONFIG_LOCATIONS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from YAML and environment variables.

    Lookup order for the YAML file:
    1. config_path if given (must exist)
    2. ./config.yaml
    3. ./config/config.yaml
    4. Built-in defaults (mock providers) when no file is found

    Args:
        config_path: Optional path to configuration file

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If the file is unreadable or any value is invalid
    """
    config_file = _find_config_file(config_path)

    if config_file is None:
        logger.info(
            "No configuration file found, using defaults",
            extra={"event": "config.defaults_used"},
        )
        config_dict: Dict[str, Any] = {}
    else:
        config_dict = _read_yaml(config_file)

    app_config = parse_app_config(config_dict)

    env_config = load_environment_config(
        require_live_credentials=app_config.providers.mode == ProviderMode.LIVE.value
    )

    return app_config, env_config


def parse_app_config(config_dict: Dict[str, Any]) -> AppConfig:
    """Validate a raw configuration mapping into an AppConfig.

    Emits non-fatal warnings first, then converts Pydantic errors into a
    single ConfigurationError listing every problem.
    """
    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=format_validation_errors(e),
            suggestions=[
                "Review config.example.yaml for correct format",
                "Verify field types match the expected schema",
            ],
        ) from e


def format_validation_errors(error: ValidationError) -> List[str]:
    """Turn a Pydantic ValidationError into one readable line per problem."""
    messages = []
    for item in error.errors():
        field_path = " -> ".join(str(loc) for loc in item["loc"]) or "(root)"
        error_type = item["type"]

        if error_type == "missing":
            messages.append(f"Missing required field: {field_path}")
        elif error_type.endswith("_type") or error_type.endswith("_parsing"):
            messages.append(
                f"Invalid type for '{field_path}': {item['msg']} (got {item.get('input')!r})"
            )
        elif "enum" in error_type:
            messages.append(f"Invalid value for '{field_path}': {item['msg']}")
        else:
            messages.append(f"{field_path}: {item['msg']}")
    return messages


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        ) from e

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got {type(config_dict).__name__}",
            suggestions=["Review config.example.yaml for correct format"],
        )

    logger.debug(
        "Configuration file loaded",
        extra={"event": "config.file_loaded", "config_path": str(config_file)},
    )
    return config_dict


def _find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    """Resolve the config file, or None if no default location exists.

    Raises:
        ConfigurationError: If an explicit path was given and does not exist
    """
    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    f"Ensure {config_path} exists",
                    "Omit --config to fall back to config.yaml or built-in defaults",
                ],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    return None
