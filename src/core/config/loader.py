"""
Configuration loader — reads envplan.yml into a ProvisionConfig.

This is the primary entry point for loading project configuration.
It reads YAML, validates against the Pydantic schema, and returns a
typed config object rooted at the config file's directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from src.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename
PROJECT_CONFIG_FILE = "envplan.yml"

ADAPTIVE_ENV_VAR = "ENVPLAN_ADAPTIVE"


class ConfigError(Exception):
    """Raised when project configuration is invalid or missing."""


def find_project_file(start_dir: Path | None = None) -> Path | None:
    """Search for envplan.yml starting from the given directory, walking up.

    This allows running commands from subdirectories and still finding
    the project root.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to envplan.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def read_yaml_mapping(path: Path) -> dict:
    """Read a YAML file that must contain a mapping.

    Raises:
        ConfigError: If the file cannot be read, parsed, or is not a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def load_config(path: Path | None = None, start_dir: Path | None = None) -> ProvisionConfig:
    """Load and validate project configuration.

    Args:
        path: Explicit path to envplan.yml. If None, searches upward
            from ``start_dir``; when nothing is found, defaults rooted
            at ``start_dir`` (or cwd) are returned.
        start_dir: Where the upward search begins.

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is not None and not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    if path is None:
        path = find_project_file(start_dir)

    if path is None:
        root = (start_dir or Path.cwd()).resolve()
        logger.debug("No %s found, using defaults rooted at %s", PROJECT_CONFIG_FILE, root)
        return ProvisionConfig(root=root)

    logger.debug("Loading project config from %s", path)
    data = read_yaml_mapping(path)

    # The YAML may wrap everything under an "envplan" key or be flat
    config_data = dict(data.get("envplan", data))
    config_data["root"] = config_root(path)

    try:
        config = ProvisionConfig.model_validate(config_data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded config '%s' (env: %s)", config.name, config.env_path)
    return config


def config_root(config_path: Path) -> Path:
    """Get the project root directory from a config file path."""
    return config_path.parent.resolve()


def adaptive_from_env() -> bool:
    """Whether the environment switches the compatibility rules on."""
    return os.environ.get(ADAPTIVE_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")
