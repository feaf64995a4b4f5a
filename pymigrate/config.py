"""
pymigrate configuration system.

Provides global configuration for the version table and install behavior.

Configuration is loaded in this priority order:
1. Values set via pymigrate.configure() (highest priority)
2. Values from pymigrate.config.yaml in current directory
3. Default values

Usage:
    >>> import pymigrate
    >>> pymigrate.configure(
    ...     version_table="schema_version",
    ...     lock=True,
    ... )
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pymigrate.core.exceptions import ConfigurationError

# Fixed default key for pg_advisory_lock(); any bigint works as long as every
# installer of the same database agrees on it.
DEFAULT_LOCK_KEY = 7_245_118_093

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def _load_yaml_config() -> Dict[str, Any]:
    """
    Load configuration from pymigrate.config.yaml in current directory.

    Returns:
        Configuration dictionary, empty dict if file not found
    """
    config_path = Path.cwd() / "pymigrate.config.yaml"
    if not config_path.exists():
        return {}

    import yaml

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")
    return config


def validate_table_name(name: str) -> str:
    """
    Check that a version table name is a plain (optionally schema-qualified)
    SQL identifier. The name is interpolated into DDL, so anything else is
    rejected.

    Returns:
        The name, unchanged

    Raises:
        ConfigurationError: If the name is not a plain identifier
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ConfigurationError(
            f"Invalid version table name: {name!r}. "
            "Use letters, digits and underscores, optionally 'schema.table'."
        )
    return name


@dataclass
class PyMigrateConfig:
    """
    Global configuration for pymigrate.

    Attributes:
        version_table: Name of the single-row table holding the schema version
        strict_missing_table: Only initialize the version table when the read
            failed because the table does not exist. When False, any read
            error is treated as "uninitialized".
        verify_version_row: Require the version update to affect exactly one row
        lock: Take the dialect's installer lock around each install run
        lock_key: Key for the installer lock (PostgreSQL advisory lock id)
    """

    version_table: str = "version"
    strict_missing_table: bool = True
    verify_version_row: bool = True

    # Concurrent installer coordination
    lock: bool = False
    lock_key: int = DEFAULT_LOCK_KEY


def _config_from_yaml() -> PyMigrateConfig:
    """Create a PyMigrateConfig from YAML file settings."""
    yaml_config = _load_yaml_config()

    if not yaml_config:
        return PyMigrateConfig()

    config = PyMigrateConfig()

    if "version_table" in yaml_config:
        config.version_table = validate_table_name(yaml_config["version_table"])
    if "strict_missing_table" in yaml_config:
        config.strict_missing_table = bool(yaml_config["strict_missing_table"])
    if "verify_version_row" in yaml_config:
        config.verify_version_row = bool(yaml_config["verify_version_row"])

    # lock: true | lock: {enabled: true, key: 42}
    lock_config = yaml_config.get("lock")
    if isinstance(lock_config, dict):
        config.lock = bool(lock_config.get("enabled", True))
        config.lock_key = int(lock_config.get("key", DEFAULT_LOCK_KEY))
    elif lock_config is not None:
        config.lock = bool(lock_config)

    return config


# Global singleton
_config: Optional[PyMigrateConfig] = None


def configure(**kwargs: Any) -> None:
    """
    Configure pymigrate defaults.

    Args:
        version_table: Name of the version table
        strict_missing_table: Only treat "table does not exist" as uninitialized
        verify_version_row: Check the version update affected exactly one row
        lock: Take an installer lock around each install run
        lock_key: Installer lock key

    Example:
        >>> import pymigrate
        >>> pymigrate.configure(version_table="app_version", lock=True)
    """
    global _config
    if _config is None:
        _config = _config_from_yaml()

    for key, value in kwargs.items():
        if hasattr(_config, key):
            if key == "version_table":
                validate_table_name(value)
            setattr(_config, key, value)
        else:
            valid_keys = [f for f in PyMigrateConfig.__dataclass_fields__.keys()]
            raise ValueError(
                f"Unknown config option: {key}. Valid options: {', '.join(valid_keys)}"
            )


def get_config() -> PyMigrateConfig:
    """
    Get the current configuration.

    If not yet configured, loads from pymigrate.config.yaml if present,
    otherwise creates default configuration.

    Returns:
        Current PyMigrateConfig instance
    """
    global _config
    if _config is None:
        _config = _config_from_yaml()
    return _config


def reset_config() -> None:
    """
    Reset configuration to defaults.

    Primarily used for testing.
    """
    global _config
    _config = None
