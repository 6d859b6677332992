"""
Configuration loading for fwfetch.

Configuration lives in a YAML file under the platform config directory and is
handled as a plain dictionary with upper-case keys. It is read once at the CLI
boundary; the download core only ever receives explicit values.
"""

import os
import tempfile
from typing import Any, Dict, Mapping, Optional

import platformdirs
import yaml

from fwfetch.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_MAX_DOWNLOAD_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    GITHUB_TOKEN_ENV_VARS,
)
from fwfetch.exceptions import ConfigFileError, ConfigurationError
from fwfetch.log_utils import logger

DEFAULT_CONFIG: Dict[str, Any] = {
    "CACHE_DIR": None,
    "GITHUB_TOKEN": None,
    "REQUEST_TIMEOUT": DEFAULT_REQUEST_TIMEOUT,
    "CHUNK_SIZE": DEFAULT_CHUNK_SIZE,
    "MAX_DOWNLOAD_ATTEMPTS": DEFAULT_MAX_DOWNLOAD_ATTEMPTS,
    "CONNECT_RETRIES": DEFAULT_CONNECT_RETRIES,
    "LOG_LEVEL": None,
    "LOG_DIR": None,
    "IMAGES": [],
}


def get_config_file_path() -> str:
    """Return the platform-appropriate path of `fwfetch.yaml`."""
    return os.path.join(platformdirs.user_config_dir(APP_NAME), CONFIG_FILE_NAME)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the fwfetch configuration YAML merged over the defaults.

    Parameters:
        path (str | None): Explicit config file path; defaults to `get_config_file_path()`.

    Returns:
        dict: DEFAULT_CONFIG updated with the file's values. A missing file yields the defaults.

    Raises:
        ConfigFileError: If the file exists but cannot be read or is not a YAML mapping.
    """
    config_path = path or get_config_file_path()
    config = dict(DEFAULT_CONFIG)

    if not os.path.exists(config_path):
        logger.debug(f"No configuration file at {config_path}; using defaults")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(
            f"Could not read configuration file {config_path}", details=str(e)
        ) from e

    if loaded is None:
        return config
    if not isinstance(loaded, dict):
        raise ConfigFileError(
            f"Configuration file {config_path} must contain a mapping",
            details=f"got {type(loaded).__name__}",
        )

    config.update(loaded)
    logger.debug(f"Loaded configuration from {config_path}")
    return config


def save_config(config: Mapping[str, Any], path: Optional[str] = None) -> str:
    """
    Write the configuration to YAML atomically (temporary file then replace).

    Returns:
        str: The path the configuration was written to.

    Raises:
        ConfigFileError: If the file cannot be written.
    """
    config_path = path or get_config_file_path()
    config_dir = os.path.dirname(config_path) or "."
    try:
        os.makedirs(config_dir, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=config_dir, prefix="tmp-", suffix=".yaml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(dict(config), f, default_flow_style=False)
            os.replace(temp_path, config_path)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)
    except OSError as e:
        raise ConfigFileError(
            f"Could not write configuration file {config_path}", details=str(e)
        ) from e
    return config_path


def get_int_setting(config: Mapping[str, Any], key: str, minimum: int = 0) -> int:
    """
    Return an integer setting, falling back to DEFAULT_CONFIG when unset.

    Raises:
        ConfigurationError: If the value is not an integer or is below `minimum`.
    """
    value = config.get(key)
    if value is None:
        value = DEFAULT_CONFIG[key]
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Configuration value {key} must be an integer", details=repr(value)
        ) from e
    if number < minimum:
        raise ConfigurationError(
            f"Configuration value {key} must be at least {minimum}", details=repr(value)
        )
    return number


def get_cache_dir(config: Mapping[str, Any]) -> str:
    """Return the configured cache root, or the platform user cache directory."""
    configured = config.get("CACHE_DIR")
    if configured:
        return os.path.expanduser(str(configured))
    return platformdirs.user_cache_dir(APP_NAME)


def get_github_token(
    config: Mapping[str, Any],
    allow_env_token: bool = True,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """
    Determine the GitHub token to use, preferring the configuration over the environment.

    Parameters:
        config (Mapping): Loaded configuration; `GITHUB_TOKEN` is used when non-blank.
        allow_env_token (bool): If True, fall back to GITHUB_TOKEN / GITHUB_API_TOKEN.
        environ (Mapping | None): Environment to read; defaults to `os.environ`.

    Returns:
        Optional[str]: The chosen token with surrounding whitespace removed, or None.
    """
    candidate = str(config.get("GITHUB_TOKEN") or "").strip()
    if candidate:
        return candidate
    if not allow_env_token:
        return None
    env = os.environ if environ is None else environ
    for name in GITHUB_TOKEN_ENV_VARS:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None
