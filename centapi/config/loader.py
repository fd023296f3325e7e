"""Configuration loading with fail-fast behavior.

Configuration comes from an optional JSON file, then environment overrides:

1. JSON file (explicit path, or the path in CENTAPI_CONFIG)
2. CENTRIFUGO_API_URL overrides "addr"
3. The variable named by "api_key_env" (CENTRIFUGO_API_KEY by default)
   overrides "api_key"
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from centapi.config.schema import ClientConfig
from centapi.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "CENTAPI_CONFIG"
ADDR_ENV = "CENTRIFUGO_API_URL"


def _read_config_file(path: Path, *, required: bool) -> dict[str, Any] | None:
    """Read the settings object from a config file.

    An empty file holds no settings. A missing file is an error only when
    required; otherwise None is returned.

    Raises:
        ConfigError: If the file is missing (when required), unreadable, or
            does not hold a single JSON object.
    """
    if not path.is_file():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        logger.debug("Config file not found, using defaults: %s", path)
        return None

    try:
        content = path.read_text(encoding="utf-8-sig").strip()
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    if not content:
        return {}

    try:
        settings = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(settings, dict):
        raise ConfigError(f"Expected object in {path}, got {type(settings).__name__}")
    return settings


def load_config(path: Path | None = None) -> ClientConfig:
    """Load and validate client configuration.

    Args:
        path: Explicit config file path; the file must exist. If None, the
            file named by CENTAPI_CONFIG is used when that variable is set
            and the file exists.

    Returns:
        Validated ClientConfig.

    Raises:
        ConfigError: If the file contains invalid JSON or the merged config
            fails validation.
    """
    data: dict[str, Any] = {}
    source = "defaults"

    if path is not None:
        data = _read_config_file(path, required=True) or {}
        source = str(path)
    else:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            loaded = _read_config_file(Path(env_path), required=False)
            if loaded is not None:
                data = loaded
                source = env_path

    addr = os.environ.get(ADDR_ENV)
    if addr:
        logger.debug("API address overridden by %s", ADDR_ENV)
        data["addr"] = addr

    try:
        config = ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed ({source}): {e}") from e

    api_key = os.environ.get(config.api_key_env)
    if api_key:
        logger.debug("API key overridden by %s", config.api_key_env)
        config = config.model_copy(update={"api_key": api_key})

    logger.debug("Config loaded from %s", source)
    return config
