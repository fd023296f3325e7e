"""Configuration loading and validation."""

from centapi.config.loader import ADDR_ENV, CONFIG_PATH_ENV, load_config
from centapi.config.schema import ClientConfig

__all__ = [
    "ADDR_ENV",
    "CONFIG_PATH_ENV",
    "ClientConfig",
    "load_config",
]
