"""Shared configuration helpers and dataclasses."""

from .errors import ConfigurationError
from .runtime import (
    env_float,
    env_int,
    env_seconds,
    env_str,
    reset_default_values,
)

__all__ = [
    "ConfigurationError",
    "env_float",
    "env_int",
    "env_seconds",
    "env_str",
    "reset_default_values",
]
