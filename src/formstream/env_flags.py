"""Environment flag helpers."""

from __future__ import annotations

import os
from typing import Any, Mapping

DEBUG_ENV_VAR = "FORMSTREAM_DEBUG"
CONFIG_ENV_VAR = "FORMSTREAM_CONFIG"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def env_flag_enabled(value: Any) -> bool:
    """Return ``True`` when *value* represents an enabled environment flag."""
    if value is None:
        return False
    if isinstance(value, bytes):
        try:
            text = value.decode()
        except UnicodeDecodeError:
            text = value.decode(errors="ignore")
    else:
        text = str(value)
    normalized = text.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return False


def debug_requested(environ: Mapping[str, str] | None = None) -> bool:
    """Return ``True`` when ``FORMSTREAM_DEBUG`` asks for debug logging."""
    env = os.environ if environ is None else environ
    return env_flag_enabled(env.get(DEBUG_ENV_VAR))


def config_path_from_env(environ: Mapping[str, str] | None = None) -> str | None:
    env = os.environ if environ is None else environ
    value = (env.get(CONFIG_ENV_VAR) or "").strip()
    return value or None


__all__ = ["CONFIG_ENV_VAR", "DEBUG_ENV_VAR", "config_path_from_env", "debug_requested", "env_flag_enabled"]
