"""Configuration loader that parses and validates user-provided TOML."""

from __future__ import annotations

import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Union

from .datatypes import AppConfig, CLIConfig, EncoderConfig

# RFC 2046 caps boundaries at 70 characters.
MAX_BOUNDARY_LENGTH = 70


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or fails validation."""


def _coerce_bool(value: Any, dotted_key: str) -> bool:
    """Return a bool, coercing simple 0/1 representations when necessary."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"0", "1"}:
            return normalized == "1"
        if normalized in {"true", "false"}:
            return normalized == "true"
    raise ConfigError(f"{dotted_key} must be a boolean (use true/false).")


def _sanitize_section(raw: Any, name: str, cls):
    """
    Coerce a raw TOML table into an instance of ``cls`` with cleaned booleans.

    Raises:
        ConfigError: If the section is not a table or contains unknown keys.
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    bool_fields = {field.name for field in fields(cls) if field.type in (bool, "bool")}
    cleaned: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in bool_fields:
            cleaned[key] = _coerce_bool(value, f"{name}.{key}")
        else:
            cleaned[key] = value
    try:
        return cls(**cleaned)
    except TypeError as exc:
        raise ConfigError(f"Invalid keys in [{name}]: {exc}") from exc


def validate_boundary(boundary: Any, label: str = "encoder.boundary") -> None:
    """Reject boundaries that are not strings, contain whitespace, or are too long."""

    if not isinstance(boundary, str):
        raise ConfigError(f"{label} must be a string")
    if any(ch.isspace() for ch in boundary):
        raise ConfigError(f"{label} must not contain whitespace")
    if len(boundary) > MAX_BOUNDARY_LENGTH:
        raise ConfigError(f"{label} must be at most {MAX_BOUNDARY_LENGTH} characters")


def _validate_encoder(encoder: EncoderConfig) -> None:
    validate_boundary(encoder.boundary)
    if not isinstance(encoder.transfer_encoding, str) or not encoder.transfer_encoding.strip():
        raise ConfigError("encoder.transfer_encoding must be a non-empty string")
    encoder.transfer_encoding = encoder.transfer_encoding.strip()
    if isinstance(encoder.chunk_size, bool) or not isinstance(encoder.chunk_size, int):
        raise ConfigError("encoder.chunk_size must be an integer")
    if encoder.chunk_size <= 0:
        raise ConfigError("encoder.chunk_size must be > 0")


def parse_config(text: str) -> AppConfig:
    """Parse TOML *text* into a validated :class:`AppConfig`."""

    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML: {exc}") from exc

    unknown = sorted(set(raw) - {"encoder", "cli"})
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")

    app = AppConfig(
        encoder=_sanitize_section(raw.get("encoder", {}), "encoder", EncoderConfig),
        cli=_sanitize_section(raw.get("cli", {}), "cli", CLIConfig),
    )
    _validate_encoder(app.encoder)
    return app


def load_config(path: Union[str, Path]) -> AppConfig:
    """
    Load and validate an application configuration from a TOML file.

    The file must be UTF-8; a leading BOM is accepted.

    Raises:
        ConfigError: If the file is unreadable, not UTF-8, not valid TOML, or
            any validation rule is violated.
    """

    try:
        with open(path, "rb") as handle:
            raw_bytes = handle.read()
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        raw_bytes = raw_bytes[3:]
    try:
        text = raw_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError("Configuration file must be UTF-8 encoded") from exc
    return parse_config(text)


__all__ = ["ConfigError", "MAX_BOUNDARY_LENGTH", "load_config", "parse_config", "validate_boundary"]
