"""Configuration dataclasses for the multipart encoder and its CLI."""
from dataclasses import dataclass, field

from .multipart import DEFAULT_TRANSFER_ENCODING
from .payloads import DEFAULT_CHUNK_SIZE


@dataclass
class EncoderConfig:
    """Defaults applied to every body the CLI builds."""

    boundary: str = ""
    transfer_encoding: str = DEFAULT_TRANSFER_ENCODING
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass
class CLIConfig:
    """Presentation flags for the command line front end."""

    no_color: bool = False
    show_summary: bool = True


@dataclass
class AppConfig:
    """Aggregated configuration loaded from the user-provided TOML file."""

    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)
