"""Command line front end that builds multipart bodies from field arguments."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, cast

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config_loader import ConfigError, load_config, validate_boundary
from .datatypes import AppConfig
from .env_flags import config_path_from_env, debug_requested
from .errors import InvalidPartError
from .multipart import MultipartBodyEncoder
from .payloads import FilePayload, Payload, StreamPayload, TextPayload

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"


class CLIAppError(RuntimeError):
    """Raised when the CLI cannot complete its work."""

    def __init__(self, message: str, *, code: int = 1, rich_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.rich_message = rich_message or message


@dataclass(frozen=True)
class FieldSpec:
    """A parsed ``name=value`` / ``name=@path[;type=mime]`` argument."""

    name: str
    value: str
    is_file: bool = False
    mime_type: Optional[str] = None


def parse_field(raw: str) -> FieldSpec:
    """
    Parse one command line field.

    ``name=value`` becomes a text part, ``name=@path`` a file part, and
    ``name=@-`` a part streamed from stdin. File fields accept a trailing
    ``;type=<mime>`` override.

    Raises:
        CLIAppError: If the field has no ``=`` or an empty name.
    """

    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise CLIAppError(
            f"Invalid field {raw!r}: expected name=value or name=@path",
            code=2,
            rich_message=f"[red]Invalid field[/red] {escape(raw)}: expected name=value or name=@path",
        )
    if not value.startswith("@"):
        return FieldSpec(name=name, value=value)
    target = value[1:]
    mime_type: Optional[str] = None
    if ";type=" in target:
        target, _, mime_type = target.partition(";type=")
        mime_type = mime_type.strip() or None
    if not target:
        raise CLIAppError(
            f"Invalid field {raw!r}: missing path after '@'",
            code=2,
            rich_message=f"[red]Invalid field[/red] {escape(raw)}: missing path after '@'",
        )
    return FieldSpec(name=name, value=target, is_file=True, mime_type=mime_type)


def _payload_for(spec: FieldSpec, chunk_size: int, stdin: Optional[BinaryIO]) -> Payload:
    if not spec.is_file:
        return TextPayload(spec.value)
    if spec.value == STDIN_MARKER:
        return StreamPayload(
            stdin if stdin is not None else click.get_binary_stream("stdin"),
            mime_type=spec.mime_type or "application/octet-stream",
            file_name=STDIN_MARKER,
            chunk_size=chunk_size,
        )
    path = Path(spec.value).expanduser()
    if not path.is_file():
        raise CLIAppError(
            f"File not found: {path}",
            code=2,
            rich_message=f"[red]File not found:[/red] {escape(str(path))}",
        )
    return FilePayload(path, mime_type=spec.mime_type, chunk_size=chunk_size)


def build_encoder(
    fields: Sequence[str],
    cfg: AppConfig,
    *,
    boundary: Optional[str] = None,
    transfer_encoding: Optional[str] = None,
    stdin: Optional[BinaryIO] = None,
) -> MultipartBodyEncoder:
    """Assemble an encoder from raw field arguments and configuration defaults."""

    specs = [parse_field(raw) for raw in fields]
    if sum(1 for spec in specs if spec.is_file and spec.value == STDIN_MARKER) > 1:
        raise CLIAppError("stdin can only be used by one field", code=2)

    if boundary:
        try:
            validate_boundary(boundary, "--boundary")
        except ConfigError as exc:
            raise CLIAppError(
                str(exc),
                code=2,
                rich_message=f"[red]Invalid boundary:[/red] {escape(str(exc))}",
            ) from exc
    chosen_boundary = boundary or cfg.encoder.boundary or None
    encoding = transfer_encoding or cfg.encoder.transfer_encoding
    try:
        encoder = MultipartBodyEncoder(chosen_boundary)
        for spec in specs:
            encoder.add_part(spec.name, _payload_for(spec, cfg.encoder.chunk_size, stdin), encoding)
    except InvalidPartError as exc:
        raise CLIAppError(str(exc), code=2) from exc
    return encoder


def _load_app_config(config_path: Optional[str]) -> AppConfig:
    path = config_path or config_path_from_env()
    if not path:
        return AppConfig()
    try:
        return load_config(path)
    except ConfigError as exc:
        raise CLIAppError(
            f"Config error: {exc}",
            code=2,
            rich_message=f"[red]Config error:[/red] {escape(str(exc))}",
        ) from exc


def _configure_logging(ctx: click.Context, verbose: bool, console: Console) -> None:
    """Route package debug logs to *console* for the lifetime of *ctx*."""

    if not (verbose or debug_requested()):
        return
    handler = RichHandler(console=console, show_path=False, markup=False)
    package_logger = logging.getLogger("formstream")
    previous_level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)

    def _restore() -> None:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)

    ctx.call_on_close(_restore)


def _describe_length(encoder: MultipartBodyEncoder) -> str:
    length = encoder.length()
    if length is None:
        return "unknown (chunked)"
    return f"{length} bytes"


def _emit_summary(console: Console, encoder: MultipartBodyEncoder, destination: str) -> None:
    console.print(f"[green]Content-Type:[/green] {escape(encoder.mime_type())}")
    console.print(f"[green]Parts:[/green] {encoder.part_count()}")
    console.print(f"[green]Length:[/green] {_describe_length(encoder)}")
    console.print(f"[green]Written to:[/green] {escape(destination)}")


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a formstream TOML config (defaults to $FORMSTREAM_CONFIG).",
)
@click.option("--no-color", is_flag=True, help="Disable ANSI colour output.")
@click.option("--verbose", is_flag=True, help="Log encoder activity to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], no_color: bool, verbose: bool) -> None:
    """Build multipart/form-data bodies from name=value and name=@file fields."""

    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    params.update({"config_path": config_path, "no_color": no_color, "verbose": verbose})


def _prepare(ctx: click.Context) -> tuple[AppConfig, Console]:
    params = cast(Dict[str, Any], ctx.ensure_object(dict))
    bootstrap = Console(stderr=True, no_color=bool(params.get("no_color")), highlight=False, soft_wrap=True)
    try:
        cfg = _load_app_config(params.get("config_path"))
    except CLIAppError as exc:
        bootstrap.print(exc.rich_message)
        raise click.exceptions.Exit(exc.code) from exc
    no_color = bool(params.get("no_color")) or cfg.cli.no_color
    console = Console(stderr=True, no_color=no_color, highlight=False, soft_wrap=True)
    _configure_logging(ctx, bool(params.get("verbose")), console)
    return cfg, console


@main.command("encode")
@click.argument("fields", nargs=-1, required=False)
@click.option(
    "-o",
    "--output",
    "output_path",
    default=None,
    type=click.Path(dir_okay=False, writable=True),
    help="Write the body to this file instead of stdout.",
)
@click.option("--boundary", default=None, help="Use this boundary token instead of a random one.")
@click.option("--transfer-encoding", default=None, help="Content-Transfer-Encoding label for every part.")
@click.option("--quiet", is_flag=True, help="Do not print the summary to stderr.")
@click.pass_context
def encode_command(
    ctx: click.Context,
    fields: tuple[str, ...],
    output_path: Optional[str],
    boundary: Optional[str],
    transfer_encoding: Optional[str],
    quiet: bool,
) -> None:
    """Encode FIELDS into a multipart body."""

    cfg, console = _prepare(ctx)
    try:
        encoder = build_encoder(fields, cfg, boundary=boundary, transfer_encoding=transfer_encoding)
        with ExitStack() as stack:
            if output_path:
                try:
                    sink: BinaryIO = stack.enter_context(open(output_path, "wb"))
                except OSError as exc:
                    raise CLIAppError(f"Unable to open {output_path}: {exc}") from exc
                destination = output_path
            else:
                sink = click.get_binary_stream("stdout")
                destination = "<stdout>"
            try:
                encoder.write_to(sink)
                sink.flush()
            except OSError as exc:
                raise CLIAppError(
                    f"Failed writing body to {destination}: {exc}",
                    rich_message=f"[red]Failed writing body to[/red] {escape(destination)}: {escape(str(exc))}",
                ) from exc
    except CLIAppError as exc:
        console.print(exc.rich_message)
        raise click.exceptions.Exit(exc.code) from exc

    logger.debug("Wrote %s to %s", _describe_length(encoder), destination)
    if not quiet and cfg.cli.show_summary:
        _emit_summary(console, encoder, destination)


@main.command("headers")
@click.argument("fields", nargs=-1, required=False)
@click.option("--boundary", default=None, help="Use this boundary token instead of a random one.")
@click.pass_context
def headers_command(ctx: click.Context, fields: tuple[str, ...], boundary: Optional[str]) -> None:
    """Print the request headers FIELDS would produce, without the body."""

    cfg, console = _prepare(ctx)
    try:
        encoder = build_encoder(fields, cfg, boundary=boundary)
    except CLIAppError as exc:
        console.print(exc.rich_message)
        raise click.exceptions.Exit(exc.code) from exc

    lines: List[str] = [f"{key}: {value}" for key, value in encoder.request_headers().items()]
    click.echo("\n".join(lines))


__all__ = ["CLIAppError", "FieldSpec", "build_encoder", "main", "parse_field"]
