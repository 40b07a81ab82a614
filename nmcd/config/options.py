"""Command line parsing for the option set.

The click command is generated from the ``RawOptions`` fields so the
config file keys, the ``--long`` flags and the help text never drift
apart.
"""

from __future__ import annotations

import typing
from collections.abc import Sequence
from typing import Any

import click
from click.core import ParameterSource

from nmcd.models import RawOptions

POSITIONAL_ARGS = "args"

CONTEXT_SETTINGS: dict[str, Any] = {"help_option_names": ["-h", "--help"]}


def _click_option(name: str, field: Any) -> click.Option:
    long_name = field.alias or name
    decls = [f"--{long_name}"]
    extra = field.json_schema_extra or {}
    if isinstance(extra, dict) and extra.get("short"):
        decls.insert(0, f"-{extra['short']}")
    decls.append(name)

    annotation = field.annotation
    origin = typing.get_origin(annotation)
    if annotation is bool:
        return click.Option(decls, is_flag=True, default=False, help=field.description)
    if origin is list:
        return click.Option(decls, multiple=True, help=field.description)
    if annotation is int:
        return click.Option(decls, type=click.INT, default=None, help=field.description)
    return click.Option(decls, type=click.STRING, default=None, help=field.description)


def build_command(app_name: str) -> click.Command:
    """Build the click command describing every option."""
    params: list[click.Parameter] = [
        _click_option(name, field) for name, field in RawOptions.model_fields.items()
    ]
    params.append(click.Argument([POSITIONAL_ARGS], nargs=-1))
    return click.Command(
        app_name,
        params=params,
        context_settings=CONTEXT_SETTINGS,
        help="Full node daemon.",
    )


def parse_args(
    command: click.Command,
    argv: Sequence[str],
    lenient: bool = False,
) -> tuple[dict[str, Any], list[str]]:
    """Parse argv and return (explicitly given options, positional args).

    Only options present on the command line are returned, keyed by
    ``RawOptions`` field name.  In lenient mode unknown options and bad
    values are ignored and help is not shown.

    Raises:
        click.UsageError: On unknown options or bad values (strict mode)
        click.exceptions.Exit: When help was requested (strict mode)

    """
    extra: dict[str, Any] = {}
    if lenient:
        extra = {
            "ignore_unknown_options": True,
            "allow_extra_args": True,
            "resilient_parsing": True,
        }

    ctx = command.make_context(command.name, list(argv), **extra)
    values: dict[str, Any] = {}
    for name, value in ctx.params.items():
        if name == POSITIONAL_ARGS:
            continue
        if ctx.get_parameter_source(name) is not ParameterSource.COMMANDLINE:
            continue
        values[name] = list(value) if isinstance(value, tuple) else value
    return values, list(ctx.params.get(POSITIONAL_ARGS) or ())
