"""Configuration commands for the coopsync CLI.

Commands:
- config show: Show the effective configuration
- config set: Store a value in the config file
"""

from __future__ import annotations

import click

from coopsync.core.config import (
    get_config_file,
    load_config,
    load_engine_config,
    save_config,
)
from coopsync.core.types import ConfigError

CONFIG_KEYS = ("api_base_url", "timeout", "token")


def mask(token: str | None) -> str:
    """Hide all but the last 4 characters of a token."""
    if not token:
        return "(none)"
    if len(token) <= 4:
        return "****"
    return "****" + token[-4:]


@click.group()
def config() -> None:
    """Show or change the configuration."""


@config.command("show")
def show() -> None:
    """Show the effective configuration."""
    try:
        engine_config = load_engine_config()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Config file: {get_config_file()}")
    click.echo(f"API base URL: {engine_config.base_url}")
    click.echo(f"Timeout: {engine_config.timeout:g}s")
    click.echo(f"Token: {mask(engine_config.token)}")


@config.command("set")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Store KEY=VALUE in the config file."""
    if key == "timeout":
        try:
            if float(value) <= 0:
                raise ValueError(value)
        except ValueError as e:
            raise click.BadParameter(f"invalid timeout: {value!r}") from e

    stored = load_config()
    stored[key] = value
    save_config(stored)
    click.echo(f"Saved {key} to {get_config_file()}")
