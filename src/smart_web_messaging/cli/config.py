"""CLI: swm config show|set|unset"""

import click
from rich.console import Console
from rich.table import Table

console = Console()

KNOWN_KEYS = ("relay_url", "target_url", "sdc_endpoint_address", "data_endpoint_address", "sdk_url",
              "handshake_timeout")


def _load_config() -> dict:
    from smart_web_messaging.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from smart_web_messaging.cli.main import _save_config
    _save_config(cfg)


@click.group()
def config():
    """Saved settings (~/.swm/config.json)."""


@config.command("show")
def config_show():
    """Show saved settings."""
    cfg = _load_config()
    if not cfg:
        console.print("[yellow]No settings saved.[/yellow]")
        return
    table = Table(title="Settings")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in sorted(cfg.items()):
        table.add_row(key, str(value))
    console.print(table)


@config.command("set")
@click.argument("key", type=click.Choice(KNOWN_KEYS))
@click.argument("value")
def config_set(key: str, value: str):
    """Save a setting."""
    cfg = _load_config()
    if key == "handshake_timeout":
        try:
            cfg[key] = float(value)
        except ValueError:
            raise click.BadParameter("must be a number of seconds", param_hint="VALUE")
    else:
        cfg[key] = value
    _save_config(cfg)
    console.print(f"[green]Saved {key}.[/green]")


@config.command("unset")
@click.argument("key", type=click.Choice(KNOWN_KEYS))
def config_unset(key: str):
    """Remove a setting."""
    cfg = _load_config()
    cfg.pop(key, None)
    _save_config(cfg)
    console.print(f"[green]Removed {key}.[/green]")
