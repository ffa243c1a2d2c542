"""
SMART Web Messaging CLI: the `swm` command.

Commands:
  swm page              Render the default form-filler page
  swm handle <message>  Run one message through a handler, print the reply
  swm fill <file>       Display a questionnaire through a Socket.IO relay
  swm config <cmd>      Show or change saved settings
"""

import asyncio
import json
import logging
from pathlib import Path

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install smart-web-messaging[cli]")

console = Console()
CONFIG_FILE = Path.home() / ".swm" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log protocol traffic.")
def main(verbose: bool):
    """SMART Web Messaging host tools."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console, show_path=False)],
        )


# Register subcommands from separate modules
from smart_web_messaging.cli.config import config  # noqa: E402
from smart_web_messaging.cli.fill import fill_cmd  # noqa: E402
from smart_web_messaging.cli.messages import handle_cmd, page_cmd  # noqa: E402

main.add_command(config)
main.add_command(fill_cmd)
main.add_command(handle_cmd)
main.add_command(page_cmd)


if __name__ == "__main__":
    main()
