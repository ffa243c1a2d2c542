"""CLI: swm fill"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import ValidationError
from rich.console import Console

from smart_web_messaging.config import FormFillerConfig
from smart_web_messaging.errors import HandshakeTimeoutError
from smart_web_messaging.form_filler import FormFiller
from smart_web_messaging.models.events import FormFillerListener
from smart_web_messaging.models.payload import build_launch_context
from smart_web_messaging.resources import JsonResourceCodec
from smart_web_messaging.transport.socketio import SocketIOBrowser

console = Console()


def _load_config() -> dict:
    from smart_web_messaging.cli.main import _load_config
    return _load_config()


def _run(coro):
    from smart_web_messaging.cli.main import _run
    return _run(coro)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}")


class _Collector(FormFillerListener):
    def __init__(self) -> None:
        self.done = asyncio.Event()
        self.response: Any = None
        self.outcome: Any = None

    def on_form_submitted(self, response: Any, outcome: Optional[Any]) -> None:
        self.response = response
        self.outcome = outcome
        self.done.set()

    def on_close_requested(self) -> None:
        self.done.set()


@click.command("fill")
@click.argument("questionnaire")
@click.option("--relay", "relay_url", default=None, help="Socket.IO relay hosting the page.")
@click.option("--target-url", default=None, help="Form page URL.")
@click.option("--sdc-endpoint", "sdc_endpoint_address", default=None, help="SDC endpoint for the default page.")
@click.option("--data-endpoint", "data_endpoint_address", default=None, help="FHIR data endpoint for the default page.")
@click.option("--patient", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Patient resource (JSON) for the launch context.")
@click.option("--timeout", "handshake_timeout", type=float, default=None, help="Handshake timeout in seconds.")
@click.option("--json-output", "--json", is_flag=True)
def fill_cmd(
    questionnaire: str,
    relay_url: Optional[str],
    target_url: Optional[str],
    sdc_endpoint_address: Optional[str],
    data_endpoint_address: Optional[str],
    patient: Optional[Path],
    handshake_timeout: Optional[float],
    json_output: bool,
):
    """Display QUESTIONNAIRE (JSON file or canonical URL) and print the submitted response."""
    cfg = _load_config()
    relay_url = relay_url or cfg.get("relay_url")
    if not relay_url:
        console.print("[red]No relay URL. Pass --relay or run `swm config set relay_url URL`.[/red]")
        raise SystemExit(1)

    settings = {
        "target_url": target_url or cfg.get("target_url"),
        "sdc_endpoint_address": sdc_endpoint_address or cfg.get("sdc_endpoint_address"),
        "data_endpoint_address": data_endpoint_address or cfg.get("data_endpoint_address"),
        "handshake_timeout": handshake_timeout or cfg.get("handshake_timeout"),
        "sdk_url": cfg.get("sdk_url"),
    }
    try:
        config = FormFillerConfig(**{k: v for k, v in settings.items() if v is not None})
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e.errors()[0]['msg']}")
        raise SystemExit(1)

    questionnaire_path = Path(questionnaire)
    form: Any = _read_json(questionnaire_path) if questionnaire_path.is_file() else questionnaire
    launch_context = build_launch_context(patient=_read_json(patient)) if patient else []

    async def _fill():
        browser = SocketIOBrowser(relay_url)
        with console.status("Connecting to relay..."):
            await browser.connect()
        collector = _Collector()
        filler = FormFiller(config, browser)
        filler.add_listener(collector)
        try:
            with console.status("Waiting for handshake..."):
                await filler.wait_for_handshake()
            await filler.handler.send_sdc_display_questionnaire_async(form, launch_context=launch_context)
            if not json_output:
                console.print("[cyan]Form displayed. Waiting for submission (Ctrl+C to exit)[/cyan]")
            await collector.done.wait()
        except HandshakeTimeoutError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            filler.close()
            await browser.wait_closed()
        return collector

    collector = _run(_fill())
    if collector.response is None:
        if not json_output:
            console.print("[yellow]Closed without submission.[/yellow]")
        return

    codec = JsonResourceCodec()
    result = {"response": codec.encode(collector.response)}
    if collector.outcome is not None:
        result["outcome"] = codec.encode(collector.outcome)
    if json_output:
        click.echo(json.dumps(result))
    else:
        console.print("[green]Form submitted.[/green]")
        console.print_json(json.dumps(result))
