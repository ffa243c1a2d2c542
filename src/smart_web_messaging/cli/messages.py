"""CLI: swm handle, swm page"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from smart_web_messaging.handler import SmartMessageHandler
from smart_web_messaging.page import DEFAULT_SDK_URL, render_page

console = Console()


@click.command("handle")
@click.argument("message")
@click.option("--json-output", "--json", is_flag=True, help="Print the raw reply only.")
def handle_cmd(message: str, json_output: bool):
    """Run MESSAGE (JSON text, or - for stdin) through a handler and print the reply."""
    raw = sys.stdin.read() if message == "-" else message
    reply = SmartMessageHandler().handle_message(raw)
    if reply is None:
        if not json_output:
            console.print("[dim]Response message: no reply is sent.[/dim]")
        return
    if json_output:
        click.echo(reply)
        return
    data = json.loads(reply)
    payload = data.get("payload") or {}
    if "errorType" in payload or "errorMessage" in payload:
        console.print(f"[red]{payload.get('errorType')}[/red]: {payload.get('errorMessage')}")
    else:
        console.print("[green]OK[/green]")
    console.print_json(reply)


@click.command("page")
@click.option("--sdc-endpoint", "sdc_endpoint_address", required=True, help="SDC FHIR endpoint URL.")
@click.option("--data-endpoint", "data_endpoint_address", default=None, help="FHIR data endpoint URL.")
@click.option("--sdk-url", default=DEFAULT_SDK_URL, show_default=True, help="Web SDK script URL.")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the page here and print its file:// URI.")
def page_cmd(sdc_endpoint_address: str, data_endpoint_address: Optional[str], sdk_url: str,
             output: Optional[Path]):
    """Render the default form-filler page (to stdout unless --output is given)."""
    html = render_page(sdc_endpoint_address, data_endpoint_address, sdk_url)
    if output is None:
        click.echo(html, nl=False)
        return
    output.write_text(html, encoding="utf-8")
    click.echo(output.resolve().as_uri())
