"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer

from thermolink.api import Client
from thermolink.core.errors import ThermolinkError
from thermolink.core.model import EventKind

app = typer.Typer(help="Stream temperature readings from a BLE thermometer")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_client(**overrides: object) -> Client:
    client = Client(overrides=overrides)
    for warning in getattr(client, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return client


@app.command("watch")
def watch(
    name: str | None = typer.Option(None, "--name", help="Advertised device name to match"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan window in seconds"),
) -> None:
    """Scan for the thermometer, connect, and print readings until the link drops."""
    failed = False
    try:
        client = _build_client(device_name=name, scan_timeout_s=timeout)
        for event in client.events():
            if event.kind is EventKind.ERROR:
                typer.echo(event.describe(), err=True)
                failed = failed or event.is_terminal
            else:
                typer.echo(event.describe())
    except ThermolinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=130) from None
    if failed:
        raise typer.Exit(code=1)


@app.command("config")
def show_config() -> None:
    """Print the effective configuration."""
    try:
        client = _build_client()
    except ThermolinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    config = client.config
    typer.echo(f"device_name: {config.device_name}")
    typer.echo(f"service_uuid: {config.profile.service_uuid}")
    typer.echo(f"characteristic_uuid: {config.profile.characteristic_uuid}")
    typer.echo(f"cccd_uuid: {config.profile.cccd_uuid}")
    typer.echo(f"scan_timeout_s: {config.scan_timeout_s:g}")
    typer.echo(f"connect_timeout_s: {config.connect_timeout_s:g}")
    typer.echo(f"encoding: {config.encoding}")
    permissions = ", ".join(sorted(op.value for op in config.permissions))
    typer.echo(f"permissions: {permissions}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
