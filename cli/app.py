from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import typer
import uvicorn

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_health, render_readings
from logging_config import configure_logging
from models.records import MeterReading
from services.meter_collector import CollectorError, RtlamrCollector
from services.meter_publisher import UnrecognizedReadingError, classify
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Run and inspect the rtlamr / rtl_433 telemetry bridge.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Bridge base URL (defaults to BRIDGE_BASE_URL env or http://localhost:9100).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for the bridge to answer.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to METRICS_HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (defaults to METRICS_PORT)."),
) -> None:
    """Start the pipelines and the /metrics endpoint."""
    from app.main import create_app

    settings = get_settings()
    configure_logging()
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.metrics_host,
        port=port or settings.metrics_port,
        log_config=None,
    )


@app.command("scan")
def scan_command(
    duration: Optional[int] = typer.Option(
        None, "--duration", "-d", min=1, help="Collection window in seconds (defaults to METER_TIME)."
    ),
    filter_id: Optional[str] = typer.Option(
        None, "--filter-id", help="Meter IDs passed to rtlamr -filterid (defaults to METER_IDS)."
    ),
) -> None:
    """Run one rtlamr window and print the decoded readings without publishing."""
    settings = get_settings()
    collector = RtlamrCollector(
        server=settings.rtl_address,
        duration=duration or settings.meter_time,
        meter_ids=filter_id if filter_id is not None else settings.meter_ids,
        binary=settings.rtlamr_path,
    )
    typer.echo(f"Listening on {settings.rtl_address} for {collector.duration}s ...")
    try:
        records = collector.collect()
    except CollectorError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    readings: List[MeterReading] = []
    dropped = 0
    for record in records:
        try:
            readings.append(classify(record))
        except UnrecognizedReadingError:
            dropped += 1
    render_readings(readings, dropped=dropped)


@app.command("metrics")
def metrics_command(ctx: typer.Context) -> None:
    """Print the exposition text served by a running bridge."""
    state = _get_state(ctx)
    typer.echo(state.client.get_metrics(), nl=False)


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Show whether a running bridge and its pipelines are alive."""
    state = _get_state(ctx)
    render_health(state.client.get_health())
