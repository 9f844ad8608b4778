from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

import typer

from models.records import MeterReading


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_readings(readings: Sequence[MeterReading], dropped: int = 0) -> None:
    echo_heading("Meter Readings")
    if not readings:
        typer.echo("No readings decoded.")
    for reading in readings:
        type_part = f" type={reading.meter_type}" if reading.meter_type is not None else ""
        typer.echo(
            f"  - {reading.message_type} id={reading.meter_id}{type_part} "
            f"consumption={reading.consumption}"
        )
    if dropped:
        typer.echo(f"Ignored records: {dropped}")


def render_health(payload: Dict[str, Any]) -> None:
    echo_heading("Bridge Health")
    echo_key_values([("status", payload.get("status"))])
    pipelines = payload.get("pipelines") or {}
    if pipelines:
        typer.echo("pipelines:")
        for name, alive in pipelines.items():
            typer.echo(f"  - {name}: {'running' if alive else 'stopped'}")
    else:
        typer.echo("No pipelines running.")
