#!/usr/bin/env python
"""
gpumon run            poll nvidia-smi every GPUMON_POLL_SEC and write to INFLUXDB_ADDR
gpumon once --dry-run take one sample and print the line-protocol payload
gpumon parse dump.xml encode a saved `nvidia-smi -q -x` dump
"""

import logging
import os
import time
from typing import Optional

import typer

from gpumon.collector import parsers, points, poller
from gpumon.collector.influx import InfluxClient
from gpumon.config import Settings
from gpumon.errors import ConfigError, ReportParseError

app = typer.Typer(add_completion=False, help="GPU monitor: nvidia-smi -> InfluxDB")


def _setup_logging() -> None:
    logging.basicConfig(
        level=os.getenv("GPUMON_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s  %(levelname)s %(message)s",
    )


def _settings(**overrides) -> Settings:
    try:
        return Settings.from_env(**overrides)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2)


@app.callback()
def main() -> None:
    _setup_logging()


@app.command()
def run(
    interval: Optional[float] = typer.Option(None, help="seconds between cycles (GPUMON_POLL_SEC)"),
    influxdb_addr: Optional[str] = typer.Option(None, help="InfluxDB base URL (INFLUXDB_ADDR)"),
    cycles: Optional[int] = typer.Option(None, min=1, help="stop after N cycles"),
):
    """Sample and publish until killed."""
    settings = _settings(poll_interval=interval, influxdb_addr=influxdb_addr)
    ticker = poller.Ticker(settings.poll_interval, limit=cycles)
    poller.run_forever(settings, ticker=ticker)


@app.command()
def once(
    dry_run: bool = typer.Option(False, "--dry-run", help="print the payload, do not contact InfluxDB"),
    influxdb_addr: Optional[str] = typer.Option(None, help="InfluxDB base URL (INFLUXDB_ADDR)"),
):
    """Run a single cycle."""
    if dry_run and not (influxdb_addr or os.getenv("INFLUXDB_ADDR")):
        # nothing is sent, the address only has to pass validation
        influxdb_addr = "http://localhost:8086/"
    settings = _settings(influxdb_addr=influxdb_addr)
    client = None if dry_run else InfluxClient(settings)
    try:
        result = poller.run_cycle(settings, client, dry_run=dry_run)
    finally:
        if client is not None:
            client.close()
    if dry_run and result.payload:
        typer.echo(result.payload)
    if result.error:
        raise typer.Exit(1)


@app.command()
def parse(
    path: str = typer.Argument(..., help="file holding `nvidia-smi -q -x` output"),
    hostname: Optional[str] = typer.Option(None, help="hostname tag (default: this host)"),
):
    """Print the points a saved report would produce."""
    try:
        report = parsers.load_report(path)
    except (OSError, ReportParseError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    settings = _settings(influxdb_addr=os.getenv("INFLUXDB_ADDR") or "http://localhost:8086/",
                         hostname=hostname)
    pts = points.report_points(report, settings.hostname, time.time_ns(), settings.unparseable)
    typer.echo(f"# driver {report.driver_version}, {len(report.gpus)} GPU(s)", err=True)
    if pts:
        typer.echo(points.encode(pts))


if __name__ == "__main__":
    app()
