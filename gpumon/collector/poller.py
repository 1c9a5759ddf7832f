# collector/poller.py
from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional

from pydantic import BaseModel

from gpumon.config import Settings
from gpumon.errors import (
    NvidiaSmiError,
    NvidiaSmiTimeout,
    ReportParseError,
    SinkError,
    SinkTimeout,
)

from . import parsers, points
from .influx import InfluxClient
from .models import NvidiaSmiLog

log = logging.getLogger(__name__)


class Ticker:
    """Yields tick numbers; waits `interval` seconds before every tick but the first.

    The wait happens when the consumer asks for the next tick, so a slow
    cycle pushes later ticks back instead of overlapping them.
    """

    def __init__(self, interval: float, sleep: Callable[[float], None] = time.sleep,
                 limit: Optional[int] = None) -> None:
        self.interval = interval
        self.limit = limit
        self._sleep = sleep

    def wait(self) -> None:
        self._sleep(self.interval)

    def __iter__(self) -> Iterator[int]:
        tick = 0
        while self.limit is None or tick < self.limit:
            if tick:
                self.wait()
            yield tick
            tick += 1


class CycleResult(BaseModel):
    gpus: int = 0
    points: int = 0
    payload: str = ""
    published: bool = False
    error: Optional[str] = None


def sample(settings: Settings) -> NvidiaSmiLog:
    return parsers.collect_once(cmd=settings.nvidia_smi, timeout=settings.smi_timeout)


def run_cycle(settings: Settings, client: Optional[InfluxClient], dry_run: bool = False,
              clock: Callable[[], int] = time.time_ns) -> CycleResult:
    """sample -> parse -> convert -> encode -> write, once.

    Never raises for nvidia-smi, XML or sink failures; they are logged and
    reported through CycleResult.error.
    """
    result = CycleResult()
    timestamp = clock()

    try:
        report = sample(settings)
    except NvidiaSmiTimeout as exc:
        log.error("nvidia-smi timeout: %s", exc)
        result.error = str(exc)
        return result
    except NvidiaSmiError as exc:
        log.error("get GPU info error: %s %s", exc, exc.stderr)
        result.error = str(exc)
        return result
    except ReportParseError as exc:
        log.error("cannot decode nvidia-smi report: %s", exc)
        result.error = str(exc)
        return result

    pts = points.report_points(report, settings.hostname, timestamp, settings.unparseable)
    result.gpus = len(report.gpus)
    result.points = len(pts)
    result.payload = points.encode(pts)

    if dry_run or client is None:
        return result

    try:
        client.ensure_database()
    except SinkError as exc:
        log.error("create database %s failed: %s %s", settings.database, exc, exc.body)

    if not pts:
        log.info("no GPUs reported, nothing to write")
        return result

    log.debug("posting: %s", result.payload)
    try:
        client.write(result.payload)
    except SinkTimeout as exc:
        log.error("write timeout: %s", exc)
        result.error = str(exc)
        return result
    except SinkError as exc:
        log.error("write failed: %s %s", exc, exc.body)
        result.error = str(exc)
        return result

    result.published = True
    log.info("wrote %d points for %d GPUs", result.points, result.gpus)
    return result


def run_forever(settings: Settings, client: Optional[InfluxClient] = None,
                ticker: Optional[Ticker] = None) -> int:
    """Run cycles on every tick; returns the number of cycles run.

    Only returns when the ticker is exhausted (a bounded `--cycles` run).
    """
    own_client = client is None
    client = client or InfluxClient(settings)
    ticker = ticker or Ticker(settings.poll_interval)
    log.info(
        "polling %s every %ss, writing to %s (db=%s) as %s",
        settings.nvidia_smi, settings.poll_interval, settings.influxdb_addr,
        settings.database, settings.hostname,
    )
    cycles = 0
    try:
        for _ in ticker:
            try:
                run_cycle(settings, client)
            except Exception:
                log.exception("Collector error")
            cycles += 1
    finally:
        if own_client:
            client.close()
    return cycles
