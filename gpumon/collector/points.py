# collector/points.py
"""Turn an NvidiaSmiLog into InfluxDB line-protocol points.

Every GPU yields the same nine measurements, tagged with
hostname / gpuid / product / minor:

    fbmemory/total,hostname=node1,gpuid=00000000:04:00.0,product=Tesla+K80,minor=0 value=12078546944 1700000000000000000
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote_plus

from .models import GPUInfo, NvidiaSmiLog, Point
from .units import parse_mib, parse_percent

log = logging.getLogger(__name__)

POINTS_PER_GPU = 9

# (measurement, converter, accessor) in emission order
METRICS: List[Tuple[str, Callable[[Optional[str]], Optional[int]], Callable[[GPUInfo], str]]] = [
    ("fbmemory/total", parse_mib, lambda g: g.fb_memory_usage.total),
    ("fbmemory/used", parse_mib, lambda g: g.fb_memory_usage.used),
    ("fbmemory/free", parse_mib, lambda g: g.fb_memory_usage.free),
    ("bar1memory/total", parse_mib, lambda g: g.bar1_memory_usage.total),
    ("bar1memory/used", parse_mib, lambda g: g.bar1_memory_usage.used),
    ("bar1memory/free", parse_mib, lambda g: g.bar1_memory_usage.free),
    ("gpu", parse_percent, lambda g: g.utilization.gpu_util),
    ("gpu/encoder", parse_percent, lambda g: g.utilization.encoder_util),
    ("gpu/decoder", parse_percent, lambda g: g.utilization.decoder_util),
]


def gpu_tags(gpu: GPUInfo, hostname: str) -> Tuple[Tuple[str, str], ...]:
    """Tag pairs for one GPU. Empty values are left out, InfluxDB rejects them."""
    tags = (
        ("hostname", hostname),
        ("gpuid", gpu.id),
        ("product", quote_plus(gpu.product_name)),
        ("minor", str(gpu.minor_number)),
    )
    return tuple((k, v) for k, v in tags if v)


def gpu_points(gpu: GPUInfo, hostname: str, timestamp: int, unparseable: str = "zero") -> List[Point]:
    """Points for one GPU.

    `unparseable` decides what happens to a reading that is not a clean
    "<int> MiB" / "<int> %": "zero" writes 0, "skip" drops the point.
    """
    tags = gpu_tags(gpu, hostname)
    points: List[Point] = []
    for measurement, convert, field in METRICS:
        raw = field(gpu)
        value = convert(raw)
        if value is None:
            if unparseable == "skip":
                log.warning("gpu %s: skipping %s, unparseable value %r", gpu.id, measurement, raw)
                continue
            log.debug("gpu %s: %s unparseable (%r), writing 0", gpu.id, measurement, raw)
            value = 0
        points.append(Point(measurement=measurement, tags=tags, value=value, timestamp=timestamp))
    return points


def report_points(report: NvidiaSmiLog, hostname: str, timestamp: int, unparseable: str = "zero") -> List[Point]:
    points: List[Point] = []
    for gpu in report.gpus:
        points.extend(gpu_points(gpu, hostname, timestamp, unparseable))
    return points


def encode(points: List[Point]) -> str:
    """One point per line, no trailing newline."""
    return "\n".join(p.to_line() for p in points)
