"""gpumon.collector
GPU telemetry pipeline.

Modules
-------
parsers: run `nvidia-smi -q -x` and turn the XML into models
models : frozen pydantic models for the report and for points
units  : "<N> MiB" / "<N> %" conversions
points : line-protocol encoding, nine points per GPU
influx : InfluxDB HTTP client (create database + write)
poller : tick source and the sample -> write cycle
"""

__all__ = ["parsers", "models", "units", "points", "influx", "poller"]
