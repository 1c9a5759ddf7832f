"""gpumon: push nvidia-smi GPU telemetry to InfluxDB."""

__version__ = "0.1.0"
