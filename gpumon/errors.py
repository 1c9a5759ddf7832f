from __future__ import annotations


class GpumonError(Exception):
    """Base class for everything the agent raises on purpose."""


class ConfigError(GpumonError):
    pass


class NvidiaSmiError(GpumonError):
    """`nvidia-smi` is missing, exited non-zero or printed nothing."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class NvidiaSmiTimeout(NvidiaSmiError):
    pass


class ReportParseError(GpumonError):
    """The XML report could not be decoded."""


class SinkError(GpumonError):
    """A call to the InfluxDB HTTP API failed."""

    def __init__(self, message: str, url: str = "", status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.status = status
        self.body = body


class SinkTimeout(SinkError):
    pass
