# gpumon/config.py
from __future__ import annotations

import os
import socket
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ConfigError

# *** Runtime overrides (all optional except INFLUXDB_ADDR):
# export INFLUXDB_ADDR=http://monitoring-influxdb:8086/
# export GPUMON_POLL_SEC=5
# export GPUMON_DB=GPU
# export GPUMON_SMI_TIMEOUT=10
# export GPUMON_HTTP_TIMEOUT=5
# export GPUMON_UNPARSEABLE=zero      # or "skip"
# python -m gpumon run

DEFAULT_DB = "GPU"
DEFAULT_POLL_SEC = 5.0
DEFAULT_SMI_TIMEOUT = 10.0
DEFAULT_HTTP_TIMEOUT = 5.0


class Settings(BaseModel):
    """Process-lifetime configuration, built once at startup."""

    model_config = ConfigDict(frozen=True)

    influxdb_addr: str
    database: str = DEFAULT_DB
    hostname: str
    poll_interval: float = DEFAULT_POLL_SEC
    nvidia_smi: str = "nvidia-smi"
    smi_timeout: float = DEFAULT_SMI_TIMEOUT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    unparseable: Literal["zero", "skip"] = "zero"

    @field_validator("influxdb_addr")
    @classmethod
    def _normalize_addr(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"expected an http(s) URL, got {v!r}")
        # endpoints are joined relative to the base, so it must end in '/'
        return v if v.endswith("/") else v + "/"

    @field_validator("database", "hostname", "nvidia_smi")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("poll_interval", "smi_timeout", "http_timeout")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "Settings":
        """Read `INFLUXDB_ADDR` and the `GPUMON_*` variables.

        Keyword overrides whose value is not None win over the environment
        (the CLI passes its flags this way).
        """
        env = os.environ if environ is None else environ
        values = {
            "influxdb_addr": env.get("INFLUXDB_ADDR", ""),
            "database": env.get("GPUMON_DB", DEFAULT_DB),
            "hostname": env.get("GPUMON_HOSTNAME") or socket.gethostname(),
            "poll_interval": env.get("GPUMON_POLL_SEC", DEFAULT_POLL_SEC),
            "nvidia_smi": env.get("GPUMON_SMI_CMD", "nvidia-smi"),
            "smi_timeout": env.get("GPUMON_SMI_TIMEOUT", DEFAULT_SMI_TIMEOUT),
            "http_timeout": env.get("GPUMON_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            "unparseable": env.get("GPUMON_UNPARSEABLE", "zero").lower(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if not values["influxdb_addr"]:
            raise ConfigError("INFLUXDB_ADDR is not set")
        try:
            return cls(**values)
        except ValidationError as exc:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
            )
            raise ConfigError(f"invalid configuration: {errors}") from exc

    @property
    def query_url(self) -> str:
        return self.influxdb_addr + "query"

    @property
    def write_url(self) -> str:
        return self.influxdb_addr + "write"
