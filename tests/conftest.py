from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional

import pytest
import requests

from gpumon.config import Settings

DATA = Path(__file__).parent / "data"

# One Tesla K80, idle.
K80_XML = """<?xml version="1.0" ?>
<nvidia_smi_log>
  <driver_version>375.26</driver_version>
  <attached_gpus>1</attached_gpus>
  <gpu id="0">
    <product_name>Tesla K80</product_name>
    <product_brand>Tesla</product_brand>
    <uuid>GPU-a1f1d4d6-3e8f-7d8b-4c0e-2f1c9e5b7a11</uuid>
    <minor_number>0</minor_number>
    <fb_memory_usage>
      <total>11519 MiB</total>
      <used>0 MiB</used>
      <free>11519 MiB</free>
    </fb_memory_usage>
    <bar1_memory_usage>
      <total>11519 MiB</total>
      <used>0 MiB</used>
      <free>11519 MiB</free>
    </bar1_memory_usage>
    <utilization>
      <gpu_util>0 %</gpu_util>
      <memory_util>0 %</memory_util>
      <encoder_util>0 %</encoder_util>
      <decoder_util>0 %</decoder_util>
    </utilization>
  </gpu>
</nvidia_smi_log>
"""


@pytest.fixture
def snapshot_xml() -> bytes:
    return (DATA / "gpu_snapshot.xml").read_bytes()


@pytest.fixture
def settings() -> Settings:
    return Settings(influxdb_addr="http://influx.test:8086", hostname="node1")


class FakeResponse:
    def __init__(self, status_code: int = 204, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    """Stands in for requests.Session; replies from a queue, records calls."""

    def __init__(self, responses: Optional[List] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[dict] = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        reply = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self):
        self.closed = True

    def writes(self) -> List[dict]:
        return [c for c in self.calls if c["method"] == "POST"]


@pytest.fixture
def fake_smi(monkeypatch):
    """Replace subprocess.run; each call pops the next stdout (or exception)."""

    outputs: List = []
    calls: List[list] = []

    def _run(argv, **kwargs):
        calls.append(argv)
        out = outputs.pop(0) if outputs else K80_XML.encode()
        if isinstance(out, Exception):
            raise out
        if isinstance(out, tuple):
            code, stderr = out
            return subprocess.CompletedProcess(argv, code, b"", stderr)
        return subprocess.CompletedProcess(argv, 0, out, b"")

    monkeypatch.setattr(subprocess, "run", _run)
    _run.outputs = outputs
    _run.calls = calls
    return _run


def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")
