# collector/models.py
"""Typed view of `nvidia-smi -q -x` and of the points we write to InfluxDB.

Memory and utilization fields keep the raw strings nvidia-smi prints
("11519 MiB", "83 %"); conversion happens in `units` so that an
unparseable reading can be told apart from a real zero.
"""
from __future__ import annotations

import re
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class MemoryUsage(_Frozen):
    total: str = ""
    used: str = ""
    free: str = ""


class Utilization(_Frozen):
    gpu_util: str = ""
    memory_util: str = ""
    encoder_util: str = ""
    decoder_util: str = ""


class GPUInfo(_Frozen):
    id: str = ""  # PCI bus id, from the `id` attribute of <gpu>
    product_name: str = ""
    product_brand: str = ""
    uuid: str = ""
    minor_number: int
    fb_memory_usage: MemoryUsage = Field(default_factory=MemoryUsage)
    bar1_memory_usage: MemoryUsage = Field(default_factory=MemoryUsage)
    utilization: Utilization = Field(default_factory=Utilization)


class NvidiaSmiLog(_Frozen):
    driver_version: str = ""
    attached_gpus: str = ""
    gpus: Tuple[GPUInfo, ...] = ()


_TAG_SPECIAL = re.compile(r"([,= ])")


def escape_tag(value: str) -> str:
    """Line-protocol escaping for tag keys and values."""
    return _TAG_SPECIAL.sub(r"\\\1", value)


class Point(_Frozen):
    measurement: str
    tags: Tuple[Tuple[str, str], ...]  # (key, value) pairs in emission order
    value: int
    timestamp: int  # ns since epoch

    def tag_string(self) -> str:
        return ",".join(f"{escape_tag(k)}={escape_tag(v)}" for k, v in self.tags)

    def to_line(self) -> str:
        return f"{self.measurement},{self.tag_string()} value={self.value} {self.timestamp}"
