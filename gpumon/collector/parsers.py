from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Union

from lxml import etree  # type: ignore
from pydantic import ValidationError

from gpumon.errors import NvidiaSmiError, NvidiaSmiTimeout, ReportParseError

from .models import GPUInfo, MemoryUsage, NvidiaSmiLog, Utilization

log = logging.getLogger(__name__)

NVSMI_ARGS = ["-q", "-x"]

# -----------------------------
# Helpers
# -----------------------------

def _txt(node: etree._Element, path: str) -> str:
    found = node.find(path)
    return found.text.strip() if found is not None and found.text else ""


def _memory(gpu: etree._Element, block: str) -> MemoryUsage:
    return MemoryUsage(
        total=_txt(gpu, f"{block}/total"),
        used=_txt(gpu, f"{block}/used"),
        free=_txt(gpu, f"{block}/free"),
    )


def _utilization(gpu: etree._Element) -> Utilization:
    return Utilization(
        gpu_util=_txt(gpu, "utilization/gpu_util"),
        memory_util=_txt(gpu, "utilization/memory_util"),
        encoder_util=_txt(gpu, "utilization/encoder_util"),
        decoder_util=_txt(gpu, "utilization/decoder_util"),
    )

# -----------------------------
# Public API
# -----------------------------

def call_nvidia_smi_xml(cmd: str = "nvidia-smi", timeout: float = 10) -> bytes:
    """Run `<cmd> -q -x` and return the raw XML.

    Raises NvidiaSmiError when the binary is missing, exits non-zero or
    prints nothing, and NvidiaSmiTimeout when it runs past `timeout`.
    """
    argv = shlex.split(cmd) + NVSMI_ARGS
    try:
        proc = subprocess.run(argv, check=False, capture_output=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise NvidiaSmiError(f"{argv[0]} not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise NvidiaSmiTimeout(f"{' '.join(argv)} timed out after {timeout}s") from exc

    if proc.returncode != 0:
        stderr = proc.stderr.decode(errors="replace").strip()
        raise NvidiaSmiError(
            f"{' '.join(argv)} exited with {proc.returncode}",
            returncode=proc.returncode,
            stderr=stderr,
        )
    out = proc.stdout.strip()
    if not out:
        raise NvidiaSmiError(f"{' '.join(argv)} produced no output", returncode=0)
    return out


def parse_nvidia_smi_xml(xml: Union[bytes, str]) -> NvidiaSmiLog:
    """Parse `nvidia-smi -q -x` output into an NvidiaSmiLog.

    GPUs keep the order nvidia-smi lists them in. Missing text fields become
    empty strings; a missing or non-integer <minor_number> is an error.
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        root = etree.fromstring(xml)
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise ReportParseError(f"malformed nvidia-smi XML: {exc}") from exc

    gpus = []
    for idx, gpu in enumerate(root.findall("gpu")):
        try:
            gpus.append(
                GPUInfo(
                    id=gpu.get("id", ""),
                    product_name=_txt(gpu, "product_name"),
                    product_brand=_txt(gpu, "product_brand"),
                    uuid=_txt(gpu, "uuid"),
                    minor_number=_txt(gpu, "minor_number"),
                    fb_memory_usage=_memory(gpu, "fb_memory_usage"),
                    bar1_memory_usage=_memory(gpu, "bar1_memory_usage"),
                    utilization=_utilization(gpu),
                )
            )
        except ValidationError as exc:
            raise ReportParseError(f"gpu #{idx} ({gpu.get('id', '?')}): {exc}") from exc

    return NvidiaSmiLog(
        driver_version=_txt(root, "driver_version"),
        attached_gpus=_txt(root, "attached_gpus"),
        gpus=tuple(gpus),
    )


def collect_once(cmd: str = "nvidia-smi", timeout: float = 10) -> NvidiaSmiLog:
    """Convenience: call `nvidia-smi` and parse the report."""
    report = parse_nvidia_smi_xml(call_nvidia_smi_xml(cmd=cmd, timeout=timeout))
    if report.attached_gpus and report.attached_gpus != str(len(report.gpus)):
        log.warning(
            "nvidia-smi reports %s attached GPUs but lists %d",
            report.attached_gpus, len(report.gpus),
        )
    return report


def load_report(path: str) -> NvidiaSmiLog:
    """Parse a saved `nvidia-smi -q -x` dump (used by `gpumon parse`)."""
    with open(path, "rb") as f:
        return parse_nvidia_smi_xml(f.read())
