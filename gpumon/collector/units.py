from __future__ import annotations

import re
from typing import Optional

MIB = 1024 * 1024

_MIB_SUFFIX = " MiB"
_PCT_SUFFIX = " %"
_INT_RE = re.compile(r"[+-]?[0-9]+")


def _strip_suffix_int(value: Optional[str], suffix: str) -> Optional[int]:
    if not value or not value.endswith(suffix):
        return None
    digits = value[: -len(suffix)]
    # int() would also take "1_000" and " 7"
    if not _INT_RE.fullmatch(digits):
        return None
    return int(digits)


def parse_mib(value: Optional[str]) -> Optional[int]:
    """'11519 MiB' -> bytes. None when the string is not '<int> MiB'."""
    mib = _strip_suffix_int(value, _MIB_SUFFIX)
    return None if mib is None else mib * MIB


def parse_percent(value: Optional[str]) -> Optional[int]:
    """'83 %' -> 83. None when the string is not '<int> %'."""
    return _strip_suffix_int(value, _PCT_SUFFIX)
