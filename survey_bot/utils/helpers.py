"""
Utility helpers
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_watermark(value: Union[str, int, None]) -> Optional[int]:
    """Numeric value of a watermark, or None when it is opaque."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def watermark_advances(current: Union[str, int, None], candidate: Union[str, int, None]) -> bool:
    """True when ``candidate`` should replace ``current``.

    Empty candidates never win. Numeric watermarks must not go backwards; opaque ones
    cannot be ordered and are taken whenever they differ.
    """
    if candidate is None or candidate == "":
        return False
    if current is None or current == "":
        return True
    cur_n, cand_n = parse_watermark(current), parse_watermark(candidate)
    if cur_n is not None and cand_n is not None:
        return cand_n > cur_n
    return str(candidate) != str(current)
