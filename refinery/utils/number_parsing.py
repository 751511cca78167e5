import math
import re
from typing import Optional

_STRICT_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_strict_number(s) -> Optional[float]:
    """
    Parses a value only if the whole trimmed string is a plain decimal number.
    Returns None otherwise ("", "12abc", "inf", "0x1F", "1_000" are not numbers).
    """
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, (int, float)):
        value = float(s)
        return value if math.isfinite(value) else None

    val = str(s).strip()
    if not val or not _STRICT_NUMBER.fullmatch(val):
        return None
    try:
        value = float(val)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def is_strict_number(s) -> bool:
    return parse_strict_number(s) is not None
