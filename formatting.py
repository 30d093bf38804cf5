# formatting.py
import math
import re

from constants import RAY

_LAST_WORD_BOUNDARY = re.compile(r"(.*)\s", re.DOTALL)


def truncate_to_bytes(text: str, max_bytes: int) -> str:
    """
    Shortens text so its UTF-8 encoding fits in max_bytes.

    The cut never splits a multi-byte character and never leaves half a word:
    the result ends before the last whitespace that fits. When nothing but a
    single oversized token fits, the result is an empty string. Invalid
    arguments also yield an empty string.
    """
    if not isinstance(text, str) or isinstance(max_bytes, bool) or not isinstance(max_bytes, int):
        return ""
    if max_bytes < 0:
        return ""

    try:
        encoded = text.encode("utf-8")
    except UnicodeEncodeError:
        return ""

    if len(encoded) <= max_bytes:
        return text

    # A trailing partial sequence is the only invalid part of the slice.
    candidate = encoded[:max_bytes].decode("utf-8", errors="ignore")
    while candidate and len(candidate.encode("utf-8")) > max_bytes:
        candidate = candidate[:-1]

    match = _LAST_WORD_BOUNDARY.match(candidate)
    if match and match.group(1):
        return match.group(1)
    return ""


def format_price(price: float) -> str:
    """Rounds half-up and groups thousands with spaces: 65000.4 -> '65 000'."""
    rounded = math.floor(price + 0.5)
    return f"{rounded:,}".replace(",", " ")


def format_hashrate(gh_per_sec: float) -> str:
    eh_per_sec = gh_per_sec / 1e9
    return f"{eh_per_sec:.0f} EH/s"


def format_borrow_rate(rate: float) -> str:
    return f"{rate:.1f}%"


def ray_to_percent(value: int) -> float:
    """Converts a RAY-scaled (1e27) rate to a percentage for display."""
    return float(value) * 100 / RAY
