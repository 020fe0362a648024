"""
Value parsers shared by both raw encodings.

Each parser returns None for a missing or blank value and raises ValueError
for a value that is present but malformed. Structured payloads usually hand
over native types; attribute payloads always hand over text.
"""
import re
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlsplit

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_TRUE = {"true"}
_FALSE = {"false"}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    raise ValueError(f"expected text, got {type(value).__name__}")


def parse_integer(value: Any) -> Optional[int]:
    if _blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"expected integer, got boolean {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(f"expected integer, got {value!r}")
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    raise ValueError(f"expected integer, got {value!r}")


def parse_boolean(value: Any) -> Optional[bool]:
    if _blank(value):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ValueError(f"expected boolean, got {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 text (trailing 'Z' allowed). Naive values are taken as UTC."""
    if _blank(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"expected ISO-8601 timestamp, got {value!r}") from None
    else:
        raise ValueError(f"expected timestamp, got {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def identifier_from_locator(value: Any) -> Optional[str]:
    """
    Derive a bare identifier from a resource locator.

    'https://vcd/api/vApp/vm-1a2b?x=1' -> 'vm-1a2b'. A value without a path
    (a bare id or URN) is returned unchanged.
    """
    text = parse_text(value)
    if text is None:
        return None
    if "/" not in text:
        return text

    path = urlsplit(text).path if "://" in text else text.split("?", 1)[0]
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        raise ValueError(f"locator has no path segments: {value!r}")
    return segments[-1]
