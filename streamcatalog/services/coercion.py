"""Lenient coercion of provider scalars.

Xtream panels disagree on types: the same field arrives as ``"42"``, ``42``,
``42.0``, ``""`` or ``null`` depending on the vendor.  Every helper here
accepts whatever it is given and returns a typed value or a default, never
raising.
"""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from streamcatalog.models.domain import Metadata, MetadataValue

logger = logging.getLogger(__name__)


def parse_int(value: Any, default: int | None = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, int):  # bool included
        return int(value)
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return default
            return int(number) if math.isfinite(number) else default
    return default


def parse_float(value: Any, default: float | None = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else default
    if isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
        return number if math.isfinite(number) else default
    return default


def parse_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return default


def parse_optional_str(value: Any) -> Optional[str]:
    """Like :func:`parse_str` but maps empty strings to ``None``."""
    text = parse_str(value)
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Epoch seconds (int or numeric string) or ISO-8601 text to an aware UTC datetime.

    Zero or negative epochs are treated as unset.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    seconds = parse_int(value) if isinstance(value, (int, float)) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            seconds = int(text)
        else:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    if seconds is None or seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def to_metadata_value(value: Any) -> MetadataValue:
    """Scalars pass through; lists and dicts are JSON-encoded."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


def extract_metadata(raw: dict, consumed: Iterable[str]) -> Metadata:
    """Keep every key of *raw* not in *consumed*, in provider order."""
    skip = set(consumed)
    return {str(k): to_metadata_value(v) for k, v in raw.items() if k not in skip}
