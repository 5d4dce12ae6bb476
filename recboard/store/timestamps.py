# SPDX-License-Identifier: Apache-2.0
"""Timestamp normalization for records read from the store.

Records may carry store-native ``{seconds, nanoseconds}`` maps, ISO strings,
epoch numbers (seconds or milliseconds) or ``datetime`` values. Everything
leaving the adapter is a timezone-aware UTC ``datetime``.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Annotated, Any

from pydantic import BeforeValidator

# Epoch values above this are treated as milliseconds (year ~5138 in seconds).
_EPOCH_MS_THRESHOLD = 1e11

_TIMESTAMP_SUFFIXES = ("_at", "_date", "deadline")

# Free-form answers; stored exactly as the reviewer entered them.
_OPAQUE_KEYS = frozenset({"form_data"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch(value: float) -> datetime:
    if abs(value) > _EPOCH_MS_THRESHOLD:
        value = value / 1000.0
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _is_native_timestamp(value: Any) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    keys = set(value)
    if keys <= {"seconds", "nanoseconds"}:
        return "seconds" in keys
    if keys <= {"_seconds", "_nanoseconds"}:
        return "_seconds" in keys
    return False


def coerce_timestamp(value: Any) -> Any:
    """Convert any supported timestamp representation to an aware UTC datetime.

    ``None`` passes through. Raises ``ValueError`` for values that are not
    timestamps at all.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if _is_native_timestamp(value):
        seconds = value.get("seconds", value.get("_seconds", 0))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty timestamp string")
        if text.lstrip("-").replace(".", "", 1).isdigit():
            return _from_epoch(float(text))
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return coerce_timestamp(parsed)
    raise ValueError(f"unsupported timestamp value: {value!r}")


def _is_timestamp_key(key: str) -> bool:
    return key.endswith(_TIMESTAMP_SUFFIXES)


def normalize_record(data: Any, key: str = "") -> Any:
    """Walk a record and coerce timestamp-like values in place of the originals."""
    if _is_native_timestamp(data):
        return coerce_timestamp(data)
    if isinstance(data, dict):
        return {k: v if k in _OPAQUE_KEYS else normalize_record(v, k) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_record(v, key) for v in data]
    if key and _is_timestamp_key(key) and isinstance(data, (str, int, float)) and not isinstance(data, bool):
        try:
            return coerce_timestamp(data)
        except ValueError:
            return data
    return data


Timestamp = Annotated[datetime, BeforeValidator(coerce_timestamp)]
