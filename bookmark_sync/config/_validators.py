from __future__ import annotations

from typing import Any


def _ensure_api_key(value: str, *, name: str) -> str:
    if not value:
        msg = f"{name} API token is required"
        raise ValueError(msg)
    value = value.strip()
    if not value:
        msg = f"{name} API token is required"
        raise ValueError(msg)
    if len(value) > 500:
        msg = f"{name} API token appears to be too long"
        raise ValueError(msg)
    if any(char in value for char in [" ", "\n", "\t"]):
        msg = f"{name} API token contains invalid characters"
        raise ValueError(msg)
    return value


def _parse_positive_number(value: Any, *, default: float, name: str) -> float:
    try:
        parsed = float(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{name} must be a valid number"
        raise ValueError(msg) from exc
    if parsed <= 0:
        msg = f"{name} must be positive"
        raise ValueError(msg)
    return parsed
