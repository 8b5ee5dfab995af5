"""Translate host account payloads into QuotaInfo."""

from typing import Any

from src.commons.settings.models import QuotaFieldMapping
from src.domain.models.quota import QuotaInfo


def _resolve(data: dict[str, Any], path: str) -> Any:
    """Walk a dotted path through nested dicts, or return None."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _first_int(data: dict[str, Any], paths: list[str]) -> int | None:
    """Return the first candidate that holds a number."""
    for path in paths:
        value = _resolve(data, path)
        if value is None or isinstance(value, bool):
            continue
        try:
            return max(int(float(value)), 0)
        except (TypeError, ValueError):
            continue
    return None


def normalize_quota(raw: dict[str, Any], mapping: QuotaFieldMapping) -> QuotaInfo:
    """Build a QuotaInfo from an account payload.

    A top-level ``{"data": {...}}`` envelope is unwrapped first. Missing
    counters default to 0 and a missing upload ceiling to None.

    Args:
        raw: Account info exactly as the host returned it.
        mapping: Candidate paths per quota field, tried in order.

    Returns:
        Normalized quota.
    """
    data = raw.get("data") if isinstance(raw.get("data"), dict) else raw

    return QuotaInfo(
        storage_used=_first_int(data, mapping.storage_used) or 0,
        storage_limit=_first_int(data, mapping.storage_limit) or 0,
        daily_used=_first_int(data, mapping.daily_used) or 0,
        daily_limit=_first_int(data, mapping.daily_limit) or 0,
        max_uploads=_first_int(data, mapping.max_uploads),
        uploads_count=_first_int(data, mapping.uploads_count) or 0,
    )
