"""Shared utility functions for ids, timestamps and request parsing."""

import uuid
from datetime import datetime, timezone


def new_id(prefix: str) -> str:
    """Return a short unique id such as ``rep-3f9a0c1d2b4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string (the store's timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


def parse_bool(value, default: bool = False) -> bool:
    """Interpret query-string / JSON flags ("1", "true", "yes", True)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
