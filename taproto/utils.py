from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

# ========================================
#           IDENTIFIER HELPERS
# ========================================

def new_guid() -> str:
    """Fresh UUIDv4 in canonical string form."""
    return str(uuid.uuid4())


# ========================================
#           TIME HELPERS
# ========================================

def iso_now(offset_seconds: float = 0.0) -> str:
    """
    UTC timestamp ``offset_seconds`` from now in ISO-8601 with millisecond
    precision and a trailing ``Z``, e.g. ``2024-05-01T12:00:02.000Z``.
    """
    when = datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
    return when.strftime("%Y-%m-%dT%H:%M:%S.") + f"{when.microsecond // 1000:03d}Z"


# ========================================
#           PAYLOAD SHAPE HELPERS
# ========================================
"""
Used by the model and packet ``from_dict`` constructors to reject payloads
of the wrong shape before they reach the state store.
"""

def expect_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"'{what}' must be an object")
    return value


def expect_list(value: Any, what: str) -> List[Any]:
    if not isinstance(value, list):
        raise ValueError(f"'{what}' must be a list")
    return value


def expect_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"'{what}' must be a string")
    return value


def expect_int(value: Any, what: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{what}' must be an integer")
    return value


def expect_bool(value: Any, what: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{what}' must be a boolean")
    return value
