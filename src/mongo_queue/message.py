"""
Message record layout and argument validation.

A message is persisted as a single document:

    {
        "_id": ObjectId,            # assigned by the store
        "payload": {...},           # opaque caller document
        "running": bool,            # claim flag
        "priority": float,          # lower value dequeues first
        "created": datetime,        # insertion time, FIFO tie-break
        "earliestGet": datetime,    # not claimable before this time
        "resetTimestamp": datetime  # claim deadline, INT32_MAX while idle
    }

All timestamps are UTC. ``earliestGet`` and ``resetTimestamp`` hold whole
seconds clamped into ``[0, INT32_MAX]``.
"""

import math
from datetime import datetime, timezone
from typing import Dict, Any, Mapping, Optional

from .errors import InvalidArgumentError

INT32_MAX = 2 ** 31 - 1

FIELD_ID = "_id"
FIELD_PAYLOAD = "payload"
FIELD_RUNNING = "running"
FIELD_PRIORITY = "priority"
FIELD_CREATED = "created"
FIELD_EARLIEST_GET = "earliestGet"
FIELD_RESET_TIMESTAMP = "resetTimestamp"

# Key under which the message id is exposed in a message handle
HANDLE_ID = "id"


def clamp_seconds(seconds: int) -> int:
    """Clamp an epoch-seconds value into the storable range [0, INT32_MAX]."""
    return max(0, min(INT32_MAX, seconds))


def seconds_to_datetime(seconds: int) -> datetime:
    """Convert whole epoch seconds to a UTC datetime after clamping."""
    return datetime.fromtimestamp(clamp_seconds(seconds), tz=timezone.utc)


def timestamp_to_datetime(timestamp: float) -> datetime:
    """Convert a wall clock reading to a UTC datetime with millisecond precision."""
    millis = round(timestamp * 1000)
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


NEVER = seconds_to_datetime(INT32_MAX)


def new_record(payload: Mapping[str, Any], earliest_get: int, priority: float,
               now: float) -> Dict[str, Any]:
    """
    Build the document inserted by send.

    Args:
        payload: Message payload
        earliest_get: Epoch seconds before which the message is not claimable
        priority: Message priority, lower first
        now: Current wall clock reading

    Returns:
        Record document without an id
    """
    return {
        FIELD_PAYLOAD: dict(payload),
        FIELD_RUNNING: False,
        FIELD_RESET_TIMESTAMP: NEVER,
        FIELD_EARLIEST_GET: seconds_to_datetime(earliest_get),
        FIELD_PRIORITY: float(priority),
        FIELD_CREATED: timestamp_to_datetime(now),
    }


def to_handle(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Turn a stored record into the handle returned by get.

    The id comes first and wins over an ``id`` key inside the payload.
    """
    handle = {HANDLE_ID: record[FIELD_ID]}
    for key, value in record.get(FIELD_PAYLOAD, {}).items():
        if key != HANDLE_ID:
            handle[key] = value
    return handle


def handle_payload(message: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the payload part of a message handle."""
    return {key: value for key, value in message.items() if key != HANDLE_ID}


def payload_path(key: str) -> str:
    """Address a payload sub-field in the stored document."""
    return f"{FIELD_PAYLOAD}.{key}"


# Validation helpers. Each raises InvalidArgumentError naming the argument.

def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_integer(value: Any, name: str) -> int:
    if not is_integer(value):
        raise InvalidArgumentError(f"{name} must be an int, got {type(value).__name__}", name)
    return value


def require_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a bool, got {type(value).__name__}", name)
    return value


def require_priority(value: Any, name: str = "priority") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"{name} must be a float, got {type(value).__name__}", name)
    try:
        value = float(value)
    except OverflowError:
        raise InvalidArgumentError(f"{name} is out of float range", name)
    if not math.isfinite(value):
        raise InvalidArgumentError(f"{name} must be finite, got {value}", name)
    return value


def require_mapping(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidArgumentError(f"{name} must be a mapping, got {type(value).__name__}", name)
    return value


def require_key(key: Any, name: str) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidArgumentError(f"{name} keys must be non-empty strings, got {key!r}", name)
    return key


def require_query(query: Any, name: str = "query") -> Mapping[str, Any]:
    """Validate a payload query: a mapping keyed by non-empty strings."""
    require_mapping(query, name)
    for key in query:
        require_key(key, name)
    return query


def require_running_filter(running: Optional[bool]) -> Optional[bool]:
    if running is not None and not isinstance(running, bool):
        raise InvalidArgumentError(
            f"running must be None or a bool, got {type(running).__name__}", "running"
        )
    return running
