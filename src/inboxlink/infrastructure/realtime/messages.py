"""Normalization of hub invocations into HubMessage records

The hub does not fix a message shape. Senders push zero arguments, one
object, one primitive, or several positional arguments; every shape is
folded into the same ``HubMessage``.
"""

import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from inboxlink.domain.models import HubMessage

DEFAULT_MESSAGE_TYPE = "notification"

# Lower-cased key variants, matched case-insensitively
TYPE_KEYS = ("type", "messagetype")
PAYLOAD_KEYS = ("payload", "data", "body")
TIMESTAMP_KEYS = ("timestamp", "time")
ID_KEYS = ("id", "messageid")
_RECOGNIZED_KEYS = frozenset(TYPE_KEYS + PAYLOAD_KEYS + TIMESTAMP_KEYS + ID_KEYS)

# Epoch values above this are taken as milliseconds
_EPOCH_MILLIS_CUTOFF = 100_000_000_000


def _lookup(fields: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[bool, Any]:
    lowered = {
        str(k).lower(): v for k, v in fields.items() if str(k).lower() in keys
    }
    for key in keys:
        if key in lowered:
            return True, lowered[key]
    return False, None


def _parse_timestamp(value: Any, now: datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > _EPOCH_MILLIS_CUTOFF else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return now
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable message timestamp {value!r}, using now")
            return now
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return now


def _from_mapping(fields: Mapping[str, Any], now: datetime) -> HubMessage:
    has_type, msg_type = _lookup(fields, TYPE_KEYS)
    has_payload, payload = _lookup(fields, PAYLOAD_KEYS)
    _, timestamp = _lookup(fields, TIMESTAMP_KEYS)
    _, msg_id = _lookup(fields, ID_KEYS)

    if not has_payload:
        rest = {
            k: v for k, v in fields.items() if str(k).lower() not in _RECOGNIZED_KEYS
        }
        payload = rest or None

    return HubMessage(
        type=str(msg_type) if has_type and msg_type else DEFAULT_MESSAGE_TYPE,
        payload=payload,
        timestamp=_parse_timestamp(timestamp, now),
        id=str(msg_id) if msg_id not in (None, "") else str(uuid.uuid4()),
    )


def normalize_message(
    *args: Any, clock: Callable[[], datetime] | None = None
) -> HubMessage:
    """Fold hub invocation arguments into a HubMessage

    - ``()`` -> empty notification
    - ``(mapping,)`` -> fields read case-insensitively, defaults filled
    - ``(value,)`` -> notification carrying ``value``
    - ``("type", *rest)`` -> ``type`` plus ``rest`` (unwrapped if single)
    - ``(non_str, *rest)`` -> notification carrying all arguments

    Args:
        *args: Positional arguments of the hub invocation
        clock: Source of the current UTC instant for defaults

    Returns:
        Canonical message record
    """
    now = clock() if clock is not None else datetime.now(timezone.utc)

    if not args:
        return HubMessage(
            type=DEFAULT_MESSAGE_TYPE,
            payload=None,
            timestamp=now,
            id=str(uuid.uuid4()),
        )

    if len(args) == 1:
        (only,) = args
        if isinstance(only, Mapping):
            return _from_mapping(only, now)
        return HubMessage(
            type=DEFAULT_MESSAGE_TYPE,
            payload=only,
            timestamp=now,
            id=str(uuid.uuid4()),
        )

    first, *rest = args
    if isinstance(first, str):
        msg_type = first or DEFAULT_MESSAGE_TYPE
        payload: Any = rest[0] if len(rest) == 1 else list(rest)
    else:
        msg_type = DEFAULT_MESSAGE_TYPE
        payload = list(args)

    return HubMessage(
        type=msg_type, payload=payload, timestamp=now, id=str(uuid.uuid4())
    )
