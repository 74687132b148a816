"""Data feed messages: named string or integer values posted by an oracle."""

from __future__ import annotations

import time
from typing import Any

from nrsc.spec import BusinessError, Joint, Message, Payment

__all__ = [
    "MAX_DATA_FEED_NAME_LENGTH",
    "MAX_DATA_FEED_VALUE_LENGTH",
    "TimerCache",
    "validate_datafeed",
]

MAX_DATA_FEED_NAME_LENGTH = 64
MAX_DATA_FEED_VALUE_LENGTH = 64


def validate_datafeed(message: Message) -> dict[str, Any]:
    """Check the format of a data feed payload and return it."""
    payload = message.payload
    if payload is None or isinstance(payload, (str, Payment)):
        raise BusinessError("data feed payload is not data_feed")
    if not isinstance(payload, dict):
        raise BusinessError("data feed payload is not object")
    if not payload:
        raise BusinessError("data feed payload is empty object")

    for name, value in payload.items():
        if len(name.encode("utf-8")) > MAX_DATA_FEED_NAME_LENGTH:
            raise BusinessError(f"feed name {name} too long")
        if isinstance(value, str):
            if len(value.encode("utf-8")) > MAX_DATA_FEED_VALUE_LENGTH:
                raise BusinessError(f"value {value} too long")
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise BusinessError(f"data feed {name} must be string or number")
        elif isinstance(value, float):
            raise BusinessError("fractional numbers not allowed in data feeds")
    return payload


def _message_at(joint: Joint, message_idx: int) -> Message:
    messages = joint.unit.messages
    if not 0 <= message_idx < len(messages):
        raise BusinessError(
            f"unknown message index {message_idx} in unit {joint.unit.unit}"
        )
    return messages[message_idx]


class TimerCache:
    """State of the data feed business: the time of the last applied feed."""

    def __init__(self) -> None:
        self.cur_time = 0

    @staticmethod
    def validate_message_basic(message: Message) -> dict[str, Any]:
        return validate_datafeed(message)

    @staticmethod
    def check_business(joint: Joint, message_idx: int) -> Message:
        """Look up the message; data feeds need no further check here."""
        return _message_at(joint, message_idx)

    def validate_message(self, joint: Joint, message_idx: int) -> dict[str, Any]:
        """Return the feed payload; its format was checked before caching."""
        return validate_datafeed(_message_at(joint, message_idx))

    def apply_message(self, joint: Joint, message_idx: int) -> None:
        """Record the current time in milliseconds."""
        self.cur_time = int(time.time() * 1000)

    def revert_message(self, joint: Joint, message_idx: int) -> None:
        """Data feed messages are never reverted."""
        _message_at(joint, message_idx)
        raise BusinessError(
            f"data_feed revert message is not supported, unit={joint.unit.unit}"
        )