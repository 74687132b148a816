"""Text messages and the lookup of the text carried by a unit."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from nrsc.spec import BusinessError, Joint, JointStore, Message, Payment

__all__ = ["Text", "TextCache", "get_text"]

logger = logging.getLogger(__name__)


@dataclass
class Text:
    """The text of a unit with its senders, recipients and time."""

    from_addr: list[str]
    to_addr: list[str]
    text: str
    time: Optional[int]


def _message_at(joint: Joint, message_idx: int) -> Message:
    messages = joint.unit.messages
    if not 0 <= message_idx < len(messages):
        raise BusinessError(
            f"unknown message index {message_idx} in unit {joint.unit.unit}"
        )
    return messages[message_idx]


class TextCache:
    """The text business keeps no state."""

    @staticmethod
    def validate_message_basic(message: Message) -> str:
        """Check that the payload is a text and return it."""
        if not isinstance(message.payload, str):
            raise BusinessError("payload is not a text")
        logger.info("validate text message: text = %r", message.payload)
        return message.payload

    @staticmethod
    def check_business(joint: Joint, message_idx: int) -> Message:
        """Look up the message; text needs no further check here."""
        return _message_at(joint, message_idx)

    def validate_message(self, joint: Joint, message_idx: int) -> Message:
        """Look up the message; text is valid once its format is."""
        return _message_at(joint, message_idx)

    def apply_message(self, joint: Joint, message_idx: int) -> Message:
        """Look up the message; text changes no state."""
        return _message_at(joint, message_idx)

    def revert_message(self, joint: Joint, message_idx: int) -> None:
        """Text messages are never reverted."""
        _message_at(joint, message_idx)
        raise BusinessError(
            f"text revert message is not supported, unit={joint.unit.unit}"
        )


def get_text(store: JointStore, unit: str) -> Text:
    """Return the text of *unit* with its authors and payment recipients."""
    joint = store.get_joint(unit)
    from_addr = [author.address for author in joint.unit.authors]
    to_addr: list[str] = []
    text = ""
    for message in joint.unit.messages:
        payload = message.payload
        if isinstance(payload, str):
            text = payload
        elif isinstance(payload, Payment):
            for output in payload.outputs:
                if output.address not in to_addr and output.address not in from_addr:
                    to_addr.append(output.address)
    return Text(
        from_addr=from_addr,
        to_addr=to_addr,
        text=text,
        time=joint.unit.timestamp,
    )