"""Per-address chain state and the format checks every unit must pass."""

from __future__ import annotations

import threading
from typing import Any, Optional

from nrsc.business.data_feed import TimerCache
from nrsc.business.text import TextCache
from nrsc.business.utxo import UtxoCache
from nrsc.object_hash import get_base64_hash, is_chash_valid
from nrsc.spec import HASH_LENGTH, BusinessError, Joint, JointStore, Message, Payment, Unit

__all__ = [
    "GlobalState",
    "validate_business_basic",
    "validate_message_basic",
    "validate_headers_commission_recipients",
    "validate_message_payload",
    "validate_message_format",
]

_PAYLOAD_LOCATIONS = frozenset({"inline", "uri", "none"})
# Used as the author of multi-authored joints; matches no output address.
_MULTI_ADDRESS = "multi_address"


def _payments(joint: Joint):
    for message in joint.unit.messages:
        if isinstance(message.payload, Payment):
            yield message.payload


class GlobalState:
    """Last stable and unstable own joints and incoming payments of each address."""

    def __init__(self, store: JointStore) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._last_stable_self_joint: dict[str, str] = {}
        self._related_joints: dict[str, list[str]] = {}
        self._last_unstable_self_joint: dict[str, str] = {}

    def get_last_stable_self_joint(self, address: str) -> Optional[str]:
        """Return the last stable joint authored by *address*, if any."""
        with self._lock:
            return self._last_stable_self_joint.get(address)

    def get_related_joints(self, address: str) -> list[str]:
        """Return the stable joints paying *address* since its last own joint."""
        with self._lock:
            return list(self._related_joints.get(address, ()))

    def update_global_state(self, joint: Joint) -> None:
        """Record a newly stable joint; only the first author is considered."""
        with self._lock:
            self._update_last_stable_self_joint(joint)
            self._related_joints.pop(joint.unit.authors[0].address, None)
            self._update_related_joints(joint)

    def _update_last_stable_self_joint(self, joint: Joint) -> None:
        # Joints with several authors belong to none of them.
        if len(joint.unit.authors) == 1:
            self._last_stable_self_joint[joint.unit.authors[0].address] = joint.unit.unit

    def _update_related_joints(self, joint: Joint) -> None:
        authors = joint.unit.authors
        author = _MULTI_ADDRESS if len(authors) > 1 else authors[0].address
        unit_hash = joint.unit.unit
        for payment in _payments(joint):
            for output in payment.outputs:
                # change outputs are not related joints
                if output.address == author:
                    continue
                units = self._related_joints.setdefault(output.address, [])
                if unit_hash not in units:
                    units.append(unit_hash)

    def get_stable_balance(self, address: str) -> int:
        """Return the balance of *address* according to stable joints."""
        last_unit = self.get_last_stable_self_joint(address)
        related = self.get_related_joints(address)
        balance = self._store.get_joint(last_unit).balance if last_unit is not None else 0
        for unit in related:
            for payment in _payments(self._store.get_joint(unit)):
                balance += sum(
                    output.amount for output in payment.outputs if output.address == address
                )
        return balance

    def get_last_unstable_self_joint(self, address: str) -> Optional[str]:
        """Return the last unstable joint authored by *address*, if any."""
        with self._lock:
            return self._last_unstable_self_joint.get(address)

    def update_last_unstable_self_joint(self, address: str, unit: str) -> None:
        """Set the last unstable joint authored by *address*."""
        with self._lock:
            self._last_unstable_self_joint[address] = unit

    def remove_last_unstable_self_joint(self, address: str, unit: str) -> None:
        """Forget the last unstable joint of *address* if it is *unit*."""
        with self._lock:
            if self._last_unstable_self_joint.get(address) == unit:
                del self._last_unstable_self_joint[address]


def validate_message_basic(message: Message) -> Any:
    """Check a message with the format rules of its business; return the payload."""
    validators = {
        "payment": UtxoCache.validate_message_basic,
        "text": TextCache.validate_message_basic,
        "data_feed": TimerCache.validate_message_basic,
    }
    validator = validators.get(message.app)
    if validator is None:
        raise BusinessError("unsupported business")
    return validator(message)


def validate_business_basic(unit: Unit) -> None:
    """Check the commission recipients and every message of *unit*."""
    validate_headers_commission_recipients(unit)
    for message in unit.messages:
        validate_message_format(message)
        validate_message_payload(message)
        validate_message_basic(message)


def _address_is_valid(address: str) -> bool:
    try:
        return is_chash_valid(address)
    except ValueError:
        return False


def validate_headers_commission_recipients(unit: Unit) -> None:
    """Recipients are required for several authors, sorted, valid and share 100."""
    recipients = unit.earned_headers_commission_recipients
    if len(unit.authors) > 1 and not recipients:
        raise BusinessError(
            "must specify earned_headers_commission_recipients when more than 1 author"
        )
    if not recipients:
        return

    total_share = 0
    prev_address = ""
    for recipient in recipients:
        if recipient.address <= prev_address:
            raise BusinessError("recipient list must be sorted by address")
        if not _address_is_valid(recipient.address):
            raise BusinessError("invalid recipient address checksum")
        total_share += recipient.earned_headers_commission_share
        prev_address = recipient.address

    if total_share != 100:
        raise BusinessError("sum of earned_headers_commission_share is not 100")


def validate_message_payload(message: Message) -> None:
    """Check that the message carries an inline payload matching its hash."""
    if len(message.payload_hash) != HASH_LENGTH:
        raise BusinessError("wrong payload hash size")
    if message.payload is None:
        raise BusinessError("no inline payload")
    payload_hash = get_base64_hash(message.payload)
    if payload_hash != message.payload_hash:
        raise BusinessError(
            f"wrong payload hash: expected {payload_hash}, got {message.payload_hash}"
        )


def validate_message_format(message: Message) -> None:
    """Check the payload location and its uri fields."""
    if message.payload_location not in _PAYLOAD_LOCATIONS:
        raise BusinessError(f"wrong payload location: {message.payload_location}")
    if (
        message.payload_location != "uri"
        and message.payload_uri is not None
        and message.payload_uri_hash is not None
    ):
        raise BusinessError("must not contain payload_uri and payload_uri_hash")