"""Data model of units, joints and their messages, and an in-memory joint store."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional, Union

__all__ = [
    "HASH_LENGTH",
    "BusinessError",
    "Input",
    "Output",
    "Payment",
    "Message",
    "Author",
    "HeadersCommissionRecipient",
    "Unit",
    "JointSequence",
    "Joint",
    "JointStore",
]

# Length of a base64-encoded SHA-256 hash.
HASH_LENGTH = 44


class BusinessError(Exception):
    """Raised when a unit, message or joint fails a business rule."""


def _drop_none(obj: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in obj.items() if value is not None}


@dataclass
class Input:
    """A payment input: a transfer of an earlier output or an issue."""

    unit: Optional[str] = None
    message_index: Optional[int] = None
    output_index: Optional[int] = None
    kind: Optional[str] = None
    address: Optional[str] = None
    amount: Optional[int] = None
    serial_number: Optional[int] = None
    from_main_chain_index: Optional[int] = None
    to_main_chain_index: Optional[int] = None
    blinding: Optional[str] = None

    def to_obj(self) -> dict[str, Any]:
        return _drop_none(
            {
                "address": self.address,
                "amount": self.amount,
                "from_main_chain_index": self.from_main_chain_index,
                "serial_number": self.serial_number,
                "message_index": self.message_index,
                "type": self.kind,
                "output_index": self.output_index,
                "to_main_chain_index": self.to_main_chain_index,
                "unit": self.unit,
                "blinding": self.blinding,
            }
        )


@dataclass
class Output:
    """A payment output."""

    address: str
    amount: int

    def to_obj(self) -> dict[str, Any]:
        return {"address": self.address, "amount": self.amount}


@dataclass
class Payment:
    """The payload of a payment message."""

    inputs: list[Input] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)
    address: Optional[str] = None
    asset: Optional[str] = None
    definition_chash: Optional[str] = None
    denomination: Optional[int] = None

    def to_obj(self) -> dict[str, Any]:
        obj = _drop_none(
            {
                "address": self.address,
                "asset": self.asset,
                "definition_chash": self.definition_chash,
                "denomination": self.denomination,
            }
        )
        obj["inputs"] = [item.to_obj() for item in self.inputs]
        obj["outputs"] = [item.to_obj() for item in self.outputs]
        return obj


Payload = Union[Payment, str, Any]


@dataclass
class Message:
    """A message of a unit; the payload is a Payment, a text or other JSON data."""

    app: str
    payload: Optional[Payload] = None
    payload_hash: str = ""
    payload_location: str = "inline"
    payload_uri: Optional[str] = None
    payload_uri_hash: Optional[str] = None
    spend_proofs: list[Any] = field(default_factory=list)


@dataclass
class Author:
    address: str
    authentifiers: dict[str, str] = field(default_factory=dict)
    definition: Optional[Any] = None


@dataclass
class HeadersCommissionRecipient:
    address: str
    earned_headers_commission_share: int


@dataclass
class Unit:
    """A unit: its hash, authors, parents and messages."""

    unit: str = ""
    authors: list[Author] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    parent_units: list[str] = field(default_factory=list)
    last_ball: Optional[str] = None
    last_ball_unit: Optional[str] = None
    witness_list_unit: Optional[str] = None
    headers_commission: Optional[int] = None
    payload_commission: Optional[int] = None
    earned_headers_commission_recipients: list[HeadersCommissionRecipient] = field(
        default_factory=list
    )
    timestamp: Optional[int] = None
    content_hash: Optional[str] = None
    version: str = "1.0"
    alt: str = "1"

    def is_genesis_unit(self) -> bool:
        """A unit without parents is the genesis unit."""
        return not self.parent_units


class JointSequence(enum.Enum):
    GOOD = "good"
    TEMP_BAD = "temp-bad"
    NONSERIAL_BAD = "nonserial-bad"
    FINAL_BAD = "final-bad"


@dataclass
class Joint:
    """A unit together with the properties the node keeps about it."""

    unit: Unit
    sequence: JointSequence = JointSequence.GOOD
    mci: Optional[int] = None
    sub_mci: Optional[int] = None
    is_stable: bool = False
    balance: int = 0
    stable_prev_self_unit: Optional[str] = None
    related_units: list[str] = field(default_factory=list)
    ball: Optional[str] = None
    skiplist_units: list[str] = field(default_factory=list)


class JointStore:
    """Joints indexed by unit hash."""

    def __init__(self) -> None:
        self._joints: dict[str, Joint] = {}

    def __contains__(self, unit: object) -> bool:
        return unit in self._joints

    def __len__(self) -> int:
        return len(self._joints)

    def add_joint(self, joint: Joint) -> Joint:
        """Store *joint* under its unit hash and return it."""
        self._joints[joint.unit.unit] = joint
        return joint

    def get_joint(self, unit: str) -> Joint:
        """Return the joint of *unit*; raise BusinessError if it is unknown."""
        try:
            return self._joints[unit]
        except KeyError:
            raise BusinessError(f"joint not found, unit = {unit}") from None

    def includes(self, earlier: Joint, later: Joint) -> bool:
        """Return True if *earlier* is *later* or one of its known ancestors."""
        target = earlier.unit.unit
        if later.unit.unit == target:
            return True
        seen: set[str] = set()
        pending = list(later.unit.parent_units)
        while pending:
            unit_hash = pending.pop()
            if unit_hash == target:
                return True
            if unit_hash in seen:
                continue
            seen.add(unit_hash)
            parent = self._joints.get(unit_hash)
            if parent is not None:
                pending.extend(parent.unit.parent_units)
        return False