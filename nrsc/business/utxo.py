"""Unspent transaction outputs: payment validation and state transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from nrsc.object_hash import is_chash_valid
from nrsc.spec import (
    HASH_LENGTH,
    BusinessError,
    Input,
    Joint,
    JointSequence,
    JointStore,
    Message,
    Output,
    Payment,
    Unit,
)

__all__ = [
    "MAX_INPUTS_PER_PAYMENT_MESSAGE",
    "MAX_OUTPUTS_PER_PAYMENT_MESSAGE",
    "TOTAL_WHITEBYTES",
    "UtxoKey",
    "UtxoData",
    "UtxoCache",
    "get_output_by_unit",
    "validate_payment_format",
]

MAX_INPUTS_PER_PAYMENT_MESSAGE = 128
MAX_OUTPUTS_PER_PAYMENT_MESSAGE = 128
TOTAL_WHITEBYTES = 10**15

_TRANSFER = "transfer"
_ISSUE = "issue"


@dataclass(frozen=True, order=True)
class UtxoKey:
    """Identifies an unspent output; keys order by amount, unit, message, output."""

    amount: int
    unit: str
    message_index: int
    output_index: int


@dataclass(frozen=True)
class UtxoData:
    """Main chain position of the joint that created an output."""

    mci: Optional[int]
    sub_mci: Optional[int]


def get_output_by_unit(
    store: JointStore, unit: str, output_index: int, message_index: int
) -> Output:
    """Return output *output_index* of message *message_index* of *unit*."""
    joint = store.get_joint(unit)
    messages = joint.unit.messages
    if not 0 <= message_index < len(messages):
        raise BusinessError(
            f"invalid message index for the input, unit={unit}, msg_idx={message_index}"
        )
    payload = messages[message_index].payload
    if not isinstance(payload, Payment):
        raise BusinessError("address can't find from non payment message")
    if not 0 <= output_index < len(payload.outputs):
        raise BusinessError(
            "invalid output index for the input, "
            f"unit={unit}, msg_idx={message_index}, output_idx={output_index}"
        )
    return payload.outputs[output_index]


def validate_payment_format(message: Message) -> Payment:
    """Check the format of a payment message and return its payment."""
    if message.payload_location != "inline":
        raise BusinessError("payment location must be inline")
    if message.spend_proofs:
        raise BusinessError("private payment not supported")
    payment = message.payload
    if not isinstance(payment, Payment):
        raise BusinessError("validate_payment_format: not payment")
    if payment.asset is not None:
        raise BusinessError("We do not handle assets for now")
    if (
        payment.address is not None
        or payment.definition_chash is not None
        or payment.denomination is not None
    ):
        raise BusinessError("validate_payment_format: unknown fields in payment message")
    if (
        len(payment.inputs) > MAX_INPUTS_PER_PAYMENT_MESSAGE
        or len(payment.outputs) > MAX_OUTPUTS_PER_PAYMENT_MESSAGE
    ):
        raise BusinessError(
            f"too many inputs {len(payment.inputs)} or output {len(payment.outputs)}"
        )
    return payment


def _payment_of(message: Message) -> Payment:
    if not isinstance(message.payload, Payment):
        raise BusinessError("payload is not a payment")
    return message.payload


def _input_position(item: Input) -> tuple[str, int, int]:
    if item.unit is None or item.output_index is None or item.message_index is None:
        raise BusinessError("payment input has no unit, output_index or message_index")
    return item.unit, item.output_index, item.message_index


def _address_is_valid(address: str) -> bool:
    try:
        return is_chash_valid(address)
    except ValueError:
        return False


class UtxoCache:
    """Spendable outputs of every address."""

    def __init__(self, store: JointStore) -> None:
        self._store = store
        self.output: dict[str, dict[UtxoKey, UtxoData]] = {}

    # -- state transitions -------------------------------------------------

    def revert_output(
        self, message: Message, message_index: int, unit: str, utxo_value: UtxoData
    ) -> None:
        """Undo a payment: drop its outputs and restore the outputs it spent."""
        payment = _payment_of(message)
        for output_index, output in enumerate(payment.outputs):
            self._remove_output(
                output.address,
                UtxoKey(
                    amount=output.amount,
                    unit=unit,
                    message_index=message_index,
                    output_index=output_index,
                ),
            )
        for item in payment.inputs:
            if item.kind == _ISSUE:
                continue
            src_unit, output_index, src_message_index = _input_position(item)
            output = get_output_by_unit(
                self._store, src_unit, output_index, src_message_index
            )
            self._insert_output(
                output.address,
                UtxoKey(
                    amount=output.amount,
                    unit=src_unit,
                    message_index=src_message_index,
                    output_index=output_index,
                ),
                utxo_value,
            )

    def apply_payment(
        self, message: Message, message_index: int, unit: str, utxo_value: UtxoData
    ) -> None:
        """Spend the inputs of a payment and record its outputs."""
        payment = _payment_of(message)
        try:
            self._decrease_output(payment.inputs)
        except BusinessError as exc:
            raise BusinessError(f"apply_payment decrease_output failed: {exc}") from exc
        self._increase_output(unit, payment.outputs, message_index, utxo_value)

    def _decrease_output(self, inputs: list[Input]) -> None:
        for item in inputs:
            if item.kind == _ISSUE:
                continue
            unit, output_index, message_index = _input_position(item)
            address, amount, _ = self._get_output_by_input(
                unit, output_index, message_index
            )
            self._remove_output(
                address,
                UtxoKey(
                    amount=amount,
                    unit=unit,
                    message_index=message_index,
                    output_index=output_index,
                ),
            )

    def _increase_output(
        self,
        unit: str,
        outputs: list[Output],
        message_index: int,
        utxo_value: UtxoData,
    ) -> None:
        for output_index, output in enumerate(outputs):
            self._insert_output(
                output.address,
                UtxoKey(
                    amount=output.amount,
                    unit=unit,
                    message_index=message_index,
                    output_index=output_index,
                ),
                utxo_value,
            )

    def _remove_output(self, address: str, key: UtxoKey) -> None:
        utxos = self.output.get(address)
        if utxos is None:
            raise BusinessError("remove_output: invalid paid address")
        if utxos.pop(key, None) is None:
            raise BusinessError("no utxo found!")
        if not utxos:
            del self.output[address]

    def _insert_output(self, address: str, key: UtxoKey, value: UtxoData) -> None:
        self.output.setdefault(address, {})[key] = value

    def get_utxos_by_address(
        self, address: str
    ) -> Optional[dict[UtxoKey, UtxoData]]:
        """Return the unspent outputs of *address* in key order, or None."""
        utxos = self.output.get(address)
        if utxos is None:
            return None
        return dict(sorted(utxos.items()))

    def _get_output_by_input(
        self, unit: str, output_index: int, message_index: int
    ) -> tuple[str, int, Optional[int]]:
        output = get_output_by_unit(self._store, unit, output_index, message_index)
        utxos = self.output.get(output.address)
        if utxos is None:
            raise BusinessError(f"not found address in output: {output.address!r}")
        data = utxos.get(
            UtxoKey(
                amount=output.amount,
                unit=unit,
                message_index=message_index,
                output_index=output_index,
            )
        )
        if data is None:
            raise BusinessError(f"not found utxo about output: unit-{unit}")
        return output.address, output.amount, data.mci

    # -- validation ---------------------------------------------------------

    def _verify_transfer_of_input(
        self, item: Input, author_addresses: list[str], input_keys: set[str]
    ) -> int:
        if (
            item.address is not None
            or item.amount is not None
            or item.from_main_chain_index is not None
            or item.serial_number is not None
            or item.to_main_chain_index is not None
        ):
            raise BusinessError("unknown fields in payment input")
        if item.unit is None:
            raise BusinessError("no unit in payment input")
        if len(item.unit) != HASH_LENGTH:
            raise BusinessError("wrong unit length in payment input")
        if item.message_index is None:
            raise BusinessError("no message_index in payment input")
        if item.output_index is None:
            raise BusinessError("no output_index in payment input")

        input_key = f"base-{item.unit}-{item.message_index}-{item.output_index}"
        if input_key in input_keys:
            raise BusinessError(f"input {input_key!r} already used")
        input_keys.add(input_key)

        address, amount, _ = self._get_output_by_input(
            item.unit, item.output_index, item.message_index
        )
        joint = self._store.get_joint(item.unit)
        if joint.sequence is not JointSequence.GOOD:
            raise BusinessError(f"input unit {item.unit} is not serial")
        if not joint.is_stable:
            raise BusinessError(f"input unit {item.unit} is not stable")
        if address not in author_addresses:
            raise BusinessError("output owner is not among authors")
        return amount

    @staticmethod
    def _verify_issue_of_input(
        item: Input,
        index: int,
        author_addresses: list[str],
        unit: Unit,
        input_keys: set[str],
    ) -> int:
        if index != 0:
            raise BusinessError("issue must come first")
        if not unit.is_genesis_unit():
            raise BusinessError("only genesis can issue base asset")
        if (
            item.unit is not None
            or item.message_index is not None
            or item.output_index is not None
            or item.from_main_chain_index is not None
            or item.to_main_chain_index is not None
        ):
            raise BusinessError("verify_issue_of_input: unknown fields in payment input")
        if item.amount is None or item.amount <= 0:
            raise BusinessError("amount must be positive")
        if item.serial_number != 1:
            raise BusinessError("only one issue per message allowed")

        if len(author_addresses) == 1:
            if item.address is not None:
                raise BusinessError(
                    "when single-authored, must not put address in issue input"
                )
            address = author_addresses[0]
        else:
            if item.address is None:
                raise BusinessError("when multi-authored, must put address in issue input")
            if item.address not in author_addresses:
                raise BusinessError(f"issue input address {item.address} is not an author")
            address = item.address

        if item.amount != TOTAL_WHITEBYTES:
            raise BusinessError("issue must be equal to cap")

        input_key = f"base-{address}-{item.serial_number}"
        if input_key in input_keys:
            raise BusinessError(f"input {input_key} already used")
        input_keys.add(input_key)
        return item.amount

    @staticmethod
    def _verify_output(outputs: list[Output]) -> int:
        total = 0
        prev_address = ""
        prev_amount = 0
        for output in outputs:
            if output.amount <= 0:
                raise BusinessError(
                    f"amount must be positive integer, found {output.amount!r}"
                )
            if not _address_is_valid(output.address):
                raise BusinessError(f"output address {output.address} invalid")
            if prev_address > output.address:
                raise BusinessError("output addresses not sorted")
            if prev_address == output.address and prev_amount > output.amount:
                raise BusinessError("output amounts for same address not sorted")
            prev_address = output.address
            prev_amount = output.amount
            total += output.amount
        return total

    def _verify_input(self, inputs: list[Input], author_addresses: list[str], unit: Unit) -> int:
        input_keys: set[str] = set()
        total = 0
        for index, item in enumerate(inputs):
            kind = item.kind or _TRANSFER
            if kind == _TRANSFER:
                total += self._verify_transfer_of_input(item, author_addresses, input_keys)
            elif kind == _ISSUE:
                total += self._verify_issue_of_input(
                    item, index, author_addresses, unit, input_keys
                )
            else:
                raise BusinessError(f"unsupported input type {kind}")
        return total

    def _validate_payment_inputs_and_outputs(self, payment: Payment, unit: Unit) -> None:
        author_addresses = [author.address for author in unit.authors]
        total_output = self._verify_output(payment.outputs)
        total_input = self._verify_input(payment.inputs, author_addresses, unit)
        headers = unit.headers_commission or 0
        payload = unit.payload_commission or 0
        if total_input != total_output + headers + payload:
            raise BusinessError(
                "inputs and outputs do not balance: "
                f"{total_input} != {total_output} + {headers} + {payload}"
            )

    # -- business interface -------------------------------------------------

    @staticmethod
    def validate_message_basic(message: Message) -> Payment:
        return validate_payment_format(message)

    def check_business(self, joint: Joint, message_idx: int) -> None:
        """Check that every transferred output comes before the last ball."""
        last_ball_unit = joint.unit.last_ball_unit
        if last_ball_unit is None:
            return
        last_ball = self._store.get_joint(last_ball_unit)
        payload = joint.unit.messages[message_idx].payload
        if payload is None:
            raise BusinessError("message has no payload")
        if not isinstance(payload, Payment):
            return
        for item in payload.inputs:
            if (item.kind or _TRANSFER) != _TRANSFER:
                continue
            if item.unit is None:
                raise BusinessError("no unit in payment input")
            src_joint = self._store.get_joint(item.unit)
            if not self._store.includes(src_joint, last_ball):
                raise BusinessError("src output must be before last ball")

    def validate_message(self, joint: Joint, message_idx: int) -> None:
        payload = joint.unit.messages[message_idx].payload
        if not isinstance(payload, Payment):
            raise BusinessError("validate_message end\npayload is not a payment")
        self._validate_payment_inputs_and_outputs(payload, joint.unit)

    def apply_message(self, joint: Joint, message_idx: int) -> None:
        self.apply_payment(
            joint.unit.messages[message_idx],
            message_idx,
            joint.unit.unit,
            UtxoData(mci=joint.mci, sub_mci=joint.sub_mci),
        )

    def revert_message(self, joint: Joint, message_idx: int) -> None:
        self.revert_output(
            joint.unit.messages[message_idx],
            message_idx,
            joint.unit.unit,
            UtxoData(mci=joint.mci, sub_mci=joint.sub_mci),
        )