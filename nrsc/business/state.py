"""Business state of stable and unstable joints and the stable joint pipeline."""

from __future__ import annotations

import logging
import threading
from typing import Any, Union

from nrsc.business.data_feed import TimerCache
from nrsc.business.global_state import GlobalState
from nrsc.business.text import TextCache
from nrsc.business.utxo import UtxoCache, UtxoData, UtxoKey, get_output_by_unit
from nrsc.spec import BusinessError, Input, Joint, JointSequence, JointStore, Payment

__all__ = ["BusinessState", "BusinessCache", "check_business"]

logger = logging.getLogger(__name__)

_Business = Union[UtxoCache, TextCache, TimerCache]


def check_business(store: JointStore, joint: Joint) -> None:
    """Run the pre-normalization check of every message of *joint*."""
    utxo = UtxoCache(store)
    for index, message in enumerate(joint.unit.messages):
        if message.app == "payment":
            utxo.check_business(joint, index)
        elif message.app == "text":
            TextCache.check_business(joint, index)
        elif message.app == "data_feed":
            TimerCache.check_business(joint, index)
        else:
            raise BusinessError("unsupported business")


class BusinessState:
    """The state of every sub business: outputs, texts and data feeds."""

    def __init__(self, store: JointStore) -> None:
        self._store = store
        self.utxo = UtxoCache(store)
        self.text = TextCache()
        self.data_feed = TimerCache()

    def _business_for(self, joint: Joint, message_idx: int) -> _Business:
        app = joint.unit.messages[message_idx].app
        businesses: dict[str, _Business] = {
            "payment": self.utxo,
            "text": self.text,
            "data_feed": self.data_feed,
        }
        business = businesses.get(app)
        if business is None:
            raise BusinessError("unsupported business")
        return business

    def _utxos_of(self, address: str) -> dict[UtxoKey, UtxoData]:
        utxos = self.utxo.get_utxos_by_address(address)
        if utxos is None:
            raise BusinessError(f"there is no output for address {address}")
        return utxos

    def utxo_contains(self, joint: Joint, msg_index: int) -> bool:
        """Return True if every output spent by the message is still unspent here."""
        messages = joint.unit.messages
        if len(messages) <= msg_index:
            raise BusinessError(
                f"unknown message, max index : {len(messages) - 1}, "
                f"error index: {msg_index}"
            )
        message = messages[msg_index]
        outputs = self._utxos_of(joint.unit.authors[0].address)

        payment = message.payload
        if not isinstance(payment, Payment):
            raise BusinessError("payload is not a payment")
        for item in payment.inputs:
            if item.unit is None or item.output_index is None or item.message_index is None:
                raise BusinessError("payment input has no unit, output_index or message_index")
            output = get_output_by_unit(
                self._store, item.unit, item.output_index, item.message_index
            )
            key = UtxoKey(
                amount=output.amount,
                unit=item.unit,
                message_index=item.message_index,
                output_index=item.output_index,
            )
            if key not in outputs:
                return False
        return True

    def validate_message(self, joint: Joint, message_idx: int) -> None:
        self._business_for(joint, message_idx).validate_message(joint, message_idx)

    def apply_message(self, joint: Joint, message_idx: int) -> None:
        self._business_for(joint, message_idx).apply_message(joint, message_idx)

    def revert_message(self, joint: Joint, message_idx: int) -> None:
        """Undo a temporary change; only the temporary state uses this."""
        self._business_for(joint, message_idx).revert_message(joint, message_idx)


class BusinessCache:
    """Global state plus the stable and the temporary business state."""

    def __init__(self, store: JointStore) -> None:
        self._store = store
        self.global_state = GlobalState(store)
        self._business_state = BusinessState(store)
        self._temp_business_state = BusinessState(store)
        self._stable_lock = threading.RLock()
        self._temp_lock = threading.RLock()

    def stable_utxo_contains(self, joint: Joint, msg_index: int) -> bool:
        with self._stable_lock:
            return self._business_state.utxo_contains(joint, msg_index)

    def get_inputs_for_amount(
        self,
        paying_address: str,
        required_amount: int,
        send_all: bool,
        last_stable_unit: str,
    ) -> tuple[list[Input], int]:
        """Pick stable unspent outputs before the last ball covering *required_amount*."""
        last_ball_joint = self._store.get_joint(last_stable_unit)
        with self._temp_lock:
            temp_outputs = self._temp_business_state._utxos_of(paying_address)
        with self._stable_lock:
            stable_outputs = self._business_state._utxos_of(paying_address)

        inputs: list[Input] = []
        total_amount = 0
        for key in temp_outputs:
            if key not in stable_outputs:
                continue
            input_joint = self._store.get_joint(key.unit)
            if not self._store.includes(input_joint, last_ball_joint):
                continue
            total_amount += key.amount
            inputs.append(
                Input(
                    unit=key.unit,
                    message_index=key.message_index,
                    output_index=key.output_index,
                )
            )
            if not send_all and total_amount >= required_amount:
                break

        if total_amount < required_amount:
            raise BusinessError(
                f"there is not enough balance, address: {paying_address}"
            )
        return inputs, total_amount

    def is_include_last_stable_self_joint(self, joint: Joint) -> None:
        """Raise unless *joint* comes after the last stable joint of each author."""
        for author in joint.unit.authors:
            unit = self.global_state.get_last_stable_self_joint(author.address)
            if unit is None:
                continue
            author_joint = self._store.get_joint(unit)
            included = joint.unit.unit != unit and self._store.includes(author_joint, joint)
            if not included:
                raise BusinessError(f"joint not include last stable self unit {unit}")

    def _validate_unstable_joint_serial(self, joint: Joint) -> JointSequence:
        address = joint.unit.authors[0].address
        unit = self.global_state.get_last_unstable_self_joint(address)
        if unit is not None:
            last_unstable_joint = self._store.get_joint(unit)
            if not self._store.includes(last_unstable_joint, joint):
                logger.warning(
                    "joint [%s] detect non serial with unit [%s]", joint.unit.unit, unit
                )
                return JointSequence.NONSERIAL_BAD
        self.global_state.update_last_unstable_self_joint(address, joint.unit.unit)
        return JointSequence.GOOD

    def validate_unstable_joint(self, joint: Joint) -> JointSequence:
        """Validate a joint without global order and apply it to the temporary state."""
        state = self._validate_unstable_joint_serial(joint)
        if state is not JointSequence.GOOD:
            return state

        with self._temp_lock:
            for index in range(len(joint.unit.messages)):
                try:
                    self._temp_business_state.validate_message(joint, index)
                except BusinessError as exc:
                    logger.error(
                        "validate_unstable_joint, unit = %s, err = %s", joint.unit.unit, exc
                    )
                    return JointSequence.TEMP_BAD
                self._temp_business_state.apply_message(joint, index)
        return JointSequence.GOOD

    def validate_stable_joint(self, joint: Joint) -> None:
        """Validate a joint in global order against the stable state."""
        logger.info("validate_stable_joint, unit=%s", joint.unit.unit)
        if joint.sequence is JointSequence.FINAL_BAD:
            raise BusinessError(
                f"joint is already set to finalbad, unit={joint.unit.unit}"
            )
        self.is_include_last_stable_self_joint(joint)
        with self._stable_lock:
            for index in range(len(joint.unit.messages)):
                self._business_state.validate_message(joint, index)

    def _update_joint_balance_props(self, joint: Joint) -> None:
        address = joint.unit.authors[0].address
        last_stable_self_unit = self.global_state.get_last_stable_self_joint(address)
        related_units = self.global_state.get_related_joints(address)

        balance = self.global_state.get_stable_balance(address)
        if not joint.unit.is_genesis_unit():
            for message in joint.unit.messages:
                if isinstance(message.payload, Payment):
                    balance -= sum(
                        output.amount
                        for output in message.payload.outputs
                        if output.address != address
                    )
            balance -= joint.unit.headers_commission or 0
            balance -= joint.unit.payload_commission or 0
            if balance < 0:
                raise BusinessError(f"balance of {address} would become negative")

        if last_stable_self_unit is not None:
            joint.stable_prev_self_unit = last_stable_self_unit
        joint.related_units = related_units
        joint.balance = balance

    def apply_stable_joint(self, joint: Joint) -> None:
        """Record the balance properties of *joint* and apply it to the stable state."""
        self._update_joint_balance_props(joint)
        self.global_state.update_global_state(joint)
        with self._stable_lock:
            for index in range(len(joint.unit.messages)):
                self._business_state.apply_message(joint, index)

    def process_stable_joint(self, joint: Joint) -> JointSequence:
        """Validate and apply a joint that became stable; return its new sequence."""
        try:
            self.validate_stable_joint(joint)
        except BusinessError as exc:
            logger.error(
                "validate_joint failed, unit = %s, err = %s", joint.unit.unit, exc
            )
            if joint.sequence is JointSequence.GOOD:
                self._revert_temp(joint)
            joint.sequence = JointSequence.FINAL_BAD
            return joint.sequence

        if joint.sequence in (JointSequence.NONSERIAL_BAD, JointSequence.TEMP_BAD):
            with self._temp_lock:
                for index in range(len(joint.unit.messages)):
                    try:
                        self._temp_business_state.apply_message(joint, index)
                    except BusinessError as exc:
                        logger.warning("apply temp state failed, err = %s", exc)

        try:
            self.apply_stable_joint(joint)
        except BusinessError as exc:
            logger.error(
                "apply_joint failed, unit = %s, err = %s", joint.unit.unit, exc
            )
            joint.sequence = JointSequence.FINAL_BAD

        if joint.sequence is not JointSequence.GOOD:
            joint.sequence = JointSequence.GOOD
        return joint.sequence

    def _revert_temp(self, joint: Joint) -> None:
        with self._temp_lock:
            for index in range(len(joint.unit.messages)):
                try:
                    contained: Any = self.stable_utxo_contains(joint, index)
                except BusinessError:
                    contained = False
                if contained is True:
                    try:
                        self._temp_business_state.revert_message(joint, index)
                    except BusinessError as exc:
                        logger.error("revert temp state failed, err = %s", exc)