import pytest

from nrsc.business.global_state import (
    GlobalState,
    validate_business_basic,
    validate_headers_commission_recipients,
    validate_message_basic,
    validate_message_format,
    validate_message_payload,
)
from nrsc.object_hash import get_base64_hash, get_chash
from nrsc.spec import (
    Author,
    BusinessError,
    HeadersCommissionRecipient,
    Input,
    Joint,
    JointStore,
    Message,
    Output,
    Payment,
    Unit,
)

VALID_ADDRESS = "RMCBQMSNGWCSCO4PIV2CVOM6PU7QIO22"
INVALID_ADDRESS = "NFAR4AK2RSRTAWZ3ILRFZOMN7M7QJTJ2"


def _text_message(text="hello"):
    return Message(app="text", payload=text, payload_hash=get_base64_hash(text))


def _payment_joint(unit_hash, authors, outputs, balance=0):
    payment = Payment(inputs=[Input(unit="x", message_index=0, output_index=0)],
                      outputs=[Output(address=a, amount=n) for a, n in outputs])
    unit = Unit(
        unit=unit_hash,
        authors=[Author(address=a) for a in authors],
        messages=[Message(app="payment", payload=payment)],
        parent_units=["parent"],
    )
    return Joint(unit=unit, balance=balance)


# -- format validation ------------------------------------------------------


def test_validate_message_basic_text_returns_payload():
    assert validate_message_basic(_text_message("hi")) == "hi"


def test_validate_message_basic_unknown_app():
    with pytest.raises(BusinessError, match="unsupported business"):
        validate_message_basic(Message(app="poll", payload="x"))


def test_validate_message_basic_data_feed():
    message = Message(app="data_feed", payload={"price": 10})
    assert validate_message_basic(message) == {"price": 10}


def test_validate_message_format_bad_location():
    with pytest.raises(BusinessError, match="wrong payload location"):
        validate_message_format(Message(app="text", payload_location="remote"))


def test_validate_message_format_uri_fields():
    message = Message(app="text", payload_uri="u", payload_uri_hash="h")
    with pytest.raises(BusinessError, match="payload_uri"):
        validate_message_format(message)


def test_validate_message_payload_wrong_size():
    with pytest.raises(BusinessError, match="wrong payload hash size"):
        validate_message_payload(Message(app="text", payload="a", payload_hash="short"))


def test_validate_message_payload_missing():
    message = Message(app="text", payload=None, payload_hash=get_base64_hash("a"))
    with pytest.raises(BusinessError, match="no inline payload"):
        validate_message_payload(message)


def test_validate_message_payload_mismatch():
    message = Message(app="text", payload="a", payload_hash=get_base64_hash("b"))
    with pytest.raises(BusinessError, match="wrong payload hash"):
        validate_message_payload(message)


def test_validate_business_basic_rejects_bad_message():
    unit = Unit(unit="u", authors=[Author(address="A")],
                messages=[_text_message(), Message(app="text", payload_location="x")])
    with pytest.raises(BusinessError, match="wrong payload location"):
        validate_business_basic(unit)


def test_validate_business_basic_rejects_text_as_payment():
    message = Message(app="payment", payload="hi", payload_hash=get_base64_hash("hi"))
    unit = Unit(unit="u", authors=[Author(address="A")], messages=[message])
    with pytest.raises(BusinessError, match="not payment"):
        validate_business_basic(unit)


# -- commission recipients ---------------------------------------------------


def _sorted_addresses():
    return sorted([get_chash("first"), get_chash("second")])


def test_recipients_required_for_multiple_authors():
    unit = Unit(authors=[Author(address="A"), Author(address="B")])
    with pytest.raises(BusinessError, match="must specify"):
        validate_headers_commission_recipients(unit)


def test_recipients_unsorted():
    low, high = _sorted_addresses()
    unit = Unit(earned_headers_commission_recipients=[
        HeadersCommissionRecipient(high, 50), HeadersCommissionRecipient(low, 50)])
    with pytest.raises(BusinessError, match="sorted"):
        validate_headers_commission_recipients(unit)


def test_recipients_invalid_checksum():
    unit = Unit(earned_headers_commission_recipients=[
        HeadersCommissionRecipient(INVALID_ADDRESS, 100)])
    with pytest.raises(BusinessError, match="checksum"):
        validate_headers_commission_recipients(unit)


def test_recipients_share_not_100():
    low, high = _sorted_addresses()
    unit = Unit(earned_headers_commission_recipients=[
        HeadersCommissionRecipient(low, 50), HeadersCommissionRecipient(high, 40)])
    with pytest.raises(BusinessError, match="not 100"):
        validate_headers_commission_recipients(unit)


def test_recipients_duplicate_address_rejected():
    unit = Unit(earned_headers_commission_recipients=[
        HeadersCommissionRecipient(VALID_ADDRESS, 50),
        HeadersCommissionRecipient(VALID_ADDRESS, 50)])
    with pytest.raises(BusinessError, match="sorted"):
        validate_headers_commission_recipients(unit)


# -- global state -----------------------------------------------------------


def test_update_global_state_tracks_self_and_related():
    store = JointStore()
    state = GlobalState(store)
    joint = store.add_joint(_payment_joint("U1", ["A"], [("A", 70), ("B", 30)]))
    state.update_global_state(joint)
    assert state.get_last_stable_self_joint("A") == "U1"
    assert state.get_related_joints("B") == ["U1"]
    assert state.get_related_joints("A") == []
    assert state.get_last_stable_self_joint("B") is None


def test_own_joint_clears_related():
    store = JointStore()
    state = GlobalState(store)
    state.update_global_state(store.add_joint(_payment_joint("U1", ["A"], [("B", 30)])))
    state.update_global_state(store.add_joint(_payment_joint("U2", ["B"], [("B", 10)])))
    assert state.get_related_joints("B") == []
    assert state.get_last_stable_self_joint("B") == "U2"


def test_multi_author_joint_has_no_owner():
    store = JointStore()
    state = GlobalState(store)
    joint = store.add_joint(_payment_joint("G", ["A", "B"], [("A", 5), ("C", 5)]))
    state.update_global_state(joint)
    assert state.get_last_stable_self_joint("A") is None
    assert state.get_related_joints("A") == ["G"]
    assert state.get_related_joints("C") == ["G"]


def test_related_joint_not_duplicated():
    store = JointStore()
    state = GlobalState(store)
    joint = store.add_joint(_payment_joint("U1", ["A"], [("B", 1), ("B", 2)]))
    state.update_global_state(joint)
    assert state.get_related_joints("B") == ["U1"]


def test_stable_balance_sums_own_and_related():
    store = JointStore()
    state = GlobalState(store)
    state.update_global_state(store.add_joint(_payment_joint("U1", ["B"], [("B", 1)], balance=500)))
    state.update_global_state(store.add_joint(_payment_joint("U2", ["A"], [("B", 30), ("B", 20)])))
    state.update_global_state(store.add_joint(_payment_joint("U3", ["C"], [("B", 7)])))
    assert state.get_stable_balance("B") == 500 + 30 + 20 + 7
    assert state.get_stable_balance("nobody") == 0


def test_stable_balance_missing_joint():
    store = JointStore()
    state = GlobalState(store)
    state.update_global_state(_payment_joint("U1", ["A"], [("B", 1)]))
    with pytest.raises(BusinessError):
        state.get_stable_balance("A")


def test_get_related_joints_returns_copy():
    store = JointStore()
    state = GlobalState(store)
    state.update_global_state(store.add_joint(_payment_joint("U1", ["A"], [("B", 1)])))
    state.get_related_joints("B").append("other")
    assert state.get_related_joints("B") == ["U1"]


def test_unstable_self_joint_lifecycle():
    state = GlobalState(JointStore())
    assert state.get_last_unstable_self_joint("A") is None
    state.update_last_unstable_self_joint("A", "U1")
    state.update_last_unstable_self_joint("A", "U2")
    assert state.get_last_unstable_self_joint("A") == "U2"
    state.remove_last_unstable_self_joint("A", "U1")
    assert state.get_last_unstable_self_joint("A") == "U2"
    state.remove_last_unstable_self_joint("A", "U2")
    assert state.get_last_unstable_self_joint("A") is None
    state.remove_last_unstable_self_joint("A", "U2")
    assert state.get_last_unstable_self_joint("A") is None