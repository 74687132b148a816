# nrsc

Core data handling for a DAG-based payment ledger. It provides canonical
object serialisation and hashing, checksummed 160-bit addresses, and the
business rules that validate and apply payment, text and data-feed messages.

## Installation

```
pip install .
```

To run the test suite, install the test extra:

```
pip install ".[test]"
pytest
```

## Canonical serialisation

`nrsc.obj_ser.to_string(value)` turns plain Python values into the canonical
NUL-separated form that every hash is computed over. The accepted values are
dicts with string keys, lists, tuples, strings, integers, floats, booleans,
`None`, dataclasses and objects with a `to_obj()` method. Keys are sorted, and
members whose value is `None` are left out.

`nrsc.obj_ser.obj_size(value)` returns the payload size of a value. Each
string counts its characters, each number counts 8 and each boolean counts 1.

Bytes and other unsupported values raise `nrsc.obj_ser.SerializationError`, a
subclass of `ValueError`. So do maps with keys that are not strings.

```python
from nrsc.obj_ser import to_string, obj_size

to_string({"unit": "abc", "flag": False})
# 'flag\x00b\x00false\x00unit\x00s\x00abc'
obj_size({"unit": "abc", "flag": False})
# 4
```

## Hashes and addresses

`nrsc.object_hash` provides these functions:

- `get_base64_hash(obj)`: base64 of the SHA-256 of the canonical form.
- `get_chash(obj)`: a 32-character base32 address with an embedded checksum.
  It is built from RIPEMD-160.
- `is_chash_valid(encoded)`: checks the embedded checksum of an address. It
  raises `ValueError` if the text is not valid base32.
- `calc_ball_hash(unit, parent_balls, skiplist_balls, is_nonserial)`: the ball
  hash of a unit. Empty ball lists are left out of the hash, and so is a false
  `is_nonserial`.
- `gen_random_string(length)`: base64 of `length` random bytes.

```python
from nrsc.object_hash import get_chash, is_chash_valid

address = get_chash("A0mQdZvy+bGpIu/yBSNt7eB4mTZUQiM173bIQTOQRz3U")
# 'RMCBQMSNGWCSCO4PIV2CVOM6PU7QIO22'
assert is_chash_valid(address)
```

## Units, joints and the joint store

`nrsc.spec` defines the data model:

- `Unit`, `Author`, `Message` and `HeadersCommissionRecipient`.
- The payment payload classes `Payment`, `Input` and `Output`.
- `Joint`, which is a unit together with its sequence, main chain index,
  stability and balance properties.
- `JointSequence`, which has the members `GOOD`, `TEMP_BAD`, `NONSERIAL_BAD`
  and `FINAL_BAD`.

A message payload is one of three things:

- a `Payment`;
- a `str` for a text;
- a `dict` for a data feed.

`JointStore` keeps joints in memory, indexed by unit hash:

- `add_joint` stores a joint.
- `get_joint` looks one up.
- `includes(earlier, later)` tells whether `earlier` is `later` or one of its
  known ancestors.

Every broken business rule raises `nrsc.spec.BusinessError`.

```python
from nrsc.spec import Author, Joint, JointStore, Message, Unit
from nrsc.business.text import get_text

store = JointStore()
store.add_joint(Joint(Unit(
    unit="u1",
    authors=[Author("ADDRESS")],
    messages=[Message(app="text", payload="hello")],
    timestamp=1,
)))
get_text(store, "u1").text
# 'hello'
```

## Business rules

### Data feeds and text (`nrsc.business.data_feed`, `nrsc.business.text`)

`validate_datafeed` checks a data-feed payload:

- It must be a non-empty object.
- Names and string values are at most 64 bytes.
- Numbers must be integers.

`TimerCache` records the time at which it last applied a feed.

`TextCache.validate_message_basic` requires the payload to be a text.
`get_text(store, unit)` collects the text of a unit, its author addresses, its
payment recipients and its timestamp.

Neither data-feed nor text messages can be reverted; trying to do so raises
`BusinessError`.

### Payments (`nrsc.business.utxo`)

`UtxoCache(store)` tracks the unspent outputs of each address, keyed by
`UtxoKey`. Keys are ordered by amount, unit, message index and output index.

- `apply_payment` spends inputs and records outputs, and `revert_output`
  undoes this.
- `get_utxos_by_address` returns an address's outputs in key order, or `None`.
- `validate_message` checks inputs and outputs:
  - transfers of stable, serial outputs owned by an author;
  - a single issue in the genesis unit, equal to `TOTAL_WHITEBYTES`;
  - outputs that are sorted, positive and at valid addresses;
  - inputs that balance outputs plus commissions.
- `check_business` requires every transferred output to come before the last
  ball.

`validate_payment_format` checks the payment format:

- The payload is inline.
- There is no asset and there are no spend proofs.
- There are at most 128 inputs and at most 128 outputs.

### Per-address state and format checks (`nrsc.business.global_state`)

`GlobalState(store)` keeps, for each address:

- its last stable own joint;
- the stable joints that paid it since then;
- its last unstable own joint.

`get_stable_balance` computes an address's balance from these.

`validate_business_basic(unit)` runs every format check on a unit. It checks
the headers commission recipients first: they must be sorted, at valid
addresses and share exactly 100. Then, for each message, it checks:

- the payload location;
- the payload hash;
- the format rules of the message's business, chosen by `app` (`payment`,
  `text` or `data_feed`).

Each check is also available on its own:

- `validate_headers_commission_recipients`
- `validate_message_format`
- `validate_message_payload`
- `validate_message_basic`

### Stable and unstable joints (`nrsc.business.state`)

`BusinessCache(store)` holds the global state, a stable business state and a
temporary business state. Its methods:

- `validate_unstable_joint(joint)` checks that the author's joints are serial
  and validates the joint against the temporary state. If the joint passes,
  it is applied to the temporary state. The method returns the joint's
  `JointSequence`.
- `validate_stable_joint` and `apply_stable_joint` check a joint in global
  order and apply it to the stable state. Applying also sets the joint's
  balance, its previous own unit and its related units.
- `process_stable_joint(joint)` runs the whole step for a joint that has just
  become stable and returns the joint's resulting sequence:
  - if validation fails, temporary changes are reverted and the joint ends as
    `FINAL_BAD`;
  - otherwise the joint is applied and marked `GOOD`.
- `get_inputs_for_amount(paying_address, required_amount, send_all,
  last_stable_unit)` selects stable unspent outputs that come before the last
  ball until they cover the amount. With `send_all`, it selects all of them.
- `stable_utxo_contains` and `is_include_last_stable_self_joint` expose the
  checks used above.

`check_business(store, joint)` runs the check of each message before the
joint is normalised.

## What this package does not do

This package covers data and rules only:

- **No network.** It has no hub or server, no connections to peers and no
  broadcasting of joints.
- **No wallet.** It does not compose or sign payments, and it has no
  command-line tool.
- **No lasting storage.** Joints live only in the in-memory `JointStore`.
  State is not saved to disk and is not rebuilt from a database.
- **No consensus.** Main chain indexes and stability are not computed here.
  Callers set `Joint.mci`, `Joint.sub_mci` and `Joint.is_stable`, and feed
  stable joints to `BusinessCache.process_stable_joint` in order.