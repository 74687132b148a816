import time

import pytest

from nrsc.business.data_feed import (
    MAX_DATA_FEED_NAME_LENGTH,
    MAX_DATA_FEED_VALUE_LENGTH,
    TimerCache,
    validate_datafeed,
)
from nrsc.spec import BusinessError, Joint, Message, Payment, Unit


def _feed(payload):
    return Message(app="data_feed", payload=payload)


def test_valid_feed_is_returned():
    feed = {"price": "12", "height": 7}
    assert validate_datafeed(_feed(feed)) == feed
    assert TimerCache.validate_message_basic(_feed(feed)) == feed


def test_limits_are_inclusive():
    name = "n" * MAX_DATA_FEED_NAME_LENGTH
    value = "v" * MAX_DATA_FEED_VALUE_LENGTH
    assert validate_datafeed(_feed({name: value})) == {name: value}


@pytest.mark.parametrize(
    "payload, pattern",
    [
        ({}, "empty object"),
        ({"n" * (MAX_DATA_FEED_NAME_LENGTH + 1): "x"}, "too long"),
        ({"k": "v" * (MAX_DATA_FEED_VALUE_LENGTH + 1)}, "too long"),
        ({"k": 1.5}, "fractional"),
        ({"k": True}, "must be string or number"),
        ({"k": ["x"]}, "must be string or number"),
        (["k"], "not object"),
        ("text", "not data_feed"),
        (None, "not data_feed"),
        (Payment(), "not data_feed"),
    ],
)
def test_invalid_feeds(payload, pattern):
    with pytest.raises(BusinessError, match=pattern):
        validate_datafeed(_feed(payload))


def test_apply_records_time():
    cache = TimerCache()
    before = int(time.time() * 1000)
    cache.apply_message(Joint(unit=Unit(unit="u")), 0)
    assert cache.cur_time >= before


def test_revert_is_rejected():
    with pytest.raises(BusinessError):
        TimerCache().revert_message(Joint(unit=Unit(unit="u")), 0)