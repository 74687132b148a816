from dataclasses import dataclass, field
from typing import List, Optional

import pytest

from nrsc.obj_ser import SerializationError, obj_size, to_string


@dataclass
class _Sample:
    int: int
    flag: bool
    none: Optional[int]
    seq: List[str] = field(default_factory=list)


def _person():
    return {
        "name": "John Doe",
        "age": 43,
        "phones": ["+44 1234567"],
    }


def test_struct():
    sample = _Sample(int=1, flag=False, none=None, seq=["a", "b"])
    expected = (
        "flag\u0000b\u0000false\u0000int\u0000n\u00001\u0000seq"
        "\u0000[\u0000s\u0000a\u0000s\u0000b\u0000]"
    )
    assert to_string(sample) == expected


def test_map():
    mapping = {
        "unit": "rg1RzwKwnfRHjBojGol3gZaC5w7kR++rOR6O61JRsrQ=",
        "aaaa": "some value",
    }
    expected = (
        "aaaa\u0000s\u0000some value\u0000unit\u0000s\u0000"
        "rg1RzwKwnfRHjBojGol3gZaC5w7kR++rOR6O61JRsrQ="
    )
    assert to_string(mapping) == expected


def test_json_value():
    expected = (
        "age\u0000n\u000043\u0000name\u0000s\u0000John Doe\u0000phones"
        "\u0000[\u0000s\u0000+44 1234567\u0000]"
    )
    assert to_string(_person()) == expected


def test_json_size():
    assert obj_size(_person()) == 27


def test_map_order_does_not_matter():
    first = {"b": 1, "a": 2}
    second = {"a": 2, "b": 1}
    assert to_string(first) == to_string(second) == "a\u0000n\u00002\u0000b\u0000n\u00001"


def test_map_skips_none_values():
    assert to_string({"a": None, "b": "x"}) == "b\u0000s\u0000x"


def test_none_in_sequence_kept():
    assert to_string([None, 1]) == "[\u0000null\u0000n\u00001\u0000]"


def test_top_level_none():
    assert to_string(None) == "null"
    assert obj_size(None) == 0


def test_empty_containers():
    assert to_string([]) == "[\u0000]"
    assert to_string({}) == ""


def test_tuple_like_list():
    assert to_string(("a", True)) == to_string(["a", True])
    assert to_string(("a", True)) == "[\u0000s\u0000a\u0000b\u0000true\u0000]"


@pytest.mark.parametrize(
    "value, text",
    [
        (1.5, "1.5"),
        (2.0, "2"),
        (-0.0, "-0"),
        (1e21, "1000000000000000000000"),
        (1e-7, "0.0000001"),
    ],
)
def test_float_formatting(value, text):
    assert to_string(value) == "n\u0000" + text


def test_sizes_of_scalars():
    assert obj_size(True) == 1
    assert obj_size(12345) == 8
    assert obj_size(3.25) == 8
    assert obj_size("héllo") == 5


def test_nested_size():
    assert obj_size({"a": [1, "xy", False], "b": {"c": "z"}}) == 8 + 2 + 1 + 1


def test_bytes_rejected():
    with pytest.raises(SerializationError, match="bytes not supported"):
        to_string({"a": b"raw"})


def test_non_string_key_rejected():
    with pytest.raises(SerializationError, match="only string key"):
        to_string({1: "x"})


def test_unsupported_type_rejected():
    with pytest.raises(SerializationError):
        to_string(object())


def test_to_obj_hook_used():
    class Wrapped:
        def to_obj(self):
            return {"k": "v"}

    assert to_string(Wrapped()) == "k\u0000s\u0000v"
    assert obj_size(Wrapped()) == 1


def test_struct_size_ignores_none_fields():
    sample = _Sample(int=7, flag=True, none=None, seq=["abc"])
    assert obj_size(sample) == 8 + 1 + 3