"""Unit tests for the storable serialization contract."""

import enum
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Set

import pytest

from stowed.serializers import (
    BOOL,
    DATA,
    DATE,
    FLOAT,
    FLOAT32,
    INT,
    STRING,
    UINT,
    URI,
    URL,
    DictOf,
    EnumOf,
    ListOf,
    SetOf,
    Storable,
    StorableType,
    UnsupportedTypeError,
    register_serializer,
    serializer_for,
    serializer_for_value,
)


class Priority(enum.Enum):
    low = 0
    medium = 1
    high = 2


class Theme(enum.Enum):
    light = "light"
    dark = "dark"


class Speed(enum.IntEnum):
    slow = 1
    fast = 2


class Point:
    """Type that knows how to store itself."""

    def __init__(self, x: int, y: int):
        self.x = x
        self.y = y

    def __eq__(self, other):
        return isinstance(other, Point) and (self.x, self.y) == (other.x, other.y)

    def to_primitive(self):
        return [self.x, self.y]

    @classmethod
    def from_primitive(cls, primitive):
        if (
            not isinstance(primitive, list)
            or len(primitive) != 2
            or not all(type(v) is int for v in primitive)
        ):
            return None
        return cls(*primitive)


# ============================================================================
# Base serializers
# ============================================================================


@pytest.mark.unit
@pytest.mark.parametrize(
    "serializer, value",
    [
        (BOOL, True),
        (BOOL, False),
        (INT, -42),
        (INT, 2**62),
        (UINT, 2**64 - 1),
        (FLOAT, 3.25),
        (FLOAT32, -2.5),
        (STRING, "héllo"),
        (STRING, ""),
        (URI, URL("https://example.com/path?q=1")),
        (DATE, datetime(2024, 5, 17, 8, 30, 15)),
        (DATE, datetime(2024, 5, 17, 8, 30, tzinfo=timezone.utc)),
        (DATA, b"\x00\xffdata"),
    ],
)
def test_base_serializers_round_trip(serializer, value):
    """Base values survive to_primitive followed by from_primitive"""
    assert serializer.from_primitive(serializer.to_primitive(value)) == value


@pytest.mark.unit
@pytest.mark.edge_case
def test_integer_serializers_reject_booleans():
    """bool primitives are never accepted where a number is expected"""
    assert INT.from_primitive(True) is None
    assert UINT.from_primitive(False) is None
    assert FLOAT.from_primitive(True) is None
    assert BOOL.from_primitive(1) is None


@pytest.mark.unit
@pytest.mark.edge_case
def test_wrong_primitive_types_decode_to_none():
    assert INT.from_primitive("1") is None
    assert STRING.from_primitive(1) is None
    assert DATA.from_primitive("bytes") is None
    assert DATE.from_primitive("2024-01-01") is None
    assert URI.from_primitive(b"https://example.com") is None


@pytest.mark.unit
@pytest.mark.edge_case
def test_unsigned_int_range_is_enforced():
    assert UINT.from_primitive(-1) is None
    assert UINT.from_primitive(2**64) is None
    assert UINT.from_primitive(0) == 0


@pytest.mark.unit
def test_float_widens_integers():
    result = FLOAT.from_primitive(2)
    assert result == 2.0
    assert isinstance(result, float)


@pytest.mark.unit
def test_float32_rounds_to_single_precision():
    """Single-precision decode keeps the binary32 nearest value"""
    assert FLOAT32.from_primitive(0.1) != 0.1
    assert FLOAT32.from_primitive(0.1) == pytest.approx(0.1, rel=1e-6)
    assert FLOAT32.from_primitive(1e300) is None


@pytest.mark.unit
def test_float32_encodes_the_single_precision_value():
    stored = FLOAT32.to_primitive(0.1)

    assert stored == FLOAT32.from_primitive(0.1)
    assert FLOAT32.from_primitive(stored) == stored
    assert FLOAT32.to_primitive(1e300) == 1e300


@pytest.mark.unit
def test_url_decodes_to_url_type():
    url = URI.from_primitive("https://example.com/a")
    assert isinstance(url, URL)
    assert url.scheme == "https"
    assert URI.to_primitive(url) == "https://example.com/a"
    assert type(URI.to_primitive(url)) is str


@pytest.mark.unit
def test_data_accepts_bytearray():
    result = DATA.from_primitive(bytearray(b"abc"))
    assert result == b"abc"
    assert type(result) is bytes


# ============================================================================
# Composite serializers
# ============================================================================


@pytest.mark.unit
@pytest.mark.parametrize(
    "serializer, value",
    [
        (ListOf(INT), []),
        (ListOf(STRING), ["a", "b", "a"]),
        (ListOf(ListOf(INT)), [[1, 2], [], [3]]),
        (SetOf(STRING), set()),
        (SetOf(INT), {3, 1, 2}),
        (SetOf(INT, frozen=True), frozenset({1, 2})),
        (DictOf(INT), {}),
        (DictOf(ListOf(BOOL)), {"a": [True], "b": []}),
        (DictOf(DictOf(STRING)), {"outer": {"inner": "x"}}),
        (ListOf(DictOf(EnumOf(Theme))), [{"main": Theme.dark}]),
    ],
)
def test_composite_serializers_round_trip(serializer, value):
    """Empty, flat and nested containers survive a round trip"""
    assert serializer.from_primitive(serializer.to_primitive(value)) == value


@pytest.mark.unit
def test_list_with_one_bad_element_decodes_to_none():
    """A single malformed element fails the whole list, not just that element"""
    assert ListOf(INT).from_primitive([1, 2, "three"]) is None
    assert ListOf(ListOf(INT)).from_primitive([[1], [2, None]]) is None


@pytest.mark.unit
def test_list_rejects_non_list_primitives():
    assert ListOf(INT).from_primitive({"a": 1}) is None
    assert ListOf(STRING).from_primitive("abc") is None


@pytest.mark.unit
def test_set_collapses_duplicates_on_decode():
    assert SetOf(STRING).from_primitive(["a", "a", "b"]) == {"a", "b"}


@pytest.mark.unit
def test_set_with_one_bad_element_decodes_to_none():
    assert SetOf(INT).from_primitive([1, "2"]) is None


@pytest.mark.unit
def test_set_encodes_in_sorted_order():
    assert SetOf(INT).to_primitive({3, 1, 2}) == [1, 2, 3]


@pytest.mark.unit
def test_frozen_set_decodes_to_frozenset():
    result = SetOf(INT, frozen=True).from_primitive([1, 1])
    assert result == frozenset({1})
    assert isinstance(result, frozenset)


@pytest.mark.unit
def test_mapping_with_one_bad_value_decodes_to_none():
    """No partial maps: one bad value fails the mapping"""
    assert DictOf(INT).from_primitive({"a": 1, "b": "x"}) is None


@pytest.mark.unit
@pytest.mark.edge_case
def test_mapping_rejects_non_string_keys():
    assert DictOf(INT).from_primitive({1: 1}) is None


# ============================================================================
# Enums
# ============================================================================


@pytest.mark.unit
@pytest.mark.parametrize("member", list(Priority))
def test_every_enum_case_round_trips(member):
    serializer = EnumOf(Priority)
    assert serializer.from_primitive(serializer.to_primitive(member)) is member


@pytest.mark.unit
def test_enum_stores_raw_value():
    assert EnumOf(Priority).to_primitive(Priority.high) == 2
    assert EnumOf(Theme).to_primitive(Theme.dark) == "dark"


@pytest.mark.unit
def test_unknown_enum_raw_value_decodes_to_none():
    assert EnumOf(Priority).from_primitive(5) is None
    assert EnumOf(Priority).from_primitive("low") is None
    assert EnumOf(Theme).from_primitive("sepia") is None


@pytest.mark.unit
def test_list_of_enum_example():
    """[0, 2, 1] decodes to members; [0, 5] decodes to nothing"""
    serializer = ListOf(EnumOf(Priority))

    assert serializer.from_primitive([0, 2, 1]) == [
        Priority.low,
        Priority.high,
        Priority.medium,
    ]
    assert serializer.from_primitive([0, 5]) is None


@pytest.mark.unit
def test_int_enum_is_stored_as_plain_int():
    serializer = serializer_for(Speed)
    assert serializer.to_primitive(Speed.fast) == 2
    assert serializer.from_primitive(2) is Speed.fast
    assert serializer.from_primitive(True) is None


@pytest.mark.unit
@pytest.mark.edge_case
def test_enum_with_mixed_raw_types_is_unsupported():
    class Mixed(enum.Enum):
        a = 1
        b = "b"

    with pytest.raises(UnsupportedTypeError):
        EnumOf(Mixed)


# ============================================================================
# Storable types
# ============================================================================


@pytest.mark.unit
def test_storable_class_is_adapted():
    serializer = serializer_for(Point)
    assert isinstance(serializer, StorableType)
    assert isinstance(Point(1, 2), Storable)

    assert serializer.to_primitive(Point(1, 2)) == [1, 2]
    assert serializer.from_primitive([3, 4]) == Point(3, 4)
    assert serializer.from_primitive([3]) is None


@pytest.mark.unit
def test_storable_class_composes_with_containers():
    serializer = serializer_for(Dict[str, Point])
    value = {"origin": Point(0, 0)}
    assert serializer.from_primitive(serializer.to_primitive(value)) == value
    assert serializer.from_primitive({"origin": [0, "0"]}) is None


# ============================================================================
# Resolution
# ============================================================================


@pytest.mark.unit
def test_serializer_for_plain_types():
    assert serializer_for(bool) is BOOL
    assert serializer_for(int) is INT
    assert serializer_for(float) is FLOAT
    assert serializer_for(str) is STRING
    assert serializer_for(URL) is URI
    assert serializer_for(datetime) is DATE
    assert serializer_for(bytes) is DATA


@pytest.mark.unit
def test_serializer_for_typing_hints():
    assert serializer_for(List[Priority]).from_primitive([2]) == [Priority.high]
    assert serializer_for(Set[str]).from_primitive(["a", "a"]) == {"a"}
    assert serializer_for(FrozenSet[int]).from_primitive([1]) == frozenset({1})
    assert serializer_for(Dict[str, List[int]]).from_primitive({"a": [1]}) == {
        "a": [1]
    }
    assert serializer_for(list[int]).from_primitive([1, 2]) == [1, 2]


@pytest.mark.unit
def test_serializer_for_passes_serializers_through():
    serializer = ListOf(UINT)
    assert serializer_for(serializer) is serializer


@pytest.mark.unit
@pytest.mark.edge_case
@pytest.mark.parametrize(
    "hint", [Optional[int], Dict[int, str], list, dict, object, complex]
)
def test_serializer_for_rejects_unsupported_hints(hint):
    with pytest.raises(UnsupportedTypeError):
        serializer_for(hint)


@pytest.mark.unit
def test_serializer_for_value_infers_from_contents():
    assert serializer_for_value(True) is BOOL
    assert serializer_for_value(7) is INT
    assert serializer_for_value(URL("https://a.b")) is URI
    assert serializer_for_value(Theme.dark).from_primitive("light") is Theme.light

    nested = serializer_for_value({"a": [1, 2]})
    assert nested.from_primitive({"b": [3]}) == {"b": [3]}
    assert nested.from_primitive({"b": ["3"]}) is None

    assert isinstance(serializer_for_value({1, 2}), SetOf)
    assert serializer_for_value(frozenset({"x"})).frozen is True


@pytest.mark.unit
@pytest.mark.edge_case
@pytest.mark.parametrize("value", [[], {}, set(), None, object(), {1: "a"}])
def test_serializer_for_value_rejects_uninferrable_values(value):
    with pytest.raises(UnsupportedTypeError):
        serializer_for_value(value)


@pytest.mark.unit
def test_register_serializer_for_custom_type():
    class Celsius(float):
        pass

    class CelsiusSerializer(FLOAT.__class__):
        def from_primitive(self, primitive):
            value = super().from_primitive(primitive)
            return None if value is None else Celsius(value)

    custom = CelsiusSerializer()
    register_serializer(Celsius, custom)

    assert serializer_for(Celsius) is custom
    assert isinstance(serializer_for_value(Celsius(21.5)).from_primitive(3.0), Celsius)
