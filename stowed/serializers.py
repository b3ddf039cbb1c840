"""
Stowed Serializers - The Storable Contract
==========================================

This module defines how rich Python values are converted to and from the
primitive shapes a defaults store can hold natively (``bool``, ``int``,
``float``, ``str``, ``bytes``, ``datetime``, lists of primitives and
``str``-keyed dicts of primitives).

Every serializer implements two functions:

- ``to_primitive(value)``: total, never fails for a valid value.
- ``from_primitive(primitive)``: partial, returns ``None`` when the primitive
  cannot represent a valid value. It never raises on malformed input.

Because failure is ``None`` rather than an exception, composite serializers
stay simple: decode every element, and if any element is ``None`` the whole
container is ``None``. There are no partial results.

Base Serializers
----------------

``BOOL``, ``INT``, ``UINT``, ``FLOAT``, ``FLOAT32``, ``STRING``, ``URI``
(for ``URL`` values), ``DATE`` and ``DATA``.

Composite Serializers
---------------------

- ``ListOf(inner)``: list of the inner primitive.
- ``SetOf(inner)``: list on the wire, duplicates collapse on decode.
- ``DictOf(inner)``: ``str`` keys, inner primitive values.
- ``EnumOf(enum_cls)``: the member's raw value, decoded back to a member.

Resolution
----------

```python
from typing import List
from stowed.serializers import serializer_for, serializer_for_value

serializer_for(List[Level])           # ListOf(EnumOf(Level))
serializer_for_value({"a": [1, 2]})   # DictOf(ListOf(INT))
```

Types that know how to store themselves can implement ``to_primitive`` and a
``from_primitive`` classmethod; they are picked up automatically.
"""

import enum
import struct
from abc import ABC, abstractmethod
from datetime import datetime
from typing import (
    AbstractSet,
    Any,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    get_args,
    get_origin,
    runtime_checkable,
)
from urllib.parse import SplitResult, urlsplit

T = TypeVar("T")
V = TypeVar("V")
E = TypeVar("E", bound=enum.Enum)

UINT_MAX = 2**64 - 1


class UnsupportedTypeError(TypeError):
    """Raised when no serializer can be resolved for a type or value."""

    pass


class URL(str):
    """A string holding a URL. Stored as a plain string."""

    @property
    def parts(self) -> SplitResult:
        return urlsplit(self)

    @property
    def scheme(self) -> str:
        return self.parts.scheme

    def __repr__(self) -> str:
        return f"URL({str.__repr__(self)})"


@runtime_checkable
class Storable(Protocol):
    """Protocol for types that convert themselves to a storable primitive."""

    def to_primitive(self) -> Any: ...

    @classmethod
    def from_primitive(cls, primitive: Any) -> Optional[Any]: ...


class Serializer(ABC, Generic[T]):
    """
    Bidirectional mapping between a rich type and a store primitive.

    Subclasses must keep the round-trip law:
    ``from_primitive(to_primitive(v)) == v`` for every valid ``v``.
    """

    name: str = "value"

    @abstractmethod
    def to_primitive(self, value: T) -> Any:
        """Convert a value to its primitive representation."""

    @abstractmethod
    def from_primitive(self, primitive: Any) -> Optional[T]:
        """Rebuild a value from a primitive, or return None if it is malformed."""

    def __repr__(self) -> str:
        return self.name


# ============================================================================
# BASE SERIALIZERS
# ============================================================================


class _Identity(Serializer[T]):
    """Identity conversion with a strict type check on decode."""

    def __init__(
        self,
        name: str,
        accepts: Tuple[type, ...],
        excludes: Tuple[type, ...] = (),
    ) -> None:
        self.name = name
        self._accepts = accepts
        self._excludes = excludes

    def _accepted(self, primitive: Any) -> bool:
        if self._excludes and isinstance(primitive, self._excludes):
            return False
        return isinstance(primitive, self._accepts)

    def to_primitive(self, value: T) -> Any:
        return value

    def from_primitive(self, primitive: Any) -> Optional[T]:
        if not self._accepted(primitive):
            return None
        return primitive


class _UnsignedInt(_Identity[int]):
    def __init__(self) -> None:
        super().__init__("uint", (int,), (bool,))

    def from_primitive(self, primitive: Any) -> Optional[int]:
        if not self._accepted(primitive) or not 0 <= primitive <= UINT_MAX:
            return None
        return primitive


class _Double(_Identity[float]):
    # Integers are widened, the way numeric store entries bridge to doubles.
    def __init__(self) -> None:
        super().__init__("float", (float, int), (bool,))

    def from_primitive(self, primitive: Any) -> Optional[float]:
        if not self._accepted(primitive):
            return None
        try:
            return float(primitive)
        except OverflowError:
            return None


class _Single(_Double):
    """
    Single-precision float, held in a Python float.

    Values are rounded to the nearest binary32 value on the way in, so a
    default such as ``0.1`` reads back as ``0.10000000149011612``. A value
    outside the binary32 range is stored unchanged and fails to decode.
    """

    def __init__(self) -> None:
        super().__init__()
        self.name = "float32"

    @staticmethod
    def _round(value: float) -> Optional[float]:
        try:
            return struct.unpack("<f", struct.pack("<f", float(value)))[0]
        except (OverflowError, struct.error):
            return None

    def to_primitive(self, value: float) -> Any:
        rounded = self._round(value)
        return value if rounded is None else rounded

    def from_primitive(self, primitive: Any) -> Optional[float]:
        widened = super().from_primitive(primitive)
        if widened is None:
            return None
        return self._round(widened)


class _URL(_Identity[URL]):
    def __init__(self) -> None:
        super().__init__("url", (str,))

    def to_primitive(self, value: URL) -> Any:
        return str(value)

    def from_primitive(self, primitive: Any) -> Optional[URL]:
        if not self._accepted(primitive):
            return None
        return URL(primitive)


class _Data(_Identity[bytes]):
    def __init__(self) -> None:
        super().__init__("data", (bytes, bytearray))

    def from_primitive(self, primitive: Any) -> Optional[bytes]:
        if not self._accepted(primitive):
            return None
        return bytes(primitive)


BOOL: Serializer[bool] = _Identity("bool", (bool,))
INT: Serializer[int] = _Identity("int", (int,), (bool,))
UINT: Serializer[int] = _UnsignedInt()
FLOAT: Serializer[float] = _Double()
FLOAT32: Serializer[float] = _Single()
STRING: Serializer[str] = _Identity("str", (str,))
URI: Serializer[URL] = _URL()
DATE: Serializer[datetime] = _Identity("date", (datetime,))
DATA: Serializer[bytes] = _Data()


# ============================================================================
# COMPOSITE SERIALIZERS
# ============================================================================


class ListOf(Serializer[List[T]]):
    """Ordered sequence; fails as a whole if any element fails."""

    def __init__(self, inner: Serializer[T]) -> None:
        self.inner = inner
        self.name = f"list[{inner.name}]"

    def to_primitive(self, value: List[T]) -> List[Any]:
        return [self.inner.to_primitive(item) for item in value]

    def from_primitive(self, primitive: Any) -> Optional[List[T]]:
        if not isinstance(primitive, list):
            return None
        items = []
        for raw in primitive:
            item = self.inner.from_primitive(raw)
            if item is None:
                return None
            items.append(item)
        return items


class SetOf(Serializer[AbstractSet[T]]):
    """
    Unordered collection stored as a list.

    Duplicates on the wire collapse on decode. Encoded elements are sorted when
    they are mutually comparable so equal sets produce equal primitives.
    """

    def __init__(self, inner: Serializer[T], frozen: bool = False) -> None:
        self.inner = inner
        self.frozen = frozen
        self.name = f"{'frozenset' if frozen else 'set'}[{inner.name}]"

    def to_primitive(self, value: AbstractSet[T]) -> List[Any]:
        encoded = [self.inner.to_primitive(item) for item in value]
        try:
            return sorted(encoded)
        except TypeError:
            return encoded

    def from_primitive(self, primitive: Any) -> Optional[AbstractSet[T]]:
        if not isinstance(primitive, list):
            return None
        items = set()
        for raw in primitive:
            item = self.inner.from_primitive(raw)
            if item is None:
                return None
            try:
                items.add(item)
            except TypeError:
                return None
        return frozenset(items) if self.frozen else items


class DictOf(Serializer[Dict[str, V]]):
    """String-keyed mapping; no partial maps."""

    def __init__(self, inner: Serializer[V]) -> None:
        self.inner = inner
        self.name = f"dict[str, {inner.name}]"

    def to_primitive(self, value: Mapping[str, V]) -> Dict[str, Any]:
        return {key: self.inner.to_primitive(item) for key, item in value.items()}

    def from_primitive(self, primitive: Any) -> Optional[Dict[str, V]]:
        if not isinstance(primitive, dict):
            return None
        result = {}
        for key, raw in primitive.items():
            if not isinstance(key, str):
                return None
            item = self.inner.from_primitive(raw)
            if item is None:
                return None
            result[key] = item
        return result


class EnumOf(Serializer[E]):
    """
    Enum stored as its member's raw value.

    The raw serializer is inferred from the members' values when not given.
    Decoding fails when the raw value matches no member.
    """

    def __init__(self, enum_cls: Type[E], raw: Optional[Serializer[Any]] = None):
        self.enum_cls = enum_cls
        self.raw = raw if raw is not None else _raw_serializer(enum_cls)
        self.name = enum_cls.__name__

    def to_primitive(self, value: E) -> Any:
        return self.raw.to_primitive(value.value)

    def from_primitive(self, primitive: Any) -> Optional[E]:
        raw_value = self.raw.from_primitive(primitive)
        if raw_value is None:
            return None
        try:
            return self.enum_cls(raw_value)
        except ValueError:
            return None


class StorableType(Serializer[T]):
    """Adapter for classes implementing the ``Storable`` protocol."""

    def __init__(self, cls: Type[T]) -> None:
        self.cls = cls
        self.name = cls.__name__

    def to_primitive(self, value: T) -> Any:
        return value.to_primitive()  # type: ignore[attr-defined]

    def from_primitive(self, primitive: Any) -> Optional[T]:
        return self.cls.from_primitive(primitive)  # type: ignore[attr-defined]


def _raw_serializer(enum_cls: Type[enum.Enum]) -> Serializer[Any]:
    members = list(enum_cls)
    if not members:
        raise UnsupportedTypeError(f"Enum {enum_cls.__name__} declares no members")

    raw_types = {type(member.value) for member in members}
    if len(raw_types) != 1:
        raise UnsupportedTypeError(
            f"Enum {enum_cls.__name__} mixes raw value types: "
            f"{sorted(t.__name__ for t in raw_types)}"
        )
    return serializer_for(raw_types.pop())


# ============================================================================
# RESOLUTION
# ============================================================================

_REGISTRY: Dict[type, Serializer[Any]] = {
    bool: BOOL,
    int: INT,
    float: FLOAT,
    str: STRING,
    URL: URI,
    datetime: DATE,
    bytes: DATA,
    bytearray: DATA,
}


def register_serializer(cls: type, serializer: Serializer[Any]) -> None:
    """Make ``serializer`` the one resolved for ``cls`` and its values."""
    _REGISTRY[cls] = serializer


def _is_storable_class(cls: type) -> bool:
    return callable(getattr(cls, "to_primitive", None)) and callable(
        getattr(cls, "from_primitive", None)
    )


def _lookup(cls: type) -> Optional[Serializer[Any]]:
    if cls in _REGISTRY:
        return _REGISTRY[cls]
    if issubclass(cls, enum.Enum):
        return EnumOf(cls)
    if _is_storable_class(cls):
        return StorableType(cls)
    # subclasses of registered types, e.g. a str subclass
    for base in cls.__mro__[1:]:
        if base in _REGISTRY:
            return _REGISTRY[base]
    return None


def serializer_for(hint: Any) -> Serializer[Any]:
    """
    Resolve a serializer from a type or typing hint.

    Accepts plain types (``int``, ``URL``, an ``Enum`` subclass, a
    ``Storable`` class), parameterized containers (``List[X]``,
    ``Set[X]``, ``FrozenSet[X]``, ``Dict[str, X]`` and their builtin
    spellings) and ready-made ``Serializer`` instances.

    Raises:
        UnsupportedTypeError: if the hint has no storable representation.
    """
    if isinstance(hint, Serializer):
        return hint

    origin = get_origin(hint)
    if origin is not None:
        args = get_args(hint)
        if origin is list and len(args) == 1:
            return ListOf(serializer_for(args[0]))
        if origin is set and len(args) == 1:
            return SetOf(serializer_for(args[0]))
        if origin is frozenset and len(args) == 1:
            return SetOf(serializer_for(args[0]), frozen=True)
        if origin is dict and len(args) == 2:
            if args[0] is not str:
                raise UnsupportedTypeError(
                    f"Mappings must have str keys to be stored, got {hint!r}"
                )
            return DictOf(serializer_for(args[1]))
        raise UnsupportedTypeError(f"No serializer for {hint!r}")

    if isinstance(hint, type):
        if hint in (list, set, frozenset, dict):
            raise UnsupportedTypeError(
                f"Container type {hint.__name__} needs an element type, "
                f"e.g. List[int]"
            )
        serializer = _lookup(hint)
        if serializer is not None:
            return serializer

    raise UnsupportedTypeError(f"No serializer for {hint!r}")


def serializer_for_value(value: Any) -> Serializer[Any]:
    """
    Infer a serializer from an example value, usually a default.

    Container element types are taken from the contents, so empty containers
    cannot be inferred and need an explicit serializer.

    Raises:
        UnsupportedTypeError: if no serializer can be inferred.
    """
    if value is None:
        raise UnsupportedTypeError("None cannot be stored; use a non-optional default")

    if isinstance(value, (list, set, frozenset, dict)):
        if not value:
            raise UnsupportedTypeError(
                f"Cannot infer the element type of an empty {type(value).__name__}; "
                f"pass serializer= explicitly"
            )
        if isinstance(value, dict):
            if not all(isinstance(key, str) for key in value):
                raise UnsupportedTypeError("Mappings must have str keys to be stored")
            return DictOf(serializer_for_value(next(iter(value.values()))))
        inner = serializer_for_value(next(iter(value)))
        if isinstance(value, list):
            return ListOf(inner)
        return SetOf(inner, frozen=isinstance(value, frozenset))

    serializer = _lookup(type(value))
    if serializer is None:
        raise UnsupportedTypeError(
            f"No serializer for values of type {type(value).__name__}"
        )
    return serializer


__all__ = [
    "BOOL",
    "DATA",
    "DATE",
    "FLOAT",
    "FLOAT32",
    "INT",
    "STRING",
    "UINT",
    "URI",
    "URL",
    "DictOf",
    "EnumOf",
    "ListOf",
    "Serializer",
    "SetOf",
    "Storable",
    "StorableType",
    "UnsupportedTypeError",
    "register_serializer",
    "serializer_for",
    "serializer_for_value",
]
