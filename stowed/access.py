"""
Typed access to a defaults store.

These helpers are the only place where "nothing decoded" turns into an
explicit error. Serializers report malformed data by returning ``None``;
``fetch`` and ``decode`` raise ``DecodeFailure`` instead, and ``NotFound`` when
there is nothing stored at all. Callers decide how to recover.
"""

from typing import Any, Optional, TypeVar

from .defaults_store import DefaultsStore
from .serializers import Serializer

T = TypeVar("T")


class StoreAccessError(Exception):
    """Base class for typed store access failures."""

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class NotFound(StoreAccessError, KeyError):
    """The key has no explicit value and no registered default."""

    def __init__(self, key: str):
        super().__init__(key, f"No value or default stored for '{key}'")

    def __str__(self) -> str:
        return self.args[0]


class DecodeFailure(StoreAccessError, ValueError):
    """The stored primitive does not decode with the expected serializer."""

    def __init__(self, key: str, raw: Any, serializer: Serializer[Any]):
        super().__init__(
            key,
            f"Stored value for '{key}' is not a valid {serializer.name}: {raw!r}",
        )
        self.raw = raw
        self.serializer = serializer


def decode(key: str, raw: Optional[Any], serializer: Serializer[T]) -> T:
    """
    Decode an already-read primitive for key.

    Raises:
        NotFound: if raw is None
        DecodeFailure: if the serializer rejects raw
    """
    if raw is None:
        raise NotFound(key)

    value = serializer.from_primitive(raw)
    if value is None:
        raise DecodeFailure(key, raw, serializer)
    return value


def fetch(store: DefaultsStore, key: str, serializer: Serializer[T]) -> T:
    """Read and decode the effective value for key."""
    return decode(key, store.get(key), serializer)


def save(store: DefaultsStore, value: T, key: str, serializer: Serializer[T]) -> None:
    """Encode value and store it under key, notifying key's observers."""
    store.set(key, serializer.to_primitive(value))


def delete(store: DefaultsStore, key: str) -> None:
    """Remove the explicit value for key; a registered default applies again."""
    store.delete(key)


def register_default(
    store: DefaultsStore, value: T, key: str, serializer: Serializer[T]
) -> None:
    """Encode value and register it as the fallback for key."""
    store.register_default(key, serializer.to_primitive(value))
