"""
Defaults Store
==============

Persistent key-value store holding only primitive values, with registered
fallback defaults and push-based, per-key change notifications.

Values live in two layers:

- **explicit values**, written with ``set()`` and persisted by ``synchronize()``
- **registered defaults**, installed with ``register_default()`` and used only
  while a key has no explicit value. Defaults are never persisted.

``get()`` returns the effective value: the explicit one if present, else the
registered default, else ``None``.

Accepted primitives are the property-list types: ``bool``, ``int`` (64-bit
signed or unsigned range), ``float``, ``str``, ``bytes``, ``datetime``, lists of
primitives and dicts with ``str`` keys and primitive values.

Usage:
    store = DefaultsStore()
    store.register_default("volume", 5)

    sub = store.subscribe("volume", lambda event: print(event))
    store.set("volume", 7)      # ChangeEvent(SET volume: 5 -> 7)
    store.delete("volume")      # ChangeEvent(DELETE volume: 7 -> 5)
    sub.unsubscribe()
"""

import copy
import logging
import os
import plistlib
import threading
import weakref
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from cachetools import LRUCache

INT_MIN = -(2**63)
UINT_MAX = 2**64 - 1

_SCALARS = (bool, int, float, str, bytes, bytearray, datetime)


class ChangeType(Enum):
    """Kinds of writes that produce a change notification."""

    SET = "set"
    DELETE = "delete"
    DEFAULT = "default"
    CLEAR = "clear"


@dataclass
class ChangeEvent:
    """
    A change to one key.

    Attributes:
        key: The key that changed
        change_type: What kind of write caused the change
        old_value: Effective value before the write (None if absent)
        new_value: Effective value right after the write (None if absent)
    """

    key: str
    change_type: ChangeType
    old_value: Any = None
    new_value: Any = None

    def __repr__(self):
        return (
            f"ChangeEvent({self.change_type.name} {self.key}: "
            f"{self.old_value!r} -> {self.new_value!r})"
        )


class KeySubscription:
    """
    A subscription to changes of a single key.

    Holds only a weak reference to its store.
    """

    def __init__(
        self,
        subscription_id: int,
        key: str,
        callback: Callable[[ChangeEvent], None],
        store: "DefaultsStore",
    ):
        self.id = subscription_id
        self.key = key
        self.callback = callback
        self._store_ref = weakref.ref(store)
        self.active = True

    def pause(self):
        """Stop receiving notifications until resumed."""
        self.active = False

    def resume(self):
        self.active = True

    def unsubscribe(self) -> bool:
        store = self._store_ref()
        if store is None:
            return False
        return store.unsubscribe(self.id)

    def notify(self, event: ChangeEvent):
        """Deliver an event; callback errors are logged, never raised."""
        if not self.active or event.key != self.key:
            return
        try:
            self.callback(event)
        except Exception as e:
            logging.error(f"Error in subscription {self.id} for '{self.key}': {e}")

    def __repr__(self):
        return f"KeySubscription(id={self.id}, key={self.key!r}, active={self.active})"


def validate_primitive(value: Any, path: str = "value") -> None:
    """
    Check that ``value`` is a storable primitive.

    Raises:
        TypeError: if the value (or anything nested in it) is not a primitive.
    """
    if isinstance(value, bool):
        return
    if isinstance(value, int):
        if not INT_MIN <= value <= UINT_MAX:
            raise TypeError(f"{path}: integer {value} is out of the storable range")
        return
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, list):
        for index, item in enumerate(value):
            validate_primitive(item, f"{path}[{index}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"{path}: mapping keys must be str, got {key!r}")
            validate_primitive(item, f"{path}[{key!r}]")
        return
    raise TypeError(f"{path}: {type(value).__name__} is not a storable primitive")


def _freeze(value: Any) -> Any:
    """Copy a primitive into plain builtin types."""
    if isinstance(value, bytearray):
        return bytes(value)
    if isinstance(value, str) and type(value) is not str:
        return str(value)
    if isinstance(value, list):
        return [_freeze(item) for item in value]
    if isinstance(value, dict):
        return {key: _freeze(item) for key, item in value.items()}
    return value


def _plist_safe(value: Any) -> Any:
    """Copy a primitive, converting aware datetimes to naive UTC for plistlib."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, list):
        return [_plist_safe(item) for item in value]
    if isinstance(value, dict):
        return {key: _plist_safe(item) for key, item in value.items()}
    return value


class DefaultsStore:
    """
    Primitive key-value store with registered defaults and key observers.

    Features:
    - Explicit values layered over non-destructive registered defaults
    - Per-key subscriptions with synchronous, in-order dispatch
    - Copies on read and write, so stored state cannot be mutated from outside
    - LRU cache of effective values
    - Optional binary property-list persistence
    - Thread-safe operations

    Args:
        path: Property-list file backing the explicit values. None keeps the
            store in memory only.
        cache_size: Size of the LRU cache of effective values.
    """

    _MISSING = object()

    def __init__(
        self,
        path: Optional[Union[str, os.PathLike]] = None,
        cache_size: int = 1024,
    ):
        self._values: Dict[str, Any] = {}
        self._defaults: Dict[str, Any] = {}
        self._cache = LRUCache(maxsize=cache_size)
        self._lock = threading.RLock()
        self._path = Path(path) if path is not None else None

        # Subscription management
        self._subscriptions: Dict[int, KeySubscription] = {}
        self._key_subscribers: Dict[str, Set[int]] = defaultdict(set)
        self._next_sub_id = 0
        self._pending: "deque[ChangeEvent]" = deque()
        self._dispatching = False

        self._stats = {
            "gets": 0,
            "sets": 0,
            "deletes": 0,
            "cache_hits": 0,
            "notifications": 0,
        }

        if self._path is not None:
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _effective(self, key: str) -> Any:
        cached = self._cache.get(key, self._MISSING)
        if cached is not self._MISSING:
            self._stats["cache_hits"] += 1
            return cached

        value = self._values.get(key, self._MISSING)
        if value is self._MISSING:
            value = self._defaults.get(key, self._MISSING)
        self._cache[key] = value
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get the effective value for key.

        Args:
            key: The key to look up
            default: Returned when the key has neither a value nor a default

        Returns:
            A copy of the stored primitive, or ``default``.
        """
        with self._lock:
            self._stats["gets"] += 1
            value = self._effective(key)
            if value is self._MISSING:
                return default
            return copy.deepcopy(value)

    def has(self, key: str) -> bool:
        """Check if key has an explicit value."""
        with self._lock:
            return key in self._values

    def keys(self) -> List[str]:
        """Return keys with explicit values."""
        with self._lock:
            return list(self._values.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Return a copy of all explicit values."""
        with self._lock:
            return copy.deepcopy(self._values)

    def defaults(self) -> Dict[str, Any]:
        """Return a copy of the registered defaults."""
        with self._lock:
            return copy.deepcopy(self._defaults)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _current(self, key: str) -> Any:
        value = self._effective(key)
        return None if value is self._MISSING else value

    def _snapshot(self, key: str) -> Any:
        return copy.deepcopy(self._current(key))

    def set(self, key: str, value: Any) -> None:
        """
        Store an explicit value and notify subscribers of key.

        Raises:
            TypeError: if value is not a storable primitive.
        """
        if value is None:
            # None has no primitive representation; treat it as removal
            self.delete(key)
            return

        validate_primitive(value)
        stored = _freeze(value)
        with self._lock:
            self._stats["sets"] += 1
            old_value = self._snapshot(key)
            self._values[key] = stored
            self._cache[key] = stored
            self._notify(
                ChangeEvent(
                    key=key,
                    change_type=ChangeType.SET,
                    old_value=old_value,
                    new_value=copy.deepcopy(stored),
                )
            )

    def delete(self, key: str) -> bool:
        """
        Remove the explicit value for key.

        The registered default, if any, becomes the effective value again.

        Returns:
            True if an explicit value was removed, False otherwise.
        """
        with self._lock:
            self._stats["deletes"] += 1
            if key not in self._values:
                return False

            old_value = self._snapshot(key)
            del self._values[key]
            self._cache.pop(key, None)
            self._notify(
                ChangeEvent(
                    key=key,
                    change_type=ChangeType.DELETE,
                    old_value=old_value,
                    new_value=self._snapshot(key),
                )
            )
            return True

    def register_default(self, key: str, value: Any) -> None:
        """Register a fallback value for key."""
        self.register_defaults({key: value})

    def register_defaults(self, defaults: Mapping[str, Any]) -> None:
        """
        Register fallback values used while keys have no explicit value.

        Never overwrites explicit values. Registering again replaces the earlier
        default. Subscribers are notified only when the effective value of a
        key changes as a result.

        Raises:
            TypeError: if any value is not a storable primitive.
        """
        for key, value in defaults.items():
            validate_primitive(value, f"default for {key!r}")

        with self._lock:
            for key, value in defaults.items():
                stored = _freeze(value)
                old_value = self._current(key)
                self._defaults[key] = stored
                if key in self._values:
                    continue

                self._cache[key] = stored
                if old_value != stored:
                    self._notify(
                        ChangeEvent(
                            key=key,
                            change_type=ChangeType.DEFAULT,
                            old_value=copy.deepcopy(old_value),
                            new_value=copy.deepcopy(stored),
                        )
                    )

    def clear(self) -> None:
        """Remove all explicit values and notify subscribers of each key."""
        with self._lock:
            cleared = {key: self._snapshot(key) for key in self._values}
            self._values.clear()
            self._cache.clear()

            for key, old_value in cleared.items():
                self._notify(
                    ChangeEvent(
                        key=key,
                        change_type=ChangeType.CLEAR,
                        old_value=old_value,
                        new_value=self._snapshot(key),
                    )
                )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self, key: str, callback: Callable[[ChangeEvent], None]
    ) -> KeySubscription:
        """
        Subscribe to changes of a single key.

        Args:
            key: The key to watch
            callback: Called with a ChangeEvent after each change of key

        Returns:
            KeySubscription that can be used to pause or unsubscribe
        """
        with self._lock:
            sub_id = self._next_sub_id
            self._next_sub_id += 1

            subscription = KeySubscription(sub_id, key, callback, self)
            self._subscriptions[sub_id] = subscription
            self._key_subscribers[key].add(sub_id)
            logging.debug(f"Subscription {sub_id} added for '{key}'")
            return subscription

    def unsubscribe(self, subscription_id: int) -> bool:
        """
        Remove a subscription.

        Returns:
            True if the subscription was removed, False if not found
        """
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                return False

            subscribers = self._key_subscribers.get(subscription.key)
            if subscribers is not None:
                subscribers.discard(subscription_id)
                if not subscribers:
                    del self._key_subscribers[subscription.key]

            logging.debug(f"Subscription {subscription_id} removed for '{subscription.key}'")
            return True

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._key_subscribers.get(key, ()))

    def _notify(self, event: ChangeEvent) -> None:
        # Called with the lock held. A write made from inside a callback is
        # queued until the current event has reached every subscriber.
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                self._deliver(self._pending.popleft())
        finally:
            self._dispatching = False
            self._pending.clear()

    def _deliver(self, event: ChangeEvent) -> None:
        sub_ids = sorted(self._key_subscribers.get(event.key, ()))
        if not sub_ids:
            return

        self._stats["notifications"] += 1
        for sub_id in sub_ids:
            subscription = self._subscriptions.get(sub_id)
            if subscription is not None:
                subscription.notify(event)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if not self._path.exists():
            logging.debug(f"No defaults file at {self._path}, starting empty")
            return

        with self._path.open("rb") as fp:
            data = plistlib.load(fp)
        if not isinstance(data, dict):
            raise ValueError(
                f"{self._path}: expected a dictionary at the top level, "
                f"got {type(data).__name__}"
            )

        self._values = {str(key): value for key, value in data.items()}
        logging.debug(f"Loaded {len(self._values)} values from {self._path}")

    def synchronize(self) -> bool:
        """
        Write explicit values to the backing file.

        The file is replaced atomically. Returns False for memory-only stores.
        """
        if self._path is None:
            return False

        with self._lock:
            snapshot = _plist_safe(self._values)

            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            with temp_path.open("wb") as fp:
                plistlib.dump(snapshot, fp, fmt=plistlib.FMT_BINARY, sort_keys=True)
            temp_path.replace(self._path)

        logging.debug(f"Synchronized {len(snapshot)} values to {self._path}")
        return True

    def close(self) -> None:
        """Flush explicit values to disk, if backed by a file."""
        self.synchronize()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about store operations."""
        with self._lock:
            stats = self._stats.copy()
            stats["explicit_keys"] = len(self._values)
            stats["default_keys"] = len(self._defaults)
            stats["subscriptions"] = len(self._subscriptions)
            stats["cache_size"] = len(self._cache)
            stats["cache_hit_rate"] = (
                stats["cache_hits"] / stats["gets"] if stats["gets"] > 0 else 0
            )
            return stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __repr__(self) -> str:
        where = str(self._path) if self._path is not None else "memory"
        return f"DefaultsStore({where}, keys={len(self)})"


def create_store(
    path: Optional[Union[str, os.PathLike]] = None,
    cache_size: int = 1024,
) -> DefaultsStore:
    """
    Create a defaults store with specified settings.

    Args:
        path: Optional property-list file for persistence
        cache_size: Size of the LRU cache of effective values

    Returns:
        Configured DefaultsStore instance
    """
    return DefaultsStore(path=path, cache_size=cache_size)
