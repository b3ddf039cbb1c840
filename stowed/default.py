"""
Stowed StoredDefault - Typed, Observable Store Keys
===================================================

A ``StoredDefault`` binds one key of a ``DefaultsStore`` to a typed value and a
live update stream.

```python
from stowed import StoredDefault

first_launch = StoredDefault(True, "isFirstLaunch")

first_launch.subscribe(lambda value: print("first launch:", value))
# first launch: True            (current value is replayed immediately)

first_launch.value = False
# first launch: False           (delivered by the store's change notification)
```

Lifecycle
---------

On construction the default is registered as the store's fallback for the key
and the current value is loaded. If the stored primitive cannot be decoded,
the malformed entry is deleted and the default is used instead.

While active, every store notification for the key is decoded and pushed onto
the update stream. Writes go through the store; the cached value only changes
when the store's notification comes back.

``close()`` unsubscribes from the store and completes the update stream. A
finalizer does the same if the property is garbage collected without being
closed; the store only holds a weak reference back to the property.
"""

import copy
import logging
import weakref
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import reactivex
from reactivex import Observable
from reactivex.abc import DisposableBase, ObserverBase, SchedulerBase
from reactivex.subject import BehaviorSubject

from . import access
from .access import DecodeFailure, NotFound, StoreAccessError
from .defaults_store import ChangeEvent, DefaultsStore
from .global_store import standard
from .serializers import Serializer, serializer_for, serializer_for_value

T = TypeVar("T")


class _ObserverTrampoline:
    """Forwards store notifications to a property without keeping it alive."""

    def __init__(self, owner: "StoredDefault[Any]"):
        self._owner = weakref.ref(owner)

    def __call__(self, event: ChangeEvent) -> None:
        owner = self._owner()
        if owner is not None:
            owner._on_store_change(event)


def _release(store: DefaultsStore, subscription_id: int, subject: BehaviorSubject) -> None:
    # Must not reference the StoredDefault itself, or it could never be collected.
    store.unsubscribe(subscription_id)
    subject.on_completed()


class StoredDefault(Generic[T]):
    """
    A typed value stored under one key, with a replay-latest update stream.

    Args:
        default: Value registered as the key's fallback; also used when the
            stored value is malformed.
        key: The key in the store.
        store: Backing store. Defaults to the process-wide ``standard()`` store.
        serializer: A ``Serializer`` or type hint (e.g. ``List[Level]``).
            Inferred from ``default`` when omitted.

    Raises:
        UnsupportedTypeError: if no serializer can be resolved.
    """

    def __init__(
        self,
        default: T,
        key: str,
        store: Optional[DefaultsStore] = None,
        serializer: Any = None,
    ) -> None:
        self._key = key
        self._default = default
        self._store = store if store is not None else standard()
        self._serializer: Serializer[T] = (
            serializer_for(serializer)
            if serializer is not None
            else serializer_for_value(default)
        )
        self._closed = False
        self._disposables: Dict[Callable, DisposableBase] = {}

        access.register_default(self._store, default, key, self._serializer)
        try:
            initial = access.fetch(self._store, key, self._serializer)
        except DecodeFailure as e:
            logging.warning(f"{e}; deleting it and using the default {default!r}")
            access.delete(self._store, key)
            initial = self._default_copy()
        except NotFound:
            initial = self._default_copy()

        self._subject: BehaviorSubject = BehaviorSubject(initial)
        self._updates = self._make_updates(self._subject)

        subscription = self._store.subscribe(key, _ObserverTrampoline(self))
        self._finalizer = weakref.finalize(
            self, _release, self._store, subscription.id, self._subject
        )

    def _default_copy(self) -> T:
        # The caller's default object is never handed out through the stream.
        copied = self._serializer.from_primitive(
            self._serializer.to_primitive(self._default)
        )
        return copied if copied is not None else copy.deepcopy(self._default)

    @staticmethod
    def _make_updates(subject: BehaviorSubject) -> Observable:
        # Hides on_next/on_completed from consumers of the stream.
        def subscribe(
            observer: ObserverBase, scheduler: Optional[SchedulerBase] = None
        ) -> DisposableBase:
            return subject.subscribe(observer, scheduler=scheduler)

        return reactivex.create(subscribe)

    @property
    def key(self) -> str:
        return self._key

    @property
    def default(self) -> T:
        return self._default

    @property
    def store(self) -> DefaultsStore:
        return self._store

    @property
    def serializer(self) -> Serializer[T]:
        return self._serializer

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def value(self) -> T:
        """The decoded value currently in the store."""
        try:
            return access.fetch(self._store, self._key, self._serializer)
        except StoreAccessError as e:
            logging.warning(f"{e}; returning the last known value")
            return self._subject.value

    @value.setter
    def value(self, new_value: T) -> None:
        self.set(new_value)

    @property
    def current(self) -> T:
        """The last value pushed onto the update stream."""
        return self._subject.value

    @property
    def updates(self) -> Observable:
        """
        Stream of values for this key.

        New subscribers immediately receive the current value, then every
        later update. The stream completes when the property is closed.

        Observers attached here must not raise: an exception stops the value
        from reaching the observers subscribed after them. Use ``subscribe()``
        for callbacks that may fail.
        """
        return self._updates

    def set(self, value: T) -> "StoredDefault[T]":
        """
        Store a new value.

        The update stream and ``current`` are refreshed by the store's change
        notification, not by this call directly.

        Raises:
            RuntimeError: if the property has been closed.
        """
        if self._closed:
            raise RuntimeError(f"StoredDefault '{self._key}' is closed")
        access.save(self._store, value, self._key, self._serializer)
        return self

    def reset(self) -> None:
        """Remove the explicit value so the registered default applies again."""
        access.delete(self._store, self._key)

    def subscribe(self, func: Callable[[T], None]) -> "StoredDefault[T]":
        """
        Call func with the current value now and with every later update.

        Exceptions raised by func are logged and do not stop delivery to the
        other subscribers.
        """
        if func in self._disposables:
            return self

        key = self._key

        def on_next(value: T) -> None:
            # Must not reference self: the subject outlives the property.
            try:
                func(value)
            except Exception as e:
                logging.error(f"Error in subscriber {func!r} for '{key}': {e}")

        self._disposables[func] = self._updates.subscribe(on_next=on_next)
        return self

    def unsubscribe(self, func: Callable[[T], None]) -> None:
        disposable = self._disposables.pop(func, None)
        if disposable is not None:
            disposable.dispose()

    def _on_store_change(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        try:
            value = access.decode(self._key, event.new_value, self._serializer)
        except StoreAccessError as e:
            logging.warning(f"{e}; keeping the last known value")
            return
        self._subject.on_next(value)

    def close(self) -> None:
        """Stop observing the store and complete the update stream."""
        if self._closed:
            return
        self._closed = True
        self._finalizer()
        self._disposables.clear()

    def __enter__(self) -> "StoredDefault[T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return f"StoredDefault({self._key!r}: {self._subject.value!r}, {state})"
