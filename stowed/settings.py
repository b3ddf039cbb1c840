"""
Stowed Settings - Declarative Groups of Stored Defaults
=======================================================

``Settings`` lets a class declare several stored defaults as attributes.
Reading an attribute returns the typed value from the store, assigning to it
writes through to the store.

```python
from typing import List
from stowed import Settings, stored

class Preferences(Settings):
    key_prefix = "prefs."

    is_first_launch = stored(True, key="isFirstLaunch")
    volume = stored(5)
    recent_files = stored([], serializer=List[str])

prefs = Preferences()
prefs.volume = 7                      # stored under "prefs.volume"
prefs.updates("volume").subscribe(print)
prefs.close()
```

Each ``Settings`` instance owns one ``StoredDefault`` per declared attribute,
created on first access and closed by ``close()``.
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar, overload

from reactivex import Observable

from .default import StoredDefault
from .defaults_store import DefaultsStore
from .global_store import standard
from .serializers import Serializer, serializer_for, serializer_for_value

T = TypeVar("T")


class StoredDescriptor(Generic[T]):
    """
    Descriptor for stored-default attributes on ``Settings`` classes.

    The serializer is resolved when the class is defined, so unsupported
    defaults fail at import time rather than on first access.
    """

    def __init__(
        self, default: T, key: Optional[str] = None, serializer: Any = None
    ) -> None:
        self.default = default
        self._key = key
        self.serializer: Serializer[T] = (
            serializer_for(serializer)
            if serializer is not None
            else serializer_for_value(default)
        )
        self.attr_name: Optional[str] = None

    def __set_name__(self, owner: Type, name: str) -> None:
        self.attr_name = name

    def key_for(self, owner: Type) -> str:
        """The store key for this attribute on ``owner``."""
        prefix = getattr(owner, "key_prefix", "")
        return f"{prefix}{self._key or self.attr_name}"

    @overload
    def __get__(self, instance: None, owner: Type) -> "StoredDescriptor[T]": ...

    @overload
    def __get__(self, instance: "Settings", owner: Type) -> T: ...

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return instance.property_for(self.attr_name).value

    def __set__(self, instance: "Settings", value: T) -> None:
        instance.property_for(self.attr_name).set(value)

    def __repr__(self) -> str:
        return f"stored({self.default!r}, key={self._key or self.attr_name!r})"


def stored(default: T, key: Optional[str] = None, serializer: Any = None) -> Any:
    """
    Declare a stored default on a ``Settings`` class.

    Args:
        default: Default value registered for the key
        key: Store key; defaults to the attribute name
        serializer: Serializer or type hint; inferred from default when omitted
    """
    return StoredDescriptor(default, key=key, serializer=serializer)


class Settings:
    """
    Base class for groups of stored defaults.

    Args:
        store: Backing store for every attribute. Defaults to ``standard()``.

    Class attributes:
        key_prefix: Prepended to every attribute's key.
    """

    key_prefix: str = ""

    def __init__(self, store: Optional[DefaultsStore] = None) -> None:
        self._store = store if store is not None else standard()
        self._properties: Dict[str, StoredDefault[Any]] = {}

    @classmethod
    def _descriptors(cls) -> Dict[str, StoredDescriptor[Any]]:
        """Stored attributes in definition order, base classes first."""
        found: Dict[str, StoredDescriptor[Any]] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, StoredDescriptor):
                    found[name] = attr
        return found

    @property
    def store(self) -> DefaultsStore:
        return self._store

    def property_for(self, name: str) -> StoredDefault[Any]:
        """
        The ``StoredDefault`` behind attribute ``name``.

        Raises:
            AttributeError: if ``name`` is not a stored attribute.
        """
        prop = self._properties.get(name)
        if prop is not None:
            return prop

        descriptor = self._descriptors().get(name)
        if descriptor is None:
            raise AttributeError(
                f"{type(self).__name__} has no stored attribute '{name}'"
            )
        prop = StoredDefault(
            descriptor.default,
            descriptor.key_for(type(self)),
            store=self._store,
            serializer=descriptor.serializer,
        )
        self._properties[name] = prop
        return prop

    def updates(self, name: str) -> Observable:
        return self.property_for(name).updates

    def snapshot(self) -> Dict[str, Any]:
        """Current typed values of all stored attributes."""
        return {name: getattr(self, name) for name in self._descriptors()}

    def close(self) -> None:
        """Close every ``StoredDefault`` created by this instance."""
        for prop in self._properties.values():
            prop.close()
        self._properties.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.snapshot().items())
        return f"{type(self).__name__}({fields})"
