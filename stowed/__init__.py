"""
Stowed - Typed, Observable Defaults

A typed layer over a persistent key-value store of primitive values: rich
values are converted through serializers, and each key can be observed as a
stream that replays its latest value.
"""

# Serialization contract
from .serializers import (
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
    Serializer,
    SetOf,
    Storable,
    StorableType,
    UnsupportedTypeError,
    register_serializer,
    serializer_for,
    serializer_for_value,
)

# Store and typed access
from .defaults_store import (
    ChangeEvent,
    ChangeType,
    DefaultsStore,
    KeySubscription,
    create_store,
)
from .global_store import _reset_standard, standard
from .access import DecodeFailure, NotFound, StoreAccessError

# Observable properties
from .default import StoredDefault
from .settings import Settings, StoredDescriptor, stored

__all__ = [
    # Serializers
    "Serializer",
    "Storable",
    "StorableType",
    "BOOL",
    "INT",
    "UINT",
    "FLOAT",
    "FLOAT32",
    "STRING",
    "URI",
    "URL",
    "DATE",
    "DATA",
    "ListOf",
    "SetOf",
    "DictOf",
    "EnumOf",
    "register_serializer",
    "serializer_for",
    "serializer_for_value",
    # Store
    "DefaultsStore",
    "ChangeEvent",
    "ChangeType",
    "KeySubscription",
    "create_store",
    "standard",
    # Access errors
    "StoreAccessError",
    "NotFound",
    "DecodeFailure",
    "UnsupportedTypeError",
    # Properties
    "StoredDefault",
    "Settings",
    "StoredDescriptor",
    "stored",
    # Testing utilities (internal use)
    "_reset_standard",
]
