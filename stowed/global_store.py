"""
Global Store - the process-wide shared defaults store.

Stored defaults created without an explicit store use this instance, the way
application preferences share one standard domain.

Implementation:
    - standard(): lazy singleton pattern
    - _reset_standard(): drop the singleton (tests only)

The shared store is memory-only and lives for the whole process; only
individual subscriptions on it are torn down.
"""

import threading
from typing import Optional

from .defaults_store import DefaultsStore

_standard: Optional[DefaultsStore] = None
_standard_lock = threading.Lock()


def standard() -> DefaultsStore:
    """
    Get or create the shared store instance.

    Lazy singleton pattern: creates on first access, reuses thereafter.
    Testing can reset via _reset_standard().
    """
    global _standard
    with _standard_lock:
        if _standard is None:
            _standard = DefaultsStore()
        return _standard


def _reset_standard() -> None:
    """
    Reset the shared store for testing purposes.

    Clears singleton to enable fresh state in tests. Not for production use.
    """
    global _standard
    with _standard_lock:
        _standard = None
