import enum
from typing import List

from stowed import DefaultsStore, Settings, StoredDefault, stored

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Defining a stored default")
print("-" * 100)
print()

store = DefaultsStore()

# The default is registered in the store; the current value is loaded from it.
first_launch = StoredDefault(True, "isFirstLaunch", store=store)

log_on_change = lambda value: print(f"isFirstLaunch is now: {value}")

# Subscribers receive the current value right away, then every change.
first_launch.subscribe(log_on_change)
first_launch.value = False  # Delivered through the store's change notification

first_launch.unsubscribe(log_on_change)
first_launch.value = True  # No longer printed

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Enums and containers")
print("-" * 100)
print()


class Priority(enum.Enum):
    low = 0
    medium = 1
    high = 2


# Enums are stored as their raw values; lists of them as lists of raw values.
priorities = StoredDefault([Priority.low], "priorities", store=store)
priorities.updates.subscribe(on_next=lambda value: print(f"Priorities: {value}"))

priorities.value = [Priority.high, Priority.medium]
print(f"Stored primitive: {store.get('priorities')}")

# Malformed data written by someone else is ignored; the last good value stays.
store.set("priorities", [0, 5])
print(f"Still: {priorities.value}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Settings classes")
print("-" * 100)
print()


class Preferences(Settings):
    key_prefix = "prefs."

    volume = stored(5)
    recent_files = stored([], serializer=List[str])


with Preferences(store) as prefs:
    prefs.updates("volume").subscribe(on_next=lambda v: print(f"Volume: {v}"))
    prefs.volume = 8
    prefs.recent_files = ["notes.txt"]
    print(prefs.snapshot())

first_launch.close()
priorities.close()
