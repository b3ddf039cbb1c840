"""Unit tests for declarative Settings classes."""

from typing import List, Set

import pytest

from stowed import Settings, StoredDefault, StoredDescriptor, stored
from stowed.serializers import URL, UnsupportedTypeError


class Preferences(Settings):
    key_prefix = "prefs."

    is_first_launch = stored(True, key="isFirstLaunch")
    volume = stored(5)
    homepage = stored(URL("https://example.com"))
    recent_files = stored([], serializer=List[str])


class ExtendedPreferences(Preferences):
    tags = stored({"new"}, serializer=Set[str])


@pytest.mark.unit
@pytest.mark.store
def test_attributes_read_defaults(store):
    prefs = Preferences(store)

    assert prefs.is_first_launch is True
    assert prefs.volume == 5
    assert prefs.homepage == URL("https://example.com")
    assert prefs.recent_files == []


@pytest.mark.unit
@pytest.mark.store
def test_attribute_assignment_writes_through(store):
    prefs = Preferences(store)

    prefs.volume = 8
    prefs.recent_files = ["a.txt"]

    assert store.get("prefs.volume") == 8
    assert store.get("prefs.recent_files") == ["a.txt"]
    assert prefs.volume == 8


@pytest.mark.unit
@pytest.mark.store
def test_keys_use_prefix_and_explicit_names(store):
    prefs = Preferences(store)

    assert prefs.property_for("is_first_launch").key == "prefs.isFirstLaunch"
    assert prefs.property_for("volume").key == "prefs.volume"


@pytest.mark.unit
@pytest.mark.store
def test_class_access_returns_descriptor():
    assert isinstance(Preferences.volume, StoredDescriptor)
    assert Preferences.volume.key_for(Preferences) == "prefs.volume"


@pytest.mark.unit
@pytest.mark.store
def test_instances_share_values_through_store(store):
    first = Preferences(store)
    second = Preferences(store)

    first.volume = 2

    assert second.volume == 2


@pytest.mark.unit
@pytest.mark.subscription
def test_updates_stream_per_attribute(store):
    prefs = Preferences(store)
    values = []
    prefs.updates("volume").subscribe(on_next=values.append)

    prefs.volume = 6

    assert values == [5, 6]


@pytest.mark.unit
@pytest.mark.store
def test_property_for_returns_same_stored_default(store):
    prefs = Preferences(store)

    prop = prefs.property_for("volume")

    assert isinstance(prop, StoredDefault)
    assert prefs.property_for("volume") is prop


@pytest.mark.unit
@pytest.mark.edge_case
def test_property_for_unknown_name_raises(store):
    prefs = Preferences(store)

    with pytest.raises(AttributeError):
        prefs.property_for("missing")


@pytest.mark.unit
@pytest.mark.store
def test_subclass_inherits_stored_attributes(store):
    prefs = ExtendedPreferences(store)

    assert prefs.volume == 5
    assert prefs.tags == {"new"}
    assert list(prefs.snapshot()) == [
        "is_first_launch",
        "volume",
        "homepage",
        "recent_files",
        "tags",
    ]


@pytest.mark.unit
@pytest.mark.store
def test_snapshot_reports_typed_values(store):
    prefs = Preferences(store)
    prefs.volume = 1

    snapshot = prefs.snapshot()

    assert snapshot["volume"] == 1
    assert snapshot["is_first_launch"] is True


@pytest.mark.unit
@pytest.mark.subscription
def test_close_closes_bound_properties(store):
    with Preferences(store) as prefs:
        prop = prefs.property_for("volume")
        assert store.subscriber_count("prefs.volume") == 1

    assert prop.closed
    assert store.subscriber_count("prefs.volume") == 0


@pytest.mark.unit
@pytest.mark.edge_case
def test_unsupported_default_fails_at_class_definition():
    with pytest.raises(UnsupportedTypeError):

        class Broken(Settings):
            value = stored(object())


@pytest.mark.unit
@pytest.mark.store
def test_defaults_to_standard_store():
    from stowed import standard

    prefs = Preferences()
    prefs.volume = 4

    assert standard().get("prefs.volume") == 4


@pytest.mark.unit
@pytest.mark.edge_case
def test_recovered_container_default_is_not_shared(store):
    store.set("prefs.recent_files", "not a list")
    first = Preferences(store)
    first.property_for("recent_files").current.append("leak.txt")

    second = Preferences(store)

    assert Preferences.recent_files.default == []
    assert second.property_for("recent_files").current == []
    assert first.recent_files == []
