from irrigation.store import SnapshotStore


def test_store_starts_loading():
    store = SnapshotStore("device")
    assert store.loading is True
    assert store.value is None
    assert store.age is None


def test_apply_replaces_value_and_clears_loading():
    store = SnapshotStore("device")
    assert store.apply(1, "first") is True
    assert store.value == "first"
    assert store.loading is False
    assert store.apply(2, "second") is True
    assert store.value == "second"
    assert store.sequence == 2


def test_older_sequence_is_discarded():
    store = SnapshotStore("device")
    store.apply(3, "fresh")
    assert store.apply(2, "stale") is False
    assert store.apply(3, "duplicate") is False
    assert store.value == "fresh"


def test_handlers_see_new_values_and_survive_errors():
    store = SnapshotStore("device")
    seen = []

    def broken(_value):
        raise RuntimeError("boom")

    store.subscribe(broken)
    unsubscribe = store.subscribe(seen.append)
    store.apply(1, "a")
    unsubscribe()
    store.apply(2, "b")
    assert seen == ["a"]
    assert store.value == "b"
