from __future__ import annotations

import pytest

from db.schedules import ScheduleStore, calculate_next_run


def _store(tmp_path) -> ScheduleStore:
    return ScheduleStore(str(tmp_path / "schedules.sqlite"), clock=lambda: 60_000)


def test_create_schedule_round_trips_options(tmp_path) -> None:
    store = _store(tmp_path)

    created = store.create_schedule(
        "https://www.youtube.com/@channel",
        30,
        collection_id="col-1",
        audio_only=True,
        is_channel=True,
        max_videos=5,
        include_thumbnail=True,
        concurrent_fragments=4,
    )

    stored = store.get_schedule(created.id)
    assert stored == created
    assert stored.audio_only is True
    assert stored.is_playlist is False
    assert stored.enabled is True
    assert stored.next_run == 60_000 + 30 * 60 * 1000
    assert stored.to_dict()["collectionId"] == "col-1"
    assert stored.to_dict()["concurrentFragments"] == 4


def test_create_schedule_validates_input(tmp_path) -> None:
    store = _store(tmp_path)

    with pytest.raises(ValueError):
        store.create_schedule("", 10)
    with pytest.raises(ValueError):
        store.create_schedule("https://www.youtube.com/@channel", 0)


def test_collection_reference_rewrites(tmp_path) -> None:
    store = _store(tmp_path)
    first = store.create_schedule("u1", 10, collection_id="old")
    second = store.create_schedule("u2", 10, collection_id="old")
    other = store.create_schedule("u3", 10, collection_id="keep")

    assert store.update_collection_references("old", "new") == 2
    assert store.get_schedule(first.id).collection_id == "new"
    assert store.get_schedule(second.id).collection_id == "new"
    assert store.get_schedule(other.id).collection_id == "keep"

    assert store.clear_collection_references("new") == 2
    assert store.get_schedule(first.id).collection_id is None
    assert store.update_collection_references("missing", "x") == 0


def test_delete_and_list_schedules(tmp_path) -> None:
    store = _store(tmp_path)
    first = store.create_schedule("u1", 10)
    second = store.create_schedule("u2", 10)

    assert [item.id for item in store.list_schedules()] == [second.id, first.id]
    assert store.delete_schedule(first.id) is True
    assert store.delete_schedule(first.id) is False
    assert [item.id for item in store.list_schedules()] == [second.id]


def test_calculate_next_run() -> None:
    assert calculate_next_run(2, now=1_000) == 1_000 + 120_000
