from __future__ import annotations

import os
import sqlite3
from types import SimpleNamespace

import pytest

from engine.tracker import (
    FILE_KIND_INTERMEDIATE,
    FILE_KIND_MEDIA,
    FILE_KIND_OTHER,
    FILE_KIND_SUBTITLE,
    FILE_KIND_THUMBNAIL,
    TrackedFile,
    TrackedVideo,
    Tracker,
    classify_path,
    collect_video_files,
    extract_paths_from_log,
    merge_tracked_files,
)


def _tracker(tmp_path, clock=None) -> tuple[Tracker, str, SimpleNamespace]:
    state = SimpleNamespace(now=1000)
    root = str(tmp_path / "downloads")
    os.makedirs(root, exist_ok=True)
    tracker = Tracker(str(tmp_path / "tracker.sqlite"), root, clock=clock or (lambda: state.now))
    return tracker, root, state


def _video(root: str, folder: str, video_id: str = "vid1", **overrides) -> TrackedVideo:
    directory = os.path.join(root, folder)
    full_path = os.path.join(directory, f"Title [{video_id}].mkv")
    values = {
        "id": video_id,
        "title": "Title",
        "channel": "Channel",
        "url": f"https://www.youtube.com/watch?v={video_id}",
        "relative_path": folder,
        "full_path": full_path,
        "files": (TrackedFile(path=full_path, kind=FILE_KIND_MEDIA, first_seen_at=100),),
    }
    values.update(overrides)
    return TrackedVideo(**values)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("Song [abc].f137.mp4", (FILE_KIND_MEDIA, True)),
        ("Song [abc].webm.part", (FILE_KIND_INTERMEDIATE, True)),
        ("Song [abc].jpg", (FILE_KIND_THUMBNAIL, False)),
        ("Song [abc].en.vtt", (FILE_KIND_SUBTITLE, False)),
        ("Song [abc].mkv", (FILE_KIND_MEDIA, False)),
        ("Song [abc].description", (FILE_KIND_OTHER, False)),
    ],
)
def test_classify_path(path, expected) -> None:
    assert classify_path(path) == expected


def test_extract_paths_from_log_dedupes_in_order() -> None:
    log = "\n".join(
        [
            "[download] Destination: /dl/Song [abc].f137.mp4",
            "[download] Destination: /dl/Song [abc].f140.m4a",
            '[Merger] Merging formats into "/dl/Song [abc].mkv"',
            "[info] Writing video thumbnail 1 to: /dl/Song [abc].jpg",
            "[download] Destination: /dl/Song [abc].f137.mp4",
            "",
        ]
    )

    assert extract_paths_from_log(log) == [
        "/dl/Song [abc].f137.mp4",
        "/dl/Song [abc].f140.m4a",
        "/dl/Song [abc].mkv",
        "/dl/Song [abc].jpg",
    ]


def test_collect_video_files_marks_log_only_paths_deleted(tmp_path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "Song [abc].mkv").write_text("media")
    (out / "Other [zzz].mkv").write_text("other")
    log = f"[download] Destination: {out / 'Song [abc].f137.mp4'}"

    files = collect_video_files(str(out), "abc", log_text=log, now=500)

    by_path = {item.path: item for item in files}
    assert set(by_path) == {str(out / "Song [abc].mkv"), str(out / "Song [abc].f137.mp4")}
    assert by_path[str(out / "Song [abc].mkv")].exists is True
    leftover = by_path[str(out / "Song [abc].f137.mp4")]
    assert leftover.exists is False
    assert leftover.deleted_at == 500
    assert leftover.intermediate is True


def test_merge_tracked_files_applies_merge_rules() -> None:
    previous = (
        TrackedFile(path="a.f137.mp4", kind=FILE_KIND_MEDIA, intermediate=True, first_seen_at=100),
        TrackedFile(path="b.mkv", kind=FILE_KIND_MEDIA, exists=True, first_seen_at=100),
        TrackedFile(path="c.part", kind=FILE_KIND_INTERMEDIATE, intermediate=True, exists=False, first_seen_at=150, deleted_at=200),
    )
    incoming = (
        TrackedFile(path="b.mkv", kind=FILE_KIND_OTHER, exists=False, first_seen_at=300),
        TrackedFile(path="c.part", kind=FILE_KIND_OTHER, intermediate=False, exists=False, first_seen_at=120, deleted_at=400),
        TrackedFile(path="d.jpg", kind=FILE_KIND_THUMBNAIL, first_seen_at=300),
    )

    merged = merge_tracked_files(previous, incoming, now=500)

    assert [item.path for item in merged] == ["a.f137.mp4", "b.mkv", "c.part", "d.jpg"]
    a, b, c, d = merged
    assert a == previous[0]
    assert b.kind == FILE_KIND_MEDIA
    assert b.first_seen_at == 100
    assert b.exists is False
    assert b.deleted_at == 500
    assert c.first_seen_at == 120
    assert c.deleted_at == 200
    assert c.intermediate is True
    assert c.kind == FILE_KIND_INTERMEDIATE
    assert d == incoming[2]


def test_track_video_first_sight_defaults_files(tmp_path) -> None:
    tracker, _root, _state = _tracker(tmp_path)

    stored = tracker.track_video({"id": "vid1", "title": "Title", "relativePath": "Foo"})

    assert stored.files == ()
    assert stored.downloaded_at == 1000
    assert tracker.get_video("vid1", "Foo") == stored


def test_retrack_keeps_deleted_flag_and_takes_newest_fields(tmp_path) -> None:
    tracker, root, state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo", file_size=10))
    assert tracker.mark_deleted("vid1", "Foo") is True

    state.now = 5000
    stored = tracker.track_video(_video(root, "Foo", title="New Title", file_size=20))

    assert stored.deleted is True
    assert stored.deleted_at == 1000
    assert stored.title == "New Title"
    assert stored.file_size == 20
    assert tracker.get_video("vid1", "Foo").deleted is True


def test_same_video_in_two_directories_is_tracked_twice(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo"))
    tracker.track_video(_video(root, "Bar"))

    assert len(tracker.list_videos()) == 2


def test_mark_deleted_is_idempotent(tmp_path) -> None:
    tracker, root, state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo"))

    assert tracker.mark_deleted("vid1", "Foo") is True
    state.now = 9000
    assert tracker.mark_deleted("vid1", "Foo") is True

    assert tracker.get_video("vid1", "Foo").deleted_at == 1000
    assert tracker.mark_deleted("missing", "Foo") is False


def test_update_paths_for_move_is_prefix_exact(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo", video_id="inside"))
    tracker.track_video(_video(root, os.path.join("Foo", "Season 1"), video_id="nested"))
    tracker.track_video(_video(root, "FooBar", video_id="sibling"))

    updated = tracker.update_paths_for_move(os.path.join(root, "Foo"), os.path.join(root, "Bar"))

    assert updated == 2
    moved = tracker.get_video("inside", "Bar")
    assert moved is not None
    assert moved.full_path == os.path.join(root, "Bar", "Title [inside].mkv")
    assert [item.path for item in moved.files] == [moved.full_path]
    assert tracker.get_video("nested", os.path.join("Bar", "Season 1")) is not None
    sibling = tracker.get_video("sibling", "FooBar")
    assert sibling is not None
    assert sibling.full_path == os.path.join(root, "FooBar", "Title [sibling].mkv")
    assert tracker.get_video("inside", "Foo") is None


def test_update_paths_for_move_merges_colliding_records(tmp_path) -> None:
    tracker, root, state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Bar"))
    tracker.mark_deleted("vid1", "Bar")
    state.now = 2000
    extra = TrackedFile(path=os.path.join(root, "Foo", "Title [vid1].jpg"), kind=FILE_KIND_THUMBNAIL, first_seen_at=2000)
    tracker.track_video(_video(root, "Foo", files=(_video(root, "Foo").files[0], extra)))

    updated = tracker.update_paths_for_move(os.path.join(root, "Foo"), os.path.join(root, "Bar"))

    assert updated == 1
    videos = tracker.list_videos()
    assert len(videos) == 1
    merged = videos[0]
    assert merged.relative_path == "Bar"
    assert merged.deleted is True
    assert merged.deleted_at == 1000
    assert {item.path for item in merged.files} == {
        os.path.join(root, "Bar", "Title [vid1].mkv"),
        os.path.join(root, "Bar", "Title [vid1].jpg"),
    }


def test_update_paths_for_move_rewrites_channel_paths(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_channel(name="Chan", url="https://youtube.com/@chan", relative_path="Foo", video_id="vid1")
    tracker.track_playlist(name="List", url="https://youtube.com/playlist?list=PL1", relative_path="FooBar", video_id="vid1")

    tracker.update_paths_for_move(os.path.join(root, "Foo"), os.path.join(root, "Bar"))

    assert tracker.list_channels()[0].relative_path == "Bar"
    assert tracker.list_playlists()[0].relative_path == "FooBar"


def test_delete_videos_by_path_counts_only_rooted_videos(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo", video_id="a"))
    tracker.track_video(_video(root, "Foo", video_id="b"))
    tracker.track_video(_video(root, os.path.join("Foo", "deep"), video_id="c"))
    tracker.track_video(_video(root, "FooBar", video_id="d"))

    removed = tracker.delete_videos_by_path(os.path.join(root, "Foo"))

    assert removed == 3
    assert [video.id for video in tracker.list_videos()] == ["d"]


def test_delete_video_removes_files_and_marks_deleted(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    folder = os.path.join(root, "Foo")
    os.makedirs(folder)
    media = os.path.join(folder, "Title [vid1].mkv")
    thumb = os.path.join(folder, "Title [vid1].jpg")
    for path in (media, thumb):
        with open(path, "w") as handle:
            handle.write("x")
    tracker.track_video(
        _video(
            root,
            "Foo",
            files=(
                TrackedFile(path=media, kind=FILE_KIND_MEDIA, first_seen_at=100),
                TrackedFile(path=thumb, kind=FILE_KIND_THUMBNAIL, first_seen_at=100),
            ),
        )
    )

    deletion = tracker.delete_video("vid1", "Foo")

    assert deletion is not None
    assert sorted(deletion.removed_files) == sorted([media, thumb])
    assert deletion.failed_files == []
    assert not os.path.exists(media)
    assert not os.path.exists(thumb)
    stored = tracker.get_video("vid1", "Foo")
    assert stored.deleted is True
    assert all(item.exists is False and item.deleted_at == 1000 for item in stored.files)


def test_delete_video_keeps_files_that_cannot_be_removed(tmp_path) -> None:
    class _StubbornFilesystem:
        def exists(self, path):
            return True

        def remove_file(self, path):
            raise PermissionError(path)

    tracker, root, _state = _tracker(tmp_path)
    tracker.filesystem = _StubbornFilesystem()
    tracker.track_video(_video(root, "Foo"))

    deletion = tracker.delete_video("vid1", "Foo")

    assert deletion.removed_files == []
    assert deletion.failed_files == [os.path.join(root, "Foo", "Title [vid1].mkv")]
    assert deletion.video.deleted is True
    assert deletion.video.files[0].exists is True


def test_delete_video_missing_returns_none(tmp_path) -> None:
    tracker, _root, _state = _tracker(tmp_path)
    assert tracker.delete_video("missing", "") is None


def test_track_channel_upserts_by_url_or_path(tmp_path) -> None:
    tracker, _root, state = _tracker(tmp_path)
    first = tracker.track_channel(name="Chan", url="https://youtube.com/@chan", relative_path="Chan", video_id="a")
    state.now = 2000
    tracker.track_channel(name="Chan", url="https://youtube.com/@chan", relative_path="Elsewhere", video_id="a")
    state.now = 3000
    latest = tracker.track_channel(name="Chan", url="https://youtube.com/c/other", relative_path="Chan", video_id="b")

    channels = tracker.list_channels()
    assert len(channels) == 1
    assert latest.id == first.id
    assert latest.video_ids == ("a", "b")
    assert latest.video_count == 2
    assert latest.last_downloaded_at == 3000
    assert latest.downloaded_at == 1000


def test_delete_channel_and_playlist(tmp_path) -> None:
    tracker, _root, _state = _tracker(tmp_path)
    channel = tracker.track_channel(name="Chan", url="u1", relative_path="Chan", video_id="a")
    playlist = tracker.track_playlist(name="List", url="u2", relative_path="List", video_id="a")

    assert tracker.delete_channel(channel.id) is True
    assert tracker.delete_channel(channel.id) is False
    assert tracker.delete_playlist(playlist.id) is True
    assert tracker.list_channels() == []
    assert tracker.list_playlists() == []


def test_relative_path_for(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    outside = str(tmp_path / "elsewhere")

    assert tracker.relative_path_for(root) == ""
    assert tracker.relative_path_for(os.path.join(root, "Foo", "Bar")) == os.path.join("Foo", "Bar")
    assert tracker.relative_path_for(outside) == outside


def test_get_stats(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Foo", video_id="a", file_size=100))
    tracker.track_video(_video(root, "Foo", video_id="b", file_size=50))
    tracker.mark_deleted("b", "Foo")
    tracker.track_channel(name="Chan", url="u1", relative_path="Foo", video_id="a")

    assert tracker.get_stats() == {
        "totalVideos": 2,
        "totalChannels": 1,
        "totalPlaylists": 0,
        "totalSize": 100,
        "deletedVideos": 1,
    }


def test_unreadable_rows_are_skipped_not_fatal(tmp_path) -> None:
    tracker, root, _state = _tracker(tmp_path)
    tracker.track_video(_video(root, "Good", "good"))
    tracker.track_channel(name="Chan", url="u1", relative_path="Chan", video_id="good")
    conn = sqlite3.connect(str(tmp_path / "tracker.sqlite"))
    try:
        conn.execute(
            "INSERT INTO tracked_videos (video_id, relative_path, full_path, downloaded_at, data) "
            "VALUES ('bad', 'Bad', '/bad', 1, '{not json')"
        )
        conn.execute(
            "INSERT INTO tracked_channels (id, url, relative_path, downloaded_at, data) "
            "VALUES ('broken', 'u2', 'Other', 1, 'null')"
        )
        conn.commit()
    finally:
        conn.close()

    assert [video.id for video in tracker.list_videos()] == ["good"]
    assert tracker.get_video("bad", "Bad") is None
    assert [channel.name for channel in tracker.list_channels()] == ["Chan"]
    assert tracker.update_paths_for_move(os.path.join(root, "Good"), os.path.join(root, "Moved")) == 1
