from __future__ import annotations

import pytest

from db.download_logs import DownloadLogStore


def test_append_and_read_log(tmp_path) -> None:
    store = DownloadLogStore(str(tmp_path / "logs.sqlite"))

    assert store.append("dl-1", "first line\n\nsecond line\n") == 2
    assert store.append("dl-1", "third line") == 1
    assert store.append("dl-1", "   \n") == 0

    assert store.read_log("dl-1") == "first line\nsecond line\nthird line"
    assert store.read_log("dl-2") is None


def test_append_requires_download_id(tmp_path) -> None:
    store = DownloadLogStore(str(tmp_path / "logs.sqlite"))

    with pytest.raises(ValueError):
        store.append("  ", "line")


def test_find_download_ids_matches_substring_literally(tmp_path) -> None:
    store = DownloadLogStore(str(tmp_path / "logs.sqlite"))
    store.append("dl-b", "[youtube] ab_c: Downloading webpage")
    store.append("dl-a", "[youtube] abXc: Downloading webpage")
    store.append("dl-c", "[download] Destination: /dl/Video [ab_c].mkv")
    store.append("dl-d", "[youtube] 100%done")

    assert store.find_download_ids("ab_c") == ["dl-b", "dl-c"]
    assert store.find_download_ids("100%") == ["dl-d"]
    assert store.find_download_ids("") == []
