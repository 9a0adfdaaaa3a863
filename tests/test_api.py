from __future__ import annotations

import importlib
import os
from pathlib import Path

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from engine.core import build_services
from engine.paths import build_engine_paths


def _build_client(tmp_path):
    module = importlib.import_module("api.main")
    paths = build_engine_paths(
        data_dir=tmp_path / "data",
        downloads_dir=tmp_path / "downloads",
        log_dir=tmp_path / "logs",
        config_dir=tmp_path / "config",
    )
    services = build_services(paths)
    module.app.state.services = services
    return TestClient(module.app), services


def test_version_reports_runtime(tmp_path) -> None:
    client, services = _build_client(tmp_path)

    response = client.get("/api/version")

    assert response.status_code == 200
    body = response.json()
    assert {"app_version", "python_version", "sqlite_version", "yt_dlp_version"} <= set(body)
    assert body["downloads_dir"] == services.paths.downloads_dir


def test_collection_crud_and_delete_job(tmp_path) -> None:
    client, services = _build_client(tmp_path)
    root = str(tmp_path / "downloads" / "Shows")

    created = client.post("/api/collections", json={"name": "Shows", "root_path": root})
    assert created.status_code == 201
    collection = created.json()["collection"]
    assert collection["rootPath"] == root

    duplicate = client.post("/api/collections", json={"name": "Again", "root_path": root})
    assert duplicate.status_code == 400
    assert duplicate.json()["success"] is False

    renamed = client.put(f"/api/collections/{collection['id']}", json={"name": "Series"})
    assert renamed.json()["collection"]["name"] == "Series"
    assert client.get("/api/collections/missing").status_code == 404

    deleted = client.delete(f"/api/collections/{collection['id']}")
    assert deleted.status_code == 202
    job = deleted.json()["job"]
    assert job["status"] == "pending"
    assert job["type"] == "delete_collection"

    services.jobs.run_pending()

    finished = client.get(f"/api/jobs/{job['id']}").json()["job"]
    assert finished["status"] == "completed"
    assert finished["result"]["success"] is True
    assert client.get("/api/collections").json() == {"collections": []}


def test_merge_into_self_is_rejected_at_the_edge(tmp_path) -> None:
    client, services = _build_client(tmp_path)
    created = client.post(
        "/api/collections",
        json={"name": "A", "root_path": str(tmp_path / "downloads" / "A")},
    ).json()["collection"]

    response = client.post(
        f"/api/collections/{created['id']}/merge",
        json={"target_id": created["id"]},
    )

    assert response.status_code == 400
    assert services.jobs.list_jobs() == []


def test_jobs_endpoint_validates_type_and_lists_newest_first(tmp_path) -> None:
    client, _services = _build_client(tmp_path)

    assert client.post("/api/jobs", json={"type": "explode", "data": {}}).status_code == 400
    first = client.post("/api/jobs", json={"type": "delete_channel", "data": {"channelId": "a"}})
    second = client.post("/api/jobs", json={"type": "delete_playlist", "data": {"playlistId": "b"}})
    assert first.status_code == 202

    listed = client.get("/api/jobs").json()["jobs"]
    assert [job["id"] for job in listed][:2] == [second.json()["job"]["id"], first.json()["job"]["id"]]
    assert client.get("/api/jobs/missing").status_code == 404


def test_track_video_from_download_log_then_delete(tmp_path) -> None:
    client, services = _build_client(tmp_path)
    out_dir = Path(services.paths.downloads_dir) / "Channel"
    out_dir.mkdir(parents=True)
    media = out_dir / "Clip [vid42].mkv"
    media.write_text("media")
    client.post(
        "/api/downloads/dl-9/log",
        json={"text": f"[download] Destination: {out_dir / 'Clip [vid42].f137.mp4'}\n[Merger] Merging formats into \"{media}\""},
    )

    tracked = client.post(
        "/api/tracker/videos",
        json={
            "id": "vid42",
            "title": "Clip",
            "channel": "Channel",
            "url": "https://www.youtube.com/watch?v=vid42",
            "output_dir": "Channel",
            "download_id": "dl-9",
            "channel_url": "https://www.youtube.com/@channel",
        },
    )
    assert tracked.status_code == 201
    video = tracked.json()["video"]
    assert video["relativePath"] == "Channel"
    assert video["fullPath"] == str(media)
    assert {item["path"] for item in video["files"]} == {str(media), str(out_dir / "Clip [vid42].f137.mp4")}
    assert tracked.json()["channel"]["videoIds"] == ["vid42"]

    assert client.get("/api/downloads/search", params={"video_id": "vid42"}).json() == {"downloadIds": ["dl-9"]}
    assert client.get("/api/tracker/stats").json()["totalVideos"] == 1

    response = client.delete("/api/tracker/videos/vid42", params={"relative_path": "Channel"})
    assert response.status_code == 202
    services.jobs.run_pending()

    job = services.jobs.get_job(response.json()["job"]["id"])
    assert job.status == "completed"
    assert job.result["downloadIds"] == ["dl-9"]
    assert not os.path.exists(media)
    assert client.get("/api/tracker/videos").json()["videos"][0]["deleted"] is True


def test_download_log_round_trip(tmp_path) -> None:
    client, _services = _build_client(tmp_path)

    assert client.get("/api/downloads/nope/log").status_code == 404
    assert client.post("/api/downloads/dl-1/log", json={"text": "a\nb"}).json() == {"success": True, "lines": 2}
    assert client.get("/api/downloads/dl-1/log").text == "a\nb"


def test_schedule_requires_existing_collection(tmp_path) -> None:
    client, _services = _build_client(tmp_path)

    missing = client.post(
        "/api/schedules",
        json={"url": "https://www.youtube.com/@c", "interval_minutes": 60, "collection_id": "nope"},
    )
    assert missing.status_code == 404

    bad = client.post("/api/schedules", json={"url": "https://www.youtube.com/@c", "interval_minutes": 0})
    assert bad.status_code == 400

    created = client.post("/api/schedules", json={"url": "https://www.youtube.com/@c", "interval_minutes": 60})
    assert created.status_code == 201
    schedule_id = created.json()["schedule"]["id"]
    assert [item["id"] for item in client.get("/api/schedules").json()["schedules"]] == [schedule_id]
    assert client.delete(f"/api/schedules/{schedule_id}").status_code == 200
    assert client.delete(f"/api/schedules/{schedule_id}").status_code == 404


def test_posted_files_without_first_seen_get_a_timestamp(tmp_path) -> None:
    client, services = _build_client(tmp_path)
    media = str(Path(services.paths.downloads_dir) / "Channel" / "Clip [vid7].mkv")
    thumb = str(Path(services.paths.downloads_dir) / "Channel" / "Clip [vid7].jpg")

    response = client.post(
        "/api/tracker/videos",
        json={
            "id": "vid7",
            "title": "Clip",
            "output_dir": "Channel",
            "files": [
                {"path": media, "kind": "media"},
                {"path": thumb, "kind": "thumbnail", "firstSeenAt": 5},
            ],
        },
    )

    assert response.status_code == 201
    files = {item["path"]: item for item in response.json()["video"]["files"]}
    assert isinstance(files[media]["firstSeenAt"], int)
    assert files[media]["firstSeenAt"] > 0
    assert files[thumb]["firstSeenAt"] == 5
