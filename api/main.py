#!/usr/bin/env python3
import functools
import json
import logging
import os
from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from config.settings import DEFAULT_JOB_LIST_LIMIT, LOG_FILE_NAME, LOG_FORMAT
from engine.clock import now_ms
from engine.core import build_services, load_config
from engine.errors import InvalidOperationError, MediaShelfError
from engine.job_queue import (
    JOB_TYPE_DELETE_CHANNEL,
    JOB_TYPE_DELETE_COLLECTION,
    JOB_TYPE_DELETE_PLAYLIST,
    JOB_TYPE_DELETE_VIDEO,
    JOB_TYPE_MERGE_COLLECTION,
    JOB_TYPE_MOVE_COLLECTION,
    JOB_TYPES,
)
from engine.json_utils import safe_json
from engine.paths import build_engine_paths, ensure_dir, resolve_config_path
from engine.runtime import get_runtime_info
from engine.tracker import (
    FILE_KIND_MEDIA,
    TrackedFile,
    TrackedVideo,
    collect_video_files,
)

APP_NAME = "mediashelf API"


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, LOG_FILE_NAME)
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            safe_json(content),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


class JobCreateRequest(BaseModel):
    type: str
    data: dict = {}


class CollectionCreateRequest(BaseModel):
    name: str
    root_path: str


class CollectionUpdateRequest(BaseModel):
    name: str


class CollectionMoveRequest(BaseModel):
    name: str | None = None
    root_path: str | None = None


class CollectionMergeRequest(BaseModel):
    target_id: str


class TrackVideoRequest(BaseModel):
    id: str
    title: str = ""
    channel: str = ""
    url: str = ""
    output_dir: str = ""
    full_path: str | None = None
    channel_id: str | None = None
    format: str = "video"
    resolution: str | None = None
    file_size: int | None = None
    duration: float | None = None
    files: list[dict] | None = None
    download_id: str | None = None
    channel_url: str | None = None
    playlist_name: str | None = None
    playlist_url: str | None = None
    playlist_id: str | None = None


class ScheduleCreateRequest(BaseModel):
    url: str
    interval_minutes: int
    path: str | None = None
    collection_id: str | None = None
    audio_only: bool = False
    resolution: str | None = None
    is_playlist: bool = False
    is_channel: bool = False
    max_videos: int | None = None
    enabled: bool = True
    include_thumbnail: bool = False
    include_transcript: bool = False
    exclude_shorts: bool = False
    use_archive_file: bool = False
    concurrent_fragments: int | None = None


class DownloadLogRequest(BaseModel):
    text: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    paths = build_engine_paths()
    _setup_logging(paths.log_dir)
    config_path = paths.config_path
    override = os.environ.get("MEDIASHELF_CONFIG")
    if override:
        try:
            config_path = resolve_config_path(override)
        except ValueError as exc:
            logging.error("Invalid config override: %s", exc)
    config = load_config(config_path)
    services = build_services(paths, config)
    app.state.services = services
    services.jobs.start()
    logging.info("%s started (data_dir=%s)", APP_NAME, paths.data_dir)
    try:
        yield
    finally:
        services.jobs.stop(timeout=30)
        logging.info("%s stopped", APP_NAME)


app = FastAPI(
    title=APP_NAME,
    description="Collection, tracker and job queue API for a self-hosted media archive.",
    default_response_class=SafeJSONResponse,
    lifespan=lifespan,
)


@app.exception_handler(InvalidOperationError)
async def invalid_operation_handler(request: Request, exc: InvalidOperationError):
    return SafeJSONResponse(status_code=400, content={"success": False, "message": str(exc)})


@app.exception_handler(MediaShelfError)
async def mediashelf_error_handler(request: Request, exc: MediaShelfError):
    return SafeJSONResponse(status_code=500, content={"success": False, "message": str(exc)})


def _services():
    services = getattr(app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def _run_blocking(func, *args, **kwargs):
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


def _enqueue(job_type, data):
    job = _services().jobs.enqueue(job_type, data)
    return SafeJSONResponse(status_code=202, content={"job": job.to_dict()})


@app.get("/api/version")
async def api_version():
    return get_runtime_info(_services().paths)


# -- jobs


@app.post("/api/jobs", status_code=202)
async def api_create_job(payload: JobCreateRequest):
    if payload.type not in JOB_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown job type: {payload.type}")
    return await _run_blocking(_enqueue, payload.type, payload.data)


@app.get("/api/jobs")
async def api_list_jobs(limit: int | None = Query(None, ge=1, le=1000)):
    services = _services()
    if limit is None:
        limit = (services.config.get("jobs") or {}).get("list_limit", DEFAULT_JOB_LIST_LIMIT)
    jobs = await _run_blocking(services.jobs.list_jobs, limit)
    return {"jobs": [job.to_dict() for job in jobs]}


@app.get("/api/jobs/{job_id}")
async def api_get_job(job_id: str):
    job = await _run_blocking(_services().jobs.get_job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"job": job.to_dict()}


# -- collections


@app.get("/api/collections")
async def api_list_collections():
    collections = await _run_blocking(_services().collections.list)
    return {"collections": [item.to_dict() for item in collections]}


@app.post("/api/collections", status_code=201)
async def api_create_collection(payload: CollectionCreateRequest):
    collection = await _run_blocking(
        _services().collections.create,
        payload.name,
        payload.root_path,
    )
    return SafeJSONResponse(status_code=201, content={"collection": collection.to_dict()})


@app.get("/api/collections/{collection_id}")
async def api_get_collection(collection_id: str):
    collection = await _run_blocking(_services().collections.get, collection_id)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return {"collection": collection.to_dict()}


@app.put("/api/collections/{collection_id}")
async def api_update_collection(collection_id: str, payload: CollectionUpdateRequest):
    collection = await _run_blocking(_services().collections.update, collection_id, payload.name)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return {"collection": collection.to_dict()}


@app.delete("/api/collections/{collection_id}", status_code=202)
async def api_delete_collection(collection_id: str):
    return await _run_blocking(_enqueue, JOB_TYPE_DELETE_COLLECTION, {"collectionId": collection_id})


@app.post("/api/collections/{collection_id}/move", status_code=202)
async def api_move_collection(collection_id: str, payload: CollectionMoveRequest):
    data = {"collectionId": collection_id}
    if payload.name is not None:
        data["name"] = payload.name
    if payload.root_path is not None:
        data["rootPath"] = payload.root_path
    return await _run_blocking(_enqueue, JOB_TYPE_MOVE_COLLECTION, data)


@app.post("/api/collections/{collection_id}/merge", status_code=202)
async def api_merge_collection(collection_id: str, payload: CollectionMergeRequest):
    if payload.target_id == collection_id:
        raise HTTPException(status_code=400, detail="Cannot merge a collection into itself")
    return await _run_blocking(
        _enqueue,
        JOB_TYPE_MERGE_COLLECTION,
        {"sourceId": collection_id, "targetId": payload.target_id},
    )


# -- tracker


@app.get("/api/tracker/videos")
async def api_list_tracked_videos():
    videos = await _run_blocking(_services().tracker.list_videos)
    return {"videos": [video.to_dict() for video in videos]}


def _record_video(payload):
    services = _services()
    tracker = services.tracker
    output_dir = payload.output_dir or services.paths.downloads_dir
    if not os.path.isabs(output_dir):
        output_dir = os.path.join(services.paths.downloads_dir, output_dir)
    output_dir = os.path.normpath(output_dir)

    if payload.files is not None:
        now = now_ms()
        files = [TrackedFile.from_dict(item, now=now) for item in payload.files]
    else:
        log_text = None
        if payload.download_id:
            log_text = services.download_logs.read_log(payload.download_id)
        files = collect_video_files(output_dir, payload.id, log_text=log_text)

    full_path = payload.full_path
    if not full_path:
        media = [item for item in files if item.kind == FILE_KIND_MEDIA and item.exists]
        full_path = media[0].path if media else output_dir

    relative_path = tracker.relative_path_for(output_dir)
    video = tracker.track_video(
        TrackedVideo(
            id=payload.id,
            title=payload.title,
            channel=payload.channel,
            channel_id=payload.channel_id,
            url=payload.url,
            relative_path=relative_path,
            full_path=full_path,
            format=payload.format,
            resolution=payload.resolution,
            file_size=payload.file_size,
            duration=payload.duration,
            files=tuple(item for item in files if item.path),
        )
    )
    response = {"video": video.to_dict()}
    if payload.channel_url:
        channel = tracker.track_channel(
            name=payload.channel,
            url=payload.channel_url,
            relative_path=relative_path,
            video_id=payload.id,
            channel_id=payload.channel_id,
        )
        response["channel"] = channel.to_dict()
    if payload.playlist_url:
        playlist = tracker.track_playlist(
            name=payload.playlist_name or "",
            url=payload.playlist_url,
            relative_path=relative_path,
            video_id=payload.id,
            playlist_id=payload.playlist_id,
        )
        response["playlist"] = playlist.to_dict()
    return response


@app.post("/api/tracker/videos", status_code=201)
async def api_track_video(payload: TrackVideoRequest):
    response = await _run_blocking(_record_video, payload)
    return SafeJSONResponse(status_code=201, content=response)


@app.delete("/api/tracker/videos/{video_id}", status_code=202)
async def api_delete_tracked_video(video_id: str, relative_path: str = Query("")):
    return await _run_blocking(
        _enqueue,
        JOB_TYPE_DELETE_VIDEO,
        {"videoId": video_id, "relativePath": relative_path},
    )


@app.get("/api/tracker/channels")
async def api_list_tracked_channels():
    channels = await _run_blocking(_services().tracker.list_channels)
    return {"channels": [item.to_dict() for item in channels]}


@app.delete("/api/tracker/channels/{channel_id}", status_code=202)
async def api_delete_tracked_channel(channel_id: str):
    return await _run_blocking(_enqueue, JOB_TYPE_DELETE_CHANNEL, {"channelId": channel_id})


@app.get("/api/tracker/playlists")
async def api_list_tracked_playlists():
    playlists = await _run_blocking(_services().tracker.list_playlists)
    return {"playlists": [item.to_dict() for item in playlists]}


@app.delete("/api/tracker/playlists/{playlist_id}", status_code=202)
async def api_delete_tracked_playlist(playlist_id: str):
    return await _run_blocking(_enqueue, JOB_TYPE_DELETE_PLAYLIST, {"playlistId": playlist_id})


@app.get("/api/tracker/stats")
async def api_tracker_stats():
    return await _run_blocking(_services().tracker.get_stats)


# -- schedules


@app.get("/api/schedules")
async def api_list_schedules():
    schedules = await _run_blocking(_services().schedules.list_schedules)
    return {"schedules": [item.to_dict() for item in schedules]}


def _create_schedule(payload):
    services = _services()
    options = payload.model_dump()
    url = options.pop("url")
    interval_minutes = options.pop("interval_minutes")
    collection_id = options.get("collection_id")
    if collection_id and services.collections.get(collection_id) is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    try:
        return services.schedules.create_schedule(url, interval_minutes, **options)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/schedules", status_code=201)
async def api_create_schedule(payload: ScheduleCreateRequest):
    schedule = await _run_blocking(_create_schedule, payload)
    return SafeJSONResponse(status_code=201, content={"schedule": schedule.to_dict()})


@app.delete("/api/schedules/{schedule_id}")
async def api_delete_schedule(schedule_id: str):
    deleted = await _run_blocking(_services().schedules.delete_schedule, schedule_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return {"success": True}


# -- download logs


@app.get("/api/downloads/search")
async def api_search_downloads(video_id: str = Query(..., min_length=1)):
    download_ids = await _run_blocking(_services().download_logs.find_download_ids, video_id)
    return {"downloadIds": download_ids}


@app.post("/api/downloads/{download_id}/log")
async def api_append_download_log(download_id: str, payload: DownloadLogRequest):
    written = await _run_blocking(_services().download_logs.append, download_id, payload.text)
    return {"success": True, "lines": written}


@app.get("/api/downloads/{download_id}/log", response_class=PlainTextResponse)
async def api_read_download_log(download_id: str):
    text = await _run_blocking(_services().download_logs.read_log, download_id)
    if text is None:
        raise HTTPException(status_code=404, detail="No log for download")
    return PlainTextResponse(text)


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("MEDIASHELF_HOST") or "127.0.0.1"
    port = int(os.environ.get("MEDIASHELF_PORT") or "8000")
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
