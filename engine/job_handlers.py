"""Job type to handler dispatch.

Handlers return a JSON-ready dict with ``success`` and ``message``. A target
that no longer exists is reported as ``success: False`` rather than raised;
anything raised is recorded as the job's error by the queue.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from db.download_logs import DownloadLogStore
from engine.collection_mutations import CollectionMutationEngine
from engine.errors import JobPayloadError, UnknownJobTypeError
from engine.job_queue import (
    JOB_TYPE_DELETE_CHANNEL,
    JOB_TYPE_DELETE_COLLECTION,
    JOB_TYPE_DELETE_PLAYLIST,
    JOB_TYPE_DELETE_VIDEO,
    JOB_TYPE_MERGE_COLLECTION,
    JOB_TYPE_MOVE_COLLECTION,
    Job,
)
from engine.tracker import Tracker

logger = logging.getLogger(__name__)


def _require(data: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = data.get(key)
    if value is None or not isinstance(value, str):
        raise JobPayloadError(f"missing required field: {key}")
    if not allow_empty and not value.strip():
        raise JobPayloadError(f"missing required field: {key}")
    return value


def _not_found(message: str) -> dict[str, Any]:
    return {"success": False, "message": message}


class JobHandlers:
    def __init__(
        self,
        collections: CollectionMutationEngine,
        tracker: Tracker,
        download_logs: DownloadLogStore | None = None,
    ) -> None:
        self.collections = collections
        self.tracker = tracker
        self.download_logs = download_logs
        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            JOB_TYPE_DELETE_VIDEO: self.delete_video,
            JOB_TYPE_DELETE_CHANNEL: self.delete_channel,
            JOB_TYPE_DELETE_PLAYLIST: self.delete_playlist,
            JOB_TYPE_DELETE_COLLECTION: self.delete_collection,
            JOB_TYPE_MOVE_COLLECTION: self.move_collection,
            JOB_TYPE_MERGE_COLLECTION: self.merge_collection,
        }

    def dispatch(self, job: Job) -> dict[str, Any]:
        handler = self._handlers.get(job.type)
        if handler is None:
            raise UnknownJobTypeError(f"Unknown job type: {job.type}")
        return handler(job.data or {})

    def delete_video(self, data: dict[str, Any]) -> dict[str, Any]:
        video_id = _require(data, "videoId")
        relative_path = _require(data, "relativePath", allow_empty=True)
        deletion = self.tracker.delete_video(video_id, relative_path)
        if deletion is None:
            return _not_found(f"Video {video_id} not found")
        download_ids = self.download_logs.find_download_ids(video_id) if self.download_logs else []
        return {
            "success": True,
            "message": f"Deleted video {video_id}",
            "video": deletion.video.to_dict(),
            "removedFiles": deletion.removed_files,
            "failedFiles": deletion.failed_files,
            "downloadIds": download_ids,
        }

    def delete_channel(self, data: dict[str, Any]) -> dict[str, Any]:
        channel_id = _require(data, "channelId")
        if not self.tracker.delete_channel(channel_id):
            return _not_found(f"Channel {channel_id} not found")
        return {"success": True, "message": f"Deleted channel {channel_id}"}

    def delete_playlist(self, data: dict[str, Any]) -> dict[str, Any]:
        playlist_id = _require(data, "playlistId")
        if not self.tracker.delete_playlist(playlist_id):
            return _not_found(f"Playlist {playlist_id} not found")
        return {"success": True, "message": f"Deleted playlist {playlist_id}"}

    def delete_collection(self, data: dict[str, Any]) -> dict[str, Any]:
        collection_id = _require(data, "collectionId")
        result = self.collections.delete(collection_id)
        if result is None:
            return _not_found(f"Collection {collection_id} not found")
        payload = result.to_dict()
        if result.partial:
            payload["message"] = (
                f"Deleted collection {collection_id}; directory could not be removed"
            )
        else:
            payload["message"] = f"Deleted collection {collection_id}"
        return payload

    def move_collection(self, data: dict[str, Any]) -> dict[str, Any]:
        collection_id = _require(data, "collectionId")
        result = self.collections.move(
            collection_id,
            name=data.get("name"),
            root_path=data.get("rootPath"),
        )
        if result is None:
            return _not_found(f"Collection {collection_id} not found")
        payload = result.to_dict()
        payload["message"] = f"Moved collection {collection_id}"
        return payload

    def merge_collection(self, data: dict[str, Any]) -> dict[str, Any]:
        source_id = _require(data, "sourceId")
        target_id = _require(data, "targetId")
        result = self.collections.merge(source_id, target_id)
        if result is None:
            return _not_found("Source or target collection not found")
        payload = result.to_dict()
        payload["message"] = f"Merged collection {source_id} into {target_id}"
        return payload
