"""Catalog of downloaded videos plus channel/playlist rollups.

A video is keyed by ``(id, relative_path)``: the same source video may be
tracked once per output directory. ``relative_path`` is the output directory
relative to the download root, or the absolute directory when it lies outside
of it (``""`` for the download root itself).

Re-observing a tracked video merges file observations instead of replacing
them, so deletion history survives re-downloads.
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from dataclasses import dataclass, field, replace
from typing import Any, Iterable
from uuid import uuid4

from db.migrations import ensure_tracker_tables
from engine.clock import now_ms
from engine.filesystem import Filesystem, LocalFilesystem
from engine.json_utils import loads_or_default, safe_json_dumps
from engine.paths import is_path_under, replace_path_prefix

logger = logging.getLogger(__name__)

FILE_KIND_MEDIA = "media"
FILE_KIND_THUMBNAIL = "thumbnail"
FILE_KIND_SUBTITLE = "subtitle"
FILE_KIND_INTERMEDIATE = "intermediate"
FILE_KIND_OTHER = "other"
FILE_KINDS = (
    FILE_KIND_MEDIA,
    FILE_KIND_THUMBNAIL,
    FILE_KIND_SUBTITLE,
    FILE_KIND_INTERMEDIATE,
    FILE_KIND_OTHER,
)

_THUMBNAIL_EXTS = {".jpg", ".jpeg", ".png", ".webp"}
_SUBTITLE_EXTS = {".vtt", ".srt", ".ass", ".ssa", ".lrc"}
_MEDIA_EXTS = {".mkv", ".mp4", ".webm", ".mp3", ".m4a", ".opus", ".wav", ".flac"}
_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")
_FORMAT_TAG_RE = re.compile(r"\.f\d{1,4}\.", re.IGNORECASE)

_LOG_PATH_PATTERNS = (
    re.compile(r"Destination:\s+(.*)$"),
    re.compile(r'Merging formats into\s+"([^"]+)"'),
    re.compile(r'Extracting audio to\s+"([^"]+)"'),
    re.compile(r"Writing .* to:\s+(.*)$", re.IGNORECASE),
)


@dataclass(frozen=True)
class TrackedFile:
    path: str
    kind: str = FILE_KIND_OTHER
    intermediate: bool = False
    exists: bool = True
    first_seen_at: int | None = None
    deleted_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "path": self.path,
            "kind": self.kind,
            "intermediate": self.intermediate,
            "exists": self.exists,
            "firstSeenAt": self.first_seen_at,
        }
        if self.deleted_at is not None:
            payload["deletedAt"] = self.deleted_at
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, now: int | None = None) -> "TrackedFile":
        kind = payload.get("kind")
        exists = payload.get("exists")
        first_seen = payload.get("firstSeenAt")
        deleted_at = payload.get("deletedAt")
        return cls(
            path=str(payload.get("path") or ""),
            kind=kind if kind in FILE_KINDS else FILE_KIND_OTHER,
            intermediate=bool(payload.get("intermediate")),
            exists=exists if isinstance(exists, bool) else True,
            first_seen_at=first_seen if isinstance(first_seen, int) else now,
            deleted_at=deleted_at if isinstance(deleted_at, int) else None,
        )


@dataclass(frozen=True)
class TrackedVideo:
    id: str
    title: str
    channel: str
    url: str
    relative_path: str
    full_path: str
    downloaded_at: int | None = None
    format: str = "video"
    channel_id: str | None = None
    resolution: str | None = None
    file_size: int | None = None
    duration: float | None = None
    files: tuple[TrackedFile, ...] = ()
    deleted: bool = False
    deleted_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "id": self.id,
            "title": self.title,
            "channel": self.channel,
            "channelId": self.channel_id,
            "url": self.url,
            "relativePath": self.relative_path,
            "fullPath": self.full_path,
            "downloadedAt": self.downloaded_at,
            "format": self.format,
            "resolution": self.resolution,
            "fileSize": self.file_size,
            "duration": self.duration,
            "files": [item.to_dict() for item in self.files],
        }
        if self.deleted:
            payload["deleted"] = True
            payload["deletedAt"] = self.deleted_at
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, now: int | None = None) -> "TrackedVideo":
        files = payload.get("files")
        parsed_files: list[TrackedFile] = []
        if isinstance(files, list):
            for item in files:
                if isinstance(item, TrackedFile):
                    parsed_files.append(item)
                elif isinstance(item, dict):
                    parsed_files.append(TrackedFile.from_dict(item, now=now))
        fmt = payload.get("format")
        return cls(
            id=str(payload.get("id") or ""),
            title=str(payload.get("title") or ""),
            channel=str(payload.get("channel") or ""),
            channel_id=payload.get("channelId"),
            url=str(payload.get("url") or ""),
            relative_path=str(payload.get("relativePath") or ""),
            full_path=str(payload.get("fullPath") or ""),
            downloaded_at=payload.get("downloadedAt"),
            format=fmt if fmt in ("video", "audio") else "video",
            resolution=payload.get("resolution"),
            file_size=payload.get("fileSize"),
            duration=payload.get("duration"),
            files=tuple(item for item in parsed_files if item.path),
            deleted=bool(payload.get("deleted")),
            deleted_at=payload.get("deletedAt"),
        )


@dataclass(frozen=True)
class TrackedAggregate:
    """Channel or playlist rollup of downloaded video ids."""

    id: str
    name: str
    url: str
    relative_path: str
    downloaded_at: int
    last_downloaded_at: int | None = None
    video_count: int = 0
    video_ids: tuple[str, ...] = ()
    source_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sourceId": self.source_id,
            "url": self.url,
            "relativePath": self.relative_path,
            "downloadedAt": self.downloaded_at,
            "lastDownloadedAt": self.last_downloaded_at,
            "videoCount": self.video_count,
            "videoIds": list(self.video_ids),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TrackedAggregate":
        video_ids = tuple(str(item) for item in payload.get("videoIds") or ())
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            source_id=payload.get("sourceId"),
            url=str(payload.get("url") or ""),
            relative_path=str(payload.get("relativePath") or ""),
            downloaded_at=int(payload.get("downloadedAt") or 0),
            last_downloaded_at=payload.get("lastDownloadedAt"),
            video_count=int(payload.get("videoCount") or len(video_ids)),
            video_ids=video_ids,
        )


@dataclass(frozen=True)
class VideoDeletion:
    video: TrackedVideo
    removed_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)


def classify_path(path: str) -> tuple[str, bool]:
    """Return ``(kind, intermediate)`` for a downloaded file path."""
    lower = path.lower()
    ext = os.path.splitext(lower)[1]
    intermediate = lower.endswith(_PARTIAL_SUFFIXES) or bool(_FORMAT_TAG_RE.search(lower))
    if ext in _THUMBNAIL_EXTS:
        return FILE_KIND_THUMBNAIL, intermediate
    if ext in _SUBTITLE_EXTS:
        return FILE_KIND_SUBTITLE, intermediate
    if ext in _MEDIA_EXTS:
        return FILE_KIND_MEDIA, intermediate
    return (FILE_KIND_INTERMEDIATE if intermediate else FILE_KIND_OTHER), intermediate


def build_tracked_file(
    path: str,
    first_seen_at: int,
    *,
    exists: bool | None = None,
    deleted_at: int | None = None,
) -> TrackedFile:
    kind, intermediate = classify_path(path)
    if exists is None:
        exists = os.path.exists(path)
    return TrackedFile(
        path=path,
        kind=kind,
        intermediate=intermediate,
        exists=exists,
        first_seen_at=first_seen_at,
        deleted_at=deleted_at,
    )


def extract_paths_from_log(text: str) -> list[str]:
    """Pull output file paths out of downloader log lines, de-duplicated in order."""
    seen: set[str] = set()
    paths: list[str] = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        for pattern in _LOG_PATH_PATTERNS:
            match = pattern.search(line)
            if not match:
                continue
            candidate = match.group(1).strip().strip('"')
            if candidate and candidate not in seen:
                seen.add(candidate)
                paths.append(candidate)
    return paths


def collect_video_files(
    output_dir: str,
    video_id: str,
    *,
    log_text: str | None = None,
    now: int | None = None,
) -> list[TrackedFile]:
    """Gather every file that belongs to ``video_id`` in ``output_dir``.

    Files are matched by the ``[<video id>]`` marker the downloader puts in
    output names. Paths only known from the log (intermediates removed after
    merging) are recorded as deleted.
    """
    now = now if now is not None else now_ms()
    marker = f"[{video_id}]"
    by_path: dict[str, TrackedFile] = {}
    if os.path.isdir(output_dir):
        for name in sorted(os.listdir(output_dir)):
            if marker not in name:
                continue
            full = os.path.join(output_dir, name)
            if os.path.isfile(full):
                by_path[full] = build_tracked_file(full, now, exists=True)
    for path in extract_paths_from_log(log_text or ""):
        if marker not in path or path in by_path:
            continue
        exists = os.path.exists(path)
        by_path[path] = build_tracked_file(
            path,
            now,
            exists=exists,
            deleted_at=None if exists else now,
        )
    return list(by_path.values())


def _earliest(*values: int | None) -> int | None:
    present = [value for value in values if value is not None]
    return min(present) if present else None


def merge_tracked_files(
    previous: Iterable[TrackedFile],
    incoming: Iterable[TrackedFile],
    *,
    now: int,
) -> tuple[TrackedFile, ...]:
    """Union two file observations keyed by path.

    A file seen in both keeps the earliest ``first_seen_at`` and ``deleted_at``,
    never downgrades a specific kind to ``other``, and ORs ``intermediate``.
    A file that existed before and is now reported missing gets ``deleted_at``.
    """
    merged: dict[str, TrackedFile] = {}
    for item in previous:
        merged[item.path] = item
    for item in incoming:
        prev = merged.get(item.path)
        if prev is None:
            merged[item.path] = item
            continue
        deleted_at = _earliest(prev.deleted_at, item.deleted_at)
        if deleted_at is None and prev.exists and not item.exists:
            deleted_at = now
        merged[item.path] = replace(
            item,
            first_seen_at=_earliest(prev.first_seen_at, item.first_seen_at),
            deleted_at=deleted_at,
            kind=prev.kind if item.kind == FILE_KIND_OTHER and prev.kind != FILE_KIND_OTHER else item.kind,
            intermediate=prev.intermediate or item.intermediate,
        )
    return tuple(merged.values())


def merge_video_records(existing: TrackedVideo, incoming: TrackedVideo, *, now: int) -> TrackedVideo:
    """Fold a repeat observation into the stored record.

    Top-level fields come from ``incoming``; the video's own deletion state is
    always kept from ``existing``.
    """
    return replace(
        incoming,
        files=merge_tracked_files(existing.files, incoming.files, now=now),
        deleted=existing.deleted,
        deleted_at=existing.deleted_at,
    )


class Tracker:
    def __init__(
        self,
        db_path: str,
        downloads_root: str,
        *,
        filesystem: Filesystem | None = None,
        clock=now_ms,
    ) -> None:
        self.db_path = db_path
        self.downloads_root = os.path.normpath(os.path.abspath(downloads_root))
        self.filesystem = filesystem or LocalFilesystem()
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_tracker_tables(conn)
        return conn

    # -- path helpers

    def relative_path_for(self, directory: str) -> str:
        absolute = os.path.normpath(os.path.abspath(directory))
        if not is_path_under(absolute, self.downloads_root):
            return absolute
        rel = os.path.relpath(absolute, self.downloads_root)
        return "" if rel == "." else rel

    def absolute_dir(self, relative_path: str) -> str:
        if os.path.isabs(relative_path):
            return os.path.normpath(relative_path)
        return os.path.normpath(os.path.join(self.downloads_root, relative_path))

    def _is_rooted_under(self, video: TrackedVideo, root: str) -> bool:
        return is_path_under(video.full_path, root) or is_path_under(
            self.absolute_dir(video.relative_path), root
        )

    # -- row helpers

    @staticmethod
    def _row_to_video(row: sqlite3.Row) -> TrackedVideo | None:
        payload = loads_or_default(row["data"], None)
        if not isinstance(payload, dict) or not payload.get("id"):
            logger.warning("Skipping unreadable tracked video row: %r", row["data"])
            return None
        return TrackedVideo.from_dict(payload)

    @staticmethod
    def _row_to_aggregate(row: sqlite3.Row) -> TrackedAggregate | None:
        payload = loads_or_default(row["data"], None)
        if not isinstance(payload, dict) or not payload.get("id"):
            logger.warning("Skipping unreadable channel/playlist row: %r", row["data"])
            return None
        return TrackedAggregate.from_dict(payload)

    @staticmethod
    def _write_video(cur: sqlite3.Cursor, video: TrackedVideo) -> None:
        cur.execute(
            """
            INSERT OR REPLACE INTO tracked_videos (
                video_id, relative_path, full_path, downloaded_at, deleted, data
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                video.id,
                video.relative_path,
                video.full_path,
                video.downloaded_at or 0,
                int(video.deleted),
                safe_json_dumps(video.to_dict()),
            ),
        )

    @staticmethod
    def _fetch_video(cur: sqlite3.Cursor, video_id: str, relative_path: str) -> TrackedVideo | None:
        cur.execute(
            "SELECT data FROM tracked_videos WHERE video_id=? AND relative_path=?",
            (video_id, relative_path),
        )
        row = cur.fetchone()
        return Tracker._row_to_video(row) if row else None

    # -- videos

    def track_video(self, record: TrackedVideo | dict[str, Any]) -> TrackedVideo:
        """Insert a video observation, merging into any record with the same key."""
        now = self._clock()
        incoming = record if isinstance(record, TrackedVideo) else TrackedVideo.from_dict(record, now=now)
        if not incoming.id:
            raise ValueError("video id is required")
        if incoming.downloaded_at is None:
            incoming = replace(incoming, downloaded_at=now)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            existing = self._fetch_video(cur, incoming.id, incoming.relative_path)
            stored = merge_video_records(existing, incoming, now=now) if existing else incoming
            self._write_video(cur, stored)
            conn.commit()
        finally:
            conn.close()
        return stored

    def get_video(self, video_id: str, relative_path: str) -> TrackedVideo | None:
        conn = self._connect()
        try:
            return self._fetch_video(conn.cursor(), video_id, relative_path)
        finally:
            conn.close()

    def list_videos(self) -> list[TrackedVideo]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT data FROM tracked_videos ORDER BY downloaded_at DESC, rowid DESC")
            videos = (self._row_to_video(row) for row in cur.fetchall())
            return [video for video in videos if video is not None]
        finally:
            conn.close()

    def mark_deleted(self, video_id: str, relative_path: str) -> bool:
        """Flag a video as deleted. Repeated calls keep the first ``deleted_at``."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            video = self._fetch_video(cur, video_id, relative_path)
            if video is None:
                conn.commit()
                return False
            if not video.deleted:
                self._write_video(cur, replace(video, deleted=True, deleted_at=self._clock()))
            conn.commit()
            return True
        finally:
            conn.close()

    def delete_video(self, video_id: str, relative_path: str) -> VideoDeletion | None:
        """Remove a video's files from disk and mark the record deleted.

        File removal is best-effort: a file that cannot be removed stays marked
        as existing and is reported in ``failed_files``.
        """
        video = self.get_video(video_id, relative_path)
        if video is None:
            return None
        now = self._clock()
        removed: list[str] = []
        failed: list[str] = []
        files: list[TrackedFile] = []
        for item in video.files:
            if not item.exists:
                files.append(item)
                continue
            try:
                if self.filesystem.exists(item.path):
                    self.filesystem.remove_file(item.path)
            except OSError as exc:
                logger.warning("failed to remove tracked file path=%s err=%s", item.path, exc)
                failed.append(item.path)
                files.append(item)
                continue
            removed.append(item.path)
            files.append(replace(item, exists=False, deleted_at=item.deleted_at or now))

        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            current = self._fetch_video(cur, video_id, relative_path) or video
            updated = replace(
                current,
                files=tuple(files),
                deleted=True,
                deleted_at=current.deleted_at if current.deleted else now,
            )
            self._write_video(cur, updated)
            conn.commit()
        finally:
            conn.close()
        return VideoDeletion(video=updated, removed_files=removed, failed_files=failed)

    def delete_videos_by_path(self, root_path: str) -> int:
        """Drop every tracked video rooted under ``root_path``. Returns the count removed."""
        root = os.path.normpath(os.path.abspath(root_path))
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT data FROM tracked_videos")
            doomed = [
                video
                for video in (self._row_to_video(row) for row in cur.fetchall())
                if video is not None and self._is_rooted_under(video, root)
            ]
            cur.executemany(
                "DELETE FROM tracked_videos WHERE video_id=? AND relative_path=?",
                [(video.id, video.relative_path) for video in doomed],
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Removed %d tracked videos under %s", len(doomed), root)
        return len(doomed)

    def _relocate(self, video: TrackedVideo, old_root: str, new_root: str) -> TrackedVideo:
        full_path = replace_path_prefix(video.full_path, old_root, new_root) or video.full_path
        directory = replace_path_prefix(self.absolute_dir(video.relative_path), old_root, new_root)
        relative_path = self.relative_path_for(directory) if directory else video.relative_path
        files = tuple(
            replace(item, path=replace_path_prefix(item.path, old_root, new_root) or item.path)
            for item in video.files
        )
        return replace(video, full_path=full_path, relative_path=relative_path, files=files)

    def update_paths_for_move(self, old_root: str, new_root: str) -> int:
        """Re-root every video under ``old_root`` to ``new_root``. Returns the count updated."""
        old_root = os.path.normpath(os.path.abspath(old_root))
        new_root = os.path.normpath(os.path.abspath(new_root))
        if old_root == new_root:
            return 0
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT data FROM tracked_videos")
            moving = [
                video
                for video in (self._row_to_video(row) for row in cur.fetchall())
                if video is not None and self._is_rooted_under(video, old_root)
            ]
            cur.executemany(
                "DELETE FROM tracked_videos WHERE video_id=? AND relative_path=?",
                [(video.id, video.relative_path) for video in moving],
            )
            for video in moving:
                relocated = self._relocate(video, old_root, new_root)
                existing = self._fetch_video(cur, relocated.id, relocated.relative_path)
                if existing is not None:
                    merged = merge_video_records(existing, relocated, now=now)
                    relocated = replace(
                        merged,
                        deleted=existing.deleted or relocated.deleted,
                        deleted_at=_earliest(existing.deleted_at, relocated.deleted_at),
                    )
                self._write_video(cur, relocated)
            for table in ("tracked_channels", "tracked_playlists"):
                self._relocate_aggregates(cur, table, old_root, new_root)
            conn.commit()
        finally:
            conn.close()
        logger.info("Re-rooted %d tracked videos from %s to %s", len(moving), old_root, new_root)
        return len(moving)

    def get_stats(self) -> dict[str, int]:
        videos = self.list_videos()
        return {
            "totalVideos": len(videos),
            "totalChannels": len(self.list_channels()),
            "totalPlaylists": len(self.list_playlists()),
            "totalSize": sum(video.file_size or 0 for video in videos if not video.deleted),
            "deletedVideos": sum(1 for video in videos if video.deleted),
        }

    # -- channel / playlist rollups

    def _relocate_aggregates(self, cur: sqlite3.Cursor, table: str, old_root: str, new_root: str) -> None:
        cur.execute(f"SELECT data FROM {table}")
        for row in cur.fetchall():
            aggregate = self._row_to_aggregate(row)
            if aggregate is None:
                continue
            directory = replace_path_prefix(self.absolute_dir(aggregate.relative_path), old_root, new_root)
            if directory is None:
                continue
            self._write_aggregate(cur, table, replace(aggregate, relative_path=self.relative_path_for(directory)))

    @staticmethod
    def _write_aggregate(cur: sqlite3.Cursor, table: str, aggregate: TrackedAggregate) -> None:
        cur.execute(
            f"""
            INSERT OR REPLACE INTO {table} (id, url, relative_path, downloaded_at, data)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                aggregate.id,
                aggregate.url,
                aggregate.relative_path,
                aggregate.downloaded_at,
                safe_json_dumps(aggregate.to_dict()),
            ),
        )

    def _track_aggregate(
        self,
        table: str,
        *,
        name: str,
        url: str,
        relative_path: str,
        video_id: str,
        source_id: str | None,
    ) -> TrackedAggregate:
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                f"""
                SELECT data FROM {table}
                WHERE url=? OR relative_path=?
                ORDER BY downloaded_at ASC, rowid ASC
                LIMIT 1
                """,
                (url, relative_path),
            )
            row = cur.fetchone()
            existing = self._row_to_aggregate(row) if row else None
            if existing is not None:
                video_ids = existing.video_ids
                if video_id not in video_ids:
                    video_ids = video_ids + (video_id,)
                aggregate = replace(
                    existing,
                    name=name or existing.name,
                    source_id=source_id or existing.source_id,
                    video_ids=video_ids,
                    video_count=len(video_ids),
                    last_downloaded_at=now,
                )
            else:
                aggregate = TrackedAggregate(
                    id=uuid4().hex,
                    name=name,
                    source_id=source_id,
                    url=url,
                    relative_path=relative_path,
                    downloaded_at=now,
                    last_downloaded_at=now,
                    video_count=1,
                    video_ids=(video_id,),
                )
            self._write_aggregate(cur, table, aggregate)
            conn.commit()
        finally:
            conn.close()
        return aggregate

    def track_channel(
        self,
        *,
        name: str,
        url: str,
        relative_path: str,
        video_id: str,
        channel_id: str | None = None,
    ) -> TrackedAggregate:
        return self._track_aggregate(
            "tracked_channels",
            name=name,
            url=url,
            relative_path=relative_path,
            video_id=video_id,
            source_id=channel_id,
        )

    def track_playlist(
        self,
        *,
        name: str,
        url: str,
        relative_path: str,
        video_id: str,
        playlist_id: str | None = None,
    ) -> TrackedAggregate:
        return self._track_aggregate(
            "tracked_playlists",
            name=name,
            url=url,
            relative_path=relative_path,
            video_id=video_id,
            source_id=playlist_id,
        )

    def _list_aggregates(self, table: str) -> list[TrackedAggregate]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT data FROM {table} ORDER BY downloaded_at DESC, rowid DESC")
            aggregates = (self._row_to_aggregate(row) for row in cur.fetchall())
            return [aggregate for aggregate in aggregates if aggregate is not None]
        finally:
            conn.close()

    def _delete_aggregate(self, table: str, aggregate_id: str) -> bool:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(f"DELETE FROM {table} WHERE id=?", (aggregate_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def list_channels(self) -> list[TrackedAggregate]:
        return self._list_aggregates("tracked_channels")

    def list_playlists(self) -> list[TrackedAggregate]:
        return self._list_aggregates("tracked_playlists")

    def delete_channel(self, channel_id: str) -> bool:
        return self._delete_aggregate("tracked_channels", channel_id)

    def delete_playlist(self, playlist_id: str) -> bool:
        return self._delete_aggregate("tracked_playlists", playlist_id)
