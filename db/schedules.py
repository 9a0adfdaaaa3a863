"""Persistence for recurring download schedules.

Only the storage side lives here. Firing due schedules is the job of an
external timer; the collection engine only needs the reference rewrites.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from db.migrations import ensure_schedules_table
from engine.clock import now_ms

logger = logging.getLogger(__name__)

_BOOL_FIELDS = (
    "audio_only",
    "is_playlist",
    "is_channel",
    "enabled",
    "include_thumbnail",
    "include_transcript",
    "exclude_shorts",
    "use_archive_file",
)


@dataclass(frozen=True)
class Schedule:
    id: str
    url: str
    interval_minutes: int
    next_run: int
    created_at: int
    enabled: bool = True
    path: str | None = None
    collection_id: str | None = None
    audio_only: bool = False
    resolution: str | None = None
    is_playlist: bool = False
    is_channel: bool = False
    max_videos: int | None = None
    last_run: int | None = None
    include_thumbnail: bool = False
    include_transcript: bool = False
    exclude_shorts: bool = False
    use_archive_file: bool = False
    concurrent_fragments: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "path": self.path,
            "collectionId": self.collection_id,
            "audioOnly": self.audio_only,
            "resolution": self.resolution,
            "isPlaylist": self.is_playlist,
            "isChannel": self.is_channel,
            "maxVideos": self.max_videos,
            "intervalMinutes": self.interval_minutes,
            "lastRun": self.last_run,
            "nextRun": self.next_run,
            "enabled": self.enabled,
            "createdAt": self.created_at,
            "includeThumbnail": self.include_thumbnail,
            "includeTranscript": self.include_transcript,
            "excludeShorts": self.exclude_shorts,
            "useArchiveFile": self.use_archive_file,
            "concurrentFragments": self.concurrent_fragments,
        }


def calculate_next_run(interval_minutes: int, *, now: int | None = None) -> int:
    base = now if now is not None else now_ms()
    return base + int(interval_minutes) * 60 * 1000


def _row_to_schedule(row: sqlite3.Row | None) -> Schedule | None:
    if not row:
        return None
    values = dict(row)
    for field in _BOOL_FIELDS:
        values[field] = bool(values.get(field))
    return Schedule(**values)


class ScheduleStore:
    def __init__(self, db_path: str, *, clock=now_ms) -> None:
        self.db_path = db_path
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_schedules_table(conn)
        return conn

    def create_schedule(self, url: str, interval_minutes: int, **options: Any) -> Schedule:
        if not url:
            raise ValueError("url is required")
        if int(interval_minutes) <= 0:
            raise ValueError("interval_minutes must be positive")
        now = self._clock()
        schedule = Schedule(
            id=uuid4().hex,
            url=url,
            interval_minutes=int(interval_minutes),
            next_run=calculate_next_run(interval_minutes, now=now),
            created_at=now,
            **options,
        )
        row = {
            field: (int(value) if field in _BOOL_FIELDS else value)
            for field, value in vars(schedule).items()
        }
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO schedules ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Created schedule: %s", schedule.id)
        return schedule

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM schedules WHERE id=?", (schedule_id,))
            return _row_to_schedule(cur.fetchone())
        finally:
            conn.close()

    def list_schedules(self) -> list[Schedule]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM schedules ORDER BY created_at DESC, rowid DESC")
            return [_row_to_schedule(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def delete_schedule(self, schedule_id: str) -> bool:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM schedules WHERE id=?", (schedule_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def update_collection_references(self, old_collection_id: str, new_collection_id: str) -> int:
        """Point every schedule that targets ``old_collection_id`` at the new id."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE schedules SET collection_id=? WHERE collection_id=?",
                (new_collection_id, old_collection_id),
            )
            conn.commit()
            changed = cur.rowcount
        finally:
            conn.close()
        logger.info(
            "Updated %d schedules from collection %s to %s",
            changed,
            old_collection_id,
            new_collection_id,
        )
        return changed

    def clear_collection_references(self, collection_id: str) -> int:
        """Detach schedules from a collection that no longer exists."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE schedules SET collection_id=NULL WHERE collection_id=?",
                (collection_id,),
            )
            conn.commit()
            changed = cur.rowcount
        finally:
            conn.close()
        if changed:
            logger.info("Detached %d schedules from deleted collection %s", changed, collection_id)
        return changed
