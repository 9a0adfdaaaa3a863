"""Database helpers for mediashelf."""

from db.collection_registry import Collection, CollectionStore
from db.download_logs import DownloadLogStore
from db.schedules import Schedule, ScheduleStore

__all__ = ["Collection", "CollectionStore", "DownloadLogStore", "Schedule", "ScheduleStore"]
