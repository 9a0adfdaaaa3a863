"""Cross-store collection mutations: delete, move and merge.

Each operation touches the filesystem, the tracker and the registry (and for
merge, schedules). Nothing here is transactional across stores; the ordering
below is what keeps a half-finished operation recoverable:

* delete is best-effort: directory removal failure is reported, not raised.
* move is fail-stop: any filesystem error aborts before tracker or registry
  changes.
* merge relocates files first, then rewrites references, then retires the
  source row.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from db.collection_registry import Collection, CollectionStore
from engine.errors import CollectionIOError, InvalidOperationError
from engine.filesystem import Filesystem, LocalFilesystem
from engine.paths import is_path_under

logger = logging.getLogger(__name__)


class TrackerUpdater(Protocol):
    def delete_videos_by_path(self, root_path: str) -> int:
        ...

    def update_paths_for_move(self, old_root: str, new_root: str) -> int:
        ...


class ScheduleRewriter(Protocol):
    def update_collection_references(self, old_collection_id: str, new_collection_id: str) -> int:
        ...

    def clear_collection_references(self, collection_id: str) -> int:
        ...


@dataclass(frozen=True)
class DeleteResult:
    collection_id: str
    deleted_videos: int
    directory_removed: bool
    directory_error: str | None = None
    cleared_schedules: int = 0

    @property
    def partial(self) -> bool:
        return self.directory_error is not None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "success": True,
            "collectionId": self.collection_id,
            "deletedVideos": self.deleted_videos,
            "directoryRemoved": self.directory_removed,
            "partialFailure": self.partial,
            "clearedSchedules": self.cleared_schedules,
        }
        if self.directory_error is not None:
            payload["directoryError"] = self.directory_error
        return payload


@dataclass(frozen=True)
class MoveResult:
    collection: Collection
    updated_videos: int = 0
    relocated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "collection": self.collection.to_dict(),
            "updatedVideos": self.updated_videos,
            "relocated": self.relocated,
        }


@dataclass(frozen=True)
class MergeResult:
    collection: Collection
    updated_videos: int = 0
    updated_schedules: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "collection": self.collection.to_dict(),
            "updatedVideos": self.updated_videos,
            "updatedSchedules": self.updated_schedules,
        }


def _normalize_root(path: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


class CollectionMutationEngine:
    def __init__(
        self,
        store: CollectionStore,
        tracker: TrackerUpdater,
        schedules: ScheduleRewriter,
        *,
        filesystem: Filesystem | None = None,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.schedules = schedules
        self.filesystem = filesystem or LocalFilesystem()

    # -- registry pass-throughs

    def create(self, name: str, root_path: str) -> Collection:
        name = (name or "").strip()
        if not name:
            raise InvalidOperationError("collection name is required")
        if not root_path:
            raise InvalidOperationError("collection rootPath is required")
        root_path = _normalize_root(root_path)
        owner = self.store.find_by_root_path(root_path)
        if owner is not None:
            raise InvalidOperationError(
                f"rootPath {root_path} already belongs to collection {owner.id}"
            )
        collection = self.store.create(name, root_path)
        logger.info("Created collection %s (%s) at %s", collection.id, name, root_path)
        return collection

    def list(self) -> list[Collection]:
        return self.store.list_all()

    def get(self, collection_id: str) -> Collection | None:
        return self.store.get(collection_id)

    def update(self, collection_id: str, name: str) -> Collection | None:
        """Rename a collection. Files are never touched."""
        name = (name or "").strip()
        if not name:
            raise InvalidOperationError("collection name is required")
        return self.store.update(collection_id, name=name)

    # -- destructive / cross-store operations

    def delete(self, collection_id: str) -> DeleteResult | None:
        collection = self.store.get(collection_id)
        if collection is None:
            return None
        root = collection.root_path

        deleted_videos = self.tracker.delete_videos_by_path(root)

        directory_removed = False
        directory_error = None
        if self.filesystem.exists(root):
            try:
                self.filesystem.remove_tree(root)
                directory_removed = True
            except OSError as exc:
                directory_error = str(exc)
                logger.warning(
                    "Collection directory removal failed id=%s root=%s err=%s",
                    collection_id,
                    root,
                    exc,
                )

        cleared = self.schedules.clear_collection_references(collection_id)
        self.store.delete(collection_id)
        logger.info(
            "Deleted collection %s: %d videos, directory_removed=%s",
            collection_id,
            deleted_videos,
            directory_removed,
        )
        return DeleteResult(
            collection_id=collection_id,
            deleted_videos=deleted_videos,
            directory_removed=directory_removed,
            directory_error=directory_error,
            cleared_schedules=cleared,
        )

    def _relocate_tree(self, source: str, target: str) -> None:
        staging = None
        try:
            self.filesystem.make_directories(target)
            if not self.filesystem.exists(source):
                return
            if is_path_under(source, target):
                # Target is an ancestor: entries copied up can land back inside source.
                staging = os.path.join(target, f".mediashelf-staging-{uuid4().hex}")
                self.filesystem.copy_tree(source, staging)
                self.filesystem.remove_tree(source)
                self.filesystem.copy_tree(staging, target)
                self.filesystem.remove_tree(staging)
            else:
                self.filesystem.copy_tree(source, target)
                self.filesystem.remove_tree(source)
        except OSError as exc:
            detail = f" (staged copy left at {staging})" if staging else ""
            raise CollectionIOError(
                f"failed to relocate {source} to {target}: {exc}{detail}",
                source=source,
                target=target,
            ) from exc

    def move(
        self,
        collection_id: str,
        *,
        name: str | None = None,
        root_path: str | None = None,
    ) -> MoveResult | None:
        collection = self.store.get(collection_id)
        if collection is None:
            return None

        final_name = (name or "").strip() or collection.name
        final_root = _normalize_root(root_path) if root_path else collection.root_path
        old_root = collection.root_path

        if final_root == old_root:
            if final_name == collection.name:
                return MoveResult(collection=collection)
            renamed = self.store.update(collection_id, name=final_name)
            return MoveResult(collection=renamed or collection)

        owner = self.store.find_by_root_path(final_root)
        if owner is not None and owner.id != collection_id:
            raise InvalidOperationError(
                f"rootPath {final_root} already belongs to collection {owner.id}"
            )
        if is_path_under(final_root, old_root):
            raise InvalidOperationError("cannot move a collection inside its own directory")

        self._relocate_tree(old_root, final_root)
        updated_videos = self.tracker.update_paths_for_move(old_root, final_root)
        updated = self.store.update(collection_id, name=final_name, root_path=final_root)
        logger.info(
            "Moved collection %s from %s to %s (%d videos)",
            collection_id,
            old_root,
            final_root,
            updated_videos,
        )
        return MoveResult(
            collection=updated or collection,
            updated_videos=updated_videos,
            relocated=True,
        )

    def merge(self, source_id: str, target_id: str) -> MergeResult | None:
        if source_id == target_id:
            raise InvalidOperationError("cannot merge a collection into itself")
        source = self.store.get(source_id)
        target = self.store.get(target_id)
        if source is None or target is None:
            return None
        if is_path_under(target.root_path, source.root_path):
            raise InvalidOperationError("cannot merge into a collection nested inside the source")

        self._relocate_tree(source.root_path, target.root_path)
        updated_videos = self.tracker.update_paths_for_move(source.root_path, target.root_path)
        updated_schedules = self.schedules.update_collection_references(source_id, target_id)
        self.store.delete(source_id)
        logger.info(
            "Merged collection %s into %s (%d videos, %d schedules)",
            source_id,
            target_id,
            updated_videos,
            updated_schedules,
        )
        return MergeResult(
            collection=self.store.get(target_id) or target,
            updated_videos=updated_videos,
            updated_schedules=updated_schedules,
        )
