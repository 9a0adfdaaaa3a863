import copy
import json
import logging
import os
from dataclasses import dataclass

from config.settings import (
    DEFAULT_JOB_LIST_LIMIT,
    DEFAULT_STALE_RUNNING_GRACE_SECONDS,
    DEFAULT_STALE_RUNNING_POLICY,
    STALE_RUNNING_POLICIES,
)
from db.collection_registry import CollectionStore
from db.download_logs import DownloadLogStore
from db.schedules import ScheduleStore
from engine.collection_mutations import CollectionMutationEngine
from engine.filesystem import LocalFilesystem
from engine.job_handlers import JobHandlers
from engine.job_queue import JobQueue, JobStore
from engine.paths import EnginePaths
from engine.tracker import Tracker

DEFAULT_CONFIG = {
    "jobs": {
        "stale_running_policy": DEFAULT_STALE_RUNNING_POLICY,
        "stale_running_grace_seconds": DEFAULT_STALE_RUNNING_GRACE_SECONDS,
        "list_limit": DEFAULT_JOB_LIST_LIMIT,
    },
}


def load_config(path):
    """Read ``config.json`` layered over the defaults; a missing file yields defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not path or not os.path.exists(path):
        return config
    with open(path, "r") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError("config must be a JSON object")
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def validate_config(config):
    errors = []
    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    jobs = config.get("jobs")
    if jobs is None:
        return errors
    if not isinstance(jobs, dict):
        return ["jobs must be an object"]

    policy = jobs.get("stale_running_policy")
    if policy is not None and policy not in STALE_RUNNING_POLICIES:
        errors.append(
            "jobs.stale_running_policy must be one of: " + ", ".join(STALE_RUNNING_POLICIES)
        )

    grace = jobs.get("stale_running_grace_seconds")
    if grace is not None and (isinstance(grace, bool) or not isinstance(grace, int) or grace < 0):
        errors.append("jobs.stale_running_grace_seconds must be a non-negative integer")

    limit = jobs.get("list_limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
        errors.append("jobs.list_limit must be a positive integer")

    return errors


@dataclass
class Services:
    paths: EnginePaths
    config: dict
    collection_store: CollectionStore
    schedules: ScheduleStore
    tracker: Tracker
    download_logs: DownloadLogStore
    collections: CollectionMutationEngine
    handlers: JobHandlers
    job_store: JobStore
    jobs: JobQueue


def build_services(paths, config=None, *, filesystem=None):
    """Wire every store and the job queue for one process.

    The queue worker is not started here; callers decide when to ``start()`` it.
    """
    config = config if config is not None else copy.deepcopy(DEFAULT_CONFIG)
    errors = validate_config(config)
    if errors:
        raise ValueError("Invalid config: " + "; ".join(errors))
    jobs_config = {**DEFAULT_CONFIG["jobs"], **(config.get("jobs") or {})}
    filesystem = filesystem or LocalFilesystem()

    collection_store = CollectionStore(paths.collections_db_path)
    schedules = ScheduleStore(paths.schedules_db_path)
    tracker = Tracker(paths.tracker_db_path, paths.downloads_dir, filesystem=filesystem)
    download_logs = DownloadLogStore(paths.download_logs_db_path)
    collections = CollectionMutationEngine(
        collection_store,
        tracker,
        schedules,
        filesystem=filesystem,
    )
    handlers = JobHandlers(collections, tracker, download_logs)
    job_store = JobStore(paths.jobs_db_path)
    jobs = JobQueue(
        job_store,
        handlers.dispatch,
        stale_policy=jobs_config["stale_running_policy"],
        stale_grace_seconds=jobs_config["stale_running_grace_seconds"],
    )
    logging.info(
        "Services ready: data_dir=%s downloads_dir=%s stale_policy=%s",
        paths.data_dir,
        paths.downloads_dir,
        jobs_config["stale_running_policy"],
    )
    return Services(
        paths=paths,
        config=config,
        collection_store=collection_store,
        schedules=schedules,
        tracker=tracker,
        download_logs=download_logs,
        collections=collections,
        handlers=handlers,
        job_store=job_store,
        jobs=jobs,
    )
