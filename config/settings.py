"""Application settings constants."""

from __future__ import annotations

# Default page size for job listings.
DEFAULT_JOB_LIST_LIMIT = 100

# What to do with jobs found "running" when the worker starts.
STALE_RUNNING_POLICIES = ("leave", "fail", "requeue")
DEFAULT_STALE_RUNNING_POLICY = "leave"
DEFAULT_STALE_RUNNING_GRACE_SECONDS = 0

LOG_FILE_NAME = "mediashelf.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
