import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import uuid4

from config.settings import STALE_RUNNING_POLICIES
from db.migrations import ensure_jobs_table
from engine.clock import now_ms
from engine.json_utils import loads_or_default, safe_json_dumps

logger = logging.getLogger(__name__)

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

TERMINAL_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

JOB_TYPE_DELETE_VIDEO = "delete_video"
JOB_TYPE_DELETE_CHANNEL = "delete_channel"
JOB_TYPE_DELETE_PLAYLIST = "delete_playlist"
JOB_TYPE_DELETE_COLLECTION = "delete_collection"
JOB_TYPE_MOVE_COLLECTION = "move_collection"
JOB_TYPE_MERGE_COLLECTION = "merge_collection"

JOB_TYPES = (
    JOB_TYPE_DELETE_VIDEO,
    JOB_TYPE_DELETE_CHANNEL,
    JOB_TYPE_DELETE_PLAYLIST,
    JOB_TYPE_DELETE_COLLECTION,
    JOB_TYPE_MOVE_COLLECTION,
    JOB_TYPE_MERGE_COLLECTION,
)

STALE_POLICY_LEAVE = "leave"
STALE_POLICY_FAIL = "fail"
STALE_POLICY_REQUEUE = "requeue"
STALE_POLICIES = STALE_RUNNING_POLICIES

STALE_RUNNING_ERROR = "Job was still running when the worker restarted"


@dataclass(frozen=True)
class Job:
    id: str
    type: str
    status: str
    created_at: int
    data: dict
    started_at: int | None = None
    completed_at: int | None = None
    error: str | None = None
    result: Any = None

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "error": self.error,
            "data": self.data,
            "result": self.result,
        }


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logger.log(level, safe_json_dumps(payload, sort_keys=True))
    except (TypeError, ValueError) as exc:
        logger.log(level, f"log_event_serialization_failed: {exc} message={message}")


class JobStore:
    def __init__(self, db_path, *, clock=now_ms):
        self.db_path = db_path
        self._clock = clock

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_jobs_table(conn)
        return conn

    def _row_to_job(self, row):
        if not row:
            return None
        return Job(
            id=row["id"],
            type=row["type"],
            status=row["status"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            error=row["error"],
            data=loads_or_default(row["data"], {}),
            result=loads_or_default(row["result"], None),
        )

    def create_job(self, job_type, data=None, *, created_at=None):
        if not job_type:
            raise ValueError("job type is required")
        job = Job(
            id=uuid4().hex,
            type=job_type,
            status=JOB_STATUS_PENDING,
            created_at=created_at if created_at is not None else self._clock(),
            data=dict(data or {}),
        )
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO jobs (id, type, status, created_at, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (job.id, job.type, job.status, job.created_at, safe_json_dumps(job.data)),
            )
            conn.commit()
        finally:
            conn.close()
        return job

    def get_job(self, job_id):
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM jobs WHERE id=?", (job_id,))
            return self._row_to_job(cur.fetchone())
        finally:
            conn.close()

    def list_jobs(self, limit=100):
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM jobs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (max(int(limit), 0),),
            )
            return [self._row_to_job(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def claim_next_job(self):
        """Move the oldest pending job to running and return it, or ``None``."""
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                """
                SELECT * FROM jobs
                WHERE status=?
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (JOB_STATUS_PENDING,),
            )
            row = cur.fetchone()
            if not row:
                conn.commit()
                return None
            cur.execute(
                """
                UPDATE jobs
                SET status=?, started_at=COALESCE(started_at, ?)
                WHERE id=? AND status=?
                """,
                (JOB_STATUS_RUNNING, now, row["id"], JOB_STATUS_PENDING),
            )
            if cur.rowcount != 1:
                conn.commit()
                return None
            cur.execute("SELECT * FROM jobs WHERE id=?", (row["id"],))
            claimed = cur.fetchone()
            conn.commit()
            return self._row_to_job(claimed)
        finally:
            conn.close()

    def mark_completed(self, job_id, result=None):
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE jobs
                SET status=?, completed_at=?, result=?, error=NULL
                WHERE id=?
                """,
                (JOB_STATUS_COMPLETED, now, safe_json_dumps(result), job_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def mark_failed(self, job_id, error):
        now = self._clock()
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE jobs
                SET status=?, completed_at=?, error=?
                WHERE id=?
                """,
                (JOB_STATUS_FAILED, now, str(error), job_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def count_active(self, *, statuses=(JOB_STATUS_PENDING, JOB_STATUS_RUNNING)):
        placeholders = ", ".join("?" for _ in statuses)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT COUNT(*) FROM jobs WHERE status IN ({placeholders})",
                tuple(statuses),
            )
            return int(cur.fetchone()[0])
        finally:
            conn.close()

    def reconcile_stale_running(self, policy=STALE_POLICY_LEAVE, grace_seconds=0, *, now=None):
        """Apply ``policy`` to jobs left ``running`` by a previous process.

        Only jobs whose ``started_at`` is older than ``grace_seconds`` are
        touched. Returns the number of jobs changed.
        """
        if policy not in STALE_POLICIES:
            raise ValueError(f"unknown stale running policy: {policy}")
        if policy == STALE_POLICY_LEAVE:
            return 0
        now = now if now is not None else self._clock()
        cutoff = now - int(grace_seconds) * 1000
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            if policy == STALE_POLICY_FAIL:
                cur.execute(
                    """
                    UPDATE jobs
                    SET status=?, completed_at=?, error=?
                    WHERE status=? AND (started_at IS NULL OR started_at<=?)
                    """,
                    (JOB_STATUS_FAILED, now, STALE_RUNNING_ERROR, JOB_STATUS_RUNNING, cutoff),
                )
            else:
                cur.execute(
                    """
                    UPDATE jobs
                    SET status=?
                    WHERE status=? AND (started_at IS NULL OR started_at<=?)
                    """,
                    (JOB_STATUS_PENDING, JOB_STATUS_RUNNING, cutoff),
                )
            changed = cur.rowcount
            conn.commit()
        finally:
            conn.close()
        if changed:
            _log_event(logging.WARNING, "stale_jobs_reconciled", policy=policy, count=changed)
        return changed


class JobQueue:
    """Serial executor for persisted jobs.

    ``enqueue`` only persists and signals; a single consumer thread drains
    pending jobs oldest-first. Every drain, whether from the worker or a direct
    ``run_pending`` call, holds the same execution lock, so at most one job runs
    at a time in this process.
    """

    def __init__(
        self,
        store: JobStore,
        dispatch: Callable[[Job], Any],
        *,
        stale_policy=STALE_POLICY_LEAVE,
        stale_grace_seconds=0,
    ):
        if stale_policy not in STALE_POLICIES:
            raise ValueError(f"unknown stale running policy: {stale_policy}")
        self.store = store
        self.dispatch = dispatch
        self.stale_policy = stale_policy
        self.stale_grace_seconds = stale_grace_seconds
        self._execute_lock = threading.Lock()
        self._wakeup = threading.Condition()
        self._signalled = False
        self._stop_event = threading.Event()
        self._thread = None

    def enqueue(self, job_type, data=None):
        job = self.store.create_job(job_type, data)
        _log_event(logging.INFO, "job_enqueued", job_id=job.id, job_type=job.type)
        self._signal()
        return job

    def get_job(self, job_id):
        return self.store.get_job(job_id)

    def list_jobs(self, limit=100):
        return self.store.list_jobs(limit)

    def _signal(self):
        with self._wakeup:
            self._signalled = True
            self._wakeup.notify()

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self.store.reconcile_stale_running(self.stale_policy, self.stale_grace_seconds)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="job-queue", daemon=True)
        self._thread.start()
        self._signal()

    def stop(self, timeout=None):
        self._stop_event.set()
        with self._wakeup:
            self._wakeup.notify_all()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run_loop(self):
        _log_event(logging.INFO, "worker_started")
        while True:
            with self._wakeup:
                while not self._signalled and not self._stop_event.is_set():
                    self._wakeup.wait()
                if self._stop_event.is_set():
                    break
                self._signalled = False
            try:
                self.run_pending()
            except sqlite3.Error:
                logger.exception("[WORKER] drain_failed")
        _log_event(logging.INFO, "worker_stopped")

    def run_pending(self):
        """Drain pending jobs on the calling thread. Returns how many ran."""
        processed = 0
        with self._execute_lock:
            while not self._stop_event.is_set():
                job = self.store.claim_next_job()
                if job is None:
                    break
                self._execute_job(job)
                processed += 1
        return processed

    def wait_for_idle(self, timeout=None, *, poll_seconds=0.02):
        """Block until no job is pending or executing. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            pending = self.store.count_active(statuses=(JOB_STATUS_PENDING,))
            if pending == 0 and not self._execute_lock.locked():
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(poll_seconds)

    def _execute_job(self, job):
        _log_event(logging.INFO, "job_started", job_id=job.id, job_type=job.type)
        started = time.monotonic()
        try:
            result = self.dispatch(job)
        except Exception as exc:
            _log_event(
                logging.ERROR,
                "job_failed",
                job_id=job.id,
                job_type=job.type,
                error=str(exc),
                exc_type=type(exc).__name__,
            )
            self._persist_failure(job, str(exc) or type(exc).__name__)
            return
        try:
            self.store.mark_completed(job.id, result)
        except (sqlite3.Error, TypeError, ValueError) as persist_exc:
            _log_event(
                logging.ERROR,
                "job_persistence_failed",
                job_id=job.id,
                status=JOB_STATUS_COMPLETED,
                error=str(persist_exc),
            )
            self._persist_failure(job, f"result_persistence_failed:{persist_exc}")
            return
        _log_event(
            logging.INFO,
            "job_completed",
            job_id=job.id,
            job_type=job.type,
            success=bool(result.get("success", True)) if isinstance(result, dict) else True,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def _persist_failure(self, job, error):
        try:
            self.store.mark_failed(job.id, error)
        except sqlite3.Error as fallback_exc:
            _log_event(
                logging.ERROR,
                "job_persistence_failed",
                job_id=job.id,
                status=JOB_STATUS_FAILED,
                error=str(fallback_exc),
            )
