"""SQLite schema helpers for the jobs, collections, schedules, tracker and log stores."""

from __future__ import annotations

import sqlite3


def _existing_columns(cur: sqlite3.Cursor, table: str) -> set[str]:
    cur.execute(f"PRAGMA table_info({table})")
    return {row[1] for row in cur.fetchall()}


def ensure_jobs_table(conn: sqlite3.Connection) -> None:
    """Ensure the job queue table and its status/creation indexes exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            type TEXT NOT NULL,
            status TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            started_at INTEGER,
            completed_at INTEGER,
            error TEXT,
            data TEXT NOT NULL,
            result TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs (status)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_created ON jobs (created_at DESC)")
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs (status, created_at ASC)"
    )
    conn.commit()


def ensure_collections_table(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS collections (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            root_path TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_collections_root_path ON collections (root_path)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_collections_created ON collections (created_at DESC)")
    conn.commit()


def ensure_schedules_table(conn: sqlite3.Connection) -> None:
    """Ensure the schedules table exists, adding option columns introduced later."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS schedules (
            id TEXT PRIMARY KEY,
            url TEXT NOT NULL,
            path TEXT,
            collection_id TEXT,
            audio_only INTEGER NOT NULL DEFAULT 0,
            resolution TEXT,
            is_playlist INTEGER NOT NULL DEFAULT 0,
            is_channel INTEGER NOT NULL DEFAULT 0,
            max_videos INTEGER,
            interval_minutes INTEGER NOT NULL,
            last_run INTEGER,
            next_run INTEGER NOT NULL,
            enabled INTEGER NOT NULL DEFAULT 1,
            created_at INTEGER NOT NULL
        )
        """
    )
    existing_columns = _existing_columns(cur, "schedules")
    for column in (
        "include_thumbnail",
        "include_transcript",
        "exclude_shorts",
        "use_archive_file",
    ):
        if column not in existing_columns:
            cur.execute(f"ALTER TABLE schedules ADD COLUMN {column} INTEGER NOT NULL DEFAULT 0")
    if "concurrent_fragments" not in existing_columns:
        cur.execute("ALTER TABLE schedules ADD COLUMN concurrent_fragments INTEGER")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_schedules_enabled ON schedules (enabled)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_schedules_next_run ON schedules (next_run)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_schedules_collection ON schedules (collection_id)")
    conn.commit()


def ensure_tracker_tables(conn: sqlite3.Connection) -> None:
    """Ensure tracked video/channel/playlist tables exist.

    Video rows keep the full record as a JSON blob in ``data``; the key columns
    are duplicated so lookups and prefix scans do not need to parse JSON.
    """
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS tracked_videos (
            video_id TEXT NOT NULL,
            relative_path TEXT NOT NULL,
            full_path TEXT NOT NULL,
            downloaded_at INTEGER NOT NULL,
            deleted INTEGER NOT NULL DEFAULT 0,
            data TEXT NOT NULL,
            PRIMARY KEY (video_id, relative_path)
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_tracked_videos_downloaded ON tracked_videos (downloaded_at DESC)"
    )
    for table in ("tracked_channels", "tracked_playlists"):
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                relative_path TEXT NOT NULL,
                downloaded_at INTEGER NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_url ON {table} (url)")
        cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_relative_path ON {table} (relative_path)")
    conn.commit()


def ensure_download_logs_table(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS download_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            download_id TEXT NOT NULL,
            line TEXT NOT NULL,
            created_at INTEGER NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_download_logs_download ON download_logs (download_id, id)"
    )
    conn.commit()
