"""Append-only per-download log storage."""

from __future__ import annotations

import sqlite3

from db.migrations import ensure_download_logs_table
from engine.clock import now_ms


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DownloadLogStore:
    def __init__(self, db_path: str, *, clock=now_ms) -> None:
        self.db_path = db_path
        self._clock = clock

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        ensure_download_logs_table(conn)
        return conn

    def append(self, download_id: str, text: str) -> int:
        """Append ``text`` to a download's log, one row per line. Returns lines written."""
        did = (download_id or "").strip()
        if not did:
            raise ValueError("download_id is required")
        lines = [line for line in (text or "").splitlines() if line.strip()]
        if not lines:
            return 0
        now = self._clock()
        conn = self._connect()
        try:
            conn.executemany(
                "INSERT INTO download_logs (download_id, line, created_at) VALUES (?, ?, ?)",
                [(did, line, now) for line in lines],
            )
            conn.commit()
        finally:
            conn.close()
        return len(lines)

    def read_log(self, download_id: str) -> str | None:
        """Return the full log text, or ``None`` when nothing was recorded."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT line FROM download_logs WHERE download_id=? ORDER BY id ASC",
                (download_id,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()
        if not rows:
            return None
        return "\n".join(row["line"] for row in rows)

    def find_download_ids(self, video_id: str) -> list[str]:
        """Return ids of downloads whose log mentions ``video_id``, oldest first."""
        needle = (video_id or "").strip()
        if not needle:
            return []
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT download_id, MIN(id) AS first_line
                FROM download_logs
                WHERE line LIKE ? ESCAPE '\\'
                GROUP BY download_id
                ORDER BY first_line ASC
                """,
                (f"%{_escape_like(needle)}%",),
            )
            return [row["download_id"] for row in cur.fetchall()]
        finally:
            conn.close()
