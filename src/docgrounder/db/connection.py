"""SQLite connection layer with sqlite-vec extension and a bounded pool."""

from __future__ import annotations

import queue
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import sqlite_vec

from docgrounder.errors import RetrievalTimeoutError


class Database:
    """Per-project SQLite database with sqlite-vec vector search support."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self, check_same_thread: bool = True) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection."""
        conn = sqlite3.connect(self.db_path, check_same_thread=check_same_thread)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


class ConnectionPool:
    """Bounded pool of read connections shared by concurrent queries.

    Connections are opened lazily up to ``size``. When every connection is
    checked out, callers queue for up to ``acquire_timeout`` seconds and then
    get a RetrievalTimeoutError.
    """

    def __init__(self, database: Database, size: int = 4, acquire_timeout: float = 5.0) -> None:
        if size < 1:
            raise ValueError("pool size must be >= 1")
        self._database = database
        self.size = size
        self.acquire_timeout = acquire_timeout
        self._idle: queue.LifoQueue[sqlite3.Connection] = queue.LifoQueue()
        self._opened = 0
        self._lock = threading.Lock()
        self._all: list[sqlite3.Connection] = []

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Check out a connection for the duration of the ``with`` block."""
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._idle.put(conn)

    def close(self) -> None:
        """Close every connection the pool has opened."""
        with self._lock:
            for conn in self._all:
                conn.close()
            self._all.clear()
            self._opened = 0
        while not self._idle.empty():
            self._idle.get_nowait()

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            if self._opened < self.size:
                conn = self._database.connect(check_same_thread=False)
                self._opened += 1
                self._all.append(conn)
                return conn

        try:
            return self._idle.get(timeout=self.acquire_timeout)
        except queue.Empty:
            raise RetrievalTimeoutError(
                f"No store connection available within {self.acquire_timeout:.1f}s "
                f"(pool size {self.size})."
            ) from None
