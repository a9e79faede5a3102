"""
Per-entry value logging.

A sink receives every accepted value change of one subscription entry. The
SQLite sink keeps one database file per key with a single ``log`` table.
"""
import hashlib
import logging
import os
import re
import sqlite3
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]+')


class ValueSink(ABC):
    """Destination for the accepted values of one key."""

    @abstractmethod
    def write(self, key: str, value: str, timestamp: str):
        pass

    def close(self):
        pass


def safe_file_name(key: str) -> str:
    """
    Turn a topic or tag path into a file name, e.g. "MAIN.fTemp" -> "MAIN.fTemp".
    A key that had to be rewritten gets a short hash suffix so that "a/b" and
    "a_b" do not share a file.
    """
    name = _UNSAFE_CHARS.sub("_", key).strip("._") or "value"
    if name != key:
        name = f"{name}_{hashlib.sha1(key.encode('utf-8')).hexdigest()[:8]}"
    return name


class SQLiteValueSink(ValueSink):
    """Appends (timestamp, value) rows to <directory>/<key>.db."""

    def __init__(self, key: str, directory: str = "logs"):
        self.key = key
        os.makedirs(directory, exist_ok=True)
        self.path = os.path.join(directory, f"{safe_file_name(key)}.db")
        self._lock = threading.Lock()
        # Writes arrive on driver threads
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS log ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "timestamp TEXT, "
            "value TEXT)"
        )
        self._conn.commit()
        logger.debug(f"Logging {key} to {self.path}")

    def write(self, key: str, value: str, timestamp: str):
        with self._lock:
            if self._conn is None:
                return
            self._conn.execute(
                "INSERT INTO log (timestamp, value) VALUES (?, ?)",
                (timestamp, value)
            )
            self._conn.commit()

    def rows(self):
        """Return all logged (timestamp, value) rows in insertion order."""
        with self._lock:
            if self._conn is None:
                return []
            cur = self._conn.execute("SELECT timestamp, value FROM log ORDER BY id")
            return cur.fetchall()

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class SQLiteSinkFactory:
    """Creates SQLite sinks below a common directory."""

    def __init__(self, directory: str = "logs"):
        self.directory = directory

    def __call__(self, key: str) -> SQLiteValueSink:
        return SQLiteValueSink(key, self.directory)
