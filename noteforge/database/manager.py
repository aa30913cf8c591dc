"""
Render cache for Noteforge.

This module tracks the last rendered state of every output file in DuckDB so
that unchanged pages are not rewritten and keep their timestamps across runs.
"""

import duckdb
import hashlib
import logging
import threading
from datetime import datetime
from typing import Optional

from ..errors import CacheStoreUnavailable
from ..models import CacheDecision, CacheRecord


class RenderCache:
    """
    Manages the DuckDB render cache.

    One connection is shared by all pipeline workers; every statement runs
    under a lock.
    """

    def __init__(self, db_path: str = "noteforge.db"):
        """
        Initialize the render cache.

        Args:
            db_path: Path to the DuckDB database file, or ":memory:"
        """
        self.db_path = db_path
        self.connection = None
        self._lock = threading.Lock()

    def connect(self):
        """Establish connection to the database."""
        try:
            self.connection = duckdb.connect(self.db_path)
        except duckdb.Error as e:
            raise CacheStoreUnavailable(f"Cannot open render cache {self.db_path}: {e}") from e

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        self.initialize_database()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def initialize_database(self):
        """
        Create the cache table if it doesn't exist.
        """
        self._execute("""
            CREATE TABLE IF NOT EXISTS render_cache (
                filename VARCHAR PRIMARY KEY,
                fingerprint VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL,
                edited_at TIMESTAMP NOT NULL
            )
        """)

    def _execute(self, query: str, params=None):
        if not self.connection:
            raise CacheStoreUnavailable("Render cache connection not established")
        try:
            if params is None:
                return self.connection.execute(query)
            return self.connection.execute(query, params)
        except duckdb.Error as e:
            raise CacheStoreUnavailable(f"Render cache query failed: {e}") from e

    @staticmethod
    def calculate_fingerprint(rendered: bytes) -> str:
        """
        Calculate the SHA-256 fingerprint of rendered output.

        Args:
            rendered: The rendered bytes

        Returns:
            The SHA-256 hash as a hex string
        """
        return hashlib.sha256(rendered).hexdigest()

    def lookup(self, filename: str) -> Optional[CacheRecord]:
        """
        Get the stored record for an output file.

        Args:
            filename: Output filename

        Returns:
            The record if it exists, None otherwise
        """
        with self._lock:
            row = self._execute(
                "SELECT filename, fingerprint, created_at, edited_at FROM render_cache WHERE filename = ?",
                [filename]
            ).fetchone()
        return _to_record(row)

    def _find_by_fingerprint(self, fingerprint: str) -> Optional[CacheRecord]:
        row = self._execute(
            "SELECT filename, fingerprint, created_at, edited_at FROM render_cache "
            "WHERE fingerprint = ? ORDER BY created_at LIMIT 1",
            [fingerprint]
        ).fetchone()
        return _to_record(row)

    def decide(self, filename: str, rendered: bytes) -> CacheDecision:
        """
        Decide whether an output file must be written, updating the cache.

        Unchanged content is skipped and keeps its timestamps. New or changed
        content is written; a new filename whose content matches another
        record (a renamed page) inherits that record's timestamps.

        Args:
            filename: Output filename, unique within a run
            rendered: The rendered bytes

        Returns:
            CacheDecision.SKIP or CacheDecision.WRITE

        Raises:
            CacheStoreUnavailable: If the store cannot be queried
        """
        fingerprint = self.calculate_fingerprint(rendered)
        now = datetime.now()

        with self._lock:
            row = self._execute(
                "SELECT filename, fingerprint, created_at, edited_at FROM render_cache WHERE filename = ?",
                [filename]
            ).fetchone()
            existing = _to_record(row)

            if existing is not None:
                if existing.fingerprint == fingerprint:
                    logging.debug(f"Unchanged: {filename}")
                    return CacheDecision.SKIP
                self._execute(
                    "UPDATE render_cache SET fingerprint = ?, edited_at = ? WHERE filename = ?",
                    [fingerprint, now, filename]
                )
                return CacheDecision.WRITE

            created_at, edited_at = now, now
            renamed = self._find_by_fingerprint(fingerprint)
            if renamed is not None:
                logging.info(f"Detected rename {renamed.filename} -> {filename}")
                created_at, edited_at = renamed.created_at, renamed.edited_at

            self._execute(
                "INSERT INTO render_cache (filename, fingerprint, created_at, edited_at) VALUES (?, ?, ?, ?)",
                [filename, fingerprint, created_at, edited_at]
            )
            return CacheDecision.WRITE

    def count(self) -> int:
        with self._lock:
            return self._execute("SELECT COUNT(*) FROM render_cache").fetchone()[0]


def _to_record(row) -> Optional[CacheRecord]:
    if not row:
        return None
    return CacheRecord(
        filename=row[0],
        fingerprint=row[1],
        created_at=row[2],
        edited_at=row[3]
    )
