"""
Key-value blob store for cached frozen models.

Models are serialized with TorchScript so a cached extractor can be loaded
back without the Python classes that built it. The store itself only knows
about bytes; schema versioning mirrors the rest of the storage layer.
"""

from __future__ import annotations

import io
import logging
import os
import sqlite3
import threading
from typing import Optional

import torch

# Schema version - increment when schema changes
EXPECTED_SCHEMA_VERSION = 1


class ModelCache:
    """
    SQLite-backed model cache.

    Tables:
    - schema_meta: tracks schema version
    - model_blobs: one TorchScript archive per key
    """

    def __init__(self, cache_path: str):
        self.cache_path = cache_path
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        cache_dir = os.path.dirname(cache_path)
        if cache_dir:
            os.makedirs(cache_dir, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection (schema is created on first use)."""
        if self.conn is None:
            self.conn = sqlite3.connect(self.cache_path, check_same_thread=False)
            self._ensure_schema()
        return self.conn

    def _ensure_schema(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_meta'"
        )
        version = None
        if cursor.fetchone() is not None:
            cursor.execute("SELECT schema_version FROM schema_meta LIMIT 1")
            row = cursor.fetchone()
            version = row[0] if row else None

        if version == EXPECTED_SCHEMA_VERSION:
            return

        if version is not None:
            logging.warning(
                f"Model cache schema mismatch: found {version}, "
                f"expected {EXPECTED_SCHEMA_VERSION}. Recreating cache."
            )
        cursor.execute("DROP TABLE IF EXISTS model_blobs")
        cursor.execute("DROP TABLE IF EXISTS schema_meta")
        cursor.execute("""
            CREATE TABLE schema_meta (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                schema_version INTEGER NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        cursor.execute("""
            CREATE TABLE model_blobs (
                key TEXT PRIMARY KEY,
                blob BLOB NOT NULL,
                size_bytes INTEGER NOT NULL,
                saved_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        cursor.execute(
            "INSERT INTO schema_meta (id, schema_version) VALUES (1, ?)",
            (EXPECTED_SCHEMA_VERSION,)
        )
        self.conn.commit()
        logging.info(f"Created model cache schema version {EXPECTED_SCHEMA_VERSION} at {self.cache_path}")

    # -------------------------------------------------------------------------
    # Raw blobs
    # -------------------------------------------------------------------------

    def get_blob(self, key: str) -> Optional[bytes]:
        with self._lock:
            cursor = self._get_connection().cursor()
            cursor.execute("SELECT blob FROM model_blobs WHERE key = ?", (key,))
            row = cursor.fetchone()
        return bytes(row[0]) if row else None

    def put_blob(self, key: str, blob: bytes) -> None:
        with self._lock:
            conn = self._get_connection()
            conn.execute(
                "INSERT OR REPLACE INTO model_blobs (key, blob, size_bytes) VALUES (?, ?, ?)",
                (key, sqlite3.Binary(blob), len(blob)),
            )
            conn.commit()

    # -------------------------------------------------------------------------
    # Models
    # -------------------------------------------------------------------------

    def load(self, key: str) -> Optional[torch.jit.ScriptModule]:
        """Return the cached module for key, or None when the key is absent."""
        blob = self.get_blob(key)
        if blob is None:
            return None
        module = torch.jit.load(io.BytesIO(blob), map_location="cpu")
        logging.info(f"Loaded cached model '{key}' ({len(blob)} bytes)")
        return module

    def save(self, key: str, module: torch.jit.ScriptModule) -> None:
        """Store a TorchScript module under key, replacing any previous entry."""
        buffer = io.BytesIO()
        torch.jit.save(module, buffer)
        self.put_blob(key, buffer.getvalue())
        logging.info(f"Cached model '{key}' ({buffer.tell()} bytes)")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
