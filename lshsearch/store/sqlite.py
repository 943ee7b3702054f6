"""
SqliteStore - persistent LSH storage in a single SQLite file.

Vectors are pickled numpy arrays keyed by record ID, bucket memberships live
in an indexed (table_id, hash_key, doc_id) table, and opaque blobs such as the
serialized hasher go to a metadata table.
"""

import logging
import pickle
import sqlite3
import threading
from typing import Iterator

import numpy as np

from lshsearch.errors import StorageError
from lshsearch.store.base import Store

logger = logging.getLogger(__name__)


def _hash_key(hash_value: int) -> str:
    # SQLite integers are signed 64-bit, so unsigned hashes are stored as hex text
    return format(hash_value, "016x")


class SqliteStore(Store):
    """
    A persistent store backed by SQLite.

    Every thread gets its own connection. The database runs in WAL mode so
    search threads can read while another connection writes, and writers wait
    up to ``timeout`` seconds for a lock before failing.

    Example:
        >>> with SqliteStore(db_path="vectors.db") as store:
        ...     index = LSHIndex(LSHConfig(dims=384), store)
        ...     index.train(records)
    """

    def __init__(
        self,
        db_path: str = "lshsearch_vectors.db",
        timeout: float = 5.0,
    ):
        """
        Initialize the SqliteStore.

        Args:
            db_path: Path to the SQLite database file.
            timeout: Seconds a connection waits for a database lock.
        """
        self.db_path = db_path
        self.timeout = timeout
        self._local = threading.local()
        self._conns: dict[threading.Thread, sqlite3.Connection] = {}
        self._conns_lock = threading.Lock()

        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn"):
            try:
                conn = sqlite3.connect(
                    self.db_path, timeout=self.timeout, check_same_thread=False
                )
            except sqlite3.Error as exc:
                raise StorageError(f"Cannot open {self.db_path}: {exc}") from exc
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._conns_lock:
                self._prune_dead_threads()
                self._conns[threading.current_thread()] = conn
        return self._local.conn

    def _prune_dead_threads(self) -> None:
        # Worker threads of a shut down index never come back for their connection
        for thread in [t for t in self._conns if not t.is_alive()]:
            self._conns.pop(thread).close()

    def connection_count(self) -> int:
        """Number of open connections held for live threads."""
        with self._conns_lock:
            self._prune_dead_threads()
            return len(self._conns)

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vectors (
                    id TEXT PRIMARY KEY,
                    vector BLOB NOT NULL
                )
            """)

            # LSH hash buckets table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS lsh_buckets (
                    table_id INTEGER NOT NULL,
                    hash_key TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    PRIMARY KEY (table_id, hash_key, doc_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value BLOB
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_lsh_lookup ON lsh_buckets (table_id, hash_key)")
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot initialize schema in {self.db_path}: {exc}") from exc

    def _write(self, sql: str, params: tuple = ()) -> None:
        conn = self._get_conn()
        try:
            conn.execute(sql, params)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Write to {self.db_path} failed: {exc}") from exc

    def _read_one(self, sql: str, params: tuple) -> sqlite3.Row:
        try:
            return self._get_conn().execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Read from {self.db_path} failed: {exc}") from exc

    def clear(self) -> None:
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM vectors")
            cursor.execute("DELETE FROM lsh_buckets")
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Cannot clear {self.db_path}: {exc}") from exc
        logger.info("Cleared vectors and buckets in %s", self.db_path)

    def set_vector(self, id: str, vec: np.ndarray) -> None:
        vector_bytes = pickle.dumps(np.asarray(vec, dtype=np.float64))
        self._write(
            "INSERT OR REPLACE INTO vectors (id, vector) VALUES (?, ?)",
            (id, vector_bytes),
        )

    def get_vector(self, id: str) -> np.ndarray:
        row = self._read_one("SELECT vector FROM vectors WHERE id = ?", (id,))
        if row is None:
            raise StorageError(f"Vector {id!r} not found")
        try:
            return pickle.loads(row["vector"])
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError,
                IndexError, TypeError, ValueError) as exc:
            raise StorageError(f"Vector {id!r} is corrupt: {exc}") from exc

    def set_hash(self, perm: int, hash_value: int, id: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO lsh_buckets (table_id, hash_key, doc_id) VALUES (?, ?, ?)",
            (perm, _hash_key(hash_value), id),
        )

    def get_hash_iterator(self, perm: int, hash_value: int) -> Iterator[str]:
        try:
            cursor = self._get_conn().execute(
                "SELECT doc_id FROM lsh_buckets WHERE table_id = ? AND hash_key = ? ORDER BY rowid",
                (perm, _hash_key(hash_value)),
            )
            ids = [row["doc_id"] for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise StorageError(f"Read from {self.db_path} failed: {exc}") from exc
        return iter(ids)

    def set_metadata(self, key: str, value: bytes) -> None:
        self._write(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, value),
        )

    def get_metadata(self, key: str) -> bytes:
        row = self._read_one("SELECT value FROM metadata WHERE key = ?", (key,))
        if row is None:
            raise StorageError(f"Metadata {key!r} not found")
        return bytes(row["value"])

    def count(self) -> int:
        """Number of stored vectors."""
        row = self._read_one("SELECT COUNT(*) AS count FROM vectors", ())
        return row["count"]

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._conns_lock:
            conns, self._conns = self._conns, {}
        for conn in conns.values():
            conn.close()
        if hasattr(self._local, "conn"):
            delattr(self._local, "conn")
