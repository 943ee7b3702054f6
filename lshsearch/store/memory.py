"""In-memory store, mostly useful for tests and small throwaway indexes."""

import threading
from typing import Iterator

import numpy as np

from lshsearch.errors import StorageError
from lshsearch.store.base import Store


class MemoryStore(Store):
    """
    Dict-backed store guarded by a single lock.

    Buckets keep insertion order. Iterators walk a snapshot of the bucket
    taken when they are created, so concurrent writers cannot invalidate them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._vectors: dict[str, np.ndarray] = {}
        self._buckets: dict[tuple[int, int], dict[str, None]] = {}
        self._metadata: dict[str, bytes] = {}

    def clear(self) -> None:
        with self._lock:
            self._vectors.clear()
            self._buckets.clear()

    def set_vector(self, id: str, vec: np.ndarray) -> None:
        vec = np.array(vec, dtype=np.float64)
        with self._lock:
            self._vectors[id] = vec

    def get_vector(self, id: str) -> np.ndarray:
        with self._lock:
            vec = self._vectors.get(id)
        if vec is None:
            raise StorageError(f"Vector {id!r} not found")
        return vec.copy()

    def set_hash(self, perm: int, hash_value: int, id: str) -> None:
        with self._lock:
            self._buckets.setdefault((perm, hash_value), {})[id] = None

    def get_hash_iterator(self, perm: int, hash_value: int) -> Iterator[str]:
        with self._lock:
            snapshot = list(self._buckets.get((perm, hash_value), ()))
        return iter(snapshot)

    def set_metadata(self, key: str, value: bytes) -> None:
        with self._lock:
            self._metadata[key] = bytes(value)

    def get_metadata(self, key: str) -> bytes:
        with self._lock:
            value = self._metadata.get(key)
        if value is None:
            raise StorageError(f"Metadata {key!r} not found")
        return value

    def __len__(self) -> int:
        """Number of stored vectors."""
        with self._lock:
            return len(self._vectors)
