"""
Storage contract consumed by the LSH index.

A store keeps two kinds of data: vectors addressed by record ID, and bucket
memberships addressed by (permutation, hash value). Implementations must be
safe for concurrent calls from the index's worker threads: concurrent writes
to different keys must not corrupt state, and concurrent additions to the
same bucket must not lose members. Every backend failure is raised as
StorageError.
"""

from abc import ABC, abstractmethod
from typing import Iterator

import numpy as np


class Store(ABC):
    """Abstract key/bucket store for an LSH index."""

    @abstractmethod
    def clear(self) -> None:
        """Drop all vectors and bucket memberships."""

    @abstractmethod
    def set_vector(self, id: str, vec: np.ndarray) -> None:
        """Insert or replace the vector stored under ``id``."""

    @abstractmethod
    def get_vector(self, id: str) -> np.ndarray:
        """
        Fetch the vector stored under ``id``.

        Raises:
            StorageError: If the ID is absent or the backend fails.
        """

    @abstractmethod
    def set_hash(self, perm: int, hash_value: int, id: str) -> None:
        """Add ``id`` to the bucket of ``hash_value`` under permutation ``perm``."""

    @abstractmethod
    def get_hash_iterator(self, perm: int, hash_value: int) -> Iterator[str]:
        """
        Iterate over the IDs in a bucket.

        An unknown bucket yields nothing. Exhaustion is signalled by
        StopIteration, errors by StorageError.
        """

    @abstractmethod
    def set_metadata(self, key: str, value: bytes) -> None:
        """Store an opaque blob next to the index data."""

    @abstractmethod
    def get_metadata(self, key: str) -> bytes:
        """
        Fetch a blob stored with set_metadata().

        Raises:
            StorageError: If the key is absent or the backend fails.
        """

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
