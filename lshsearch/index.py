"""
LSHIndex - approximate nearest neighbor search over a pluggable store.

The index pairs one Hasher with one Store. Training hashes every record with
all permutations and writes vectors and bucket memberships to the store.
Searching scans the query's bucket in every permutation concurrently and
keeps the candidates that pass the distance threshold.
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from lshsearch.config import LSHConfig
from lshsearch.distance import DistanceFn, get_distance
from lshsearch.errors import SerializationError, TrainError
from lshsearch.hasher import Hasher
from lshsearch.operators import Comparison, get_operator
from lshsearch.store.base import Store
from lshsearch.store.memory import MemoryStore
from lshsearch.stringset import StringSet

logger = logging.getLogger(__name__)

HASHER_METADATA_KEY = "hasher"
CONFIG_METADATA_KEY = "config"


@dataclass(frozen=True, eq=False)
class Record:
    """A vector and its caller-assigned unique identifier."""

    id: str
    vec: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "vec", np.asarray(self.vec, dtype=np.float64).flatten())


class LSHIndex:
    """
    Approximate nearest neighbor index built on random hyperplane LSH.

    API:
    - __init__(config, store=None, hasher=None)
    - train(records) - Replace the indexed contents with the given records
    - search(query) - Return up to max_nn records close to the query
    - dump_hasher() / load_hasher(blob) - Serialize and restore the hyperplanes
    - save_hasher() / restore_hasher() - Keep the hyperplanes in the store
    - from_store(store) - Reopen an index saved with save_hasher()

    Example:
        >>> import numpy as np
        >>> index = LSHIndex(LSHConfig(dims=64, distance_threshold=0.5), SqliteStore("vectors.db"))
        >>> vectors = np.random.rand(100, 64)
        >>> index.train([Record(str(i), vec) for i, vec in enumerate(vectors)])
        >>> results = index.search(vectors[0])
    """

    def __init__(
        self,
        config: LSHConfig,
        store: Optional[Store] = None,
        hasher: Optional[Hasher] = None,
    ):
        """
        Initialize the LSHIndex.

        Args:
            config: Index configuration, validated here.
            store: Storage backend. Defaults to a fresh MemoryStore.
            hasher: Prebuilt hasher. If None, hyperplanes are sampled from
                config.mean and config.std.

        Raises:
            ConfigError: If the configuration is invalid.
        """
        config.validate()
        self.config = config
        self.store = store if store is not None else MemoryStore()

        if hasher is None:
            hasher = Hasher(config.hasher_config())
            hasher.generate(config.mean, config.std, seed=config.seed)
        self.hasher = hasher

        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="lshsearch",
        )

    @classmethod
    def from_store(cls, store: Store, key: str = HASHER_METADATA_KEY) -> "LSHIndex":
        """
        Reopen an index persisted with save_hasher().

        The configuration and the hasher are both read from the store's
        metadata, so no hyperplanes are sampled.

        Args:
            store: Store holding a previously trained index.
            key: Metadata key of the hasher blob.

        Raises:
            StorageError: If the configuration or the hasher was never saved.
            SerializationError: If either of them is malformed.
        """
        blob = store.get_metadata(CONFIG_METADATA_KEY)
        try:
            values = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise SerializationError(f"Malformed index configuration: {exc}") from exc
        if not isinstance(values, dict):
            raise SerializationError("Malformed index configuration: expected an object")

        config = LSHConfig.from_dict(values)
        hasher = Hasher(config.hasher_config())
        hasher.load(store.get_metadata(key))
        return cls(config, store, hasher=hasher)

    @property
    def dims(self) -> int:
        return self.hasher.config.dims

    def _check_vector(self, vec: np.ndarray) -> np.ndarray:
        vec = np.asarray(vec, dtype=np.float64)
        if vec.ndim != 1:
            raise ValueError(f"Vector must be 1D array, got shape {vec.shape}")
        if vec.shape[0] != self.dims:
            raise ValueError(
                f"Vector dimension {vec.shape[0]} does not match index dimension {self.dims}"
            )
        return vec

    def train(self, records: Iterable[Record]) -> None:
        """
        Replace the indexed contents with the given records.

        The store is cleared first, then every record is written and hashed
        into its buckets by an independent task.

        Args:
            records: Records with unique IDs and vectors of length dims.

        Raises:
            ValueError: If a vector has the wrong dimension or an ID repeats.
                The store is left untouched.
            StorageError: If the store cannot be cleared.
            TrainError: If any record failed; every other record has still
                been processed.
        """
        records = list(records)
        seen = set()
        for record in records:
            self._check_vector(record.vec)
            if record.id in seen:
                raise ValueError(f"Duplicate record ID {record.id!r}")
            seen.add(record.id)

        self.store.clear()

        futures: dict[Future, str] = {
            self._executor.submit(self._index_record, record): record.id
            for record in records
        }
        failures: dict[str, Exception] = {}
        for future in as_completed(futures):
            record_id = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.warning("Failed to index record %s: %s", record_id, exc)
                failures[record_id] = exc

        if failures:
            raise TrainError(failures)
        logger.debug("Trained index with %d records", len(records))

    def _index_record(self, record: Record) -> None:
        hashes = self.hasher.get_hashes(record.vec)
        self.store.set_vector(record.id, record.vec)
        for perm, hash_value in hashes.items():
            self.store.set_hash(perm, hash_value, record.id)

    def search(self, query: np.ndarray) -> list[Record]:
        """
        Find records close to the query.

        Every permutation's bucket is scanned by its own task. A candidate is
        kept when ``value <threshold_operator> distance_threshold`` holds for
        the configured metric, and is returned at most once even when several
        buckets contain it.

        Args:
            query: 1D array of length dims.

        Returns:
            Matching records in completion order, at most max_nn of them and,
            unless cap_to_permutations is disabled, at most n_permutes.

        Raises:
            ValueError: If the query has the wrong dimension.
            DistanceError: If the configured metric is not supported.
            StorageError: On the first store failure; matches found so far
                are discarded.
        """
        distance = get_distance(self.config.distance_metric)
        compare = get_operator(self.config.threshold_operator)
        query = self._check_vector(np.asarray(query, dtype=np.float64).flatten())

        hashes = self.hasher.get_hashes(query)
        selected = StringSet()
        futures = [
            self._executor.submit(
                self._scan_bucket, perm, hash_value, query, distance, compare, selected
            )
            for perm, hash_value in hashes.items()
        ]

        limit = self.config.max_nn
        if self.config.cap_to_permutations:
            limit = min(limit, len(hashes))

        results: list[Record] = []
        try:
            for future in as_completed(futures):
                results.extend(future.result())
        except Exception as exc:
            for future in futures:
                future.cancel()
            logger.warning("Search aborted: %s", exc)
            raise

        logger.debug(
            "Search selected %d candidates, returning %d",
            len(results), min(len(results), limit),
        )
        return results[:limit]

    def _scan_bucket(
        self,
        perm: int,
        hash_value: int,
        query: np.ndarray,
        distance: DistanceFn,
        compare: Comparison,
        selected: StringSet,
    ) -> list[Record]:
        max_nn = self.config.max_nn
        threshold = self.config.distance_threshold
        matches = []
        for record_id in self.store.get_hash_iterator(perm, hash_value):
            if len(selected) >= max_nn:
                break
            if selected.contains(record_id):
                continue
            vec = self.store.get_vector(record_id)
            value = distance(vec, query)
            # add() only succeeds for one task when buckets overlap
            if compare(value, threshold) and selected.add(record_id):
                matches.append(Record(record_id, vec))
        return matches

    def dump_hasher(self) -> bytes:
        """Serialize the hasher's hyperplanes and configuration."""
        return self.hasher.dump()

    def load_hasher(self, blob: bytes) -> None:
        """
        Replace the hasher state with a blob from dump_hasher().

        Raises:
            SerializationError: If the blob is corrupt or malformed.
        """
        self.hasher.load(blob)

    def save_hasher(self, key: str = HASHER_METADATA_KEY) -> None:
        """Persist the hasher and the index configuration in the store's metadata."""
        self.store.set_metadata(key, self.dump_hasher())
        self.store.set_metadata(
            CONFIG_METADATA_KEY, json.dumps(self.config.to_dict()).encode("utf-8")
        )

    def restore_hasher(self, key: str = HASHER_METADATA_KEY) -> None:
        """
        Load the hasher previously persisted with save_hasher().

        Raises:
            StorageError: If nothing is stored under the key.
            SerializationError: If the stored blob is malformed.
        """
        self.load_hasher(self.store.get_metadata(key))

    def close(self) -> None:
        """Stop the worker threads. The store is left open."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "LSHIndex":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
