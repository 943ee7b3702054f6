"""
lshsearch - Approximate nearest neighbor search with Locality-Sensitive Hashing.

Vectors are hashed by several independent sets of random hyperplanes so that
similar vectors collide into the same buckets with high probability. Buckets
and vectors live in a pluggable store (in-memory or SQLite).
"""

from lshsearch.__version__ import __version__
from lshsearch.config import HasherConfig, LSHConfig
from lshsearch.errors import (
    ConfigError,
    DistanceError,
    LSHError,
    SerializationError,
    StorageError,
    TrainError,
)
from lshsearch.hasher import Hasher, HasherInstance
from lshsearch.index import LSHIndex, Record
from lshsearch.store import MemoryStore, SqliteStore, Store

__all__ = [
    "ConfigError",
    "DistanceError",
    "Hasher",
    "HasherConfig",
    "HasherInstance",
    "LSHConfig",
    "LSHError",
    "LSHIndex",
    "MemoryStore",
    "Record",
    "SerializationError",
    "SqliteStore",
    "Store",
    "StorageError",
    "TrainError",
    "__version__",
]
