"""
Storage backends for the LSH index.

Store defines the contract the index relies on; MemoryStore and SqliteStore
implement it.
"""

from lshsearch.store.base import Store
from lshsearch.store.memory import MemoryStore
from lshsearch.store.sqlite import SqliteStore

__all__ = ["MemoryStore", "SqliteStore", "Store"]
