"""
Shared fixtures for lshsearch tests.
"""

import os
import tempfile

import numpy as np
import pytest

from lshsearch import Hasher, HasherConfig, HasherInstance, MemoryStore, SqliteStore


@pytest.fixture
def temp_db():
    """Create a temporary database file."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(path + suffix)
        except OSError:
            pass


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_db):
    """Each storage backend in turn."""
    if request.param == "memory":
        backend = MemoryStore()
    else:
        backend = SqliteStore(db_path=temp_db)
    yield backend
    backend.close()


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def x_axis_hasher():
    """One permutation with a single hyperplane (1, 0) through the origin."""
    config = HasherConfig(n_permutes=1, n_planes=1, bias_multiplier=0.0, dims=2)
    instance = HasherInstance(planes=np.array([[1.0, 0.0]]), biases=np.array([0.0]))
    return Hasher.from_instances(config, [instance])
