"""
Random vectors search using lshsearch

This script builds an LSH index over random vectors stored in SQLite,
persists the hasher next to the data, and queries the reopened index.
"""

import logging

import numpy as np

from lshsearch import LSHConfig, LSHIndex, Record, SqliteStore, StorageError


def main():
    logging.basicConfig(level=logging.INFO)

    dims = 64
    rng = np.random.default_rng(0)
    vectors = rng.standard_normal(size=(2000, dims))
    records = [Record(f"vec_{i}", vec) for i, vec in enumerate(vectors)]

    config = LSHConfig(
        dims=dims,
        n_permutes=16,
        n_planes=12,
        mean=vectors.mean(axis=0),
        std=vectors.std(axis=0),
        distance_threshold=12.0,
        max_nn=10,
    )

    db_path = 'random_vectors.db'
    print(f"Creating search index at {db_path}...")

    with SqliteStore(db_path=db_path) as store:
        index = None
        if store.count() == len(records):
            try:
                index = LSHIndex.from_store(store)
                print("Index already exists with data. Reusing existing index.")
                print("Delete random_vectors.db to rebuild the index.")
            except StorageError:
                print("Index data found without a saved hasher, rebuilding.")

        if index is None:
            index = LSHIndex(config, store)
            index.train(records)
            index.save_hasher()
            print(f"Indexed {len(records)} vectors")

        with index:
            query = vectors[0] + 0.05 * rng.standard_normal(dims)
            results = index.search(query)

        print(f"\nFound {len(results)} neighbors:")
        for record in results:
            distance = np.linalg.norm(record.vec - query)
            print(f"  - {record.id}: distance {distance:.3f}")


if __name__ == "__main__":
    main()
