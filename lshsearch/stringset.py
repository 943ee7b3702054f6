"""Thread-safe set of string identifiers."""

import threading


class StringSet:
    """
    A set of strings guarded by a lock.

    Used by concurrent search tasks to make sure a candidate is selected at
    most once per search call.
    """

    def __init__(self):
        self._items: set[str] = set()
        self._lock = threading.Lock()

    def contains(self, item: str) -> bool:
        with self._lock:
            return item in self._items

    def add(self, item: str) -> bool:
        """
        Add an item to the set.

        Returns:
            True if the item was inserted by this call, False if it was
            already present.
        """
        with self._lock:
            if item in self._items:
                return False
            self._items.add(item)
            return True

    def __contains__(self, item: str) -> bool:
        return self.contains(item)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
