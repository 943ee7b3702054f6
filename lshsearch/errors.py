"""
Exceptions raised by lshsearch.

All errors derive from LSHError so callers can catch everything coming out of
the index with a single except clause.
"""


class LSHError(Exception):
    """Base class for all lshsearch errors."""


class ConfigError(LSHError, ValueError):
    """Invalid index or hasher configuration."""


class DistanceError(LSHError):
    """Distance can't be calculated for the configured metric."""


class StorageError(LSHError):
    """A storage backend operation failed."""


class SerializationError(LSHError):
    """Persisted hasher state is corrupt or malformed."""


class TrainError(LSHError):
    """
    One or more records failed while rebuilding the index.

    Every record is processed regardless of the others' outcome, so
    ``failures`` holds the complete picture for the call.

    Attributes:
        failures: Mapping of record ID to the exception raised for it.
    """

    def __init__(self, failures: dict[str, Exception]):
        self.failures = dict(failures)
        ids = ", ".join(sorted(self.failures)[:5])
        more = "" if len(self.failures) <= 5 else ", ..."
        super().__init__(
            f"{len(self.failures)} record(s) failed to index: {ids}{more}"
        )
