"""
Configuration for the LSH index and its hasher.

LSHConfig holds every constant needed to create a Hasher instance and to run
searches against an index. It is built in code; nothing is read from the
environment.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping, Optional

import numpy as np

from lshsearch.distance import EUCLIDEAN
from lshsearch.errors import ConfigError
from lshsearch.operators import get_operator

# Each hyperplane contributes one bit to a 64-bit hash value
MAX_PLANES = 64


@dataclass(frozen=True)
class HasherConfig:
    """The part of the configuration persisted together with the hasher."""

    n_permutes: int
    n_planes: int
    bias_multiplier: float
    dims: int

    def validate(self) -> None:
        """
        Check the hasher invariants.

        Raises:
            ConfigError: If any count is non-positive or n_planes exceeds 64.
        """
        if self.dims <= 0:
            raise ConfigError(f"dims must be > 0, got {self.dims}")
        if self.n_permutes <= 0:
            raise ConfigError(f"n_permutes must be > 0, got {self.n_permutes}")
        if self.n_planes <= 0:
            raise ConfigError(f"n_planes must be > 0, got {self.n_planes}")
        if self.n_planes > MAX_PLANES:
            raise ConfigError(
                f"n_planes must be <= {MAX_PLANES} to fit a 64-bit hash, got {self.n_planes}"
            )


@dataclass
class LSHConfig:
    """
    Index configuration.

    Attributes:
        dims: Dimensionality of every indexed and query vector.
        n_permutes: Number of independent hash permutations (more = better recall).
        n_planes: Hyperplanes per permutation, one hash bit each (more = better precision).
        bias_multiplier: Scale of the hyperplane offsets; 0 makes every
            hyperplane pass through the origin.
        mean: Per-dimension mean of the data, used to place hyperplane offsets.
            Defaults to zeros.
        std: Per-dimension standard deviation of the data. Defaults to ones.
        distance_metric: Metric selector, see lshsearch.distance.
        distance_threshold: Candidates are kept when
            ``value <threshold_operator> distance_threshold``.
        max_nn: Maximum number of neighbors returned by a search.
        threshold_operator: Comparison applied to the metric value, "<=" by default
            for every metric, cosine similarity included.
        cap_to_permutations: Also cap search results at n_permutes.
        max_workers: Size of the thread pool used by train and search.
            None lets ThreadPoolExecutor pick its default.
        seed: Seed for hyperplane sampling. None draws fresh entropy.
    """

    dims: int
    n_permutes: int = 8
    n_planes: int = 16
    bias_multiplier: float = 1.0
    mean: Optional[np.ndarray] = None
    std: Optional[np.ndarray] = None
    distance_metric: str = EUCLIDEAN
    distance_threshold: float = 1.0
    max_nn: int = 10
    threshold_operator: str = "<="
    cap_to_permutations: bool = True
    max_workers: Optional[int] = None
    seed: Optional[int] = None

    def __post_init__(self):
        if self.mean is None and self.dims > 0:
            self.mean = np.zeros(self.dims, dtype=np.float64)
        if self.std is None and self.dims > 0:
            self.std = np.ones(self.dims, dtype=np.float64)
        if self.mean is not None:
            self.mean = np.asarray(self.mean, dtype=np.float64).flatten()
        if self.std is not None:
            self.std = np.asarray(self.std, dtype=np.float64).flatten()

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "LSHConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        values = asdict(self)
        values["mean"] = None if self.mean is None else self.mean.tolist()
        values["std"] = None if self.std is None else self.std.tolist()
        return values

    def hasher_config(self) -> HasherConfig:
        return HasherConfig(
            n_permutes=self.n_permutes,
            n_planes=self.n_planes,
            bias_multiplier=float(self.bias_multiplier),
            dims=self.dims,
        )

    def validate(self) -> None:
        """
        Check every configuration invariant.

        The distance metric is not checked here: an unsupported metric is
        reported as a DistanceError by search.

        Raises:
            ConfigError: On the first invariant violated.
        """
        self.hasher_config().validate()
        if self.mean is None or len(self.mean) != self.dims:
            raise ConfigError(
                f"mean length {0 if self.mean is None else len(self.mean)} "
                f"does not match dims {self.dims}"
            )
        if self.std is None or len(self.std) != self.dims:
            raise ConfigError(
                f"std length {0 if self.std is None else len(self.std)} "
                f"does not match dims {self.dims}"
            )
        if np.any(self.std < 0):
            raise ConfigError("std must be non-negative")
        if self.max_nn <= 0:
            raise ConfigError(f"max_nn must be > 0, got {self.max_nn}")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ConfigError(f"max_workers must be > 0, got {self.max_workers}")
        get_operator(self.threshold_operator)
