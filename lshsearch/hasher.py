"""
Hasher - random hyperplane hashing for LSH.

Each permutation owns a set of random hyperplanes. A vector is hashed by
taking, for every hyperplane, the side of the hyperplane it falls on and
packing those bits into one 64-bit unsigned integer per permutation.
"""

import logging
import pickle
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from lshsearch.config import HasherConfig
from lshsearch.errors import ConfigError, SerializationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HasherInstance:
    """
    Hyperplanes of one permutation.

    Attributes:
        planes: Array of shape (n_planes, dims), one hyperplane normal per row.
        biases: Array of shape (n_planes,), offset added to each projection.
    """

    planes: np.ndarray
    biases: np.ndarray


class Hasher:
    """
    Holds the hyperplanes of all permutations and hashes vectors with them.

    The state is read-only after generate() or load(); load() replaces it
    wholesale.

    Example:
        >>> hasher = Hasher(HasherConfig(n_permutes=4, n_planes=16, bias_multiplier=1.0, dims=3))
        >>> hasher.generate(np.zeros(3), np.ones(3), seed=7)
        >>> hashes = hasher.get_hashes(np.array([0.1, 0.2, 0.3]))
        >>> sorted(hashes)
        [0, 1, 2, 3]
    """

    def __init__(self, config: HasherConfig):
        self.config = config
        self.instances: list[HasherInstance] = []
        self._planes: Optional[np.ndarray] = None  # Shape: (n_permutes, n_planes, dims)
        self._biases: Optional[np.ndarray] = None  # Shape: (n_permutes, n_planes)

    @classmethod
    def from_instances(
        cls,
        config: HasherConfig,
        instances: Sequence[HasherInstance],
    ) -> "Hasher":
        """
        Build a hasher from explicit hyperplanes instead of sampling them.

        Args:
            config: Hasher configuration the instances must agree with.
            instances: One HasherInstance per permutation.

        Raises:
            ConfigError: If the configuration is invalid or the shapes of the
                instances disagree with it.
        """
        config.validate()
        planes = np.asarray([inst.planes for inst in instances], dtype=np.float64)
        biases = np.asarray([inst.biases for inst in instances], dtype=np.float64)
        expected = (config.n_permutes, config.n_planes, config.dims)
        if planes.shape != expected or biases.shape != expected[:2]:
            raise ConfigError(
                f"Hyperplanes of shape {planes.shape} and biases of shape {biases.shape} "
                f"do not match configuration {expected}"
            )
        hasher = cls(config)
        hasher._set_state(planes, biases)
        return hasher

    def generate(
        self,
        mean: np.ndarray,
        std: np.ndarray,
        seed: Optional[int] = None,
    ) -> None:
        """
        Sample hyperplanes for every permutation.

        Hyperplane normals come from a standard normal distribution. For each
        hyperplane a point is drawn per dimension from N(mean, std), and the
        bias places the hyperplane through that point scaled by
        bias_multiplier, so offsets follow the data rather than the normals.

        Args:
            mean: Per-dimension mean, length dims.
            std: Per-dimension standard deviation, length dims.
            seed: Seed for the random generator. None draws fresh entropy.

        Raises:
            ConfigError: If counts are non-positive, n_planes exceeds 64, or
                mean/std lengths mismatch dims.
        """
        config = self.config
        config.validate()
        mean = np.asarray(mean, dtype=np.float64).flatten()
        std = np.asarray(std, dtype=np.float64).flatten()
        if len(mean) != config.dims or len(std) != config.dims:
            raise ConfigError(
                f"mean ({len(mean)}) and std ({len(std)}) lengths must match dims {config.dims}"
            )
        if np.any(std < 0):
            raise ConfigError("std must be non-negative")

        rng = np.random.default_rng(seed)
        shape = (config.n_permutes, config.n_planes, config.dims)
        planes = rng.standard_normal(size=shape)
        points = rng.normal(loc=mean, scale=std, size=shape)
        biases = -config.bias_multiplier * np.einsum("pij,pij->pi", planes, points)
        self._set_state(planes, biases)
        logger.info(
            "Generated %d permutations of %d hyperplanes over %d dims",
            config.n_permutes, config.n_planes, config.dims,
        )

    def _set_state(self, planes: np.ndarray, biases: np.ndarray) -> None:
        planes = np.array(planes, dtype=np.float64)
        biases = np.array(biases, dtype=np.float64)
        planes.flags.writeable = False
        biases.flags.writeable = False
        self._planes = planes
        self._biases = biases
        self.instances = [
            HasherInstance(planes=planes[i], biases=biases[i])
            for i in range(planes.shape[0])
        ]

    def get_hashes(self, vec: np.ndarray) -> dict[int, int]:
        """
        Compute one hash value per permutation.

        Bit i of a permutation's hash is 1 when the vector lies on the
        positive side of hyperplane i (dot(vec, plane_i) + bias_i > 0).

        Args:
            vec: 1D array of length dims.

        Returns:
            Mapping of permutation index to 64-bit unsigned hash value.

        Raises:
            ValueError: If the vector dimension does not match, or the hasher
                has no hyperplanes yet.
        """
        if self._planes is None:
            raise ValueError("Hasher has no hyperplanes, call generate() or load() first")
        vec = np.asarray(vec, dtype=np.float64).flatten()
        if vec.shape[0] != self.config.dims:
            raise ValueError(
                f"Vector dimension {vec.shape[0]} does not match index dimension {self.config.dims}"
            )

        # (n_permutes, n_planes, dims) @ (dims,) -> (n_permutes, n_planes)
        projections = self._planes @ vec + self._biases
        packed = np.packbits(projections > 0, axis=1, bitorder="little")
        return {
            perm: int.from_bytes(row.tobytes(), "little")
            for perm, row in enumerate(packed)
        }

    def dump(self) -> bytes:
        """
        Serialize hyperplanes, biases and the hasher configuration.

        Raises:
            ValueError: If the hasher has no hyperplanes yet.
        """
        if self._planes is None:
            raise ValueError("Hasher has no hyperplanes, nothing to dump")
        state = {
            "config": {
                "n_permutes": self.config.n_permutes,
                "n_planes": self.config.n_planes,
                "bias_multiplier": self.config.bias_multiplier,
                "dims": self.config.dims,
            },
            "planes": np.array(self._planes),
            "biases": np.array(self._biases),
        }
        return pickle.dumps(state)

    def load(self, blob: bytes) -> None:
        """
        Restore the state written by dump().

        The current state is only replaced once the blob has been fully
        validated.

        Raises:
            SerializationError: If the blob is corrupt or its arrays disagree
                with its configuration.
        """
        try:
            state = pickle.loads(blob)
            config = HasherConfig(**state["config"])
            planes = np.asarray(state["planes"], dtype=np.float64)
            biases = np.asarray(state["biases"], dtype=np.float64)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError,
                IndexError, KeyError, TypeError, ValueError) as exc:
            raise SerializationError(f"Malformed hasher state: {exc}") from exc

        try:
            config.validate()
        except (ConfigError, TypeError) as exc:
            raise SerializationError(f"Invalid hasher configuration: {exc}") from exc
        expected = (config.n_permutes, config.n_planes, config.dims)
        if planes.shape != expected or biases.shape != expected[:2]:
            raise SerializationError(
                f"Hyperplanes of shape {planes.shape} and biases of shape {biases.shape} "
                f"do not match configuration {expected}"
            )

        self.config = config
        self._set_state(planes, biases)
        logger.info("Loaded hasher with %d permutations", config.n_permutes)
