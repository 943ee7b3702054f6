"""
Tests for the random hyperplane Hasher.
"""

import pickle

import numpy as np
import pytest

from lshsearch import ConfigError, Hasher, HasherConfig, HasherInstance, SerializationError


def make_hasher(n_permutes=4, n_planes=16, dims=8, bias_multiplier=1.0, seed=7):
    hasher = Hasher(HasherConfig(
        n_permutes=n_permutes,
        n_planes=n_planes,
        bias_multiplier=bias_multiplier,
        dims=dims,
    ))
    hasher.generate(np.zeros(dims), np.ones(dims), seed=seed)
    return hasher


class TestGenerate:
    """Test hyperplane sampling."""

    def test_shapes(self):
        hasher = make_hasher(n_permutes=3, n_planes=5, dims=4)
        assert len(hasher.instances) == 3
        for instance in hasher.instances:
            assert instance.planes.shape == (5, 4)
            assert instance.biases.shape == (5,)

    def test_seed_reproduces_hyperplanes(self):
        a = make_hasher(seed=123)
        b = make_hasher(seed=123)
        for x, y in zip(a.instances, b.instances):
            np.testing.assert_array_equal(x.planes, y.planes)
            np.testing.assert_array_equal(x.biases, y.biases)

    def test_zero_bias_multiplier(self):
        """Without bias scaling every hyperplane passes through the origin."""
        hasher = make_hasher(bias_multiplier=0.0)
        for instance in hasher.instances:
            assert np.all(instance.biases == 0)

    def test_state_is_read_only(self):
        hasher = make_hasher()
        with pytest.raises(ValueError):
            hasher.instances[0].planes[0, 0] = 1.0

    @pytest.mark.parametrize("field, value", [
        ("dims", 0),
        ("n_permutes", 0),
        ("n_planes", 0),
        ("n_planes", -3),
        ("n_planes", 65),
    ])
    def test_invalid_counts(self, field, value):
        params = {"n_permutes": 2, "n_planes": 4, "bias_multiplier": 1.0, "dims": 3}
        params[field] = value
        hasher = Hasher(HasherConfig(**params))
        with pytest.raises(ConfigError, match=field):
            hasher.generate(np.zeros(3), np.ones(3))

    def test_mean_std_length_mismatch(self):
        hasher = Hasher(HasherConfig(n_permutes=2, n_planes=4, bias_multiplier=1.0, dims=3))
        with pytest.raises(ConfigError, match="must match dims"):
            hasher.generate(np.zeros(2), np.ones(3))
        with pytest.raises(ConfigError, match="must match dims"):
            hasher.generate(np.zeros(3), np.ones(4))


class TestGetHashes:
    """Test hash computation."""

    def test_one_hash_per_permutation(self):
        hasher = make_hasher(n_permutes=5)
        hashes = hasher.get_hashes(np.ones(8))
        assert sorted(hashes) == [0, 1, 2, 3, 4]

    def test_deterministic(self, rng):
        hasher = make_hasher()
        vec = rng.standard_normal(8)
        assert hasher.get_hashes(vec) == hasher.get_hashes(vec)

    def test_hash_fits_plane_bits(self, rng):
        hasher = make_hasher(n_planes=10)
        for vec in rng.standard_normal((50, 8)):
            for value in hasher.get_hashes(vec).values():
                assert 0 <= value < 2 ** 10

    def test_sixty_four_planes(self, rng):
        """A full 64-bit hash is an unsigned integer."""
        hasher = make_hasher(n_planes=64)
        for vec in rng.standard_normal((20, 8)):
            for value in hasher.get_hashes(vec).values():
                assert 0 <= value < 2 ** 64

    def test_bit_order(self):
        """Bit i is set when the vector is on the positive side of hyperplane i."""
        config = HasherConfig(n_permutes=1, n_planes=3, bias_multiplier=0.0, dims=2)
        instance = HasherInstance(
            planes=np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]]),
            biases=np.array([0.0, 0.0, 0.0]),
        )
        hasher = Hasher.from_instances(config, [instance])

        assert hasher.get_hashes(np.array([1.0, 1.0])) == {0: 0b011}
        assert hasher.get_hashes(np.array([-1.0, 1.0])) == {0: 0b110}
        assert hasher.get_hashes(np.array([-1.0, -1.0])) == {0: 0b100}

    def test_bias_shifts_boundary(self):
        config = HasherConfig(n_permutes=1, n_planes=1, bias_multiplier=1.0, dims=1)
        hasher = Hasher.from_instances(
            config, [HasherInstance(planes=np.array([[1.0]]), biases=np.array([-2.0]))]
        )
        assert hasher.get_hashes(np.array([1.0])) == {0: 0}
        assert hasher.get_hashes(np.array([3.0])) == {0: 1}

    def test_projection_equal_to_zero_is_unset(self, x_axis_hasher):
        assert x_axis_hasher.get_hashes(np.array([0.0, 5.0])) == {0: 0}

    def test_dimension_mismatch(self):
        hasher = make_hasher(dims=8)
        with pytest.raises(ValueError, match="does not match index dimension"):
            hasher.get_hashes(np.ones(3))

    def test_ungenerated_hasher(self):
        hasher = Hasher(HasherConfig(n_permutes=1, n_planes=1, bias_multiplier=1.0, dims=2))
        with pytest.raises(ValueError, match="no hyperplanes"):
            hasher.get_hashes(np.ones(2))

    def test_similar_vectors_collide_more_often(self, rng):
        """Nearby vectors share more buckets than unrelated ones."""
        hasher = make_hasher(n_permutes=32, n_planes=8, dims=16, bias_multiplier=0.0)
        base = rng.standard_normal(16)
        near = base + 0.01 * rng.standard_normal(16)
        far = -base

        base_hashes = hasher.get_hashes(base)
        near_hits = sum(base_hashes[p] == h for p, h in hasher.get_hashes(near).items())
        far_hits = sum(base_hashes[p] == h for p, h in hasher.get_hashes(far).items())
        assert near_hits > far_hits


class TestFromInstances:
    """Test building a hasher from explicit hyperplanes."""

    def test_shape_mismatch(self):
        config = HasherConfig(n_permutes=2, n_planes=1, bias_multiplier=0.0, dims=2)
        instance = HasherInstance(planes=np.array([[1.0, 0.0]]), biases=np.array([0.0]))
        with pytest.raises(ConfigError, match="do not match configuration"):
            Hasher.from_instances(config, [instance])


class TestPersistence:
    """Test dump() and load()."""

    def test_round_trip_reproduces_hashes(self, rng):
        original = make_hasher(n_permutes=6, n_planes=20, dims=8)
        restored = Hasher(HasherConfig(n_permutes=1, n_planes=1, bias_multiplier=0.0, dims=1))
        restored.load(original.dump())

        assert restored.config == original.config
        for vec in rng.standard_normal((30, 8)):
            assert restored.get_hashes(vec) == original.get_hashes(vec)

    def test_load_replaces_state(self):
        a = make_hasher(seed=1)
        b = make_hasher(seed=2)
        vec = np.linspace(-1, 1, 8)
        assert a.get_hashes(vec) != b.get_hashes(vec)

        b.load(a.dump())
        assert b.get_hashes(vec) == a.get_hashes(vec)

    def test_dump_without_state(self):
        hasher = Hasher(HasherConfig(n_permutes=1, n_planes=1, bias_multiplier=0.0, dims=1))
        with pytest.raises(ValueError, match="nothing to dump"):
            hasher.dump()

    @pytest.mark.parametrize("blob", [
        b"",
        b"not a pickle",
        pickle.dumps([1, 2, 3]),
        pickle.dumps({"config": {"dims": 2}}),
        pickle.dumps({"planes": np.zeros((1, 1, 2))}),
    ])
    def test_corrupt_blob(self, blob):
        hasher = make_hasher()
        before = hasher.get_hashes(np.ones(8))
        with pytest.raises(SerializationError):
            hasher.load(blob)
        # Failed loads leave the previous state in place
        assert hasher.get_hashes(np.ones(8)) == before

    def test_truncated_blob(self):
        blob = make_hasher().dump()
        with pytest.raises(SerializationError):
            make_hasher().load(blob[: len(blob) // 2])

    def test_shapes_disagree_with_config(self):
        state = pickle.loads(make_hasher(n_permutes=4).dump())
        state["config"]["n_permutes"] = 5
        with pytest.raises(SerializationError, match="do not match configuration"):
            make_hasher().load(pickle.dumps(state))

    def test_invalid_config_in_blob(self):
        state = pickle.loads(make_hasher().dump())
        state["config"]["n_planes"] = 100
        with pytest.raises(SerializationError, match="Invalid hasher configuration"):
            make_hasher().load(pickle.dumps(state))

    @pytest.mark.parametrize("field, value", [
        ("dims", "3"),
        ("n_permutes", None),
        ("n_planes", [16]),
    ])
    def test_wrong_config_types_in_blob(self, field, value):
        hasher = make_hasher()
        before = hasher.get_hashes(np.ones(8))
        state = pickle.loads(hasher.dump())
        state["config"][field] = value

        with pytest.raises(SerializationError, match="Invalid hasher configuration"):
            hasher.load(pickle.dumps(state))
        assert hasher.get_hashes(np.ones(8)) == before
