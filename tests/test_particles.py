"""
Test suite for Particle and ParticleStore.

Tests cover:
- Particle validation (negative, non-finite, non-numeric values)
- Vector constructors and state copies
- Tolerant equality and hashing
- Stable indices, tombstones and version counting in the store
"""

import pytest
import numpy as np
from strophe import Particle, ParticleStore, InvalidIndex, SimulationError


class TestParticle:
    """Test the immutable particle value."""

    def test_defaults(self):
        """A bare particle is a massless point at rest at the origin."""
        p = Particle()
        assert p.m == 0.0
        np.testing.assert_array_equal(p.state, np.zeros(6))

    def test_numpy_scalars_coerced(self):
        """Numpy scalars are stored as plain floats."""
        p = Particle(m=np.float32(2.0), x=np.int64(3))
        assert type(p.m) is float
        assert type(p.x) is float

    def test_negative_mass_rejected(self):
        """Negative mass raises ValueError."""
        with pytest.raises(ValueError, match="non-negative"):
            Particle(m=-1.0)

    def test_negative_radius_rejected(self):
        """Negative radius raises ValueError."""
        with pytest.raises(ValueError, match="Radius"):
            Particle(m=1.0, r=-0.1)

    def test_non_finite_rejected(self):
        """NaN and Inf components raise ValueError."""
        with pytest.raises(ValueError, match="finite"):
            Particle(m=1.0, vx=np.nan)
        with pytest.raises(ValueError, match="finite"):
            Particle(m=1.0, y=np.inf)

    def test_non_numeric_rejected(self):
        """Non-numeric components raise TypeError."""
        with pytest.raises(TypeError, match="real number"):
            Particle(m="heavy")

    def test_frozen(self):
        """Particles cannot be mutated in place."""
        p = Particle(m=1.0)
        with pytest.raises(AttributeError):
            p.m = 2.0

    def test_from_vectors(self):
        """from_vectors unpacks position and velocity."""
        p = Particle.from_vectors(1.0, 0.5, [1, 2, 3], [4, 5, 6], name="b")
        np.testing.assert_array_equal(p.pos, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(p.vel, [4.0, 5.0, 6.0])
        assert p.r == 0.5
        assert p.name == "b"

    def test_from_vectors_wrong_shape(self):
        """Vectors with the wrong length raise ValueError."""
        with pytest.raises(ValueError, match="position"):
            Particle.from_vectors(1.0, 0.0, [1, 2], [0, 0, 0])

    def test_with_state_keeps_identity(self):
        """with_state replaces only position and velocity."""
        p = Particle(m=2.0, r=0.1, name="a")
        q = p.with_state([1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
        assert q.m == 2.0 and q.r == 0.1 and q.name == "a"
        assert q.x == 1.0 and q.vy == 1.0
        assert p.x == 0.0

    def test_equality_within_tolerance(self):
        """Particles equal within floating-point tolerance compare equal."""
        p = Particle(m=1.0, x=1.0)
        q = Particle(m=1.0, x=1.0 + 1e-15)
        assert p == q
        assert hash(p) == hash(q)
        assert p != Particle(m=1.0, x=1.1)
        assert p != "not a particle"

    def test_str_contains_name(self):
        """String form shows the name and mass."""
        text = str(Particle(m=1.0, name="sun"))
        assert "sun" in text
        assert "m =" in text


class TestParticleStore:
    """Test the indexed particle store."""

    def test_indices_in_insertion_order(self):
        """Indices are assigned sequentially."""
        store = ParticleStore()
        assert store.add(Particle(m=1.0)) == 0
        assert store.add(Particle(m=2.0)) == 1
        assert store.get(1).m == 2.0
        assert len(store) == 2

    def test_removed_index_not_reused(self):
        """Removal leaves a tombstone; later indices keep their meaning."""
        store = ParticleStore()
        store.add(Particle(m=1.0))
        store.add(Particle(m=2.0))
        store.remove(0)
        assert store.add(Particle(m=3.0)) == 2
        assert store.live_indices() == (1, 2)
        assert store.capacity == 3
        assert len(store) == 2
        assert [p.m for p in store] == [2.0, 3.0]

    def test_removed_particle_is_invalid(self):
        """Accessing a removed index raises InvalidIndex."""
        store = ParticleStore()
        store.add(Particle(m=1.0))
        store.remove(0)
        with pytest.raises(InvalidIndex, match="removed"):
            store.get(0)
        with pytest.raises(InvalidIndex):
            store.remove(0)
        assert not store.is_live(0)

    def test_out_of_range(self):
        """Indices outside the store raise InvalidIndex."""
        store = ParticleStore()
        store.add(Particle(m=1.0))
        with pytest.raises(InvalidIndex, match="out of range"):
            store.get(5)
        with pytest.raises(InvalidIndex):
            store.get(-1)

    def test_non_integer_index(self):
        """Non-integer indices raise InvalidIndex."""
        store = ParticleStore()
        store.add(Particle(m=1.0))
        with pytest.raises(InvalidIndex, match="integer"):
            store.get(0.0)
        with pytest.raises(InvalidIndex):
            store.get(True)

    def test_invalid_index_is_index_error(self):
        """InvalidIndex can be caught as IndexError or SimulationError."""
        store = ParticleStore()
        with pytest.raises(IndexError):
            store.get(0)
        with pytest.raises(SimulationError):
            store.get(0)

    def test_replace(self):
        """replace swaps the stored value at a live index."""
        store = ParticleStore()
        store.add(Particle(m=1.0))
        store.replace(0, Particle(m=1.0, x=5.0))
        assert store.get(0).x == 5.0

    def test_version_counts_mutations(self):
        """Every add, replace and remove bumps the version."""
        store = ParticleStore()
        v0 = store.version
        store.add(Particle(m=1.0))
        store.replace(0, Particle(m=1.0, x=1.0))
        store.remove(0)
        assert store.version == v0 + 3

    def test_add_requires_particle(self):
        """Only Particle objects can be stored."""
        with pytest.raises(TypeError):
            ParticleStore().add((1.0, 0.0))
