"""
Test suite for the auxiliary-ODE coupler.

Tests cover:
- Deterministic state layout (particle order, module blocks, slots)
- Layout sizes, error-control groups and signatures
- Gather/scatter between the stores and the state vector
- Derivative function layout
- Disabled modules and removed particles
"""

import pytest
import numpy as np
from strophe import (Coupler, ForceRegistry, ParticleStore, ParameterStore,
                     Particle, TidesSpin, GravitationalHarmonics, NotFound)


def make_coupler():
    """Three bodies: 0 and 2 carry tides_spin, 1 carries J2."""
    registry = ForceRegistry()
    registry.register(TidesSpin())
    registry.register(GravitationalHarmonics())
    particles = ParticleStore()
    parameters = ParameterStore()
    particles.add(Particle(m=1.0, r=0.01, name="star"))
    particles.add(Particle(m=1e-3, r=0.001, x=1.0, vy=1.0, name="planet"))
    particles.add(Particle(m=1e-3, r=0.001, x=-2.0, vy=-0.7, name="moon"))
    for index in (0, 2):
        parameters.set(index, "k2", 0.3)
        parameters.set(index, "I", 1e-6)
    parameters.set(0, "tau", 0.01)
    parameters.set(0, "Omega", [0.0, 0.0, 5.0])
    parameters.set(1, "J2", 1e-4)
    return Coupler(registry, particles, parameters, G=1.0)


class TestLayout:
    """Test the state layout."""

    def test_particle_rows(self):
        """Rows follow live particle index order."""
        layout = make_coupler().build()
        assert layout.particles == (0, 1, 2)
        assert layout.row(2) == 2
        assert layout.n_second == 9

    def test_aux_slots(self):
        """Aux slots follow module order, then particle index."""
        layout = make_coupler().build()
        assert [(s.module, s.particle, s.name, s.offset, s.size) for s in layout.slots] == [
            ("tides_spin", 0, "Omega", 0, 3),
            ("tides_spin", 2, "Omega", 3, 3),
        ]
        assert layout.blocks == (("tides_spin", 0, 6), ("gravitational_harmonics", 6, 6))
        assert layout.governed_by("tides_spin") == (0, 2)
        assert layout.governed_by("gravitational_harmonics") == (1,)
        assert layout.governed_by("absent") == ()

    def test_sizes(self):
        """The state holds 6n + m floats."""
        layout = make_coupler().build()
        assert layout.n_aux == 6
        assert layout.size == 6 * 3 + 6

    def test_groups(self):
        """Orbital block plus one group per non-empty module block."""
        layout = make_coupler().build()
        assert layout.groups == [slice(0, 9), slice(9, 15)]

    def test_state_slice(self):
        """Slots map into the tail of the state vector."""
        layout = make_coupler().build()
        slot = layout.slot("tides_spin", 2, "Omega")
        assert layout.state_slice(slot) == slice(21, 24)
        assert layout.slots_of(2) == (slot,)
        with pytest.raises(NotFound):
            layout.slot("tides_spin", 1, "Omega")

    def test_deterministic(self):
        """Identical inputs give identical layouts."""
        l1 = make_coupler().build()
        l2 = make_coupler().build()
        assert l1 == l2
        assert l1.signature == l2.signature

    def test_disabled_module_drops_block(self):
        """Disabling a module removes its variables from the layout."""
        coupler = make_coupler()
        before = coupler.build()
        coupler.registry.disable("tides_spin")
        after = coupler.build()
        assert after.n_aux == 0
        assert after.signature != before.signature
        assert coupler.parameters.get(0, "Omega")[2] == 5.0

    def test_removed_particle(self):
        """Removed particles leave the layout; indices are kept."""
        coupler = make_coupler()
        coupler.particles.remove(1)
        coupler.parameters.release(1)
        layout = coupler.build()
        assert layout.particles == (0, 2)
        assert layout.row(2) == 1
        with pytest.raises(NotFound):
            layout.row(1)
        assert layout.governed_by("gravitational_harmonics") == ()


class TestStateTransfer:
    """Test gather and scatter."""

    def test_gather(self):
        """Positions, velocities and spins land in their slots."""
        coupler = make_coupler()
        coupler.build()
        y = coupler.gather()
        layout = coupler.layout
        np.testing.assert_array_equal(layout.positions(y)[1], [1.0, 0.0, 0.0])
        np.testing.assert_array_equal(layout.velocities(y)[2], [0.0, -0.7, 0.0])
        np.testing.assert_array_equal(layout.auxiliary(y), [0, 0, 5.0, 0, 0, 0])

    def test_scatter(self):
        """scatter writes positions, velocities and aux back to the stores."""
        coupler = make_coupler()
        coupler.build()
        y = coupler.gather()
        y[0] = 0.5
        y[9 + 4] = 1.25
        y[-3:] = [1.0, 2.0, 3.0]
        coupler.scatter(y)
        assert coupler.particles.get(0).x == 0.5
        assert coupler.particles.get(1).vy == 1.25
        assert coupler.particles.get(1).name == "planet"
        np.testing.assert_array_equal(coupler.parameters.get(2, "Omega"), [1.0, 2.0, 3.0])

    def test_scatter_gather_round_trip(self):
        """gather after scatter reproduces the vector."""
        coupler = make_coupler()
        coupler.build()
        y = coupler.gather() + 0.125
        coupler.scatter(y)
        np.testing.assert_array_equal(coupler.gather(), y)


class TestDerivative:
    """Test the derivative functions."""

    def test_derivative_layout(self):
        """dy/dt = [v, acc, aux']."""
        coupler = make_coupler()
        coupler.build()
        coupler.bind()
        y = coupler.gather()
        dydt = coupler.derivative(0.0, y)
        F = coupler.forces(0.0, y)
        assert dydt.shape == y.shape
        np.testing.assert_array_equal(dydt[:9], y[9:18])
        np.testing.assert_array_equal(dydt[9:], F)
        assert F.shape == (9 + 6,)

    def test_spin_derivative_nonzero(self):
        """The spinning star's aux block evolves."""
        coupler = make_coupler()
        coupler.build()
        coupler.bind()
        F = coupler.forces(0.0, coupler.gather())
        assert np.any(F[9:12] != 0.0)
        assert np.all(np.isfinite(F))

    def test_context(self):
        """The force context exposes per-row arrays and module blocks."""
        coupler = make_coupler()
        coupler.build()
        coupler.bind()
        ctx = coupler.context(0.0, coupler.gather())
        assert ctx.n == 3
        np.testing.assert_array_equal(ctx.mass, [1.0, 1e-3, 1e-3])
        assert ctx.aux["tides_spin"].shape == (6,)
        assert ctx.aux["gravitational_harmonics"].shape == (0,)
