"""Shared fixtures for the strophe test suite."""

import numpy as np
import pytest
from strophe import Simulation, config


@pytest.fixture(autouse=True)
def restore_config():
    """Undo configuration changes made by a test."""
    yield
    config.reset()


@pytest.fixture
def two_body():
    """Sun and Jupiter-like planet in the centre-of-mass frame."""
    sim = Simulation()
    sim.add(m=1.0, name="sun")
    sim.add(m=1e-3, a=1.0, e=0.3, inc=0.1, name="planet")
    sim.move_to_com()
    return sim


@pytest.fixture
def tidal_system():
    """
    Factory for a point-mass star and a close-in spinning planet.

    The planet (index 1) carries tides_spin parameters; its spin is
    ``spin_ratio`` times the orbital mean motion, tilted by ``obliquity``
    from the orbit normal.
    """
    def _make(integrator='ias15', tau=1e-4, obliquity=0.0, spin_ratio=10.0):
        sim = Simulation(integrator=integrator, dt=1e-3)
        sim.add(m=1.0, name="star")
        m_p, r_p = 1e-3, 0.005
        planet = sim.add(m=m_p, r=r_p, a=0.1, e=0.05, name="planet")
        sim.attach_force("tides_spin")
        n = np.sqrt(1.0 + m_p) / 0.1**1.5
        spin = spin_ratio * n
        sim.set_param(planet, "k2", 0.5)
        sim.set_param(planet, "I", 0.25 * m_p * r_p**2)
        sim.set_param(planet, "tau", tau)
        sim.set_param(planet, "Omega",
                      [spin * np.sin(obliquity), 0.0, spin * np.cos(obliquity)])
        sim.move_to_com()
        return sim
    return _make
