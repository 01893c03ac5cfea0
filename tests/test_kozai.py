"""
Test suite for the predefined Kozai-Lidov scenario and unit helpers.

Tests cover:
- Unit constants, spin_rate and time_lag
- Structure of kozai_system (particles, frame, spins, forces)
- Eccentricity growth in a compact hierarchical triple
- Full-scale cycle and long integrations with tides on both backends (slow)
"""

import math
import pytest
import numpy as np
from strophe import (kozai_system, spin_rate, time_lag, YEAR, DAY,
                     SECONDS_PER_YEAR, JUPITER_MASS)


class TestUnits:
    """Test unit constants and conversions."""

    def test_year(self):
        """One year is 2 pi code time units."""
        assert YEAR == 2.0 * math.pi
        assert 365.0 * DAY == pytest.approx(YEAR)

    def test_spin_rate(self):
        """spin_rate converts a period to an angular rate."""
        assert spin_rate(YEAR) == pytest.approx(1.0)
        assert spin_rate(0.5) == pytest.approx(4.0 * math.pi)
        with pytest.raises(ValueError, match="positive"):
            spin_rate(0.0)

    def test_time_lag(self):
        """time_lag scales seconds by 1/k2 into code units."""
        assert time_lag(0.5, 0.5) == pytest.approx(YEAR / SECONDS_PER_YEAR)
        assert time_lag(0.02, 0.51) == pytest.approx(0.02 / 0.51 * YEAR / SECONDS_PER_YEAR)
        with pytest.raises(ValueError, match="Love number"):
            time_lag(0.2, 0.0)


class TestScenario:
    """Test the structure of kozai_system."""

    def test_particles(self):
        """Star, planet and perturber, in that order."""
        sim = kozai_system()
        assert sim.n_particles == 3
        assert [sim.particle(i).name for i in sim.indices] == ["star", "planet", "perturber"]
        assert sim.particle(1).m == pytest.approx(7.8 * JUPITER_MASS)

    def test_inner_orbit(self):
        """The planet starts at a = 5, e = 0.1, nearly perpendicular to the perturber."""
        sim = kozai_system()
        orbit = sim.orbit(1)
        assert orbit.a == pytest.approx(5.0, rel=1e-10)
        assert orbit.e == pytest.approx(0.1, rel=1e-8)
        assert orbit.inc == pytest.approx(np.radians(85.6), abs=1e-2)
        assert sim.orbit(2).inc < 1e-2

    def test_frame(self):
        """Centre of mass at rest at the origin, angular momentum along +z."""
        sim = kozai_system()
        masses = np.array([p.m for p in sim.particles])
        pos = np.array([p.pos for p in sim.particles])
        vel = np.array([p.vel for p in sim.particles])
        assert np.all(np.abs(masses @ pos) < 1e-10)
        assert np.all(np.abs(masses @ vel) < 1e-12)
        L = sim.angular_momentum(include_spin=True)
        assert np.linalg.norm(L[:2]) < 1e-12 * L[2]

    def test_spins(self):
        """Star and planet carry spins; the perturber is a point mass."""
        sim = kozai_system()
        assert sim.layout.governed_by("tides_spin") == (0, 1)
        planet_spin = sim.get_param(1, "Omega")
        assert np.linalg.norm(planet_spin) == pytest.approx(spin_rate(10.0 / 24.0 * DAY))
        star_spin = sim.get_param(0, "Omega")
        assert np.linalg.norm(star_spin) == pytest.approx(spin_rate(20.0 * DAY))
        assert sim.get_param(1, "tau") == pytest.approx(time_lag(0.02, 0.51))

    def test_without_spins(self):
        """spins=False gives a pure gravity problem."""
        sim = kozai_system(spins=False)
        assert len(sim.forces) == 0
        assert sim.layout.n_aux == 0
        assert sim.dt == pytest.approx(0.1 * math.pi)


class TestKozaiCycle:
    """Test secular eccentricity growth."""

    def test_eccentricity_grows(self):
        """A close perturber drives the planet to high eccentricity."""
        sim = kozai_system(spins=False, perturber_a=25.0)
        L0 = sim.angular_momentum()
        E0 = sim.energy()
        e_max = sim.orbit(1).e
        t = 0.0
        while t < 20000.0 and e_max < 0.5:
            t += 250.0
            sim.advance_to(t)
            e_max = max(e_max, sim.orbit(1).e)
        assert e_max > 0.5
        L = sim.angular_momentum()
        assert np.linalg.norm(L - L0) < 1e-8 * np.linalg.norm(L0)
        # projection on the total axis (+z after alignment)
        assert abs(L[2] - L0[2]) < 1e-8 * abs(L0[2])
        assert abs((sim.energy() - E0) / E0) < 1e-8


@pytest.mark.slow
class TestLongRuns:
    """Long integrations of the full-scale scenario."""

    def test_full_scale_cycle(self):
        """With the perturber at 1000 AU the planet still reaches e > 0.5."""
        sim = kozai_system(integrator="taylor", spins=False)
        L0 = sim.angular_momentum()
        axis = L0 / np.linalg.norm(L0)
        period = sim.orbit(1).P
        e_max = sim.orbit(1).e
        t = 0.0
        # the quadrupole timescale is about 1.4e6 inner periods
        while t < 3e6 * period and e_max < 0.5:
            t += 1e3 * period
            sim.advance_to(t)
            e_max = max(e_max, sim.orbit(1).e)
        assert e_max > 0.5
        assert abs(sim.angular_momentum() @ axis - L0 @ axis) < 1e-8 * np.linalg.norm(L0)

    @pytest.mark.parametrize("integrator", ["ias15", "taylor"])
    def test_spins_with_tides(self, integrator):
        """Over a century with tides, total angular momentum is conserved and spins stay finite."""
        sim = kozai_system(integrator=integrator)
        L0 = sim.angular_momentum(include_spin=True)
        sim.advance_to(100.0 * YEAR)
        L = sim.angular_momentum(include_spin=True)
        assert np.linalg.norm(L - L0) < 1e-9 * np.linalg.norm(L0)
        assert abs(L[2] - L0[2]) < 1e-9 * abs(L0[2])
        for index in (0, 1):
            assert np.all(np.isfinite(sim.get_param(index, "Omega")))

    def test_energy_long_term(self):
        """Gravity-only energy drift stays small over about a hundred inner orbits."""
        sim = kozai_system(spins=False)
        E0 = sim.energy()
        sim.advance_to(1000.0 * YEAR)
        assert abs((sim.energy() - E0) / E0) < 1e-10
