"""
Default Constants and Scenario Configurations
=============================================

Unit conventions and physical constants for simulations in solar masses,
AU and years/2pi (so that G = 1), plus factory functions for predefined
scenarios. Factories create Simulation objects on demand.

Examples
--------
>>> from strophe import kozai_system
>>> sim = kozai_system()                    # star + hot Jupiter + distant companion
>>> sim_taylor = kozai_system(integrator="taylor")
"""
import numpy as np
from .simulation import Simulation
from .tides_spin import set_time_lag

"""
Units: masses in solar masses, lengths in AU, time in years/2pi.
"""
YEAR = 2.0 * np.pi              # one year in code time units
DAY = YEAR / 365.0
SECONDS_PER_YEAR = 3.154e7

JUPITER_MASS = 9.55e-4          # [M_sun]
SOLAR_RADIUS = 0.00465          # [AU]
JUPITER_RADIUS = 4.676e-4       # [AU]


def spin_rate(period: float) -> float:
    """Angular spin rate for a rotation period (code units)."""
    if period <= 0:
        raise ValueError(f"Spin period must be positive, got {period}")
    return 2.0 * np.pi / period


def time_lag(Q_like: float, k2: float) -> float:
    """
    Constant time lag in code units from a lag in seconds scaled by k2.

    The lag is Q_like / k2 seconds, converted with SECONDS_PER_YEAR.
    """
    if k2 <= 0:
        raise ValueError(f"Love number must be positive, got {k2}")
    return Q_like / k2 * (YEAR / SECONDS_PER_YEAR)


def kozai_system(integrator="ias15", spins=True, perturber_a=1000.0):
    """
    Hot-Jupiter progenitor on a Kozai-Lidov cycle driven by a distant star.

    A 1.1 M_sun star hosts a 7.8 M_J planet at a = 5 AU, e = 0.1; a second
    1.1 M_sun star orbits at ``perturber_a`` with an inclination of 85.6
    degrees. With ``spins`` both the star and the planet are extended
    bodies with tides and spin evolution (tides_spin); the planet starts
    with a 10-hour spin tilted by 1 degree.

    The system is moved to the centre-of-mass frame and rotated so the
    total angular momentum lies along +z.

    Parameters
    ----------
    integrator : str, optional
        'ias15' (default) or 'taylor'
    spins : bool, optional
        Attach tides_spin and set the bodies' spin parameters (default True)
    perturber_a : float, optional
        Semi-major axis of the perturber in AU (default 1000)

    Returns
    -------
    Simulation
    """
    sim = Simulation(integrator=integrator, dt=0.1 * np.pi)

    star_m, star_r = 1.1, SOLAR_RADIUS
    star = sim.add(m=star_m, r=star_r, name="star")

    planet_m, planet_r = 7.8 * JUPITER_MASS, JUPITER_RADIUS
    planet = sim.add(m=planet_m, r=planet_r, a=5.0, e=0.1,
                     omega=np.radians(45.0), name="planet")

    sim.add(m=1.1, a=perturber_a, e=0.0, inc=np.radians(85.6), name="perturber")

    if spins:
        sim.attach_force("tides_spin")

        solar_k2 = 0.028
        sim.set_param(star, "k2", solar_k2)
        sim.set_param(star, "I", 0.08 * star_m * star_r**2)
        sim.set_param(star, "Omega", [0.0, 0.0, spin_rate(20.0 * DAY)])
        set_time_lag(sim, star, time_lag(0.2, solar_k2))

        planet_k2 = 0.51
        theta = np.radians(1.0)     # initial obliquity
        spin_p = spin_rate(10.0 / 24.0 * DAY)
        sim.set_param(planet, "k2", planet_k2)
        sim.set_param(planet, "I", 0.25 * planet_m * planet_r**2)
        sim.set_param(planet, "Omega", [0.0, spin_p * np.sin(theta), spin_p * np.cos(theta)])
        set_time_lag(sim, planet, time_lag(0.02, planet_k2))

    sim.move_to_com()
    sim.align_to_invariable_plane()
    return sim
