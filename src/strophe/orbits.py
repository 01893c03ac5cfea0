'''Development code for an N-body integration package
Orbit converter: Cartesian state <-> Keplerian elements'''

import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union
from .config import config
from .errors import NonConvergence
from .particles import Particle
from .utils import TWO_PI, wrap_angle

StateLike = Union[Particle, Tuple[Sequence[float], Sequence[float]]]

_KEPLER_MAX_ITERATIONS = 100
_KEPLER_TOL = 1e-15


@dataclass(frozen=True, eq=False)
class Orbit:
    """
    Osculating Keplerian orbit of a body about a reference.

    Angles are in radians. ``inc`` lies in [0, pi]; every other angle is
    wrapped to [0, 2*pi) except the hyperbolic mean and eccentric
    anomalies, which are unbounded.

    Degenerate conventions
    ----------------------
    - Equatorial orbits (inc within config.SNAP_TO_EQUATORIAL of 0 or pi):
      Omega = 0 and the line of nodes is taken as the +x axis.
    - Circular orbits (e below config.SNAP_TO_CIRCULAR): omega = 0 and f
      is measured from the line of nodes (argument of latitude; true
      longitude when also equatorial).

    Attributes
    ----------
    mu : float
        Gravitational parameter G*(m_body + m_reference)
    a : float
        Semi-major axis (negative for hyperbolic orbits)
    e : float
        Eccentricity
    inc : float
        Inclination
    Omega : float
        Longitude of ascending node
    omega : float
        Argument of periapsis
    f : float
        True anomaly
    d : float
        Distance from the reference
    v : float
        Speed relative to the reference
    h : float
        Specific angular momentum
    P : float
        Orbital period (nan if unbound)
    n : float
        Mean motion
    E : float
        Eccentric anomaly (hyperbolic anomaly if e > 1)
    M : float
        Mean anomaly
    pomega : float
        Longitude of periapsis, Omega + omega
    l : float
        Mean longitude, pomega + M
    theta : float
        True longitude, Omega + omega + f
    """
    mu: float
    a: float
    e: float
    inc: float
    Omega: float
    omega: float
    f: float
    d: float
    v: float
    h: float
    P: float
    n: float
    E: float
    M: float
    pomega: float
    l: float
    theta: float

    @property
    def elements(self) -> np.ndarray:
        """Classical elements [a, e, inc, Omega, omega, f]"""
        return np.array([self.a, self.e, self.inc, self.Omega, self.omega, self.f])

    @property
    def is_bound(self) -> bool:
        return self.e < 1.0

    @property
    def periapsis(self) -> float:
        """Periapsis distance a(1 - e)"""
        return self.a * (1.0 - self.e)

    @property
    def specific_energy(self) -> float:
        """Specific orbital energy -mu/(2a)"""
        return -self.mu / (2.0 * self.a)

    def to_cartesian(self, reference: Optional[StateLike] = None):
        """Position and velocity reproducing this orbit about a reference."""
        return orbit_to_cartesian(self.mu, self.a, self.e, self.inc, self.Omega,
                                  self.omega, f=self.f, reference=reference)

    # ========== SPECIAL METHODS ==========
    def __eq__(self, other):
        #Check equality with tolerance
        if not isinstance(other, Orbit):
            return False
        return np.allclose(self.elements, other.elements,
                           rtol=config.EQUALITY_RTOL,
                           atol=config.EQUALITY_ATOL)

    def __hash__(self):
        #Hash with rounding to match equality
        rounded = tuple(round(x, config.HASH_DECIMALS) for x in self.elements)
        return hash(rounded)

    def __str__(self):
        #Human-readable representation
        return (f"Keplerian Elements:\n"
                f"  a     = {self.a:14.8f}\n"
                f"  e     = {self.e:14.8f}\n"
                f"  i     = {np.degrees(self.inc):14.6f}°\n"
                f"  Ω     = {np.degrees(self.Omega):14.6f}°\n"
                f"  ω     = {np.degrees(self.omega):14.6f}°\n"
                f"  f     = {np.degrees(self.f):14.6f}°")


# ========== CARTESIAN -> ELEMENTS ==========
def cartesian_to_orbit(mu: float, body: StateLike, reference: StateLike) -> Orbit:
    """
    Convert the state of a body relative to a reference into an Orbit.

    Uses the node-vector / in-plane basis construction of Flores & Fantino,
    Advances in Space Research, v.75, pp.4910, which evaluates every angle
    with arctan2 and so avoids quadrant checks.

    Parameters
    ----------
    mu : float
        Gravitational parameter of the pair, usually G*(m_body + m_reference)
    body : Particle or (pos, vel)
        Orbiting body
    reference : Particle or (pos, vel)
        Primary (a particle or a center of mass)

    Returns
    -------
    Orbit

    Raises
    ------
    ValueError
        If mu is not positive, the body sits on the reference, or the
        relative motion is purely radial (no orbital plane)
    """
    if not mu > 0 or not math.isfinite(mu):
        raise ValueError(f"Gravitational parameter must be positive, got {mu}")
    pos_b, vel_b = _state_of(body)
    pos_r, vel_r = _state_of(reference)
    rvec = pos_b - pos_r
    vvec = vel_b - vel_r
    d = float(np.linalg.norm(rvec))
    v = float(np.linalg.norm(vvec))
    if d == 0.0:
        raise ValueError("Body coincides with reference; orbit undefined")
    # calculate angular momentum vector h = r x v
    hvec = np.cross(rvec, vvec)
    h = float(np.linalg.norm(hvec))
    if h <= np.finfo(float).eps * d * v:
        raise ValueError("Radial trajectory (zero angular momentum); orbit undefined")
    hhat = hvec / h
    # calculate inclination
    inc = math.atan2(math.hypot(hvec[0], hvec[1]), hvec[2])
    # find eccentricity vector
    evec = np.cross(vvec, hvec) / mu - rvec / d
    e = float(np.linalg.norm(evec))
    # find semimajor axis from energy equation
    denom = 2.0 / d - v * v / mu
    a = 1.0 / denom if denom != 0.0 else math.inf
    # find longitude of ascending node
    equatorial = inc < config.SNAP_TO_EQUATORIAL or (math.pi - inc) < config.SNAP_TO_EQUATORIAL
    Omega = 0.0 if equatorial else wrap_angle(math.atan2(hvec[0], -hvec[1]))
    # define line of nodes vector and an intermediate vector b in the orbit plane
    nhat = np.array([math.cos(Omega), math.sin(Omega), 0.0])
    bhat = np.cross(hhat, nhat)
    # angle of the body from the node line
    u = math.atan2(float(np.dot(rvec, bhat)), float(np.dot(rvec, nhat)))
    if e < config.SNAP_TO_CIRCULAR:
        omega = 0.0
        f = wrap_angle(u)
    else:
        w = math.atan2(float(np.dot(evec, bhat)), float(np.dot(evec, nhat)))
        omega = wrap_angle(w)
        f = wrap_angle(u - w)
    return _build_orbit(mu, a, e, inc, Omega, omega, f, d, v, h)


def _build_orbit(mu, a, e, inc, Omega, omega, f, d, v, h) -> Orbit:
    """Fill in derived quantities."""
    if e < 1.0:
        n = math.sqrt(mu / a**3)
        P = TWO_PI / n
        E = wrap_angle(2.0 * math.atan2(math.sqrt(1.0 - e) * math.sin(0.5 * f),
                                        math.sqrt(1.0 + e) * math.cos(0.5 * f)))
        M = wrap_angle(E - e * math.sin(E))
        l = wrap_angle(Omega + omega + M)
    elif e > 1.0:
        n = math.sqrt(mu / (-a)**3)
        P = math.nan
        E = _hyperbolic_anomaly_from_true(f, e)
        M = e * math.sinh(E) - E
        l = Omega + omega + M
    else:
        n = P = E = M = l = math.nan
    return Orbit(mu=mu, a=a, e=e, inc=inc, Omega=Omega, omega=omega, f=f,
                 d=d, v=v, h=h, P=P, n=n, E=E, M=M,
                 pomega=wrap_angle(Omega + omega), l=l,
                 theta=wrap_angle(Omega + omega + f))


# ========== ELEMENTS -> CARTESIAN ==========
def orbit_to_cartesian(mu: float, a: float, e: float, inc: float = 0.0,
                       Omega: float = 0.0, omega: float = 0.0,
                       f: Optional[float] = None, M: Optional[float] = None,
                       reference: Optional[StateLike] = None
                       ) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert Keplerian elements to a Cartesian position and velocity.

    Parameters
    ----------
    mu : float
        Gravitational parameter of the pair
    a, e, inc, Omega, omega : float
        Semi-major axis, eccentricity, inclination, longitude of ascending
        node and argument of periapsis
    f : float, optional
        True anomaly (default 0 when M is not given either)
    M : float, optional
        Mean anomaly, converted through Kepler's equation
    reference : Particle or (pos, vel), optional
        State added to the result. Default: origin at rest.

    Returns
    -------
    pos, vel : np.ndarray

    Raises
    ------
    ValueError
        For non-physical or unsupported element sets (see notes)

    Notes
    -----
    Rejected inputs: mu <= 0, e < 0, parabolic e == 1, bound orbits with
    a <= 0, hyperbolic orbits with a >= 0, both f and M given, and a true
    anomaly beyond the asymptote of a hyperbola.
    """
    values = (mu, a, e, inc, Omega, omega)
    if not all(math.isfinite(x) for x in values):
        raise ValueError(f"Orbital elements must be finite, got {values}")
    if mu <= 0:
        raise ValueError(f"Gravitational parameter must be positive, got {mu}")
    if e < 0:
        raise ValueError(f"Eccentricity must be non-negative, got {e}")
    if e == 1.0:
        raise ValueError("Parabolic orbits (e = 1) are not supported")
    if e < 1 and a <= 0:
        raise ValueError(f"Bound orbit (e = {e}) requires positive semi-major axis, got {a}")
    if e > 1 and a >= 0:
        raise ValueError(f"Hyperbolic orbit (e = {e}) requires negative semi-major axis, got {a}")
    if f is not None and M is not None:
        raise ValueError("Specify either true anomaly f or mean anomaly M, not both")
    if M is not None:
        f = true_anomaly_from_mean(M, e)
    elif f is None:
        f = 0.0
    # find semi-latus rectum
    p = a * (1.0 - e**2)
    denom = 1.0 + e * math.cos(f)
    if denom <= 0.0:
        raise ValueError(
            f"True anomaly {f} lies beyond the asymptote of a hyperbola with e = {e}"
        )
    # find position and velocity in perifocal frame
    r_mag = p / denom
    rvec = np.array([r_mag * math.cos(f), r_mag * math.sin(f), 0.0])
    vscale = math.sqrt(mu / p)
    vvec = np.array([-vscale * math.sin(f), vscale * (e + math.cos(f)), 0.0])
    # rotate from perifocal frame to inertial frame
    DCM = _perifocal_dcm(inc, Omega, omega)
    pos = DCM @ rvec
    vel = DCM @ vvec
    if reference is not None:
        pos_r, vel_r = _state_of(reference)
        pos = pos + pos_r
        vel = vel + vel_r
    return pos, vel


def _perifocal_dcm(inc, Omega, omega) -> np.ndarray:
    """Direction cosine matrix R3(Omega) R1(inc) R3(omega)."""
    cO, sO = math.cos(Omega), math.sin(Omega)
    ci, si = math.cos(inc), math.sin(inc)
    cw, sw = math.cos(omega), math.sin(omega)
    # rotation about z-axis by RAAN
    R3_Omega = np.array([[cO, -sO, 0.0], [sO, cO, 0.0], [0.0, 0.0, 1.0]])
    # rotation about x-axis by inclination
    R1_i = np.array([[1.0, 0.0, 0.0], [0.0, ci, -si], [0.0, si, ci]])
    # rotation about z-axis by argument of periapsis
    R3_w = np.array([[cw, -sw, 0.0], [sw, cw, 0.0], [0.0, 0.0, 1.0]])
    return R3_Omega @ R1_i @ R3_w


# ========== KEPLER'S EQUATION ==========
def true_anomaly_from_mean(M: float, e: float) -> float:
    """
    Solve Kepler's equation and return the true anomaly.

    Elliptic orbits solve M = E - e sin E; hyperbolic orbits solve
    M = e sinh F - F. Both use Newton-Raphson iteration.

    Raises
    ------
    ValueError
        If e is negative or exactly 1
    NonConvergence
        If Newton iteration fails to converge
    """
    if e < 0 or e == 1.0:
        raise ValueError(f"Kepler's equation requires 0 <= e != 1, got {e}")
    if e < 1.0:
        E = _eccentric_anomaly(wrap_angle(M), e)
        return wrap_angle(2.0 * math.atan2(math.sqrt(1.0 + e) * math.sin(0.5 * E),
                                           math.sqrt(1.0 - e) * math.cos(0.5 * E)))
    F = _hyperbolic_anomaly(M, e)
    return wrap_angle(2.0 * math.atan(math.sqrt((e + 1.0) / (e - 1.0)) * math.tanh(0.5 * F)))


def mean_from_true_anomaly(f: float, e: float) -> float:
    """Mean anomaly for a true anomaly (wrapped to [0, 2pi) when bound)."""
    if e < 0 or e == 1.0:
        raise ValueError(f"Kepler's equation requires 0 <= e != 1, got {e}")
    if e < 1.0:
        E = 2.0 * math.atan2(math.sqrt(1.0 - e) * math.sin(0.5 * f),
                             math.sqrt(1.0 + e) * math.cos(0.5 * f))
        return wrap_angle(E - e * math.sin(E))
    F = _hyperbolic_anomaly_from_true(f, e)
    return e * math.sinh(F) - F


def _eccentric_anomaly(M, e):
    # pi is a safe starting point for high eccentricity
    E = M if e < 0.8 else math.pi
    for _ in range(_KEPLER_MAX_ITERATIONS):
        dE = (E - e * math.sin(E) - M) / (1.0 - e * math.cos(E))
        E -= dE
        if abs(dE) <= _KEPLER_TOL * (1.0 + abs(E)):
            return E
    raise NonConvergence(f"Kepler's equation did not converge for M={M}, e={e}")


def _hyperbolic_anomaly(M, e):
    F = math.asinh(M / e)
    for _ in range(_KEPLER_MAX_ITERATIONS):
        dF = (e * math.sinh(F) - F - M) / (e * math.cosh(F) - 1.0)
        F -= dF
        if abs(dF) <= _KEPLER_TOL * (1.0 + abs(F)):
            return F
    raise NonConvergence(f"Hyperbolic Kepler's equation did not converge for M={M}, e={e}")


def _hyperbolic_anomaly_from_true(f, e):
    # atanh argument stays in (-1, 1) for anomalies inside the asymptotes
    return 2.0 * math.atanh(math.sqrt((e - 1.0) / (e + 1.0)) * math.tan(0.5 * f))


# ========== HELPERS ==========
def _state_of(obj: StateLike) -> Tuple[np.ndarray, np.ndarray]:
    """Extract (pos, vel) arrays from a Particle or a pair of vectors."""
    if isinstance(obj, Particle):
        return obj.pos, obj.vel
    try:
        pos, vel = obj
    except (TypeError, ValueError):
        raise TypeError(
            f"Expected a Particle or (pos, vel) pair, got {type(obj).__name__}"
        ) from None
    return np.asarray(pos, dtype=float), np.asarray(vel, dtype=float)
