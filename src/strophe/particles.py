'''Development code for an N-body integration package
Particle and ParticleStore class definitions'''

import numpy as np
from dataclasses import dataclass, replace, fields
from typing import Iterator, List, Optional, Sequence, Tuple
from .config import config
from .errors import InvalidIndex
from .utils import as_vector3

@dataclass(frozen=True, eq=False)
class Particle:
    """
    Immutable physical state of a single body.

    Attributes
    ----------
    m : float
        Mass (>= 0). Zero-mass particles feel but do not exert gravity.
    r : float
        Physical radius (>= 0). Required by force modules that model
        the body's shape (tides, oblateness).
    x, y, z : float
        Position components
    vx, vy, vz : float
        Velocity components
    name : str, optional
        Label used in summaries and output tables

    Notes
    -----
    Particles are values: the store hands out the current Particle for an
    index and replaces it wholesale when the integrator writes back.
    """
    m: float = 0.0
    r: float = 0.0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    vz: float = 0.0
    name: Optional[str] = None

    def __post_init__(self):
        # Coerce numpy scalars to plain floats so equality/hash are stable
        for f in fields(self):
            if f.name == 'name':
                continue
            value = getattr(self, f.name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise TypeError(f"Particle.{f.name} must be a real number, got {value!r}")
            if not np.isfinite(value):
                raise ValueError(f"Particle.{f.name} must be finite, got {value}")
            object.__setattr__(self, f.name, value)
        if self.m < 0:
            raise ValueError(f"Mass must be non-negative, got {self.m}")
        if self.r < 0:
            raise ValueError(f"Radius must be non-negative, got {self.r}")

    # ========== ALTERNATE CONSTRUCTORS ==========
    @classmethod
    def from_vectors(cls, m: float, r: float, pos: Sequence[float],
                     vel: Sequence[float], name: Optional[str] = None) -> "Particle":
        """Create a particle from position and velocity 3-vectors."""
        pos = as_vector3(pos, "position")
        vel = as_vector3(vel, "velocity")
        return cls(m, r, pos[0], pos[1], pos[2], vel[0], vel[1], vel[2], name)

    def with_state(self, pos: Sequence[float], vel: Sequence[float]) -> "Particle":
        """Return a copy with a new position and velocity."""
        return replace(self, x=pos[0], y=pos[1], z=pos[2],
                       vx=vel[0], vy=vel[1], vz=vel[2])

    # ========== PROPERTY ACCESS ==========
    @property
    def pos(self) -> np.ndarray:
        """Position vector"""
        return np.array([self.x, self.y, self.z])

    @property
    def vel(self) -> np.ndarray:
        """Velocity vector"""
        return np.array([self.vx, self.vy, self.vz])

    @property
    def state(self) -> np.ndarray:
        """Cartesian state [x, y, z, vx, vy, vz]"""
        return np.array([self.x, self.y, self.z, self.vx, self.vy, self.vz])

    # ========== SPECIAL METHODS ==========
    def __eq__(self, other):
        #Check equality with tolerance
        if not isinstance(other, Particle):
            return False
        return (self.name == other.name and
                np.allclose(np.r_[self.m, self.r, self.state],
                            np.r_[other.m, other.r, other.state],
                            rtol=config.EQUALITY_RTOL,
                            atol=config.EQUALITY_ATOL))

    def __hash__(self):
        #Hash with rounding to match equality
        values = (self.m, self.r) + tuple(self.state)
        rounded = tuple(round(v, config.HASH_DECIMALS) for v in values)
        return hash((self.name, rounded))

    def __str__(self):
        label = self.name if self.name is not None else "Particle"
        return (f"{label}: m = {self.m:.6e}, r = {self.r:.6e}\n"
                f"  pos = [{self.x:14.8f}, {self.y:14.8f}, {self.z:14.8f}]\n"
                f"  vel = [{self.vx:14.8f}, {self.vy:14.8f}, {self.vz:14.8f}]")


class ParticleStore:
    """
    Ordered collection of particles with stable indices.

    Indices are assigned in insertion order and never reused: removing a
    particle leaves a tombstone so later indices keep their meaning for the
    lifetime of the store.

    Attributes
    ----------
    version : int
        Mutation counter. Incremented by every add, replace and remove so
        integrators can detect that the store changed under them.
    """
    def __init__(self):
        self._particles: List[Optional[Particle]] = []
        self._version = 0

    # ========== MUTATION ==========
    def add(self, particle: Particle) -> int:
        """
        Append a particle.

        Returns
        -------
        int
            Stable index of the new particle
        """
        if not isinstance(particle, Particle):
            raise TypeError(f"Expected Particle, got {type(particle).__name__}")
        self._particles.append(particle)
        self._version += 1
        return len(self._particles) - 1

    def replace(self, index: int, particle: Particle):
        """Replace the particle stored at a live index."""
        self._check_index(index)
        self._particles[index] = particle
        self._version += 1

    def remove(self, index: int):
        """Remove a particle; its index is retired, never reused."""
        self._check_index(index)
        self._particles[index] = None
        self._version += 1

    # ========== ACCESS ==========
    def get(self, index: int) -> Particle:
        """
        Get the particle at an index.

        Raises
        ------
        InvalidIndex
            If index is out of range or the particle was removed
        """
        self._check_index(index)
        return self._particles[index]

    def live_indices(self) -> Tuple[int, ...]:
        """Indices of particles that have not been removed, in order."""
        return tuple(i for i, p in enumerate(self._particles) if p is not None)

    def is_live(self, index: int) -> bool:
        """Check whether an index refers to a live particle."""
        return 0 <= index < len(self._particles) and self._particles[index] is not None

    @property
    def version(self) -> int:
        return self._version

    @property
    def capacity(self) -> int:
        """Number of indices ever assigned (live and removed)."""
        return len(self._particles)

    def _check_index(self, index):
        if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
            raise InvalidIndex(f"Particle index must be an integer, got {index!r}")
        if not 0 <= index < len(self._particles):
            raise InvalidIndex(
                f"Particle index {index} out of range "
                f"(store holds indices 0..{len(self._particles) - 1})"
            )
        if self._particles[index] is None:
            raise InvalidIndex(f"Particle {index} has been removed")

    # ========== SPECIAL METHODS ==========
    def __len__(self):
        #Number of live particles
        return sum(1 for p in self._particles if p is not None)

    def __iter__(self) -> Iterator[Particle]:
        #Iterate over live particles in index order
        return (p for p in self._particles if p is not None)

    def __repr__(self):
        return f"ParticleStore(live={len(self)}, capacity={self.capacity})"
