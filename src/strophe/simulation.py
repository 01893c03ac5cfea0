'''Development code for an N-body integration package
Simulation class definition'''

import numpy as np
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union
from .config import config
from .coupler import Coupler, StateLayout
from .errors import AuxiliaryStateLocked
from .forces import ForceModule, ForceRegistry, load_force
from .ias15 import IAS15, StepOutcome
from .taylor import TaylorIntegrator
from .orbits import Orbit, cartesian_to_orbit, orbit_to_cartesian
from .parameters import ParamKind, ParameterStore, param_spec
from .particles import Particle, ParticleStore
from .tools import (center_of_mass, kinetic_energy, orbital_angular_momentum,
                    potential_energy, rotation_to_z)
from .utils import CancelToken, Timer, cancel_requested


class IntegratorType(Enum):
    IAS15 = 'ias15'
    TAYLOR = 'taylor'


class AdvanceOutcome(Enum):
    TIME_LIMIT = 'time_limit'   # requested time reached exactly
    CANCELLED = 'cancelled'     # stopped between steps by the cancel token


class Simulation:
    """
    N-body simulation driver.

    Owns the particle store, the typed parameter side-table, the attached
    force modules and the integrator, and advances them together on one
    clock. Auxiliary variables declared by force modules (e.g. spin
    vectors) are integrated alongside positions and velocities.

    Parameters
    ----------
    G : float, optional
        Gravitational constant (default config.DEFAULT_G)
    integrator : str or IntegratorType, optional
        'ias15' (adaptive Gauss-Radau, default) or 'taylor' (heyoka)
    dt : float, optional
        Initial step size for IAS15 (default config.DEFAULT_DT)
    epsilon : float, optional
        IAS15 relative tolerance (default config.EPSILON)

    Examples
    --------
    >>> sim = Simulation()
    >>> sun = sim.add(m=1.0)
    >>> planet = sim.add(m=1e-3, a=1.0, e=0.1)
    >>> sim.advance_to(100.0)
    <AdvanceOutcome.TIME_LIMIT: 'time_limit'>
    >>> sim.orbit(planet).e
    0.1000000...
    """
    def __init__(self, G: Optional[float] = None, integrator='ias15',
                 dt: Optional[float] = None, epsilon: Optional[float] = None):
        self.G = float(G) if G is not None else config.DEFAULT_G
        if not self.G > 0:
            raise ValueError(f"Gravitational constant must be positive, got {G}")
        self._integrator_type = self._parse_integrator_type(integrator)
        self._dt = float(dt) if dt is not None else config.DEFAULT_DT
        if not self._dt > 0:
            raise ValueError(f"Initial step must be positive, got {dt}")
        self._epsilon = epsilon

        self._particles = ParticleStore()
        self._parameters = ParameterStore()
        self._registry = ForceRegistry()
        self._coupler = Coupler(self._registry, self._particles, self._parameters, self.G)

        self._t = 0.0
        self._integrated = frozenset()
        self._integrator = None
        self._signature = None
        self._synced = None
        self._taylor_cache: Dict[tuple, object] = {}
        self._steps_done = 0
        self._walltime = 0.0

    # ========== PARTICLES ==========
    def add(self, particle: Optional[Particle] = None, *, m: float = 0.0,
            r: float = 0.0, x: float = 0.0, y: float = 0.0, z: float = 0.0,
            vx: float = 0.0, vy: float = 0.0, vz: float = 0.0,
            name: Optional[str] = None, a: Optional[float] = None,
            e: Optional[float] = None, inc: float = 0.0, Omega: float = 0.0,
            omega: Optional[float] = None, pomega: Optional[float] = None,
            f: Optional[float] = None, M: Optional[float] = None,
            primary: Union[int, Particle, None] = None) -> int:
        """
        Add a particle from a Particle, Cartesian components or orbital
        elements.

        Passing ``a`` (and optionally ``e``, ``inc``, ``Omega``, ``omega``
        or ``pomega``, ``f`` or ``M``) places the particle on an orbit about
        ``primary``: a particle index, a Particle, or by default the centre
        of mass of every live particle (Jacobi coordinates).

        Returns
        -------
        int
            Stable index of the new particle

        Raises
        ------
        ValueError
            For invalid physical inputs or orbital elements
        """
        if particle is not None:
            if not isinstance(particle, Particle):
                raise TypeError(f"Expected Particle, got {type(particle).__name__}")
            return self._particles.add(particle)

        if a is None and (e is not None or f is not None or M is not None
                          or omega is not None or pomega is not None):
            raise ValueError("Orbital elements require the semi-major axis 'a'")
        if a is None:
            return self._particles.add(Particle(m, r, x, y, z, vx, vy, vz, name))

        if omega is not None and pomega is not None:
            raise ValueError("Give either omega or pomega, not both")
        if pomega is not None:
            omega = pomega - Omega
        reference = self._resolve_primary(primary)
        if reference.m + m <= 0.0:
            raise ValueError("Orbit needs a primary with mass (add a central body first)")
        pos, vel = orbit_to_cartesian(self.G * (reference.m + m), a,
                                      0.0 if e is None else e, inc, Omega,
                                      0.0 if omega is None else omega,
                                      f=f, M=M, reference=reference)
        return self._particles.add(Particle.from_vectors(m, r, pos, vel, name))

    def remove(self, index: int):
        """Remove a particle and release its parameter entries."""
        self._particles.remove(index)
        self._parameters.release(index)

    def particle(self, index: int) -> Particle:
        """Current state of one particle."""
        return self._particles.get(index)

    @property
    def particles(self) -> Tuple[Particle, ...]:
        """Live particles in index order."""
        return tuple(self._particles)

    @property
    def n_particles(self) -> int:
        return len(self._particles)

    @property
    def indices(self) -> Tuple[int, ...]:
        """Live particle indices."""
        return self._particles.live_indices()

    def _resolve_primary(self, primary) -> Particle:
        if primary is None:
            return center_of_mass(self._particles)
        if isinstance(primary, Particle):
            return primary
        return self._particles.get(primary)

    # ========== PARAMETERS ==========
    def set_param(self, index: int, key: str, value):
        """
        Attach a typed parameter to a particle.

        Raises
        ------
        InvalidIndex
            If the particle does not exist
        NotFound
            If the key is not registered
        TypeMismatch
            If the value does not match the key's kind
        AuxiliaryStateLocked
            If the key is an auxiliary variable already being integrated for
            this particle. Particles added after the first advance_to can
            still be given initial values until they take part in one.
        """
        self._particles.get(index)
        spec = param_spec(key)
        if spec.auxiliary and (index, key) in self._integrated:
            raise AuxiliaryStateLocked(
                f"'{key}' of particle {index} is integrated by '{spec.owner}' "
                f"and can only be set before it enters an advance_to"
            )
        self._parameters.set(index, key, value)

    def get_param(self, index: int, key: str, kind=None):
        """
        Read a typed parameter (auxiliary keys return the live value).

        Raises
        ------
        InvalidIndex, NotFound, TypeMismatch
        """
        self._particles.get(index)
        return self._parameters.get(index, key, kind)

    # ========== FORCES ==========
    def attach_force(self, force: Union[str, ForceModule], **kwargs) -> ForceModule:
        """
        Attach a force module by catalog name or instance.

        Raises
        ------
        ValueError
            If the name is unknown or a module of that kind is attached
        """
        if isinstance(force, str):
            module = load_force(force, **kwargs)
        elif isinstance(force, ForceModule):
            if kwargs:
                raise TypeError("Keyword arguments only apply when attaching by name")
            module = force
        else:
            raise TypeError(f"Expected force name or ForceModule, got {type(force).__name__}")
        return self._registry.register(module)

    def force(self, name: str) -> ForceModule:
        return self._registry.get(name)

    def enable_force(self, name: str):
        self._registry.enable(name)

    def disable_force(self, name: str):
        self._registry.disable(name)

    @property
    def forces(self) -> Tuple[ForceModule, ...]:
        return self._registry.modules

    # ========== INTEGRATION ==========
    def advance_to(self, t: float, cancel: CancelToken = None) -> AdvanceOutcome:
        """
        Integrate until time t, landing on it exactly.

        Parameters
        ----------
        t : float
            Target time, not before the current time. Equal to the current
            time is a no-op.
        cancel : threading.Event or callable, optional
            Polled between steps; when set the call returns CANCELLED with
            the simulation at its last accepted step.

        Returns
        -------
        AdvanceOutcome

        Raises
        ------
        ValueError
            If t is before the current time or not finite
        NonConvergence, InvalidState
            Integration failed; the simulation is left at its last
            accepted step
        """
        t = float(t)
        if not np.isfinite(t):
            raise ValueError(f"Target time must be finite, got {t}")
        if t < self._t:
            raise ValueError(f"Cannot advance backward from t={self._t} to t={t}")
        if t == self._t:
            return AdvanceOutcome.TIME_LIMIT

        integrator = self._prepare()
        if integrator is None:
            self._t = t
            return AdvanceOutcome.TIME_LIMIT

        callback = None
        if cancel is not None:
            callback = lambda _: not cancel_requested(cancel)
        steps_before = integrator.n_steps
        timer = Timer(verbose=False)
        try:
            with timer:
                outcome = integrator.propagate_until(t, callback=callback)[0]
        finally:
            self._steps_done += integrator.n_steps - steps_before
            if timer.elapsed is not None:
                self._walltime += timer.elapsed
            self._sync(integrator)
        if outcome == StepOutcome.CANCELLED:
            return AdvanceOutcome.CANCELLED
        return AdvanceOutcome.TIME_LIMIT

    def _prepare(self):
        """Build or reuse the layout and integrator for the current stores."""
        layout = self._coupler.build()
        self._coupler.bind()
        if layout.size == 0:
            self._integrator = None
            self._signature = None
            self._integrated = frozenset()
            return None

        versions = (self._particles.version, self._parameters.version)
        layout_changed = layout.signature != self._signature
        if self._integrator is not None and not layout_changed and versions == self._synced:
            if self._integrator_type == IntegratorType.TAYLOR:
                self._integrator.refresh_params()
            return self._integrator

        y = self._coupler.gather()
        if self._integrator_type == IntegratorType.IAS15:
            if self._integrator is None or layout_changed:
                self._integrator = IAS15(self._coupler, self._t, y,
                                         dt=self._dt, epsilon=self._epsilon)
            else:
                self._integrator.set_state(self._t, y)
        else:
            integrator = self._taylor_cache.get(layout.signature)
            if integrator is None:
                integrator = TaylorIntegrator(self._coupler, self._t, y)
                self._taylor_cache[layout.signature] = integrator
            else:
                integrator.refresh_params()
                integrator.set_state(self._t, y)
            self._integrator = integrator
        self._signature = layout.signature
        self._integrated = frozenset((s.particle, s.name) for s in layout.slots)
        return self._integrator

    def _sync(self, integrator):
        """Scatter the integrator's last accepted state into the stores."""
        self._t = integrator.time
        if integrator.dt > 0:
            self._dt = integrator.dt
        self._coupler.scatter(integrator.state)
        self._synced = (self._particles.version, self._parameters.version)

    def record(self, times: Sequence[float], cancel: CancelToken = None):
        """
        Advance through a sequence of times, sampling the system at each.

        Returns
        -------
        Trajectory
            One row per reached sample time (fewer if cancelled)
        """
        from .trajectory import Trajectory, sample_row
        times = np.asarray(times, dtype=float).reshape(-1)
        if times.size and np.any(np.diff(times) < 0):
            raise ValueError("Sample times must be non-decreasing")
        reached, rows = [], []
        for t in times:
            if self.advance_to(t, cancel) == AdvanceOutcome.CANCELLED:
                break
            reached.append(self._t)
            rows.append(sample_row(self))
        return Trajectory(reached, rows)

    # ========== PROPERTY ACCESS ==========
    @property
    def t(self) -> float:
        return self._t

    @property
    def dt(self) -> float:
        """Current adaptive step size."""
        return self._dt

    @property
    def steps_done(self) -> int:
        return self._steps_done

    @property
    def walltime(self) -> float:
        """Seconds spent inside advance_to."""
        return self._walltime

    @property
    def integrator_type(self) -> IntegratorType:
        return self._integrator_type

    @property
    def parameters(self) -> ParameterStore:
        return self._parameters

    @property
    def layout(self) -> StateLayout:
        """Layout the next advance_to would use."""
        return self._coupler.build()

    def state_vector(self) -> np.ndarray:
        """Combined state [x, v, aux] in the current layout."""
        self._coupler.build()
        return self._coupler.gather()

    # ========== QUERIES ==========
    def orbit(self, index: int, primary: Union[int, Particle, None] = None) -> Orbit:
        """
        Osculating orbit of a particle.

        By default the reference is the centre of mass of all live
        particles with a lower index (Jacobi coordinates).
        """
        body = self._particles.get(index)
        if primary is None:
            interior = [self._particles.get(i) for i in self._particles.live_indices()
                        if i < index]
            if not interior:
                raise ValueError(f"Particle {index} has no interior particles to orbit")
            reference = center_of_mass(interior)
        else:
            reference = self._resolve_primary(primary)
        return cartesian_to_orbit(self.G * (reference.m + body.m), body, reference)

    def orbits(self, jacobi: bool = True) -> List[Orbit]:
        """
        Orbits of every live particle but the first.

        Jacobi coordinates by default; otherwise relative to the first
        live particle.
        """
        live = self._particles.live_indices()
        if not live:
            return []
        primary = None if jacobi else live[0]
        return [self.orbit(i, primary) for i in live[1:]]

    def _spins(self):
        # (moment of inertia, spin vector) of every body carrying both
        for i in self._particles.live_indices():
            inertia = self._parameters.lookup(i, "I")
            spin = self._parameters.lookup(i, "Omega")
            if inertia is not None and spin is not None:
                yield inertia, spin

    def energy(self, include_spin: bool = True) -> float:
        """
        Kinetic plus Newtonian potential energy, plus rotational kinetic
        energy of spinning bodies.

        Tidal and flattening potentials are not included.
        """
        particles = self.particles
        energy = kinetic_energy(particles) + potential_energy(particles, self.G)
        if include_spin:
            energy += sum(0.5 * inertia * np.dot(spin, spin)
                          for inertia, spin in self._spins())
        return energy

    def angular_momentum(self, include_spin: bool = True) -> np.ndarray:
        """Orbital (plus spin) angular momentum about the origin."""
        L = orbital_angular_momentum(self.particles)
        if include_spin:
            for inertia, spin in self._spins():
                L = L + inertia * spin
        return L

    def compute_accelerations(self) -> np.ndarray:
        """Accelerations of the live particles at the current state, shape (n, 3)."""
        layout = self._coupler.build()
        self._coupler.bind()
        F = self._coupler.forces(self._t, self._coupler.gather())
        return F[:layout.n_second].reshape(-1, 3)

    def compute_auxiliary_derivatives(self) -> np.ndarray:
        """Derivatives of the auxiliary variables at the current state."""
        layout = self._coupler.build()
        self._coupler.bind()
        F = self._coupler.forces(self._t, self._coupler.gather())
        return F[layout.n_second:]

    # ========== TOOLS ==========
    def move_to_com(self):
        """Shift positions and velocities to the centre-of-mass frame."""
        com = center_of_mass(self._particles)
        for i in self._particles.live_indices():
            p = self._particles.get(i)
            self._particles.replace(i, p.with_state(p.pos - com.pos, p.vel - com.vel))

    def align_to_invariable_plane(self):
        """
        Rotate the system so total (orbital plus spin) angular momentum
        points along +z.

        Positions, velocities and every vector parameter (spins included)
        are rotated together.
        """
        R = rotation_to_z(self.angular_momentum(include_spin=True))
        for i in self._particles.live_indices():
            p = self._particles.get(i)
            self._particles.replace(i, p.with_state(R @ p.pos, R @ p.vel))
            for key in self._parameters.keys(i):
                if param_spec(key).kind == ParamKind.VECTOR:
                    self._parameters.set(i, key, R @ self._parameters.get(i, key))

    # ========== SPECIAL METHODS ==========
    def summary(self):
        """Print a summary of the simulation."""
        print(f"Integrator: {self._integrator_type.value}")
        print(f"G = {self.G}, t = {self._t}, dt = {self._dt:.6e}")
        print(f"Particles: {self.n_particles}")
        for i in self._particles.live_indices():
            p = self._particles.get(i)
            keys = self._parameters.keys(i)
            extra = f" [{', '.join(keys)}]" if keys else ""
            print(f"  {i}: {p.name or 'unnamed'} m = {p.m:.6e}{extra}")
        if len(self._registry):
            print(f"Forces: {', '.join(repr(m) for m in self._registry)}")
        else:
            print("Forces: Newtonian gravity only")
        print(f"Steps: {self._steps_done}, walltime = {self._walltime:.3f} s")

    def __repr__(self):
        return (f"Simulation(t={self._t}, particles={self.n_particles}, "
                f"integrator='{self._integrator_type.value}', "
                f"forces={[m.name for m in self._registry]})")

    @staticmethod
    def _parse_integrator_type(kind):
        """Convert string or enum to IntegratorType enum"""
        if isinstance(kind, IntegratorType):
            return kind
        elif isinstance(kind, str):
            type_map = {
                'ias15': IntegratorType.IAS15,
                'IAS15': IntegratorType.IAS15,
                'taylor': IntegratorType.TAYLOR,
                'Taylor': IntegratorType.TAYLOR,
                'heyoka': IntegratorType.TAYLOR,
            }
            if kind in type_map:
                return type_map[kind]
            raise ValueError(f"Unknown integrator '{kind}'. "
                             f"Use: {list(type_map.keys())}")
        else:
            raise TypeError(f"integrator must be IntegratorType or str, got {type(kind)}")
