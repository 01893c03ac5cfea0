'''Development code for an N-body integration package
Taylor-series backend built on heyoka'''

import math
import warnings
import numpy as np
import heyoka as hy
from typing import Callable, Dict, List, Optional, Tuple
from .config import config
from .errors import InvalidState, NonConvergence
from .forces import gravity_symbolic
from .ias15 import StepOutcome


class SymbolicContext:
    """
    Symbolic counterpart of ForceContext.

    Positions, velocities and auxiliary variables are heyoka variables laid
    out as in the numeric state vector. Masses, radii and module constants
    are runtime parameters (hy.par) so the compiled integrator can be
    reused when only their values change.

    Attributes
    ----------
    G : float
        Gravitational constant (compiled in)
    pos, vel : list of 3-tuples
        Per-row position and velocity variables
    aux : dict
        Module name -> list of auxiliary variables in layout order
    sqrt : callable
        Symbolic square root
    """
    sqrt = staticmethod(hy.sqrt)

    def __init__(self, G: float, layout, pos, vel, aux):
        self.G = G
        self.layout = layout
        self.pos = pos
        self.vel = vel
        self.aux = aux
        self.param_map: List[Tuple[str, int]] = []
        self.resolvers: List[Tuple[str, int, object, Optional[str]]] = []
        self._index: Dict[Tuple[str, int], int] = {}

    def _par(self, key, particle, default=None, fallback=None):
        slot = (key, particle)
        if slot not in self._index:
            self._index[slot] = len(self.resolvers)
            self.param_map.append((f"{key}[{particle}]", self._index[slot]))
            self.resolvers.append((key, particle, default, fallback))
        return hy.par[self._index[slot]]

    def mass(self, row: int):
        return self._par("m", self.layout.particles[row])

    def radius(self, row: int):
        return self._par("r", self.layout.particles[row])

    def param(self, key: str, particle: int, default=None, fallback: Optional[str] = None):
        """
        Runtime parameter for a per-particle constant.

        Parameters
        ----------
        key : str
            Registered parameter key
        particle : int
            Particle index
        default : float, optional
            Value used when the key is not set
        fallback : str, optional
            Particle attribute ('m' or 'r') used when the key is not set
        """
        return self._par(key, particle, default, fallback)


def build_symbolic_system(coupler):
    """
    Assemble the heyoka ODE system for the coupler's current layout.

    Returns
    -------
    sys : list of (variable, expression)
        Equations in state-vector order
    sctx : SymbolicContext
        Context holding the parameter map and resolvers
    """
    layout = coupler.layout
    pos = [tuple(hy.make_vars(f"x_{p}", f"y_{p}", f"z_{p}")) for p in layout.particles]
    vel = [tuple(hy.make_vars(f"vx_{p}", f"vy_{p}", f"vz_{p}")) for p in layout.particles]
    aux_vars: Dict[str, list] = {name: [] for name, _, _ in layout.blocks}
    for slot in layout.slots:
        if slot.size == 1:
            names = [f"{slot.module}_{slot.name}_{slot.particle}"]
        else:
            names = [f"{slot.module}_{slot.name}{c}_{slot.particle}" for c in "xyz"]
        variables = [hy.make_vars(name) for name in names]
        aux_vars[slot.module].extend(variables)

    sctx = SymbolicContext(coupler.G, layout, pos, vel, aux_vars)
    acc = gravity_symbolic(sctx)
    aux_rhs: Dict[str, list] = {}
    for module in coupler.registry.enabled_modules:
        a, ad = module.symbolic(sctx)
        if a is not None:
            for row in range(len(acc)):
                for c in range(3):
                    acc[row][c] = acc[row][c] + a[row][c]
        if ad is not None:
            aux_rhs[module.name] = list(ad)

    sys = []
    for row in range(layout.n_particles):
        for c in range(3):
            sys.append((pos[row][c], vel[row][c]))
    for row in range(layout.n_particles):
        for c in range(3):
            sys.append((vel[row][c], _as_expression(acc[row][c])))
    for name, _, _ in layout.blocks:
        rhs = aux_rhs.get(name, [])
        if len(rhs) != len(aux_vars[name]):
            raise ValueError(
                f"Force '{name}' returned {len(rhs)} symbolic derivatives "
                f"for {len(aux_vars[name])} auxiliary variables"
            )
        for var, expr in zip(aux_vars[name], rhs):
            sys.append((var, _as_expression(expr)))
    return sys, sctx


def _as_expression(value):
    # constant right-hand sides (e.g. a lone particle) must still be expressions
    if isinstance(value, (int, float)):
        return hy.expression(float(value))
    return value


class TaylorIntegrator:
    """
    Same stepping interface as IAS15, on top of heyoka.taylor_adaptive.

    The equations are compiled once per layout; the Simulation caches
    instances by layout signature. Particle masses, radii and module
    constants are runtime parameters refreshed by ``refresh_params``.

    Parameters
    ----------
    coupler : Coupler
        Source of the layout, the force modules and the parameter values
    t0 : float
        Initial time
    y0 : array_like
        Initial combined state
    tol : float, optional
        Taylor tolerance (default config.TAYLOR_TOL, i.e. heyoka's default)
    compact_mode : bool, optional
        heyoka compact mode (default config.TAYLOR_COMPACT_MODE)
    """
    _instance_count = 0

    def __init__(self, coupler, t0: float, y0, tol: Optional[float] = None,
                 compact_mode: Optional[bool] = None):
        self._coupler = coupler
        layout = coupler.layout
        self.signature = layout.signature
        sys, sctx = build_symbolic_system(coupler)
        self.param_map = sctx.param_map
        self._resolvers = sctx.resolvers

        tol = tol if tol is not None else config.TAYLOR_TOL
        compact_mode = (compact_mode if compact_mode is not None
                        else config.TAYLOR_COMPACT_MODE)
        kwargs = {'compact_mode': compact_mode}
        if tol is not None:
            kwargs['tol'] = tol

        msg = f"Compiling Taylor integrator for {layout.n_particles} particles"
        modules = [name for name, _ in layout.governed]
        if modules:
            msg += f" with {', '.join(modules)}"
        print(msg + "...")
        self._ta = hy.taylor_adaptive(
            sys=sys,
            state=[float(v) for v in y0],
            time=float(t0),
            pars=self._resolve_params(),
            **kwargs
        )
        print("✓ Compilation complete")

        self.dt_last_done = 0.0
        self.n_steps = 0
        self.n_rejected = 0
        self._last_time = float(t0)
        self._last_state = np.array(self._ta.state)

        TaylorIntegrator._instance_count += 1
        self._counted = True
        if TaylorIntegrator._instance_count > config.INSTANCE_WARNING_THRESHOLD:
            warnings.warn(
                f"Created {TaylorIntegrator._instance_count} Taylor integrators. "
                f"Each one holds compiled code, which can consume significant "
                f"memory. Consider keeping the particle and force sets fixed.",
                ResourceWarning,
                stacklevel=2
            )

    # ========== PARAMETERS ==========
    def _resolve_params(self) -> List[float]:
        values = []
        particles = self._coupler.particles
        parameters = self._coupler.parameters
        for key, index, default, fallback in self._resolvers:
            if key in ("m", "r"):
                values.append(getattr(particles.get(index), key))
                continue
            value = parameters.lookup(index, key)
            if value is None:
                value = getattr(particles.get(index), fallback) if fallback else default
            if value is None:
                raise ValueError(f"Parameter '{key}' is not set for particle {index}")
            values.append(float(value))
        return values

    def refresh_params(self):
        """Copy current masses, radii and module constants into hy.par."""
        if self._resolvers:
            self._ta.pars[:] = self._resolve_params()

    # ========== STATE ==========
    @property
    def time(self) -> float:
        return float(self._ta.time)

    @property
    def state(self) -> np.ndarray:
        return np.array(self._ta.state)

    @property
    def dt(self) -> float:
        return self.dt_last_done

    def set_state(self, t: float, y):
        y = np.asarray(y, dtype=float)
        if not np.all(np.isfinite(y)) or not math.isfinite(t):
            raise InvalidState(f"Non-finite initial state at t={t}")
        self._ta.time = float(t)
        self._ta.state[:] = y
        self._snapshot()

    def reset(self):
        """Taylor steps carry no memory between calls."""

    def _snapshot(self):
        self._last_time = float(self._ta.time)
        self._last_state = np.array(self._ta.state)

    def _restore(self):
        self._ta.time = self._last_time
        self._ta.state[:] = self._last_state

    # ========== STEPPING ==========
    def _check_outcome(self, oc, h):
        if oc == hy.taylor_outcome.err_nf_state:
            self._restore()
            raise InvalidState(
                f"Non-finite state after step from t={self._last_time}"
            )
        if h == 0.0:
            raise NonConvergence(f"Zero-length Taylor step at t={self.time}")

    def step(self, max_delta_t: Optional[float] = None) -> Tuple[StepOutcome, float]:
        self._snapshot()
        if max_delta_t is None:
            oc, h = self._ta.step()
        else:
            oc, h = self._ta.step(max_delta_t)
        self._check_outcome(oc, h)
        self.dt_last_done = h
        self.n_steps += 1
        if oc == hy.taylor_outcome.time_limit:
            return StepOutcome.TIME_LIMIT, h
        return StepOutcome.SUCCESS, h

    def propagate_until(self, t: float, callback: Optional[Callable] = None):
        """
        Propagate to time t (see IAS15.propagate_until).

        The heyoka callback snapshots every accepted step so a non-finite
        state can be rolled back to the last good one.
        """
        t = float(t)
        if t < self.time:
            raise ValueError(f"Cannot integrate backward from t={self.time} to t={t}")
        if t == self.time:
            return StepOutcome.TIME_LIMIT, np.inf, 0.0, 0
        self._snapshot()

        def _cb(ta):
            if not np.all(np.isfinite(ta.state)):
                return False
            self._last_time = float(ta.time)
            self._last_state = np.array(ta.state)
            if callback is not None and not callback(self):
                return False
            return True

        res = self._ta.propagate_until(t, callback=_cb)
        oc, min_h, max_h, n_steps = res[0], res[1], res[2], res[3]
        self.n_steps += n_steps
        if n_steps:
            self.dt_last_done = max_h

        if oc == hy.taylor_outcome.err_nf_state or not np.all(np.isfinite(self._ta.state)):
            self._restore()
            raise InvalidState(f"Non-finite state after t={self._last_time}")
        if oc == hy.taylor_outcome.cb_stop:
            return StepOutcome.CANCELLED, min_h, max_h, n_steps
        if oc != hy.taylor_outcome.time_limit:
            raise NonConvergence(f"Taylor propagation stopped with outcome {oc}")
        if n_steps and min_h == 0.0:
            raise NonConvergence(f"Zero-length Taylor step before t={t}")
        self._ta.time = t
        return StepOutcome.TIME_LIMIT, min_h, max_h, n_steps

    # ========== SPECIAL METHODS ==========
    def __del__(self):
        if getattr(self, "_counted", False):
            TaylorIntegrator._instance_count -= 1

    def __repr__(self):
        return (f"TaylorIntegrator(t={self.time}, params={len(self.param_map)}, "
                f"steps={self.n_steps})")

    @classmethod
    def get_instance_count(cls):
        """Number of live compiled integrators."""
        return cls._instance_count
