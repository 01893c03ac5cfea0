'''Development code for an N-body integration package
IAS15 adaptive Gauss-Radau integrator'''

import math
import warnings
import numpy as np
from enum import Enum
from typing import Callable, Optional, Tuple
from .config import config
from .errors import InvalidState, NonConvergence


class StepOutcome(Enum):
    SUCCESS = 'success'         # free step accepted
    TIME_LIMIT = 'time_limit'   # step clipped to the requested limit and accepted
    CANCELLED = 'cancelled'     # propagate_until stopped by its callback


# ========== GAUSS-RADAU TABLES ==========
# Spacings of the 8 Gauss-Radau nodes on [0, 1]
RADAU_NODES = np.array([
    0.0,
    0.0562625605369221464656521910318,
    0.180240691736892364987579942780,
    0.352624717113169637373907769648,
    0.547153626330555383001448554766,
    0.734210177215410531523210605558,
    0.885320946839095768090359771030,
    0.977520613561287501891174488626,
])

_K = np.arange(7)


def _radau_tables():
    """
    Build the interpolation tables from the node spacings.

    Returns
    -------
    r : (8, 8) array
        r[n, k] = 1 / (h_n - h_k) for k < n (divided differences)
    c : (7, 7) array
        c[j, k] = coefficient of s^(k+1) in s * prod_{l=1..j} (s - h_l),
        so that b = c.T @ g
    d : (7, 7) array
        Inverse map g = d @ b
    """
    h = RADAU_NODES
    r = np.zeros((8, 8))
    for n in range(1, 8):
        for k in range(n):
            r[n, k] = 1.0 / (h[n] - h[k])
    c = np.zeros((7, 7))
    poly = np.array([1.0])
    for j in range(7):
        if j > 0:
            poly = np.convolve(poly, [-h[j], 1.0])
        c[j, :j + 1] = poly
    d = np.linalg.inv(c.T)
    return r, c, d


_R, _C, _D = _radau_tables()

# Weights of b_k in the single (velocity) and double (position) integrals
# of the force polynomial, evaluated at each node and at the step end
_NODES_END = np.append(RADAU_NODES, 1.0)
_VEL_W = _NODES_END[:, np.newaxis] ** (_K + 1) / (_K + 2)
_POS_W = _NODES_END[:, np.newaxis] ** (_K + 1) / ((_K + 2) * (_K + 3))

# _BINOM[j, k] = C(k+1, j+1) for k >= j (predictor rescaling)
_BINOM = np.array([[math.comb(k + 1, j + 1) if k >= j else 0 for k in range(7)]
                   for j in range(7)], dtype=float)

# Step ratio above which the previous step tells nothing about the next
_MAX_PREDICTOR_RATIO = 20.0


def _relative_error(values: np.ndarray, scale: np.ndarray, groups) -> float:
    """Max over groups of max|values| / max|scale|, skipping null groups."""
    err = 0.0
    for g in groups:
        top = np.max(np.abs(values[g]))
        denom = np.max(np.abs(scale[g]))
        if not (math.isfinite(top) and math.isfinite(denom)):
            return math.inf
        if denom > 0.0:
            err = max(err, top / denom)
    return err


class IAS15:
    """
    Adaptive 15th-order Gauss-Radau integrator (IAS15 step control).

    Integrates y = [x, v, w] where x'' = a(t, y) for the first block of
    ``n_second`` components and w' = u(t, y) for the trailing first-order
    auxiliary block. The system supplies F(t, y) = [a, u] and the error
    control groups.

    Parameters
    ----------
    system : Coupler
        Object providing ``forces(t, y)`` and a ``layout`` with
        ``n_second`` and ``groups``
    t0 : float
        Initial time
    y0 : array_like
        Initial combined state
    dt : float, optional
        Initial step size (default config.DEFAULT_DT)
    epsilon : float, optional
        Relative error tolerance (default config.EPSILON)

    Attributes
    ----------
    dt : float
        Step size the controller will attempt next
    dt_last_done : float
        Size of the last accepted step
    n_steps, n_rejected : int
        Accepted steps and rejected attempts since construction

    Examples
    --------
    >>> ias = IAS15(coupler, 0.0, coupler.gather(), dt=0.01)
    >>> outcome, min_h, max_h, n = ias.propagate_until(100.0)
    """
    def __init__(self, system, t0: float, y0, dt: Optional[float] = None,
                 epsilon: Optional[float] = None):
        self._system = system
        layout = system.layout
        self._ns = layout.n_second
        self._size = layout.size
        self._groups = layout.groups
        self.dt = float(dt) if dt is not None else config.DEFAULT_DT
        if not (self.dt > 0 and math.isfinite(self.dt)):
            raise ValueError(f"Initial step must be positive and finite, got {dt}")
        self.epsilon = float(epsilon) if epsilon is not None else config.EPSILON
        if not self.epsilon > 0:
            raise ValueError(f"Tolerance must be positive, got {epsilon}")
        if self.epsilon < config.EPSILON_FLOOR:
            # the estimate cannot resolve b6 below roundoff of the node forces
            warnings.warn(
                f"Tolerance {self.epsilon} is below the roundoff floor of the "
                f"error estimate; using {config.EPSILON_FLOOR}",
                RuntimeWarning, stacklevel=2
            )
            self.epsilon = config.EPSILON_FLOOR

        # controller settings are frozen at construction
        self.safety_factor = config.SAFETY_FACTOR
        self.max_rejections = config.MAX_REJECTIONS
        self.max_iterations = config.MAX_PC_ITERATIONS
        self.pc_tolerance = config.PC_TOLERANCE
        self.min_dt = config.MIN_DT
        self.min_dt_relative = config.MIN_DT_RELATIVE
        self._dt_initial = self.dt

        self.dt_last_done = 0.0
        self.n_steps = 0
        self.n_rejected = 0
        self._warned_pc = False
        self.set_state(t0, y0)

    # ========== STATE ==========
    @property
    def time(self) -> float:
        return self._time

    @property
    def state(self) -> np.ndarray:
        """Copy of the current combined state."""
        return self._state.copy()

    def set_state(self, t: float, y):
        """Replace time and state and forget the predictor memory."""
        y = np.array(y, dtype=float)
        if y.shape != (self._size,):
            raise ValueError(f"State must have shape ({self._size},), got {y.shape}")
        if not np.all(np.isfinite(y)) or not math.isfinite(t):
            raise InvalidState(f"Non-finite initial state at t={t}")
        self._time = float(t)
        self._state = y
        self.reset()

    def reset(self):
        """Clear predictor memory (after a layout rebuild or external edit)."""
        n_force = self._state.size - self._ns
        self._b = np.zeros((7, n_force))
        self._e = np.zeros((7, n_force))
        self._b_last = None
        self._e_last = None
        self._dt_last_success = 0.0

    # ========== STEPPING ==========
    def step(self, max_delta_t: Optional[float] = None) -> Tuple[StepOutcome, float]:
        """
        Take one accepted step, retrying rejected attempts.

        Parameters
        ----------
        max_delta_t : float, optional
            Upper bound on the step. If the controller's step reaches it the
            step is clipped, the outcome is TIME_LIMIT, and the unclipped
            step size is kept for the next call.

        Returns
        -------
        outcome : StepOutcome
        h : float
            Size of the accepted step

        Raises
        ------
        NonConvergence
            Too many rejections, non-finite forces or step underflow
        InvalidState
            The accepted state is not finite (state is not committed)
        """
        if max_delta_t is not None and not max_delta_t > 0:
            raise ValueError(f"max_delta_t must be positive, got {max_delta_t}")
        target = None if max_delta_t is None else self._time + max_delta_t
        return self._step(max_delta_t, target)

    def _step(self, max_delta_t, t_land):
        dt_free = self.dt
        clipped = max_delta_t is not None and dt_free >= max_delta_t
        dt = max_delta_t if clipped else dt_free
        if not clipped and self._underflow(dt):
            raise NonConvergence(f"Step size underflow at t={self._time} (dt={dt:.3e})")

        rejections = 0
        while True:
            accepted, y_new, dt_next, b = self._attempt(dt)
            if accepted:
                break
            rejections += 1
            self.n_rejected += 1
            if rejections >= self.max_rejections:
                raise NonConvergence(
                    f"Step rejected {rejections} times in a row at t={self._time} "
                    f"(last attempt dt={dt:.3e})"
                )
            # never grow on rejection
            dt = min(dt_next, dt * self.safety_factor)
            clipped = False
            if self._underflow(dt):
                raise NonConvergence(f"Step size underflow at t={self._time} (dt={dt:.3e})")
            self._predict_after_rejection(dt)

        self._time = t_land if clipped else self._time + dt
        self._state = y_new
        self.dt_last_done = dt
        self.n_steps += 1

        dt_memory = dt_free if clipped else dt_next
        self._predict_next(b, dt, dt_memory)
        self.dt = dt_memory
        return (StepOutcome.TIME_LIMIT if clipped else StepOutcome.SUCCESS), dt

    def _underflow(self, dt) -> bool:
        """Step too small to make progress on the clock."""
        if self._time + dt == self._time or dt < self.min_dt:
            return True
        reference = max(abs(self._time), self._dt_initial)
        return dt < self.min_dt_relative * reference

    def _error_scale(self, F_end, tail0, dt) -> np.ndarray:
        """Per-component denominator of the error estimate."""
        scale = np.abs(F_end)
        # auxiliary variables are also measured against their own size over the step
        ns = self._ns
        scale[ns:] = np.maximum(scale[ns:], np.abs(tail0[ns:]) / dt)
        return scale

    def _attempt(self, dt: float):
        """
        One predictor-corrector pass over the step.

        Returns
        -------
        accepted : bool
        y_new : np.ndarray or None
        dt_next : float
            Controller's proposal for the next (or retried) step
        b : np.ndarray
            Converged polynomial coefficients
        """
        t = self._time
        y0 = self._state
        ns = self._ns
        x0 = y0[:ns]
        v0 = y0[ns:2 * ns]
        tail0 = y0[ns:]

        F0 = self._system.forces(t, y0)
        if not np.all(np.isfinite(F0)):
            raise NonConvergence(
                f"Non-finite forces at t={t} (coincident particles?)"
            )
        a0 = F0[:ns]

        b = self._b.copy()
        g = _D @ b
        F = np.empty((8, F0.size))
        F[0] = F0
        y_node = np.empty_like(y0)

        pc_error_last = np.inf
        for iteration in range(self.max_iterations):
            for n in range(1, 8):
                s_dt = RADAU_NODES[n] * dt
                y_node[:ns] = x0 + s_dt * v0 + s_dt * s_dt * (0.5 * a0 + _POS_W[n] @ b[:, :ns])
                y_node[ns:] = tail0 + s_dt * (F0 + _VEL_W[n] @ b)
                F[n] = self._system.forces(t + s_dt, y_node)

                value = (F[n] - F0) * _R[n, 0]
                for k in range(1, n):
                    value = (value - g[k - 1]) * _R[n, k]
                delta = value - g[n - 1]
                g[n - 1] = value
                b[:n] += _C[n - 1, :n, np.newaxis] * delta

            # delta now holds the last correction of g6, i.e. of b6
            scale = self._error_scale(F[7], tail0, dt)
            pc_error = _relative_error(delta, scale, self._groups)
            if not math.isfinite(pc_error):
                break
            if pc_error < self.pc_tolerance:
                break
            if iteration > 1 and pc_error >= pc_error_last:
                break
            pc_error_last = pc_error
        else:
            if not self._warned_pc:
                warnings.warn(
                    f"Predictor-corrector did not converge in {self.max_iterations} "
                    f"iterations at t={t}; continuing with the last iterate",
                    RuntimeWarning, stacklevel=3
                )
                self._warned_pc = True

        err = _relative_error(b[6], scale, self._groups)
        if not math.isfinite(err):
            return False, None, dt * self.safety_factor, b
        if err > 0.0:
            ratio = (self.epsilon / err) ** (1.0 / 7.0)
        else:
            ratio = 1.0 / self.safety_factor
        ratio = min(ratio, 1.0 / self.safety_factor)
        if ratio < self.safety_factor:
            return False, None, dt * ratio, b

        y_new = np.empty_like(y0)
        y_new[:ns] = x0 + dt * v0 + dt * dt * (0.5 * a0 + _POS_W[8] @ b[:, :ns])
        y_new[ns:] = tail0 + dt * (F0 + _VEL_W[8] @ b)
        if not np.all(np.isfinite(y_new)):
            raise InvalidState(f"Non-finite state after step from t={t} (dt={dt:.3e})")
        return True, y_new, dt * ratio, b

    # ========== PREDICTOR ==========
    @staticmethod
    def _extrapolate(q, b_last, e_last, corrected):
        """Rescale last step's coefficients to a step q times as long."""
        e = (q ** (_K + 1))[:, np.newaxis] * (_BINOM @ b_last)
        if corrected:
            return e + (b_last - e_last), e
        return e.copy(), e

    def _predict_next(self, b, dt_done, dt_next):
        corrected = self._b_last is not None
        self._e_last = self._e.copy()
        self._b_last = b.copy()
        self._dt_last_success = dt_done
        q = dt_next / dt_done
        if q > _MAX_PREDICTOR_RATIO:
            self._b = np.zeros_like(b)
            self._e = np.zeros_like(b)
            return
        self._b, self._e = self._extrapolate(q, self._b_last, self._e_last, corrected)

    def _predict_after_rejection(self, dt):
        if self._b_last is None or self._dt_last_success == 0.0:
            self._b = np.zeros_like(self._b)
            self._e = np.zeros_like(self._e)
            return
        q = dt / self._dt_last_success
        if q > _MAX_PREDICTOR_RATIO:
            self._b = np.zeros_like(self._b)
            self._e = np.zeros_like(self._e)
            return
        self._b, self._e = self._extrapolate(q, self._b_last, self._e_last, True)

    # ========== PROPAGATION ==========
    def propagate_until(self, t: float, callback: Optional[Callable] = None):
        """
        Step until time t, landing on it exactly.

        Parameters
        ----------
        t : float
            Final time (must not be before the current time)
        callback : callable, optional
            Called with the integrator after every step; returning False
            stops the propagation.

        Returns
        -------
        outcome : StepOutcome
            TIME_LIMIT when t was reached, CANCELLED if the callback stopped it
        min_h, max_h : float
            Smallest and largest accepted step (inf and 0 if no step)
        n_steps : int
            Number of accepted steps
        """
        t = float(t)
        if t < self._time:
            raise ValueError(f"Cannot integrate backward from t={self._time} to t={t}")
        min_h, max_h, n_steps = np.inf, 0.0, 0
        while self._time < t:
            _, h = self._step(t - self._time, t)
            n_steps += 1
            min_h = min(min_h, h)
            max_h = max(max_h, h)
            if callback is not None and not callback(self):
                return StepOutcome.CANCELLED, min_h, max_h, n_steps
        return StepOutcome.TIME_LIMIT, min_h, max_h, n_steps

    def __repr__(self):
        return (f"IAS15(t={self._time}, dt={self.dt:.3e}, epsilon={self.epsilon}, "
                f"steps={self.n_steps}, rejected={self.n_rejected})")
