'''Development code for an N-body integration package
Tidal and rotational-distortion coupling with spin evolution'''

import numpy as np
from typing import Tuple
from .forces import (ForceModule, register_force_kind,
                     vadd, vcross, vdot, vscale, vsub)
from .parameters import ParamKind, ParamSpec
from .utils import validation_error


def _tidal_pair(G, m_j, R, k2, tau, I, dx, dv, spin, sqrt):
    """
    Acceleration of j due to the distorted body i, and the matching spin
    derivative of i.

    Parameters
    ----------
    G : float
        Gravitational constant
    m_j : float, array or expression
        Mass of the perturbing body(ies)
    R, k2, tau, I
        Radius, Love number, time lag and moment of inertia of body i
    dx, dv : 3-tuples
        Relative position and velocity of j with respect to i
    spin : 3-tuple
        Spin angular velocity of body i
    sqrt : callable
        Square root matching the component type

    Returns
    -------
    acc : 3-tuple
        Acceleration of j (body i feels -m_j/m_i times this)
    spin_dot : 3-tuple
        Contribution of j to dOmega_i/dt
    """
    d2 = vdot(dx, dx)
    d = sqrt(d2)
    d4 = d2 * d2
    dhat = vscale(dx, 1.0 / d)
    s_r = vdot(spin, dhat)
    s2 = vdot(spin, spin)
    R5 = R**5

    # conservative part: rotational flattening plus static tide
    quad = k2 * R5 / (2.0 * d4)
    radial = quad * (5.0 * s_r * s_r - s2 - 6.0 * G * m_j / (d2 * d))
    acc = vsub(vscale(dhat, radial), vscale(spin, 2.0 * quad * s_r))

    # dissipative part: constant time lag
    rdot = vdot(dhat, dv)
    lag = vsub(dv, vcross(spin, dx))
    diss = 3.0 * k2 * G * m_j * R5 * tau / (d4 * d4)
    acc = vsub(acc, vscale(vadd(vscale(dhat, 2.0 * rdot), lag), diss))

    # dx x dhat vanishes, so only the non-radial terms carry torque
    tangential = vadd(vscale(spin, 2.0 * quad * s_r), vscale(lag, diss))
    spin_dot = vscale(vcross(dx, tangential), m_j / I)
    return acc, spin_dot


@register_force_kind
class TidesSpin(ForceModule):
    """
    Equilibrium tides with a constant time lag and rotational flattening.

    Every particle carrying ``k2`` is treated as an extended body: it is
    distorted by its own spin and by the tides raised by every other live
    particle, and its spin vector ``Omega`` is integrated with the orbits.
    Point masses interact with it through the resulting quadrupole.

    Parameters (per particle)
    -------------------------
    k2 : float
        Potential Love number of degree 2
    tau : float, optional
        Constant time lag (default 0, no dissipation)
    I : float
        Moment of inertia about the spin axis
    Omega : 3-vector, auxiliary
        Spin angular velocity (default zero)

    Notes
    -----
    The torque on body i is exactly minus the orbital angular momentum
    change of the pair, so orbital plus spin angular momentum is conserved.
    Without dissipation the torque is perpendicular to Omega and the spin
    rate is conserved.
    """
    name = "tides_spin"
    description = "Constant time lag tides with spin evolution"
    params = (
        ParamSpec("k2", ParamKind.SCALAR, "Potential Love number of degree 2"),
        ParamSpec("tau", ParamKind.SCALAR, "Constant time lag [time]"),
        ParamSpec("I", ParamKind.SCALAR, "Moment of inertia [mass * length^2]"),
    )
    aux = (
        ParamSpec("Omega", ParamKind.VECTOR, "Spin angular velocity [rad / time]"),
    )
    trigger = "k2"

    def bind(self, layout, particles, parameters):
        super().bind(layout, particles, parameters)
        k2, tau, inertia, radius, mass = [], [], [], [], []
        for index in self._governed:
            p = particles.get(index)
            if p.m <= 0:
                validation_error(f"tides_spin: particle {index} needs a positive mass")
            if p.r <= 0:
                validation_error(f"tides_spin: particle {index} needs a positive radius")
            moi = parameters.lookup(index, "I")
            if moi is None or moi <= 0:
                validation_error(
                    f"tides_spin: particle {index} needs a positive moment of inertia 'I'"
                )
            lag = parameters.lookup(index, "tau", 0.0)
            if lag < 0:
                validation_error(f"tides_spin: particle {index} has negative time lag {lag}")
            k2.append(parameters.lookup(index, "k2"))
            tau.append(lag)
            inertia.append(moi if moi is not None else np.nan)
            radius.append(p.r)
            mass.append(p.m)
        self._k2 = np.array(k2, dtype=float)
        self._tau = np.array(tau, dtype=float)
        self._I = np.array(inertia, dtype=float)
        self._R = np.array(radius, dtype=float)
        self._m = np.array(mass, dtype=float)
        n = layout.n_particles
        self._others = [np.array([j for j in range(n) if j != row], dtype=int)
                        for row in self._rows]

    def evaluate(self, ctx) -> Tuple[np.ndarray, np.ndarray]:
        acc = np.zeros((ctx.n, 3))
        spins = ctx.aux[self.name].reshape(-1, 3)
        spin_dot = np.zeros_like(spins)
        for k, row in enumerate(self._rows):
            others = self._others[k]
            if others.size == 0:
                continue
            m_j = ctx.mass[others]
            dx = ctx.pos[others] - ctx.pos[row]
            dv = ctx.vel[others] - ctx.vel[row]
            a_j, s_dot = _tidal_pair(ctx.G, m_j, self._R[k], self._k2[k],
                                     self._tau[k], self._I[k], tuple(dx.T),
                                     tuple(dv.T), tuple(spins[k]), np.sqrt)
            a_j = np.stack(a_j, axis=1)
            acc[others] += a_j
            acc[row] -= (m_j[:, np.newaxis] * a_j).sum(axis=0) / ctx.mass[row]
            spin_dot[k] = [np.sum(c) for c in s_dot]
        return acc, spin_dot.ravel()

    def symbolic(self, sctx):
        n = len(sctx.pos)
        acc = [[0.0, 0.0, 0.0] for _ in range(n)]
        spins = sctx.aux[self.name]
        aux_dot = []
        for k, (index, row) in enumerate(zip(self._governed, self._rows)):
            spin = tuple(spins[3 * k:3 * k + 3])
            m_i = sctx.mass(row)
            R = sctx.radius(row)
            k2 = sctx.param("k2", index)
            tau = sctx.param("tau", index, 0.0)
            I = sctx.param("I", index)
            total = [0.0, 0.0, 0.0]
            for j in range(n):
                if j == row:
                    continue
                m_j = sctx.mass(j)
                dx = vsub(sctx.pos[j], sctx.pos[row])
                dv = vsub(sctx.vel[j], sctx.vel[row])
                a_j, s_dot = _tidal_pair(sctx.G, m_j, R, k2, tau, I, dx, dv,
                                         spin, sctx.sqrt)
                for c in range(3):
                    acc[j][c] = acc[j][c] + a_j[c]
                    acc[row][c] = acc[row][c] - m_j * a_j[c] / m_i
                    total[c] = total[c] + s_dot[c]
            aux_dot.extend(total)
        return acc, aux_dot


def set_time_lag(sim, index: int, tau: float):
    """Set the constant time lag of a tides_spin body."""
    if tau < 0:
        raise ValueError(f"Time lag must be non-negative, got {tau}")
    sim.set_param(index, "tau", tau)
