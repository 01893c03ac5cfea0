'''Development code for an N-body integration package
Zonal gravitational harmonics (J2 oblateness)'''

import numpy as np
from .forces import ForceModule, register_force_kind, vdot, vsub
from .parameters import ParamKind, ParamSpec
from .utils import validation_error


def _j2_acceleration(mu, J2, R, dx, sqrt):
    """
    J2 acceleration of a body at dx relative to the oblate body.

    Symmetry axis is the z axis of the simulation frame.
    """
    x, y, z = dx
    r2 = vdot(dx, dx)
    r = sqrt(r2)
    r5 = r2 * r2 * r
    z2_r2 = (z * z) / r2
    factor = 1.5 * J2 * mu * R * R / r5
    return (factor * x * (5.0 * z2_r2 - 1.0),
            factor * y * (5.0 * z2_r2 - 1.0),
            factor * z * (5.0 * z2_r2 - 3.0))


@register_force_kind
class GravitationalHarmonics(ForceModule):
    """
    J2 oblateness of particles carrying the ``J2`` parameter.

    Each other particle feels the J2 field of the oblate body and the
    oblate body feels the reaction, so linear momentum is conserved.

    Parameters (per particle)
    -------------------------
    J2 : float
        Second zonal harmonic coefficient
    R_eq : float, optional
        Equatorial reference radius (default: the particle radius)
    """
    name = "gravitational_harmonics"
    description = "J2 oblateness about the z axis"
    params = (
        ParamSpec("J2", ParamKind.SCALAR, "Second zonal harmonic coefficient"),
        ParamSpec("R_eq", ParamKind.SCALAR, "Equatorial reference radius [length]"),
    )
    trigger = "J2"

    def bind(self, layout, particles, parameters):
        super().bind(layout, particles, parameters)
        J2, R_eq = [], []
        for index in self._governed:
            p = particles.get(index)
            if p.m <= 0:
                validation_error(
                    f"gravitational_harmonics: particle {index} needs a positive mass"
                )
            radius = parameters.lookup(index, "R_eq", p.r)
            if radius <= 0:
                validation_error(
                    f"gravitational_harmonics: particle {index} needs R_eq or a positive radius"
                )
            J2.append(parameters.lookup(index, "J2"))
            R_eq.append(radius)
        self._J2 = np.array(J2, dtype=float)
        self._R_eq = np.array(R_eq, dtype=float)
        n = layout.n_particles
        self._others = [np.array([j for j in range(n) if j != row], dtype=int)
                        for row in self._rows]

    def evaluate(self, ctx):
        acc = np.zeros((ctx.n, 3))
        for k, row in enumerate(self._rows):
            others = self._others[k]
            if others.size == 0:
                continue
            dx = ctx.pos[others] - ctx.pos[row]
            a_j = _j2_acceleration(ctx.G * ctx.mass[row], self._J2[k],
                                   self._R_eq[k], tuple(dx.T), np.sqrt)
            a_j = np.stack(a_j, axis=1)
            acc[others] += a_j
            acc[row] -= (ctx.mass[others][:, np.newaxis] * a_j).sum(axis=0) / ctx.mass[row]
        return acc, None

    def symbolic(self, sctx):
        n = len(sctx.pos)
        acc = [[0.0, 0.0, 0.0] for _ in range(n)]
        for index, row in zip(self._governed, self._rows):
            m_i = sctx.mass(row)
            J2 = sctx.param("J2", index)
            R = sctx.param("R_eq", index, fallback="r")
            for j in range(n):
                if j == row:
                    continue
                m_j = sctx.mass(j)
                a_j = _j2_acceleration(sctx.G * m_i, J2, R,
                                       vsub(sctx.pos[j], sctx.pos[row]), sctx.sqrt)
                for c in range(3):
                    acc[j][c] = acc[j][c] + a_j[c]
                    acc[row][c] = acc[row][c] - m_j * a_j[c] / m_i
        return acc, None
