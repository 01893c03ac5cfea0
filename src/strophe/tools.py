'''Development code for an N-body integration package
Whole-system tools: centre of mass, energy, angular momentum, rotations'''

import numpy as np
from typing import Iterable
from .particles import Particle


def center_of_mass(particles: Iterable[Particle]) -> Particle:
    """
    Combined particle at the centre of mass of a set of particles.

    The result carries the total mass and the mass-weighted position and
    velocity. A set with zero total mass gives a massless particle at the
    origin.
    """
    particles = list(particles)
    m = sum(p.m for p in particles)
    if m <= 0.0:
        return Particle(m=0.0, name="com")
    pos = sum(p.m * p.pos for p in particles) / m
    vel = sum(p.m * p.vel for p in particles) / m
    return Particle.from_vectors(m, 0.0, pos, vel, name="com")


def com_of_pair(p1: Particle, p2: Particle) -> Particle:
    """Centre of mass of two particles."""
    return center_of_mass((p1, p2))


def kinetic_energy(particles: Iterable[Particle]) -> float:
    """Translational kinetic energy sum(m v^2 / 2)."""
    return float(sum(0.5 * p.m * np.dot(p.vel, p.vel) for p in particles))


def potential_energy(particles: Iterable[Particle], G: float) -> float:
    """Newtonian pairwise potential energy -sum G m_i m_j / r_ij."""
    particles = list(particles)
    energy = 0.0
    for i, pi in enumerate(particles):
        for pj in particles[i + 1:]:
            energy -= G * pi.m * pj.m / np.linalg.norm(pj.pos - pi.pos)
    return float(energy)


def orbital_angular_momentum(particles: Iterable[Particle]) -> np.ndarray:
    """Total orbital angular momentum sum(m r x v) about the origin."""
    total = np.zeros(3)
    for p in particles:
        total += p.m * np.cross(p.pos, p.vel)
    return total


def rotation_to_z(vector) -> np.ndarray:
    """
    Rotation matrix taking the direction of a vector onto +z.

    Uses the Rodrigues formula about the axis vector x z. A vector already
    along +z gives the identity; one along -z is rotated by pi about x.

    Parameters
    ----------
    vector : array_like, shape (3,)
        Non-zero vector

    Returns
    -------
    np.ndarray, shape (3, 3)
        R such that R @ vector is parallel to +z
    """
    v = np.asarray(vector, dtype=float)
    norm = np.linalg.norm(v)
    if norm == 0.0 or not np.isfinite(norm):
        raise ValueError(f"Cannot align a zero or non-finite vector: {v}")
    u = v / norm
    z = np.array([0.0, 0.0, 1.0])
    axis = np.cross(u, z)
    s = np.linalg.norm(axis)
    c = np.dot(u, z)
    if s < 1e-15:
        if c > 0:
            return np.eye(3)
        return np.diag([1.0, -1.0, -1.0])
    k = axis / s
    K = np.array([[0.0, -k[2], k[1]],
                  [k[2], 0.0, -k[0]],
                  [-k[1], k[0], 0.0]])
    return np.eye(3) + s * K + (1.0 - c) * (K @ K)
