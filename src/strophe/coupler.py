'''Development code for an N-body integration package
Auxiliary-ODE coupler: state layout, gather/scatter and derivative function'''

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from .errors import NotFound
from .forces import ForceContext, ForceRegistry
from .particles import ParticleStore
from .parameters import ParameterStore


@dataclass(frozen=True)
class AuxSlot:
    """
    Location of one auxiliary variable in the state vector.

    Attributes
    ----------
    module : str
        Owning force kind
    particle : int
        Particle index the variable belongs to
    name : str
        Parameter key (e.g. 'Omega')
    offset : int
        Offset within the auxiliary section
    size : int
        Number of floats (1 or 3)
    """
    module: str
    particle: int
    name: str
    offset: int
    size: int


@dataclass(frozen=True)
class StateLayout:
    """
    Immutable description of the combined state vector

        y = [x (3n), v (3n), aux (m)]

    Positions and velocities follow live particle index order. Auxiliary
    blocks follow module attachment order, then governed particle index,
    then variable declaration order. The same particle set and module set
    always produce the same layout.

    Attributes
    ----------
    particles : tuple of int
        Live particle indices, one per row
    slots : tuple of AuxSlot
        Every auxiliary variable in state order
    blocks : tuple of (module, start, stop)
        Each enabled module's range in the auxiliary section
    governed : tuple of (module, tuple of int)
        Particles governed by each enabled module
    """
    particles: Tuple[int, ...]
    slots: Tuple[AuxSlot, ...] = ()
    blocks: Tuple[Tuple[str, int, int], ...] = ()
    governed: Tuple[Tuple[str, Tuple[int, ...]], ...] = ()
    _rows: Dict[int, int] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, '_rows', {p: k for k, p in enumerate(self.particles)})

    # ========== SIZES ==========
    @property
    def n_particles(self) -> int:
        return len(self.particles)

    @property
    def n_second(self) -> int:
        """Number of second-order (position) components."""
        return 3 * len(self.particles)

    @property
    def n_aux(self) -> int:
        return self.blocks[-1][2] if self.blocks else 0

    @property
    def size(self) -> int:
        return 2 * self.n_second + self.n_aux

    @property
    def signature(self) -> tuple:
        """Hashable key identifying the layout (for integrator caches)."""
        return (self.particles, self.governed,
                tuple((s.module, s.particle, s.name) for s in self.slots))

    # ========== LOOKUP ==========
    def row(self, particle: int) -> int:
        """Row of a live particle in the position/velocity blocks."""
        try:
            return self._rows[particle]
        except KeyError:
            raise NotFound(f"Particle {particle} is not part of this layout") from None

    def governed_by(self, module: str) -> Tuple[int, ...]:
        for name, indices in self.governed:
            if name == module:
                return indices
        return ()

    def block(self, module: str) -> slice:
        """Slice of a module's block within the auxiliary section."""
        for name, start, stop in self.blocks:
            if name == module:
                return slice(start, stop)
        raise NotFound(f"Module '{module}' has no block in this layout")

    def slot(self, module: str, particle: int, name: str) -> AuxSlot:
        for s in self.slots:
            if s.module == module and s.particle == particle and s.name == name:
                return s
        raise NotFound(f"No auxiliary slot '{name}' of '{module}' for particle {particle}")

    def slots_of(self, particle: int) -> Tuple[AuxSlot, ...]:
        return tuple(s for s in self.slots if s.particle == particle)

    def state_slice(self, slot: AuxSlot) -> slice:
        """Slice of an auxiliary slot in the full state vector."""
        start = 2 * self.n_second + slot.offset
        return slice(start, start + slot.size)

    @property
    def groups(self) -> List[slice]:
        """
        Error-control groups as slices of the force vector
        F = [acc (3n), aux' (m)]: the orbital block, then one per module.
        """
        groups = [slice(0, self.n_second)] if self.n_second else []
        for _, start, stop in self.blocks:
            if stop > start:
                groups.append(slice(self.n_second + start, self.n_second + stop))
        return groups

    # ========== VIEWS ==========
    def positions(self, y: np.ndarray) -> np.ndarray:
        return y[:self.n_second].reshape(-1, 3)

    def velocities(self, y: np.ndarray) -> np.ndarray:
        return y[self.n_second:2 * self.n_second].reshape(-1, 3)

    def auxiliary(self, y: np.ndarray) -> np.ndarray:
        return y[2 * self.n_second:]

    def __repr__(self):
        return (f"StateLayout(particles={len(self.particles)}, "
                f"aux={self.n_aux}, size={self.size})")


class Coupler:
    """
    Bridges the stores and the force registry to an integrator.

    The integrator sees a single flat state vector and a derivative
    function; the coupler owns the mapping between that vector and the
    particle store and parameter side-table.

    Parameters
    ----------
    registry : ForceRegistry
    particles : ParticleStore
    parameters : ParameterStore
    G : float
        Gravitational constant
    """
    def __init__(self, registry: ForceRegistry, particles: ParticleStore,
                 parameters: ParameterStore, G: float):
        self.registry = registry
        self.particles = particles
        self.parameters = parameters
        self.G = float(G)
        self._layout = None
        self._mass = np.zeros(0)
        self._radius = np.zeros(0)
        self._blocks: Dict[str, slice] = {}

    # ========== LAYOUT ==========
    def build(self) -> StateLayout:
        """Compute the layout from the current particle and module sets."""
        live = self.particles.live_indices()
        slots, blocks, governed = [], [], []
        offset = 0
        for module in self.registry.enabled_modules:
            indices = module.governed(self.particles, self.parameters)
            governed.append((module.name, indices))
            start = offset
            for index in indices:
                for spec in module.aux:
                    slots.append(AuxSlot(module.name, index, spec.name, offset, spec.size))
                    offset += spec.size
            blocks.append((module.name, start, offset))
        self._layout = StateLayout(live, tuple(slots), tuple(blocks), tuple(governed))
        return self._layout

    @property
    def layout(self) -> StateLayout:
        if self._layout is None:
            return self.build()
        return self._layout

    def bind(self):
        """Refresh masses, radii and module constants from the stores."""
        layout = self.layout
        live = [self.particles.get(i) for i in layout.particles]
        self._mass = np.array([p.m for p in live], dtype=float)
        self._radius = np.array([p.r for p in live], dtype=float)
        self._blocks = {name: slice(start, stop) for name, start, stop in layout.blocks}
        for module in self.registry.enabled_modules:
            module.bind(layout, self.particles, self.parameters)

    # ========== STATE TRANSFER ==========
    def gather(self) -> np.ndarray:
        """Combined state vector from the stores (aux default zero)."""
        layout = self.layout
        n3 = layout.n_second
        y = np.zeros(layout.size)
        for row, index in enumerate(layout.particles):
            p = self.particles.get(index)
            y[3 * row:3 * row + 3] = p.pos
            y[n3 + 3 * row:n3 + 3 * row + 3] = p.vel
        for slot in layout.slots:
            value = self.parameters.lookup(slot.particle, slot.name)
            if value is not None:
                y[layout.state_slice(slot)] = value
        return y

    def scatter(self, y: np.ndarray):
        """Write a combined state vector back into the stores."""
        layout = self.layout
        pos = layout.positions(y)
        vel = layout.velocities(y)
        for row, index in enumerate(layout.particles):
            p = self.particles.get(index)
            self.particles.replace(index, p.with_state(pos[row], vel[row]))
        for slot in layout.slots:
            value = y[layout.state_slice(slot)]
            self.parameters.set(slot.particle, slot.name,
                                value if slot.size > 1 else value[0])

    # ========== DERIVATIVES ==========
    def context(self, t: float, y: np.ndarray) -> ForceContext:
        layout = self.layout
        aux = layout.auxiliary(y)
        return ForceContext(t, self.G, self._mass, self._radius,
                            layout.positions(y), layout.velocities(y),
                            {name: aux[s] for name, s in self._blocks.items()},
                            self._blocks, layout)

    def forces(self, t: float, y: np.ndarray) -> np.ndarray:
        """Second-order form F = [acc (3n), aux' (m)] used by IAS15."""
        with np.errstate(divide='ignore', invalid='ignore'):
            acc, aux_dot = self.registry.evaluate(self.context(t, y))
        return np.concatenate((acc.ravel(), aux_dot))

    def derivative(self, t: float, y: np.ndarray) -> np.ndarray:
        """First-order form dy/dt = [v, acc, aux']."""
        n3 = self.layout.n_second
        return np.concatenate((y[n3:2 * n3], self.forces(t, y)))

    def __repr__(self):
        return f"Coupler(G={self.G}, layout={self._layout!r})"
