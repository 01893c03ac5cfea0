'''Development code for an N-body integration package
Force/effect framework: module base class, catalog of kinds, registry'''

import numpy as np
from typing import ClassVar, Dict, List, Optional, Tuple, Type, TYPE_CHECKING
from .parameters import ParamSpec, register_param
if TYPE_CHECKING:
    from .coupler import StateLayout
    from .particles import ParticleStore
    from .parameters import ParameterStore

"""
Small vector helpers written only with +, -, * and / so the same physics
code runs on floats, numpy arrays (vectorized over particle pairs) and
heyoka expressions (symbolic equations for the Taylor backend).
Vectors are 3-tuples of components.
"""
def vadd(a, b):
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])

def vsub(a, b):
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])

def vscale(a, s):
    return (a[0] * s, a[1] * s, a[2] * s)

def vdot(a, b):
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]

def vcross(a, b):
    return (a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0])


class ForceContext:
    """
    Snapshot handed to force modules during one derivative evaluation.

    Attributes
    ----------
    t : float
        Time of the evaluation
    G : float
        Gravitational constant
    mass, radius : np.ndarray, shape (n,)
        Per-row particle mass and radius
    pos, vel : np.ndarray, shape (n, 3)
        Per-row position and velocity (views into the state vector)
    aux : dict
        Module name -> 1-D view of that module's auxiliary block
    blocks : dict
        Module name -> slice of the module's block in the auxiliary section
    layout : StateLayout
        Layout in effect (row <-> particle index mapping)
    """
    __slots__ = ('t', 'G', 'mass', 'radius', 'pos', 'vel', 'aux', 'blocks', 'layout')

    def __init__(self, t, G, mass, radius, pos, vel, aux, blocks, layout):
        self.t = t
        self.G = G
        self.mass = mass
        self.radius = radius
        self.pos = pos
        self.vel = vel
        self.aux = aux
        self.blocks = blocks
        self.layout = layout

    @property
    def n(self) -> int:
        return self.mass.shape[0]


class ForceModule:
    """
    Base class for force/effect modules.

    A module contributes accelerations to some particles and may own
    auxiliary variables (declared in ``aux``) for each particle it governs.
    A particle is governed when it carries the module's ``trigger``
    parameter.

    Subclasses set the class attributes and implement ``bind``,
    ``evaluate`` and, for the Taylor backend, ``symbolic``.

    Attributes
    ----------
    name : str
        Catalog name used with Simulation.attach_force
    description : str
        One-line description shown in catalog listings
    params : tuple of ParamSpec
        Per-particle constants read by the module
    aux : tuple of ParamSpec
        Per-particle auxiliary variables integrated with the orbit
    trigger : str
        Parameter whose presence marks a particle as governed
    enabled : bool
        Disabled modules contribute nothing and their auxiliary variables
        drop out of the state vector (their values are kept).
    """
    name: ClassVar[str] = ''
    description: ClassVar[str] = ''
    params: ClassVar[Tuple[ParamSpec, ...]] = ()
    aux: ClassVar[Tuple[ParamSpec, ...]] = ()
    trigger: ClassVar[Optional[str]] = None

    def __init__(self):
        self.enabled = True
        self._governed: Tuple[int, ...] = ()
        self._rows: Tuple[int, ...] = ()

    # ========== LAYOUT ==========
    def governed(self, particles: "ParticleStore",
                 parameters: "ParameterStore") -> Tuple[int, ...]:
        """Live particle indices this module acts on, in index order."""
        if self.trigger is None:
            return ()
        return tuple(i for i in particles.live_indices()
                     if parameters.has(i, self.trigger))

    @property
    def aux_size(self) -> int:
        """Floats of auxiliary state per governed particle."""
        return sum(spec.size for spec in self.aux)

    def bind(self, layout: "StateLayout", particles: "ParticleStore",
             parameters: "ParameterStore"):
        """
        Resolve per-particle constants for the coming integration.

        Called by the Coupler before every advance so parameter changes
        made between calls take effect. The base implementation records
        the governed particles and their rows in the layout.
        """
        self._governed = layout.governed_by(self.name)
        self._rows = tuple(layout.row(i) for i in self._governed)

    # ========== EVALUATION ==========
    def evaluate(self, ctx: ForceContext
                 ) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """
        Numeric contribution.

        Returns
        -------
        acc : np.ndarray of shape (n, 3) or None
            Acceleration contribution per row
        aux_dot : np.ndarray or None
            Time derivative of the module's auxiliary block
        """
        raise NotImplementedError

    def symbolic(self, sctx):
        """
        Symbolic contribution for the Taylor backend.

        Returns
        -------
        acc : list of [ax, ay, az] per row, or None
        aux_dot : list of expressions for the auxiliary block, or None
        """
        raise NotImplementedError(
            f"Force '{self.name}' has no symbolic form for the Taylor backend"
        )

    # ========== SPECIAL METHODS ==========
    def __repr__(self):
        state = "enabled" if self.enabled else "disabled"
        return f"{type(self).__name__}(name='{self.name}', {state})"


# ========== CATALOG OF FORCE KINDS ==========
_FORCE_KINDS: Dict[str, Type[ForceModule]] = {}


def register_force_kind(cls: Type[ForceModule]) -> Type[ForceModule]:
    """
    Class decorator adding a ForceModule subclass to the catalog.

    The module's parameter and auxiliary schemas are registered as
    parameter keys at the same time.
    """
    if not (isinstance(cls, type) and issubclass(cls, ForceModule)):
        raise TypeError(f"Expected a ForceModule subclass, got {cls!r}")
    if not cls.name:
        raise ValueError(f"{cls.__name__} must define a catalog name")
    if cls.name in _FORCE_KINDS and _FORCE_KINDS[cls.name] is not cls:
        raise ValueError(f"Force kind '{cls.name}' is already registered")
    for spec in cls.params:
        register_param(spec.name, spec.kind, spec.description, owner=cls.name)
    for spec in cls.aux:
        register_param(spec.name, spec.kind, spec.description, owner=cls.name,
                       auxiliary=True)
    _FORCE_KINDS[cls.name] = cls
    return cls


def force_kinds() -> Tuple[str, ...]:
    """Names of every force kind in the catalog."""
    return tuple(sorted(_FORCE_KINDS))


def load_force(name: str, **kwargs) -> ForceModule:
    """
    Instantiate a force module by catalog name.

    Raises
    ------
    ValueError
        If the name is not in the catalog
    """
    try:
        cls = _FORCE_KINDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown force '{name}'. Valid options: {force_kinds()}"
        ) from None
    return cls(**kwargs)


# ========== BASELINE GRAVITY ==========
def gravity_accelerations(G: float, mass: np.ndarray, pos: np.ndarray) -> np.ndarray:
    """
    Pairwise Newtonian accelerations, O(n^2).

    Each row sums G*m_j*(r_j - r_i)/|r_j - r_i|^3 over j in fixed index
    order, so repeated evaluations are bit-identical.
    """
    n = mass.shape[0]
    if n < 2:
        return np.zeros((n, 3))
    # dx[i, j] = r_j - r_i
    dx = pos[np.newaxis, :, :] - pos[:, np.newaxis, :]
    r2 = np.einsum('ijk,ijk->ij', dx, dx)
    np.fill_diagonal(r2, np.inf)
    inv_r3 = r2 ** -1.5
    return G * np.einsum('ij,ijk->ik', mass[np.newaxis, :] * inv_r3, dx)


def gravity_symbolic(sctx) -> List[List]:
    """Pairwise Newtonian accelerations as expressions."""
    n = len(sctx.pos)
    acc = [[0.0, 0.0, 0.0] for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            dx = vsub(sctx.pos[j], sctx.pos[i])
            r = sctx.sqrt(vdot(dx, dx))
            inv_r3 = 1.0 / r**3
            gi = sctx.G * sctx.mass(j) * inv_r3
            gj = sctx.G * sctx.mass(i) * inv_r3
            for k in range(3):
                acc[i][k] = acc[i][k] + gi * dx[k]
                acc[j][k] = acc[j][k] - gj * dx[k]
    return acc


# ========== REGISTRY ==========
class ForceRegistry:
    """
    Ordered list of force modules attached to one simulation.

    Contributions are summed in registration order after the baseline
    pairwise gravity. Registration order also fixes the order of module
    blocks in the auxiliary section of the state vector.
    """
    def __init__(self):
        self._modules: List[ForceModule] = []

    def register(self, module: ForceModule) -> ForceModule:
        """
        Append a module.

        Raises
        ------
        ValueError
            If a module of the same kind is already registered
        """
        if not isinstance(module, ForceModule):
            raise TypeError(f"Expected ForceModule, got {type(module).__name__}")
        if any(m.name == module.name for m in self._modules):
            raise ValueError(f"Force '{module.name}' is already attached")
        self._modules.append(module)
        return module

    def get(self, name: str) -> ForceModule:
        for module in self._modules:
            if module.name == name:
                return module
        raise ValueError(
            f"Force '{name}' is not attached. "
            f"Attached: {[m.name for m in self._modules]}"
        )

    def enable(self, name: str):
        self.get(name).enabled = True

    def disable(self, name: str):
        self.get(name).enabled = False

    @property
    def modules(self) -> Tuple[ForceModule, ...]:
        return tuple(self._modules)

    @property
    def enabled_modules(self) -> Tuple[ForceModule, ...]:
        return tuple(m for m in self._modules if m.enabled)

    # ========== EVALUATION ==========
    def evaluate(self, ctx: ForceContext) -> Tuple[np.ndarray, np.ndarray]:
        """
        Total accelerations and auxiliary derivatives in one pass.

        Returns
        -------
        acc : np.ndarray, shape (n, 3)
        aux_dot : np.ndarray, shape (m,)
        """
        acc = gravity_accelerations(ctx.G, ctx.mass, ctx.pos)
        aux_dot = np.zeros(ctx.layout.n_aux)
        for module in self._modules:
            if not module.enabled:
                continue
            a, ad = module.evaluate(ctx)
            if a is not None:
                acc += a
            if ad is not None:
                aux_dot[ctx.blocks[module.name]] = ad
        return acc, aux_dot

    def compute_accelerations(self, ctx: ForceContext) -> np.ndarray:
        """Per-particle acceleration from gravity plus every enabled module."""
        return self.evaluate(ctx)[0]

    def compute_auxiliary_derivatives(self, ctx: ForceContext) -> np.ndarray:
        """Derivatives of every auxiliary variable, in layout order."""
        return self.evaluate(ctx)[1]

    # ========== SPECIAL METHODS ==========
    def __len__(self):
        return len(self._modules)

    def __iter__(self):
        return iter(self._modules)

    def __contains__(self, name):
        return any(m.name == name for m in self._modules)

    def __repr__(self):
        return f"ForceRegistry({[repr(m) for m in self._modules]})"
