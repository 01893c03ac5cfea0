'''Development code for an N-body integration package
Typed per-particle parameter side-table'''

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union
from .errors import NotFound, TypeMismatch

# define an enumerated list of parameter value kinds
class ParamKind(Enum):
    SCALAR = 'scalar'   # float
    VECTOR = 'vector'   # fixed-size 3-vector

    @classmethod
    def parse(cls, kind) -> "ParamKind":
        """Convert string or enum to ParamKind enum"""
        if isinstance(kind, ParamKind):
            return kind
        if isinstance(kind, str):
            kind_map = {
                'scalar': cls.SCALAR,
                'float': cls.SCALAR,
                'double': cls.SCALAR,
                'vector': cls.VECTOR,
                'vec3': cls.VECTOR,
            }
            if kind.lower() in kind_map:
                return kind_map[kind.lower()]
            raise ValueError(f"Unknown parameter kind '{kind}'. "
                             f"Use: {list(kind_map.keys())}")
        raise TypeError(f"Parameter kind must be str or ParamKind, got {type(kind).__name__}")

VECTOR_SIZE = 3

@dataclass(frozen=True)
class ParamSpec:
    """
    Declaration of a parameter key.

    Attributes
    ----------
    name : str
        Key used with set_param/get_param
    kind : ParamKind
        Shape of the stored value
    description : str
        Human-readable description (with units where meaningful)
    owner : str, optional
        Name of the force kind that declared the key
    auxiliary : bool
        True for variables integrated alongside positions and velocities.
        Auxiliary entries hold the initial value before integration and
        the live value afterwards; only the integrator writes them.
    """
    name: str
    kind: ParamKind
    description: str = ''
    owner: Optional[str] = None
    auxiliary: bool = False

    @property
    def size(self) -> int:
        """Number of floats occupied in a state vector."""
        return VECTOR_SIZE if self.kind == ParamKind.VECTOR else 1


# Process-wide catalog of parameter keys (kinds, never values)
_PARAM_REGISTRY: Dict[str, ParamSpec] = {}


def register_param(name: str, kind, description: str = '',
                   owner: Optional[str] = None, auxiliary: bool = False) -> ParamSpec:
    """
    Declare a parameter key.

    Registering the same key twice is allowed when the declarations agree,
    so several force kinds may share a key such as a radius override.

    Raises
    ------
    TypeMismatch
        If the key is already registered with a different kind or role
    """
    if not isinstance(name, str) or not name:
        raise ValueError(f"Parameter name must be a non-empty string, got {name!r}")
    kind = ParamKind.parse(kind)
    existing = _PARAM_REGISTRY.get(name)
    if existing is not None:
        if existing.kind != kind or existing.auxiliary != auxiliary:
            raise TypeMismatch(
                f"Parameter '{name}' already registered as "
                f"{'auxiliary ' if existing.auxiliary else ''}{existing.kind.value}"
                f" by {existing.owner or 'user'}; cannot redeclare as "
                f"{'auxiliary ' if auxiliary else ''}{kind.value}"
            )
        return existing
    spec = ParamSpec(name, kind, description, owner, auxiliary)
    _PARAM_REGISTRY[name] = spec
    return spec


def param_spec(name: str) -> ParamSpec:
    """
    Look up the declaration of a parameter key.

    Raises
    ------
    NotFound
        If no force kind or user registered the key
    """
    try:
        return _PARAM_REGISTRY[name]
    except KeyError:
        raise NotFound(
            f"'{name}' is not a registered parameter. "
            f"Registered: {sorted(_PARAM_REGISTRY)}"
        ) from None


def registered_params() -> Dict[str, ParamSpec]:
    """Copy of the parameter catalog."""
    return dict(_PARAM_REGISTRY)


@dataclass(frozen=True)
class ParamValue:
    """Tagged parameter value: a float or a read-only 3-vector."""
    kind: ParamKind
    value: Union[float, np.ndarray]

    @classmethod
    def coerce(cls, spec: ParamSpec, value) -> "ParamValue":
        """
        Validate a raw value against a declaration.

        Raises
        ------
        TypeMismatch
            If the value's shape does not match the declared kind
        ValueError
            If the value contains NaN or Inf
        """
        try:
            arr = np.asarray(value, dtype=float)
        except (TypeError, ValueError):
            raise TypeMismatch(
                f"Parameter '{spec.name}' expects a {spec.kind.value}, got {value!r}"
            ) from None
        if spec.kind == ParamKind.SCALAR:
            if arr.ndim != 0:
                raise TypeMismatch(
                    f"Parameter '{spec.name}' is a scalar, got shape {arr.shape}"
                )
            scalar = float(arr)
            if not np.isfinite(scalar):
                raise ValueError(f"Parameter '{spec.name}' must be finite, got {scalar}")
            return cls(spec.kind, scalar)
        if arr.shape != (VECTOR_SIZE,):
            raise TypeMismatch(
                f"Parameter '{spec.name}' is a {VECTOR_SIZE}-vector, got shape {arr.shape}"
            )
        if not np.all(np.isfinite(arr)):
            raise ValueError(f"Parameter '{spec.name}' must be finite, got {arr}")
        arr = arr.copy()
        arr.flags.writeable = False
        return cls(spec.kind, arr)

    def unwrap(self):
        """Plain value: float, or a writable copy of the vector."""
        if self.kind == ParamKind.VECTOR:
            return np.array(self.value)
        return self.value


class ParameterStore:
    """
    Mapping from (particle index, registered key) to a tagged value.

    The store does not know which particle indices are live; the
    Simulation validates indices before delegating here and calls
    ``release`` when a particle is removed.
    """
    def __init__(self):
        self._entries: Dict[int, Dict[str, ParamValue]] = {}
        self._version = 0

    def set(self, index: int, key: str, value):
        """
        Attach a value to a particle.

        Raises
        ------
        NotFound
            If key is not a registered parameter
        TypeMismatch
            If value does not match the key's declared kind
        """
        spec = param_spec(key)
        self._entries.setdefault(index, {})[key] = ParamValue.coerce(spec, value)
        self._version += 1

    def get(self, index: int, key: str, kind=None):
        """
        Read a value attached to a particle.

        Parameters
        ----------
        index : int
            Particle index
        key : str
            Registered parameter key
        kind : ParamKind or str, optional
            Expected kind. Reading with the wrong expectation is an error
            rather than a silent conversion.

        Returns
        -------
        float or np.ndarray

        Raises
        ------
        NotFound
            If the key is unknown or has no value for this particle
        TypeMismatch
            If kind is given and differs from the stored kind
        """
        spec = param_spec(key)
        if kind is not None and ParamKind.parse(kind) != spec.kind:
            raise TypeMismatch(
                f"Parameter '{key}' is a {spec.kind.value}, "
                f"requested as {ParamKind.parse(kind).value}"
            )
        try:
            entry = self._entries[index][key]
        except KeyError:
            raise NotFound(f"Parameter '{key}' not set for particle {index}") from None
        return entry.unwrap()

    def lookup(self, index: int, key: str, default=None):
        """Read a value, falling back to a default (internal use by force modules)."""
        entry = self._entries.get(index, {}).get(key)
        if entry is None:
            return default
        return entry.unwrap()

    def has(self, index: int, key: str) -> bool:
        return key in self._entries.get(index, {})

    def keys(self, index: int) -> Tuple[str, ...]:
        """Keys set for a particle, in insertion order."""
        return tuple(self._entries.get(index, {}))

    def release(self, index: int):
        """Drop every entry of a particle."""
        if self._entries.pop(index, None) is not None:
            self._version += 1

    @property
    def version(self) -> int:
        return self._version

    def __repr__(self):
        n = sum(len(v) for v in self._entries.values())
        return f"ParameterStore(particles={len(self._entries)}, entries={n})"
