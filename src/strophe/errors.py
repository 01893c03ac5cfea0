"""
Exception types raised by the Strophe package.

Every error derives from ``SimulationError`` and from the builtin exception
that best describes it, so callers may catch either.

State store misuse (recoverable by correcting the call):
    InvalidIndex, TypeMismatch, NotFound, AuxiliaryStateLocked
Integrator failures (the simulation is left at its last accepted step):
    NonConvergence, InvalidState
"""


class SimulationError(Exception):
    """Base class for all Strophe errors."""


class InvalidIndex(SimulationError, IndexError):
    """Particle index out of range or referring to a removed particle."""


class TypeMismatch(SimulationError, TypeError):
    """Parameter value or request does not match the declared kind."""


class NotFound(SimulationError, KeyError):
    """Parameter key is unknown or not set for the particle."""

    def __str__(self):
        # KeyError quotes its argument; keep messages readable
        return str(self.args[0]) if self.args else ""


class AuxiliaryStateLocked(SimulationError, RuntimeError):
    """Auxiliary variables are owned by the integrator once integration began."""


class NonConvergence(SimulationError, RuntimeError):
    """Step-size controller could not find an acceptable step."""


class InvalidState(SimulationError, ValueError):
    """Non-finite values detected in the integrated state."""
