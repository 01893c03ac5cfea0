"""
Utility functions and classes for the Strophe package.
"""

from time import perf_counter
import math
import threading
import warnings
from typing import Callable, Optional, Type, Union
import numpy as np
from .config import config

TWO_PI = 2.0 * math.pi

# cooperative cancellation token accepted by Simulation.advance_to
CancelToken = Union[threading.Event, Callable[[], bool], None]


class Timer:
    """
    Context manager for timing code execution.

    Examples
    --------
    >>> from strophe.utils import Timer
    >>> with Timer("Integration"):
    ...     sim.advance_to(1000.0)
    Integration: 0.123456 s

    >>> with Timer(verbose=False) as t:
    ...     sim.advance_to(2000.0)
    >>> print(f"Took {t.elapsed:.6f} seconds")
    """
    def __init__(self, name="Operation", verbose=True):
        """
        Parameters
        ----------
        name : str, optional
            Name to display when timing completes (default: "Operation")
        verbose : bool, optional
            Whether to print timing automatically (default: True)
        """
        self.name = name
        self.verbose = verbose
        self.elapsed = None

    def __enter__(self):
        self.start = perf_counter()
        return self

    def __exit__(self, *args):
        self.end = perf_counter()
        self.elapsed = self.end - self.start
        if self.verbose:
            print(f"{self.name}: {self.elapsed:.6f} s")


def validation_error(message: str, error_class: Type[Exception] = ValueError):
    """
    Raise error or warn based on config.STRICT_VALIDATION.

    Used for consistency checks between force modules and the parameters
    attached to the particles they govern. Invalid physical inputs
    (negative mass, bound orbit with negative semi-major axis) always raise
    and do not go through this function.

    Parameters
    ----------
    message : str
        Validation error message
    error_class : Type[Exception], optional
        Exception class to raise if STRICT_VALIDATION is True.
        Default: ValueError

    Raises
    ------
    Exception (of type error_class)
        If config.STRICT_VALIDATION is True

    Warns
    -----
    UserWarning
        If config.STRICT_VALIDATION is False
    """
    if config.STRICT_VALIDATION:
        raise error_class(message)
    else:
        warnings.warn(message, UserWarning, stacklevel=2)


def as_vector3(value, name: str = "value") -> np.ndarray:
    """
    Convert input to a finite, read-only float 3-vector.

    Raises
    ------
    ValueError
        If the input does not have exactly three finite components
    """
    vec = np.array(value, dtype=float).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"{name} must have exactly 3 components, got {vec.shape[0]}")
    if not np.all(np.isfinite(vec)):
        raise ValueError(f"{name} contains NaN or Inf values: {vec}")
    vec.flags.writeable = False
    return vec


def wrap_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0.0:
        wrapped += TWO_PI
    # fmod of a tiny negative angle can round up to exactly 2*pi
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def cancel_requested(cancel: CancelToken) -> bool:
    """Poll a cancellation token (Event, callable, or None)."""
    if cancel is None:
        return False
    if isinstance(cancel, threading.Event):
        return cancel.is_set()
    return bool(cancel())
