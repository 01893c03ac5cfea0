"""
Global Configuration for Strophe Package
========================================

This module provides package-wide configuration settings that users can modify
to control integrator tolerances, orbit conversion thresholds and validation
behavior.

Examples
--------
View current configuration:

>>> import strophe
>>> print(strophe.config)

Modify settings:

>>> strophe.config.EPSILON = 1e-11  # Tighter IAS15 tolerance
>>> strophe.config.DEFAULT_DT = 0.01

Reset to defaults:

>>> strophe.config.reset()

Temporarily modify settings:

>>> with strophe.temp_config(EPSILON=1e-6):
...     # Loose tolerance for this block only
...     sim.advance_to(100.0)

Notes
-----
Integrators read their tolerances when they are created. A ``Simulation``
that already holds an integrator keeps the values it was built with unless
``epsilon`` is set on the simulation directly.
"""

from dataclasses import dataclass
from contextlib import contextmanager
from typing import Optional
import math


@dataclass
class StropheConfig:
    """
    Global configuration for Strophe package.

    Attributes
    ----------
    EPSILON : float
        Relative tolerance of the IAS15 error estimate (highest-order
        polynomial coefficient over force magnitude).
        Default: 1e-9
    SAFETY_FACTOR : float
        Bounds step-size changes: a step may grow by at most 1/SAFETY_FACTOR,
        and a step whose proposed successor is smaller than SAFETY_FACTOR
        times itself is rejected.
        Default: 0.25
    MAX_REJECTIONS : int
        Consecutive rejected steps tolerated before NonConvergence is raised.
        Default: 40
    MAX_PC_ITERATIONS : int
        Maximum predictor-corrector iterations per step.
        Default: 12
    PC_TOLERANCE : float
        Predictor-corrector convergence threshold.
        Default: 1e-16
    MIN_DT : float
        Smallest step size allowed before NonConvergence is raised.
        Default: 0.0 (only floating-point underflow of the clock is fatal)
    MIN_DT_RELATIVE : float
        Smallest step allowed relative to the elapsed time (or the initial
        step, whichever is larger) before NonConvergence is raised.
        Default: 1e-12
    EPSILON_FLOOR : float
        Smallest usable IAS15 tolerance. Below it the error estimate is
        dominated by roundoff in the node forces; smaller tolerances are
        raised to this value with a RuntimeWarning.
        Default: 1e-12
    DEFAULT_DT : float
        Initial step size of a new Simulation.
        Default: 1e-3
    DEFAULT_G : float
        Gravitational constant of a new Simulation.
        Default: 1.0
    TAYLOR_TOL : float or None
        Tolerance passed to heyoka.taylor_adaptive. None uses heyoka's
        default (machine epsilon).
        Default: None
    TAYLOR_COMPACT_MODE : bool
        Compile Taylor integrators in compact mode (faster compilation for
        large systems, slower stepping).
        Default: False
    SNAP_TO_CIRCULAR : float
        Eccentricity below this threshold is treated as circular when
        converting to orbital elements (argument of periapsis reported as 0).
        Default: 1e-12
    SNAP_TO_EQUATORIAL : float
        Inclination within this threshold of 0 or pi is treated as
        equatorial (longitude of ascending node reported as 0).
        Default: 1e-12
    EQUALITY_RTOL : float
        Relative tolerance for floating-point equality comparisons.
        Default: 1e-12
    EQUALITY_ATOL : float
        Absolute tolerance for floating-point equality comparisons.
        Default: 1e-14
    HASH_DECIMALS : int
        Number of decimal places for rounding when computing hash values.
        Automatically computed to preserve hash contract
    STRICT_VALIDATION : bool
        If True, validation failures raise exceptions.
        If False, validation failures issue warnings.
        Default: True
    INSTANCE_WARNING_THRESHOLD : int
        Number of compiled Taylor integrators alive before a warning is issued.
        Default: 10
    """

    # Adaptive step control
    EPSILON: float = 1e-9
    SAFETY_FACTOR: float = 0.25
    MAX_REJECTIONS: int = 40
    MAX_PC_ITERATIONS: int = 12
    PC_TOLERANCE: float = 1e-16
    MIN_DT: float = 0.0
    MIN_DT_RELATIVE: float = 1e-12
    EPSILON_FLOOR: float = 1e-12
    DEFAULT_DT: float = 1e-3

    # Physical constants
    DEFAULT_G: float = 1.0

    # Taylor backend
    TAYLOR_TOL: Optional[float] = None
    TAYLOR_COMPACT_MODE: bool = False

    # Snapping behavior thresholds
    SNAP_TO_CIRCULAR: float = 1e-12
    SNAP_TO_EQUATORIAL: float = 1e-12

    # Numerical tolerance for equality comparisons
    EQUALITY_RTOL: float = 1e-12
    EQUALITY_ATOL: float = 1e-14

    # Validation behavior
    STRICT_VALIDATION: bool = True
    INSTANCE_WARNING_THRESHOLD: int = 10

    @property
    def HASH_DECIMALS(self) -> int:
        """
        Compute hash rounding decimals from equality tolerance.

        The hash rounding must be coarse enough that if two values
        are equal (within EQUALITY_ATOL), they hash to the same value.

        Returns
        -------
        int
            Number of decimal places for hash rounding
        """
        magnitude = -math.floor(math.log10(self.EQUALITY_ATOL))
        return max(magnitude - 2, 0)

    def reset(self):
        """
        Reset all configuration values to package defaults.

        Examples
        --------
        >>> import strophe
        >>> strophe.config.EPSILON = 1e-6  # Modify
        >>> strophe.config.reset()  # Back to defaults
        >>> strophe.config.EPSILON
        1e-09
        """
        defaults = StropheConfig()
        for key in self.__dataclass_fields__:
            setattr(self, key, getattr(defaults, key))

    def __repr__(self):
        """Return formatted string showing all configuration values."""
        lines = ["StropheConfig:"]
        lines.append("  Step Control:")
        lines.append(f"    EPSILON = {self.EPSILON}")
        lines.append(f"    SAFETY_FACTOR = {self.SAFETY_FACTOR}")
        lines.append(f"    MAX_REJECTIONS = {self.MAX_REJECTIONS}")
        lines.append(f"    MAX_PC_ITERATIONS = {self.MAX_PC_ITERATIONS}")
        lines.append(f"    PC_TOLERANCE = {self.PC_TOLERANCE}")
        lines.append(f"    MIN_DT = {self.MIN_DT}")
        lines.append(f"    MIN_DT_RELATIVE = {self.MIN_DT_RELATIVE}")
        lines.append(f"    EPSILON_FLOOR = {self.EPSILON_FLOOR}")
        lines.append(f"    DEFAULT_DT = {self.DEFAULT_DT}")
        lines.append("  Physics:")
        lines.append(f"    DEFAULT_G = {self.DEFAULT_G}")
        lines.append("  Taylor Backend:")
        lines.append(f"    TAYLOR_TOL = {self.TAYLOR_TOL}")
        lines.append(f"    TAYLOR_COMPACT_MODE = {self.TAYLOR_COMPACT_MODE}")
        lines.append("  Snapping Thresholds:")
        lines.append(f"    SNAP_TO_CIRCULAR = {self.SNAP_TO_CIRCULAR}")
        lines.append(f"    SNAP_TO_EQUATORIAL = {self.SNAP_TO_EQUATORIAL}")
        lines.append("  Numerical Tolerances:")
        lines.append(f"    EQUALITY_RTOL = {self.EQUALITY_RTOL}")
        lines.append(f"    EQUALITY_ATOL = {self.EQUALITY_ATOL}")
        lines.append(f"    HASH_DECIMALS = {self.HASH_DECIMALS}")
        lines.append("  Behavior:")
        lines.append(f"    STRICT_VALIDATION = {self.STRICT_VALIDATION}")
        lines.append(f"    INSTANCE_WARNING_THRESHOLD = {self.INSTANCE_WARNING_THRESHOLD}")
        return "\n".join(lines)


# Global configuration instance
config = StropheConfig()


@contextmanager
def temp_config(**kwargs):
    """
    Context manager for temporarily modifying configuration values.

    Configuration is automatically restored when the context exits,
    even if an exception occurs.

    Parameters
    ----------
    **kwargs
        Configuration attributes to temporarily modify.

    Examples
    --------
    >>> import strophe
    >>> with strophe.temp_config(EPSILON=1e-6, MAX_REJECTIONS=5):
    ...     sim = strophe.Simulation()
    >>> strophe.config.EPSILON
    1e-09

    Raises
    ------
    AttributeError
        If an invalid configuration attribute is specified.
    """
    old_values = {}
    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise AttributeError(
                f"StropheConfig has no attribute '{key}'. "
                f"Valid attributes: {list(config.__dataclass_fields__.keys())}"
            )
        old_values[key] = getattr(config, key)
        setattr(config, key, value)

    try:
        yield config
    finally:
        for key, value in old_values.items():
            setattr(config, key, value)
