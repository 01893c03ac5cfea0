"""
Strophe: N-body Integration with Spin and Tidal Evolution

A Python package for gravitational N-body simulations using an adaptive
Gauss-Radau (IAS15) integrator or high-performance Taylor series
integration, with pluggable force modules whose auxiliary variables
(e.g. spin vectors) are integrated alongside the orbits.
"""

# Core classes
from .simulation import Simulation, Simulation as Sim, AdvanceOutcome, IntegratorType
from .particles import Particle, ParticleStore
from .parameters import ParamKind, ParamSpec, ParameterStore, register_param, param_spec
from .orbits import (Orbit, cartesian_to_orbit, orbit_to_cartesian,
                     true_anomaly_from_mean, mean_from_true_anomaly)
from .trajectory import Trajectory, Trajectory as Traj

# Force framework and the bundled force kinds
from .forces import (ForceModule, ForceRegistry, ForceContext,
                     register_force_kind, force_kinds, load_force)
from .tides_spin import TidesSpin, set_time_lag
from .harmonics import GravitationalHarmonics

# Integration machinery
from .coupler import Coupler, StateLayout, AuxSlot
from .ias15 import IAS15, StepOutcome
from .taylor import TaylorIntegrator

# Errors and configuration
from .errors import (SimulationError, InvalidIndex, TypeMismatch, NotFound,
                     AuxiliaryStateLocked, NonConvergence, InvalidState)
from .config import config, temp_config

# Predefined scenarios and units
from .defaults import (kozai_system, spin_rate, time_lag, YEAR, DAY,
                       SECONDS_PER_YEAR, JUPITER_MASS, JUPITER_RADIUS, SOLAR_RADIUS)

# Package metadata
__version__ = "0.1.0"

# Define what gets imported with "from strophe import *"
__all__ = [
    # Classes
    "Simulation",
    "AdvanceOutcome",
    "IntegratorType",
    "Particle",
    "ParticleStore",
    "ParamKind",
    "ParamSpec",
    "ParameterStore",
    "Orbit",
    "Trajectory",
    "ForceModule",
    "ForceRegistry",
    "ForceContext",
    "TidesSpin",
    "GravitationalHarmonics",
    "Coupler",
    "StateLayout",
    "AuxSlot",
    "IAS15",
    "StepOutcome",
    "TaylorIntegrator",
    # Abbreviations
    "Sim",
    "Traj",
    # Functions
    "register_param",
    "param_spec",
    "cartesian_to_orbit",
    "orbit_to_cartesian",
    "true_anomaly_from_mean",
    "mean_from_true_anomaly",
    "register_force_kind",
    "force_kinds",
    "load_force",
    "set_time_lag",
    "kozai_system",
    "spin_rate",
    "time_lag",
    # Errors
    "SimulationError",
    "InvalidIndex",
    "TypeMismatch",
    "NotFound",
    "AuxiliaryStateLocked",
    "NonConvergence",
    "InvalidState",
    # Configuration
    "config",
    "temp_config",
    # Constants
    "YEAR",
    "DAY",
    "SECONDS_PER_YEAR",
    "JUPITER_MASS",
    "JUPITER_RADIUS",
    "SOLAR_RADIUS",
]
