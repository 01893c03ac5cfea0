'''Development code for an N-body integration package
Trajectory class definition'''

import numpy as np
import pandas as pd
from typing import Any, Dict, List, Sequence, TYPE_CHECKING
from .parameters import ParamKind, param_spec
if TYPE_CHECKING:
    from .simulation import Simulation

# orbital elements recorded for every particle but the first
ELEMENT_COLUMNS = ('a', 'e', 'inc', 'Omega', 'omega', 'pomega', 'f')


def particle_label(sim: "Simulation", index: int) -> str:
    """Column prefix for a particle: its name, or p<index>."""
    name = sim.particle(index).name
    return name if name else f"p{index}"


def sample_row(sim: "Simulation") -> Dict[str, float]:
    """
    Snapshot of a simulation as a flat record.

    Columns, in order: time; x..vz of each live particle; each vector
    parameter (e.g. spin) with its magnitude and obliquity, the angle to
    +z; Jacobi elements of each particle after the first.
    """
    row: Dict[str, float] = {'time': sim.t}
    live = sim.indices
    for index in live:
        label = particle_label(sim, index)
        p = sim.particle(index)
        for comp in ('x', 'y', 'z', 'vx', 'vy', 'vz'):
            row[f"{label}_{comp}"] = getattr(p, comp)
        for key in sim.parameters.keys(index):
            if param_spec(key).kind != ParamKind.VECTOR:
                continue
            vec = sim.parameters.get(index, key)
            mag = float(np.linalg.norm(vec))
            row[f"{label}_{key}x"] = vec[0]
            row[f"{label}_{key}y"] = vec[1]
            row[f"{label}_{key}z"] = vec[2]
            row[f"{label}_{key}_mag"] = mag
            row[f"{label}_{key}_obliquity"] = (
                float(np.arccos(np.clip(vec[2] / mag, -1.0, 1.0))) if mag > 0 else np.nan
            )
    for index in live[1:]:
        label = particle_label(sim, index)
        orbit = sim.orbit(index)
        for element in ELEMENT_COLUMNS:
            row[f"{label}_{element}"] = getattr(orbit, element)
    return row


class Trajectory:
    """
    Sampled history of a simulation.

    One record per sample time, built by Simulation.record.

    Attributes:
        times: Sample times (non-decreasing)
        rows: One flat record (column -> value) per sample
    """
    # ========== CONSTRUCTION ==========
    def __init__(self, times: Sequence[float], rows: List[Dict[str, Any]]):
        if len(times) != len(rows):
            raise ValueError(f"Got {len(times)} times for {len(rows)} rows")
        self._times = np.asarray(times, dtype=float)
        self._rows = list(rows)

    # ========== PROPERTY ACCESS ==========
    @property
    def times(self) -> np.ndarray:
        return self._times.copy()

    @property
    def t0(self):
        return self._times[0] if len(self._times) else None

    @property
    def tf(self):
        return self._times[-1] if len(self._times) else None

    @property
    def duration(self):
        """Trajectory duration."""
        if not len(self._times):
            return 0.0
        return self.tf - self.t0

    @property
    def columns(self) -> List[str]:
        return list(self._rows[0]) if self._rows else []

    # ========== UTILITY METHODS ==========
    def state_at(self, t: float) -> pd.Series:
        """
        Record sampled at time t.

        Parameters:
            t: One of the recorded sample times
        """
        k = self._validate_time(t)
        return pd.Series(self._rows[k])

    def _validate_time(self, t: float) -> int:
        """Validate that t is a recorded sample time; return its position."""
        if not len(self._times):
            raise ValueError("Trajectory is empty")
        if not (self.t0 <= t <= self.tf):
            raise ValueError(
                f"Time {t} outside trajectory bounds [{self.t0}, {self.tf}]"
            )
        matches = np.flatnonzero(self._times == t)
        if not matches.size:
            raise ValueError(
                f"Time {t} is not a sample time; trajectories hold samples only"
            )
        return int(matches[-1])

    def column(self, name: str) -> np.ndarray:
        """Values of one column across all samples (NaN where absent)."""
        if self._rows and not any(name in row for row in self._rows):
            raise KeyError(f"No column '{name}'. Columns: {self.columns}")
        return np.array([row.get(name, np.nan) for row in self._rows], dtype=float)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Export trajectory to pandas DataFrame.

        Returns:
            DataFrame with one row per sample and a 'time' column first.
            Columns of particles added mid-run hold NaN before they exist.
        """
        return pd.DataFrame.from_records(self._rows)

    def to_csv(self, path, **kwargs):
        """Write the trajectory as CSV (keyword arguments go to pandas)."""
        kwargs.setdefault('index', False)
        self.to_dataframe().to_csv(path, **kwargs)

    # ========== SPECIAL METHODS ==========
    def __len__(self):
        return len(self._rows)

    def __getitem__(self, k) -> Dict[str, Any]:
        return dict(self._rows[k])

    def __repr__(self):
        return (f"Trajectory(samples={len(self)}, t0={self.t0}, tf={self.tf}, "
                f"duration={self.duration})")
