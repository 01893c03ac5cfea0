"""
Test suite for recorded trajectories.

Tests cover:
- Recording at requested sample times
- Column naming for particles, spin vectors and orbital elements
- Sample lookup and bounds checking
- DataFrame and CSV export
- Cancellation while recording
"""

import threading
import pytest
import numpy as np
import pandas as pd
from strophe import Trajectory


class TestRecording:
    """Test Simulation.record."""

    def test_sample_times(self, two_body):
        """One row per requested time, at exactly that time."""
        times = np.linspace(0.0, 5.0, 11)
        traj = two_body.record(times)
        assert len(traj) == 11
        np.testing.assert_array_equal(traj.times, times)
        assert two_body.t == 5.0
        assert traj.t0 == 0.0
        assert traj.tf == 5.0
        assert traj.duration == 5.0

    def test_rows_match_simulation(self, two_body):
        """The last row is the simulation's final state."""
        traj = two_body.record([0.0, 1.0, 2.5])
        row = traj[-1]
        planet = two_body.particle(1)
        assert row['time'] == 2.5
        assert row['planet_x'] == planet.x
        assert row['planet_vz'] == planet.vz
        assert row['planet_e'] == pytest.approx(two_body.orbit(1).e)

    def test_decreasing_times_rejected(self, two_body):
        """Sample times must be non-decreasing."""
        with pytest.raises(ValueError, match="non-decreasing"):
            two_body.record([1.0, 0.5])
        assert two_body.t == 0.0

    def test_cancelled_recording(self, two_body):
        """A cancelled recording keeps the samples reached so far."""
        cancel = threading.Event()
        cancel.set()
        traj = two_body.record([0.0, 1.0, 2.0], cancel=cancel)
        assert len(traj) == 1
        assert traj.times[0] == 0.0


class TestColumns:
    """Test column layout."""

    def test_particle_columns(self, two_body):
        """Named particles use their names; others use p<index>."""
        two_body.add(m=1e-6, a=3.0)
        traj = two_body.record([0.0])
        columns = traj.columns
        assert columns[0] == 'time'
        for prefix in ('sun', 'planet', 'p2'):
            for comp in ('x', 'y', 'z', 'vx', 'vy', 'vz'):
                assert f"{prefix}_{comp}" in columns

    def test_element_columns(self, two_body):
        """Every particle but the first gets Jacobi elements."""
        columns = two_body.record([0.0]).columns
        for element in ('a', 'e', 'inc', 'Omega', 'omega', 'pomega', 'f'):
            assert f"planet_{element}" in columns
            assert f"sun_{element}" not in columns

    def test_spin_columns(self, tidal_system):
        """Vector parameters get components, magnitude and obliquity."""
        sim = tidal_system(obliquity=0.3)
        traj = sim.record([0.0, 0.1])
        for suffix in ('Omegax', 'Omegay', 'Omegaz', 'Omega_mag', 'Omega_obliquity'):
            assert f"planet_{suffix}" in traj.columns
        assert traj.column('planet_Omega_obliquity')[0] == pytest.approx(0.3)
        spin = sim.get_param(1, 'Omega')
        assert traj.column('planet_Omega_mag')[-1] == pytest.approx(np.linalg.norm(spin))

    def test_column(self, two_body):
        """column returns one value per sample."""
        traj = two_body.record([0.0, 1.0, 2.0])
        a = traj.column('planet_a')
        assert a.shape == (3,)
        np.testing.assert_allclose(a, a[0], rtol=1e-9)

    def test_missing_column(self, two_body):
        """Unknown columns raise KeyError."""
        traj = two_body.record([0.0])
        with pytest.raises(KeyError, match="No column"):
            traj.column('moon_x')

    def test_particle_added_mid_run(self, two_body):
        """Columns of a late particle are NaN before it exists."""
        times = [0.0, 1.0]
        first = two_body.record(times[:1])
        two_body.add(m=1e-6, a=3.0, name="moon")
        second = two_body.record(times[1:])
        traj = Trajectory(list(first.times) + list(second.times),
                          [first[0], second[0]])
        x = traj.column('moon_x')
        assert np.isnan(x[0])
        assert np.isfinite(x[1])
        assert traj.to_dataframe()['moon_x'].isna().sum() == 1


class TestLookup:
    """Test sample lookup."""

    def test_state_at_sample(self, two_body):
        """state_at returns the record for a sample time."""
        traj = two_body.record([0.0, 1.0, 2.0])
        state = traj.state_at(1.0)
        assert isinstance(state, pd.Series)
        assert state['time'] == 1.0

    def test_state_between_samples(self, two_body):
        """Times between samples are rejected; nothing is interpolated."""
        traj = two_body.record([0.0, 1.0, 2.0])
        with pytest.raises(ValueError, match="not a sample time"):
            traj.state_at(0.5)

    def test_state_out_of_bounds(self, two_body):
        """Times outside the recording are rejected."""
        traj = two_body.record([0.0, 1.0])
        with pytest.raises(ValueError, match="outside trajectory bounds"):
            traj.state_at(3.0)

    def test_empty(self):
        """An empty trajectory has no samples."""
        traj = Trajectory([], [])
        assert len(traj) == 0
        assert traj.t0 is None
        assert traj.duration == 0.0
        with pytest.raises(ValueError, match="empty"):
            traj.state_at(0.0)

    def test_mismatched_rows(self):
        """Times and rows must have the same length."""
        with pytest.raises(ValueError):
            Trajectory([0.0, 1.0], [{'time': 0.0}])


class TestExport:
    """Test pandas export."""

    def test_dataframe(self, two_body):
        """One DataFrame row per sample, time first."""
        traj = two_body.record([0.0, 1.0, 2.0])
        df = traj.to_dataframe()
        assert df.shape == (3, len(traj.columns))
        assert list(df.columns)[0] == 'time'
        np.testing.assert_array_equal(df['time'].to_numpy(), [0.0, 1.0, 2.0])

    def test_csv(self, two_body, tmp_path):
        """CSV export reads back without an index column."""
        traj = two_body.record([0.0, 1.0])
        path = tmp_path / "traj.csv"
        traj.to_csv(path)
        df = pd.read_csv(path)
        assert list(df.columns) == traj.columns
        np.testing.assert_allclose(df['planet_x'].to_numpy(), traj.column('planet_x'))

    def test_repr(self, two_body):
        """repr shows sample count and time span."""
        traj = two_body.record([0.0, 1.0])
        assert repr(traj).startswith("Trajectory(samples=2, t0=0.0, tf=1.0")
