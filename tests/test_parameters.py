"""
Test suite for the typed parameter side-table.

Tests cover:
- Parameter key registration and conflicting redeclarations
- Kind parsing
- Storing, reading and type checking values
- Missing keys and missing values
- Release of a particle's entries
"""

import pytest
import numpy as np
from strophe import (ParamKind, ParameterStore, register_param, param_spec,
                     TypeMismatch, NotFound)
from strophe.parameters import registered_params

register_param("test_albedo", "scalar", "Bond albedo used by the tests")
register_param("test_axis", "vector", "Direction used by the tests")


class TestParamKind:
    """Test kind parsing."""

    def test_parse_aliases(self):
        """String aliases map onto the two kinds."""
        assert ParamKind.parse("scalar") == ParamKind.SCALAR
        assert ParamKind.parse("FLOAT") == ParamKind.SCALAR
        assert ParamKind.parse("vec3") == ParamKind.VECTOR
        assert ParamKind.parse(ParamKind.VECTOR) == ParamKind.VECTOR

    def test_parse_unknown(self):
        """Unknown kinds raise ValueError, wrong types TypeError."""
        with pytest.raises(ValueError, match="Unknown parameter kind"):
            ParamKind.parse("matrix")
        with pytest.raises(TypeError):
            ParamKind.parse(3)


class TestRegistration:
    """Test the process-wide catalog of keys."""

    def test_force_keys_registered(self):
        """Bundled force kinds declare their keys."""
        assert param_spec("k2").kind == ParamKind.SCALAR
        assert param_spec("k2").owner == "tides_spin"
        spin = param_spec("Omega")
        assert spin.kind == ParamKind.VECTOR
        assert spin.auxiliary
        assert spin.size == 3

    def test_identical_redeclaration_allowed(self):
        """Registering a key again with the same kind is a no-op."""
        spec = register_param("test_albedo", "scalar")
        assert spec.description == "Bond albedo used by the tests"

    def test_conflicting_redeclaration(self):
        """Changing the kind or role of a key raises TypeMismatch."""
        with pytest.raises(TypeMismatch, match="already registered"):
            register_param("test_albedo", "vector")
        with pytest.raises(TypeMismatch):
            register_param("test_albedo", "scalar", auxiliary=True)

    def test_unknown_key(self):
        """Unregistered keys raise NotFound listing the known ones."""
        with pytest.raises(NotFound, match="not a registered parameter"):
            param_spec("no_such_key")

    def test_catalog_copy(self):
        """registered_params lists every key and is a copy."""
        catalog = registered_params()
        assert {"k2", "tau", "I", "Omega", "J2", "R_eq", "test_axis"} <= set(catalog)
        catalog.pop("k2")
        assert "k2" in registered_params()

    def test_empty_name(self):
        """Keys must be non-empty strings."""
        with pytest.raises(ValueError):
            register_param("", "scalar")


class TestParameterStore:
    """Test storing and reading values."""

    def test_scalar_round_trip(self):
        """Scalars come back as floats."""
        store = ParameterStore()
        store.set(0, "test_albedo", 0.3)
        assert store.get(0, "test_albedo") == 0.3
        assert isinstance(store.get(0, "test_albedo"), float)

    def test_vector_round_trip(self):
        """Vectors come back as independent copies."""
        store = ParameterStore()
        store.set(2, "test_axis", [0.0, 0.0, 1.0])
        v = store.get(2, "test_axis")
        np.testing.assert_array_equal(v, [0.0, 0.0, 1.0])
        v[0] = 99.0
        assert store.get(2, "test_axis")[0] == 0.0

    def test_wrong_shape(self):
        """Values of the wrong shape raise TypeMismatch."""
        store = ParameterStore()
        with pytest.raises(TypeMismatch, match="scalar"):
            store.set(0, "test_albedo", [1.0, 2.0, 3.0])
        with pytest.raises(TypeMismatch, match="3-vector"):
            store.set(0, "test_axis", 1.0)
        with pytest.raises(TypeMismatch):
            store.set(0, "test_albedo", "bright")

    def test_non_finite_value(self):
        """NaN values raise ValueError."""
        store = ParameterStore()
        with pytest.raises(ValueError, match="finite"):
            store.set(0, "test_albedo", np.nan)

    def test_read_with_wrong_kind(self):
        """Reading with a mismatched expected kind raises TypeMismatch."""
        store = ParameterStore()
        store.set(0, "test_albedo", 0.1)
        assert store.get(0, "test_albedo", kind="scalar") == 0.1
        with pytest.raises(TypeMismatch, match="requested as vector"):
            store.get(0, "test_albedo", kind="vector")

    def test_missing_value(self):
        """Reading an unset key raises NotFound."""
        store = ParameterStore()
        with pytest.raises(NotFound, match="not set for particle 4"):
            store.get(4, "test_albedo")
        with pytest.raises(KeyError):
            store.get(4, "test_albedo")

    def test_set_unknown_key(self):
        """Setting an unregistered key raises NotFound."""
        with pytest.raises(NotFound):
            ParameterStore().set(0, "no_such_key", 1.0)

    def test_lookup_default(self):
        """lookup falls back to the default instead of raising."""
        store = ParameterStore()
        assert store.lookup(0, "test_albedo") is None
        assert store.lookup(0, "test_albedo", 0.5) == 0.5

    def test_keys_and_release(self):
        """release drops every entry of a particle."""
        store = ParameterStore()
        store.set(1, "test_albedo", 0.2)
        store.set(1, "test_axis", [1.0, 0.0, 0.0])
        assert store.keys(1) == ("test_albedo", "test_axis")
        assert store.has(1, "test_axis")
        v = store.version
        store.release(1)
        assert store.keys(1) == ()
        assert store.version == v + 1
        store.release(1)
        assert store.version == v + 1
