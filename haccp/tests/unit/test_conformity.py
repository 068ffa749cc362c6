from __future__ import annotations

import math
from types import MappingProxyType

import pytest

from haccp.core.config import Settings
from haccp.core.errors import ConfigurationError
from haccp.services.conformity import Bound, PolicyTable, evaluate, load_policy_table, normalize_zone_type


POLICY = PolicyTable(bounds=MappingProxyType({"frigo": Bound(-999.0, 4.0)}), default=Bound(-30.0, 10.0))


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (3.2, True),
        (4.0, True),
        (4.01, False),
        (6.0, False),
        (-999.0, True),
        (-999.5, False),
    ],
)
def test_evaluate_bounds_are_inclusive(value: float, expected: bool) -> None:
    assert evaluate("frigo", value, POLICY) is expected


def test_unknown_or_missing_zone_type_falls_back_to_default() -> None:
    assert evaluate("cave a vin", 10.0, POLICY) is True
    assert evaluate("cave a vin", 10.5, POLICY) is False
    assert evaluate(None, -30.0, POLICY) is True
    assert evaluate("", -31.0, POLICY) is False


@pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
def test_non_finite_values_are_non_conforming(value: float) -> None:
    assert evaluate("frigo", value, POLICY) is False


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Chambre froide", "chambre_froide"),
        ("chambre-froide", "chambre_froide"),
        ("  CHAMBRE   Froide ", "chambre_froide"),
        ("Congélateur", "congelateur"),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_zone_type(raw: str | None, expected: str | None) -> None:
    assert normalize_zone_type(raw) == expected


def test_load_policy_table_from_default_settings() -> None:
    table = load_policy_table(Settings())
    assert table.bound_for("Frigo") == Bound(-999.0, 4.0)
    assert table.bound_for("chambre froide") == Bound(0.0, 4.0)
    assert table.bound_for("Surgélateur") == Bound(-999.0, -18.0)
    assert table.bound_for(None) == Bound(-30.0, 10.0)


def test_loaded_policy_table_is_read_only() -> None:
    table = load_policy_table(Settings())
    with pytest.raises(TypeError):
        table.bounds["frigo"] = Bound(0.0, 1.0)  # type: ignore[index]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"frigo": [5]}',
        '{"frigo": ["cold", 1]}',
        '{"frigo": [5, 1]}',
        '{"  ": [0, 4]}',
    ],
)
def test_load_policy_table_rejects_invalid_configuration(raw: str) -> None:
    with pytest.raises(ConfigurationError):
        load_policy_table(Settings(conformity_policy_json=raw))


def test_load_policy_table_rejects_inverted_default_bound() -> None:
    with pytest.raises(ConfigurationError):
        load_policy_table(Settings(conformity_default_min=5.0, conformity_default_max=1.0))
