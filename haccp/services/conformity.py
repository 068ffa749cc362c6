from __future__ import annotations

from dataclasses import dataclass
import json
import math
from types import MappingProxyType
from typing import Mapping
import unicodedata

from haccp.core.config import Settings, get_settings
from haccp.core.errors import ConfigurationError


@dataclass(frozen=True)
class Bound:
    # Inclusive safe range in degrees Celsius.
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class PolicyTable:
    bounds: Mapping[str, Bound]
    default: Bound

    def bound_for(self, zone_type: str | None) -> Bound:
        key = normalize_zone_type(zone_type)
        if key is None:
            return self.default
        return self.bounds.get(key, self.default)


def normalize_zone_type(zone_type: str | None) -> str | None:
    # "Chambre froide", "chambre-froide" and "CHAMBRE_FROIDE" select the same bound.
    if zone_type is None:
        return None
    decomposed = unicodedata.normalize("NFKD", zone_type)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    key = ascii_only.strip().casefold().replace("-", " ")
    key = "_".join(key.split())
    return key or None


def evaluate(zone_type: str | None, value: float, policy: PolicyTable) -> bool:
    """Classify a reading against the bound for its zone type.

    Unknown or missing zone types fall back to the default bound so a write is
    never blocked by classification. Non-finite values are non-conforming.
    """
    if not math.isfinite(value):
        return False
    return policy.bound_for(zone_type).contains(value)


def _parse_bound(zone_type: str, raw: object) -> Bound:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ConfigurationError(f"conformity bound for {zone_type!r} must be a [min, max] pair")
    try:
        low, high = float(raw[0]), float(raw[1])
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"conformity bound for {zone_type!r} must be numeric") from exc
    if low > high:
        raise ConfigurationError(f"conformity bound for {zone_type!r} has min > max")
    return Bound(low, high)


def load_policy_table(settings: Settings | None = None) -> PolicyTable:
    # Parsed once at startup; the returned mapping is read-only for the whole run.
    settings = settings or get_settings()
    try:
        raw = json.loads(settings.conformity_policy_json or "{}")
    except ValueError as exc:
        raise ConfigurationError("CONFORMITY_POLICY_JSON is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError("CONFORMITY_POLICY_JSON must be a JSON object")
    bounds: dict[str, Bound] = {}
    for zone_type, value in raw.items():
        key = normalize_zone_type(str(zone_type))
        if key is None:
            raise ConfigurationError("conformity policy contains an empty zone type")
        bounds[key] = _parse_bound(str(zone_type), value)
    default = _parse_bound("default", [settings.conformity_default_min, settings.conformity_default_max])
    return PolicyTable(bounds=MappingProxyType(bounds), default=default)
