from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Callable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.core.clock import SystemClock, ensure_utc
from haccp.core.errors import ValidationError
from haccp.domain.models import OBSERVATION_KINDS, VALUE_PRECISION, VALUE_SCALE, Observation
from haccp.persistence.guards import require_tenant_id
from haccp.persistence.repos import observations as observations_repo
from haccp.persistence.repos.zones import get_zone
from haccp.services.conformity import PolicyTable, evaluate


logger = logging.getLogger(__name__)

_VALUE_QUANTUM = Decimal(1).scaleb(-VALUE_SCALE)
_VALUE_LIMIT = Decimal(10) ** (VALUE_PRECISION - VALUE_SCALE) - _VALUE_QUANTUM


def _to_stored_value(value: float | None) -> float | None:
    # Round to the column scale first, so conformity is judged on the value the row keeps.
    if value is None:
        return None
    raw = Decimal(repr(value))
    if abs(raw) >= _VALUE_LIMIT + _VALUE_QUANTUM / 2:
        raise ValueError(f"magnitude must not exceed {_VALUE_LIMIT}")
    return float(raw.quantize(_VALUE_QUANTUM, rounding=ROUND_HALF_UP))


class _ObservationIn(BaseModel):
    # Unknown keys are ignored; a client-supplied "conforme" never reaches the row for readings.
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    observed_at: datetime | None = None
    photo_url: str | None = None
    client_ref: str | None = Field(default=None, max_length=128)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TemperatureReadingIn(_ObservationIn):
    zone_id: int
    temperature: float = Field(allow_inf_nan=False)
    responsible: str | None = Field(default=None, validation_alias=AliasChoices("responsible", "responsable"))
    product_type: str | None = Field(
        default=None, validation_alias=AliasChoices("product_type", "typeProduit", "typeproduit")
    )

    @field_validator("temperature")
    @classmethod
    def _fit_column(cls, value: float) -> float:
        return _to_stored_value(value)


class CleaningEventIn(_ObservationIn):
    zone_id: int
    responsible: str = Field(validation_alias=AliasChoices("responsible", "responsable"))
    task: str | None = Field(default=None, validation_alias=AliasChoices("task", "libelle"))
    # Cleanliness state declared by the operator; unspecified means clean.
    clean: bool | None = None


class DeliveryEventIn(_ObservationIn):
    supplier: str = Field(validation_alias=AliasChoices("supplier", "fournisseur"))
    product: str | None = Field(default=None, validation_alias=AliasChoices("product", "produit"))
    temperature: float | None = Field(default=None, allow_inf_nan=False)
    zone_id: int | None = None
    responsible: str | None = Field(default=None, validation_alias=AliasChoices("responsible", "responsable"))
    # Inspection verdict for deliveries without a probe temperature; unspecified means accepted.
    accepted: bool | None = None

    @field_validator("temperature")
    @classmethod
    def _fit_column(cls, value: float | None) -> float | None:
        return _to_stored_value(value)


_SCHEMAS: dict[str, type[_ObservationIn]] = {
    "temperature": TemperatureReadingIn,
    "cleaning": CleaningEventIn,
    "delivery": DeliveryEventIn,
}


def _parse(kind: str, raw_fields: dict[str, Any]) -> _ObservationIn:
    if kind not in _SCHEMAS:
        raise ValidationError("kind", f"unknown observation kind: {kind!r}")
    try:
        return _SCHEMAS[kind].model_validate(raw_fields or {})
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = first.get("loc") or ("payload",)
        field = str(loc[0])
        raise ValidationError(field, f"{field}: {first.get('msg', 'invalid value')}") from exc


async def ingest_observation(
    session: AsyncSession,
    *,
    kind: str,
    raw_fields: dict[str, Any],
    tenant_id: str | None,
    policy: PolicyTable,
    now: Callable[[], datetime] | None = None,
) -> Observation:
    """Validate, classify and append one observation.

    Conformity of any numeric temperature is always recomputed here from the
    zone's policy bound. Raises ``ValidationError`` (nothing written) or
    ``ConflictError`` for a duplicate ``client_ref``.
    """
    kind = (kind or "").strip().lower()
    payload = _parse(kind, raw_fields)
    require_tenant_id(tenant_id)
    tenant_id = tenant_id or None

    zone_type: str | None = None
    zone_id = getattr(payload, "zone_id", None)
    if zone_id is not None:
        zone = await get_zone(session, tenant_id=tenant_id, zone_id=zone_id)
        if zone is None:
            raise ValidationError("zone_id", f"zone {zone_id} does not exist for this tenant")
        zone_type = zone.zone_type

    observed_at = ensure_utc(payload.observed_at) if payload.observed_at else (now or SystemClock().now)()
    row = Observation(
        tenant_id=tenant_id,
        kind=kind,
        zone_id=zone_id,
        observed_at=observed_at,
        photo_url=payload.photo_url,
        client_ref=payload.client_ref,
    )

    if isinstance(payload, TemperatureReadingIn):
        row.value = payload.temperature
        row.responsible = payload.responsible
        row.product = payload.product_type
        row.conforme = evaluate(zone_type, payload.temperature, policy)
    elif isinstance(payload, CleaningEventIn):
        row.responsible = payload.responsible
        row.product = payload.task
        row.conforme = True if payload.clean is None else payload.clean
    else:
        row.supplier = payload.supplier
        row.product = payload.product
        row.responsible = payload.responsible
        row.value = payload.temperature
        if payload.temperature is not None:
            row.conforme = evaluate(zone_type, payload.temperature, policy)
        else:
            row.conforme = True if payload.accepted is None else payload.accepted

    stored = await observations_repo.append_observation(session, row)
    if not stored.conforme:
        logger.info(
            "observation_non_conforming tenant=%s kind=%s zone_id=%s value=%s",
            tenant_id,
            kind,
            zone_id,
            stored.value,
        )
    return stored


async def list_recent_observations(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str | None = None,
    limit: int = 50,
) -> list[Observation]:
    if kind is not None and kind not in OBSERVATION_KINDS:
        raise ValidationError("kind", f"unknown observation kind: {kind!r}")
    return await observations_repo.list_recent(session, tenant_id=tenant_id, kind=kind, limit=limit)


class ObservationIntake:
    """Session-bound intake facade used by the HTTP layer and operator tooling."""

    def __init__(
        self,
        session: AsyncSession,
        policy: PolicyTable,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._policy = policy
        self._now = now

    async def ingest(self, kind: str, raw_fields: dict[str, Any], *, tenant_id: str | None) -> Observation:
        return await ingest_observation(
            self._session,
            kind=kind,
            raw_fields=raw_fields,
            tenant_id=tenant_id,
            policy=self._policy,
            now=self._now,
        )

    async def list_recent(self, tenant_id: str, *, kind: str | None = None, limit: int = 50) -> list[Observation]:
        return await list_recent_observations(self._session, tenant_id=tenant_id, kind=kind, limit=limit)
