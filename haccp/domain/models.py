from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


OBSERVATION_KINDS = ("temperature", "cleaning", "delivery")
# Storage precision of observation values; intake rounds to it before classifying.
VALUE_PRECISION = 6
VALUE_SCALE = 2


class Base(DeclarativeBase):
    pass


class Tenant(Base):
    __tablename__ = "tenants"

    # Registered business; every other row is scoped by its id.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    siret: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Zone(Base):
    __tablename__ = "zones"
    __table_args__ = (
        Index("ix_zones_tenant_id", "tenant_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    # Free-form type (frigo, congelateur, chambre froide...) selecting a conformity bound.
    zone_type: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Observation(Base):
    __tablename__ = "observations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "client_ref", name="uq_observations_tenant_client_ref"),
        Index("ix_observations_tenant_observed_at", "tenant_id", "observed_at"),
    )

    # Append-only audit trail; rows are never updated or deleted.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Null only for the explicitly gated unscoped write path.
    tenant_id: Mapped[str | None] = mapped_column(String, nullable=True)
    kind: Mapped[str] = mapped_column(String)
    # Plain reference without a foreign key so zone deletion never touches the trail.
    zone_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    value: Mapped[float | None] = mapped_column(Numeric(VALUE_PRECISION, VALUE_SCALE, asdecimal=False), nullable=True)
    responsible: Mapped[str | None] = mapped_column(String, nullable=True)
    product: Mapped[str | None] = mapped_column(String, nullable=True)
    supplier: Mapped[str | None] = mapped_column(String, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    # Computed once at intake; never recomputed.
    conforme: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
