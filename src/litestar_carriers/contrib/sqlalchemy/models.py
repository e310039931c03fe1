"""SQLAlchemy 2.0 async models for carrier orchestration."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from litestar_carriers.enums import ShipmentStatus, TrackingSource


def _now() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    """Base class for all carrier models."""


class CarrierProfileModel(Base):
    """Carrier profile implementing the CarrierProfile protocol."""

    __tablename__ = "carrier_profiles"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(64), unique=True)
    display_name: Mapped[str] = mapped_column(String(128), default="")
    api_base_url: Mapped[str] = mapped_column(String(512), default="")
    credentials: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}
    )
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    supported_services: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: []
    )
    max_retries: Mapped[int | None] = mapped_column(nullable=True, default=3)
    timeout_seconds: Mapped[float | None] = mapped_column(
        Float, nullable=True, default=30.0
    )
    webhook_secret: Mapped[str] = mapped_column(String(255), default="")
    allow_unsigned_webhooks: Mapped[bool] = mapped_column(default=False)

    total_shipments: Mapped[int] = mapped_column(default=0)
    successful_deliveries: Mapped[int] = mapped_column(default=0)
    failed_deliveries: Mapped[int] = mapped_column(default=0)
    rto_count: Mapped[int] = mapped_column(default=0)
    average_delivery_days: Mapped[float] = mapped_column(Float, default=0.0)
    on_time_rate: Mapped[float] = mapped_column(Float, default=0.0)
    performance_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    base_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0")
    )
    per_kg_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0")
    )
    cod_surcharge: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0")
    )
    rto_surcharge: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class ShipmentModel(Base):
    """Shipment record implementing the Shipment protocol."""

    __tablename__ = "carrier_shipments"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    order_id: Mapped[str] = mapped_column(String(64), unique=True)
    carrier_name: Mapped[str] = mapped_column(String(64), index=True)
    awb: Mapped[str | None] = mapped_column(
        String(64), unique=True, nullable=True, default=None
    )
    tracking_number: Mapped[str] = mapped_column(String(128), default="")
    provider_order_id: Mapped[str] = mapped_column(String(64), default="")
    provider_shipment_id: Mapped[str] = mapped_column(String(64), default="")
    service_name: Mapped[str] = mapped_column(String(128), default="")

    status: Mapped[str] = mapped_column(
        String(32), default=ShipmentStatus.CREATED.value, index=True
    )
    provider_status: Mapped[str] = mapped_column(String(128), default="")
    priority: Mapped[str] = mapped_column(String(16), default="Normal")

    weight: Mapped[Decimal] = mapped_column(Numeric(10, 3))
    length: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=None
    )
    breadth: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=None
    )
    height: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=None
    )
    is_cod: Mapped[bool] = mapped_column(default=False)
    cod_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0")
    )

    pickup_address: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}
    )
    delivery_address: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}
    )
    current_location: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}
    )

    estimated_delivery_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    picked_up_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    label_url: Mapped[str] = mapped_column(String(512), default="")
    manifest_url: Mapped[str] = mapped_column(String(512), default="")
    invoice_url: Mapped[str] = mapped_column(String(512), default="")
    pickup_id: Mapped[str] = mapped_column(String(128), default="")
    pickup_scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # Raw provider responses kept for audit.
    create_response: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )
    tracking_response: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )
    cancel_response: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )

    cancellation_reason: Mapped[str | None] = mapped_column(
        Text, nullable=True, default=None
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class TrackingLogModel(Base):
    """Append-only tracking log entry."""

    __tablename__ = "carrier_tracking_logs"
    __table_args__ = (
        UniqueConstraint(
            "shipment_id",
            "awb",
            "status",
            "timestamp",
            name="uq_carrier_tracking_logs_identity",
        ),
        Index("ix_carrier_tracking_logs_awb_timestamp", "awb", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    shipment_id: Mapped[str] = mapped_column(String(36), index=True)
    awb: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(128))
    provider_status: Mapped[str] = mapped_column(String(128), default="")
    location: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}
    )
    description: Mapped[str] = mapped_column(Text, default="")
    source: Mapped[str] = mapped_column(
        String(16), default=TrackingSource.POLL.value
    )
    raw_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
