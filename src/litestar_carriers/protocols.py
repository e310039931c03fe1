"""Persistence protocols consumed by the orchestrator."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "CarrierProfile",
    "CarrierProfileRepository",
    "Shipment",
    "ShipmentRepository",
    "TrackingLogEntry",
    "TrackingLogRepository",
]


@runtime_checkable
class CarrierProfile(Protocol):
    """Carrier configuration and rolling performance counters."""

    name: str
    display_name: str
    api_base_url: str
    credentials: dict[str, Any]
    is_active: bool
    supported_services: list[str]
    max_retries: int | None
    timeout_seconds: float | None
    webhook_secret: str
    allow_unsigned_webhooks: bool
    total_shipments: int
    successful_deliveries: int
    failed_deliveries: int
    rto_count: int
    average_delivery_days: float
    on_time_rate: float


@runtime_checkable
class Shipment(Protocol):
    id: str
    order_id: str
    carrier_name: str
    awb: str | None
    tracking_number: str
    provider_shipment_id: str
    status: str
    provider_status: str
    weight: Decimal
    is_cod: bool
    created_at: datetime
    estimated_delivery_at: datetime | None
    picked_up_at: datetime | None
    delivered_at: datetime | None


@runtime_checkable
class TrackingLogEntry(Protocol):
    shipment_id: str
    awb: str
    status: str
    timestamp: datetime
    source: str


@runtime_checkable
class CarrierProfileRepository(Protocol):
    """Storage for carrier profiles.

    Counter updates must be atomic against the stored record.
    """

    async def list_active(self) -> list[CarrierProfile]:
        """Return all active profiles."""
        ...

    async def list_all(self) -> list[CarrierProfile]:
        """Return every profile, active or not."""
        ...

    async def get_by_name(self, name: str) -> CarrierProfile:
        """Get a profile by name. Raises KeyError if not found."""
        ...

    async def increment_counters(self, name: str, **deltas: int) -> None:
        """Atomically add ``deltas`` to integer performance counters."""
        ...

    async def record_delivery(
        self, name: str, *, on_time: bool, delivery_days: float
    ) -> None:
        """Count a successful delivery and roll the on-time rate."""
        ...

    async def deactivate(self, name: str) -> None:
        """Mark a profile inactive. Profiles are never deleted."""
        ...


@runtime_checkable
class ShipmentRepository(Protocol):
    async def get_by_id(self, shipment_id: str) -> Shipment:
        """Raises KeyError if not found."""
        ...

    async def get_by_awb(self, awb: str) -> Shipment:
        """Raises KeyError if not found."""
        ...

    async def find_by_order(self, order_id: str) -> Shipment | None: ...

    async def list_shipments(
        self,
        *,
        status: str | None = None,
        carrier_name: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Shipment], int]:
        """Return one page of matches, newest first, and the match count."""
        ...

    async def create(self, **fields: Any) -> Shipment:
        """Persist a new shipment.

        Raises DuplicateShipmentError if the order already has one.
        """
        ...

    async def compare_and_set_status(
        self,
        shipment_id: str,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> Shipment | None:
        """Change status only if it still equals ``expected_status``.

        Returns the updated shipment, or None when another writer got
        there first.
        """
        ...

    async def update_fields(self, shipment_id: str, **fields: Any) -> Shipment:
        """Update non-status fields."""
        ...


@runtime_checkable
class TrackingLogRepository(Protocol):
    async def append(self, **fields: Any) -> TrackingLogEntry | None:
        """Write an entry; None if its identity is already recorded."""
        ...

    async def list_by_awb(
        self, awb: str, limit: int = 50
    ) -> list[TrackingLogEntry]:
        """Entries for ``awb``, newest first."""
        ...
