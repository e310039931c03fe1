"""Shipment endpoints."""

from __future__ import annotations

import logging
from typing import Annotated, ClassVar

from litestar import Controller, get, post
from litestar.params import Dependency

from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.schemas import (
    CancelShipmentRequest,
    CreateShipmentRequest,
    CreateShipmentResponse,
    SchedulePickupRequest,
    ShipmentListResponse,
    ShipmentResponse,
    TrackingHistoryResponse,
    TrackingLogResponse,
    TrackingResponse,
)

logger = logging.getLogger(__name__)

Orchestrator = Annotated[CarrierOrchestrator, Dependency(skip_validation=True)]


class ShipmentController(Controller):
    """Shipment lifecycle endpoints keyed by AWB."""

    path = "/shipments"
    tags: ClassVar[list[str]] = ["shipments"]

    @post("/")
    async def create_shipment(
        self, data: CreateShipmentRequest, orchestrator: Orchestrator
    ) -> CreateShipmentResponse:
        """Create a shipment with the named carrier or ``auto``."""
        created = await orchestrator.create_shipment(
            data.carrier, data.shipment, data.order_id
        )
        return CreateShipmentResponse(
            awb=created.awb,
            tracking_number=created.tracking_number,
            carrier_name=created.carrier_name,
            shipment=ShipmentResponse.from_shipment(created.shipment),
        )

    @get("/")
    async def list_shipments(
        self,
        orchestrator: Orchestrator,
        status: str | None = None,
        carrier_name: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> ShipmentListResponse:
        """List shipments newest first, filtered by status or carrier."""
        result = await orchestrator.list_shipments(
            status=status,
            carrier_name=carrier_name,
            page=page,
            limit=limit,
        )
        return ShipmentListResponse.from_page(result)

    @get("/{awb:str}/track")
    async def track(
        self, awb: str, orchestrator: Orchestrator
    ) -> TrackingResponse:
        """Poll the carrier and persist the latest status."""
        outcome = await orchestrator.track_shipment(awb)
        return TrackingResponse(
            shipment=ShipmentResponse.from_shipment(outcome.shipment),
            tracking=outcome.tracking,
            status_changed=outcome.status_changed,
        )

    @get("/{awb:str}/history")
    async def history(
        self, awb: str, orchestrator: Orchestrator, limit: int | None = None
    ) -> TrackingHistoryResponse:
        entries = await orchestrator.get_tracking_history(awb, limit)
        return TrackingHistoryResponse(
            awb=awb,
            history=[TrackingLogResponse.from_entry(e) for e in entries],
        )

    @get("/orders/{order_id:str}")
    async def track_by_order(
        self, order_id: str, orchestrator: Orchestrator
    ) -> TrackingResponse:
        outcome = await orchestrator.track_by_order(order_id)
        return TrackingResponse(
            shipment=ShipmentResponse.from_shipment(outcome.shipment),
            tracking=outcome.tracking,
            status_changed=outcome.status_changed,
        )

    @post("/{awb:str}/cancel", status_code=200)
    async def cancel(
        self,
        awb: str,
        orchestrator: Orchestrator,
        data: CancelShipmentRequest | None = None,
    ) -> ShipmentResponse:
        reason = (data or CancelShipmentRequest()).reason
        shipment = await orchestrator.cancel_shipment(awb, reason)
        return ShipmentResponse.from_shipment(shipment)

    @post("/{awb:str}/label")
    async def create_label(
        self, awb: str, orchestrator: Orchestrator
    ) -> ShipmentResponse:
        """Generate shipping documents via the carrier."""
        shipment = await orchestrator.generate_label(awb)
        return ShipmentResponse.from_shipment(shipment)

    @post("/{awb:str}/pickup")
    async def schedule_pickup(
        self,
        awb: str,
        orchestrator: Orchestrator,
        data: SchedulePickupRequest | None = None,
    ) -> ShipmentResponse:
        pickup_date = data.pickup_date if data is not None else None
        shipment = await orchestrator.schedule_pickup(awb, pickup_date)
        logger.info("Pickup requested for AWB %s", awb)
        return ShipmentResponse.from_shipment(shipment)
