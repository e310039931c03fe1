"""Request/response schemas for HTTP endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from litestar_carriers.enums import DeliveryPriority
from litestar_carriers.types import (
    ZERO,
    CarrierRecommendation,
    Location,
    ServiceabilityResult,
    ShipmentRequest,
    TrackingResult,
)


class ServiceabilityRequest(BaseModel):
    pickup_postal: str
    delivery_postal: str
    cod: bool = False


class ServiceabilityResponse(BaseModel):
    """Per-carrier serviceability; ``serviceable`` if any carrier is."""

    serviceable: bool
    carriers: list[ServiceabilityResult]


class RecommendRequest(BaseModel):
    pickup_postal: str
    delivery_postal: str
    weight: Decimal
    cod: bool = False
    cod_amount: Decimal = ZERO
    priority: DeliveryPriority = DeliveryPriority.NORMAL


class RecommendResponse(BaseModel):
    recommended: CarrierRecommendation
    reason: str


class CreateShipmentRequest(BaseModel):
    """Payload for shipment creation.

    ``carrier`` may be a carrier name or ``"auto"`` to use the
    recommended carrier for the shipment's route and priority.
    """

    order_id: str
    carrier: str = "auto"
    shipment: ShipmentRequest


class CancelShipmentRequest(BaseModel):
    reason: str = "Cancelled by admin"


class SchedulePickupRequest(BaseModel):
    pickup_date: date | None = None


class ShipmentResponse(BaseModel):
    """Serialized shipment response payload."""

    id: str
    order_id: str
    carrier_name: str
    awb: str | None
    tracking_number: str
    status: str
    provider_status: str
    label_url: str = ""
    estimated_delivery_at: datetime | None = None
    delivered_at: datetime | None = None
    cancellation_reason: str | None = None

    @classmethod
    def from_shipment(cls, shipment):
        return cls(
            id=str(shipment.id),
            order_id=str(shipment.order_id),
            carrier_name=str(shipment.carrier_name),
            awb=shipment.awb,
            tracking_number=str(shipment.tracking_number),
            status=str(shipment.status),
            provider_status=str(shipment.provider_status or ""),
            label_url=str(getattr(shipment, "label_url", "") or ""),
            estimated_delivery_at=shipment.estimated_delivery_at,
            delivered_at=shipment.delivered_at,
            cancellation_reason=getattr(shipment, "cancellation_reason", None),
        )


class ShipmentListResponse(BaseModel):
    shipments: list[ShipmentResponse]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def from_page(cls, page):
        return cls(
            shipments=[
                ShipmentResponse.from_shipment(s) for s in page.shipments
            ],
            total=page.total,
            page=page.page,
            limit=page.limit,
            pages=page.pages,
        )


class CreateShipmentResponse(BaseModel):
    awb: str
    tracking_number: str
    carrier_name: str
    shipment: ShipmentResponse


class TrackingResponse(BaseModel):
    shipment: ShipmentResponse
    tracking: TrackingResult
    status_changed: bool


class TrackingLogResponse(BaseModel):
    awb: str
    status: str
    provider_status: str = ""
    location: Location = Field(default_factory=Location)
    description: str = ""
    source: str
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry):
        return cls(
            awb=str(entry.awb),
            status=str(entry.status),
            provider_status=str(getattr(entry, "provider_status", "") or ""),
            location=Location.model_validate(
                getattr(entry, "location", None) or {}
            ),
            description=str(getattr(entry, "description", "") or ""),
            source=str(entry.source),
            timestamp=entry.timestamp,
        )


class TrackingHistoryResponse(BaseModel):
    awb: str
    history: list[TrackingLogResponse]


class WebhookResponse(BaseModel):
    """Webhook handling response payload."""

    carrier: str
    status: str
    shipment_status: str
    duplicate: bool = False


class CarrierProfileResponse(BaseModel):
    """Carrier profile listing. Credentials and secrets are never included."""

    name: str
    display_name: str
    is_active: bool
    supported_services: list[str] = Field(default_factory=list)
    total_shipments: int = 0
    on_time_rate: float = 0.0

    @classmethod
    def from_profile(cls, profile):
        return cls(
            name=str(profile.name),
            display_name=str(profile.display_name or profile.name),
            is_active=bool(profile.is_active),
            supported_services=list(profile.supported_services or []),
            total_shipments=int(profile.total_shipments or 0),
            on_time_rate=float(profile.on_time_rate or 0.0),
        )
