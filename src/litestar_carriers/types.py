"""Provider-neutral data shapes exchanged with carrier adapters."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, computed_field

from litestar_carriers.enums import DeliveryPriority

ZERO = Decimal("0")


class Address(BaseModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "India"


class Location(BaseModel):
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""
    hub_name: str = ""


class Dimensions(BaseModel):
    """Package dimensions in centimetres."""

    length: Decimal = Decimal("10")
    breadth: Decimal = Decimal("10")
    height: Decimal = Decimal("10")


class LineItem(BaseModel):
    name: str
    sku: str = ""
    quantity: int = 1
    price: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    hsn: str = ""


class ShipmentRequest(BaseModel):
    """Internal shipment-creation request handed to an adapter.

    ``billing`` defaults to the shipping address when omitted.
    """

    order_id: str = ""
    pickup_address: Address
    shipping: Address
    billing: Address | None = None
    items: list[LineItem] = Field(default_factory=list)
    weight: Decimal
    dimensions: Dimensions = Field(default_factory=Dimensions)
    is_cod: bool = False
    cod_amount: Decimal = ZERO
    sub_total: Decimal = ZERO
    shipping_charges: Decimal = ZERO
    discount: Decimal = ZERO
    priority: DeliveryPriority = DeliveryPriority.NORMAL
    pickup_location: str = "Primary"
    service_id: str | None = None
    service_name: str = ""
    notes: str = ""


class ServiceOption(BaseModel):
    name: str
    service_type: str = ""
    estimated_days: int | None = None
    rate: Decimal | None = None
    cod_available: bool = False


class ServiceabilityResult(BaseModel):
    carrier: str = ""
    serviceable: bool
    estimated_days: int | None = None
    service_options: list[ServiceOption] = Field(default_factory=list)


class RateQuote(BaseModel):
    """One priced service option.

    ``total_charge`` is derived: the COD surcharge is added only for COD
    shipments.
    """

    carrier: str = ""
    service_name: str
    service_id: str = ""
    service_type: str = ""
    base_rate: Decimal
    cod_charge: Decimal = ZERO
    cod: bool = False
    estimated_days: int | None = None
    cod_available: bool = False
    description: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_charge(self) -> Decimal:
        return self.base_rate + (self.cod_charge if self.cod else ZERO)


class ShipmentCreateResult(BaseModel):
    awb: str
    tracking_number: str
    provider_order_id: str = ""
    provider_shipment_id: str = ""
    service_name: str = ""
    estimated_delivery: datetime | None = None
    provider_response: dict[str, Any] = Field(default_factory=dict)


class TrackingEvent(BaseModel):
    status: str
    location: str = ""
    timestamp: datetime | None = None
    description: str = ""


class TrackingResult(BaseModel):
    """Normalized tracking snapshot.

    ``status`` is a canonical ShipmentStatus value when the provider status
    is known, otherwise the provider string verbatim.
    """

    awb: str
    status: str
    provider_status: str = ""
    location: Location = Field(default_factory=Location)
    history: list[TrackingEvent] = Field(default_factory=list)
    timestamp: datetime | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    provider_shipment_id: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


class CancelResult(BaseModel):
    success: bool
    message: str = ""
    provider_response: dict[str, Any] = Field(default_factory=dict)


class LabelInfo(BaseModel):
    label_url: str = ""
    manifest_url: str = ""
    invoice_url: str = ""


class PickupRequest(BaseModel):
    provider_shipment_id: str
    awb: str = ""
    pickup_date: date | None = None


class PickupResult(BaseModel):
    success: bool
    pickup_id: str = ""
    scheduled_date: datetime | None = None
    provider_response: dict[str, Any] = Field(default_factory=dict)


class WebhookUpdate(BaseModel):
    """Normalized status observation pushed by a provider."""

    awb: str
    status: str
    provider_status: str = ""
    location: Location = Field(default_factory=Location)
    timestamp: datetime | None = None
    description: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


class CarrierRecommendation(BaseModel):
    """Winning quote with its score breakdown."""

    quote: RateQuote
    priority: DeliveryPriority
    score: float
    cost_score: float
    speed_score: float
    reliability_score: float
    rto_penalty: float


class PerformanceStats(BaseModel):
    name: str
    display_name: str = ""
    total_shipments: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    rto_count: int = 0
    average_delivery_days: float = 0.0
    on_time_rate: float = 0.0
    success_rate: float = 0.0
    rto_rate: float = 0.0


class RatesSummary(BaseModel):
    rates: list[RateQuote] = Field(default_factory=list)
    cheapest: RateQuote | None = None
    fastest: RateQuote | None = None
