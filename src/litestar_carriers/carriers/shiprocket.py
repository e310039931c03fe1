"""Shiprocket aggregator adapter.

API reference: https://apidocs.shiprocket.in/
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.config import CarriersConfig
from litestar_carriers.enums import ShipmentStatus
from litestar_carriers.exceptions import (
    AuthenticationError,
    PermanentProviderError,
    ValidationError,
)
from litestar_carriers.protocols import CarrierProfile
from litestar_carriers.types import (
    ZERO,
    CancelResult,
    LabelInfo,
    Location,
    PickupRequest,
    PickupResult,
    RateQuote,
    ServiceabilityResult,
    ServiceOption,
    ShipmentCreateResult,
    ShipmentRequest,
    TrackingEvent,
    TrackingResult,
    WebhookUpdate,
)

logger = logging.getLogger(__name__)

# Shiprocket reports local time without an offset.
IST = timezone(timedelta(hours=5, minutes=30))


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return ZERO


def _to_days(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_provider_datetime(value: Any) -> datetime | None:
    """Parse a Shiprocket timestamp into an aware UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            logger.debug("Unparseable Shiprocket timestamp %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=IST)
    return parsed.astimezone(UTC)


class ShiprocketAdapter(BaseCarrierAdapter):
    """Shiprocket integration: token login, rate shopping, AWB assignment."""

    name: ClassVar[str] = "Shiprocket"
    display_name: ClassVar[str] = "Shiprocket"
    default_base_url: ClassVar[str] = "https://apiv2.shiprocket.in/v1/external"

    status_map: ClassVar[dict[str, ShipmentStatus]] = {
        "NEW": ShipmentStatus.CREATED,
        "MANIFEST GENERATED": ShipmentStatus.MANIFEST_GENERATED,
        "PICKUP SCHEDULED": ShipmentStatus.PICKUP_SCHEDULED,
        "PICKED UP": ShipmentStatus.PICKED_UP,
        "IN TRANSIT": ShipmentStatus.IN_TRANSIT,
        "OUT FOR DELIVERY": ShipmentStatus.OUT_FOR_DELIVERY,
        "DELIVERED": ShipmentStatus.DELIVERED,
        "UNDELIVERED": ShipmentStatus.FAILED_ATTEMPT,
        "RTO INITIATED": ShipmentStatus.RTO_INITIATED,
        "RTO DELIVERED": ShipmentStatus.RTO_DELIVERED,
        "CANCELED": ShipmentStatus.CANCELLED,
        "CANCELLED": ShipmentStatus.CANCELLED,
        "LOST": ShipmentStatus.LOST,
        "DAMAGED": ShipmentStatus.DAMAGED,
    }

    def __init__(
        self,
        profile: CarrierProfile,
        *,
        config: CarriersConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(profile, config=config, client=client)
        self._token: str | None = self.get_credential("token")
        self._token_expires_at = parse_provider_datetime(
            self.get_credential("token_expiry")
        )
        self._token_lock = asyncio.Lock()

    def _token_is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._token_expires_at is not None
            and datetime.now(tz=UTC) < self._token_expires_at
        )

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = None

    async def authenticate(self) -> str:
        if self._token_is_fresh():
            return self._token  # type: ignore[return-value]
        async with self._token_lock:
            # Another task may have logged in while we waited.
            if self._token_is_fresh():
                return self._token  # type: ignore[return-value]

            email = self.get_credential("email")
            password = self.get_credential("password")
            if not email or not password:
                raise AuthenticationError(
                    "Shiprocket credentials are not configured",
                    carrier=self.name,
                )
            try:
                data = await self._request(
                    "POST",
                    "auth/login",
                    json={"email": email, "password": password},
                    authenticated=False,
                )
            except PermanentProviderError as exc:
                raise AuthenticationError(
                    f"Shiprocket authentication failed: {exc}",
                    carrier=self.name,
                    status_code=exc.status_code,
                ) from exc

            token = data.get("token")
            if not token:
                raise AuthenticationError(
                    "Shiprocket login returned no token", carrier=self.name
                )
            self._token = token
            self._token_expires_at = datetime.now(tz=UTC) + timedelta(
                seconds=self.config.token_ttl_seconds
            )
            logger.info("Shiprocket authentication successful")
            return token

    async def _courier_companies(
        self,
        pickup_postal: str,
        delivery_postal: str,
        *,
        cod: bool,
        weight: Decimal,
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "courier/serviceability/",
            params={
                "pickup_postcode": pickup_postal,
                "delivery_postcode": delivery_postal,
                "cod": 1 if cod else 0,
                "weight": str(weight),
            },
        )
        companies = (data.get("data") or {}).get("available_courier_companies")
        return list(companies or [])

    async def check_serviceability(
        self, pickup_postal: str, delivery_postal: str, cod: bool = False
    ) -> ServiceabilityResult:
        companies = await self._courier_companies(
            pickup_postal, delivery_postal, cod=cod, weight=Decimal("1")
        )
        options = [
            ServiceOption(
                name=str(company.get("courier_name") or ""),
                service_type=str(company.get("courier_type") or ""),
                estimated_days=_to_days(
                    company.get("estimated_delivery_days")
                ),
                rate=_to_decimal(company.get("rate")),
                cod_available=bool(company.get("cod")),
            )
            for company in companies
        ]
        known_days = [o.estimated_days for o in options if o.estimated_days]
        return ServiceabilityResult(
            carrier=self.name,
            serviceable=bool(options),
            estimated_days=min(known_days) if known_days else None,
            service_options=options,
        )

    async def get_rates(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = ZERO,
    ) -> list[RateQuote]:
        companies = await self._courier_companies(
            pickup_postal, delivery_postal, cod=cod, weight=weight
        )
        quotes = []
        for company in companies:
            base_rate = _to_decimal(company.get("rate"))
            if not base_rate:
                base_rate = _to_decimal(
                    company.get("freight_charge")
                ) + _to_decimal(company.get("other_charges"))
            quotes.append(
                RateQuote(
                    carrier=self.name,
                    service_name=str(company.get("courier_name") or ""),
                    service_id=str(company.get("courier_company_id") or ""),
                    service_type=str(company.get("courier_type") or ""),
                    base_rate=base_rate,
                    cod_charge=_to_decimal(company.get("cod_charges")),
                    cod=cod,
                    estimated_days=_to_days(
                        company.get("estimated_delivery_days")
                    ),
                    cod_available=bool(company.get("cod")),
                    description=str(company.get("description") or ""),
                )
            )
        return quotes

    def _order_payload(self, request: ShipmentRequest) -> dict[str, Any]:
        shipping = request.shipping
        billing = request.billing or shipping
        dims = request.dimensions
        weight = self.get_billable_weight(
            request.weight, dims.length, dims.breadth, dims.height
        )
        return {
            "order_id": request.order_id,
            "order_date": date.today().isoformat(),
            "pickup_location": request.pickup_location,
            "comment": request.notes,
            "billing_customer_name": billing.name,
            "billing_last_name": "",
            "billing_address": billing.address,
            "billing_city": billing.city,
            "billing_pincode": billing.postal_code,
            "billing_state": billing.state,
            "billing_country": billing.country,
            "billing_email": billing.email,
            "billing_phone": self.format_phone(billing.phone),
            "shipping_is_billing": request.billing is None,
            "shipping_customer_name": shipping.name,
            "shipping_last_name": "",
            "shipping_address": shipping.address,
            "shipping_city": shipping.city,
            "shipping_pincode": shipping.postal_code,
            "shipping_state": shipping.state,
            "shipping_country": shipping.country,
            "shipping_email": shipping.email,
            "shipping_phone": self.format_phone(shipping.phone),
            "order_items": [
                {
                    "name": item.name,
                    "sku": item.sku or item.name,
                    "units": item.quantity,
                    "selling_price": str(item.price),
                    "discount": str(item.discount),
                    "tax": str(item.tax),
                    "hsn": item.hsn,
                }
                for item in request.items
            ],
            "payment_method": "COD" if request.is_cod else "Prepaid",
            "shipping_charges": str(request.shipping_charges),
            "giftwrap_charges": 0,
            "transaction_charges": 0,
            "total_discount": str(request.discount),
            "sub_total": str(request.sub_total),
            "length": str(dims.length),
            "breadth": str(dims.breadth),
            "height": str(dims.height),
            "weight": str(weight),
        }

    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentCreateResult:
        order = await self._request(
            "POST", "orders/create/adhoc", json=self._order_payload(request)
        )
        provider_order_id = order.get("order_id")
        provider_shipment_id = order.get("shipment_id")
        if not provider_order_id or not provider_shipment_id:
            raise PermanentProviderError(
                f"Shiprocket did not create order: {order.get('message', '')}",
                carrier=self.name,
            )

        assign_payload: dict[str, Any] = {"shipment_id": provider_shipment_id}
        if request.service_id:
            assign_payload["courier_id"] = request.service_id
        assignment = await self._request(
            "POST", "courier/assign/awb", json=assign_payload
        )
        awb_data = (assignment.get("response") or {}).get("data") or {}
        awb = awb_data.get("awb_code")
        if not awb:
            logger.warning(
                "Shiprocket order %s (shipment %s) created without AWB",
                provider_order_id,
                provider_shipment_id,
            )
            raise PermanentProviderError(
                "Shiprocket AWB assignment failed: "
                f"{assignment.get('message', 'no AWB returned')}",
                carrier=self.name,
            )

        return ShipmentCreateResult(
            awb=str(awb),
            tracking_number=str(awb),
            provider_order_id=str(provider_order_id),
            provider_shipment_id=str(provider_shipment_id),
            service_name=str(awb_data.get("courier_name") or ""),
            provider_response={"order": order, "awb": assignment},
        )

    async def track_shipment(self, awb: str) -> TrackingResult:
        data = await self._request("GET", f"courier/track/awb/{awb}")
        tracking = data.get("tracking_data") or {}
        if not tracking or tracking.get("error"):
            raise PermanentProviderError(
                "Shiprocket tracking failed: "
                f"{tracking.get('error', 'no data')}",
                carrier=self.name,
            )

        tracks = tracking.get("shipment_track") or [{}]
        track = tracks[0] or {}
        activities = tracking.get("shipment_track_activities") or []
        latest = activities[0] if activities else {}

        provider_status = str(
            track.get("current_status")
            or tracking.get("shipment_status")
            or ""
        )
        return TrackingResult(
            awb=awb,
            status=self.standardize_status(provider_status),
            provider_status=provider_status,
            location=Location(
                city=str(latest.get("location") or ""), country="India"
            ),
            history=[
                TrackingEvent(
                    status=str(activity.get("status") or ""),
                    location=str(activity.get("location") or ""),
                    timestamp=parse_provider_datetime(activity.get("date")),
                    description=str(activity.get("activity") or ""),
                )
                for activity in activities
            ],
            timestamp=parse_provider_datetime(latest.get("date")),
            estimated_delivery=parse_provider_datetime(
                tracking.get("etd") or track.get("edd")
            ),
            delivered_at=parse_provider_datetime(track.get("delivered_date")),
            provider_shipment_id=str(track.get("shipment_id") or ""),
            raw=tracking,
        )

    async def cancel_shipment(
        self, awb: str, provider_shipment_id: str | None = None
    ) -> CancelResult:
        if not provider_shipment_id:
            tracked = await self.track_shipment(awb)
            provider_shipment_id = tracked.provider_shipment_id
        if not provider_shipment_id:
            raise PermanentProviderError(
                f"Cannot resolve Shiprocket shipment for AWB {awb}",
                carrier=self.name,
            )
        data = await self._request(
            "POST", "orders/cancel", json={"ids": [provider_shipment_id]}
        )
        message = str(data.get("message") or "")
        success = (
            data.get("status_code", data.get("status")) == 200
            or "cancelled successfully" in message.lower()
        )
        return CancelResult(
            success=success, message=message, provider_response=data
        )

    async def generate_label(self, provider_shipment_id: str) -> LabelInfo:
        data = await self._request(
            "POST",
            "courier/generate/label",
            json={"shipment_id": [provider_shipment_id]},
        )
        if not data.get("label_url"):
            raise PermanentProviderError(
                "Shiprocket label generation failed: "
                f"{data.get('response') or data.get('message', '')}",
                carrier=self.name,
            )
        return LabelInfo(
            label_url=str(data.get("label_url") or ""),
            manifest_url=str(data.get("manifest_url") or ""),
            invoice_url=str(data.get("invoice_url") or ""),
        )

    async def schedule_pickup(self, request: PickupRequest) -> PickupResult:
        payload: dict[str, Any] = {
            "shipment_id": [request.provider_shipment_id]
        }
        if request.pickup_date is not None:
            payload["pickup_date"] = [request.pickup_date.isoformat()]
        data = await self._request(
            "POST", "courier/generate/pickup", json=payload
        )
        details = data.get("response") or {}
        return PickupResult(
            success=1
            in (data.get("pickup_status"), data.get("pickup_scheduled")),
            pickup_id=str(details.get("pickup_token_number") or ""),
            scheduled_date=parse_provider_datetime(
                details.get("pickup_scheduled_date")
            ),
            provider_response=data,
        )

    def process_webhook(self, payload: dict[str, Any]) -> WebhookUpdate:
        awb = str(payload.get("awb") or "").strip()
        if not awb:
            raise ValidationError("Webhook payload has no AWB")
        provider_status = str(
            payload.get("current_status")
            or payload.get("shipment_status")
            or ""
        )
        return WebhookUpdate(
            awb=awb,
            status=self.standardize_status(provider_status),
            provider_status=provider_status,
            location=Location(city=str(payload.get("current_location") or "")),
            timestamp=parse_provider_datetime(
                payload.get("updated_at") or payload.get("current_timestamp")
            ),
            description=str(payload.get("current_status_body") or ""),
            raw=payload,
        )
