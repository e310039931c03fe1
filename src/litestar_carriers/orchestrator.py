"""Carrier orchestration: fan-out, recommendation and shipment lifecycle."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from types import MappingProxyType
from typing import Any, TypeVar

import httpx

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.config import CarriersConfig
from litestar_carriers.enums import (
    DeliveryPriority,
    ShipmentStatus,
    TrackingSource,
)
from litestar_carriers.exceptions import (
    CarrierNotFoundError,
    ConfigurationError,
    DuplicateShipmentError,
    InvalidTransitionError,
    PermanentProviderError,
    ShipmentNotFoundError,
    ValidationError,
    WebhookSignatureError,
)
from litestar_carriers.fsm import check_transition, coerce_status, is_terminal
from litestar_carriers.protocols import (
    CarrierProfile,
    CarrierProfileRepository,
    Shipment,
    ShipmentRepository,
    TrackingLogEntry,
    TrackingLogRepository,
)
from litestar_carriers.registry import CarrierRegistry
from litestar_carriers.scoring import (
    CarrierPerformance,
    percentage,
    rank_quotes,
)
from litestar_carriers.types import (
    ZERO,
    CarrierRecommendation,
    Location,
    PerformanceStats,
    PickupRequest,
    RateQuote,
    RatesSummary,
    ServiceabilityResult,
    ShipmentRequest,
    TrackingResult,
    WebhookUpdate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTO_CARRIER = "auto"

AdapterFactory = Callable[
    [list[CarrierProfile]], Mapping[str, BaseCarrierAdapter]
]


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class ShipmentCreated:
    awb: str
    tracking_number: str
    carrier_name: str
    shipment: Shipment


@dataclass
class ShipmentPage:
    shipments: list[Shipment]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)


@dataclass
class TrackingOutcome:
    shipment: Shipment
    tracking: TrackingResult
    status_changed: bool


@dataclass
class WebhookOutcome:
    shipment: Shipment
    update: WebhookUpdate
    status_changed: bool
    duplicate: bool


@dataclass
class _Observation:
    """One status observation, from any source."""

    status: str
    provider_status: str
    location: Location
    timestamp: datetime
    description: str
    source: TrackingSource
    raw: dict[str, Any] | None = None
    delivered_at: datetime | None = None


class CarrierOrchestrator:
    """Coordinates carrier adapters and shipment persistence.

    Adapters are built by :meth:`initialize` from active carrier profiles
    and held in a read-only mapping. :meth:`reload` swaps in a freshly
    built mapping; in-flight calls keep the mapping they started with.
    """

    def __init__(
        self,
        *,
        profiles: CarrierProfileRepository,
        shipments: ShipmentRepository,
        tracking_logs: TrackingLogRepository,
        registry: CarrierRegistry | None = None,
        config: CarriersConfig | None = None,
        adapter_factory: AdapterFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.profiles = profiles
        self.shipments = shipments
        self.tracking_logs = tracking_logs
        self.config = config or CarriersConfig()
        if registry is None:
            registry = CarrierRegistry()
            registry.discover()
        self.registry = registry
        self._adapter_factory = adapter_factory
        self._http_client = http_client
        self._adapters: Mapping[str, BaseCarrierAdapter] = MappingProxyType({})
        self._pending_orders: set[str] = set()

    # --- registry -------------------------------------------------------

    @property
    def adapters(self) -> Mapping[str, BaseCarrierAdapter]:
        return self._adapters

    async def _build_adapters(self) -> Mapping[str, BaseCarrierAdapter]:
        active = await self.profiles.list_active()
        if self._adapter_factory is not None:
            return MappingProxyType(dict(self._adapter_factory(active)))
        return self.registry.build(
            active, config=self.config, client=self._http_client
        )

    async def initialize(self) -> None:
        """Load active profiles and build one adapter per known carrier."""
        self._adapters = await self._build_adapters()
        logger.info(
            "Initialized %d carrier adapter(s): %s",
            len(self._adapters),
            ", ".join(self._adapters) or "none",
        )

    async def reload(self) -> None:
        """Rebuild adapters from current profiles and swap them in."""
        previous = self._adapters
        self._adapters = await self._build_adapters()
        logger.info("Reloaded carrier adapters: %s", ", ".join(self._adapters))
        for adapter in previous.values():
            await adapter.aclose()

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()

    def get_adapter(self, carrier_name: str) -> BaseCarrierAdapter:
        try:
            return self._adapters[carrier_name]
        except KeyError:
            raise CarrierNotFoundError(carrier_name) from None

    async def list_carriers(self) -> list[CarrierProfile]:
        return await self.profiles.list_all()

    # --- fan-out --------------------------------------------------------

    async def _fan_out(
        self,
        operation: str,
        call: Callable[[BaseCarrierAdapter], Awaitable[T]],
    ) -> list[tuple[str, T]]:
        """Run ``call`` against every adapter concurrently.

        Each call is bounded by ``fanout_timeout_seconds``. Failures are
        logged and excluded from the result.
        """
        adapters = self._adapters
        if not adapters:
            raise ConfigurationError("No carrier adapters are initialized")

        async def guarded(adapter: BaseCarrierAdapter) -> T:
            async with asyncio.timeout(self.config.fanout_timeout_seconds):
                return await call(adapter)

        names = list(adapters)
        results = await asyncio.gather(
            *(guarded(adapters[name]) for name in names),
            return_exceptions=True,
        )
        successes: list[tuple[str, T]] = []
        for name, result in zip(names, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(
                    "%s failed for carrier %s: %r", operation, name, result
                )
                continue
            if isinstance(result, BaseException):
                raise result
            successes.append((name, result))
        return successes

    @staticmethod
    def _validate_route(pickup_postal: str, delivery_postal: str) -> None:
        if not (pickup_postal or "").strip():
            raise ValidationError("Pickup postal code is required")
        if not (delivery_postal or "").strip():
            raise ValidationError("Delivery postal code is required")

    @staticmethod
    def _validate_weight(weight: Decimal) -> None:
        if weight is None or weight <= ZERO:
            raise ValidationError("Weight must be greater than zero")

    async def check_serviceability(
        self, pickup_postal: str, delivery_postal: str, cod: bool = False
    ) -> list[ServiceabilityResult]:
        self._validate_route(pickup_postal, delivery_postal)
        results = await self._fan_out(
            "check_serviceability",
            lambda adapter: adapter.check_serviceability(
                pickup_postal, delivery_postal, cod
            ),
        )
        return [
            result.model_copy(update={"carrier": name})
            for name, result in results
        ]

    async def get_all_rates(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = ZERO,
    ) -> list[RateQuote]:
        """Quotes from every carrier, cheapest first."""
        self._validate_route(pickup_postal, delivery_postal)
        self._validate_weight(weight)
        results = await self._fan_out(
            "get_rates",
            lambda adapter: adapter.get_rates(
                pickup_postal, delivery_postal, weight, cod, cod_amount
            ),
        )
        quotes = [
            quote.model_copy(update={"carrier": name, "cod": cod})
            for name, carrier_quotes in results
            for quote in carrier_quotes
        ]
        quotes.sort(key=lambda quote: (quote.total_charge, quote.carrier))
        return quotes

    async def get_rates_summary(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = ZERO,
    ) -> RatesSummary:
        rates = await self.get_all_rates(
            pickup_postal, delivery_postal, weight, cod, cod_amount
        )
        if not rates:
            return RatesSummary()
        fastest = min(
            rates,
            key=lambda quote: (
                quote.estimated_days is None,
                quote.estimated_days or 0,
                quote.total_charge,
            ),
        )
        return RatesSummary(rates=rates, cheapest=rates[0], fastest=fastest)

    async def _performance_by_carrier(self) -> dict[str, CarrierPerformance]:
        return {
            profile.name: CarrierPerformance(
                on_time_rate=profile.on_time_rate,
                rto_rate=percentage(
                    profile.rto_count, profile.total_shipments
                ),
            )
            for profile in await self.profiles.list_active()
        }

    async def recommend_carrier(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = ZERO,
        priority: DeliveryPriority = DeliveryPriority.NORMAL,
    ) -> CarrierRecommendation | None:
        """Best quote for ``priority``, or None if no carrier can serve."""
        rates = await self.get_all_rates(
            pickup_postal, delivery_postal, weight, cod, cod_amount
        )
        ranked = rank_quotes(
            rates, await self._performance_by_carrier(), priority
        )
        if not ranked:
            logger.info(
                "No carrier available from %s to %s",
                pickup_postal,
                delivery_postal,
            )
            return None
        best = ranked[0]
        logger.info(
            "Recommended %s (%s) for %s priority, score %.2f",
            best.quote.carrier,
            best.quote.service_name,
            priority,
            best.score,
        )
        return best

    # --- shipment lifecycle ---------------------------------------------

    async def _get_shipment_by_awb(self, awb: str) -> Shipment:
        try:
            return await self.shipments.get_by_awb(awb)
        except KeyError:
            raise ShipmentNotFoundError(awb) from None

    async def create_shipment(
        self,
        carrier_name: str,
        request: ShipmentRequest,
        order_id: str,
    ) -> ShipmentCreated:
        """Create a shipment with ``carrier_name`` or the recommended one.

        Nothing is persisted unless the provider confirms the shipment.
        """
        if not (order_id or "").strip():
            raise ValidationError("Order ID is required")
        self._validate_route(
            request.pickup_address.postal_code, request.shipping.postal_code
        )
        self._validate_weight(request.weight)
        # Held from the duplicate check until the shipment is stored.
        if order_id in self._pending_orders:
            raise DuplicateShipmentError(order_id)
        self._pending_orders.add(order_id)
        try:
            return await self._create_for_order(
                carrier_name, request, order_id
            )
        finally:
            self._pending_orders.discard(order_id)

    async def _create_for_order(
        self,
        carrier_name: str,
        request: ShipmentRequest,
        order_id: str,
    ) -> ShipmentCreated:
        if await self.shipments.find_by_order(order_id) is not None:
            raise DuplicateShipmentError(order_id)

        if not carrier_name or carrier_name == AUTO_CARRIER:
            recommendation = await self.recommend_carrier(
                request.pickup_address.postal_code,
                request.shipping.postal_code,
                request.weight,
                request.is_cod,
                request.cod_amount,
                request.priority,
            )
            if recommendation is None:
                raise CarrierNotFoundError(AUTO_CARRIER)
            carrier_name = recommendation.quote.carrier
            request = request.model_copy(
                update={
                    "service_id": recommendation.quote.service_id or None,
                    "service_name": recommendation.quote.service_name,
                }
            )

        adapter = self.get_adapter(carrier_name)
        request = request.model_copy(update={"order_id": order_id})
        result = await adapter.create_shipment(request)

        now = utcnow()
        dims = request.dimensions
        estimated = as_utc(result.estimated_delivery) or (
            now + timedelta(days=self.config.default_delivery_window_days)
        )
        try:
            shipment = await self.shipments.create(
                order_id=order_id,
                carrier_name=carrier_name,
                awb=result.awb,
                tracking_number=result.tracking_number,
                provider_order_id=result.provider_order_id,
                provider_shipment_id=result.provider_shipment_id,
                service_name=result.service_name or request.service_name,
                status=ShipmentStatus.CREATED,
                priority=request.priority,
                weight=request.weight,
                length=dims.length,
                breadth=dims.breadth,
                height=dims.height,
                is_cod=request.is_cod,
                cod_amount=request.cod_amount,
                pickup_address=request.pickup_address.model_dump(mode="json"),
                delivery_address=request.shipping.model_dump(mode="json"),
                estimated_delivery_at=estimated,
                create_response=result.provider_response,
                created_at=now,
            )
        except Exception:
            logger.error(
                "Order %s: %s created shipment %s (AWB %s) but it could not "
                "be stored; cancel it with the provider",
                order_id,
                carrier_name,
                result.provider_shipment_id,
                result.awb,
            )
            raise

        await self.tracking_logs.append(
            shipment_id=shipment.id,
            awb=result.awb,
            status=ShipmentStatus.CREATED,
            provider_status="",
            location={},
            description="Shipment created successfully",
            source=TrackingSource.SYSTEM,
            raw_payload=None,
            timestamp=now,
        )
        await self.profiles.increment_counters(carrier_name, total_shipments=1)
        logger.info(
            "Order %s shipped with %s, AWB %s",
            order_id,
            carrier_name,
            result.awb,
        )
        return ShipmentCreated(
            awb=result.awb,
            tracking_number=result.tracking_number,
            carrier_name=carrier_name,
            shipment=shipment,
        )

    async def _transition(
        self,
        shipment: Shipment,
        target: ShipmentStatus,
        fields: dict[str, Any],
        *,
        on_change: dict[str, Any] | None = None,
        strict: bool = False,
    ) -> tuple[Shipment, str | None]:
        """Move ``shipment`` to ``target`` with compare-and-set.

        Returns the current shipment and the status it moved from, or None
        when this call did not change the status. ``on_change`` fields are
        written only together with a status change. Illegal moves raise
        only when ``strict``; otherwise they are logged and ignored.
        """
        for _ in range(self.config.transition_max_attempts):
            try:
                must_change = check_transition(shipment.status, target)
            except InvalidTransitionError as exc:
                if strict:
                    raise
                logger.warning(
                    "AWB %s: ignoring update: %s", shipment.awb, exc
                )
                return shipment, None

            if not must_change:
                if fields and not is_terminal(shipment.status):
                    shipment = await self.shipments.update_fields(
                        shipment.id, **fields
                    )
                return shipment, None

            previous = shipment.status
            updated = await self.shipments.compare_and_set_status(
                shipment.id,
                previous,
                target,
                **{**fields, **(on_change or {})},
            )
            if updated is not None:
                logger.info("AWB %s: %s -> %s", shipment.awb, previous, target)
                return updated, previous
            # Another writer changed the status first; re-evaluate.
            shipment = await self.shipments.get_by_id(shipment.id)

        logger.warning(
            "AWB %s: gave up moving to %s after %d conflicting updates",
            shipment.awb,
            target,
            self.config.transition_max_attempts,
        )
        return shipment, None

    def _status_fields(
        self, target: ShipmentStatus, observation: _Observation
    ) -> dict[str, Any]:
        if target == ShipmentStatus.DELIVERED:
            return {
                "delivered_at": as_utc(observation.delivered_at)
                or observation.timestamp
            }
        if target == ShipmentStatus.PICKED_UP:
            return {"picked_up_at": observation.timestamp}
        return {}

    async def _apply_observation(
        self,
        shipment: Shipment,
        observation: _Observation,
        fields: dict[str, Any] | None = None,
    ) -> tuple[Shipment, bool, bool]:
        """Apply a status observation and log it.

        Returns (shipment, status_changed, duplicate).
        """
        fields = {
            "provider_status": observation.provider_status,
            "current_location": observation.location.model_dump(mode="json"),
            **(fields or {}),
        }
        target = coerce_status(observation.status)
        previous: str | None = None
        if target is None:
            logger.warning(
                "AWB %s: unmapped status %r recorded without transition",
                shipment.awb,
                observation.status,
            )
            if not is_terminal(shipment.status):
                shipment = await self.shipments.update_fields(
                    shipment.id, **fields
                )
        else:
            shipment, previous = await self._transition(
                shipment,
                target,
                fields,
                on_change=self._status_fields(target, observation),
            )

        entry = await self.tracking_logs.append(
            shipment_id=shipment.id,
            awb=shipment.awb,
            status=observation.status,
            provider_status=observation.provider_status,
            location=observation.location.model_dump(mode="json"),
            description=observation.description,
            source=observation.source,
            raw_payload=observation.raw,
            timestamp=observation.timestamp,
        )
        duplicate = entry is None
        if duplicate:
            logger.debug(
                "AWB %s: tracking entry %s at %s already recorded",
                shipment.awb,
                observation.status,
                observation.timestamp,
            )
        changed = previous is not None
        if changed and target is not None:
            await self._record_performance(shipment, previous, target)
        return shipment, changed, duplicate

    async def _record_performance(
        self,
        shipment: Shipment,
        previous_status: str,
        target: ShipmentStatus,
    ) -> None:
        carrier = shipment.carrier_name
        if target == ShipmentStatus.DELIVERED:
            delivered_at = as_utc(shipment.delivered_at) or utcnow()
            created_at = as_utc(shipment.created_at) or delivered_at
            deadline = as_utc(shipment.estimated_delivery_at) or (
                created_at
                + timedelta(days=self.config.default_delivery_window_days)
            )
            started_at = as_utc(shipment.picked_up_at) or created_at
            delivery_days = max(
                (delivered_at - started_at).total_seconds() / 86400, 0.0
            )
            await self.profiles.record_delivery(
                carrier,
                on_time=delivered_at <= deadline,
                delivery_days=round(delivery_days, 2),
            )
        elif target == ShipmentStatus.FAILED_ATTEMPT:
            await self.profiles.increment_counters(
                carrier, failed_deliveries=1
            )
        elif target == ShipmentStatus.RTO_INITIATED or (
            target == ShipmentStatus.RTO_DELIVERED
            and previous_status != ShipmentStatus.RTO_INITIATED
        ):
            await self.profiles.increment_counters(carrier, rto_count=1)

    async def track_shipment(self, awb: str) -> TrackingOutcome:
        """Poll the carrier for ``awb`` and apply the result."""
        shipment = await self._get_shipment_by_awb(awb)
        adapter = self.get_adapter(shipment.carrier_name)
        tracking = await adapter.track_shipment(awb)

        fields: dict[str, Any] = {"tracking_response": tracking.raw}
        if tracking.estimated_delivery is not None:
            fields["estimated_delivery_at"] = as_utc(
                tracking.estimated_delivery
            )
        observation = _Observation(
            status=str(tracking.status),
            provider_status=tracking.provider_status,
            location=tracking.location,
            timestamp=as_utc(tracking.timestamp) or utcnow(),
            description=tracking.history[0].description
            if tracking.history
            else "",
            source=TrackingSource.POLL,
            raw=tracking.raw,
            delivered_at=tracking.delivered_at,
        )
        shipment, changed, _ = await self._apply_observation(
            shipment, observation, fields
        )
        return TrackingOutcome(
            shipment=shipment, tracking=tracking, status_changed=changed
        )

    async def track_by_order(self, order_id: str) -> TrackingOutcome:
        shipment = await self.shipments.find_by_order(order_id)
        if shipment is None or not shipment.awb:
            raise ShipmentNotFoundError(order_id)
        return await self.track_shipment(shipment.awb)

    async def get_tracking_history(
        self, awb: str, limit: int | None = None
    ) -> list[TrackingLogEntry]:
        """Tracking log for ``awb``, newest first."""
        await self._get_shipment_by_awb(awb)
        return await self.tracking_logs.list_by_awb(
            awb, limit=limit or self.config.tracking_history_limit
        )

    async def list_shipments(
        self,
        *,
        status: str | None = None,
        carrier_name: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> ShipmentPage:
        """Shipments newest first, optionally filtered by status or carrier.

        ``page`` is 1-based; ``limit`` defaults to ``shipment_page_size``.
        """
        limit = limit or self.config.shipment_page_size
        if page < 1:
            raise ValidationError("Page must be 1 or greater")
        if not 1 <= limit <= self.config.shipment_page_size_max:
            raise ValidationError(
                "Limit must be between 1 and "
                f"{self.config.shipment_page_size_max}"
            )
        if status and coerce_status(status) is None:
            raise ValidationError(f"Unknown shipment status {status!r}")

        shipments, total = await self.shipments.list_shipments(
            status=status or None,
            carrier_name=carrier_name or None,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return ShipmentPage(
            shipments=shipments, total=total, page=page, limit=limit
        )

    async def cancel_shipment(
        self, awb: str, reason: str = "Cancelled by admin"
    ) -> Shipment:
        shipment = await self._get_shipment_by_awb(awb)
        current = coerce_status(shipment.status)
        if current is None or is_terminal(current):
            raise InvalidTransitionError(
                shipment.status, ShipmentStatus.CANCELLED
            )
        adapter = self.get_adapter(shipment.carrier_name)
        result = await adapter.cancel_shipment(
            awb, shipment.provider_shipment_id or None
        )
        if not result.success:
            raise PermanentProviderError(
                f"Cancellation rejected by {shipment.carrier_name}: "
                f"{result.message or 'no reason given'}",
                carrier=shipment.carrier_name,
            )

        now = utcnow()
        shipment, _ = await self._transition(
            shipment,
            ShipmentStatus.CANCELLED,
            {},
            on_change={
                "cancellation_reason": reason,
                "cancelled_at": now,
                "cancel_response": result.provider_response,
            },
            strict=True,
        )
        await self.tracking_logs.append(
            shipment_id=shipment.id,
            awb=awb,
            status=ShipmentStatus.CANCELLED,
            provider_status="",
            location={},
            description=f"Shipment cancelled: {reason}",
            source=TrackingSource.MANUAL,
            raw_payload=result.provider_response,
            timestamp=now,
        )
        logger.info("AWB %s cancelled: %s", awb, reason)
        return shipment

    async def _advance(
        self, shipment: Shipment, target: ShipmentStatus, description: str
    ) -> Shipment:
        """Forward a shipment after a system action and log it."""
        shipment, previous = await self._transition(shipment, target, {})
        if previous is not None:
            await self.tracking_logs.append(
                shipment_id=shipment.id,
                awb=shipment.awb,
                status=target,
                provider_status="",
                location={},
                description=description,
                source=TrackingSource.SYSTEM,
                raw_payload=None,
                timestamp=utcnow(),
            )
        return shipment

    async def _require_provider_shipment(
        self, awb: str, target: ShipmentStatus
    ) -> Shipment:
        shipment = await self._get_shipment_by_awb(awb)
        if is_terminal(shipment.status):
            raise InvalidTransitionError(shipment.status, target)
        if not shipment.provider_shipment_id:
            raise ValidationError(
                f"Shipment {awb} has no provider shipment reference"
            )
        return shipment

    async def generate_label(self, awb: str) -> Shipment:
        """Fetch shipping documents and mark a new shipment manifested."""
        shipment = await self._require_provider_shipment(
            awb, ShipmentStatus.MANIFEST_GENERATED
        )
        adapter = self.get_adapter(shipment.carrier_name)
        label = await adapter.generate_label(shipment.provider_shipment_id)
        shipment = await self.shipments.update_fields(
            shipment.id,
            label_url=label.label_url,
            manifest_url=label.manifest_url,
            invoice_url=label.invoice_url,
        )
        if shipment.status == ShipmentStatus.CREATED:
            shipment = await self._advance(
                shipment, ShipmentStatus.MANIFEST_GENERATED, "Label generated"
            )
        return shipment

    async def schedule_pickup(
        self, awb: str, pickup_date: date | None = None
    ) -> Shipment:
        shipment = await self._require_provider_shipment(
            awb, ShipmentStatus.PICKUP_SCHEDULED
        )
        adapter = self.get_adapter(shipment.carrier_name)
        result = await adapter.schedule_pickup(
            PickupRequest(
                provider_shipment_id=shipment.provider_shipment_id,
                awb=awb,
                pickup_date=pickup_date,
            )
        )
        if not result.success:
            raise PermanentProviderError(
                f"Pickup not scheduled by {shipment.carrier_name}",
                carrier=shipment.carrier_name,
            )
        shipment = await self.shipments.update_fields(
            shipment.id,
            pickup_id=result.pickup_id,
            pickup_scheduled_at=as_utc(result.scheduled_date),
        )
        if shipment.status in (
            ShipmentStatus.CREATED,
            ShipmentStatus.MANIFEST_GENERATED,
        ):
            shipment = await self._advance(
                shipment,
                ShipmentStatus.PICKUP_SCHEDULED,
                f"Pickup scheduled {result.pickup_id}".strip(),
            )
        return shipment

    # --- webhooks -------------------------------------------------------

    async def process_webhook(
        self,
        carrier_name: str,
        raw_body: bytes,
        signature: str | None,
    ) -> WebhookOutcome:
        """Verify, normalize and apply one provider push.

        Signature failures are raised before the body is parsed and before
        any storage is read.
        """
        adapter = self.get_adapter(carrier_name)
        if not adapter.validate_webhook(raw_body, signature):
            logger.warning("%s: webhook signature rejected", carrier_name)
            raise WebhookSignatureError()

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        update = adapter.process_webhook(payload)
        shipment = await self._get_shipment_by_awb(update.awb)
        if shipment.carrier_name != carrier_name:
            raise ShipmentNotFoundError(update.awb)

        if update.timestamp is None:
            logger.info(
                "%s: webhook for AWB %s has no timestamp, using receipt time",
                carrier_name,
                update.awb,
            )
        observation = _Observation(
            status=str(update.status),
            provider_status=update.provider_status,
            location=update.location,
            timestamp=as_utc(update.timestamp) or utcnow(),
            description=update.description,
            source=TrackingSource.WEBHOOK,
            raw=update.raw,
        )
        shipment, changed, duplicate = await self._apply_observation(
            shipment, observation
        )
        return WebhookOutcome(
            shipment=shipment,
            update=update,
            status_changed=changed,
            duplicate=duplicate,
        )

    # --- analytics ------------------------------------------------------

    async def get_performance_stats(self) -> list[PerformanceStats]:
        return [
            PerformanceStats(
                name=profile.name,
                display_name=profile.display_name,
                total_shipments=profile.total_shipments,
                successful_deliveries=profile.successful_deliveries,
                failed_deliveries=profile.failed_deliveries,
                rto_count=profile.rto_count,
                average_delivery_days=round(profile.average_delivery_days, 2),
                on_time_rate=round(profile.on_time_rate, 2),
                success_rate=percentage(
                    profile.successful_deliveries, profile.total_shipments
                ),
                rto_rate=percentage(
                    profile.rto_count, profile.total_shipments
                ),
            )
            for profile in await self.profiles.list_active()
        ]
