"""Shared fixtures for litestar-carriers tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar

import pytest
from litestar import Litestar
from litestar.testing import TestClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.config import CarriersConfig
from litestar_carriers.contrib.sqlalchemy.models import Base
from litestar_carriers.enums import ShipmentStatus
from litestar_carriers.exceptions import (
    DuplicateShipmentError,
    ValidationError,
)
from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.plugin import create_carrier_router
from litestar_carriers.registry import CarrierRegistry
from litestar_carriers.types import (
    Address,
    CancelResult,
    LabelInfo,
    LineItem,
    Location,
    PickupRequest,
    PickupResult,
    RateQuote,
    ServiceabilityResult,
    ServiceOption,
    ShipmentCreateResult,
    ShipmentRequest,
    TrackingResult,
    WebhookUpdate,
)
from litestar_carriers.webhooks import compute_signature

WEBHOOK_SECRET = "test-secret"


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class DemoCarrierProfile:
    name: str
    display_name: str = ""
    api_base_url: str = ""
    credentials: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    supported_services: list[str] = field(default_factory=list)
    max_retries: int | None = 3
    timeout_seconds: float | None = 30.0
    webhook_secret: str = WEBHOOK_SECRET
    allow_unsigned_webhooks: bool = False
    total_shipments: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    rto_count: int = 0
    average_delivery_days: float = 0.0
    on_time_rate: float = 0.0


@dataclass
class DemoShipment:
    id: str
    order_id: str
    carrier_name: str
    awb: str | None = None
    tracking_number: str = ""
    provider_order_id: str = ""
    provider_shipment_id: str = ""
    service_name: str = ""
    status: str = ShipmentStatus.CREATED.value
    provider_status: str = ""
    priority: str = "Normal"
    weight: Decimal = Decimal("1")
    length: Decimal | None = None
    breadth: Decimal | None = None
    height: Decimal | None = None
    is_cod: bool = False
    cod_amount: Decimal = Decimal("0")
    pickup_address: dict[str, Any] = field(default_factory=dict)
    delivery_address: dict[str, Any] = field(default_factory=dict)
    current_location: dict[str, Any] = field(default_factory=dict)
    estimated_delivery_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    label_url: str = ""
    manifest_url: str = ""
    invoice_url: str = ""
    pickup_id: str = ""
    pickup_scheduled_at: datetime | None = None
    create_response: dict[str, Any] | None = None
    tracking_response: dict[str, Any] | None = None
    cancel_response: dict[str, Any] | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime = field(default_factory=_now)


@dataclass
class DemoTrackingLog:
    id: int
    shipment_id: str
    awb: str
    status: str
    timestamp: datetime
    source: str
    provider_status: str = ""
    location: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    raw_payload: dict[str, Any] | None = None


class InMemoryProfileRepo:
    def __init__(self) -> None:
        self.items: dict[str, DemoCarrierProfile] = {}

    def add(self, profile: DemoCarrierProfile) -> DemoCarrierProfile:
        self.items[profile.name] = profile
        return profile

    async def list_active(self) -> list[DemoCarrierProfile]:
        return [
            replace(p)
            for _, p in sorted(self.items.items())
            if p.is_active
        ]

    async def list_all(self) -> list[DemoCarrierProfile]:
        return [replace(p) for _, p in sorted(self.items.items())]

    async def get_by_name(self, name: str) -> DemoCarrierProfile:
        return replace(self.items[name])

    async def increment_counters(self, name: str, **deltas: int) -> None:
        profile = self.items[name]
        for key, delta in deltas.items():
            setattr(profile, key, getattr(profile, key) + delta)

    async def record_delivery(
        self, name: str, *, on_time: bool, delivery_days: float
    ) -> None:
        profile = self.items[name]
        previous = profile.successful_deliveries
        count = previous + 1
        outcome = 100.0 if on_time else 0.0
        profile.on_time_rate = (
            profile.on_time_rate * previous + outcome
        ) / count
        profile.average_delivery_days = (
            profile.average_delivery_days * previous + delivery_days
        ) / count
        profile.successful_deliveries = count

    async def deactivate(self, name: str) -> None:
        self.items[name].is_active = False


class InMemoryShipmentRepo:
    """Returns detached copies so callers never share stored state."""

    def __init__(self) -> None:
        self.items: dict[str, DemoShipment] = {}
        self._counter = 0

    async def get_by_id(self, shipment_id: str) -> DemoShipment:
        return replace(self.items[shipment_id])

    async def get_by_awb(self, awb: str) -> DemoShipment:
        for shipment in self.items.values():
            if shipment.awb == awb:
                return replace(shipment)
        raise KeyError(awb)

    async def find_by_order(self, order_id: str) -> DemoShipment | None:
        for shipment in self.items.values():
            if shipment.order_id == order_id:
                return replace(shipment)
        return None

    async def list_shipments(
        self,
        *,
        status: str | None = None,
        carrier_name: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[DemoShipment], int]:
        matches = [
            s
            for s in self.items.values()
            if (status is None or s.status == str(status))
            and (carrier_name is None or s.carrier_name == carrier_name)
        ]
        matches.sort(key=lambda s: s.created_at, reverse=True)
        page = matches[offset : offset + limit]
        return [replace(s) for s in page], len(matches)

    async def create(self, **fields: Any) -> DemoShipment:
        order_id = fields["order_id"]
        if any(s.order_id == order_id for s in self.items.values()):
            raise DuplicateShipmentError(order_id)
        self._counter += 1
        shipment_id = f"s-{self._counter}"
        fields["status"] = str(fields.get("status", ShipmentStatus.CREATED))
        fields["priority"] = str(fields.get("priority", "Normal"))
        shipment = DemoShipment(id=shipment_id, **fields)
        self.items[shipment_id] = shipment
        return replace(shipment)

    async def compare_and_set_status(
        self,
        shipment_id: str,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> DemoShipment | None:
        shipment = self.items[shipment_id]
        if shipment.status != str(expected_status):
            return None
        for key, value in fields.items():
            setattr(shipment, key, value)
        shipment.status = str(new_status)
        return replace(shipment)

    async def update_fields(self, shipment_id: str, **fields: Any) -> Any:
        fields.pop("status", None)
        shipment = self.items[shipment_id]
        for key, value in fields.items():
            setattr(shipment, key, value)
        return replace(shipment)


class InMemoryTrackingLogRepo:
    def __init__(self) -> None:
        self.entries: list[DemoTrackingLog] = []

    async def append(self, **fields: Any) -> DemoTrackingLog | None:
        identity = (
            fields["shipment_id"],
            fields["awb"],
            str(fields["status"]),
            fields["timestamp"],
        )
        for entry in self.entries:
            existing = (
                entry.shipment_id,
                entry.awb,
                entry.status,
                entry.timestamp,
            )
            if existing == identity:
                return None
        entry = DemoTrackingLog(
            id=len(self.entries) + 1,
            shipment_id=fields["shipment_id"],
            awb=fields["awb"],
            status=str(fields["status"]),
            timestamp=fields["timestamp"],
            source=str(fields["source"]),
            provider_status=fields.get("provider_status", ""),
            location=fields.get("location") or {},
            description=fields.get("description", ""),
            raw_payload=fields.get("raw_payload"),
        )
        self.entries.append(entry)
        return entry

    async def list_by_awb(
        self, awb: str, limit: int = 50
    ) -> list[DemoTrackingLog]:
        matching = [e for e in self.entries if e.awb == awb]
        matching.sort(key=lambda e: (e.timestamp, e.id), reverse=True)
        return matching[:limit]


class FakeCarrierAdapter(BaseCarrierAdapter):
    """Scriptable in-process carrier.

    Subclassed per carrier name by :func:`make_fake_adapter`.
    """

    name: ClassVar[str] = "Fake"
    display_name: ClassVar[str] = "Fake Carrier"
    status_map: ClassVar[dict[str, ShipmentStatus]] = {
        **BaseCarrierAdapter.status_map,
        "MANIFEST GENERATED": ShipmentStatus.MANIFEST_GENERATED,
        "RTO INITIATED": ShipmentStatus.RTO_INITIATED,
        "RTO DELIVERED": ShipmentStatus.RTO_DELIVERED,
        "LOST": ShipmentStatus.LOST,
    }

    def __init__(
        self,
        profile: DemoCarrierProfile,
        *,
        quotes: list[RateQuote] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(profile, **kwargs)
        self.quotes = quotes if quotes is not None else []
        self.error = error
        self.delay = delay
        self.create_error: Exception | None = None
        self.tracking_status = "IN TRANSIT"
        self.tracking_timestamp: datetime | None = None
        self.tracking_delivered_at: datetime | None = None
        self.estimated_delivery: datetime | None = None
        self.cancel_success = True
        self.pickup_success = True
        self.calls: list[str] = []
        self.last_request: ShipmentRequest | None = None
        self._awb_counter = 0

    async def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def authenticate(self) -> str:
        return "fake-token"

    async def check_serviceability(
        self, pickup_postal: str, delivery_postal: str, cod: bool = False
    ) -> ServiceabilityResult:
        await self._call("check_serviceability")
        days = [q.estimated_days for q in self.quotes if q.estimated_days]
        return ServiceabilityResult(
            carrier=self.name,
            serviceable=bool(self.quotes),
            estimated_days=min(days) if days else None,
            service_options=[
                ServiceOption(
                    name=q.service_name,
                    estimated_days=q.estimated_days,
                    rate=q.base_rate,
                )
                for q in self.quotes
            ],
        )

    async def get_rates(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = Decimal("0"),
    ) -> list[RateQuote]:
        await self._call("get_rates")
        return [q.model_copy(update={"cod": cod}) for q in self.quotes]

    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentCreateResult:
        self.calls.append("create_shipment")
        self.last_request = request
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.create_error is not None:
            raise self.create_error
        self._awb_counter += 1
        awb = f"{self.name.upper()}{self._awb_counter:04d}"
        return ShipmentCreateResult(
            awb=awb,
            tracking_number=awb,
            provider_order_id=f"{self.name}-order-{request.order_id}",
            provider_shipment_id=f"{self.name}-ship-{self._awb_counter}",
            service_name=request.service_name or "Standard",
            estimated_delivery=self.estimated_delivery,
            provider_response={"awb": awb},
        )

    async def track_shipment(self, awb: str) -> TrackingResult:
        self.calls.append("track_shipment")
        return TrackingResult(
            awb=awb,
            status=self.standardize_status(self.tracking_status),
            provider_status=self.tracking_status,
            location=Location(city="Pune"),
            timestamp=self.tracking_timestamp,
            delivered_at=self.tracking_delivered_at,
            raw={"current_status": self.tracking_status},
        )

    async def cancel_shipment(
        self, awb: str, provider_shipment_id: str | None = None
    ) -> CancelResult:
        self.calls.append("cancel_shipment")
        return CancelResult(
            success=self.cancel_success,
            message="Cancelled" if self.cancel_success else "Already shipped",
            provider_response={"awb": awb, "ok": self.cancel_success},
        )

    async def generate_label(self, provider_shipment_id: str) -> LabelInfo:
        self.calls.append("generate_label")
        return LabelInfo(
            label_url=f"https://labels.test/{provider_shipment_id}.pdf",
            manifest_url=f"https://labels.test/{provider_shipment_id}-m.pdf",
        )

    async def schedule_pickup(self, request: PickupRequest) -> PickupResult:
        self.calls.append("schedule_pickup")
        return PickupResult(
            success=self.pickup_success, pickup_id=f"PU-{request.awb}"
        )

    def process_webhook(self, payload: dict[str, Any]) -> WebhookUpdate:
        awb = payload.get("awb")
        if not awb:
            raise ValidationError("Webhook payload has no AWB")
        provider_status = str(payload.get("status", ""))
        return WebhookUpdate(
            awb=str(awb),
            status=self.standardize_status(provider_status),
            provider_status=provider_status,
            location=Location(city=str(payload.get("location", ""))),
            timestamp=payload.get("timestamp"),
            raw=payload,
        )


def make_fake_adapter(name: str, **options: Any) -> FakeCarrierAdapter:
    """Build a fake adapter whose class carries ``name``."""
    profile_options = {
        key: options.pop(key)
        for key in ("webhook_secret", "allow_unsigned_webhooks")
        if key in options
    }
    adapter_cls = type(
        f"{name}Adapter",
        (FakeCarrierAdapter,),
        {"name": name, "display_name": f"{name} Logistics"},
    )
    profile = DemoCarrierProfile(
        name=name, display_name=f"{name} Logistics", **profile_options
    )
    return adapter_cls(profile, **options)


def quote(
    service_name: str,
    base_rate: str,
    days: int | None = 3,
    cod_charge: str = "0",
) -> RateQuote:
    return RateQuote(
        service_name=service_name,
        service_id=service_name.lower().replace(" ", "-"),
        base_rate=Decimal(base_rate),
        cod_charge=Decimal(cod_charge),
        estimated_days=days,
        cod_available=True,
    )


def make_request(**overrides: Any) -> ShipmentRequest:
    data: dict[str, Any] = {
        "pickup_address": Address(
            name="Warehouse",
            phone="+91 98765 43210",
            address="1 Dock Road",
            city="Mumbai",
            state="Maharashtra",
            postal_code="400001",
        ),
        "shipping": Address(
            name="Asha Rao",
            phone="9123456780",
            address="22 MG Road",
            city="Bengaluru",
            state="Karnataka",
            postal_code="560001",
        ),
        "items": [
            LineItem(
                name="Kurta", sku="KRT-1", quantity=1, price=Decimal("799")
            )
        ],
        "weight": Decimal("0.5"),
        "sub_total": Decimal("799"),
    }
    data.update(overrides)
    return ShipmentRequest(**data)


def shipment_payload(
    order_id: str = "order-1", carrier: str = "auto", **overrides: Any
) -> dict[str, Any]:
    """JSON body for ``POST /shipments``."""
    shipment = make_request(**overrides).model_dump(mode="json")
    return {"order_id": order_id, "carrier": carrier, "shipment": shipment}


def signed_webhook(
    payload: dict[str, Any], secret: str = WEBHOOK_SECRET
) -> tuple[bytes, str]:
    body = json.dumps(payload).encode()
    return body, compute_signature(secret, body)


def _orchestrator_for(
    adapters: tuple[FakeCarrierAdapter, ...],
    *,
    profiles: InMemoryProfileRepo,
    shipments: InMemoryShipmentRepo,
    tracking_logs: InMemoryTrackingLogRepo,
    config: CarriersConfig,
) -> CarrierOrchestrator:
    by_name = {adapter.name: adapter for adapter in adapters}
    for adapter in adapters:
        profiles.add(adapter.profile)  # type: ignore[arg-type]
    return CarrierOrchestrator(
        profiles=profiles,
        shipments=shipments,
        tracking_logs=tracking_logs,
        registry=CarrierRegistry(),
        config=config,
        adapter_factory=lambda active: {
            p.name: by_name[p.name] for p in active if p.name in by_name
        },
    )


@pytest.fixture()
def config() -> CarriersConfig:
    return CarriersConfig(
        retry_backoff_seconds=0,
        fanout_timeout_seconds=1,
    )


@pytest.fixture()
def profile_repo() -> InMemoryProfileRepo:
    return InMemoryProfileRepo()


@pytest.fixture()
def shipment_repo() -> InMemoryShipmentRepo:
    return InMemoryShipmentRepo()


@pytest.fixture()
def tracking_repo() -> InMemoryTrackingLogRepo:
    return InMemoryTrackingLogRepo()


@pytest.fixture()
def alpha() -> FakeCarrierAdapter:
    """Cheaper, slower carrier."""
    return make_fake_adapter(
        "Alpha",
        quotes=[quote("Alpha Surface", "100", days=4, cod_charge="30")],
    )


@pytest.fixture()
def beta() -> FakeCarrierAdapter:
    """Pricier, faster carrier."""
    return make_fake_adapter(
        "Beta",
        quotes=[quote("Beta Express", "150", days=2, cod_charge="40")],
    )


@pytest.fixture()
def build_orchestrator(profile_repo, shipment_repo, tracking_repo, config):
    async def build(*adapters: FakeCarrierAdapter) -> CarrierOrchestrator:
        orchestrator = _orchestrator_for(
            adapters,
            profiles=profile_repo,
            shipments=shipment_repo,
            tracking_logs=tracking_repo,
            config=config,
        )
        await orchestrator.initialize()
        return orchestrator

    return build


@pytest.fixture()
async def orchestrator(build_orchestrator, alpha, beta):
    return await build_orchestrator(alpha, beta)


@pytest.fixture()
def test_app(
    profile_repo: InMemoryProfileRepo,
    shipment_repo: InMemoryShipmentRepo,
    tracking_repo: InMemoryTrackingLogRepo,
    config: CarriersConfig,
    alpha: FakeCarrierAdapter,
    beta: FakeCarrierAdapter,
) -> Litestar:
    orchestrator = _orchestrator_for(
        (alpha, beta),
        profiles=profile_repo,
        shipments=shipment_repo,
        tracking_logs=tracking_repo,
        config=config,
    )
    router = create_carrier_router(orchestrator=orchestrator)
    return Litestar(
        route_handlers=[router], on_startup=[orchestrator.initialize]
    )


@pytest.fixture()
def client(test_app: Litestar) -> Iterator[TestClient]:
    with TestClient(app=test_app) as tc:
        yield tc


# ---------------------------------------------------------------------------
# SQLAlchemy fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
async def async_engine():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def async_session_factory(
    async_engine,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    yield async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
