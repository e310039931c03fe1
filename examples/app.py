"""Litestar example app with an in-process sandbox carrier.

Run with ``litestar --app examples.app:app run``. Set ``SHIPROCKET_EMAIL``
and ``SHIPROCKET_PASSWORD`` to also enable the live Shiprocket adapter.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, ClassVar
from uuid import uuid4

from litestar import Litestar
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.carriers.shiprocket import ShiprocketAdapter
from litestar_carriers.config import CarriersConfig
from litestar_carriers.contrib.sqlalchemy.models import Base
from litestar_carriers.contrib.sqlalchemy.repository import (
    SQLAlchemyCarrierProfileRepository,
    SQLAlchemyShipmentRepository,
    SQLAlchemyTrackingLogRepository,
)
from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.plugin import create_carrier_router
from litestar_carriers.registry import CarrierRegistry
from litestar_carriers.types import (
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
    TrackingResult,
    WebhookUpdate,
)

DATABASE_URL = os.environ.get(
    "EXAMPLE_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)
SANDBOX_WEBHOOK_SECRET = os.environ.get(
    "SANDBOX_WEBHOOK_SECRET", "sandbox-secret"
)

# Simulated provider state keyed by AWB.
_sandbox_state: dict[str, str] = {}


class SandboxCarrierAdapter(BaseCarrierAdapter):
    """Deterministic carrier that never leaves the process."""

    name: ClassVar[str] = "Sandbox"
    display_name: ClassVar[str] = "Sandbox Express"

    async def authenticate(self) -> str:
        return "sandbox-token"

    async def check_serviceability(
        self, pickup_postal: str, delivery_postal: str, cod: bool = False
    ) -> ServiceabilityResult:
        return ServiceabilityResult(
            carrier=self.name,
            serviceable=True,
            estimated_days=3,
            service_options=[
                ServiceOption(
                    name="Sandbox Surface",
                    service_type="Surface",
                    estimated_days=3,
                    rate=Decimal("60"),
                    cod_available=True,
                )
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
        return [
            RateQuote(
                carrier=self.name,
                service_name="Sandbox Surface",
                service_id="surface",
                service_type="Surface",
                base_rate=Decimal("40") + Decimal("20") * weight,
                cod_charge=Decimal("25"),
                cod=cod,
                estimated_days=3,
                cod_available=True,
            )
        ]

    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentCreateResult:
        awb = f"SBX{uuid4().hex[:10].upper()}"
        _sandbox_state[awb] = "NEW"
        return ShipmentCreateResult(
            awb=awb,
            tracking_number=awb,
            provider_order_id=f"sbx-order-{request.order_id}",
            provider_shipment_id=f"sbx-{awb}",
            service_name=request.service_name or "Sandbox Surface",
            estimated_delivery=datetime.now(tz=UTC) + timedelta(days=3),
        )

    async def track_shipment(self, awb: str) -> TrackingResult:
        provider_status = _sandbox_state.get(awb, "NEW")
        return TrackingResult(
            awb=awb,
            status=self.standardize_status(provider_status),
            provider_status=provider_status,
            location=Location(city="Sandbox Hub"),
            timestamp=datetime.now(tz=UTC),
            provider_shipment_id=f"sbx-{awb}",
        )

    async def cancel_shipment(
        self, awb: str, provider_shipment_id: str | None = None
    ) -> CancelResult:
        _sandbox_state[awb] = "CANCELLED"
        return CancelResult(success=True, message="Cancelled in sandbox")

    async def generate_label(self, provider_shipment_id: str) -> LabelInfo:
        return LabelInfo(label_url=f"/sandbox/{provider_shipment_id}.pdf")

    async def schedule_pickup(self, request: PickupRequest) -> PickupResult:
        return PickupResult(success=True, pickup_id=f"PU-{request.awb}")

    def process_webhook(self, payload: dict[str, Any]) -> WebhookUpdate:
        awb = str(payload["awb"])
        provider_status = str(payload.get("status", ""))
        _sandbox_state[awb] = provider_status
        return WebhookUpdate(
            awb=awb,
            status=self.standardize_status(provider_status),
            provider_status=provider_status,
            timestamp=payload.get("timestamp"),
            raw=payload,
        )


engine = create_async_engine(DATABASE_URL)
session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)
profiles = SQLAlchemyCarrierProfileRepository(session_factory)

registry = CarrierRegistry()
registry.register(SandboxCarrierAdapter)
registry.register(ShiprocketAdapter)

orchestrator = CarrierOrchestrator(
    profiles=profiles,
    shipments=SQLAlchemyShipmentRepository(session_factory),
    tracking_logs=SQLAlchemyTrackingLogRepository(session_factory),
    registry=registry,
    config=CarriersConfig(),
)


async def seed_profiles() -> None:
    existing = {p.name for p in await profiles.list_all()}
    if SandboxCarrierAdapter.name not in existing:
        await profiles.create(
            name=SandboxCarrierAdapter.name,
            display_name=SandboxCarrierAdapter.display_name,
            supported_services=["Surface"],
            webhook_secret=SANDBOX_WEBHOOK_SECRET,
        )
    email = os.environ.get("SHIPROCKET_EMAIL")
    password = os.environ.get("SHIPROCKET_PASSWORD")
    if email and password and ShiprocketAdapter.name not in existing:
        await profiles.create(
            name=ShiprocketAdapter.name,
            display_name=ShiprocketAdapter.display_name,
            credentials={"email": email, "password": password},
            webhook_secret=os.environ.get("SHIPROCKET_WEBHOOK_SECRET", ""),
        )


# --- Lifespan: init DB, seed carriers, build adapters ---
@asynccontextmanager
async def lifespan(app: Litestar) -> AsyncGenerator[None, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_profiles()
    await orchestrator.initialize()
    try:
        yield
    finally:
        await orchestrator.aclose()


app = Litestar(
    route_handlers=[create_carrier_router(orchestrator=orchestrator)],
    lifespan=[lifespan],
)

