"""Carrier discovery, rate shopping and analytics endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, ClassVar

from litestar import Controller, get, post
from litestar.exceptions import NotFoundException
from litestar.params import Dependency

from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.schemas import (
    CarrierProfileResponse,
    RecommendRequest,
    RecommendResponse,
    ServiceabilityRequest,
    ServiceabilityResponse,
)
from litestar_carriers.types import PerformanceStats, RatesSummary

Orchestrator = Annotated[CarrierOrchestrator, Dependency(skip_validation=True)]


class CourierController(Controller):
    """Endpoints that query every active carrier."""

    path = "/couriers"
    tags: ClassVar[list[str]] = ["couriers"]

    @get("/")
    async def list_carriers(
        self, orchestrator: Orchestrator
    ) -> list[CarrierProfileResponse]:
        """List configured carriers without credentials."""
        profiles = await orchestrator.list_carriers()
        return [CarrierProfileResponse.from_profile(p) for p in profiles]

    @post("/serviceability", status_code=200)
    async def check_serviceability(
        self, data: ServiceabilityRequest, orchestrator: Orchestrator
    ) -> ServiceabilityResponse:
        results = await orchestrator.check_serviceability(
            data.pickup_postal, data.delivery_postal, data.cod
        )
        return ServiceabilityResponse(
            serviceable=any(r.serviceable for r in results),
            carriers=results,
        )

    @get("/rates")
    async def get_rates(
        self,
        orchestrator: Orchestrator,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = Decimal("0"),
    ) -> RatesSummary:
        """Rates from all carriers, cheapest first."""
        return await orchestrator.get_rates_summary(
            pickup_postal, delivery_postal, weight, cod, cod_amount
        )

    @post("/recommend", status_code=200)
    async def recommend(
        self, data: RecommendRequest, orchestrator: Orchestrator
    ) -> RecommendResponse:
        recommendation = await orchestrator.recommend_carrier(
            data.pickup_postal,
            data.delivery_postal,
            data.weight,
            data.cod,
            data.cod_amount,
            data.priority,
        )
        if recommendation is None:
            raise NotFoundException(
                detail="No carrier available for this route"
            )
        return RecommendResponse(
            recommended=recommendation,
            reason=f"Best match for {data.priority} priority",
        )

    @get("/performance")
    async def performance(
        self, orchestrator: Orchestrator
    ) -> list[PerformanceStats]:
        return await orchestrator.get_performance_stats()
