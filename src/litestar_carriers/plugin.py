"""Router factory for litestar-carriers."""

from __future__ import annotations

from litestar import Router
from litestar.di import Provide

from litestar_carriers.exceptions import EXCEPTION_HANDLERS
from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.routes.couriers import CourierController
from litestar_carriers.routes.shipments import ShipmentController
from litestar_carriers.routes.webhooks import WebhookController


def create_carrier_router(
    *,
    orchestrator: CarrierOrchestrator,
    path: str = "/",
) -> Router:
    """Create a configured Litestar router.

    Args:
        orchestrator: Carrier orchestrator shared by all endpoints. Call
            ``initialize()`` on it (for example from the app lifespan)
            before serving requests.
        path: Mount path for the router.

    Returns:
        A Litestar Router with courier, shipment and webhook endpoints.
    """
    return Router(
        path=path,
        route_handlers=[
            CourierController,
            ShipmentController,
            WebhookController,
        ],
        dependencies={
            "orchestrator": Provide(
                lambda: orchestrator, sync_to_thread=False
            ),
        },
        exception_handlers=EXCEPTION_HANDLERS,
    )
