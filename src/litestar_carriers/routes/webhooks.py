"""Carrier webhook endpoints."""

from __future__ import annotations

import logging
from typing import Annotated, ClassVar

from litestar import Controller, Request, post
from litestar.params import Dependency

from litestar_carriers.orchestrator import CarrierOrchestrator
from litestar_carriers.schemas import WebhookResponse

logger = logging.getLogger(__name__)


class WebhookController(Controller):
    """Provider push endpoints."""

    path = "/webhooks"
    tags: ClassVar[list[str]] = ["webhooks"]

    @post("/{carrier_name:str}", status_code=200)
    async def handle_webhook(
        self,
        carrier_name: str,
        request: Request,
        orchestrator: Annotated[
            CarrierOrchestrator, Dependency(skip_validation=True)
        ],
    ) -> WebhookResponse:
        """Verify the signature over the raw body, then apply the update."""
        adapter = orchestrator.get_adapter(carrier_name)
        raw_body = await request.body()
        signature = request.headers.get(
            adapter.signature_header
        ) or request.headers.get(adapter.fallback_signature_header)

        outcome = await orchestrator.process_webhook(
            carrier_name, raw_body, signature
        )
        return WebhookResponse(
            carrier=carrier_name,
            status="accepted",
            shipment_status=str(outcome.shipment.status),
            duplicate=outcome.duplicate,
        )
