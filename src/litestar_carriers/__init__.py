# src/litestar_carriers/__init__.py
"""Multi-carrier shipment orchestration for Litestar."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "BaseCarrierAdapter",
    "CarrierError",
    "CarrierOrchestrator",
    "CarrierRegistry",
    "CarriersConfig",
    "CreateShipmentRequest",
    "ShipmentNotFoundError",
    "ShipmentResponse",
    "ShipmentStatus",
    "ShiprocketAdapter",
    "__version__",
    "create_carrier_router",
]

if TYPE_CHECKING:
    from litestar_carriers.carriers import (
        BaseCarrierAdapter,
        ShiprocketAdapter,
    )
    from litestar_carriers.config import CarriersConfig
    from litestar_carriers.enums import ShipmentStatus
    from litestar_carriers.exceptions import (
        CarrierError,
        ShipmentNotFoundError,
    )
    from litestar_carriers.orchestrator import CarrierOrchestrator
    from litestar_carriers.plugin import create_carrier_router
    from litestar_carriers.registry import CarrierRegistry
    from litestar_carriers.schemas import (
        CreateShipmentRequest,
        ShipmentResponse,
    )


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name == "CarriersConfig":
        from litestar_carriers.config import CarriersConfig

        return CarriersConfig
    if name == "create_carrier_router":
        from litestar_carriers.plugin import create_carrier_router

        return create_carrier_router
    if name == "CarrierOrchestrator":
        from litestar_carriers.orchestrator import CarrierOrchestrator

        return CarrierOrchestrator
    if name == "CarrierRegistry":
        from litestar_carriers.registry import CarrierRegistry

        return CarrierRegistry
    if name == "ShipmentStatus":
        from litestar_carriers.enums import ShipmentStatus

        return ShipmentStatus
    if name in ("CarrierError", "ShipmentNotFoundError"):
        from litestar_carriers import exceptions

        return getattr(exceptions, name)
    if name in ("BaseCarrierAdapter", "ShiprocketAdapter"):
        from litestar_carriers import carriers

        return getattr(carriers, name)
    if name in ("CreateShipmentRequest", "ShipmentResponse"):
        from litestar_carriers import schemas

        return getattr(schemas, name)
    raise AttributeError(
        f"module 'litestar_carriers' has no attribute {name!r}"
    )
