"""Error hierarchy and HTTP exception handling for litestar-carriers."""

from __future__ import annotations

from litestar import Request, Response


class CarrierError(Exception):
    """Base class for every error raised by the orchestration engine."""


class ValidationError(CarrierError):
    """Input rejected before any provider call was made."""


class ConfigurationError(CarrierError):
    """A required component is not configured."""


class ProviderError(CarrierError):
    """A carrier provider call failed."""

    def __init__(self, message: str, *, carrier: str = "") -> None:
        self.carrier = carrier
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Timeout, connection reset or 5xx after all retries were spent."""


class PermanentProviderError(ProviderError):
    """4xx validation failure from the provider. Never retried."""

    def __init__(
        self,
        message: str,
        *,
        carrier: str = "",
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, carrier=carrier)


class AuthenticationError(PermanentProviderError):
    """Provider credentials or token rejected after one re-login."""


class WebhookSignatureError(CarrierError):
    """Inbound webhook failed signature verification."""

    def __init__(self) -> None:
        super().__init__("Invalid webhook signature")


class DuplicateShipmentError(CarrierError):
    """A shipment already exists for the order."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Shipment already created for order {order_id!r}")


class InvalidTransitionError(CarrierError):
    """Requested status change is not allowed by the state machine."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move shipment from {current!r} to {target!r}"
        )


class ShipmentNotFoundError(CarrierError):
    """Shipment with given AWB or order ID was not found."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Shipment {key!r} not found")


class CarrierNotFoundError(CarrierError):
    """No active adapter is registered under the given carrier name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Carrier {name!r} is not available")


def _error_response(
    request: Request, detail: str, code: str, status_code: int
) -> Response:
    return Response(
        content={"detail": detail, "code": code},
        status_code=status_code,
    )


def handle_validation_error(
    request: Request, exc: ValidationError
) -> Response:
    """Map ValidationError to 400."""
    return _error_response(request, str(exc), "validation_error", 400)


def handle_webhook_signature_error(
    request: Request, exc: WebhookSignatureError
) -> Response:
    """Map WebhookSignatureError to 401."""
    return _error_response(request, str(exc), "invalid_signature", 401)


def handle_not_found(request: Request, exc: CarrierError) -> Response:
    """Map ShipmentNotFoundError and CarrierNotFoundError to 404."""
    return _error_response(request, str(exc), "not_found", 404)


def handle_conflict(request: Request, exc: CarrierError) -> Response:
    """Map DuplicateShipmentError and InvalidTransitionError to 409."""
    code = (
        "duplicate_shipment"
        if isinstance(exc, DuplicateShipmentError)
        else "invalid_transition"
    )
    return _error_response(request, str(exc), code, 409)


def handle_transient_provider_error(
    request: Request, exc: TransientProviderError
) -> Response:
    """Map TransientProviderError to 503."""
    return _error_response(request, str(exc), "provider_unavailable", 503)


def handle_provider_error(request: Request, exc: ProviderError) -> Response:
    """Map PermanentProviderError and AuthenticationError to 502."""
    return _error_response(request, str(exc), "provider_error", 502)


def handle_configuration_error(
    request: Request, exc: ConfigurationError
) -> Response:
    """Map ConfigurationError to 500."""
    return _error_response(request, str(exc), "configuration_error", 500)


def handle_carrier_error(request: Request, exc: CarrierError) -> Response:
    """Map generic CarrierError to 400."""
    return _error_response(request, str(exc), "carrier_error", 400)


EXCEPTION_HANDLERS = {
    ValidationError: handle_validation_error,
    WebhookSignatureError: handle_webhook_signature_error,
    ShipmentNotFoundError: handle_not_found,
    CarrierNotFoundError: handle_not_found,
    DuplicateShipmentError: handle_conflict,
    InvalidTransitionError: handle_conflict,
    TransientProviderError: handle_transient_provider_error,
    PermanentProviderError: handle_provider_error,
    ConfigurationError: handle_configuration_error,
    CarrierError: handle_carrier_error,
}
