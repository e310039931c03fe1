"""Tests for exception-to-HTTP-response mapping."""

import pytest
from litestar import Litestar, get
from litestar.testing import TestClient

from litestar_carriers.exceptions import (
    EXCEPTION_HANDLERS,
    AuthenticationError,
    CarrierError,
    CarrierNotFoundError,
    ConfigurationError,
    DuplicateShipmentError,
    InvalidTransitionError,
    PermanentProviderError,
    ProviderError,
    ShipmentNotFoundError,
    TransientProviderError,
    ValidationError,
    WebhookSignatureError,
)


def _raise(exc: Exception) -> TestClient:
    @get("/test")
    async def handler() -> None:
        raise exc

    app = Litestar(
        route_handlers=[handler],
        exception_handlers=EXCEPTION_HANDLERS,
    )
    return TestClient(app)


def test_carrier_error_returns_400():
    """Generic CarrierError maps to 400."""
    with _raise(CarrierError("bad request")) as client:
        resp = client.get("/test")
        assert resp.status_code == 400
        data = resp.json()
        assert data["detail"] == "bad request"
        assert data["code"] == "carrier_error"


def test_validation_error_returns_400():
    """ValidationError maps to 400."""
    with _raise(ValidationError("Weight must be positive")) as client:
        resp = client.get("/test")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


def test_webhook_signature_error_hides_payload():
    """WebhookSignatureError maps to 401 with a fixed message."""
    with _raise(WebhookSignatureError()) as client:
        resp = client.get("/test")
        assert resp.status_code == 401
        assert resp.json() == {
            "detail": "Invalid webhook signature",
            "code": "invalid_signature",
        }


@pytest.mark.parametrize(
    "exc",
    [ShipmentNotFoundError("SR1"), CarrierNotFoundError("Nope")],
)
def test_not_found_errors_return_404(exc):
    """Unknown shipments and carriers map to 404."""
    with _raise(exc) as client:
        resp = client.get("/test")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (DuplicateShipmentError("order-1"), "duplicate_shipment"),
        (
            InvalidTransitionError("Delivered", "Cancelled"),
            "invalid_transition",
        ),
    ],
)
def test_conflicts_return_409(exc, code):
    """Duplicates and illegal transitions map to 409."""
    with _raise(exc) as client:
        resp = client.get("/test")
        assert resp.status_code == 409
        assert resp.json()["code"] == code


def test_transient_provider_error_returns_503():
    """Exhausted retries map to 503."""
    exc = TransientProviderError("gateway down", carrier="Shiprocket")
    with _raise(exc) as client:
        resp = client.get("/test")
        assert resp.status_code == 503
        assert resp.json()["code"] == "provider_unavailable"


@pytest.mark.parametrize(
    "exc",
    [
        PermanentProviderError("Invalid pincode", status_code=422),
        AuthenticationError("Login rejected", status_code=401),
    ],
)
def test_permanent_provider_errors_return_502(exc):
    """Provider rejections map to 502."""
    with _raise(exc) as client:
        resp = client.get("/test")
        assert resp.status_code == 502
        assert resp.json()["code"] == "provider_error"


def test_configuration_error_returns_500():
    """ConfigurationError maps to 500."""
    with _raise(ConfigurationError("No adapters")) as client:
        resp = client.get("/test")
        assert resp.status_code == 500
        assert resp.json()["code"] == "configuration_error"


def test_exception_handlers_dict_has_all_types():
    """EXCEPTION_HANDLERS covers every mapped exception type."""
    assert len(EXCEPTION_HANDLERS) == 10
    assert CarrierError in EXCEPTION_HANDLERS
    assert TransientProviderError in EXCEPTION_HANDLERS


def test_error_hierarchy():
    """Every error derives from CarrierError."""
    assert issubclass(TransientProviderError, ProviderError)
    assert issubclass(AuthenticationError, PermanentProviderError)
    for exc_type in EXCEPTION_HANDLERS:
        assert issubclass(exc_type, CarrierError)


def test_error_attributes():
    """Errors keep their context for callers."""
    exc = PermanentProviderError("x", carrier="Shiprocket", status_code=400)
    assert exc.carrier == "Shiprocket"
    assert exc.status_code == 400
    assert DuplicateShipmentError("o-1").order_id == "o-1"
    transition = InvalidTransitionError("Delivered", "Cancelled")
    assert transition.current == "Delivered"
    assert transition.target == "Cancelled"
