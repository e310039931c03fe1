"""Carrier adapter contract.

Every provider integration subclasses :class:`BaseCarrierAdapter`. Shared
orchestration code talks to adapters only through this interface and never
branches on a provider's name.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, ClassVar

import httpx

from litestar_carriers.config import CarriersConfig
from litestar_carriers.enums import ShipmentStatus
from litestar_carriers.exceptions import (
    AuthenticationError,
    ConfigurationError,
    PermanentProviderError,
    TransientProviderError,
)
from litestar_carriers.protocols import CarrierProfile
from litestar_carriers.retry import call_with_retry
from litestar_carriers.types import (
    CancelResult,
    LabelInfo,
    PickupRequest,
    PickupResult,
    RateQuote,
    ServiceabilityResult,
    ShipmentCreateResult,
    ShipmentRequest,
    TrackingResult,
    WebhookUpdate,
)
from litestar_carriers.webhooks import verify_signature

logger = logging.getLogger(__name__)


def normalize_status_key(value: str) -> str:
    """Fold case, underscores and repeated spaces of a provider status."""
    return " ".join(value.replace("_", " ").upper().split())


class BaseCarrierAdapter(ABC):
    """Base class for carrier provider integrations."""

    name: ClassVar[str]
    display_name: ClassVar[str] = ""
    default_base_url: ClassVar[str] = ""
    signature_header: ClassVar[str] = "x-webhook-signature"
    fallback_signature_header: ClassVar[str] = "x-signature"
    volumetric_divisor: ClassVar[int] = 5000

    # Keys are normalized with normalize_status_key.
    status_map: ClassVar[dict[str, ShipmentStatus]] = {
        "CREATED": ShipmentStatus.CREATED,
        "PICKUP SCHEDULED": ShipmentStatus.PICKUP_SCHEDULED,
        "PICKED UP": ShipmentStatus.PICKED_UP,
        "IN TRANSIT": ShipmentStatus.IN_TRANSIT,
        "OUT FOR DELIVERY": ShipmentStatus.OUT_FOR_DELIVERY,
        "DELIVERED": ShipmentStatus.DELIVERED,
        "FAILED": ShipmentStatus.FAILED_ATTEMPT,
        "RTO": ShipmentStatus.RTO_INITIATED,
        "CANCELLED": ShipmentStatus.CANCELLED,
    }

    def __init__(
        self,
        profile: CarrierProfile,
        *,
        config: CarriersConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.profile = profile
        self.config = config or CarriersConfig()
        self.base_url = (profile.api_base_url or self.default_base_url).rstrip(
            "/"
        )
        self.max_attempts = (
            profile.max_retries or self.config.retry_max_attempts
        )
        self.timeout = (
            profile.timeout_seconds or self.config.request_timeout_seconds
        )
        self._client = client
        self._owns_client = client is None
        self._closed = False
        self._in_flight = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._ensure_open()
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _ensure_open(self) -> None:
        if self._closed and self._in_flight == 0:
            raise ConfigurationError(
                f"Carrier adapter {self.name!r} is closed"
            )

    async def aclose(self) -> None:
        """Close the adapter.

        Requests already running keep the HTTP client until the last one
        finishes; an owned client is closed at that point. New requests
        are refused.
        """
        self._closed = True
        if self._in_flight == 0:
            await self._close_client()

    async def _close_client(self) -> None:
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    def get_credential(self, key: str, default: Any = None) -> Any:
        return (self.profile.credentials or {}).get(key, default)

    # --- contract -------------------------------------------------------

    @abstractmethod
    async def authenticate(self) -> str:
        """Return a valid access token, logging in if needed."""

    def invalidate_token(self) -> None:
        """Forget any cached token so the next call logs in again."""

    @abstractmethod
    async def check_serviceability(
        self, pickup_postal: str, delivery_postal: str, cod: bool = False
    ) -> ServiceabilityResult: ...

    @abstractmethod
    async def get_rates(
        self,
        pickup_postal: str,
        delivery_postal: str,
        weight: Decimal,
        cod: bool = False,
        cod_amount: Decimal = Decimal("0"),
    ) -> list[RateQuote]: ...

    @abstractmethod
    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentCreateResult: ...

    @abstractmethod
    async def track_shipment(self, awb: str) -> TrackingResult: ...

    @abstractmethod
    async def cancel_shipment(
        self, awb: str, provider_shipment_id: str | None = None
    ) -> CancelResult: ...

    @abstractmethod
    async def generate_label(self, provider_shipment_id: str) -> LabelInfo: ...

    @abstractmethod
    async def schedule_pickup(
        self, request: PickupRequest
    ) -> PickupResult: ...

    @abstractmethod
    def process_webhook(self, payload: dict[str, Any]) -> WebhookUpdate:
        """Normalize a verified webhook payload."""

    def validate_webhook(self, raw_body: bytes, signature: str | None) -> bool:
        """Check the HMAC signature of a raw webhook body.

        Unsigned payloads pass only when the profile has no secret and
        explicitly allows unsigned webhooks.
        """
        secret = self.profile.webhook_secret
        if not secret:
            if self.profile.allow_unsigned_webhooks:
                return True
            logger.error(
                "%s: webhook rejected, no secret configured and unsigned "
                "webhooks are not allowed",
                self.name,
            )
            return False
        return verify_signature(secret, raw_body, signature)

    def standardize_status(self, provider_status: str | None) -> str:
        """Map a provider status to a canonical ShipmentStatus.

        Unknown values are returned verbatim so they can be recorded
        without forcing a transition.
        """
        raw = (provider_status or "").strip()
        canonical = self.status_map.get(normalize_status_key(raw))
        if canonical is None:
            logger.warning(
                "%s: unmapped provider status %r", self.name, provider_status
            )
            return raw
        return canonical

    # --- HTTP -----------------------------------------------------------

    async def authorization_headers(self) -> dict[str, str]:
        token = await self.authenticate()
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform one HTTP exchange and classify the outcome."""
        try:
            response = await self.client.request(
                method,
                url,
                json=json,
                params=params,
                headers={"Content-Type": "application/json", **headers},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransientProviderError(
                f"Timeout calling {url}", carrier=self.name
            ) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(
                f"Connection error calling {url}: {exc}", carrier=self.name
            ) from exc

        status = response.status_code
        if status == 401:
            raise AuthenticationError(
                "Provider rejected credentials",
                carrier=self.name,
                status_code=status,
            )
        if status == 429 or status >= 500:
            raise TransientProviderError(
                f"HTTP {status} from {url}", carrier=self.name
            )
        if status >= 400:
            raise PermanentProviderError(
                f"HTTP {status}: {response.text[:500]}",
                carrier=self.name,
                status_code=status,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise PermanentProviderError(
                f"Invalid JSON response from {url}", carrier=self.name
            ) from exc
        return data if isinstance(data, dict) else {"data": data}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        """Call the provider with retry, backoff and one re-login on 401."""
        self._ensure_open()
        self._in_flight += 1
        try:
            return await self._call_provider(
                method,
                path,
                json=json,
                params=params,
                authenticated=authenticated,
            )
        finally:
            self._in_flight -= 1
            if self._closed and self._in_flight == 0:
                await self._close_client()

    async def _call_provider(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
        authenticated: bool,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = await self.authorization_headers() if authenticated else {}

        async def attempt() -> dict[str, Any]:
            return await self._send(
                method, url, headers=headers, json=json, params=params
            )

        try:
            return await call_with_retry(
                attempt,
                max_attempts=self.max_attempts,
                backoff_seconds=self.config.retry_backoff_seconds,
                carrier=self.name,
                description=f"{method} {path}",
            )
        except AuthenticationError:
            if not authenticated:
                raise
            logger.info("%s: token rejected, re-authenticating", self.name)
            self.invalidate_token()
            headers = await self.authorization_headers()
            return await call_with_retry(
                attempt,
                max_attempts=self.max_attempts,
                backoff_seconds=self.config.retry_backoff_seconds,
                carrier=self.name,
                description=f"{method} {path}",
            )

    # --- helpers --------------------------------------------------------

    @classmethod
    def calculate_volumetric_weight(
        cls, length: Decimal, breadth: Decimal, height: Decimal
    ) -> Decimal:
        return (length * breadth * height) / cls.volumetric_divisor

    @classmethod
    def get_billable_weight(
        cls,
        actual_weight: Decimal,
        length: Decimal,
        breadth: Decimal,
        height: Decimal,
    ) -> Decimal:
        volumetric = cls.calculate_volumetric_weight(length, breadth, height)
        return max(actual_weight, volumetric)

    @staticmethod
    def format_phone(phone: str) -> str:
        return re.sub(r"\D", "", phone or "")
