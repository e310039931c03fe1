"""Canonical enumerations shared by adapters, orchestrator and storage."""

from __future__ import annotations

from enum import StrEnum


class ShipmentStatus(StrEnum):
    """Canonical shipment states.

    Values are the display strings stored in the database and returned to
    callers, independent of any provider's vocabulary.
    """

    CREATED = "Created"
    MANIFEST_GENERATED = "Manifest Generated"
    PICKUP_SCHEDULED = "Pickup Scheduled"
    PICKED_UP = "Picked Up"
    IN_TRANSIT = "In Transit"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    FAILED_ATTEMPT = "Failed Attempt"
    RTO_INITIATED = "RTO Initiated"
    RTO_DELIVERED = "RTO Delivered"
    CANCELLED = "Cancelled"
    LOST = "Lost"
    DAMAGED = "Damaged"


class TrackingSource(StrEnum):
    """Origin of a tracking log entry."""

    POLL = "Poll"
    WEBHOOK = "Webhook"
    MANUAL = "Manual"
    SYSTEM = "System"


class DeliveryPriority(StrEnum):
    """Caller priority used to weight carrier recommendations."""

    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"
