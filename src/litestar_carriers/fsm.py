"""Shipment state machine.

The main line runs Created -> ... -> Delivered and only moves forward.
Side branches (Failed Attempt, RTO, Cancelled, Lost, Damaged) are
reachable from non-terminal states. Terminal states never change.
"""

from __future__ import annotations

from litestar_carriers.enums import ShipmentStatus
from litestar_carriers.exceptions import InvalidTransitionError

MAIN_LINE: tuple[ShipmentStatus, ...] = (
    ShipmentStatus.CREATED,
    ShipmentStatus.MANIFEST_GENERATED,
    ShipmentStatus.PICKUP_SCHEDULED,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
)

TERMINAL_STATUSES: frozenset[ShipmentStatus] = frozenset(
    {
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RTO_DELIVERED,
        ShipmentStatus.CANCELLED,
        ShipmentStatus.LOST,
        ShipmentStatus.DAMAGED,
    }
)

# Reachable from any non-terminal state.
_ALWAYS_REACHABLE: frozenset[ShipmentStatus] = frozenset(
    {
        ShipmentStatus.RTO_DELIVERED,
        ShipmentStatus.CANCELLED,
        ShipmentStatus.LOST,
        ShipmentStatus.DAMAGED,
    }
)

# Where a failed delivery attempt may continue.
_AFTER_FAILED_ATTEMPT: frozenset[ShipmentStatus] = frozenset(
    {
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RTO_INITIATED,
    }
)

_RANK = {status: index for index, status in enumerate(MAIN_LINE)}


def coerce_status(value: str) -> ShipmentStatus | None:
    """Return the canonical status for ``value`` or None if unmapped."""
    try:
        return ShipmentStatus(value)
    except ValueError:
        return None


def is_terminal(status: str) -> bool:
    canonical = coerce_status(status)
    return canonical is not None and canonical in TERMINAL_STATUSES


def can_transition(current: ShipmentStatus, target: ShipmentStatus) -> bool:
    """Whether ``current -> target`` is a legal, state-changing move."""
    if current == target or current in TERMINAL_STATUSES:
        return False
    if target in _ALWAYS_REACHABLE:
        return True
    if current == ShipmentStatus.RTO_INITIATED:
        return False
    if current == ShipmentStatus.FAILED_ATTEMPT:
        return target in _AFTER_FAILED_ATTEMPT
    # current is on the main line from here on
    if target in (ShipmentStatus.FAILED_ATTEMPT, ShipmentStatus.RTO_INITIATED):
        return True
    return _RANK[target] > _RANK[current]


def check_transition(current: str, target: ShipmentStatus) -> bool:
    """Validate a move from the stored status to ``target``.

    Returns True when the status must change, False when the update is a
    no-op (same state). Raises InvalidTransitionError for illegal moves,
    including any attempt to leave a terminal state.
    """
    canonical = coerce_status(current)
    if canonical is None:
        raise InvalidTransitionError(current, str(target))
    if canonical == target:
        return False
    if not can_transition(canonical, target):
        raise InvalidTransitionError(str(canonical), str(target))
    return True
