"""Shipment status state machine."""

from __future__ import annotations

from courierlink.enums import ShipmentStatus
from courierlink.exceptions import InvalidTransitionError

PROGRESSION: tuple[ShipmentStatus, ...] = (
    ShipmentStatus.PENDING,
    ShipmentStatus.LABEL_CREATED,
    ShipmentStatus.READY_FOR_PICKUP,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset(
    {
        ShipmentStatus.DELIVERED,
        ShipmentStatus.RETURNED,
        ShipmentStatus.FAILED,
        ShipmentStatus.CANCELLED,
    }
)

CANCELLABLE_STATUSES = frozenset(
    {
        ShipmentStatus.PENDING,
        ShipmentStatus.LABEL_CREATED,
        ShipmentStatus.READY_FOR_PICKUP,
    }
)

# Statuses the poll job keeps refreshing.
TRACKABLE_STATUSES = (
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.ATTEMPTED_DELIVERY,
)

_POST_PICKUP = frozenset(TRACKABLE_STATUSES)


def _build_transitions() -> dict[ShipmentStatus, frozenset[ShipmentStatus]]:
    table: dict[ShipmentStatus, set[ShipmentStatus]] = {
        status: set() for status in ShipmentStatus
    }
    for index, status in enumerate(PROGRESSION[:-1]):
        table[status].update(PROGRESSION[index + 1 :])

    for status in CANCELLABLE_STATUSES:
        table[status].add(ShipmentStatus.CANCELLED)

    for status in _POST_PICKUP:
        table[status].update({ShipmentStatus.RETURNED, ShipmentStatus.FAILED})

    table[ShipmentStatus.IN_TRANSIT].add(ShipmentStatus.ATTEMPTED_DELIVERY)
    table[ShipmentStatus.OUT_FOR_DELIVERY].add(
        ShipmentStatus.ATTEMPTED_DELIVERY
    )
    table[ShipmentStatus.ATTEMPTED_DELIVERY].update(
        {
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.OUT_FOR_DELIVERY,
            ShipmentStatus.DELIVERED,
        }
    )
    return {status: frozenset(targets) for status, targets in table.items()}


TRANSITIONS = _build_transitions()


def is_terminal(status: str) -> bool:
    return ShipmentStatus(status) in TERMINAL_STATUSES


def allowed_targets(status: str) -> frozenset[ShipmentStatus]:
    return TRANSITIONS[ShipmentStatus(status)]


def can_transition(current: str, target: str) -> bool:
    """Whether ``current -> target`` is legal. Same-state is always legal."""
    current = ShipmentStatus(current)
    target = ShipmentStatus(target)
    if current == target:
        return True
    return target in TRANSITIONS[current]


def ensure_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(str(current), str(target))
