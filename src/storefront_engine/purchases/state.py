"""Purchase status and the one table of legal transitions."""

import enum

from storefront_engine.common.exceptions import InvalidTransitionError


class PurchaseStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


TRANSITIONS: dict[PurchaseStatus, frozenset[PurchaseStatus]] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.FAILED}),
    PurchaseStatus.COMPLETED: frozenset({PurchaseStatus.REFUNDED}),
    PurchaseStatus.FAILED: frozenset(),
    PurchaseStatus.REFUNDED: frozenset(),
}


def can_transition(current: PurchaseStatus, target: PurchaseStatus) -> bool:
    return target in TRANSITIONS[PurchaseStatus(current)]


def sources_for(target: PurchaseStatus) -> frozenset[PurchaseStatus]:
    """Statuses from which ``target`` may be reached."""
    return frozenset(s for s, targets in TRANSITIONS.items() if target in targets)


def check_transition(current: PurchaseStatus, target: PurchaseStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move purchase from {PurchaseStatus(current).value} "
            f"to {PurchaseStatus(target).value}"
        )
