from __future__ import annotations

from app.core.errors import InvalidState
from app.models.enums import ListingStatus

# Every status change a listing may make. Anything else is rejected.
TRANSITIONS: dict[str, frozenset[str]] = {
    ListingStatus.ACTIVE: frozenset({ListingStatus.ENDED, ListingStatus.CANCELLED}),
    ListingStatus.ENDED: frozenset({ListingStatus.PAID}),
    ListingStatus.PAID: frozenset({ListingStatus.IN_PROGRESS, ListingStatus.COMPLETED, ListingStatus.DISPUTED}),
    ListingStatus.IN_PROGRESS: frozenset({ListingStatus.IN_PROGRESS, ListingStatus.COMPLETED, ListingStatus.DISPUTED}),
    ListingStatus.DISPUTED: frozenset({ListingStatus.COMPLETED, ListingStatus.CANCELLED}),
    ListingStatus.COMPLETED: frozenset(),
    ListingStatus.CANCELLED: frozenset(),
}

# contacts are visible to the two parties once money has moved
CONTACT_UNLOCKED_STATUSES = frozenset({
    ListingStatus.PAID,
    ListingStatus.IN_PROGRESS,
    ListingStatus.COMPLETED,
    ListingStatus.DISPUTED,
})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str, message: str | None = None) -> None:
    if not can_transition(current, target):
        raise InvalidState(message or f"Cannot move listing from {current} to {target}")
