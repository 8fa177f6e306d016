"""
Domain value objects.

- ``Location`` is a pickup or drop-off point with an optional free-text
  address.
- ``TripEstimate`` bundles the distance / ETA / price triple computed for a
  request and snapshotted into receipts.
- ``ensure_transition`` enforces the Request and Offer state machines
  before any conditioned write is attempted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TypeVar

from .enums import OFFER_TRANSITIONS, REQUEST_TRANSITIONS, OfferStatus, RequestStatus
from .errors import ConflictError

S = TypeVar("S", RequestStatus, OfferStatus)


class InvalidStateTransition(ConflictError):
    """Raised when a status change violates the state machine."""


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None

    def with_address(self, address: Optional[str]) -> "Location":
        return Location(self.latitude, self.longitude, address)

    def coordinate_label(self) -> str:
        return f"{self.latitude:.5f}, {self.longitude:.5f}"


@dataclass(frozen=True)
class TripEstimate:
    distance_km: float
    travel_time_minutes: int
    price: float


def ensure_transition(current: S, new: S) -> None:
    """Raise :class:`InvalidStateTransition` unless *current* -> *new* is legal."""
    table = REQUEST_TRANSITIONS if isinstance(current, RequestStatus) else OFFER_TRANSITIONS
    if new not in table.get(current, set()):
        noun = "request" if isinstance(current, RequestStatus) else "offer"
        raise InvalidStateTransition(
            f"Cannot move {noun} from {current.value} to {new.value}",
            details={"current": current.value, "target": new.value},
        )
