"""Domain enumerations and state-transition rules."""

import enum


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"


class VehicleType(int, enum.Enum):
    STANDARD = 1
    HEAVY_DUTY = 2
    LUXURY = 3
    EMERGENCY = 4

    @property
    def fare_key(self) -> str:
        return self.name.lower()


# State machine: maps current status -> set of valid next statuses
REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.ACCEPTED, RequestStatus.CANCELLED},
    RequestStatus.ACCEPTED: {RequestStatus.COMPLETED, RequestStatus.CANCELLED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.CANCELLED: set(),
}

# ACCEPTED -> REJECTED only happens when an accepted request is cancelled.
OFFER_TRANSITIONS: dict[OfferStatus, set[OfferStatus]] = {
    OfferStatus.PENDING: {OfferStatus.ACCEPTED, OfferStatus.REJECTED},
    OfferStatus.ACCEPTED: {OfferStatus.REJECTED},
    OfferStatus.REJECTED: {OfferStatus.PENDING},
}

CANCELLABLE_REQUEST_STATUSES = frozenset(
    s for s, nxt in REQUEST_TRANSITIONS.items() if RequestStatus.CANCELLED in nxt
)
ACTIVE_OFFER_STATUSES = frozenset({OfferStatus.PENDING, OfferStatus.ACCEPTED})
