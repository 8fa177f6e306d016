"""
Negotiation engine
==================

Orchestrates the multi-entity transitions between customers and drivers:

1. Customer creates a **request** (pending).
2. Drivers submit price **offers** while the request is pending.
3. Customer **accepts** one offer: the request, the offer and a new
   payment move together in one transaction; sibling offers are rejected.
4. Customer or assigned driver **completes** the request: payment settles
   and a receipt snapshot is written once.
5. Customer may **cancel** a pending or accepted request.

Race safety
-----------
Every transition is a *conditioned update*: the status the caller observed
is part of the ``WHERE`` clause and the affected row count is checked.
The first committed writer wins; anyone else gets zero rows, the whole
transaction is rolled back and :class:`ConflictError` is raised.  Offer
inserts additionally lock the request row (``SELECT ... FOR UPDATE``) and
the database enforces one offer per (request, driver) and one accepted
offer per request.

Notifications are sent after commit as tracked asyncio tasks; a failing
dispatcher is logged and never undoes a committed transition.
"""

from __future__ import annotations

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slidebid.domain.distance import distance, haversine_km, travel_time
from slidebid.domain.entities import Location, TripEstimate, ensure_transition
from slidebid.domain.enums import (
    CANCELLABLE_REQUEST_STATUSES,
    ApprovalStatus,
    OfferStatus,
    PaymentStatus,
    RequestStatus,
    Role,
)
from slidebid.domain.errors import (
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationFailed,
)
from slidebid.domain.pricing import PricingEngine
from slidebid.domain.spatial import cells_within, pickup_cell
from slidebid.infrastructure.models import (
    DriverModel,
    OfferModel,
    PaymentModel,
    ReceiptModel,
    RequestModel,
)
from slidebid.infrastructure.repositories import (
    CustomerRepository,
    DriverRepository,
    OfferRepository,
    PaymentRepository,
    ReceiptRepository,
    RequestRepository,
)
from slidebid.services.geocoding import GeocodingProvider
from slidebid.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500
MAX_ADDRESS_LENGTH = RequestModel.__table__.c.pickup_address.type.length
MAX_PAGE_SIZE = 100


# ── Outcomes ──────────────────────────────────────────────────────────


@dataclass
class OfferOutcome:
    offer: OfferModel
    reopened: bool = False


@dataclass
class AcceptOutcome:
    request: RequestModel
    offer: OfferModel
    payment: PaymentModel
    rejected_driver_ids: list[int] = field(default_factory=list)


@dataclass
class CancelOutcome:
    request: RequestModel
    rejected_offers: int = 0
    released_offer: Optional[OfferModel] = None
    voided_payment: Optional[PaymentModel] = None


@dataclass
class CompletionOutcome:
    request: RequestModel
    receipt: ReceiptModel
    already_completed: bool = False


@dataclass
class AvailableRequest:
    request: RequestModel
    estimate: TripEstimate
    distance_to_pickup_km: Optional[float] = None


@dataclass
class RequestDetails:
    request: RequestModel
    estimate: TripEstimate
    offers: list[OfferModel] = field(default_factory=list)
    own_offer: Optional[OfferModel] = None
    driver_distance_km: Optional[float] = None
    driver_eta_minutes: Optional[int] = None


@dataclass
class HistoryEntry:
    request: RequestModel
    offer: Optional[OfferModel] = None
    receipt: Optional[ReceiptModel] = None


@dataclass
class HistoryPage:
    items: list[HistoryEntry]
    total: int
    limit: int
    offset: int


@dataclass
class ActiveJob:
    request: RequestModel
    offer: OfferModel
    estimate: TripEstimate


# ── Input checks ──────────────────────────────────────────────────────


def _require_id(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationFailed(f"{name} must be a positive integer", {"field": name})
    return value


def _require_price(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailed("price must be a number", {"field": "price"})
    if not math.isfinite(value) or value <= 0:
        raise ValidationFailed("price must be greater than zero", {"field": "price"})
    return float(value)


def _require_location(point: Location, name: str) -> None:
    for attr, bound in (("latitude", 90), ("longitude", 180)):
        value = getattr(point, attr)
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or not math.isfinite(value)
            or not -bound <= value <= bound
        ):
            raise ValidationFailed(
                f"{name} {attr} must be between -{bound} and {bound}",
                {"field": f"{name}.{attr}"},
            )


def _require_radius(value: Any) -> float:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value <= 0
    ):
        raise ValidationFailed("radius_km must be positive", {"field": "radius_km"})
    return float(value)


def _require_status(value: Union[RequestStatus, str, None]) -> Optional[RequestStatus]:
    if value is None:
        return None
    try:
        return RequestStatus(value)
    except ValueError:
        raise ValidationFailed(
            f"Unknown status {value!r}",
            {"field": "status", "allowed": [s.value for s in RequestStatus]},
        ) from None


def _require_page(limit: Any, offset: Any) -> tuple[int, int]:
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationFailed(
            f"limit must be between 1 and {MAX_PAGE_SIZE}", {"field": "limit"}
        )
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationFailed("offset must not be negative", {"field": "offset"})
    return limit, offset


def _fit_address(address: str) -> str:
    if len(address) <= MAX_ADDRESS_LENGTH:
        return address
    return address[: MAX_ADDRESS_LENGTH - 3].rstrip() + "..."


def _require_role(role: Union[Role, str]) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise ValidationFailed(f"Unknown role {role!r}", {"field": "role"}) from None


def _payment_ref(value: Union[int, str]) -> str:
    if isinstance(value, bool):
        raise ValidationFailed("payment_method_ref is required", {"field": "payment_method_ref"})
    if isinstance(value, int):
        return str(_require_id(value, "payment_method_ref"))
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValidationFailed("payment_method_ref is required", {"field": "payment_method_ref"})


def _require_approved(driver: Optional[DriverModel], driver_id: int) -> DriverModel:
    if driver is None:
        raise NotFoundError("Driver not found", {"driver_id": driver_id})
    if driver.approval_status != ApprovalStatus.APPROVED:
        raise ForbiddenError(
            "Driver is not approved", {"approval_status": driver.approval_status.value}
        )
    return driver


# ── Engine ────────────────────────────────────────────────────────────


class NegotiationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        pricing: Optional[PricingEngine] = None,
        notifier: Optional[NotificationDispatcher] = None,
        geocoder: Optional[GeocodingProvider] = None,
        h3_resolution: int = 7,
        h3_max_ring: int = 40,
        default_radius_km: float = 20.0,
    ):
        self.session_factory = session_factory
        self.pricing = pricing or PricingEngine()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.geocoder = geocoder
        self.h3_resolution = h3_resolution
        self.h3_max_ring = h3_max_ring
        self.default_radius_km = default_radius_km
        self._notifications: set[asyncio.Task] = set()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """One session, one transaction; rolled back on any exception."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            logger.exception("Database error")
            raise InfrastructureError("Database error") from exc

    # ── Notifications ────────────────────────────────────────────────

    def _notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._deliver(user_id, event_type, payload))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _deliver(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        try:
            await self.notifier.notify(user_id, event_type, payload)
        except Exception:
            logger.exception("Notification %s to user %s failed", event_type, user_id)

    async def wait_for_notifications(self) -> None:
        """Block until every scheduled notification has been delivered or failed."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)

    # ── Helpers ──────────────────────────────────────────────────────

    async def _resolve_address(self, point: Location) -> Location:
        if point.address and point.address.strip():
            return point.with_address(_fit_address(point.address.strip()))
        address = None
        if self.geocoder is not None:
            address = await self.geocoder.reverse_geocode(point.latitude, point.longitude)
        if address and address.strip():
            return point.with_address(_fit_address(address.strip()))
        return point.with_address(point.coordinate_label())

    def _estimate(self, request: RequestModel) -> TripEstimate:
        return self.pricing.estimate_trip(
            Location(request.pickup_lat, request.pickup_lon),
            Location(request.dropoff_lat, request.dropoff_lon),
            request.vehicle_type,
        )

    async def _issue_receipt(
        self, session: AsyncSession, request: RequestModel, offer: OfferModel
    ) -> ReceiptModel:
        payment = await PaymentRepository(session).get_by_id(request.payment_id, refresh=True)
        estimate = self._estimate(request)
        receipt = ReceiptModel(
            request_id=request.id,
            customer_id=request.customer_id,
            driver_id=offer.driver_id,
            offer_id=offer.id,
            payment_id=payment.id,
            pickup_address=request.pickup_address,
            dropoff_address=request.dropoff_address,
            pickup_lat=request.pickup_lat,
            pickup_lon=request.pickup_lon,
            dropoff_lat=request.dropoff_lat,
            dropoff_lon=request.dropoff_lon,
            vehicle_type=request.vehicle_type,
            service_price=offer.offered_price,
            payment_method_ref=payment.payment_method_ref,
            payment_status=PaymentStatus(payment.status).value,
            distance_km=estimate.distance_km,
            travel_time_minutes=estimate.travel_time_minutes,
        )
        try:
            return await ReceiptRepository(session).create(receipt)
        except IntegrityError as exc:
            raise ConflictError(
                "Receipt was issued concurrently", {"request_id": request.id}
            ) from exc

    # ── Customer: requests ───────────────────────────────────────────

    async def create_request(
        self,
        customer_id: int,
        pickup: Location,
        dropoff: Location,
        vehicle_type: int,
        *,
        booking_time: Optional[datetime] = None,
        message: Optional[str] = None,
    ) -> RequestModel:
        _require_id(customer_id, "customer_id")
        _require_location(pickup, "pickup")
        _require_location(dropoff, "dropoff")
        _require_id(vehicle_type, "vehicle_type")
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(
                f"message must be at most {MAX_MESSAGE_LENGTH} characters",
                {"field": "message"},
            )

        async with self._transaction() as session:
            if await CustomerRepository(session).get_by_id(customer_id) is None:
                raise NotFoundError("Customer not found", {"customer_id": customer_id})

        pickup = await self._resolve_address(pickup)
        dropoff = await self._resolve_address(dropoff)

        async with self._transaction() as session:
            request = await RequestRepository(session).create(
                RequestModel(
                    customer_id=customer_id,
                    pickup_lat=pickup.latitude,
                    pickup_lon=pickup.longitude,
                    pickup_address=pickup.address,
                    pickup_h3=pickup_cell(
                        pickup.latitude, pickup.longitude, self.h3_resolution
                    ),
                    dropoff_lat=dropoff.latitude,
                    dropoff_lon=dropoff.longitude,
                    dropoff_address=dropoff.address,
                    vehicle_type=vehicle_type,
                    status=RequestStatus.PENDING,
                    booking_time=booking_time,
                    customer_message=message,
                )
            )
        logger.info("Request %s created by customer %s", request.id, customer_id)
        return request

    async def get_active_request(self, customer_id: int) -> Optional[RequestModel]:
        _require_id(customer_id, "customer_id")
        async with self._transaction() as session:
            return await RequestRepository(session).get_active_for_customer(customer_id)

    async def list_request_history(
        self,
        customer_id: int,
        status: Union[RequestStatus, str, None] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> HistoryPage:
        """The customer's requests, newest first, optionally of one status."""
        _require_id(customer_id, "customer_id")
        status = _require_status(status)
        limit, offset = _require_page(limit, offset)
        async with self._transaction() as session:
            rows, total = await RequestRepository(session).list_for_customer(
                customer_id, status=status, limit=limit, offset=offset
            )
        return HistoryPage(
            items=[HistoryEntry(*row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def list_request_offers(
        self, request_id: int, customer_id: int
    ) -> list[OfferModel]:
        """Pending offers on the customer's request, cheapest first."""
        _require_id(request_id, "request_id")
        _require_id(customer_id, "customer_id")
        async with self._transaction() as session:
            request = await RequestRepository(session).get_for_customer(
                request_id, customer_id
            )
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            return await OfferRepository(session).list_for_request(
                request_id, OfferStatus.PENDING
            )

    async def get_request_details(
        self, request_id: int, caller_id: int, role: Union[Role, str]
    ) -> RequestDetails:
        _require_id(request_id, "request_id")
        _require_id(caller_id, "caller_id")
        role = _require_role(role)

        async with self._transaction() as session:
            request = await RequestRepository(session).get_by_id(request_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            details = RequestDetails(request=request, estimate=self._estimate(request))
            offers = OfferRepository(session)

            if role is Role.CUSTOMER:
                if request.customer_id != caller_id:
                    raise NotFoundError("Request not found", {"request_id": request_id})
                details.offers = [
                    o
                    for o in await offers.list_for_request(request_id)
                    if o.status != OfferStatus.REJECTED
                ]
                return details

            driver = await DriverRepository(session).get_by_id(caller_id)
            if driver is None:
                raise NotFoundError("Driver not found", {"driver_id": caller_id})
            own = await offers.get_by_request_and_driver(request_id, caller_id)
            assigned = own is not None and own.id == request.accepted_offer_id
            if request.status != RequestStatus.PENDING and not assigned:
                raise NotFoundError("Request not found", {"request_id": request_id})
            details.own_offer = own

        if driver.current_lat is not None and driver.current_lon is not None:
            km = distance(
                driver.current_lat, driver.current_lon,
                request.pickup_lat, request.pickup_lon,
            )
            details.driver_distance_km = km
            details.driver_eta_minutes = travel_time(km, self.pricing.avg_speed_kmh)
        return details

    async def accept_offer(
        self,
        request_id: int,
        customer_id: int,
        offer_id: int,
        payment_method_ref: Union[int, str],
    ) -> AcceptOutcome:
        _require_id(request_id, "request_id")
        _require_id(customer_id, "customer_id")
        _require_id(offer_id, "offer_id")
        method_ref = _payment_ref(payment_method_ref)

        async with self._transaction() as session:
            requests = RequestRepository(session)
            offers = OfferRepository(session)
            payments = PaymentRepository(session)

            request = await requests.get_for_customer(request_id, customer_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            ensure_transition(request.status, RequestStatus.ACCEPTED)

            offer = await offers.get_by_id(offer_id)
            if offer is None or offer.request_id != request_id:
                raise NotFoundError("Offer not found", {"offer_id": offer_id})
            if offer.status != OfferStatus.PENDING:
                raise ConflictError(
                    "Offer is no longer pending", {"status": offer.status.value}
                )

            payment = await payments.create(
                customer_id=customer_id,
                amount=offer.offered_price,
                payment_method_ref=method_ref,
            )
            if not await requests.mark_accepted(request_id, offer_id, payment.id):
                raise ConflictError(
                    "Request was modified concurrently", {"request_id": request_id}
                )
            if not await offers.mark_accepted(offer_id, request_id):
                raise ConflictError(
                    "Offer was modified concurrently", {"offer_id": offer_id}
                )

            rejected_driver_ids = await offers.pending_driver_ids(
                request_id, exclude_offer_id=offer_id
            )
            await offers.reject_pending(request_id, exclude_offer_id=offer_id)

            request = await requests.get_by_id(request_id, refresh=True)
            offer = await offers.get_by_id(offer_id, refresh=True)

        logger.info(
            "Request %s accepted offer %s (payment %s)", request_id, offer_id, payment.id
        )
        payload = {
            "request_id": request_id,
            "offer_id": offer_id,
            "price": offer.offered_price,
        }
        self._notify(customer_id, "offer_accepted", payload)
        self._notify(offer.driver_id, "offer_accepted", payload)
        for driver_id in rejected_driver_ids:
            self._notify(driver_id, "offer_rejected", {"request_id": request_id})
        return AcceptOutcome(request, offer, payment, rejected_driver_ids)

    async def cancel_request(self, request_id: int, customer_id: int) -> CancelOutcome:
        """
        Cancel a pending or accepted request.

        After acceptance the payment is voided (``Pending`` -> ``Failed``)
        and the accepted offer released to ``rejected`` in the same
        transaction, so a cancelled request never keeps an offer or payment
        reference.
        """
        _require_id(request_id, "request_id")
        _require_id(customer_id, "customer_id")

        async with self._transaction() as session:
            requests = RequestRepository(session)
            offers = OfferRepository(session)
            payments = PaymentRepository(session)

            request = await requests.get_for_customer(request_id, customer_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            observed = RequestStatus(request.status)
            if observed not in CANCELLABLE_REQUEST_STATUSES:
                raise ConflictError(
                    "Only pending or accepted requests can be cancelled",
                    {"status": observed.value},
                )
            accepted_offer_id = request.accepted_offer_id
            payment_id = request.payment_id

            notified_drivers = await offers.pending_driver_ids(request_id)
            if not await requests.mark_cancelled(request_id, observed):
                raise ConflictError(
                    "Request was modified concurrently", {"request_id": request_id}
                )
            outcome = CancelOutcome(
                request=request,
                rejected_offers=await offers.reject_pending(request_id),
            )

            if observed is RequestStatus.ACCEPTED:
                if accepted_offer_id is not None:
                    if not await offers.release_accepted(accepted_offer_id):
                        raise ConflictError(
                            "Accepted offer was modified concurrently",
                            {"offer_id": accepted_offer_id},
                        )
                    outcome.released_offer = await offers.get_by_id(
                        accepted_offer_id, refresh=True
                    )
                    notified_drivers.append(outcome.released_offer.driver_id)
                if payment_id is not None:
                    voided = await payments.transition(
                        payment_id, PaymentStatus.PENDING, PaymentStatus.FAILED
                    )
                    if not voided:
                        logger.warning(
                            "Payment %s of request %s was not pending", payment_id, request_id
                        )
                    outcome.voided_payment = await payments.get_by_id(
                        payment_id, refresh=True
                    )

            outcome.request = await requests.get_by_id(request_id, refresh=True)

        logger.info("Request %s cancelled from %s", request_id, observed.value)
        for driver_id in notified_drivers:
            self._notify(driver_id, "request_cancelled", {"request_id": request_id})
        return outcome

    async def complete_request(
        self, request_id: int, caller_id: int, role: Union[Role, str]
    ) -> CompletionOutcome:
        """
        Complete an accepted request, or return the existing receipt when
        the request is already completed.  Retries never create a second
        receipt.
        """
        _require_id(request_id, "request_id")
        _require_id(caller_id, "caller_id")
        role = _require_role(role)

        async with self._transaction() as session:
            requests = RequestRepository(session)
            offers = OfferRepository(session)
            receipts = ReceiptRepository(session)

            request = await requests.get_by_id(request_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            offer = None
            if request.accepted_offer_id is not None:
                offer = await offers.get_by_id(request.accepted_offer_id)

            if role is Role.CUSTOMER:
                authorized = request.customer_id == caller_id
            else:
                authorized = offer is not None and offer.driver_id == caller_id
            if not authorized:
                raise NotFoundError("Request not found", {"request_id": request_id})

            if request.status == RequestStatus.COMPLETED:
                receipt = await receipts.get_by_request(request_id)
                if receipt is None:
                    receipt = await self._issue_receipt(session, request, offer)
                return CompletionOutcome(request, receipt, already_completed=True)

            ensure_transition(request.status, RequestStatus.COMPLETED)
            if not await requests.mark_completed(request_id):
                raise ConflictError(
                    "Request was modified concurrently", {"request_id": request_id}
                )
            settled = await PaymentRepository(session).transition(
                request.payment_id, PaymentStatus.PENDING, PaymentStatus.COMPLETED
            )
            if not settled:
                raise ConflictError(
                    "Payment is not pending", {"payment_id": request.payment_id}
                )
            request = await requests.get_by_id(request_id, refresh=True)
            receipt = await receipts.get_by_request(request_id)
            if receipt is None:
                receipt = await self._issue_receipt(session, request, offer)

        logger.info("Request %s completed by %s %s", request_id, role.value, caller_id)
        payload = {"request_id": request_id, "receipt_id": receipt.id}
        self._notify(request.customer_id, "request_completed", payload)
        self._notify(offer.driver_id, "request_completed", payload)
        return CompletionOutcome(request, receipt)

    # ── Driver: offers ───────────────────────────────────────────────

    async def list_available_requests(
        self,
        driver_id: int,
        *,
        vehicle_type: Optional[int] = None,
        origin: Optional[Location] = None,
        radius_km: Optional[float] = None,
    ) -> list[AvailableRequest]:
        """
        Pending requests the driver can still bid on.  With an *origin*
        the result is limited to *radius_km* and sorted nearest first.
        """
        _require_id(driver_id, "driver_id")
        if vehicle_type is not None:
            _require_id(vehicle_type, "vehicle_type")
        radius = _require_radius(self.default_radius_km if radius_km is None else radius_km)
        cells = None
        if origin is not None:
            _require_location(origin, "origin")
            cells = cells_within(
                origin.latitude, origin.longitude, radius,
                self.h3_resolution, self.h3_max_ring,
            )

        async with self._transaction() as session:
            driver = _require_approved(
                await DriverRepository(session).get_by_id(driver_id), driver_id
            )
            rows = await RequestRepository(session).list_available(
                driver_id=driver_id,
                vehicle_type=vehicle_type or driver.vehicle_type,
                h3_cells=cells,
            )

        available: list[AvailableRequest] = []
        for request in rows:
            to_pickup = None
            if origin is not None:
                km = haversine_km(
                    origin.latitude, origin.longitude,
                    request.pickup_lat, request.pickup_lon,
                )
                if km > radius:
                    continue
                to_pickup = round(km, 2)
            available.append(AvailableRequest(request, self._estimate(request), to_pickup))
        if origin is not None:
            available.sort(key=lambda a: a.distance_to_pickup_km)
        return available

    async def create_offer(
        self, request_id: int, driver_id: int, price: float
    ) -> OfferOutcome:
        _require_id(request_id, "request_id")
        _require_id(driver_id, "driver_id")
        price = _require_price(price)

        async with self._transaction() as session:
            _require_approved(
                await DriverRepository(session).get_by_id(driver_id), driver_id
            )

        async with self._transaction() as session:
            requests = RequestRepository(session)
            offers = OfferRepository(session)

            request = await requests.get_by_id(request_id, for_update=True)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            if request.status != RequestStatus.PENDING:
                raise ConflictError(
                    "Request is no longer accepting offers",
                    {"status": RequestStatus(request.status).value},
                )

            existing = await offers.get_by_request_and_driver(request_id, driver_id)
            if existing is not None:
                if existing.status != OfferStatus.REJECTED:
                    raise ConflictError(
                        "Driver already has an active offer on this request",
                        {"offer_id": existing.id},
                    )
                ensure_transition(existing.status, OfferStatus.PENDING)
                if not await offers.reopen(existing.id, price):
                    raise ConflictError(
                        "Offer was modified concurrently", {"offer_id": existing.id}
                    )
                outcome = OfferOutcome(
                    await offers.get_by_id(existing.id, refresh=True), reopened=True
                )
            else:
                try:
                    offer = await offers.create(
                        OfferModel(
                            request_id=request_id,
                            driver_id=driver_id,
                            offered_price=price,
                            status=OfferStatus.PENDING,
                        )
                    )
                except IntegrityError as exc:
                    raise ConflictError(
                        "Driver already has an offer on this request",
                        {"request_id": request_id},
                    ) from exc
                outcome = OfferOutcome(offer)
            customer_id = request.customer_id

        logger.info(
            "Driver %s offered %.2f on request %s%s",
            driver_id, price, request_id, " (reopened)" if outcome.reopened else "",
        )
        self._notify(
            customer_id,
            "offer_updated" if outcome.reopened else "offer_created",
            {"request_id": request_id, "offer_id": outcome.offer.id, "price": price},
        )
        return outcome

    async def cancel_offer(self, offer_id: int, driver_id: int) -> OfferModel:
        _require_id(offer_id, "offer_id")
        _require_id(driver_id, "driver_id")

        async with self._transaction() as session:
            offers = OfferRepository(session)
            offer = await offers.get_for_driver(offer_id, driver_id)
            if offer is None:
                raise NotFoundError("Offer not found", {"offer_id": offer_id})
            if offer.status != OfferStatus.PENDING:
                raise ConflictError(
                    "Only pending offers can be cancelled", {"status": offer.status.value}
                )
            if not await offers.withdraw(offer_id, driver_id):
                raise ConflictError("Offer was modified concurrently", {"offer_id": offer_id})
            offer = await offers.get_by_id(offer_id, refresh=True)
            request = await RequestRepository(session).get_by_id(offer.request_id)

        self._notify(
            request.customer_id,
            "offer_withdrawn",
            {"request_id": request.id, "offer_id": offer_id},
        )
        return offer

    async def list_driver_offers(self, driver_id: int) -> list[OfferModel]:
        _require_id(driver_id, "driver_id")
        async with self._transaction() as session:
            return await OfferRepository(session).list_active_for_driver(driver_id)

    async def list_active_jobs(self, driver_id: int) -> list[ActiveJob]:
        """Accepted requests assigned to the driver, with trip distance and time."""
        _require_id(driver_id, "driver_id")
        async with self._transaction() as session:
            rows = await RequestRepository(session).list_assigned_to_driver(driver_id)
        return [
            ActiveJob(request, offer, self._estimate(request)) for request, offer in rows
        ]

    async def list_job_history(
        self, driver_id: int, limit: int = 20, offset: int = 0
    ) -> HistoryPage:
        """Requests the driver completed, newest first."""
        _require_id(driver_id, "driver_id")
        limit, offset = _require_page(limit, offset)
        async with self._transaction() as session:
            rows, total = await RequestRepository(session).list_completed_for_driver(
                driver_id, limit=limit, offset=offset
            )
        return HistoryPage(
            items=[HistoryEntry(*row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def reject_pending_offers(self, driver_id: int) -> int:
        """Withdraw every pending offer of the driver; returns how many."""
        _require_id(driver_id, "driver_id")
        async with self._transaction() as session:
            count = await OfferRepository(session).withdraw_all_pending(driver_id)
        logger.info("Driver %s withdrew %d pending offers", driver_id, count)
        return count

    async def notify_arrival(self, request_id: int, driver_id: int) -> RequestModel:
        _require_id(request_id, "request_id")
        _require_id(driver_id, "driver_id")

        async with self._transaction() as session:
            request = await RequestRepository(session).get_by_id(request_id)
            offer = None
            if request is not None and request.accepted_offer_id is not None:
                offer = await OfferRepository(session).get_by_id(request.accepted_offer_id)
            if offer is None or offer.driver_id != driver_id:
                raise NotFoundError("Request not found", {"request_id": request_id})
            if request.status != RequestStatus.ACCEPTED:
                raise ConflictError(
                    "Request is not in progress",
                    {"status": RequestStatus(request.status).value},
                )

        self._notify(
            request.customer_id,
            "driver_arrived",
            {"request_id": request_id, "driver_id": driver_id},
        )
        return request
