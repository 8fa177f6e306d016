"""
Customer request endpoints
==========================

POST /api/v1/requests                 -- create a transport request
GET  /api/v1/requests/active          -- the caller's in-progress request
GET  /api/v1/requests/history         -- the caller's past and current requests
GET  /api/v1/requests/{id}            -- details and trip estimate
GET  /api/v1/requests/{id}/offers     -- pending offers, cheapest first
POST /api/v1/requests/{id}/accept     -- accept one offer
POST /api/v1/requests/{id}/cancel     -- cancel a pending / accepted request
POST /api/v1/requests/{id}/complete   -- complete (customer or assigned driver)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from slidebid.api.dependencies import (
    Caller,
    get_caller,
    get_engine,
    require_customer,
)
from slidebid.api.middleware import limiter
from slidebid.api.schemas import (
    AcceptOfferBody,
    AcceptResponse,
    CancelResponse,
    CompletionResponse,
    HistoryPageResponse,
    OfferResponse,
    Outcome,
    RequestCreate,
    RequestDetailsResponse,
    RequestResponse,
)
from slidebid.config import settings
from slidebid.domain.entities import Location
from slidebid.services.negotiation import NegotiationEngine

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post(
    "",
    status_code=201,
    response_model=Outcome[RequestResponse],
    summary="Create a transport request",
)
@limiter.limit(settings.rate_limit)
async def create_request(
    request: Request,
    body: RequestCreate,
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    created = await engine.create_request(
        caller.id,
        Location(body.pickup.lat, body.pickup.lon, body.pickup.address),
        Location(body.dropoff.lat, body.dropoff.lon, body.dropoff.address),
        body.vehicle_type,
        booking_time=body.booking_time,
        message=body.message,
    )
    return Outcome(
        message="Request created",
        data=RequestResponse.model_validate(created),
    )


@router.get(
    "/active",
    response_model=Outcome[Optional[RequestResponse]],
    summary="Get the caller's active request",
)
@limiter.limit(settings.rate_limit)
async def get_active_request(
    request: Request,
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    active = await engine.get_active_request(caller.id)
    if active is None:
        return Outcome(message="No active request")
    return Outcome(data=RequestResponse.model_validate(active))


@router.get(
    "/history",
    response_model=Outcome[HistoryPageResponse],
    summary="List the caller's requests",
    description=(
        "Newest first, with the accepted offer and receipt when present.  "
        "``status`` must be one of pending, accepted, completed, cancelled."
    ),
)
@limiter.limit(settings.rate_limit)
async def list_request_history(
    request: Request,
    status: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    page = await engine.list_request_history(caller.id, status, limit, offset)
    return Outcome(data=HistoryPageResponse.model_validate(page))


@router.get(
    "/{request_id}",
    response_model=Outcome[RequestDetailsResponse],
    summary="Get request details",
)
@limiter.limit(settings.rate_limit)
async def get_request_details(
    request: Request,
    request_id: int,
    caller: Caller = Depends(get_caller),
    engine: NegotiationEngine = Depends(get_engine),
):
    details = await engine.get_request_details(request_id, caller.id, caller.role)
    return Outcome(data=RequestDetailsResponse.model_validate(details))


@router.get(
    "/{request_id}/offers",
    response_model=Outcome[list[OfferResponse]],
    summary="List pending offers on a request",
)
@limiter.limit(settings.rate_limit)
async def list_request_offers(
    request: Request,
    request_id: int,
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    offers = await engine.list_request_offers(request_id, caller.id)
    return Outcome(data=[OfferResponse.model_validate(o) for o in offers])


@router.post(
    "/{request_id}/accept",
    response_model=Outcome[AcceptResponse],
    summary="Accept a driver's offer",
    description=(
        "Atomically accepts the offer, creates a pending payment and rejects "
        "every other pending offer.  Returns 409 if the request or offer "
        "changed in the meantime."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_offer(
    request: Request,
    request_id: int,
    body: AcceptOfferBody,
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    outcome = await engine.accept_offer(
        request_id, caller.id, body.offer_id, body.payment_method_ref
    )
    return Outcome(message="Offer accepted", data=AcceptResponse.model_validate(outcome))


@router.post(
    "/{request_id}/cancel",
    response_model=Outcome[CancelResponse],
    summary="Cancel a request",
)
@limiter.limit(settings.rate_limit)
async def cancel_request(
    request: Request,
    request_id: int,
    caller: Caller = Depends(require_customer),
    engine: NegotiationEngine = Depends(get_engine),
):
    outcome = await engine.cancel_request(request_id, caller.id)
    return Outcome(message="Request cancelled", data=CancelResponse.model_validate(outcome))


@router.post(
    "/{request_id}/complete",
    response_model=Outcome[CompletionResponse],
    summary="Complete a request",
    description="Idempotent: completing twice returns the same receipt.",
)
@limiter.limit(settings.rate_limit)
async def complete_request(
    request: Request,
    request_id: int,
    caller: Caller = Depends(get_caller),
    engine: NegotiationEngine = Depends(get_engine),
):
    outcome = await engine.complete_request(request_id, caller.id, caller.role)
    message = "Request already completed" if outcome.already_completed else "Request completed"
    return Outcome(message=message, data=CompletionResponse.model_validate(outcome))
