"""
Driver endpoints
================

GET  /api/v1/driver/requests/available     -- pending requests to bid on
POST /api/v1/driver/offers                 -- submit (or re-submit) an offer
GET  /api/v1/driver/offers                 -- the caller's live offers
POST /api/v1/driver/offers/reject-pending  -- withdraw every pending offer
POST /api/v1/driver/offers/{id}/cancel     -- withdraw one pending offer
POST /api/v1/driver/requests/{id}/arrived  -- tell the customer the slide is here
GET  /api/v1/driver/jobs/active            -- accepted jobs with trip distance and time
GET  /api/v1/driver/jobs/history           -- completed jobs
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from slidebid.api.dependencies import Caller, get_engine, require_driver
from slidebid.api.middleware import limiter
from slidebid.api.schemas import (
    ActiveJobResponse,
    AvailableRequestResponse,
    HistoryPageResponse,
    OfferCreate,
    OfferCreatedResponse,
    OfferResponse,
    Outcome,
    RequestResponse,
    WithdrawnResponse,
)
from slidebid.config import settings
from slidebid.domain.entities import Location
from slidebid.domain.errors import ValidationFailed
from slidebid.services.negotiation import NegotiationEngine

router = APIRouter(prefix="/driver", tags=["driver"])


@router.get(
    "/requests/available",
    response_model=Outcome[list[AvailableRequestResponse]],
    summary="List requests open for offers",
    description=(
        "Without coordinates, lists every pending request of the vehicle "
        "type.  With ``lat``/``lon`` the list is limited to ``radius_km`` "
        "and sorted nearest first."
    ),
)
@limiter.limit(settings.rate_limit)
async def list_available_requests(
    request: Request,
    vehicle_type: Optional[int] = Query(None, ge=1),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    if (lat is None) != (lon is None):
        raise ValidationFailed("lat and lon must be given together")
    origin = Location(lat, lon) if lat is not None else None
    available = await engine.list_available_requests(
        caller.id, vehicle_type=vehicle_type, origin=origin, radius_km=radius_km
    )
    return Outcome(
        data=[AvailableRequestResponse.model_validate(a) for a in available]
    )


@router.post(
    "/offers",
    status_code=201,
    response_model=Outcome[OfferCreatedResponse],
    summary="Submit an offer",
    description="A driver whose earlier offer was rejected re-offers on the same row.",
)
@limiter.limit(settings.rate_limit)
async def create_offer(
    request: Request,
    body: OfferCreate,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    outcome = await engine.create_offer(body.request_id, caller.id, body.price)
    message = "Offer updated" if outcome.reopened else "Offer created"
    return Outcome(message=message, data=OfferCreatedResponse.model_validate(outcome))


@router.get(
    "/offers",
    response_model=Outcome[list[OfferResponse]],
    summary="List the caller's live offers",
)
@limiter.limit(settings.rate_limit)
async def list_driver_offers(
    request: Request,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    offers = await engine.list_driver_offers(caller.id)
    return Outcome(data=[OfferResponse.model_validate(o) for o in offers])


@router.post(
    "/offers/reject-pending",
    response_model=Outcome[WithdrawnResponse],
    summary="Withdraw all pending offers",
)
@limiter.limit(settings.rate_limit)
async def reject_pending_offers(
    request: Request,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    count = await engine.reject_pending_offers(caller.id)
    return Outcome(
        message=f"Withdrew {count} pending offers",
        data=WithdrawnResponse(withdrawn=count),
    )


@router.post(
    "/offers/{offer_id}/cancel",
    response_model=Outcome[OfferResponse],
    summary="Withdraw a pending offer",
)
@limiter.limit(settings.rate_limit)
async def cancel_offer(
    request: Request,
    offer_id: int,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    offer = await engine.cancel_offer(offer_id, caller.id)
    return Outcome(message="Offer withdrawn", data=OfferResponse.model_validate(offer))


@router.post(
    "/requests/{request_id}/arrived",
    response_model=Outcome[RequestResponse],
    summary="Notify the customer of arrival",
)
@limiter.limit(settings.rate_limit)
async def notify_arrival(
    request: Request,
    request_id: int,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    notified = await engine.notify_arrival(request_id, caller.id)
    return Outcome(message="Customer notified", data=RequestResponse.model_validate(notified))


@router.get(
    "/jobs/active",
    response_model=Outcome[list[ActiveJobResponse]],
    summary="List the caller's accepted jobs",
)
@limiter.limit(settings.rate_limit)
async def list_active_jobs(
    request: Request,
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    jobs = await engine.list_active_jobs(caller.id)
    return Outcome(data=[ActiveJobResponse.model_validate(j) for j in jobs])


@router.get(
    "/jobs/history",
    response_model=Outcome[HistoryPageResponse],
    summary="List the caller's completed jobs",
)
@limiter.limit(settings.rate_limit)
async def list_job_history(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(require_driver),
    engine: NegotiationEngine = Depends(get_engine),
):
    page = await engine.list_job_history(caller.id, limit, offset)
    return Outcome(data=HistoryPageResponse.model_validate(page))
