"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from slidebid.domain.enums import OfferStatus, PaymentStatus, RequestStatus

T = TypeVar("T")


# ── Envelope ──────────────────────────────────────────────────────────


class ErrorBody(BaseModel):
    kind: str
    details: dict[str, Any] = {}


class Outcome(BaseModel, Generic[T]):
    success: bool = True
    message: str = ""
    error: Optional[ErrorBody] = None
    data: Optional[T] = None


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)


class RequestCreate(BaseModel):
    pickup: LocationIn
    dropoff: LocationIn
    vehicle_type: int = Field(1, ge=1)
    booking_time: Optional[datetime] = None
    message: Optional[str] = Field(None, max_length=500)


class AcceptOfferBody(BaseModel):
    offer_id: int = Field(..., ge=1)
    payment_method_ref: Union[int, str] = Field(
        ...,
        description="Opaque reference to the customer's stored payment method.",
    )


class OfferCreate(BaseModel):
    request_id: int = Field(..., ge=1)
    price: float = Field(..., gt=0, allow_inf_nan=False)


# ── Responses ─────────────────────────────────────────────────────────


class TripEstimateResponse(BaseModel):
    distance_km: float
    travel_time_minutes: int
    price: float

    model_config = {"from_attributes": True}


class RequestResponse(BaseModel):
    id: int
    customer_id: int
    pickup_lat: float
    pickup_lon: float
    pickup_address: Optional[str] = None
    dropoff_lat: float
    dropoff_lon: float
    dropoff_address: Optional[str] = None
    vehicle_type: int
    status: RequestStatus
    accepted_offer_id: Optional[int] = None
    payment_id: Optional[int] = None
    booking_time: Optional[datetime] = None
    customer_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OfferResponse(BaseModel):
    id: int
    request_id: int
    driver_id: int
    offered_price: float
    status: OfferStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    customer_id: int
    amount: float
    status: PaymentStatus
    payment_method_ref: str

    model_config = {"from_attributes": True}


class ReceiptResponse(BaseModel):
    id: int
    request_id: int
    customer_id: int
    driver_id: int
    offer_id: int
    payment_id: int
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    vehicle_type: int
    service_price: float
    payment_method_ref: str
    payment_status: str
    distance_km: float
    travel_time_minutes: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RequestDetailsResponse(BaseModel):
    request: RequestResponse
    estimate: TripEstimateResponse
    offers: list[OfferResponse] = []
    own_offer: Optional[OfferResponse] = None
    driver_distance_km: Optional[float] = None
    driver_eta_minutes: Optional[int] = None

    model_config = {"from_attributes": True}


class AvailableRequestResponse(BaseModel):
    request: RequestResponse
    estimate: TripEstimateResponse
    distance_to_pickup_km: Optional[float] = None

    model_config = {"from_attributes": True}


class OfferCreatedResponse(BaseModel):
    offer: OfferResponse
    reopened: bool

    model_config = {"from_attributes": True}


class AcceptResponse(BaseModel):
    request: RequestResponse
    offer: OfferResponse
    payment: PaymentResponse
    rejected_driver_ids: list[int] = []

    model_config = {"from_attributes": True}


class CancelResponse(BaseModel):
    request: RequestResponse
    rejected_offers: int
    released_offer: Optional[OfferResponse] = None
    voided_payment: Optional[PaymentResponse] = None

    model_config = {"from_attributes": True}


class CompletionResponse(BaseModel):
    request: RequestResponse
    receipt: ReceiptResponse
    already_completed: bool

    model_config = {"from_attributes": True}


class WithdrawnResponse(BaseModel):
    withdrawn: int


class HealthResponse(BaseModel):
    status: str = "ok"
    database: str = "ok"


class HistoryEntryResponse(BaseModel):
    request: RequestResponse
    offer: Optional[OfferResponse] = None
    receipt: Optional[ReceiptResponse] = None

    model_config = {"from_attributes": True}


class HistoryPageResponse(BaseModel):
    items: list[HistoryEntryResponse]
    total: int
    limit: int
    offset: int

    model_config = {"from_attributes": True}


class ActiveJobResponse(BaseModel):
    request: RequestResponse
    offer: OfferResponse
    estimate: TripEstimateResponse

    model_config = {"from_attributes": True}
