"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  State-changing methods are *conditioned*
updates: the expected current status is part of the ``WHERE`` clause and
the method reports whether a row was actually changed.  A ``False`` return
means another writer got there first.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    CustomerModel,
    DriverModel,
    OfferModel,
    PaymentModel,
    ReceiptModel,
    RequestModel,
    utcnow,
)
from slidebid.domain.enums import (
    ACTIVE_OFFER_STATUSES,
    OfferStatus,
    PaymentStatus,
    RequestStatus,
)


async def _apply(session: AsyncSession, stmt) -> int:
    """Execute a conditioned UPDATE and return the affected row count."""
    result = await session.execute(
        stmt.execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


class RequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, request: RequestModel) -> RequestModel:
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_by_id(
        self, request_id: int, *, for_update: bool = False, refresh: bool = False
    ) -> Optional[RequestModel]:
        if not for_update:
            return await self.session.get(
                RequestModel, request_id, populate_existing=refresh
            )
        # SELECT ... FOR UPDATE serialises offer inserts against acceptance.
        result = await self.session.execute(
            select(RequestModel)
            .where(RequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_customer(
        self, request_id: int, customer_id: int
    ) -> Optional[RequestModel]:
        result = await self.session.execute(
            select(RequestModel).where(
                RequestModel.id == request_id,
                RequestModel.customer_id == customer_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active_for_customer(self, customer_id: int) -> Optional[RequestModel]:
        """Accepted request first, otherwise the newest pending one."""
        for status in (RequestStatus.ACCEPTED, RequestStatus.PENDING):
            result = await self.session.execute(
                select(RequestModel)
                .where(
                    RequestModel.customer_id == customer_id,
                    RequestModel.status == status,
                )
                .order_by(RequestModel.created_at.desc(), RequestModel.id.desc())
                .limit(1)
            )
            request = result.scalar_one_or_none()
            if request is not None:
                return request
        return None

    async def list_available(
        self,
        *,
        driver_id: int,
        vehicle_type: Optional[int] = None,
        h3_cells: Optional[Iterable[str]] = None,
    ) -> list[RequestModel]:
        """Pending requests the driver holds no active offer on."""
        has_active_offer = (
            select(OfferModel.id)
            .where(
                OfferModel.request_id == RequestModel.id,
                OfferModel.driver_id == driver_id,
                OfferModel.status.in_(ACTIVE_OFFER_STATUSES),
            )
            .exists()
        )
        query = select(RequestModel).where(
            RequestModel.status == RequestStatus.PENDING, ~has_active_offer
        )
        if vehicle_type is not None:
            query = query.where(RequestModel.vehicle_type == vehicle_type)
        if h3_cells is not None:
            query = query.where(RequestModel.pickup_h3.in_(sorted(h3_cells)))
        result = await self.session.execute(
            query.order_by(RequestModel.created_at.desc(), RequestModel.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_customer(
        self,
        customer_id: int,
        *,
        status: Optional[RequestStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[tuple[RequestModel, Optional[OfferModel], Optional[ReceiptModel]]], int]:
        """Newest first, with the accepted offer and receipt when present."""
        conditions = [RequestModel.customer_id == customer_id]
        if status is not None:
            conditions.append(RequestModel.status == status)

        total = (
            await self.session.execute(
                select(func.count()).select_from(RequestModel).where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            select(RequestModel, OfferModel, ReceiptModel)
            .outerjoin(OfferModel, OfferModel.id == RequestModel.accepted_offer_id)
            .outerjoin(ReceiptModel, ReceiptModel.request_id == RequestModel.id)
            .where(*conditions)
            .order_by(RequestModel.created_at.desc(), RequestModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [tuple(row) for row in result.all()], total

    async def list_assigned_to_driver(
        self, driver_id: int
    ) -> list[tuple[RequestModel, OfferModel]]:
        """Accepted requests whose accepted offer belongs to the driver."""
        result = await self.session.execute(
            select(RequestModel, OfferModel)
            .join(OfferModel, OfferModel.id == RequestModel.accepted_offer_id)
            .where(
                OfferModel.driver_id == driver_id,
                OfferModel.status == OfferStatus.ACCEPTED,
                RequestModel.status == RequestStatus.ACCEPTED,
            )
            .order_by(RequestModel.created_at.desc(), RequestModel.id.desc())
        )
        return [tuple(row) for row in result.all()]

    async def list_completed_for_driver(
        self, driver_id: int, *, limit: int = 20, offset: int = 0
    ) -> tuple[list[tuple[RequestModel, OfferModel, Optional[ReceiptModel]]], int]:
        conditions = (
            OfferModel.driver_id == driver_id,
            OfferModel.status == OfferStatus.ACCEPTED,
            RequestModel.status == RequestStatus.COMPLETED,
        )
        total = (
            await self.session.execute(
                select(func.count())
                .select_from(RequestModel)
                .join(OfferModel, OfferModel.id == RequestModel.accepted_offer_id)
                .where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            select(RequestModel, OfferModel, ReceiptModel)
            .join(OfferModel, OfferModel.id == RequestModel.accepted_offer_id)
            .outerjoin(ReceiptModel, ReceiptModel.request_id == RequestModel.id)
            .where(*conditions)
            .order_by(RequestModel.created_at.desc(), RequestModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [tuple(row) for row in result.all()], total

    async def mark_accepted(
        self, request_id: int, offer_id: int, payment_id: int
    ) -> bool:
        return await _apply(
            self.session,
            update(RequestModel)
            .where(
                RequestModel.id == request_id,
                RequestModel.status == RequestStatus.PENDING,
            )
            .values(
                status=RequestStatus.ACCEPTED,
                accepted_offer_id=offer_id,
                payment_id=payment_id,
            ),
        ) == 1

    async def mark_cancelled(
        self, request_id: int, expected: RequestStatus
    ) -> bool:
        return await _apply(
            self.session,
            update(RequestModel)
            .where(RequestModel.id == request_id, RequestModel.status == expected)
            .values(
                status=RequestStatus.CANCELLED,
                accepted_offer_id=None,
                payment_id=None,
            ),
        ) == 1

    async def mark_completed(self, request_id: int) -> bool:
        return await _apply(
            self.session,
            update(RequestModel)
            .where(
                RequestModel.id == request_id,
                RequestModel.status == RequestStatus.ACCEPTED,
            )
            .values(status=RequestStatus.COMPLETED),
        ) == 1


class OfferRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, offer: OfferModel) -> OfferModel:
        self.session.add(offer)
        await self.session.flush()
        return offer

    async def get_by_id(
        self, offer_id: int, *, refresh: bool = False
    ) -> Optional[OfferModel]:
        return await self.session.get(OfferModel, offer_id, populate_existing=refresh)

    async def get_for_driver(self, offer_id: int, driver_id: int) -> Optional[OfferModel]:
        result = await self.session.execute(
            select(OfferModel).where(
                OfferModel.id == offer_id, OfferModel.driver_id == driver_id
            )
        )
        return result.scalar_one_or_none()

    async def get_by_request_and_driver(
        self, request_id: int, driver_id: int
    ) -> Optional[OfferModel]:
        result = await self.session.execute(
            select(OfferModel).where(
                OfferModel.request_id == request_id,
                OfferModel.driver_id == driver_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_request(
        self, request_id: int, status: Optional[OfferStatus] = None
    ) -> list[OfferModel]:
        query = select(OfferModel).where(OfferModel.request_id == request_id)
        if status is not None:
            query = query.where(OfferModel.status == status)
        result = await self.session.execute(
            query.order_by(OfferModel.offered_price.asc(), OfferModel.id.asc())
        )
        return list(result.scalars().all())

    async def list_active_for_driver(self, driver_id: int) -> list[OfferModel]:
        result = await self.session.execute(
            select(OfferModel)
            .join(RequestModel, RequestModel.id == OfferModel.request_id)
            .where(
                OfferModel.driver_id == driver_id,
                OfferModel.status != OfferStatus.REJECTED,
                RequestModel.status.in_(
                    [RequestStatus.PENDING, RequestStatus.ACCEPTED]
                ),
            )
            .order_by(OfferModel.created_at.desc(), OfferModel.id.desc())
        )
        return list(result.scalars().all())

    async def reopen(self, offer_id: int, price: float) -> bool:
        """Rejected -> pending with a new price and a fresh timestamp."""
        return await _apply(
            self.session,
            update(OfferModel)
            .where(
                OfferModel.id == offer_id,
                OfferModel.status == OfferStatus.REJECTED,
            )
            .values(
                status=OfferStatus.PENDING,
                offered_price=price,
                created_at=utcnow(),
            ),
        ) == 1

    async def mark_accepted(self, offer_id: int, request_id: int) -> bool:
        return await _apply(
            self.session,
            update(OfferModel)
            .where(
                OfferModel.id == offer_id,
                OfferModel.request_id == request_id,
                OfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.ACCEPTED),
        ) == 1

    async def pending_driver_ids(
        self, request_id: int, exclude_offer_id: Optional[int] = None
    ) -> list[int]:
        query = select(OfferModel.driver_id).where(
            OfferModel.request_id == request_id,
            OfferModel.status == OfferStatus.PENDING,
        )
        if exclude_offer_id is not None:
            query = query.where(OfferModel.id != exclude_offer_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def reject_pending(
        self, request_id: int, exclude_offer_id: Optional[int] = None
    ) -> int:
        stmt = update(OfferModel).where(
            OfferModel.request_id == request_id,
            OfferModel.status == OfferStatus.PENDING,
        )
        if exclude_offer_id is not None:
            stmt = stmt.where(OfferModel.id != exclude_offer_id)
        return await _apply(self.session, stmt.values(status=OfferStatus.REJECTED))

    async def withdraw(self, offer_id: int, driver_id: int) -> bool:
        return await _apply(
            self.session,
            update(OfferModel)
            .where(
                OfferModel.id == offer_id,
                OfferModel.driver_id == driver_id,
                OfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.REJECTED),
        ) == 1

    async def release_accepted(self, offer_id: int) -> bool:
        return await _apply(
            self.session,
            update(OfferModel)
            .where(
                OfferModel.id == offer_id,
                OfferModel.status == OfferStatus.ACCEPTED,
            )
            .values(status=OfferStatus.REJECTED),
        ) == 1

    async def withdraw_all_pending(self, driver_id: int) -> int:
        return await _apply(
            self.session,
            update(OfferModel)
            .where(
                OfferModel.driver_id == driver_id,
                OfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.REJECTED),
        )


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, *, customer_id: int, amount: float, payment_method_ref: str
    ) -> PaymentModel:
        payment = PaymentModel(
            customer_id=customer_id,
            amount=amount,
            payment_method_ref=payment_method_ref,
            status=PaymentStatus.PENDING,
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_by_id(
        self, payment_id: int, *, refresh: bool = False
    ) -> Optional[PaymentModel]:
        return await self.session.get(
            PaymentModel, payment_id, populate_existing=refresh
        )

    async def transition(
        self, payment_id: int, expected: PaymentStatus, new: PaymentStatus
    ) -> bool:
        return await _apply(
            self.session,
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status == expected)
            .values(status=new),
        ) == 1


class ReceiptRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_request(self, request_id: int) -> Optional[ReceiptModel]:
        result = await self.session.execute(
            select(ReceiptModel).where(ReceiptModel.request_id == request_id)
        )
        return result.scalar_one_or_none()

    async def create(self, receipt: ReceiptModel) -> ReceiptModel:
        self.session.add(receipt)
        await self.session.flush()
        return receipt


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)


class CustomerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, customer_id: int) -> Optional[CustomerModel]:
        return await self.session.get(CustomerModel, customer_id)
