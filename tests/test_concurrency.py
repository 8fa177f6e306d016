"""
Concurrency safety tests.

Demonstrates:
1. Two customers' worth of accepts racing on one request: one winner.
2. A conditioned update that matches zero rows rolls back the whole
   transaction (no orphan payment).
3. Database constraints catch duplicates the read checks miss.
4. Cancel racing accept always ends in a consistent cancelled request.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from slidebid.domain.enums import OfferStatus, RequestStatus, Role
from slidebid.domain.errors import ConflictError
from slidebid.infrastructure.models import (
    OfferModel,
    PaymentModel,
    ReceiptModel,
    RequestModel,
)
from slidebid.infrastructure.repositories import OfferRepository, RequestRepository
from tests.conftest import DROPOFF, PICKUP


async def _count(session_factory, model, *where) -> int:
    async with session_factory() as session:
        query = select(func.count()).select_from(model)
        if where:
            query = query.where(*where)
        return (await session.execute(query)).scalar()


class TestAcceptRace:
    @pytest.mark.asyncio
    async def test_exactly_one_accept_wins(self, negotiation, session_factory, pending_request):
        a = (await negotiation.create_offer(pending_request.id, 5, 300)).offer
        b = (await negotiation.create_offer(pending_request.id, 6, 280)).offer

        results = await asyncio.gather(
            negotiation.accept_offer(pending_request.id, 1, a.id, 9),
            negotiation.accept_offer(pending_request.id, 1, b.id, 9),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)

        assert await _count(session_factory, PaymentModel) == 1
        assert await _count(
            session_factory, OfferModel, OfferModel.status == OfferStatus.ACCEPTED
        ) == 1
        async with session_factory() as session:
            stored = await session.get(RequestModel, pending_request.id)
        assert stored.accepted_offer_id == winners[0].offer.id
        assert stored.payment_id == winners[0].payment.id

    @pytest.mark.asyncio
    async def test_lost_request_update_leaves_no_payment(
        self, negotiation, session_factory, pending_request
    ):
        offer = (await negotiation.create_offer(pending_request.id, 5, 300)).offer

        # Another writer accepted between our read and our update.
        with patch.object(
            RequestRepository, "mark_accepted", AsyncMock(return_value=False)
        ):
            with pytest.raises(ConflictError):
                await negotiation.accept_offer(pending_request.id, 1, offer.id, 9)

        assert await _count(session_factory, PaymentModel) == 0
        async with session_factory() as session:
            stored = await session.get(RequestModel, pending_request.id)
            stored_offer = await session.get(OfferModel, offer.id)
        assert stored.status == RequestStatus.PENDING
        assert stored.payment_id is None
        assert stored_offer.status == OfferStatus.PENDING

    @pytest.mark.asyncio
    async def test_lost_offer_update_rolls_back_request(
        self, negotiation, session_factory, pending_request
    ):
        offer = (await negotiation.create_offer(pending_request.id, 5, 300)).offer

        # The driver withdrew the offer concurrently.
        with patch.object(
            OfferRepository, "mark_accepted", AsyncMock(return_value=False)
        ):
            with pytest.raises(ConflictError):
                await negotiation.accept_offer(pending_request.id, 1, offer.id, 9)

        assert await _count(session_factory, PaymentModel) == 0
        async with session_factory() as session:
            stored = await session.get(RequestModel, pending_request.id)
        assert stored.status == RequestStatus.PENDING
        assert stored.accepted_offer_id is None


class TestConditionedUpdates:
    @pytest.mark.asyncio
    async def test_stale_status_matches_zero_rows(self, negotiation, session_factory):
        request = await negotiation.create_request(1, PICKUP, DROPOFF, 1)
        await negotiation.cancel_request(request.id, 1)

        async with session_factory() as session:
            async with session.begin():
                repo = RequestRepository(session)
                assert await repo.mark_accepted(request.id, 1, 1) is False
                assert await repo.mark_cancelled(request.id, RequestStatus.PENDING) is False
                assert await repo.mark_completed(request.id) is False


class TestDatabaseGuards:
    @pytest.mark.asyncio
    async def test_duplicate_offer_insert_reported_as_conflict(
        self, negotiation, session_factory, pending_request
    ):
        await negotiation.create_offer(pending_request.id, 5, 300)

        # Simulate a concurrent insert the pre-check could not see.
        with patch.object(
            OfferRepository, "get_by_request_and_driver", AsyncMock(return_value=None)
        ):
            with pytest.raises(ConflictError):
                await negotiation.create_offer(pending_request.id, 5, 250)

        assert await _count(session_factory, OfferModel) == 1

    @pytest.mark.asyncio
    async def test_one_accepted_offer_per_request(self, session_factory, pending_request):
        with pytest.raises(IntegrityError):
            async with session_factory() as session:
                async with session.begin():
                    session.add_all(
                        [
                            OfferModel(
                                request_id=pending_request.id, driver_id=5,
                                offered_price=300, status=OfferStatus.ACCEPTED,
                            ),
                            OfferModel(
                                request_id=pending_request.id, driver_id=6,
                                offered_price=280, status=OfferStatus.ACCEPTED,
                            ),
                        ]
                    )

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_offers(self, negotiation, session_factory, pending_request):
        results = await asyncio.gather(
            negotiation.create_offer(pending_request.id, 5, 300),
            negotiation.create_offer(pending_request.id, 5, 290),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert await _count(session_factory, OfferModel) == 1


class TestMixedRaces:
    @pytest.mark.asyncio
    async def test_cancel_racing_accept_ends_cancelled(
        self, negotiation, session_factory, pending_request
    ):
        offer = (await negotiation.create_offer(pending_request.id, 5, 300)).offer

        await asyncio.gather(
            negotiation.accept_offer(pending_request.id, 1, offer.id, 9),
            negotiation.cancel_request(pending_request.id, 1),
            return_exceptions=True,
        )

        async with session_factory() as session:
            stored = await session.get(RequestModel, pending_request.id)
        # Either order leaves a cancelled request with no live references.
        assert stored.status == RequestStatus.CANCELLED
        assert stored.accepted_offer_id is None
        assert stored.payment_id is None
        assert await _count(
            session_factory, OfferModel, OfferModel.status == OfferStatus.ACCEPTED
        ) == 0

    @pytest.mark.asyncio
    async def test_concurrent_completions_share_one_receipt(self, negotiation, session_factory):
        request = await negotiation.create_request(1, PICKUP, DROPOFF, 1)
        offer = (await negotiation.create_offer(request.id, 5, 300)).offer
        await negotiation.accept_offer(request.id, 1, offer.id, 9)

        results = await asyncio.gather(
            negotiation.complete_request(request.id, 1, Role.CUSTOMER),
            negotiation.complete_request(request.id, 5, Role.DRIVER),
            return_exceptions=True,
        )

        receipts = {r.receipt.id for r in results if not isinstance(r, Exception)}
        assert len(receipts) == 1
        assert await _count(session_factory, ReceiptModel) == 1
