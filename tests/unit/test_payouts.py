"""Tests for creator balances and payout requests."""

from decimal import Decimal

import pytest

from storefront_engine.common.exceptions import (
    InvalidTransitionError,
    PayoutNotFoundError,
    PayoutRejectedError,
)
from storefront_engine.payouts.models import PayoutStatus


@pytest.fixture
def earn(seed_product, buy):
    """Complete one purchase per price for creator-1 (5% platform fee)."""
    async def _earn(*prices):
        for price in prices:
            product = await seed_product(price=price)
            await buy(product.id)
    return _earn


class TestBalance:
    async def test_no_sales(self, db, services):
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert balance.total_earnings == Decimal("0.00")
        assert balance.available_balance == Decimal("0.00")

    async def test_completed_earnings_only(self, db, services, seed_product, buy, earn):
        await earn("100.00")
        pending = await seed_product(price="50.00")
        await buy(pending.id, complete=False)
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert balance.total_earnings == Decimal("95.00")
        assert balance.available_balance == Decimal("95.00")

    async def test_refund_removes_earnings(self, db, services, seed_product, buy):
        product = await seed_product(price="100.00")
        purchase = await buy(product.id)
        async with db.get_session() as session:
            await services.ledger.refund(session, purchase.id)
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert balance.total_earnings == Decimal("0.00")

    async def test_other_creators_excluded(self, db, services, seed_product, buy, earn):
        await earn("100.00")
        other = await seed_product(price="40.00", creator_id="creator-2")
        await buy(other.id)
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-2")
        assert balance.total_earnings == Decimal("38.00")

    async def test_pending_payout_reserved(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            await services.payouts.request_payout(session, "creator-1", Decimal("30.00"))
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert balance.pending_payouts == Decimal("30.00")
        assert balance.available_balance == Decimal("65.00")


class TestEligibility:
    async def test_below_minimum(self, db, services, earn):
        await earn("10.00")
        async with db.get_session() as session:
            result = await services.payouts.eligibility(session, "creator-1")
        assert result.is_eligible is False
        assert result.available_balance == Decimal("9.50")
        assert result.minimum_amount == Decimal("10.00")

    async def test_at_minimum(self, db, services, earn):
        await earn("10.00", "0.53")
        async with db.get_session() as session:
            result = await services.payouts.eligibility(session, "creator-1")
        # 9.50 + 0.50 (fee on 0.53 rounds to 0.03)
        assert result.available_balance == Decimal("10.00")
        assert result.is_eligible is True


class TestRequestPayout:
    async def test_below_minimum_message(self, db, services, earn):
        await earn("10.00")
        with pytest.raises(PayoutRejectedError) as exc_info:
            async with db.get_session() as session:
                await services.payouts.request_payout(session, "creator-1")
        assert exc_info.value.message == "Minimum payout amount is $10"

    async def test_requested_amount_below_minimum(self, db, services, earn):
        await earn("100.00")
        with pytest.raises(PayoutRejectedError, match=r"Minimum payout amount is \$10"):
            async with db.get_session() as session:
                await services.payouts.request_payout(session, "creator-1", Decimal("5"))

    async def test_insufficient_balance(self, db, services, earn):
        await earn("100.00")
        with pytest.raises(PayoutRejectedError, match="Insufficient balance"):
            async with db.get_session() as session:
                await services.payouts.request_payout(session, "creator-1", Decimal("95.01"))

    async def test_defaults_to_full_balance(self, db, services, earn):
        await earn("100.00", "20.00")
        async with db.get_session() as session:
            payout = await services.payouts.request_payout(session, "creator-1")
        assert payout.amount == Decimal("114.00")
        assert payout.status == PayoutStatus.PENDING

    async def test_second_request_sees_pending(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            await services.payouts.request_payout(session, "creator-1", Decimal("90.00"))
        with pytest.raises(PayoutRejectedError):
            async with db.get_session() as session:
                await services.payouts.request_payout(session, "creator-1", Decimal("10.00"))

    async def test_processing_payout_stays_reserved(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            payout = await services.payouts.request_payout(session, "creator-1")
        async with db.get_session() as session:
            await services.payouts.process(session, payout.id, "bank", "tr_123")
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert balance.pending_payouts == Decimal("95.00")
        assert balance.available_balance == Decimal("0.00")

        with pytest.raises(PayoutRejectedError, match="Minimum payout amount"):
            async with db.get_session() as session:
                await services.payouts.request_payout(session, "creator-1")
        async with db.get_session() as session:
            listed = await services.payouts.list_for_creator(session, "creator-1")
        assert [p.id for p in listed] == [payout.id]

    async def test_completed_payout_reduces_balance_by_amount(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            before = (await services.payouts.balance(session, "creator-1")).available_balance
            payout = await services.payouts.request_payout(session, "creator-1", Decimal("40.00"))
        async with db.get_session() as session:
            await services.payouts.process(session, payout.id, "bank", "tr_123")
        async with db.get_session() as session:
            await services.payouts.complete(session, payout.id)
        async with db.get_session() as session:
            after = await services.payouts.balance(session, "creator-1")
        assert before - after.available_balance == Decimal("40.00")
        assert after.total_payouts == Decimal("40.00")
        assert after.pending_payouts == Decimal("0.00")

    async def test_failed_payout_releases_funds(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            payout = await services.payouts.request_payout(session, "creator-1")
        async with db.get_session() as session:
            failed = await services.payouts.fail(session, payout.id, "bank rejected")
        async with db.get_session() as session:
            balance = await services.payouts.balance(session, "creator-1")
        assert failed.status == PayoutStatus.FAILED
        assert failed.failure_reason == "bank rejected"
        assert balance.available_balance == Decimal("95.00")


class TestTransitions:
    async def _pending(self, db, services, earn):
        await earn("100.00")
        async with db.get_session() as session:
            return await services.payouts.request_payout(session, "creator-1")

    async def test_process_records_provider(self, db, services, earn):
        payout = await self._pending(db, services, earn)
        async with db.get_session() as session:
            processed = await services.payouts.process(session, payout.id, "bank", "tr_1")
        assert processed.status == PayoutStatus.PROCESSING
        assert processed.payment_provider == "bank"
        assert processed.transfer_reference == "tr_1"
        assert processed.processed_at is not None

    async def test_cannot_complete_pending(self, db, services, earn):
        payout = await self._pending(db, services, earn)
        with pytest.raises(InvalidTransitionError, match="pending to completed"):
            async with db.get_session() as session:
                await services.payouts.complete(session, payout.id)

    async def test_completed_is_final(self, db, services, earn):
        payout = await self._pending(db, services, earn)
        async with db.get_session() as session:
            await services.payouts.process(session, payout.id, "bank")
        async with db.get_session() as session:
            await services.payouts.complete(session, payout.id)
        with pytest.raises(InvalidTransitionError):
            async with db.get_session() as session:
                await services.payouts.fail(session, payout.id, "late")

    async def test_unknown_payout(self, db, services):
        with pytest.raises(PayoutNotFoundError):
            async with db.get_session() as session:
                await services.payouts.process(session, "missing", "bank")

    async def test_list_for_creator(self, db, services, earn):
        payout = await self._pending(db, services, earn)
        async with db.get_session() as session:
            payouts = await services.payouts.list_for_creator(session, "creator-1")
            other = await services.payouts.list_for_creator(session, "creator-2")
        assert [p.id for p in payouts] == [payout.id]
        assert other == []
