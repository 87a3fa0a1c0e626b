"""Payout service — creator balances, payout requests, disbursement status."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.exceptions import (
    InvalidTransitionError,
    PayoutNotFoundError,
    PayoutRejectedError,
)
from storefront_engine.payouts.models import PAYOUT_TRANSITIONS, PayoutModel, PayoutStatus
from storefront_engine.payouts.schemas import CreatorBalance, PayoutEligibility
from storefront_engine.pricing.fees import ZERO, to_money
from storefront_engine.purchases.models import PurchaseModel
from storefront_engine.purchases.state import PurchaseStatus

logger = logging.getLogger(__name__)


class PayoutService:
    """Computes what a creator can withdraw and tracks payouts."""

    def __init__(self, settings: StorefrontSettings):
        self.settings = settings

    @property
    def minimum_payout(self) -> Decimal:
        return to_money(self.settings.minimum_payout)

    # ── Balance ──

    async def _sum_earnings(self, session: AsyncSession, creator_id: str) -> Decimal:
        result = await session.execute(
            select(func.coalesce(func.sum(PurchaseModel.creator_earnings), 0)).where(
                PurchaseModel.creator_id == creator_id,
                PurchaseModel.status == PurchaseStatus.COMPLETED,
            )
        )
        return to_money(result.scalar() or ZERO)

    async def _sum_payouts(
        self, session: AsyncSession, creator_id: str, *statuses: PayoutStatus,
    ) -> Decimal:
        result = await session.execute(
            select(func.coalesce(func.sum(PayoutModel.amount), 0)).where(
                PayoutModel.creator_id == creator_id,
                PayoutModel.status.in_(statuses),
            )
        )
        return to_money(result.scalar() or ZERO)

    async def balance(self, session: AsyncSession, creator_id: str) -> CreatorBalance:
        """Completed earnings minus completed and in-flight payouts.

        PENDING and PROCESSING payouts are both committed funds; only a FAILED
        payout releases its amount back to the balance.
        """
        earnings = await self._sum_earnings(session, creator_id)
        paid = await self._sum_payouts(session, creator_id, PayoutStatus.COMPLETED)
        pending = await self._sum_payouts(
            session, creator_id, PayoutStatus.PENDING, PayoutStatus.PROCESSING,
        )
        return CreatorBalance(
            creator_id=creator_id,
            total_earnings=earnings,
            total_payouts=paid,
            pending_payouts=pending,
            available_balance=earnings - paid - pending,
            currency=self.settings.payout_currency,
        )

    async def eligibility(self, session: AsyncSession, creator_id: str) -> PayoutEligibility:
        current = await self.balance(session, creator_id)
        return PayoutEligibility(
            is_eligible=current.available_balance >= self.minimum_payout,
            available_balance=current.available_balance,
            minimum_amount=self.minimum_payout,
        )

    # ── Requests ──

    def _below_minimum(self) -> PayoutRejectedError:
        return PayoutRejectedError(f"Minimum payout amount is ${self.minimum_payout.normalize():f}")

    async def request_payout(
        self,
        session: AsyncSession,
        creator_id: str,
        amount: Decimal | None = None,
    ) -> PayoutModel:
        """Create a PENDING payout, by default for the whole available balance."""
        current = await self.balance(session, creator_id)
        available = current.available_balance
        if available < self.minimum_payout:
            raise self._below_minimum()

        payout_amount = to_money(amount) if amount is not None else available
        if payout_amount > available:
            raise PayoutRejectedError("Insufficient balance")
        if payout_amount < self.minimum_payout:
            raise self._below_minimum()

        payout = PayoutModel(
            creator_id=creator_id,
            amount=payout_amount,
            currency=self.settings.payout_currency,
            status=PayoutStatus.PENDING,
        )
        session.add(payout)
        await session.flush()

        # Re-read with our own payout counted: a concurrent request that
        # committed first leaves us overdrawn, and the caller's transaction
        # is rolled back.
        after = await self.balance(session, creator_id)
        if after.available_balance < ZERO:
            raise PayoutRejectedError("Insufficient balance")

        logger.info(
            "Payout requested",
            extra={"creator_id": creator_id, "payout_id": payout.id, "amount": str(payout_amount)},
        )
        return payout

    # ── Disbursement ──

    async def _transition(
        self,
        session: AsyncSession,
        payout_id: str,
        target: PayoutStatus,
        values: dict[str, Any],
    ) -> PayoutModel:
        sources = [s for s, targets in PAYOUT_TRANSITIONS.items() if target in targets]
        result = await session.execute(
            update(PayoutModel)
            .where(PayoutModel.id == payout_id, PayoutModel.status.in_(sources))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        payout = await self.get(session, payout_id)
        if payout is None:
            raise PayoutNotFoundError()
        if result.rowcount != 1:
            raise InvalidTransitionError(
                f"Cannot move payout from {PayoutStatus(payout.status).value} to {target.value}"
            )
        logger.info("Payout transitioned", extra={"payout_id": payout_id, "status": target.value})
        return payout

    async def process(
        self,
        session: AsyncSession,
        payout_id: str,
        provider: str,
        transfer_reference: str | None = None,
    ) -> PayoutModel:
        return await self._transition(
            session, payout_id, PayoutStatus.PROCESSING,
            {
                "payment_provider": provider,
                "transfer_reference": transfer_reference,
                "processed_at": datetime.now(timezone.utc),
            },
        )

    async def complete(self, session: AsyncSession, payout_id: str) -> PayoutModel:
        return await self._transition(
            session, payout_id, PayoutStatus.COMPLETED,
            {"completed_at": datetime.now(timezone.utc)},
        )

    async def fail(self, session: AsyncSession, payout_id: str, reason: str) -> PayoutModel:
        return await self._transition(
            session, payout_id, PayoutStatus.FAILED, {"failure_reason": reason},
        )

    # ── Reads ──

    async def get(self, session: AsyncSession, payout_id: str) -> PayoutModel | None:
        result = await session.execute(
            select(PayoutModel)
            .where(PayoutModel.id == payout_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_creator(
        self,
        session: AsyncSession,
        creator_id: str,
        offset: int = 0,
        limit: int = 20,
    ) -> list[PayoutModel]:
        result = await session.execute(
            select(PayoutModel)
            .where(PayoutModel.creator_id == creator_id)
            .order_by(PayoutModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())
