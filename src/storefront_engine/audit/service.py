"""Audit service — record, verify, and query the purchase event chain."""

import hashlib
import hmac as hmac_mod
import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.common.config import StorefrontSettings
from storefront_engine.audit.models import PurchaseEventModel


class AuditService:
    """Append-only, hash-chained event log per purchase."""

    def __init__(self, settings: StorefrontSettings):
        self.settings = settings

    # ── Write ──

    async def record_event(
        self,
        session: AsyncSession,
        purchase_id: str,
        event_type: str,
        actor: str = "system",
        detail: dict[str, Any] | None = None,
    ) -> PurchaseEventModel:
        """Append a new event to the purchase's audit chain.

        ``(purchase_id, sequence)`` is unique, so two writers racing for the
        same chain position cannot both commit.
        """
        detail = detail or {}

        head = await self.get_chain_head(session, purchase_id)
        prev_hash = head.event_hash if head else None
        sequence = head.sequence + 1 if head else 0

        event_hash = self._compute_event_hash(
            sequence, event_type, actor, detail, prev_hash,
        )

        event = PurchaseEventModel(
            purchase_id=purchase_id,
            sequence=sequence,
            event_type=event_type,
            actor=actor,
            detail=detail,
            prev_hash=prev_hash,
            event_hash=event_hash,
            signature=self._sign(event_hash),
        )
        session.add(event)
        await session.flush()
        return event

    # ── Read ──

    async def get_chain_head(
        self, session: AsyncSession, purchase_id: str,
    ) -> PurchaseEventModel | None:
        """Return the most recent event for a purchase."""
        result = await session.execute(
            select(PurchaseEventModel)
            .where(PurchaseEventModel.purchase_id == purchase_id)
            .order_by(PurchaseEventModel.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_events(
        self,
        session: AsyncSession,
        purchase_id: str,
        event_type: str | None = None,
    ) -> list[PurchaseEventModel]:
        """Events for a purchase, oldest first."""
        query = select(PurchaseEventModel).where(
            PurchaseEventModel.purchase_id == purchase_id
        )
        if event_type:
            query = query.where(PurchaseEventModel.event_type == event_type)
        result = await session.execute(query.order_by(PurchaseEventModel.sequence.asc()))
        return list(result.scalars().all())

    # ── Verify ──

    async def verify_chain(
        self, session: AsyncSession, purchase_id: str,
    ) -> dict[str, Any]:
        """Walk the chain oldest→newest, verify linkage, hashes and signatures."""
        events = await self.get_events(session, purchase_id)

        prev_hash = None
        for index, event in enumerate(events):
            expected_hash = self._compute_event_hash(
                event.sequence, event.event_type, event.actor, event.detail, event.prev_hash,
            )
            if (
                event.sequence != index
                or event.prev_hash != prev_hash
                or event.event_hash != expected_hash
                or not hmac_mod.compare_digest(self._sign(event.event_hash), event.signature)
            ):
                return {"valid": False, "events_checked": index, "break_at": event.id}
            prev_hash = event.event_hash

        return {"valid": True, "events_checked": len(events), "break_at": None}

    # ── Internal helpers ──

    @staticmethod
    def _compute_event_hash(
        sequence: int,
        event_type: str,
        actor: str,
        detail: dict[str, Any],
        prev_hash: str | None,
    ) -> str:
        """SHA-256 of canonical JSON of the event fields."""
        canonical = json.dumps(
            {
                "sequence": sequence,
                "event_type": event_type,
                "actor": actor,
                "detail": detail,
                "prev_hash": prev_hash,
            },
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def _sign(self, event_hash: str) -> str:
        """HMAC-SHA256 of event_hash with the configured key."""
        return hmac_mod.new(
            self.settings.hmac_key.encode(),
            event_hash.encode(),
            hashlib.sha256,
        ).hexdigest()
