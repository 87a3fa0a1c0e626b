"""Creator balance and payout API router."""

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront_engine.common.security import require_api_key
from storefront_engine.payouts.schemas import (
    CreatorBalance,
    PayoutEligibility,
    PayoutFail,
    PayoutProcess,
    PayoutRequest,
    PayoutResponse,
)

router = APIRouter()


def _get_service():
    from storefront_engine.deps import get_payout_service
    return get_payout_service()


def _get_db():
    from storefront_engine.deps import get_db
    return get_db()


# ── Balances ──

@router.get("/creators/{creator_id}/balance", response_model=CreatorBalance)
async def get_balance(creator_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.balance(session, creator_id)


@router.get("/creators/{creator_id}/payout-eligibility", response_model=PayoutEligibility)
async def get_eligibility(creator_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.eligibility(session, creator_id)


@router.get("/creators/{creator_id}/payouts", response_model=list[PayoutResponse])
async def list_payouts(
    creator_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    offset = (page - 1) * page_size
    async with db.get_session() as session:
        payouts = await svc.list_for_creator(session, creator_id, offset=offset, limit=page_size)
        return [PayoutResponse.model_validate(p) for p in payouts]


# ── Payouts ──

@router.post("/payouts", response_model=PayoutResponse, status_code=201)
async def request_payout(body: PayoutRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payout = await svc.request_payout(session, body.creator_id, amount=body.amount)
        return PayoutResponse.model_validate(payout)


@router.get("/payouts/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payout = await svc.get(session, payout_id)
        if payout is None:
            raise HTTPException(status_code=404, detail="Payout not found")
        return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/process", response_model=PayoutResponse)
async def process_payout(payout_id: str, body: PayoutProcess, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payout = await svc.process(
            session, payout_id, body.provider, transfer_reference=body.transfer_reference
        )
        return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/complete", response_model=PayoutResponse)
async def complete_payout(payout_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payout = await svc.complete(session, payout_id)
        return PayoutResponse.model_validate(payout)


@router.post("/payouts/{payout_id}/fail", response_model=PayoutResponse)
async def fail_payout(payout_id: str, body: PayoutFail, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payout = await svc.fail(session, payout_id, body.reason)
        return PayoutResponse.model_validate(payout)
