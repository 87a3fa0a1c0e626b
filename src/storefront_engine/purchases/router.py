"""Purchase ledger API router."""

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront_engine.common.security import require_api_key
from storefront_engine.purchases.schemas import (
    PurchaseCheck,
    PurchaseEventResponse,
    PurchaseList,
    PurchaseResponse,
)
from storefront_engine.purchases.state import PurchaseStatus

router = APIRouter()


def _get_service():
    from storefront_engine.deps import get_purchase_ledger
    return get_purchase_ledger()


def _get_audit():
    from storefront_engine.deps import get_audit_service
    return get_audit_service()


def _get_db():
    from storefront_engine.deps import get_db
    return get_db()


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(purchase_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        purchase = await svc.get(session, purchase_id)
        if purchase is None:
            raise HTTPException(status_code=404, detail="Purchase not found")
        return PurchaseResponse.model_validate(purchase)


@router.post("/purchases/{purchase_id}/refund", response_model=PurchaseResponse)
async def refund_purchase(purchase_id: str, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.refund(session, purchase_id, actor="api")
        return PurchaseResponse.model_validate(result.purchase)


@router.get("/purchases/{purchase_id}/events", response_model=list[PurchaseEventResponse])
async def get_purchase_events(purchase_id: str, _=Depends(require_api_key)):
    audit = _get_audit()
    db = _get_db()
    async with db.get_session() as session:
        events = await audit.get_events(session, purchase_id)
        return [PurchaseEventResponse.model_validate(e) for e in events]


@router.get("/purchases/{purchase_id}/events/verify")
async def verify_purchase_events(purchase_id: str, _=Depends(require_api_key)):
    audit = _get_audit()
    db = _get_db()
    async with db.get_session() as session:
        return await audit.verify_chain(session, purchase_id)


@router.get("/customers/{customer_id}/purchases", response_model=PurchaseList)
async def list_customer_purchases(
    customer_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    offset = (page - 1) * page_size
    async with db.get_session() as session:
        items, total = await svc.list_for_customer(
            session, customer_id, offset=offset, limit=page_size
        )
        return PurchaseList(
            items=[PurchaseResponse.model_validate(p) for p in items],
            total=total,
            page=page,
            page_size=page_size,
        )


@router.get(
    "/customers/{customer_id}/purchases/{product_id}", response_model=PurchaseCheck,
)
async def check_purchase(customer_id: str, product_id: str, _=Depends(require_api_key)):
    """Whether the customer owns the product through a completed purchase."""
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        purchased = await svc.has_purchased(session, customer_id, product_id)
        return PurchaseCheck(customer_id=customer_id, product_id=product_id, purchased=purchased)


@router.get("/orders/{order_ref}/purchases", response_model=list[PurchaseResponse])
async def list_order_purchases(order_ref: str, _=Depends(require_api_key)):
    """Lines of one checkout, by order reference or provider order id."""
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        purchases = await svc.list_for_order(session, order_ref)
        if not purchases:
            raise HTTPException(status_code=404, detail="Order not found")
        return [PurchaseResponse.model_validate(p) for p in purchases]


@router.get("/creators/{creator_id}/sales", response_model=list[PurchaseResponse])
async def list_creator_sales(
    creator_id: str,
    status: PurchaseStatus = Query(PurchaseStatus.COMPLETED),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    offset = (page - 1) * page_size
    async with db.get_session() as session:
        sales = await svc.list_for_creator(
            session, creator_id, status=status, offset=offset, limit=page_size
        )
        return [PurchaseResponse.model_validate(p) for p in sales]
