"""Discount code API router."""

from fastapi import APIRouter, Depends, Query

from storefront_engine.common.security import require_api_key
from storefront_engine.discounts.schemas import (
    DiscountCreate,
    DiscountResponse,
    DiscountUpdate,
    DiscountValidateRequest,
    DiscountValidation,
)

router = APIRouter()


def _get_service():
    from storefront_engine.deps import get_discount_service
    return get_discount_service()


def _get_db():
    from storefront_engine.deps import get_db
    return get_db()


@router.post("/discounts/validate", response_model=DiscountValidation)
async def validate_discount(body: DiscountValidateRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.validate(session, body.code, body.product_id, body.price)


# ── Creator management ──

@router.post("/discounts", response_model=DiscountResponse, status_code=201)
async def create_discount(body: DiscountCreate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        discount = await svc.create_discount(
            session,
            creator_id=body.creator_id,
            discount_type=body.type,
            value=body.value,
            code=body.code,
            applies_to=body.applies_to,
            usage_limit=body.usage_limit,
            expires_at=body.expires_at,
            product_ids=body.product_ids,
        )
        return DiscountResponse.model_validate(discount)


@router.get("/creators/{creator_id}/discounts", response_model=list[DiscountResponse])
async def list_discounts(
    creator_id: str,
    active: bool | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    offset = (page - 1) * page_size
    async with db.get_session() as session:
        discounts = await svc.list_for_creator(
            session, creator_id, active=active, offset=offset, limit=page_size
        )
        return [DiscountResponse.model_validate(d) for d in discounts]


@router.patch("/discounts/{discount_id}", response_model=DiscountResponse)
async def update_discount(discount_id: str, body: DiscountUpdate, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        discount = await svc.update_discount(
            session, body.creator_id, discount_id,
            **body.model_dump(exclude_none=True, exclude={"creator_id"}),
        )
        return DiscountResponse.model_validate(discount)


@router.delete("/discounts/{discount_id}", status_code=204)
async def delete_discount(
    discount_id: str,
    creator_id: str = Query(...),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_discount(session, creator_id, discount_id)


@router.post("/discounts/{discount_id}/products/{product_id}", status_code=204)
async def add_discount_product(
    discount_id: str,
    product_id: str,
    creator_id: str = Query(...),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.add_product(session, creator_id, discount_id, product_id)


@router.delete("/discounts/{discount_id}/products/{product_id}", status_code=204)
async def remove_discount_product(
    discount_id: str,
    product_id: str,
    creator_id: str = Query(...),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.remove_product(session, creator_id, discount_id, product_id)
