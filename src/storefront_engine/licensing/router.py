"""License validation and activation API router."""

from fastapi import APIRouter, Depends, Query

from storefront_engine.common.security import require_api_key
from storefront_engine.licensing.schemas import (
    ActivateRequest,
    ActivateResponse,
    ActivationResponse,
    DeactivateAllRequest,
    DeactivateAllResponse,
    DeactivateRequest,
    DeactivateResponse,
    LicenseValidation,
    ValidateRequest,
)

router = APIRouter()


def _get_service():
    from storefront_engine.deps import get_license_service
    return get_license_service()


def _get_db():
    from storefront_engine.deps import get_db
    return get_db()


@router.post("/licenses/validate", response_model=LicenseValidation)
async def validate_license(body: ValidateRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.validate_license(session, body.key)


@router.post("/licenses/activate", response_model=ActivateResponse)
async def activate(body: ActivateRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.activate(
            session,
            raw_key=body.key,
            machine_id=body.machine_id,
            device_name=body.device_name,
            os_info=body.os_info,
            ip_address=body.ip_address,
        )
        return ActivateResponse(**result)


@router.post("/licenses/deactivate", response_model=DeactivateResponse)
async def deactivate(body: DeactivateRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.deactivate(session, raw_key=body.key, machine_id=body.machine_id)
        return DeactivateResponse(success=result)


@router.post("/licenses/deactivate-all", response_model=DeactivateAllResponse)
async def deactivate_all(body: DeactivateAllRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        released = await svc.deactivate_all(session, body.key, body.requester_id)
        return DeactivateAllResponse(success=True, deactivated=released)


@router.post("/licenses/revoke", response_model=DeactivateAllResponse)
async def revoke(body: DeactivateAllRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        released = await svc.revoke(session, body.key, body.requester_id)
        return DeactivateAllResponse(success=True, deactivated=released)


@router.get("/licenses/{key}/activations", response_model=list[ActivationResponse])
async def list_activations(
    key: str,
    active_only: bool = Query(False),
    _=Depends(require_api_key),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        activations = await svc.list_activations(session, key, active_only=active_only)
        return [ActivationResponse.model_validate(a) for a in activations]
