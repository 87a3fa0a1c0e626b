"""FastAPI application factory for Storefront-Engine."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_engine.common import exceptions as errors
from storefront_engine.common.config import get_settings
from storefront_engine.common.logging import setup_logging
from storefront_engine.common.schemas import ErrorResponse, HealthResponse

_STATUS_BY_CATEGORY = {
    errors.VALIDATION: 400,
    errors.NOT_FOUND: 404,
    errors.UNAUTHORIZED: 403,
    errors.CONFLICT: 409,
    errors.UPSTREAM: 502,
    errors.INTERNAL: 500,
}


def status_for(exc: errors.StorefrontError) -> int:
    if isinstance(exc, errors.GatewayTimeoutError):
        return 504
    return _STATUS_BY_CATEGORY.get(exc.category, 500)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from storefront_engine.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(errors.StorefrontError)
    async def storefront_error_handler(request: Request, exc: errors.StorefrontError):
        body = ErrorResponse(error=exc.category, code=exc.code, detail=exc.message)
        return JSONResponse(status_code=status_for(exc), content=body.model_dump())

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from storefront_engine.checkout.router import router as checkout_router
    from storefront_engine.purchases.router import router as purchases_router
    from storefront_engine.discounts.router import router as discounts_router
    from storefront_engine.licensing.router import router as licensing_router
    from storefront_engine.payouts.router import router as payouts_router

    prefix = settings.api_prefix
    app.include_router(checkout_router, prefix=prefix, tags=["checkout"])
    app.include_router(purchases_router, prefix=prefix, tags=["purchases"])
    app.include_router(discounts_router, prefix=prefix, tags=["discounts"])
    app.include_router(licensing_router, prefix=prefix, tags=["licensing"])
    app.include_router(payouts_router, prefix=prefix, tags=["payouts"])

    return app
