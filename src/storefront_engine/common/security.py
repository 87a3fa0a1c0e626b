"""API key authentication dependency.

End-user authentication happens upstream; callers of this service are the
already-authenticated HTTP layer, identified by a shared API key.
"""

import hmac

from fastapi import Header, HTTPException


async def require_api_key(
    x_storefront_api_key: str = Header(..., alias="X-Storefront-Api-Key"),
) -> str:
    """FastAPI dependency that validates the service API key from header."""
    from storefront_engine.common.config import get_settings

    settings = get_settings()
    if not hmac.compare_digest(x_storefront_api_key, settings.api_key):
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_storefront_api_key
