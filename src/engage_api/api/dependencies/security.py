from uuid import UUID

from fastapi import Header, HTTPException, status

from engage_api.core.settings import settings


async def require_admin_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    if not settings.admin_api_key:
        return

    if x_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def require_brand_scope(x_brand_id: str | None = Header(None, alias="X-Brand-Id")) -> UUID:
    """Resolve the tenant a request operates on."""

    if not x_brand_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing brand scope",
        )

    try:
        return UUID(x_brand_id)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid brand identifier",
        ) from error
