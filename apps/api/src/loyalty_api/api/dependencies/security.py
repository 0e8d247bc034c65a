from fastapi import Header, HTTPException, status

from loyalty_api.core.settings import settings


async def require_cron_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> None:
    """Guard job triggers; open when no key is configured."""

    if not settings.cron_api_key:
        return

    if x_api_key != settings.cron_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
