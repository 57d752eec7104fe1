"""API key dependency shared by the routers."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from ..settings import APISettings, get_settings


async def get_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    settings: APISettings = Depends(get_settings),
) -> str:
    """Accept any key from ``API_KEYS``; an empty key list disables the check."""

    if not settings.api_keys:
        return x_api_key or ""
    if not x_api_key or x_api_key not in settings.api_keys:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return x_api_key
