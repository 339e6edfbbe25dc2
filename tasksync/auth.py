from fastapi import Header, HTTPException
from .config import settings

async def require_token(x_api_token: str | None = Header(default=None)):
    if not x_api_token or x_api_token != settings.api_token:
        raise HTTPException(status_code=401, detail="Unauthorized")

async def require_cron_secret(authorization: str | None = Header(default=None)):
    """Sweep trigger auth; open when CRON_SECRET is unset."""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")
