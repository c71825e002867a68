import hmac

from fastapi import Header, HTTPException, status
from pixelgate.config import settings


async def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")):
    # an unset admin token disables the admin API entirely
    if not settings.admin_token or not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), settings.admin_token.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
