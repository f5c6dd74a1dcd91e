import hmac

from fastapi import Depends, Header, HTTPException, status

from jobsweep.core.config import Settings, get_settings


async def require_trigger_secret(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    if not settings.trigger_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="trigger secret is not configured",
        )

    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="trigger requires bearer secret",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not hmac.compare_digest(token.encode("utf-8"), settings.trigger_secret.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid trigger secret")
