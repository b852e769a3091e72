import hmac

from fastapi import Header, HTTPException

from . import config as app_config


def validate_admin_token(token: str | None, admin_token: str | None) -> None:
    if not admin_token or not token or not hmac.compare_digest(token, admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin token")


def validate_cron_secret(authorization: str | None, cron_secret: str | None) -> None:
    if not cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
    expected = f"Bearer {cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_admin_token(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    validate_admin_token(x_admin_token, app_config.ADMIN_TOKEN)


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    validate_cron_secret(authorization, app_config.CRON_SECRET)
