from __future__ import annotations

from fastapi import Header, HTTPException

from habitlog.models import Identity
from habitlog.settings import get_settings


def resolve_identity(user_id: str | None, user_email: str | None, backend_token: str | None) -> Identity:
    settings = get_settings()
    if not backend_token or backend_token != settings.backend_session_secret:
        raise HTTPException(status_code=401, detail="Invalid backend token")
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user id")
    email = (user_email or "").strip().lower()
    if settings.allowed_emails and email not in settings.allowed_emails:
        raise HTTPException(status_code=403, detail="User not allowed")
    return Identity(user_id=user_id.strip(), email=email)


async def require_identity(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    x_backend_token: str | None = Header(default=None, alias="X-Backend-Token"),
) -> Identity:
    return resolve_identity(x_user_id, x_user_email, x_backend_token)
