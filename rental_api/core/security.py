from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from rental_api.core.settings import get_app_settings


# PUBLIC_INTERFACE
def create_access_token(
    subject: str,
    role: str,
    expires_minutes: int = 60,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed access token with subject (actor id) and role claims.

    Tokens are normally issued by the external identity provider; this helper
    exists for seeding, local development and tests.
    """
    settings = get_app_settings()
    now = datetime.now(tz=timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "type": "access",
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT; raises JWTError if invalid/expired."""
    settings = get_app_settings()
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


# PUBLIC_INTERFACE
def verify_cron_secret(authorization: Optional[str]) -> bool:
    """Constant-time check of an 'Authorization: Bearer <CRON_SECRET>' header value."""
    expected = f"Bearer {get_app_settings().CRON_SECRET}"
    return hmac.compare_digest((authorization or "").encode(), expected.encode())
