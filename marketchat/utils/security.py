from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt

from marketchat.config import get_settings
from marketchat.errors import UnauthenticatedError


def create_access_token(user_id: str, expires_minutes: int = 60) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": user_id, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc
    if not payload.get("sub"):
        raise UnauthenticatedError("Token has no subject")
    return payload
