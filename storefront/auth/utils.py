import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from storefront.auth.constants import ADMIN_SESSION_TTL_SECONDS
from storefront.common.custom_exceptions import ConfigurationError
from storefront.config.admin_config import admin_config


def admin_session_secret() -> str:
    secret = admin_config.ADMIN_SESSION_SECRET or admin_config.ADMIN_TOKEN
    if not secret:
        raise ConfigurationError("Missing ADMIN_SESSION_SECRET or ADMIN_TOKEN")
    return secret


def is_valid_admin_password(candidate: str, admin_token: str) -> bool:
    return hmac.compare_digest(candidate.encode(), admin_token.encode())


def create_admin_session_token(expires_seconds: int = ADMIN_SESSION_TTL_SECONDS) -> str:
    now = datetime.now(timezone.utc)
    expiry = now + timedelta(seconds=expires_seconds)

    payload = {
        "sub": "admin",
        "iat": int(now.timestamp()),
        "exp": int(expiry.timestamp()),
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(claims=payload, key=admin_session_secret(), algorithm=admin_config.ADMIN_SESSION_ALGO)


def decode_admin_session_token(token: Optional[str]):
    """Verify signature and expiry; None for anything that does not check out."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, admin_session_secret(), algorithms=[admin_config.ADMIN_SESSION_ALGO])
    except JWTError:
        return None
    if claims.get("sub") != "admin":
        return None
    return claims
