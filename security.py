"""Password hashing and bearer tokens."""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from werkzeug.security import generate_password_hash, check_password_hash

from config import get_config
from errors import AuthenticationFailed

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def issue_token(user_id: int, ttl_minutes: int = None) -> str:
    cfg = get_config()
    ttl = ttl_minutes if ttl_minutes is not None else cfg.TOKEN_TTL_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, cfg.SECRET_KEY, algorithm=cfg.TOKEN_ALGORITHM)


def decode_token(token: str) -> int:
    """Return the user id a token was issued for.

    Raises AuthenticationFailed for expired, tampered or malformed tokens.
    """
    cfg = get_config()
    try:
        payload = jwt.decode(token, cfg.SECRET_KEY, algorithms=[cfg.TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning("rejected bearer token: %s", e)
        raise AuthenticationFailed("Invalid token")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationFailed("Invalid token")
