from typing import Optional

import jwt

from autoshop.core.config import settings
from autoshop.logger_config import logger


def decode_access_token(token: str) -> Optional[dict]:
    """Decode a bearer token issued by the auth service. Returns None when invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning(f"Rejected access token: {str(e)}")
        return None


def create_access_token(subject: str, **claims) -> str:
    """Issue a token for ``subject``; used by seed scripts and tests."""
    payload = {"sub": subject, **claims}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
