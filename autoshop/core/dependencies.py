from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from autoshop.core.database import SessionLocal
from autoshop.core.exceptions import UnauthorizedError
from autoshop.core.security import decode_access_token
from autoshop.services.events import EventPublisher, get_event_publisher as _get_event_publisher
from autoshop.services.notifications import NotificationSink, get_notifier as _get_notifier


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class Principal:
    """Acting admin or worker, as asserted by the auth service."""
    id: str
    role: str = ""


# Use HTTPBearer so Swagger automatically asks for a token
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:
    """
    Resolve the bearer token to the principal id stamped into ``created_by``.
    Raises 401 if the token is missing or invalid.
    """
    if credentials is None:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise UnauthorizedError("Token payload missing subject")

    return Principal(id=str(subject), role=str(payload.get("role", "")))


def get_notifier() -> NotificationSink:
    return _get_notifier()


def get_event_publisher() -> EventPublisher:
    return _get_event_publisher()
