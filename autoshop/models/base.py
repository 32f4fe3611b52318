import secrets
import string
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Numeric
from sqlalchemy.orm import composite

from autoshop.models.money import Money


def generate_custom_id(prefix: str, length: int = 8) -> str:
    random_part = ''.join(secrets.choice(string.ascii_uppercase + string.digits)
                          for _ in range(length))
    return f"{prefix}-{random_part}"


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in the schema stores UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money_columns(prefix: str):
    """Return (usd column, uzs column) for a Money composite."""
    return (
        Column(f"{prefix}_usd", Numeric(18, 2), nullable=False, default=0),
        Column(f"{prefix}_uzs", Numeric(18, 2), nullable=False, default=0),
    )


def money_composite(usd_column, uzs_column):
    return composite(Money, usd_column, uzs_column)


class BaseFields:
    """Timestamps and soft-delete flag shared by all top-level records."""

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    def mark_deleted(self) -> None:
        self.is_deleted = True
        self.deleted_at = utcnow()
